"""
Deterministic item filtering.

Title-level inference that runs over catalog location data before items are
classified.
"""

from discards.filtering.last_copy import (
    DEFAULT_NON_VIABLE_LOCATIONS,
    DEFAULT_STAGING_LOCATION,
    find_last_viable_copies,
)

__all__ = [
    "DEFAULT_NON_VIABLE_LOCATIONS",
    "DEFAULT_STAGING_LOCATION",
    "find_last_viable_copies",
]
