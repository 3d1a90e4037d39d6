"""
Catalog Query Adapter — the boundary to the integrated library system.

Every predicate query takes the candidate items and returns item keys in the
canonical form. The catalog's query granularity can be coarser than the
candidate set (a title-level query returns every copy of the title), so
callers must ignore keys they did not ask about.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import date

from discards.filtering.last_copy import DEFAULT_NON_VIABLE_LOCATIONS, find_last_viable_copies
from discards.models.item import ItemKey, LocationRecord


class CatalogQueryAdapter(ABC):
    """
    Abstract catalog query capability.

    Predicate methods raise PredicateQueryError on failure. Charge and card
    report queries raise CatalogUnavailableError.
    """

    @abstractmethod
    def charges_for_patron(self, patron_key: str, before: date) -> list[ItemKey]:
        """Items charged to a patron before the cutoff date."""

    @abstractmethod
    def sibling_locations(self, items: Sequence[ItemKey]) -> list[LocationRecord]:
        """Every copy of every title among `items`, with its current location."""

    @abstractmethod
    def billed_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        """Items with an unpaid bill."""

    @abstractmethod
    def ordered_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        """Items whose title has a pending order line."""

    @abstractmethod
    def serial_controlled_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        """Items under serial control."""

    @abstractmethod
    def title_held_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        """Items whose title has an active title-level hold."""

    @abstractmethod
    def copy_held_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        """Items with an active copy-level hold."""

    @abstractmethod
    def items_at_location(self, location: str) -> list[ItemKey]:
        """Every item currently in `location`."""

    @abstractmethod
    def discard_profile_cards(self) -> list[str]:
        """Raw report lines for every card with the discard profile."""

    def last_viable_copy_candidates(
        self,
        items: Sequence[ItemKey],
        non_viable_locations: Iterable[str] = DEFAULT_NON_VIABLE_LOCATIONS,
        staging_location: str = "DISCARD",
    ) -> set[ItemKey]:
        """Staged copies that are the last viable copy of their title."""
        return find_last_viable_copies(
            self.sibling_locations(items),
            non_viable_locations=non_viable_locations,
            staging_location=staging_location,
        )
