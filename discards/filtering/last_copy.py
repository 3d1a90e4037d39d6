"""
Last-Viable-Copy — Title-Level Sibling Location Scan.

Counting call numbers or copies per title misreads titles spread over several
call numbers, or with copies on order or parked in other locations. This scan
looks at where every sibling copy of a title actually is.

ALGORITHM:
1. Stable sort of all location records by title
2. Group consecutive records of the same title
3. Per group: count records outside the non-viable set, and collect records
   sitting in the staging location as candidates
4. Flush on every title change AND at end of input: candidates are confirmed
   only when the group has no viable copy left

INVARIANTS:
- Only staging-location records are ever confirmed; copies in other
  non-viable locations (LOST, DAMAGE, ...) never are
- One viable copy anywhere in the group clears every candidate of the title
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from discards.models.item import ItemKey, LocationRecord

DEFAULT_STAGING_LOCATION = "DISCARD"
DEFAULT_NON_VIABLE_LOCATIONS = frozenset({DEFAULT_STAGING_LOCATION})


@dataclass
class _TitleGroup:
    """Running tally for one title while scanning."""

    title: str
    viable: int = 0
    candidates: list[ItemKey] = field(default_factory=list)

    def confirmed(self) -> list[ItemKey]:
        """Candidates that are last copies once the group is complete."""
        return list(self.candidates) if self.viable == 0 else []


def find_last_viable_copies(
    records: Iterable[LocationRecord],
    non_viable_locations: Iterable[str] = DEFAULT_NON_VIABLE_LOCATIONS,
    staging_location: str = DEFAULT_STAGING_LOCATION,
) -> set[ItemKey]:
    """
    Find staged copies whose removal would drop their title from the collection.

    Args:
        records: Every sibling copy of the titles being checked
        non_viable_locations: Locations that do not count as a living copy;
            the staging location is always one of them
        staging_location: The discard staging location; only copies here
            are candidates

    Returns:
        Deduplicated set of confirmed last-copy item keys
    """
    non_viable = frozenset(non_viable_locations) | {staging_location}
    ordered = sorted(records, key=lambda record: record.key.title)

    confirmed: set[ItemKey] = set()
    group: _TitleGroup | None = None

    for record in ordered:
        if group is None or record.key.title != group.title:
            if group is not None:
                confirmed.update(group.confirmed())
            group = _TitleGroup(title=record.key.title)

        if record.location in non_viable:
            if record.location == staging_location:
                group.candidates.append(record.key)
        else:
            group.viable += 1

    # Last group has no following title change to flush it
    if group is not None:
        confirmed.update(group.confirmed())

    return confirmed
