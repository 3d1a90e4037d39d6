"""In-memory catalog for tests and dry runs against fixture data."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date

from discards.catalog.base import CatalogQueryAdapter
from discards.models.failure import CatalogUnavailableError, PredicateQueryError
from discards.models.item import ItemKey, LocationRecord


@dataclass
class InMemoryCatalog(CatalogQueryAdapter):
    """
    Catalog backed by plain collections.

    Title-level facts (orders, serial control, title holds) answer with every
    known copy of the title, the same coarse granularity as the live catalog.
    Names in `failing` make the matching query raise, and patron keys in
    `failing_patrons` make only that card's charge query raise, to exercise the
    failure paths.
    """

    charges: dict[str, list[tuple[ItemKey, date]]] = field(default_factory=dict)
    locations: dict[ItemKey, str] = field(default_factory=dict)
    billed: set[ItemKey] = field(default_factory=set)
    ordered_titles: set[str] = field(default_factory=set)
    serial_titles: set[str] = field(default_factory=set)
    title_holds: set[str] = field(default_factory=set)
    copy_holds: set[ItemKey] = field(default_factory=set)
    profile_cards: list[str] = field(default_factory=list)
    failing: set[str] = field(default_factory=set)
    failing_patrons: set[str] = field(default_factory=set)

    def charge(self, patron_key: str, key: ItemKey, charged_on: date, location: str = "DISCARD") -> None:
        """Charge an item to a card and record where the item sits."""
        self.charges.setdefault(patron_key, []).append((key, charged_on))
        self.locations.setdefault(key, location)

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise PredicateQueryError(name, detail="simulated failure")

    def _copies_of(self, titles: set[str]) -> list[ItemKey]:
        return sorted(key for key in self.locations if key.title in titles)

    def charges_for_patron(self, patron_key: str, before: date) -> list[ItemKey]:
        if "charges" in self.failing or patron_key in self.failing_patrons:
            raise CatalogUnavailableError("charges", detail="simulated failure")
        return [key for key, charged_on in self.charges.get(patron_key, []) if charged_on < before]

    def sibling_locations(self, items: Sequence[ItemKey]) -> list[LocationRecord]:
        self._check("last_copy")
        titles = {item.title for item in items}
        return [LocationRecord(key, self.locations[key]) for key in self._copies_of(titles)]

    def billed_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        self._check("bills")
        wanted = set(items)
        return sorted(key for key in self.billed if key in wanted)

    def ordered_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        self._check("orders")
        return self._copies_of({item.title for item in items} & self.ordered_titles)

    def serial_controlled_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        self._check("serial_control")
        return self._copies_of({item.title for item in items} & self.serial_titles)

    def title_held_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        self._check("title_holds")
        return self._copies_of({item.title for item in items} & self.title_holds)

    def copy_held_items(self, items: Sequence[ItemKey]) -> list[ItemKey]:
        self._check("copy_holds")
        wanted = set(items)
        return sorted(key for key in self.copy_holds if key in wanted)

    def items_at_location(self, location: str) -> list[ItemKey]:
        if "location" in self.failing:
            raise CatalogUnavailableError("items at location", detail="simulated failure")
        return sorted(key for key, where in self.locations.items() if where == location)

    def discard_profile_cards(self) -> list[str]:
        if "profile" in self.failing:
            raise CatalogUnavailableError("discard profile cards", detail="simulated failure")
        return list(self.profile_cards)
