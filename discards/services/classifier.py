"""
Item Classifier — Disqualification Masks for Discard Candidates.

Every candidate starts with DISC. Each check asks the catalog which items
match its predicate and ORs its bit into the matching candidates.

INVARIANTS:
- Classification is additive: bits are only ever set, never cleared
- Only candidates receive bits; keys the catalog returns for items outside
  the candidate set are ignored
- Every call starts from scratch (no state carried between calls)
- Last-copy runs first, over the original unfiltered candidate list

FAILURE HANDLING:
A failed check (error or timeout) is logged at ERROR and counted. By default
it is treated as "no matches" (fail-open), which means an unreachable bills
query lets billed items through. With `fail_closed=True` the failed check's
bit is set on every candidate instead, which preserves the whole batch.
"""

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date

from discards.catalog.base import CatalogQueryAdapter
from discards.config import Settings
from discards.filtering.last_copy import DEFAULT_NON_VIABLE_LOCATIONS, DEFAULT_STAGING_LOCATION
from discards.models.failure import PredicateQueryError
from discards.models.item import ItemFlag, ItemKey

logger = logging.getLogger(__name__)

PredicateQuery = Callable[[Sequence[ItemKey]], Iterable[ItemKey]]


@dataclass(frozen=True)
class Check:
    """One disqualification check: the bit it sets and the query behind it."""

    name: str
    flag: ItemFlag
    query: PredicateQuery | None


@dataclass
class ClassificationResult:
    """Masks for every candidate plus the checks that failed while computing them."""

    masks: dict[ItemKey, ItemFlag] = field(default_factory=dict)
    failed_checks: Counter[str] = field(default_factory=Counter)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_checks)

    def with_flag(self, flag: ItemFlag) -> set[ItemKey]:
        """Candidates carrying `flag`."""
        return {key for key, mask in self.masks.items() if mask & flag}


class ItemClassifier:
    """
    Computes disqualification masks against a catalog.

    Args:
        catalog: Catalog query adapter
        non_viable_locations: Locations that do not count as a living copy
        staging_location: Discard staging location
        fail_closed: Set a failed check's bit on every candidate
    """

    def __init__(
        self,
        catalog: CatalogQueryAdapter,
        non_viable_locations: Iterable[str] = DEFAULT_NON_VIABLE_LOCATIONS,
        staging_location: str = DEFAULT_STAGING_LOCATION,
        fail_closed: bool = False,
    ) -> None:
        self.catalog = catalog
        self.non_viable_locations = frozenset(non_viable_locations)
        self.staging_location = staging_location
        self.fail_closed = fail_closed

    @classmethod
    def from_settings(cls, catalog: CatalogQueryAdapter, settings: Settings) -> "ItemClassifier":
        return cls(
            catalog,
            non_viable_locations=settings.non_viable_locations,
            staging_location=settings.discard_location,
            fail_closed=settings.fail_closed_predicates,
        )

    def checks(self) -> list[Check]:
        """Checks in the order they run. Last-copy is always first."""
        return [
            Check("last_copy", ItemFlag.LCPY, self._last_copies),
            Check("bills", ItemFlag.BILL, self.catalog.billed_items),
            Check("orders", ItemFlag.ORDR, self.catalog.ordered_items),
            # Accountable items are not tracked by the catalog yet
            Check("accountable", ItemFlag.ACCT, None),
            Check("serial_control", ItemFlag.SCTL, self.catalog.serial_controlled_items),
            Check("title_holds", ItemFlag.HTIT, self.catalog.title_held_items),
            Check("copy_holds", ItemFlag.HCPY, self.catalog.copy_held_items),
        ]

    def _last_copies(self, items: Sequence[ItemKey]) -> set[ItemKey]:
        return self.catalog.last_viable_copy_candidates(
            items,
            non_viable_locations=self.non_viable_locations,
            staging_location=self.staging_location,
        )

    def classify(self, items: Iterable[ItemKey]) -> ClassificationResult:
        """
        Classify a candidate set from scratch.

        Args:
            items: Candidate item keys (duplicates collapse)

        Returns:
            ClassificationResult with one mask per candidate
        """
        candidates = list(dict.fromkeys(items))
        result = ClassificationResult(masks=dict.fromkeys(candidates, ItemFlag.DISC))
        if not candidates:
            return result

        for check in self.checks():
            if check.query is None:
                continue
            try:
                hits = check.query(candidates)
            except PredicateQueryError as e:
                result.failed_checks[check.name] += 1
                logger.error(
                    "PREDICATE_QUERY_FAILED",
                    extra={
                        "check": check.name,
                        "candidates": len(candidates),
                        "detail": e.detail,
                        "fail_closed": self.fail_closed,
                    },
                )
                if self.fail_closed:
                    hits = candidates
                else:
                    continue

            matched = 0
            for key in hits:
                mask = result.masks.get(key)
                if mask is None:
                    continue
                result.masks[key] = mask | check.flag
                matched += 1
            logger.debug("Check %s: %d of %d candidates matched", check.name, matched, len(candidates))

        return result

    def classify_card(self, patron_key: str, before: date) -> ClassificationResult:
        """
        Classify everything charged to a card before the cutoff date.

        Raises:
            CatalogUnavailableError: If the charge query fails
        """
        items = self.catalog.charges_for_patron(patron_key, before)
        logger.debug("Card %s has %d charges before %s", patron_key, len(items), before.isoformat())
        return self.classify(items)
