"""
Quota Scanner — Card Health and Daily Recommendations.

One pass over the ledger, in ledger order, computing a health flag set per
card and recommending cards while a running item total fits the quota.

INVARIANTS:
- The running total never exceeds the quota (the strict, pre-fudge value)
- The fudge factor only raises the OVERLOADED warning threshold
- MISNAMED and zero-item cards are force-closed: CONVERTED, never
  recommended, never counted toward the running total
- BARRED is reported but does not block a recommendation
- Excluded cards are assessed like any other but never recommended and
  never counted toward the running total
- Scanning is pure: the same ledger always yields the same result, so the
  same prefix of the ledger is chosen first on every run
"""

import logging
import re
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field

from discards.config import Settings
from discards.models.card import CardHealth, DiscardCard

logger = logging.getLogger(__name__)

DEFAULT_TARGET_ITEM_COUNT = 2000
DEFAULT_QUOTA_FUDGE = 0.10


@dataclass
class ScanResult:
    """Outcome of one ledger scan."""

    health: dict[str, CardHealth] = field(default_factory=dict)
    running_total: int = 0
    cards_done: int = 0
    total_cards: int = 0
    recommended: list[str] = field(default_factory=list)
    closures: list[str] = field(default_factory=list)

    @property
    def all_converted(self) -> bool:
        """True when every card in the ledger is closed for the cycle."""
        return self.cards_done >= self.total_cards

    def with_flag(self, flag: CardHealth) -> list[str]:
        """Patron keys carrying `flag`, in ledger order."""
        return [key for key, health in self.health.items() if health & flag]


class QuotaScanner:
    """
    Scans the ledger against a daily item quota.

    Args:
        quota: Target number of items to convert
        fudge: Tolerated overshoot before a card is reported over-quota
        discard_marker: Text a legitimate discard card carries in its id or description
        misassigned_id_patterns: Id patterns of accounts given the profile by mistake
        branch_code_length: Width of the branch prefix of a card id
    """

    def __init__(
        self,
        quota: int = DEFAULT_TARGET_ITEM_COUNT,
        fudge: float = DEFAULT_QUOTA_FUDGE,
        discard_marker: str = "DISCARD",
        misassigned_id_patterns: Iterable[str] = (),
        branch_code_length: int = 3,
    ) -> None:
        if quota < 0:
            raise ValueError(f"quota must not be negative: {quota}")
        self.quota = quota
        self.fudge = fudge
        self.discard_marker = discard_marker
        self.misassigned_id_patterns = [re.compile(pattern) for pattern in misassigned_id_patterns]
        self.branch_code_length = branch_code_length

    @classmethod
    def from_settings(cls, settings: Settings, quota: int | None = None) -> "QuotaScanner":
        return cls(
            quota=settings.target_item_count if quota is None else quota,
            fudge=settings.quota_fudge,
            discard_marker=settings.discard_marker,
            misassigned_id_patterns=settings.misassigned_id_patterns,
            branch_code_length=settings.branch_code_length,
        )

    @property
    def overload_threshold(self) -> float:
        return self.quota * (1 + self.fudge)

    def is_misnamed(self, card: DiscardCard) -> bool:
        """Check if a card does not look like a legitimate discard card."""
        if any(pattern.search(card.id) for pattern in self.misassigned_id_patterns):
            return True
        return self.discard_marker not in card.id and self.discard_marker not in card.description

    def _in_branch(self, card: DiscardCard, branch: str | None) -> bool:
        return branch is None or card.branch_code(self.branch_code_length) == branch

    def assess(self, card: DiscardCard) -> CardHealth:
        """Health flags that depend on the card alone."""
        health = CardHealth.OK
        if card.is_barred:
            health |= CardHealth.BARRED
        if card.item_count > self.overload_threshold:
            health |= CardHealth.OVERLOADED
        if self.is_misnamed(card):
            health |= CardHealth.MISNAMED
        return health

    def scan(
        self,
        cards: Sequence[DiscardCard],
        running_total: int = 0,
        branch: str | None = None,
        exclude: Collection[str] = (),
    ) -> ScanResult:
        """
        Scan cards in the given order.

        Args:
            cards: Ledger cards, already in ledger order
            running_total: Items already committed today
            branch: Only recommend cards of this branch code
            exclude: Patron keys to leave out of the recommendation, such as
                cards whose charges could not be read this cycle

        Returns:
            ScanResult with health flags, recommendations and totals
        """
        result = ScanResult(running_total=running_total, total_cards=len(cards))

        for card in cards:
            health = self.assess(card)

            if card.is_converted:
                health |= CardHealth.CONVERTED
                result.cards_done += 1
            elif health & CardHealth.MISNAMED or card.item_count == 0:
                health |= CardHealth.CONVERTED
                result.cards_done += 1
                result.closures.append(card.patron_key)
                logger.info(
                    "CARD_FORCE_CLOSED",
                    extra={
                        "card_id": card.id,
                        "misnamed": bool(health & CardHealth.MISNAMED),
                        "item_count": card.item_count,
                    },
                )
            elif card.patron_key in exclude:
                pass
            elif self._in_branch(card, branch) and card.item_count + result.running_total <= self.quota:
                health |= CardHealth.RECOMMEND
                result.running_total += card.item_count
                result.recommended.append(card.patron_key)

            result.health[card.patron_key] = health

        logger.debug(
            "Scanned %d cards: %d done, %d recommended, running total %d of %d",
            result.total_cards,
            result.cards_done,
            len(result.recommended),
            result.running_total,
            self.quota,
        )
        return result
