"""Operator status reports over a ledger scan."""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from discards.models.card import CardHealth, DiscardCard
from discards.services.scanner import ScanResult

SECTION_TITLES: dict[CardHealth, str] = {
    CardHealth.OVERLOADED: "Over quota cards:",
    CardHealth.MISNAMED: "Incorrect profile of DISCARD:",
    CardHealth.BARRED: "BARRED cards:",
    CardHealth.RECOMMEND: "Recommended cards:",
}


@dataclass
class CardStatusReport:
    """Card ids grouped by health flag, plus cycle progress."""

    sections: dict[CardHealth, list[str]] = field(default_factory=dict)
    cards_done: int = 0
    total_cards: int = 0
    items_waiting: int = 0

    @property
    def percent_done(self) -> int:
        """Share of cards converted this cycle, rounded up."""
        if self.total_cards == 0:
            return 100
        return math.ceil(self.cards_done / self.total_cards * 100)

    def count(self, flag: CardHealth) -> int:
        return len(self.sections.get(flag, []))

    def render(self, detail: Iterable[CardHealth] = ()) -> str:
        """
        Render the report as text.

        Args:
            detail: Flags whose card ids are listed in full
        """
        lines: list[str] = []
        for flag in detail:
            lines.append("")
            lines.append(SECTION_TITLES[flag])
            lines.append("-" * 37)
            lines.extend(self.sections.get(flag, []))

        lines.append("")
        lines.append("Discard status:")
        lines.append(f"Over quota cards: {self.count(CardHealth.OVERLOADED)}")
        lines.append(f"Incorrect profile of DISCARD: {self.count(CardHealth.MISNAMED)}")
        lines.append(f"BARRED cards: {self.count(CardHealth.BARRED)}")
        lines.append(
            f"{self.cards_done} of {self.total_cards} cards converted to date ({self.percent_done}%)"
        )
        lines.append(f"{self.items_waiting} items waiting for remove.")
        return "\n".join(lines).lstrip("\n")


def build_status_report(
    scan: ScanResult,
    cards: Sequence[DiscardCard],
    items_waiting: int = 0,
) -> CardStatusReport:
    """
    Group card ids by health flag.

    Args:
        scan: Result of the latest ledger scan
        cards: Ledger cards, used to show ids rather than patron keys
        items_waiting: Items handed to the transaction sink this run
    """
    ids = {card.patron_key: card.id for card in cards}
    sections = {
        flag: [ids.get(key, key) for key in scan.with_flag(flag)]
        for flag in SECTION_TITLES
    }
    return CardStatusReport(
        sections=sections,
        cards_done=scan.cards_done,
        total_cards=scan.total_cards,
        items_waiting=items_waiting,
    )
