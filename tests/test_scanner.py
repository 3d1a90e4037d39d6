"""
Tests for the quota scanner.

INVARIANTS:
- Running total never exceeds the pre-fudge quota
- Misnamed and zero-item cards are force-closed without using quota
- BARRED never blocks a recommendation
- Scanning the same ledger twice gives the same result
"""

from collections.abc import Callable

import pytest

from discards.config import Settings
from discards.models.card import CardHealth, DiscardCard
from discards.services.scanner import QuotaScanner

MakeCard = Callable[..., DiscardCard]


@pytest.fixture
def scanner() -> QuotaScanner:
    return QuotaScanner(quota=2000, fudge=0.10, misassigned_id_patterns=[r"^\d+$"])


class TestDailyScenario:
    def test_quota_scenario(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        """A fits, B would overshoot, C is barred but still fits."""
        cards = [
            make_card("WOO-DISCARD1", patron_key="A", item_count=1500),
            make_card("WOO-DISCARD2", patron_key="B", item_count=600),
            make_card("WOO-DISCARD3", patron_key="C", item_count=50, status="BARRED"),
        ]

        result = scanner.scan(cards)

        assert result.health["A"] & CardHealth.RECOMMEND
        assert not result.health["B"] & CardHealth.RECOMMEND
        assert not result.health["B"] & CardHealth.OVERLOADED
        assert result.health["C"] & CardHealth.BARRED
        assert result.health["C"] & CardHealth.RECOMMEND
        assert result.running_total == 1550
        assert result.recommended == ["A", "C"]


class TestAssess:
    def test_overloaded_above_fudged_threshold(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        assert scanner.assess(make_card("WOO-DISCARD", item_count=2201)) & CardHealth.OVERLOADED
        assert not scanner.assess(make_card("WOO-DISCARD", item_count=2200)) & CardHealth.OVERLOADED

    def test_healthy_card_is_ok(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        assert scanner.assess(make_card("WOO-DISCARD")) == CardHealth.OK

    def test_numeric_id_is_misnamed(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        """A personal account given the discard profile by mistake."""
        assert scanner.is_misnamed(make_card("21221012345678"))

    def test_missing_marker_is_misnamed(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        assert scanner.is_misnamed(make_card("WOO-BOOKS", description="Woodlands books"))

    def test_marker_in_description_is_enough(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        assert not scanner.is_misnamed(make_card("WOO-BOOKS", description="DISCARD books"))


class TestForceClose:
    def test_misnamed_card_closed_without_quota(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        cards = [make_card("WOO-BOOKS", patron_key="m", description="books", item_count=30)]

        result = scanner.scan(cards)

        assert result.health["m"] & CardHealth.MISNAMED
        assert result.health["m"] & CardHealth.CONVERTED
        assert not result.health["m"] & CardHealth.RECOMMEND
        assert result.closures == ["m"]
        assert result.running_total == 0
        assert result.cards_done == 1

    def test_zero_item_card_closed(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        result = scanner.scan([make_card("WOO-DISCARD", patron_key="z", item_count=0)])

        assert result.health["z"] & CardHealth.CONVERTED
        assert result.closures == ["z"]

    def test_converted_card_is_not_a_closure(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        card = make_card("WOO-DISCARD", patron_key="c", item_count=0, date_converted="20240101")

        result = scanner.scan([card])

        assert result.health["c"] & CardHealth.CONVERTED
        assert result.closures == []
        assert result.all_converted


class TestQuota:
    @pytest.mark.parametrize("quota", [0, 1, 10, 25, 40, 100])
    def test_running_total_never_exceeds_quota(self, make_card: MakeCard, quota: int) -> None:
        cards = [make_card(f"WOO-DISCARD{i:02d}", item_count=count) for i, count in enumerate([7, 13, 1, 20, 5, 9])]

        result = QuotaScanner(quota=quota).scan(cards)

        assert result.running_total <= quota

    def test_baseline_counts_toward_quota(self, make_card: MakeCard) -> None:
        cards = [make_card("WOO-DISCARD", patron_key="a", item_count=10)]

        result = QuotaScanner(quota=100).scan(cards, running_total=95)

        assert result.recommended == []
        assert result.running_total == 95

    def test_later_smaller_cards_fill_remaining_quota(self, make_card: MakeCard) -> None:
        cards = [
            make_card("A-DISCARD", patron_key="a", item_count=60),
            make_card("B-DISCARD", patron_key="b", item_count=50),
            make_card("C-DISCARD", patron_key="c", item_count=40),
        ]

        result = QuotaScanner(quota=100).scan(cards)

        assert result.recommended == ["a", "c"]

    def test_excluded_cards_hold_no_quota(self, make_card: MakeCard) -> None:
        cards = [
            make_card("A-DISCARD", patron_key="a", item_count=60),
            make_card("B-DISCARD", patron_key="b", item_count=30),
            make_card("C-DISCARD", patron_key="c", item_count=40),
        ]

        result = QuotaScanner(quota=100).scan(cards, exclude={"a"})

        assert result.recommended == ["b", "c"]
        assert result.running_total == 70
        assert not result.health["a"] & CardHealth.RECOMMEND
        assert result.cards_done == 0

    def test_excluded_cards_are_still_force_closed(self, make_card: MakeCard) -> None:
        cards = [make_card("A-DISCARD", patron_key="a", item_count=0)]

        result = QuotaScanner(quota=100).scan(cards, exclude={"a"})

        assert result.closures == ["a"]

    def test_negative_quota_rejected(self) -> None:
        with pytest.raises(ValueError):
            QuotaScanner(quota=-1)

    def test_from_settings_override(self) -> None:
        scanner = QuotaScanner.from_settings(Settings(), quota=50)

        assert scanner.quota == 50
        assert scanner.overload_threshold == pytest.approx(55.0)


class TestBranchFilter:
    def test_only_branch_cards_recommended(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        cards = [
            make_card("EPL-DISCARD", patron_key="e"),
            make_card("WOO-DISCARD", patron_key="w"),
        ]

        result = scanner.scan(cards, branch="WOO")

        assert result.recommended == ["w"]

    def test_branch_filter_does_not_stop_force_close(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        cards = [make_card("EPL-DISCARD", patron_key="e", item_count=0)]

        result = scanner.scan(cards, branch="WOO")

        assert result.closures == ["e"]


class TestDeterminism:
    def test_rescan_is_idempotent(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        cards = [
            make_card("WOO-DISCARD1", patron_key="a", item_count=900),
            make_card("WOO-DISCARD2", patron_key="b", item_count=900),
            make_card("WOO-DISCARD3", patron_key="c", item_count=900),
            make_card("12345", patron_key="d"),
        ]

        assert scanner.scan(cards) == scanner.scan(cards)

    def test_with_flag_keeps_ledger_order(self, scanner: QuotaScanner, make_card: MakeCard) -> None:
        cards = [
            make_card("A-DISCARD", patron_key="a", status="BARRED"),
            make_card("B-DISCARD", patron_key="b"),
            make_card("C-DISCARD", patron_key="c", status="BARRED"),
        ]

        assert scanner.scan(cards).with_flag(CardHealth.BARRED) == ["a", "c"]
