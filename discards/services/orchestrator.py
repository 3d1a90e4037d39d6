"""
Conversion Orchestrator — the daily convert cycle.

Drives the classifier over every recommended card, hands clean items to the
transaction sink, commits results to the ledger and re-scans before deciding
whether to run another pass.

STATE MACHINE:
    RUNNING -> PROGRESSED -> ... -> DONE | STALLED

- DONE: every card in the ledger is converted
- STALLED: a pass converted nothing (remaining recommended cards are fully
  disqualified, the quota is used up, or the pass limit was hit)
- PROGRESSED: a pass converted items and cards remain; run another pass

INVARIANTS:
- The pending request is cleared before any transactional work
- An item is handed to the sink at most once per cycle
- Results are committed to the ledger after every pass, so a crash on the
  next pass loses at most that pass
- The whole cycle runs under the work directory lock
- A card skipped because its charges could not be read is left out of every
  later scan in the cycle, so its items never hold quota
"""

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from pathlib import Path

from discards.catalog.base import CatalogQueryAdapter
from discards.config import LOCK_FILENAME, Settings
from discards.models.card import DiscardCard
from discards.models.failure import CatalogUnavailableError
from discards.models.item import ItemKey
from discards.models.policy import DEFAULT_PRESERVE_POLICIES, Policy, bucket_items, discardable_items
from discards.models.summary import RunSummary
from discards.services.classifier import ItemClassifier
from discards.services.ledger import CardLedger
from discards.services.policy_lists import PolicyListStore
from discards.services.run_lock import run_lock
from discards.services.scanner import QuotaScanner, ScanResult
from discards.services.transactions import TransactionSink

logger = logging.getLogger(__name__)


class CycleState(str, Enum):
    """Orchestrator states."""

    RUNNING = "running"
    PROGRESSED = "progressed"
    DONE = "done"
    STALLED = "stalled"

    @property
    def is_terminal(self) -> bool:
        return self in (CycleState.DONE, CycleState.STALLED)


@dataclass
class CardConversion:
    """What happened to one card's items."""

    patron_key: str
    candidates: int = 0
    converted: int = 0
    preserved: dict[str, int] = field(default_factory=dict)
    failed_checks: Counter[str] = field(default_factory=Counter)


@dataclass
class LocationAudit:
    """Classification of every item sitting in one location."""

    location: str
    items: int = 0
    preserved: dict[str, int] = field(default_factory=dict)
    failed_checks: Counter[str] = field(default_factory=Counter)


@dataclass
class CycleReport:
    """Outcome of one convert cycle."""

    state: CycleState = CycleState.RUNNING
    stop_reason: str = ""
    passes: int = 0
    items_converted: int = 0
    rolled_over: bool = False
    cards_converted: dict[str, int] = field(default_factory=dict)
    cards_skipped: list[str] = field(default_factory=list)
    predicate_failures: Counter[str] = field(default_factory=Counter)
    scan: ScanResult | None = None

    def to_summary(self, run_date: str) -> RunSummary:
        return RunSummary(
            operation="convert",
            run_date=run_date,
            cycle_state=self.state.value,
            passes=self.passes,
            items_converted=self.items_converted,
            cards_converted=dict(self.cards_converted),
            cards_skipped=list(self.cards_skipped),
            predicate_failures=dict(self.predicate_failures),
        )


def next_state(scan: ScanResult, converted_this_pass: int) -> CycleState:
    """Transition taken after a pass has been committed and re-scanned."""
    if scan.all_converted:
        return CycleState.DONE
    if converted_this_pass == 0:
        return CycleState.STALLED
    return CycleState.PROGRESSED


class ConversionOrchestrator:
    """
    Runs discard operations against one work directory.

    Args:
        settings: Run configuration
        ledger: Card ledger
        catalog: Catalog query adapter
        sink: Transaction sink for cleared items
        policy_lists: Exception list store (defaults to the work directory)
        policies: Preserve policies, in reporting order
        today: Run date (defaults to the local date)
    """

    def __init__(
        self,
        settings: Settings,
        ledger: CardLedger,
        catalog: CatalogQueryAdapter,
        sink: TransactionSink,
        policy_lists: PolicyListStore | None = None,
        policies: Sequence[Policy] = DEFAULT_PRESERVE_POLICIES,
        today: date | None = None,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self.catalog = catalog
        self.sink = sink
        self.policy_lists = policy_lists or PolicyListStore(settings.work_dir)
        self.policies = tuple(policies)
        self.today = today or date.today()
        self.classifier = ItemClassifier.from_settings(catalog, settings)

    @property
    def run_date(self) -> str:
        """Today as yyyymmdd, the form stamped into the ledger."""
        return self.today.strftime("%Y%m%d")

    @property
    def charge_cutoff(self) -> date:
        """Only items charged before this date are converted."""
        return self.today - timedelta(days=self.settings.charge_retention_days)

    @property
    def lock_path(self) -> Path:
        return self.settings.work_dir / LOCK_FILENAME

    # =========================================================================
    # LEDGER PREPARATION
    # =========================================================================

    def reset_ledger(self) -> list[DiscardCard]:
        """Rebuild the ledger from the catalog under the run lock."""
        with run_lock(self.lock_path):
            return self.ledger.reset(self.catalog)

    def _load_cards(self, report: CycleReport) -> list[DiscardCard]:
        """Load the ledger, creating it if missing and rolling it over if complete."""
        if not self.ledger.exists():
            logger.info("No ledger at %s, creating one", self.ledger.path)
            return self.ledger.reset(self.catalog)

        cards = self.ledger.read_all()
        if cards and all(card.is_converted for card in cards):
            archived = self.ledger.archive(self.run_date)
            logger.info(
                "CYCLE_COMPLETE",
                extra={"cards": len(cards), "archive": str(archived)},
            )
            report.rolled_over = True
            return self.ledger.reset(self.catalog)
        return cards

    def _commit_closures(self, scan: ScanResult, cards: list[DiscardCard]) -> list[DiscardCard]:
        """Stamp force-closed cards so later scans see them as converted."""
        if not scan.closures:
            return cards
        return self.ledger.close_cards(scan.closures, self.run_date)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def scan_only(self, quota: int | None = None, branch: str | None = None) -> tuple[list[DiscardCard], ScanResult]:
        """
        Dry pass: scan the ledger and report, writing nothing.

        Raises:
            PersistenceError: If the ledger is missing or unreadable
        """
        cards = self.ledger.read_all()
        scanner = QuotaScanner.from_settings(self.settings, quota)
        return cards, scanner.scan(cards, branch=branch)

    def run_cycle(self, quota: int | None = None, branch: str | None = None) -> CycleReport:
        """
        Convert recommended cards until the ledger is done or nothing moves.

        Args:
            quota: Item quota for today (defaults to the configured target)
            branch: Only recommend cards of this branch code

        Returns:
            CycleReport in a terminal state
        """
        with run_lock(self.lock_path):
            self.sink.clear()
            scanner = QuotaScanner.from_settings(self.settings, quota)
            report = CycleReport()

            cards = self._load_cards(report)
            scan = scanner.scan(cards, branch=branch)
            cards = self._commit_closures(scan, cards)

            submitted: set[ItemKey] = set()
            skipped: set[str] = set()

            while not report.state.is_terminal:
                if scan.all_converted:
                    report.state, report.stop_reason = CycleState.DONE, "all cards converted"
                    break
                if report.passes >= self.settings.max_passes:
                    report.state, report.stop_reason = CycleState.STALLED, "pass limit reached"
                    break
                recommended = scan.recommended
                if not recommended:
                    report.state, report.stop_reason = CycleState.STALLED, "nothing recommended"
                    break

                report.passes += 1
                results: dict[str, int] = {}
                for patron_key in recommended:
                    try:
                        conversion = self._convert(patron_key, submitted)
                    except CatalogUnavailableError as e:
                        skipped.add(patron_key)
                        report.cards_skipped.append(patron_key)
                        logger.error(
                            "CARD_SKIPPED",
                            extra={"patron_key": patron_key, "detail": e.detail},
                        )
                        continue
                    results[patron_key] = conversion.converted
                    report.predicate_failures.update(conversion.failed_checks)

                converted_this_pass = sum(results.values())
                report.items_converted += converted_this_pass
                report.cards_converted.update(results)
                if results:
                    cards = self.ledger.apply_conversion_results(results, self.run_date)

                scan = scanner.scan(cards, running_total=report.items_converted, branch=branch, exclude=skipped)
                cards = self._commit_closures(scan, cards)
                report.state = next_state(scan, converted_this_pass)
                logger.info(
                    "Pass %d converted %d items from %d cards (%s)",
                    report.passes,
                    converted_this_pass,
                    len(results),
                    report.state.value,
                )

            if report.state is CycleState.STALLED and not report.stop_reason:
                report.stop_reason = "pass converted nothing"
            if report.state is CycleState.STALLED:
                logger.warning(
                    "CYCLE_STALLED",
                    extra={"reason": report.stop_reason, "items_converted": report.items_converted},
                )
            if report.predicate_failures:
                logger.error(
                    "PREDICATE_FAILURES_THIS_RUN",
                    extra={"failures": dict(report.predicate_failures)},
                )

            report.scan = scan
            return report

    def convert_card(self, patron_key: str) -> CardConversion:
        """
        Convert one named card regardless of quota.

        The ledger is stamped only if the card is listed in it.
        """
        with run_lock(self.lock_path):
            self.sink.clear()
            conversion = self._convert(patron_key, set())
            if self.ledger.exists() and patron_key in self.ledger.read_keyed():
                self.ledger.apply_conversion_results({patron_key: conversion.converted}, self.run_date)
            logger.info("%d items discarded from card %s", conversion.converted, patron_key)
            return conversion

    def audit_location(self, location: str | None = None) -> LocationAudit:
        """
        Classify every item in the discard location and refresh the exception lists.

        Nothing is submitted to the sink.
        """
        location = location or self.settings.discard_location
        with run_lock(self.lock_path):
            items = self.catalog.items_at_location(location)
            result = self.classifier.classify(items)
            buckets = bucket_items(result.masks, self.policies)
            self.policy_lists.merge(buckets)
            return LocationAudit(
                location=location,
                items=len(result.masks),
                preserved={policy.list_name: len(keys) for policy, keys in buckets.items()},
                failed_checks=result.failed_checks,
            )

    # =========================================================================
    # PER-CARD CONVERSION
    # =========================================================================

    def _convert(self, patron_key: str, submitted: set[ItemKey]) -> CardConversion:
        """
        Classify a card's charges, record preserved items, submit the rest.

        Raises:
            CatalogUnavailableError: If the card's charges cannot be read
        """
        result = self.classifier.classify_card(patron_key, self.charge_cutoff)
        buckets = bucket_items(result.masks, self.policies)
        self.policy_lists.merge(buckets)

        clean = discardable_items(result.masks, self.policies) - submitted
        converted = self.sink.submit(clean)
        submitted.update(clean)

        return CardConversion(
            patron_key=patron_key,
            candidates=len(result.masks),
            converted=converted,
            preserved={policy.list_name: len(keys) for policy, keys in buckets.items()},
            failed_checks=result.failed_checks,
        )
