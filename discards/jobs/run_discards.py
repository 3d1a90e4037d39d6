"""
Daily discard job.

Resets the card ledger, runs the convert cycle, converts a single card, audits
the discard location or just reports card status. Meant to be run once a day
from a scheduler, or by hand for a single card.

Exit codes follow the error taxonomy: 0 on success, otherwise the
`exit_code` of the `KnownError` that stopped the run.
"""

import argparse
import logging
from collections.abc import Sequence
from datetime import date

from discards.catalog.base import CatalogQueryAdapter
from discards.catalog.http import HttpCatalog
from discards.config import Settings, get_settings
from discards.models.card import CardHealth
from discards.models.failure import InvalidInputError, KnownError
from discards.models.summary import RunSummary
from discards.services.ledger import CardLedger
from discards.services.orchestrator import ConversionOrchestrator
from discards.services.reports import build_status_report
from discards.services.transactions import RequestFileSink, TransactionSink

logger = logging.getLogger(__name__)

REPORT_FLAGS: dict[str, CardHealth] = {
    "over_quota": CardHealth.OVERLOADED,
    "misnamed": CardHealth.MISNAMED,
    "barred": CardHealth.BARRED,
    "recommended": CardHealth.RECOMMEND,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="discards",
        description="Convert discard cards: select staged items for removal and track progress.",
    )
    operation = parser.add_mutually_exclusive_group()
    operation.add_argument(
        "--reset",
        action="store_true",
        help="Rebuild the card ledger from the catalog (DESTRUCTIVE)",
    )
    operation.add_argument(
        "--convert",
        action="store_true",
        help="Run the convert cycle for today's quota",
    )
    operation.add_argument(
        "--card",
        metavar="KEY",
        help="Convert every item on one card, ignoring the quota",
    )
    operation.add_argument(
        "--audit",
        action="store_true",
        help="Classify every item at the discard location and refresh the exception lists",
    )
    parser.add_argument(
        "--branch",
        metavar="CODE",
        help="Only recommend cards whose id starts with this branch code",
    )
    parser.add_argument(
        "-n",
        "--quota",
        type=int,
        help="Number of items to convert (default: configured target)",
    )
    parser.add_argument("--over-quota", action="store_true", help="List cards over the quota")
    parser.add_argument("--misnamed", action="store_true", help="List cards with an incorrect profile")
    parser.add_argument("--barred", action="store_true", help="List BARRED cards")
    parser.add_argument("--recommended", action="store_true", help="List recommended cards")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    return parser


def operation_name(args: argparse.Namespace) -> str:
    if args.reset:
        return "reset"
    if args.card is not None:
        return "card"
    if args.convert:
        return "convert"
    if args.audit:
        return "audit"
    return "scan"


def validate_args(args: argparse.Namespace, settings: Settings) -> None:
    """
    Reject arguments no operation can use.

    Raises:
        InvalidInputError: On a blank card key, non-positive quota or bad branch code
    """
    if args.card is not None and not args.card.strip():
        raise InvalidInputError("Card key must not be blank")
    if args.quota is not None and args.quota <= 0:
        raise InvalidInputError("Quota must be a positive number of items", detail=f"got {args.quota}")
    if args.branch is not None and len(args.branch) != settings.branch_code_length:
        raise InvalidInputError(
            f"Branch code must be {settings.branch_code_length} characters",
            detail=f"got {args.branch!r}",
        )


def run(
    args: argparse.Namespace,
    settings: Settings,
    catalog: CatalogQueryAdapter,
    sink: TransactionSink | None = None,
    today: date | None = None,
) -> RunSummary:
    """
    Run the selected operation.

    Args:
        args: Parsed command line
        settings: Run configuration
        catalog: Catalog query adapter
        sink: Transaction sink (defaults to the request file in the work directory)
        today: Run date (defaults to the local date)

    Returns:
        RunSummary for the operation

    Raises:
        KnownError: If the operation cannot complete
    """
    validate_args(args, settings)

    orchestrator = ConversionOrchestrator(
        settings,
        CardLedger.from_settings(settings),
        catalog,
        sink or RequestFileSink.from_settings(settings),
        today=today,
    )
    operation = operation_name(args)
    summary = RunSummary(operation=operation, run_date=orchestrator.run_date)
    detail = [flag for name, flag in REPORT_FLAGS.items() if getattr(args, name)]

    if operation == "reset":
        cards = orchestrator.reset_ledger()
        logger.info("Ledger reset with %d cards", len(cards))
        summary.report = f"{len(cards)} cards listed in {orchestrator.ledger.path}"
        return summary

    if operation == "card":
        conversion = orchestrator.convert_card(args.card.strip())
        summary.items_converted = conversion.converted
        summary.cards_converted = {conversion.patron_key: conversion.converted}
        summary.predicate_failures = dict(conversion.failed_checks)
        summary.report = f"{conversion.converted} items waiting for remove."
        return summary

    if operation == "audit":
        audit = orchestrator.audit_location()
        summary.predicate_failures = dict(audit.failed_checks)
        lines = [f"{audit.items} items at {audit.location}"]
        lines.extend(f"{name}: {count}" for name, count in audit.preserved.items())
        summary.report = "\n".join(lines)
        return summary

    if operation == "convert":
        report = orchestrator.run_cycle(quota=args.quota, branch=args.branch)
        converted = report.to_summary(orchestrator.run_date)
        if report.scan is not None:
            cards = orchestrator.ledger.read_all()
            converted.report = build_status_report(report.scan, cards, report.items_converted).render(detail)
        return converted

    cards, scan = orchestrator.scan_only(quota=args.quota, branch=args.branch)
    summary.report = build_status_report(scan, cards).render(detail)
    return summary


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point for the discard job."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.debug or settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        with HttpCatalog(settings.catalog_url, timeout=settings.catalog_timeout) as catalog:
            summary = run(args, settings, catalog)
    except KnownError as e:
        failure = e.to_detail()
        logger.error(
            "RUN_FAILED",
            extra={
                "kind": failure.kind.value,
                "failure_message": failure.message,
                "detail": failure.detail,
                "suggestion": failure.suggestion,
            },
        )
        summary = RunSummary(
            operation=operation_name(args),
            run_date=date.today().strftime("%Y%m%d"),
            failures=[failure],
        )
        print(summary.model_dump_json(indent=2))
        return e.exit_code

    if summary.report:
        print(summary.report)
    if summary.has_predicate_failures:
        logger.error("Predicate queries failed this run: %s", summary.predicate_failures)
    print(summary.model_dump_json(indent=2, exclude={"report"}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
