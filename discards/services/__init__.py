"""
Discards services.

Ledger persistence, classification, quota scanning and the convert cycle.
"""

from discards.services.classifier import Check, ClassificationResult, ItemClassifier
from discards.services.ledger import CardLedger, write_lines_atomic
from discards.services.orchestrator import (
    CardConversion,
    ConversionOrchestrator,
    CycleReport,
    CycleState,
    LocationAudit,
    next_state,
)
from discards.services.policy_lists import PolicyListStore
from discards.services.reports import CardStatusReport, build_status_report
from discards.services.run_lock import run_lock
from discards.services.scanner import QuotaScanner, ScanResult
from discards.services.transactions import (
    MemoryTransactionSink,
    RequestFileSink,
    TransactionSink,
)

__all__ = [
    # Classification
    "Check",
    "ClassificationResult",
    "ItemClassifier",
    # Ledger
    "CardLedger",
    "write_lines_atomic",
    # Convert cycle
    "CardConversion",
    "ConversionOrchestrator",
    "CycleReport",
    "CycleState",
    "LocationAudit",
    "next_state",
    "run_lock",
    # Scanning and reports
    "CardStatusReport",
    "QuotaScanner",
    "ScanResult",
    "build_status_report",
    # Outputs
    "MemoryTransactionSink",
    "PolicyListStore",
    "RequestFileSink",
    "TransactionSink",
]
