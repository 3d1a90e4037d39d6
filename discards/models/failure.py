"""
Failure Classification — Known Failures of a Discard Run.

Every failure the job can explain is raised as a `KnownError` subclass
carrying a `FailureKind` and the process exit code the job returns for it.

Severity:
- PersistenceError: FATAL. The ledger cannot be trusted, the run aborts.
- ConcurrentRunError: FATAL. Another run holds the work directory.
- CatalogUnavailableError: FATAL for a ledger reset, per-card skip during
  conversion.
- PredicateQueryError: RECOVERED inline by the classifier, counted and
  summarised at the end of the run.

Logical conditions (misnamed card, quota exhausted, zero progress) are never
raised. They are resolved by the scanner and the orchestrator.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Operator input
    INVALID_INPUT = "invalid_input"

    # Local state
    PERSISTENCE = "persistence"
    CONCURRENT_RUN = "concurrent_run"

    # Catalog failures
    CATALOG_UNAVAILABLE = "catalog_unavailable"
    PREDICATE_QUERY = "predicate_query"

    # Unknown
    UNKNOWN = "unknown"


class FailureDetail(BaseModel):
    """Detailed information about a failure, as written to the run summary."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="Operator-facing explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the operator",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        exit_code: int = 1,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.exit_code = exit_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class InvalidInputError(KnownError):
    """Operator supplied an unusable argument."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message=message,
            detail=detail,
            suggestion="Run with --help for usage.",
            exit_code=1,
        )


class PersistenceError(KnownError):
    """
    The card ledger (or another work file) could not be read or written.

    This error is FINAL. No partial ledger state is left behind because the
    ledger is only ever replaced atomically.
    """

    def __init__(self, path: str, detail: str | None = None):
        self.path = path
        super().__init__(
            kind=FailureKind.PERSISTENCE,
            message=f"Unable to read or write '{path}'",
            detail=detail,
            suggestion="Check the work directory permissions, or recreate the ledger with --reset.",
            exit_code=2,
        )


class ConcurrentRunError(KnownError):
    """Another discard run already holds the work directory lock."""

    def __init__(self, lock_path: str):
        self.lock_path = lock_path
        super().__init__(
            kind=FailureKind.CONCURRENT_RUN,
            message="Another discard run is in progress",
            detail=f"lock held: {lock_path}",
            suggestion="Wait for the other run to finish. Only one run may use a ledger at a time.",
            exit_code=3,
        )


class CatalogUnavailableError(KnownError):
    """A catalog query the run cannot do without has failed."""

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        super().__init__(
            kind=FailureKind.CATALOG_UNAVAILABLE,
            message=f"Catalog query failed: {operation}",
            detail=detail,
            suggestion="Check the catalog gateway and rerun. No items were submitted for this query.",
            exit_code=4,
        )


class PredicateQueryError(KnownError):
    """
    One of the classification queries failed (error or timeout).

    The classifier recovers from this per check. It is still an error: with
    fail-open handling an unreachable bills query lets billed items through.
    """

    def __init__(self, check: str, detail: str | None = None):
        self.check = check
        super().__init__(
            kind=FailureKind.PREDICATE_QUERY,
            message=f"Classification query failed: {check}",
            detail=detail,
            suggestion="Review the exception lists for this run before removing items.",
            exit_code=4,
        )
