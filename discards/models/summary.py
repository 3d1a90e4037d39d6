"""End-of-run diagnostic summary written by the discard job."""

from pydantic import BaseModel, Field

from discards.models.failure import FailureDetail


class RunSummary(BaseModel):
    """
    Outcome of one invocation of the discard job.

    Predicate failures are listed even when the run otherwise succeeded:
    each one means a disqualification check was skipped for some items.
    """

    operation: str = Field(..., description="reset, scan, convert, card or audit")
    run_date: str = Field(..., description="Run date as yyyymmdd")
    cycle_state: str | None = Field(default=None, description="Terminal orchestrator state")
    passes: int = 0
    items_converted: int = 0
    cards_converted: dict[str, int] = Field(default_factory=dict)
    cards_skipped: list[str] = Field(default_factory=list)
    predicate_failures: dict[str, int] = Field(default_factory=dict)
    failures: list[FailureDetail] = Field(default_factory=list)
    report: str | None = None

    @property
    def has_predicate_failures(self) -> bool:
        return any(self.predicate_failures.values())
