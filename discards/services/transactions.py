"""
Transaction Sink — hand-off of approved items for discharge and relocation.

The sink only records which items are cleared for discard; building the
vendor transaction script from the request file is done downstream.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from discards.config import REQUEST_FILENAME, Settings
from discards.models.failure import PersistenceError
from discards.models.item import ItemKey

logger = logging.getLogger(__name__)


class TransactionSink(ABC):
    """Receives item keys confirmed for discard."""

    @abstractmethod
    def submit(self, items: Iterable[ItemKey]) -> int:
        """Queue items for discharge and relocation. Returns the number queued."""

    @abstractmethod
    def clear(self) -> None:
        """Drop any pending, unprocessed request left by an earlier run."""


class RequestFileSink(TransactionSink):
    """
    Writes the pending transaction request file, one canonical key per line.

    The file is truncated by `clear()` at the start of every cycle and only
    appended to within that cycle, so a request from a crashed run is never
    submitted twice.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def from_settings(cls, settings: Settings) -> "RequestFileSink":
        return cls(settings.work_dir / REQUEST_FILENAME)

    def submit(self, items: Iterable[ItemKey]) -> int:
        ordered = sorted(set(items))
        if not ordered:
            return 0
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8", newline="\n") as handle:
                for key in ordered:
                    handle.write(f"{key}\n")
        except OSError as e:
            raise PersistenceError(str(self.path), detail=str(e)) from e
        logger.debug("Queued %d items in %s", len(ordered), self.path)
        return len(ordered)

    def clear(self) -> None:
        try:
            if self.path.exists() and self.path.stat().st_size > 0:
                logger.warning("Removing stale transaction request %s", self.path)
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(str(self.path), detail=str(e)) from e

    def pending(self) -> list[ItemKey]:
        """Keys currently queued in the request file."""
        if not self.path.exists():
            return []
        return [ItemKey.parse(line) for line in self.path.read_text(encoding="utf-8").splitlines() if line.strip()]


class MemoryTransactionSink(TransactionSink):
    """Sink that keeps submissions in memory."""

    def __init__(self) -> None:
        self.batches: list[list[ItemKey]] = []
        self.clear_count = 0

    def submit(self, items: Iterable[ItemKey]) -> int:
        batch = sorted(set(items))
        if batch:
            self.batches.append(batch)
        return len(batch)

    def clear(self) -> None:
        self.batches.clear()
        self.clear_count += 1

    @property
    def submitted(self) -> list[ItemKey]:
        return [key for batch in self.batches for key in batch]
