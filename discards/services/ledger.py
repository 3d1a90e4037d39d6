"""
Card Ledger — file-backed table of discard cards.

The ledger is a pipe-delimited file, one card per line:

    id|patronKey|description|dateCreated|dateLastUsed|itemCount|holdsCount|billsCount|status|dateConverted|convertedTotal|

Parsing happens only when the file is loaded and serialisation only when it is
saved; in between cards are handled as `DiscardCard` records keyed by id.
Writes replace the file atomically so a crash never leaves a truncated ledger.
"""

import logging
import os
import shutil
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path

from discards.catalog.base import CatalogQueryAdapter
from discards.config import ARCHIVE_DIRNAME, LEDGER_FILENAME, Settings
from discards.models.card import DiscardCard
from discards.models.failure import PersistenceError

logger = logging.getLogger(__name__)


def write_lines_atomic(path: Path, lines: Iterable[str]) -> None:
    """
    Replace `path` with `lines` via a temporary file and rename.

    Raises:
        PersistenceError: If the file cannot be written
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
                for line in lines:
                    handle.write(f"{line}\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise PersistenceError(str(path), detail=str(e)) from e


class CardLedger:
    """
    Durable record of every discard card and its conversion state.

    Args:
        path: Ledger file location
        excluded_id_markers: Id substrings dropped when the ledger is reset
    """

    def __init__(self, path: Path, excluded_id_markers: Iterable[str] = ()) -> None:
        self.path = path
        self.excluded_id_markers = tuple(excluded_id_markers)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CardLedger":
        return cls(
            settings.work_dir / LEDGER_FILENAME,
            excluded_id_markers=settings.reset_excluded_id_markers,
        )

    def exists(self) -> bool:
        """Check if a non-empty ledger file is present."""
        return self.path.is_file() and self.path.stat().st_size > 0

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def read_all(self) -> list[DiscardCard]:
        """
        Load every card, sorted by id.

        The order is part of the contract: quota accumulation picks cards in
        this order on every run.

        Raises:
            PersistenceError: If the file is missing, unreadable or malformed
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(str(self.path), detail=str(e)) from e

        cards: list[DiscardCard] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                cards.append(DiscardCard.from_record(line))
            except ValueError as e:
                raise PersistenceError(str(self.path), detail=f"line {line_number}: {e}") from e

        logger.debug("Read %d cards from %s", len(cards), self.path)
        return sorted(cards, key=lambda card: card.id)

    def read_keyed(self) -> dict[str, DiscardCard]:
        """Load every card keyed by patron key, in ledger order."""
        return {card.patron_key: card for card in self.read_all()}

    def write_all(self, cards: Iterable[DiscardCard]) -> None:
        """
        Atomically replace the ledger with `cards`, sorted by id.

        Raises:
            PersistenceError: If the file cannot be written
        """
        ordered = sorted(cards, key=lambda card: card.id)
        write_lines_atomic(self.path, (card.to_record() for card in ordered))
        logger.debug("Wrote %d cards to %s", len(ordered), self.path)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def is_excluded(self, card_id: str) -> bool:
        return any(marker in card_id for marker in self.excluded_id_markers)

    def reset(self, catalog: CatalogQueryAdapter) -> list[DiscardCard]:
        """
        Rebuild the ledger from the catalog's discard-profile report.

        DESTRUCTIVE: any existing ledger is replaced. Every card starts
        unconverted with a zero total.

        Raises:
            CatalogUnavailableError: If the report cannot be fetched
            PersistenceError: If the report is malformed or the file cannot be written
        """
        cards: list[DiscardCard] = []
        for line in catalog.discard_profile_cards():
            if not line.strip():
                continue
            try:
                card = DiscardCard.from_profile_record(line)
            except ValueError as e:
                raise PersistenceError("discard profile report", detail=str(e)) from e
            if self.is_excluded(card.id):
                logger.info("Excluding card %s from ledger", card.id)
                continue
            cards.append(card)

        self.write_all(cards)
        logger.info(
            "LEDGER_RESET",
            extra={"path": str(self.path), "cards": len(cards)},
        )
        return sorted(cards, key=lambda card: card.id)

    def apply_conversion_results(self, results: Mapping[str, int], today: str) -> list[DiscardCard]:
        """
        Close converted cards and add their counts to the running totals.

        A card listed with a count of zero is still closed. Cards not in
        `results` are left untouched.

        Args:
            results: Patron key to number of items converted
            today: Conversion date as yyyymmdd

        Returns:
            The updated card list
        """
        updated = [
            card.converted(today, results[card.patron_key]) if card.patron_key in results else card
            for card in self.read_all()
        ]
        self.write_all(updated)
        return updated

    def close_cards(self, patron_keys: Iterable[str], today: str) -> list[DiscardCard]:
        """Stamp a conversion date on cards without changing their totals."""
        keys = set(patron_keys)
        if not keys:
            return self.read_all()
        updated = [
            card.closed(today) if card.patron_key in keys and not card.is_converted else card
            for card in self.read_all()
        ]
        self.write_all(updated)
        return updated

    def archive(self, today: str) -> Path:
        """
        Copy the current ledger into the archive directory.

        Returns:
            Path of the archived copy

        Raises:
            PersistenceError: If the copy fails
        """
        archive_path = self.path.parent / ARCHIVE_DIRNAME / f"{self.path.stem}_{today}{self.path.suffix}"
        try:
            archive_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.path, archive_path)
        except OSError as e:
            raise PersistenceError(str(archive_path), detail=str(e)) from e
        logger.info("Archived ledger to %s", archive_path)
        return archive_path
