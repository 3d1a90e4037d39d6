from collections.abc import Callable
from datetime import date
from pathlib import Path

import pytest

from discards.catalog.memory import InMemoryCatalog
from discards.config import LEDGER_FILENAME, Settings
from discards.models.card import DiscardCard
from discards.services.ledger import CardLedger
from discards.services.transactions import MemoryTransactionSink

RUN_DATE = date(2024, 6, 3)


@pytest.fixture
def today() -> date:
    return RUN_DATE


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "Discards"


@pytest.fixture
def settings(work_dir: Path) -> Settings:
    """Settings isolated to a temporary work directory."""
    return Settings(work_dir=work_dir)


@pytest.fixture
def ledger(settings: Settings) -> CardLedger:
    return CardLedger.from_settings(settings)


@pytest.fixture
def ledger_path(work_dir: Path) -> Path:
    return work_dir / LEDGER_FILENAME


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog()


@pytest.fixture
def sink() -> MemoryTransactionSink:
    return MemoryTransactionSink()


@pytest.fixture
def make_card() -> Callable[..., DiscardCard]:
    """Factory for ledger cards with sensible defaults."""

    def _make(
        card_id: str,
        patron_key: str | None = None,
        item_count: int = 10,
        description: str = "DISCARD CARD",
        status: str = "OK",
        date_converted: str = "0",
        converted_total: int = 0,
    ) -> DiscardCard:
        return DiscardCard(
            id=card_id,
            patron_key=patron_key or f"{card_id}-key",
            description=description,
            date_created="20230101",
            date_last_used="20240101",
            item_count=item_count,
            holds_count=0,
            bills_count=0,
            status=status,
            date_converted=date_converted,
            converted_total=converted_total,
        )

    return _make
