from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Discard job settings loaded from environment.

    Built once per process by `get_settings()` and handed to every component
    constructor. Frozen so no component can change a value mid-run.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="DISCARDS_", frozen=True)

    app_name: str = "Discards"
    debug: bool = False

    # Directory holding the ledger, exception lists, request file and lock
    work_dir: Path = Path("Discards")

    # Daily quota and the overshoot tolerated before a card is reported over-quota
    target_item_count: int = 2000
    quota_fudge: float = 0.10

    # Only items charged to a card before today minus this many days are converted
    charge_retention_days: int = 90

    # Card naming conventions
    discard_marker: str = "DISCARD"
    misassigned_id_patterns: tuple[str, ...] = (r"^\d+$",)
    reset_excluded_id_markers: tuple[str, ...] = ("UNCAT", "WEED", "WITHDRAW", "LEGACY")
    branch_code_length: int = 3

    # Locations
    discard_location: str = "DISCARD"
    non_viable_locations: frozenset[str] = Field(default=frozenset({"DISCARD"}), validate_default=True)

    # Catalog gateway
    catalog_url: str = "http://localhost:8080/catalog"
    catalog_timeout: float = 30.0

    # When True a failed predicate query marks every candidate with that
    # check's bit instead of matching nothing.
    fail_closed_predicates: bool = False

    # Upper bound on convert passes per cycle
    max_passes: int = 50

    @field_validator("non_viable_locations")
    @classmethod
    def _include_discard_location(cls, locations: frozenset[str], info: ValidationInfo) -> frozenset[str]:
        """A copy already staged for discard can never keep a title on the shelf."""
        return locations | {info.data.get("discard_location", "DISCARD")}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()


# =============================================================================
# WORK DIRECTORY LAYOUT
# =============================================================================

LEDGER_FILENAME = "finished_discards.txt"
REQUEST_FILENAME = "DISCARD_TXRQ.cmd"
LOCK_FILENAME = "discards.lock"
ARCHIVE_DIRNAME = "archive"
