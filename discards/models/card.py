from dataclasses import dataclass, replace
from enum import IntFlag

FIELD_DELIMITER = "|"
LEDGER_FIELD_COUNT = 11

# Written by a ledger reset; any all-zero date reads as "never converted".
NEVER_CONVERTED = "0"


class CardHealth(IntFlag):
    """
    Per-card condition flags derived by the quota scanner.

    Kept separate from ItemFlag so card and item bits cannot be mixed.
    """

    OK = 0x01
    OVERLOADED = 0x02
    BARRED = 0x04
    MISNAMED = 0x08
    RECOMMEND = 0x10
    CONVERTED = 0x20


@dataclass(frozen=True)
class DiscardCard:
    """
    One discard card as recorded in the ledger.

    Dates are opaque `yyyymmdd` strings; they are compared only against the
    never-converted sentinel and shown in reports.
    """

    id: str
    patron_key: str
    description: str
    date_created: str
    date_last_used: str
    item_count: int
    holds_count: int
    bills_count: int
    status: str
    date_converted: str = NEVER_CONVERTED
    converted_total: int = 0

    @property
    def is_converted(self) -> bool:
        """Check if the card is closed for the current cycle."""
        return not is_never(self.date_converted)

    @property
    def is_barred(self) -> bool:
        return "BARRED" in self.status

    def branch_code(self, length: int = 3) -> str:
        """Fixed-width id prefix naming the owning branch."""
        return self.id[:length]

    def converted(self, today: str, count: int) -> "DiscardCard":
        """Copy of this card closed today with `count` more items converted."""
        return replace(self, date_converted=today, converted_total=self.converted_total + count)

    def closed(self, today: str) -> "DiscardCard":
        """Copy of this card closed today without converting anything."""
        return replace(self, date_converted=today)

    def to_record(self) -> str:
        """Serialize as one ledger line (without newline), trailing delimiter included."""
        fields = [
            self.id,
            self.patron_key,
            self.description,
            self.date_created,
            self.date_last_used,
            str(self.item_count),
            str(self.holds_count),
            str(self.bills_count),
            self.status,
            self.date_converted,
            str(self.converted_total),
        ]
        return FIELD_DELIMITER.join(fields) + FIELD_DELIMITER

    @classmethod
    def from_record(cls, line: str) -> "DiscardCard":
        """
        Parse one ledger line.

        Raises:
            ValueError: If the field count or a numeric field is wrong
        """
        fields = line.rstrip("\r\n").split(FIELD_DELIMITER)
        # A trailing delimiter leaves one empty field at the end
        if fields and fields[-1] == "":
            fields = fields[:-1]
        if len(fields) != LEDGER_FIELD_COUNT:
            raise ValueError(f"Expected {LEDGER_FIELD_COUNT} fields, found {len(fields)}: {line!r}")

        return cls(
            id=fields[0],
            patron_key=fields[1],
            description=fields[2],
            date_created=fields[3],
            date_last_used=fields[4],
            item_count=_to_int(fields[5]),
            holds_count=_to_int(fields[6]),
            bills_count=_to_int(fields[7]),
            status=fields[8],
            date_converted=fields[9] or NEVER_CONVERTED,
            converted_total=_to_int(fields[10]),
        )

    @classmethod
    def from_profile_record(cls, line: str) -> "DiscardCard":
        """
        Parse a raw discard-profile report line into a fresh, unconverted card.

        The report carries the first nine ledger fields.

        Raises:
            ValueError: If fewer than nine fields are present
        """
        fields = line.rstrip("\r\n").split(FIELD_DELIMITER)
        if len(fields) < 9:
            raise ValueError(f"Expected 9 report fields, found {len(fields)}: {line!r}")
        return cls.from_record(FIELD_DELIMITER.join(fields[:9] + [NEVER_CONVERTED, "0"]))


def is_never(date_value: str) -> bool:
    """Check if a ledger date is the never-converted sentinel."""
    stripped = date_value.strip()
    return stripped == "" or set(stripped) == {"0"}


def _to_int(value: str) -> int:
    stripped = value.strip()
    return int(stripped) if stripped else 0
