"""Discard item identity and disqualification flags."""

from dataclasses import dataclass
from enum import IntFlag

KEY_DELIMITER = "|"


class ItemFlag(IntFlag):
    """
    Disqualification bits accumulated per item by the classifier.

    A fresh item carries DISC only. LCPY set means the item IS the last
    viable copy of its title.
    """

    DISC = 0x01
    LCPY = 0x02
    BILL = 0x04
    ORDR = 0x08
    SCTL = 0x10
    ACCT = 0x20
    HTIT = 0x40
    HCPY = 0x80


@dataclass(frozen=True, order=True)
class ItemKey:
    """
    Composite identity of one physical item.

    The same title/sequence pair recurs across sibling copies, so the key is
    never collapsed to a single surrogate value.
    """

    title: str
    sequence: str
    copy: str

    @classmethod
    def parse(cls, raw: str) -> "ItemKey":
        """
        Parse the canonical `title|sequence|copy|` form.

        Extra trailing fields (a barcode, say) are ignored.

        Raises:
            ValueError: If fewer than three fields are present
        """
        fields = raw.strip().split(KEY_DELIMITER)
        if len(fields) < 3 or not all(field.strip() for field in fields[:3]):
            raise ValueError(f"Malformed item key: {raw!r}")
        title, sequence, copy = (field.strip() for field in fields[:3])
        return cls(title=title, sequence=sequence, copy=copy)

    def __str__(self) -> str:
        return f"{self.title}|{self.sequence}|{self.copy}|"


@dataclass(frozen=True)
class LocationRecord:
    """One copy of a title and the location it currently sits in."""

    key: ItemKey
    location: str


def parse_keys(lines: list[str]) -> list[ItemKey]:
    """Parse a sequence of canonical key strings, skipping blank lines."""
    return [ItemKey.parse(line) for line in lines if line.strip()]
