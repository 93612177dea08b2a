"""
Transient records produced from portal responses.

The portal returns loosely typed PHP-style rows. Only the fields the
service reads are given accessors; everything else passes through.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union


ARRAY_PREFIX = "Array["
_BOM = "\ufeff"
_DIGITS = re.compile(r"(\d+)")

# portal key -> HeiRecord attribute, in the portal's order
HEI_FIELDS = (
    ("instCode", "inst_code"),
    ("instName", "inst_name"),
    ("instOwnership", "inst_ownership"),
    ("province", "province"),
    ("municipalityCity", "municipality_city"),
    ("status", "status"),
    ("xCoordinate", "x_coordinate"),
    ("yCoordinate", "y_coordinate"),
    ("ownershipSector", "ownership_sector"),
    ("ownershipHei_type", "ownership_hei_type"),
)


def clean_text(value: Any) -> str:
    """Trimmed string form of an optional scalar; None becomes ''."""
    if value is None:
        return ""
    return str(value).strip()


def natural_key(value: str) -> List[Union[int, str]]:
    """Case-insensitive natural sort key ("HEI 2" before "HEI 10")."""
    # split() leaves the captured digit runs at odd indices
    return [int(part) if index % 2 else part.lower() for index, part in enumerate(_DIGITS.split(value))]


def unique_texts(values: Iterable[Any]) -> List[str]:
    """Trim, drop blanks and deduplicate, keeping first-seen order."""
    seen: Dict[str, None] = {}
    for value in values:
        text = clean_text(value)
        if text:
            seen.setdefault(text, None)
    return list(seen)


def normalize_payload(data: Any) -> Optional[List[Any]]:
    """
    Coerce a decoded portal body into a list of rows.

    Some endpoints answer with a string such as ``Array[{...}]`` instead of
    JSON. The five-character ``Array`` prefix is dropped and the rest parsed
    as JSON. Returns None whenever the result is not a list.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")

    if isinstance(data, str):
        text = data.lstrip(_BOM).strip()
        if text.startswith(ARRAY_PREFIX):
            try:
                data = json.loads(text[5:])  # keep the "["
            except ValueError:
                return None
        else:
            return None

    return data if isinstance(data, list) else None


@dataclass(frozen=True)
class HeiRecord:
    """Higher education institution as listed by the portal."""

    inst_code: str
    inst_name: str
    inst_ownership: Optional[Any] = None
    province: Optional[Any] = None
    municipality_city: Optional[Any] = None
    status: Optional[Any] = None
    x_coordinate: Optional[Any] = None
    y_coordinate: Optional[Any] = None
    ownership_sector: Optional[Any] = None
    ownership_hei_type: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the portal's field names."""
        return {portal_key: getattr(self, attr) for portal_key, attr in HEI_FIELDS}

    @classmethod
    def from_row(cls, row: Any) -> Optional["HeiRecord"]:
        """Build a record from a portal row; None when code or name is blank."""
        if not isinstance(row, Mapping):
            return None
        inst_code = clean_text(row.get("instCode"))
        inst_name = clean_text(row.get("instName"))
        if not inst_code or not inst_name:
            return None
        extras = {attr: row.get(portal_key) for portal_key, attr in HEI_FIELDS[2:]}
        return cls(inst_code=inst_code, inst_name=inst_name, **extras)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "HeiRecord":
        """Rehydrate a record from cached JSON state."""
        return cls(**{attr: payload.get(portal_key) for portal_key, attr in HEI_FIELDS})


def sort_institutions(records: Iterable[HeiRecord]) -> List[HeiRecord]:
    return sorted(records, key=lambda record: natural_key(record.inst_name))


@dataclass(frozen=True)
class ProgramRecord:
    """Raw program row for an institution."""

    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def program_name(self) -> str:
        return clean_text(self.raw.get("programName"))

    @property
    def major_name(self) -> str:
        return clean_text(self.raw.get("majorName"))

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)

    @classmethod
    def from_rows(cls, rows: Iterable[Any]) -> List["ProgramRecord"]:
        """Wrap mapping rows; anything else the portal sends is skipped."""
        return [cls(raw=dict(row)) for row in rows if isinstance(row, Mapping)]


@dataclass(frozen=True)
class PdfPayload:
    """Permit document bytes ready to be streamed."""

    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class NotAvailable:
    """Negative permit result carrying the URL for a direct-link fallback."""

    url: str
    reason: str


PermitResult = Union[PdfPayload, NotAvailable]
