"""Declared data type registry with parsing and normalisation rules.

Column metadata carries a free-form declared type ("nvarchar(100)",
"bigint", "decimal(18,2)", ...). Everything type-dependent in the router
and the filter builder works from the DataKind the declared type maps to.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class DataKind(Enum):
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    OTHER = "other"


@dataclass
class DataType:
    kind: DataKind
    prefixes: tuple[str, ...]


# Checked in order; first matching prefix wins. "datetime" must precede
# "date" and "smallint"/"bigint" are listed before the generic "int".
DATA_TYPES: list[DataType] = [
    DataType(DataKind.BOOLEAN, ("bit", "bool")),
    DataType(DataKind.INTEGER, ("tinyint", "smallint", "bigint", "int", "serial")),
    DataType(DataKind.DECIMAL, ("decimal", "numeric", "money", "smallmoney")),
    DataType(DataKind.FLOAT, ("float", "real", "double")),
    DataType(DataKind.DATETIME, ("datetime", "smalldatetime", "datetimeoffset", "timestamp")),
    DataType(DataKind.DATE, ("date",)),
    DataType(
        DataKind.TEXT,
        ("char", "varchar", "nchar", "nvarchar", "text", "ntext", "character", "string"),
    ),
]

_OTHER = DataType(DataKind.OTHER, ())


def get_data_type(declared: str | None) -> DataType:
    """Resolve a declared column type to its registry entry, OTHER if unknown."""
    t = (declared or "").strip().lower()
    for data_type in DATA_TYPES:
        if t.startswith(data_type.prefixes):
            return data_type
    # "nvarchar(max)" and friends are caught above; this covers spellings
    # like "long text" or "varchar2" that merely contain a text marker.
    if "char" in t or "text" in t:
        return DATA_TYPES[-1]
    return _OTHER


def get_data_kind(declared: str | None) -> DataKind:
    return get_data_type(declared).kind


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_TRUE_VALUES = {"1", "true", "on", "yes"}
_FALSE_VALUES = {"0", "false", "off", "no"}

DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)

_INT_RE = re.compile(r"^[+-]?\d+$")
_DECIMAL_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")


def parse_bool(raw: str) -> bool | None:
    """Parse a checkbox/boolean string; None if it is neither true nor false.

    Hidden-field + checkbox pairs post "0,1"; the last entry wins.
    """
    s = raw.strip()
    if "," in s:
        parts = [p.strip() for p in s.split(",") if p.strip()]
        s = parts[-1] if parts else ""
    s = s.lower()
    if s in _TRUE_VALUES:
        return True
    if s in _FALSE_VALUES:
        return False
    return None


def parse_int(raw: str) -> int | None:
    s = raw.strip()
    if not _INT_RE.match(s):
        return None
    return int(s)


def parse_decimal(raw: str) -> Decimal | None:
    """Parse a number written with either '.' or ',' as decimal separator.

    Rules, applied to the string with spaces removed:
    - both separators present: the right-most one is the decimal separator
    - a separator that occurs more than once is a thousands separator
    - a single ',' followed by exactly three digits is a thousands separator,
      otherwise it is the decimal separator
    - a single '.' is the decimal separator
    """
    s = raw.strip().replace(" ", "").replace("\u00a0", "")
    if not s:
        return None

    has_dot = "." in s
    has_comma = "," in s

    if has_dot and has_comma:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_comma:
        if s.count(",") > 1:
            s = s.replace(",", "")
        else:
            fraction = s.split(",", 1)[1]
            if len(fraction) == 3:
                s = s.replace(",", "")
            else:
                s = s.replace(",", ".")
    elif has_dot and s.count(".") > 1:
        s = s.replace(".", "")

    if not _DECIMAL_RE.match(s):
        return None
    try:
        return Decimal(s)
    except InvalidOperation:
        return None


def parse_date(raw: str) -> date | None:
    """Parse a date against DATE_FORMATS; time parts are discarded."""
    s = raw.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def parse_datetime(raw: str) -> datetime | None:
    s = raw.strip()
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def convert_raw(raw: str | None, data_type: str | None) -> Any:
    """Convert a raw form string to the Python value for a declared type.

    Blank input is None for every kind except BOOLEAN (an unticked checkbox
    posts nothing, which means False). When parsing fails the raw string is
    returned unchanged and the target database has the final word.
    """
    kind = get_data_kind(data_type)
    text = raw if raw is not None else ""

    if kind is DataKind.BOOLEAN:
        if not text.strip():
            return False
        return bool(parse_bool(text))

    if not text.strip():
        return None

    if kind is DataKind.INTEGER:
        value = parse_int(text)
    elif kind in (DataKind.DECIMAL, DataKind.FLOAT):
        number = parse_decimal(text)
        value = float(number) if kind is DataKind.FLOAT and number is not None else number
    elif kind is DataKind.DATE:
        value = parse_date(text)
    elif kind is DataKind.DATETIME:
        value = parse_datetime(text)
    else:
        return text

    return text if value is None else value


def normalize_value(data_type: str | None, value: Any) -> Any:
    """Coerce a value read from a target database to the column's Python type.

    Drivers disagree (SQLite hands back dates as text and bits as ints);
    rows leave the router with the same types whatever the provider.
    """
    if value is None:
        return None

    kind = get_data_kind(data_type)

    if kind is DataKind.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float, Decimal)):
            return bool(value)
        if isinstance(value, str):
            parsed = parse_bool(value)
            return value if parsed is None else parsed
        return value

    if kind is DataKind.DECIMAL and not isinstance(value, Decimal):
        if isinstance(value, (int, float, str)):
            try:
                return Decimal(str(value))
            except InvalidOperation:
                return value
        return value

    if kind is DataKind.DATETIME and isinstance(value, str):
        parsed_dt = parse_datetime(value)
        return value if parsed_dt is None else parsed_dt

    if kind is DataKind.DATE:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return value

    return value
