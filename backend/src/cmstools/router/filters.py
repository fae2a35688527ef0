"""Search filters built from raw query-string values.

Each filterable column with a non-blank raw value becomes one predicate.
Values are converted per the column's data kind and always bound as
parameters; input that cannot be converted drops the predicate instead of
failing the request.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from cmstools.core.types import (
    DataKind,
    get_data_kind,
    parse_bool,
    parse_date,
    parse_decimal,
    parse_int,
)
from cmstools.metadata.models import ColumnMeta
from cmstools.persistence.dialects import Dialect

logger = logging.getLogger(__name__)


@dataclass
class FilterClause:
    """A conjunction of predicates and the parameters they bind."""

    predicates: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def sql(self) -> str:
        return " AND ".join(self.predicates)

    def __bool__(self) -> bool:
        return bool(self.predicates)


def compose_where(*segments: str | None) -> str:
    """AND together non-empty SQL segments, each parenthesized.

    Returns an empty string when every segment is empty.

    Example:
        compose_where("status=1", None, "owner_id=42")
        -> "(status=1) AND (owner_id=42)"
    """
    parts = [s.strip() for s in segments if s and s.strip()]
    return " AND ".join(f"({p})" for p in parts)


def build_filters(
    columns: list[ColumnMeta],
    raw_filters: Mapping[str, str | None],
    dialect: Dialect,
    prefix: str = "f",
) -> FilterClause:
    """Build predicates for is_filter columns that have a raw value.

    Args:
        columns: Column metadata for the table
        raw_filters: Raw values keyed by column name
        dialect: Target dialect, for quoting and casts
        prefix: Bind parameter prefix; names are generated as f0, f1, ...
    """
    clause = FilterClause()
    lowered = {k.lower(): v for k, v in raw_filters.items()}

    for col in columns:
        if not col.is_filter:
            continue
        raw = lowered.get(col.column_name.lower())
        if raw is None or not raw.strip():
            continue

        name = f"{prefix}{len(clause.params)}"
        predicate, value = _predicate(col, raw.strip(), name, dialect)
        if predicate is None:
            logger.debug("Dropping filter on %s: unparseable %r", col.column_name, raw)
            continue
        clause.predicates.append(predicate)
        clause.params[name] = value

    return clause


def _predicate(
    col: ColumnMeta, raw: str, name: str, dialect: Dialect
) -> tuple[str | None, Any]:
    quoted = dialect.quote(col.column_name)
    kind = get_data_kind(col.data_type)

    if kind is DataKind.TEXT:
        return f"{quoted} LIKE :{name}", f"%{raw}%"

    if kind is DataKind.INTEGER:
        number = parse_int(raw)
        if number is None:
            return None, None
        return f"{quoted} = :{name}", number

    if kind in (DataKind.DECIMAL, DataKind.FLOAT):
        decimal = parse_decimal(raw)
        if decimal is None:
            return None, None
        value = float(decimal) if kind is DataKind.FLOAT else decimal
        return f"{quoted} = :{name}", value

    if kind in (DataKind.DATE, DataKind.DATETIME):
        day = parse_date(raw)
        if day is None:
            return None, None
        return f"{dialect.cast_date(quoted)} = :{name}", day

    if kind is DataKind.BOOLEAN:
        flag = parse_bool(raw)
        if flag is None:
            return None, None
        return f"{quoted} = :{name}", flag

    return f"{dialect.cast_text(quoted)} LIKE :{name}", f"%{raw}%"
