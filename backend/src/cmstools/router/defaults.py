"""Symbolic column default expressions.

A column's default_expr is one of NOW, UTC_NOW, CURRENT_USER_ID or
CONST:<literal>. Expressions are parsed into small node types and
evaluated when a create leaves the column empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable

from cmstools.core.types import convert_raw


@dataclass(frozen=True)
class Now:
    """Local server time."""


@dataclass(frozen=True)
class UtcNow:
    pass


@dataclass(frozen=True)
class CurrentUserId:
    pass


@dataclass(frozen=True)
class Const:
    literal: str


@dataclass(frozen=True)
class Unsupported:
    expr: str


DefaultExpr = Now | UtcNow | CurrentUserId | Const | Unsupported


def parse_default_expr(expr: str | None) -> DefaultExpr | None:
    """Parse a default_expr string; None for blank input.

    Keywords are case-insensitive. The CONST literal keeps its case.

    Examples:
        parse_default_expr(" now ") -> Now()
        parse_default_expr("CONST:draft") -> Const("draft")
    """
    if expr is None or not expr.strip():
        return None
    s = expr.strip()
    keyword = s.upper()

    if keyword == "NOW":
        return Now()
    if keyword == "UTC_NOW":
        return UtcNow()
    if keyword == "CURRENT_USER_ID":
        return CurrentUserId()
    if keyword.startswith("CONST:"):
        return Const(s[len("CONST:"):])
    return Unsupported(s)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def evaluate_default(
    expr: DefaultExpr | None,
    data_type: str | None,
    user_id: int | None,
    clock: Callable[[], datetime] = _utc_now,
) -> Any:
    """Evaluate a parsed default expression for a column.

    Timestamps are returned naive (local for NOW, UTC for UTC_NOW) since
    target columns are commonly timezone-less.

    Args:
        expr: Parsed expression, or None
        data_type: Declared type of the column, used to convert CONST literals
        user_id: Acting user
        clock: Returns the current time as an aware UTC datetime
    """
    if expr is None or isinstance(expr, Unsupported):
        return None
    if isinstance(expr, Now):
        return clock().astimezone().replace(tzinfo=None)
    if isinstance(expr, UtcNow):
        return clock().astimezone(UTC).replace(tzinfo=None)
    if isinstance(expr, CurrentUserId):
        return user_id
    if isinstance(expr, Const):
        return convert_raw(expr.literal, data_type)
    return None
