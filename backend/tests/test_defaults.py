"""Tests for symbolic default expressions."""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from cmstools.router.defaults import (
    Const,
    CurrentUserId,
    Now,
    Unsupported,
    UtcNow,
    evaluate_default,
    parse_default_expr,
)

FIXED = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def clock():
    return FIXED


class TestParseDefaultExpr:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("NOW", Now()),
            (" now ", Now()),
            ("utc_now", UtcNow()),
            ("Current_User_Id", CurrentUserId()),
            ("CONST:Draft", Const("Draft")),
            ("const:", Const("")),
            ("GETDATE()", Unsupported("GETDATE()")),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_default_expr(raw) == expected

    def test_blank_is_none(self):
        assert parse_default_expr(None) is None
        assert parse_default_expr("  ") is None


class TestEvaluateDefault:
    def test_utc_now_is_naive_utc(self):
        assert evaluate_default(UtcNow(), "datetime", 1, clock) == datetime(2024, 5, 1, 12, 0)

    def test_now_is_naive_local(self):
        value = evaluate_default(Now(), "datetime", 1, clock)
        assert value.tzinfo is None
        assert value == FIXED.astimezone().replace(tzinfo=None)

    def test_utc_now_from_offset_clock(self):
        plus_two = timezone(timedelta(hours=2))
        value = evaluate_default(UtcNow(), "datetime", None, lambda: FIXED.astimezone(plus_two))
        assert value == datetime(2024, 5, 1, 12, 0)

    def test_current_user(self):
        assert evaluate_default(CurrentUserId(), "int", 42, clock) == 42
        assert evaluate_default(CurrentUserId(), "int", None, clock) is None

    def test_const_converts_per_column_type(self):
        assert evaluate_default(Const("draft"), "nvarchar(20)", 1, clock) == "draft"
        assert evaluate_default(Const("5"), "int", 1, clock) == 5
        assert evaluate_default(Const("1,5"), "decimal(5,1)", 1, clock) == Decimal("1.5")
        assert evaluate_default(Const("0"), "bit", 1, clock) is False

    def test_unsupported_and_none(self):
        assert evaluate_default(Unsupported("GETDATE()"), "datetime", 1, clock) is None
        assert evaluate_default(None, "datetime", 1, clock) is None
