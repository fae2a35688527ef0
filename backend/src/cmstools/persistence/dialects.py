"""Provider-specific SQL fragments for target databases.

Not a dialect abstraction: only the handful of constructs the query router
and lookup resolver compose by hand. Everything else is plain SQL shared by
all providers.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from cmstools.errors import BadRequestError


class Dialect:
    """Bracket-quoting SQL Server dialect; base for the others."""

    name = "mssql"
    open_quote = "["
    close_quote = "]"
    qualify_schema = True
    recursive_with = "WITH"
    concat_operator = "+"

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def quote(self, identifier: str) -> str:
        """Quote one identifier, escaping the closing quote character."""
        escaped = identifier.replace(self.close_quote, self.close_quote * 2)
        return f"{self.open_quote}{escaped}{self.close_quote}"

    def qualify(self, schema_name: str | None, table_name: str) -> str:
        if schema_name and self.qualify_schema:
            return f"{self.quote(schema_name)}.{self.quote(table_name)}"
        return self.quote(table_name)

    def raw_path(self, path: str, is_table: bool = False) -> str:
        """Quote a dotted identifier taken from a lookup format string.

        The path has already passed the safe-identifier check, so it only
        holds letters, digits, underscores, dots and brackets.
        """
        parts = [p.strip("[]") for p in path.split(".") if p.strip("[]")]
        if is_table and not self.qualify_schema:
            parts = parts[-1:]
        return ".".join(self.quote(p) for p in parts)

    # ------------------------------------------------------------------
    # Statement fragments
    # ------------------------------------------------------------------

    def paginate(self, order_by: str, skip: int, take: int) -> str:
        return f"ORDER BY {order_by} OFFSET {int(skip)} ROWS FETCH NEXT {int(take)} ROWS ONLY"

    def select_limited(self, columns: str, rest: str, limit: int) -> str:
        """SELECT with a row cap; ``rest`` starts at FROM and ends with ORDER BY."""
        return f"SELECT TOP ({int(limit)}) {columns} {rest}"

    def insert_returning(self, target: str, columns: list[str], params: list[str], pk: str) -> str:
        output = f"OUTPUT INSERTED.{pk}"
        if not columns:
            return f"INSERT INTO {target} {output} DEFAULT VALUES"
        return (
            f"INSERT INTO {target} ({', '.join(columns)}) {output} "
            f"VALUES ({', '.join(params)})"
        )

    def cast_text(self, expr: str) -> str:
        return f"CAST({expr} AS nvarchar(255))"

    def cast_date(self, expr: str) -> str:
        return f"CAST({expr} AS date)"

    def cast_long_text(self, expr: str) -> str:
        return f"CAST({expr} AS nvarchar(max))"

    def concat(self, *parts: str) -> str:
        return f" {self.concat_operator} ".join(parts)

    # ------------------------------------------------------------------
    # Bind values
    # ------------------------------------------------------------------

    def adapt_value(self, value: Any) -> Any:
        return value

    def adapt_params(self, params: dict[str, Any]) -> dict[str, Any]:
        return {k: self.adapt_value(v) for k, v in params.items()}


class MssqlDialect(Dialect):
    pass


class SqliteDialect(Dialect):
    """SQLite: no schemas, RETURNING instead of OUTPUT, text-typed dates."""

    name = "sqlite"
    qualify_schema = False
    recursive_with = "WITH RECURSIVE"
    concat_operator = "||"

    def paginate(self, order_by: str, skip: int, take: int) -> str:
        return f"ORDER BY {order_by} LIMIT {int(take)} OFFSET {int(skip)}"

    def select_limited(self, columns: str, rest: str, limit: int) -> str:
        return f"SELECT {columns} {rest} LIMIT {int(limit)}"

    def insert_returning(self, target: str, columns: list[str], params: list[str], pk: str) -> str:
        if not columns:
            return f"INSERT INTO {target} DEFAULT VALUES RETURNING {pk}"
        return (
            f"INSERT INTO {target} ({', '.join(columns)}) "
            f"VALUES ({', '.join(params)}) RETURNING {pk}"
        )

    def cast_text(self, expr: str) -> str:
        return f"CAST({expr} AS TEXT)"

    def cast_date(self, expr: str) -> str:
        return f"date({expr})"

    def cast_long_text(self, expr: str) -> str:
        return f"CAST({expr} AS TEXT)"

    def adapt_value(self, value: Any) -> Any:
        # sqlite3 has no Decimal adapter and its date adapters are deprecated
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, date):
            return value.isoformat()
        return value


class PostgresDialect(SqliteDialect):
    """PostgreSQL: double-quoted identifiers, schemas, native bind types."""

    name = "postgresql"
    open_quote = '"'
    close_quote = '"'
    qualify_schema = True

    def cast_text(self, expr: str) -> str:
        return f"CAST({expr} AS text)"

    def cast_date(self, expr: str) -> str:
        return f"CAST({expr} AS date)"

    def cast_long_text(self, expr: str) -> str:
        return f"CAST({expr} AS text)"

    def adapt_value(self, value: Any) -> Any:
        return value


_DIALECTS: dict[str, Dialect] = {
    "mssql": MssqlDialect(),
    "sqlserver": MssqlDialect(),
    "sqlite": SqliteDialect(),
    "postgresql": PostgresDialect(),
    "postgres": PostgresDialect(),
}


def get_dialect(provider: str | None) -> Dialect:
    """Dialect for a connection's provider tag.

    Raises:
        BadRequestError: If the provider is not supported.
    """
    key = (provider or "").strip().lower()
    dialect = _DIALECTS.get(key)
    if dialect is None:
        raise BadRequestError(f"Provider not supported: {provider}")
    return dialect
