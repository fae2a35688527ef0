"""Query router: parameterized SQL against per-table target databases.

Identifiers come from metadata only and are quoted by the connection's
dialect; every value is a bound parameter. Each operation runs on its own
auto-committed transaction unless the caller passes ``conn``, an
AsyncConnection already inside a transaction (see ``unit_of_work``).

Usage:
    router = QueryRouter(EngineRegistry())
    page = await router.query(connection, table, columns, page=1, page_size=50)

    async with router.unit_of_work(connection) as conn:
        key = await router.insert_row(connection, table, cols, values, conn=conn)
        await router.update_row(connection, other, cols2, "id", 7, values2, conn=conn)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from cmstools.core.types import convert_raw, normalize_value
from cmstools.errors import BadRequestError, ConflictError, TargetDatabaseError
from cmstools.metadata.models import ColumnMeta, ConnectionMeta, TableMeta
from cmstools.persistence.dialects import Dialect
from cmstools.persistence.engines import EngineRegistry
from cmstools.router.filters import compose_where

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass
class QueryResult:
    """One page of rows plus the total matching the same WHERE."""

    rows: list[dict[str, Any]]
    total: int


def clamp_paging(page: int, page_size: int) -> tuple[int, int]:
    """Page is at least 1; a page size outside [1, 200] becomes 50."""
    page = page if page >= 1 else 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


def resolve_primary_key(table: TableMeta, columns: list[ColumnMeta]) -> str | None:
    """Explicit table override, then the first is_primary column, then "id"."""
    if table.primary_key and table.primary_key.strip():
        return table.primary_key.strip()
    for col in columns:
        if col.is_primary:
            return col.column_name
    for col in columns:
        if col.column_name.lower() == "id":
            return col.column_name
    return None


@contextmanager
def _translate_db_errors(table: TableMeta) -> Iterator[None]:
    try:
        yield
    except IntegrityError as e:
        message = str(e.orig) if e.orig is not None else str(e)
        logger.info("Constraint violation on %s: %s", table.qualified_name, message)
        raise ConflictError(message) from e
    except DBAPIError as e:
        message = str(e.orig) if e.orig is not None else str(e)
        logger.warning("Target database error on %s: %s", table.qualified_name, message)
        raise TargetDatabaseError(message) from e


def _bind_value(col: ColumnMeta | None, value: Any) -> Any:
    """Raw strings are converted per the column's declared type."""
    if col is not None and isinstance(value, str):
        return convert_raw(value, col.data_type)
    return value


class QueryRouter:
    """Executes list, fetch, update and insert statements on target tables."""

    def __init__(self, engines: EngineRegistry):
        self._engines = engines

    @property
    def engines(self) -> EngineRegistry:
        return self._engines

    def dialect_for(self, connection: ConnectionMeta) -> Dialect:
        return self._engines.dialect_for(connection)

    @asynccontextmanager
    async def unit_of_work(self, connection: ConnectionMeta) -> AsyncIterator[AsyncConnection]:
        """Transaction spanning several router calls on one connection.

        Commits when the block exits normally, rolls back on any exception.
        """
        engine = await self._engines.engine_for(connection)
        async with engine.begin() as conn:
            yield conn

    async def _run(
        self,
        connection: ConnectionMeta,
        table: TableMeta,
        work: Callable[[AsyncConnection], Awaitable[T]],
        conn: AsyncConnection | None,
    ) -> T:
        with _translate_db_errors(table):
            if conn is not None:
                return await work(conn)
            engine = await self._engines.engine_for(connection)
            async with engine.begin() as own:
                return await work(own)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        connection: ConnectionMeta,
        table: TableMeta,
        columns: list[ColumnMeta],
        where: str | None = None,
        params: dict[str, Any] | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        conn: AsyncConnection | None = None,
    ) -> QueryResult:
        """Return one page of rows, newest primary key first, and the total.

        The page and the count run on the same connection inside one
        transaction.

        Raises:
            BadRequestError: No columns, or no resolvable primary key.
            TargetDatabaseError: The target database rejected the query.
        """
        if not columns:
            raise BadRequestError(f"No columns configured for {table.label}")
        pk = resolve_primary_key(table, columns)
        if pk is None:
            raise BadRequestError(f"Cannot resolve primary key for {table.label}")

        page, page_size = clamp_paging(page, page_size)
        dialect = self.dialect_for(connection)
        target = dialect.qualify(table.schema_name, table.table_name)
        select_list = ", ".join(dialect.quote(c.column_name) for c in columns)
        where_sql = where.strip() if where and where.strip() else "1=1"
        bound = dialect.adapt_params(params or {})

        page_sql = (
            f"SELECT {select_list} FROM {target} WHERE {where_sql} "
            + dialect.paginate(f"{dialect.quote(pk)} DESC", (page - 1) * page_size, page_size)
        )
        count_sql = f"SELECT COUNT(1) FROM {target} WHERE {where_sql}"

        async def work(c: AsyncConnection) -> QueryResult:
            logger.debug("query: %s %s", page_sql, bound)
            result = await c.execute(text(page_sql), bound)
            rows = [self._to_row(columns, r) for r in result.all()]
            total = (await c.execute(text(count_sql), bound)).scalar_one()
            return QueryResult(rows=rows, total=int(total))

        return await self._run(connection, table, work, conn)

    async def get_row(
        self,
        connection: ConnectionMeta,
        table: TableMeta,
        columns: list[ColumnMeta],
        pk_column: str,
        pk_value: Any,
        where: str | None = None,
        params: dict[str, Any] | None = None,
        conn: AsyncConnection | None = None,
    ) -> dict[str, Any] | None:
        """Fetch one row by primary key; None if absent or outside ``where``."""
        if not columns:
            raise BadRequestError(f"No columns configured for {table.label}")

        dialect = self.dialect_for(connection)
        target = dialect.qualify(table.schema_name, table.table_name)
        select_list = ", ".join(dialect.quote(c.column_name) for c in columns)
        where_sql = compose_where(f"{dialect.quote(pk_column)} = :pk", where)
        bound = dialect.adapt_params({**(params or {}), "pk": pk_value})
        sql = f"SELECT {select_list} FROM {target} WHERE {where_sql}"

        async def work(c: AsyncConnection) -> dict[str, Any] | None:
            logger.debug("get_row: %s %s", sql, bound)
            row = (await c.execute(text(sql), bound)).first()
            return self._to_row(columns, row) if row is not None else None

        return await self._run(connection, table, work, conn)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_row(
        self,
        connection: ConnectionMeta,
        table: TableMeta,
        editable_columns: list[ColumnMeta],
        pk_column: str,
        pk_value: Any,
        values: dict[str, Any],
        where: str | None = None,
        params: dict[str, Any] | None = None,
        conn: AsyncConnection | None = None,
    ) -> int:
        """Update editable columns present in ``values``; returns rows affected.

        No editable columns (or none of them present in ``values``) is a
        no-op returning 0 without touching the target database. Extra
        ``where`` predicates narrow the update, so a row outside them counts
        as not matched.
        """
        targets = [c for c in editable_columns if c.column_name in values]
        if not targets:
            return 0

        dialect = self.dialect_for(connection)
        target = dialect.qualify(table.schema_name, table.table_name)
        assignments = []
        bound: dict[str, Any] = {**(params or {}), "pk": pk_value}
        for i, col in enumerate(targets):
            name = f"v{i}"
            assignments.append(f"{dialect.quote(col.column_name)} = :{name}")
            bound[name] = _bind_value(col, values[col.column_name])

        where_sql = compose_where(f"{dialect.quote(pk_column)} = :pk", where)
        sql = f"UPDATE {target} SET {', '.join(assignments)} WHERE {where_sql}"
        bound = dialect.adapt_params(bound)

        async def work(c: AsyncConnection) -> int:
            logger.debug("update_row: %s %s", sql, bound)
            result = await c.execute(text(sql), bound)
            return result.rowcount

        return await self._run(connection, table, work, conn)

    async def insert_row(
        self,
        connection: ConnectionMeta,
        table: TableMeta,
        editable_columns: list[ColumnMeta],
        values: dict[str, Any],
        pk_column: str | None = None,
        conn: AsyncConnection | None = None,
    ) -> Any:
        """Insert a row and return its server-generated primary key.

        The key comes back from the INSERT statement itself (OUTPUT INSERTED
        or RETURNING), never from a follow-up query.

        Raises:
            BadRequestError: A required column has no value, or no primary
                key can be resolved.
            ConflictError: The target database reported a constraint violation.
        """
        missing = [
            c.label
            for c in editable_columns
            if c.is_required and _is_blank(values.get(c.column_name))
        ]
        if missing:
            raise BadRequestError(f"Required value missing: {', '.join(missing)}")

        pk = pk_column or resolve_primary_key(table, editable_columns)
        if pk is None:
            raise BadRequestError(f"Cannot resolve primary key for {table.label}")
        targets = [c for c in editable_columns if c.column_name in values]

        dialect = self.dialect_for(connection)
        target = dialect.qualify(table.schema_name, table.table_name)
        bound: dict[str, Any] = {}
        names = []
        for i, col in enumerate(targets):
            name = f"v{i}"
            names.append(f":{name}")
            bound[name] = _bind_value(col, values[col.column_name])

        sql = dialect.insert_returning(
            target,
            [dialect.quote(c.column_name) for c in targets],
            names,
            dialect.quote(pk),
        )
        bound = dialect.adapt_params(bound)

        async def work(c: AsyncConnection) -> Any:
            logger.debug("insert_row: %s %s", sql, bound)
            return (await c.execute(text(sql), bound)).scalar_one()

        return await self._run(connection, table, work, conn)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_row(columns: list[ColumnMeta], row: Any) -> dict[str, Any]:
        return {
            col.column_name: normalize_value(col.data_type, row[i])
            for i, col in enumerate(columns)
        }


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
