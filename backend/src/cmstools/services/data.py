"""Data workflows over managed tables.

Every operation follows the same path: resolve table, connection and
columns from metadata, gate on the user's effective permission, run the
statement through the query router, then audit mutations. Failures are
raised as CmsError subclasses for the calling layer to map.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Callable

from cmstools.audit.logger import OP_CREATE, OP_SET_STATUS, OP_UPDATE, AuditLogger, RequestInfo
from cmstools.auth.permissions import PermissionResolver, TablePermission
from cmstools.auth.types import UserContext
from cmstools.core.types import DataKind, convert_raw, get_data_kind
from cmstools.errors import BadRequestError, ForbiddenError, NotFoundError
from cmstools.lookups.cache import LookupOption
from cmstools.lookups.resolver import LookupResolver
from cmstools.metadata.models import ColumnMeta, ConnectionMeta, TableMeta
from cmstools.metadata.store import MetadataStore
from cmstools.router.defaults import evaluate_default, parse_default_expr
from cmstools.router.filters import build_filters, compose_where
from cmstools.router.router import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    QueryRouter,
    clamp_paging,
    resolve_primary_key,
)

logger = logging.getLogger(__name__)

STATUS_COLUMN = "status"
EXPORT_MAX_ROWS = 50000

_TYPED_KEY_KINDS = (
    DataKind.INTEGER,
    DataKind.DECIMAL,
    DataKind.FLOAT,
    DataKind.DATE,
    DataKind.DATETIME,
)


@dataclass
class TableContext:
    """Everything resolved for one request against one table."""

    table: TableMeta
    connection: ConnectionMeta
    columns: list[ColumnMeta]
    permission: TablePermission
    primary_key: str | None

    @property
    def row_filter(self) -> str | None:
        """Table and permission row filters, conjoined; None if neither is set."""
        return compose_where(self.table.row_filter, self.permission.row_filter) or None

    def column(self, name: str) -> ColumnMeta | None:
        for col in self.columns:
            if col.column_name.lower() == name.lower():
                return col
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table.to_dict(),
            "connection": self.connection.to_dict(),
            "columns": [c.to_dict() for c in self.columns],
            "permission": self.permission.to_dict(),
            "primaryKey": self.primary_key,
        }


@dataclass
class RowPage:
    """A page of list rows with the metadata needed to render it."""

    columns: list[ColumnMeta]
    rows: list[dict[str, Any]]
    total: int
    page: int
    page_size: int
    primary_key: str
    lookups: dict[str, list[LookupOption]] = field(default_factory=dict)
    filters: dict[str, str] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        if self.total <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": [c.to_dict() for c in self.columns],
            "rows": self.rows,
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
            "primaryKey": self.primary_key,
            "lookups": {
                name: [o.to_dict() for o in options] for name, options in self.lookups.items()
            },
            "filters": self.filters,
        }


def _lookup_value(values: Mapping[str, Any], name: str) -> tuple[bool, Any]:
    """Case-insensitive key lookup: (present, value)."""
    if name in values:
        return True, values[name]
    lowered = name.lower()
    for key, value in values.items():
        if key.lower() == lowered:
            return True, value
    return False, None


def _csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class DataService:
    """List, fetch, create, update, status and export workflows."""

    def __init__(
        self,
        store: MetadataStore,
        permissions: PermissionResolver,
        router: QueryRouter,
        lookups: LookupResolver,
        audit: AuditLogger,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._store = store
        self._permissions = permissions
        self._router = router
        self._lookups = lookups
        self._audit = audit
        self._clock = clock

    # ------------------------------------------------------------------
    # Resolution and gating
    # ------------------------------------------------------------------

    async def _context(self, user: UserContext, table_id: int) -> TableContext:
        table = await self._store.get_table(table_id)
        if table is None:
            raise NotFoundError("Table metadata not found or disabled.")
        if not user.is_authenticated:
            raise ForbiddenError("Authentication required.")

        permission = await self._permissions.get_effective_permission(
            user.user_id, table_id, is_super_admin=user.is_admin
        )

        columns = await self._store.get_columns(table_id)
        if not columns:
            raise BadRequestError("No columns configured.")
        connection = await self._store.get_connection(table.connection_id)
        if connection is None:
            raise BadRequestError("Connection not available.")

        return TableContext(
            table=table,
            connection=connection,
            columns=columns,
            permission=permission,
            primary_key=resolve_primary_key(table, columns),
        )

    @staticmethod
    def _require(ctx: TableContext, *actions: str) -> None:
        """Pass if the permission grants any of ``actions``."""
        if not any(ctx.permission.allows(a) for a in actions):
            logger.info(
                "Denied %s on %s", "/".join(actions), ctx.table.qualified_name
            )
            raise ForbiddenError(f"Not allowed to {' or '.join(actions)} this table.")

    @staticmethod
    def _require_pk(ctx: TableContext) -> str:
        if not ctx.primary_key:
            raise BadRequestError("Primary key not configured.")
        return ctx.primary_key

    @staticmethod
    def _key_value(ctx: TableContext, pk: str, raw: Any) -> Any:
        col = ctx.column(pk)
        if col is None or not isinstance(raw, str):
            return raw
        value = convert_raw(raw, col.data_type)
        if value is None:
            raise BadRequestError("Primary key value is required.")
        # an unparseable key for a typed column cannot match any row
        if isinstance(value, str) and get_data_kind(col.data_type) in _TYPED_KEY_KINDS:
            raise NotFoundError("Row not found.")
        return value

    def _list_columns(self, ctx: TableContext) -> list[ColumnMeta]:
        listed = [c for c in ctx.columns if c.is_list]
        return listed or list(ctx.columns)

    def _where(
        self, ctx: TableContext, raw_filters: Mapping[str, str | None] | None
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        dialect = self._router.dialect_for(ctx.connection)
        clause = build_filters(ctx.columns, raw_filters or {}, dialect)
        applied: dict[str, str] = {}
        for col in ctx.columns:
            if not col.is_filter:
                continue
            present, raw = _lookup_value(raw_filters or {}, col.column_name)
            if present and raw and raw.strip():
                applied[col.column_name] = raw.strip()
        where = compose_where(ctx.table.row_filter, ctx.permission.row_filter, clause.sql)
        return where, clause.params, applied

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def describe_table(self, user: UserContext, table_id: int) -> TableContext:
        ctx = await self._context(user, table_id)
        self._require(ctx, "view")
        return ctx

    async def list_rows(
        self,
        user: UserContext,
        table_id: int,
        raw_filters: Mapping[str, str | None] | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> RowPage:
        """One page of grid rows, filtered by table, permission and user filters."""
        ctx = await self._context(user, table_id)
        self._require(ctx, "view")
        pk = self._require_pk(ctx)

        columns = self._list_columns(ctx)
        where, params, applied = self._where(ctx, raw_filters)
        page, page_size = clamp_paging(page, page_size)

        result = await self._router.query(
            ctx.connection, ctx.table, columns, where, params, page, page_size
        )
        lookups = await self._lookups.resolve_lookups(ctx.connection, columns)

        return RowPage(
            columns=columns,
            rows=result.rows,
            total=result.total,
            page=page,
            page_size=page_size,
            primary_key=pk,
            lookups=lookups,
            filters=applied,
        )

    async def get_row(self, user: UserContext, table_id: int, pk_value: Any) -> dict[str, Any]:
        """One row with every configured column.

        Raises:
            NotFoundError: No such row, or the row is outside the user's filters.
        """
        ctx = await self._context(user, table_id)
        self._require(ctx, "view", "update")
        pk = self._require_pk(ctx)

        row = await self._router.get_row(
            ctx.connection,
            ctx.table,
            ctx.columns,
            pk,
            self._key_value(ctx, pk, pk_value),
            where=ctx.row_filter,
        )
        if row is None:
            raise NotFoundError("Row not found.")
        return row

    async def lookups(self, user: UserContext, table_id: int) -> dict[str, list[LookupOption]]:
        ctx = await self._context(user, table_id)
        self._require(ctx, "view")
        return await self._lookups.resolve_lookups(ctx.connection, ctx.columns)

    async def export_csv(
        self,
        user: UserContext,
        table_id: int,
        raw_filters: Mapping[str, str | None] | None = None,
        max_rows: int = EXPORT_MAX_ROWS,
    ) -> str:
        """CSV text of every row matching the list filters, up to ``max_rows``.

        The header row uses column display names.
        """
        ctx = await self._context(user, table_id)
        self._require(ctx, "view")
        self._require_pk(ctx)

        columns = self._list_columns(ctx)
        where, params, _ = self._where(ctx, raw_filters)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([c.label for c in columns])

        written = 0
        page = 1
        while written < max_rows:
            result = await self._router.query(
                ctx.connection, ctx.table, columns, where, params, page, MAX_PAGE_SIZE
            )
            for row in result.rows[: max_rows - written]:
                writer.writerow([_csv_value(row[c.column_name]) for c in columns])
                written += 1
            if len(result.rows) < MAX_PAGE_SIZE or page * MAX_PAGE_SIZE >= result.total:
                break
            page += 1

        logger.info("Exported %d rows from %s", written, ctx.table.qualified_name)
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update_row(
        self,
        user: UserContext,
        table_id: int,
        pk_value: Any,
        raw_values: Mapping[str, Any],
        request: RequestInfo | None = None,
    ) -> dict[str, Any]:
        """Update the editable columns present in ``raw_values``.

        Returns the row as stored after the update.

        Raises:
            NotFoundError: The row does not exist or is outside the user's filters.
        """
        ctx = await self._context(user, table_id)
        self._require(ctx, "update")
        pk = self._require_pk(ctx)
        key = self._key_value(ctx, pk, pk_value)

        editable = [
            c
            for c in ctx.columns
            if c.is_editable and not c.is_primary and c.column_name.lower() != pk.lower()
        ]
        values: dict[str, Any] = {}
        for col in editable:
            present, raw = _lookup_value(raw_values, col.column_name)
            if present:
                values[col.column_name] = raw

        async with self._router.unit_of_work(ctx.connection) as conn:
            old_row = await self._router.get_row(
                ctx.connection, ctx.table, ctx.columns, pk, key, where=ctx.row_filter, conn=conn
            )
            if old_row is None:
                raise NotFoundError("Row not found.")
            if not values:
                return old_row

            affected = await self._router.update_row(
                ctx.connection,
                ctx.table,
                editable,
                pk,
                key,
                values,
                where=ctx.row_filter,
                conn=conn,
            )
            if affected <= 0:
                raise NotFoundError("Row not found.")
            new_row = await self._router.get_row(
                ctx.connection, ctx.table, ctx.columns, pk, key, conn=conn
            )

        new_snapshot = new_row if new_row is not None else {**old_row, **values}
        await self._audit.log(
            user.user_id, OP_UPDATE, ctx.table, pk, key, old_row, new_snapshot, request
        )
        return new_snapshot

    async def create_row(
        self,
        user: UserContext,
        table_id: int,
        raw_values: Mapping[str, Any],
        request: RequestInfo | None = None,
    ) -> tuple[Any, dict[str, Any]]:
        """Insert a row from non-blank editable values plus column defaults.

        Returns the generated key and the row as stored.
        """
        ctx = await self._context(user, table_id)
        self._require(ctx, "create")
        pk = self._require_pk(ctx)

        values: dict[str, Any] = {}
        insert_columns: list[ColumnMeta] = []
        for col in ctx.columns:
            if not col.is_editable or col.is_primary:
                continue
            insert_columns.append(col)
            present, raw = _lookup_value(raw_values, col.column_name)
            if not present or raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            values[col.column_name] = raw

        for col in ctx.columns:
            if col.is_primary or col.column_name in values:
                continue
            expr = parse_default_expr(col.default_expr)
            if expr is None:
                continue
            values[col.column_name] = evaluate_default(
                expr, col.data_type, user.user_id, self._clock
            )
            if col not in insert_columns:
                insert_columns.append(col)

        async with self._router.unit_of_work(ctx.connection) as conn:
            key = await self._router.insert_row(
                ctx.connection, ctx.table, insert_columns, values, pk_column=pk, conn=conn
            )
            new_row = await self._router.get_row(
                ctx.connection, ctx.table, ctx.columns, pk, key, conn=conn
            )

        snapshot = new_row if new_row is not None else {**values, pk: key}
        await self._audit.log(user.user_id, OP_CREATE, ctx.table, pk, key, None, snapshot, request)
        return key, snapshot

    async def set_status(
        self,
        user: UserContext,
        table_id: int,
        pk_value: Any,
        status: Any,
        request: RequestInfo | None = None,
    ) -> dict[str, Any]:
        """Write the table's ``status`` column; allowed with update or delete."""
        ctx = await self._context(user, table_id)
        self._require(ctx, "update", "delete")
        pk = self._require_pk(ctx)
        key = self._key_value(ctx, pk, pk_value)

        status_col = ctx.column(STATUS_COLUMN)
        if status_col is None:
            raise BadRequestError("Status column not found.")
        values = {status_col.column_name: status}

        async with self._router.unit_of_work(ctx.connection) as conn:
            old_row = await self._router.get_row(
                ctx.connection, ctx.table, ctx.columns, pk, key, where=ctx.row_filter, conn=conn
            )
            if old_row is None:
                raise NotFoundError("Row not found.")
            affected = await self._router.update_row(
                ctx.connection,
                ctx.table,
                [status_col],
                pk,
                key,
                values,
                where=ctx.row_filter,
                conn=conn,
            )
            if affected <= 0:
                raise NotFoundError("Row not found.")
            new_row = await self._router.get_row(
                ctx.connection, ctx.table, ctx.columns, pk, key, conn=conn
            )

        new_snapshot = new_row if new_row is not None else {**old_row, **values}
        await self._audit.log(
            user.user_id, OP_SET_STATUS, ctx.table, pk, key, old_row, new_snapshot, request
        )
        return new_snapshot
