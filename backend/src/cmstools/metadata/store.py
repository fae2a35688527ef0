"""Read access to the metadata database.

Connections, tables and columns are read with parameterized text()
statements on the shared async engine. Nothing here raises for missing
records: a missing or disabled table and a missing or inactive connection
come back as None and the calling layer decides what that means.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from cmstools.metadata.models import ColumnMeta, ConnectionMeta, TableMeta

logger = logging.getLogger(__name__)

_TABLE_COLUMNS = """
    id, connection_id, schema_name, table_name, display_name, primary_key,
    is_view, is_enabled, row_filter, custom_detail_url
"""

_COLUMN_COLUMNS = """
    id, table_id, column_name, display_name, data_type, is_nullable,
    is_primary, is_list, is_editable, is_filter, width, format, sort_order,
    default_expr
"""


def _row_to_connection(row: Any) -> ConnectionMeta:
    return ConnectionMeta(
        id=row["id"],
        name=row["name"],
        provider=(row["provider"] or "mssql").strip().lower(),
        conn_string=row["conn_string"],
        is_active=bool(row["is_active"]),
    )


def _row_to_table(row: Any) -> TableMeta:
    return TableMeta(
        id=row["id"],
        connection_id=row["connection_id"],
        schema_name=row["schema_name"],
        table_name=row["table_name"],
        display_name=row["display_name"],
        primary_key=row["primary_key"],
        is_view=bool(row["is_view"]),
        is_enabled=bool(row["is_enabled"]),
        row_filter=row["row_filter"],
        custom_detail_url=row["custom_detail_url"],
    )


def _row_to_column(row: Any) -> ColumnMeta:
    return ColumnMeta(
        id=row["id"],
        table_id=row["table_id"],
        column_name=row["column_name"],
        display_name=row["display_name"],
        data_type=row["data_type"],
        is_nullable=bool(row["is_nullable"]),
        is_primary=bool(row["is_primary"]),
        is_list=bool(row["is_list"]),
        is_editable=bool(row["is_editable"]),
        is_filter=bool(row["is_filter"]),
        width=row["width"],
        format=row["format"],
        sort_order=row["sort_order"] or 0,
        default_expr=row["default_expr"],
    )


class MetadataStore:
    """Accessor for connection, table and column metadata."""

    def __init__(self, engine: AsyncEngine):
        """Initialize the store.

        Args:
            engine: Async engine bound to the metadata database
        """
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def _fetch_all(self, sql: str, params: dict[str, Any] | None = None) -> list[Any]:
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql), params or {})
            return list(result.mappings().all())

    async def _fetch_one(self, sql: str, params: dict[str, Any]) -> Any | None:
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql), params)
            return result.mappings().first()

    # ------------------------------------------------------------------
    # Tables and columns
    # ------------------------------------------------------------------

    async def get_table(self, table_id: int) -> TableMeta | None:
        """Return an enabled table, or None if it is missing or disabled."""
        row = await self._fetch_one(
            f"SELECT {_TABLE_COLUMNS} FROM cms_table "
            "WHERE id = :id AND is_enabled = :enabled",
            {"id": table_id, "enabled": True},
        )
        return _row_to_table(row) if row else None

    async def get_columns(self, table_id: int, for_list: bool = False) -> list[ColumnMeta]:
        """Columns of a table ordered by sort_order, then name.

        Args:
            table_id: Table ID
            for_list: Only return columns flagged is_list
        """
        sql = f"SELECT {_COLUMN_COLUMNS} FROM cms_column WHERE table_id = :table_id"
        params: dict[str, Any] = {"table_id": table_id}
        if for_list:
            sql += " AND is_list = :is_list"
            params["is_list"] = True
        sql += " ORDER BY sort_order, column_name"

        rows = await self._fetch_all(sql, params)
        return [_row_to_column(r) for r in rows]

    async def get_list_columns(self, table_id: int) -> list[ColumnMeta]:
        """Grid columns: the is_list columns, or every column if none are flagged."""
        columns = await self.get_columns(table_id, for_list=True)
        if columns:
            return columns
        return await self.get_columns(table_id)

    async def get_tables_for_connection(self, connection_id: int) -> list[TableMeta]:
        rows = await self._fetch_all(
            f"SELECT {_TABLE_COLUMNS} FROM cms_table "
            "WHERE connection_id = :cid AND is_enabled = :enabled "
            "ORDER BY sort_order, table_name",
            {"cid": connection_id, "enabled": True},
        )
        return [_row_to_table(r) for r in rows]

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def get_connection(self, connection_id: int) -> ConnectionMeta | None:
        """Return an active connection, or None if it is missing or inactive."""
        row = await self._fetch_one(
            "SELECT id, name, provider, conn_string, is_active FROM cms_connection "
            "WHERE id = :id AND is_active = :active",
            {"id": connection_id, "active": True},
        )
        return _row_to_connection(row) if row else None

    async def get_connection_name(self, connection_id: int) -> str | None:
        """Display name of a connection, active or not."""
        row = await self._fetch_one(
            "SELECT name FROM cms_connection WHERE id = :id",
            {"id": connection_id},
        )
        return row["name"] if row else None

    async def get_all_connections(self, include_inactive: bool = False) -> list[ConnectionMeta]:
        sql = "SELECT id, name, provider, conn_string, is_active FROM cms_connection"
        params: dict[str, Any] = {}
        if not include_inactive:
            sql += " WHERE is_active = :active"
            params["active"] = True
        sql += " ORDER BY sort_order, name"

        rows = await self._fetch_all(sql, params)
        return [_row_to_connection(r) for r in rows]
