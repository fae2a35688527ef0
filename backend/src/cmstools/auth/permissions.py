"""Effective table permissions from role grants.

A user's permission on a table is the OR of every flag across the table
permission rows of the user's active roles. Row filters from those rows
are ANDed together. No matching row means no access.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from cmstools.router.filters import compose_where

logger = logging.getLogger(__name__)

ACTIONS = ("view", "create", "update", "delete", "publish", "schedule", "archive")

_GRANT_QUERY = """
    SELECT tp.role_id, tp.can_view, tp.can_create, tp.can_update, tp.can_delete,
           tp.can_publish, tp.can_schedule, tp.can_archive, tp.row_filter
    FROM cms_user_role ur
    JOIN cms_role r ON r.id = ur.role_id
    JOIN cms_table_permission tp ON tp.role_id = ur.role_id
    {join}
    WHERE ur.user_id = :user_id
      AND r.is_active = :active
      AND {table_match}
    ORDER BY tp.role_id
"""


@dataclass
class TablePermission:
    """Effective permission of one user on one table.

    Attributes:
        row_filter: Conjoined role row filters, None when no role narrows rows
    """

    can_view: bool = False
    can_create: bool = False
    can_update: bool = False
    can_delete: bool = False
    can_publish: bool = False
    can_schedule: bool = False
    can_archive: bool = False
    row_filter: str | None = None

    @classmethod
    def deny_all(cls) -> TablePermission:
        return cls()

    @classmethod
    def grant_all(cls) -> TablePermission:
        return cls(**{f"can_{action}": True for action in ACTIONS})

    def allows(self, action: str) -> bool:
        """Check one action ("view", "create", ..., "archive").

        Raises:
            ValueError: If the action is unknown.
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown action: {action}")
        return bool(getattr(self, f"can_{action}"))

    @property
    def any_granted(self) -> bool:
        return any(self.allows(a) for a in ACTIONS)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            f.name: getattr(self, f.name) for f in fields(self) if f.name.startswith("can_")
        }
        data["rowFilter"] = self.row_filter
        return data


def aggregate_grants(rows: list[Any]) -> TablePermission:
    """OR the flags of several grant rows and AND their distinct row filters."""
    if not rows:
        return TablePermission.deny_all()

    permission = TablePermission()
    filters: list[str] = []
    for row in rows:
        for action in ACTIONS:
            if row[f"can_{action}"]:
                setattr(permission, f"can_{action}", True)
        row_filter = (row["row_filter"] or "").strip()
        if row_filter and row_filter not in filters:
            filters.append(row_filter)

    if len(filters) == 1:
        permission.row_filter = filters[0]
    elif filters:
        permission.row_filter = compose_where(*filters)
    return permission


class PermissionResolver:
    """Resolves effective permissions against the metadata database."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine

    async def _fetch_grants(self, sql: str, params: dict[str, Any]) -> list[Any]:
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql), params)
            return list(result.mappings().all())

    async def get_effective_permission(
        self,
        user_id: int | None,
        table_id: int,
        is_super_admin: bool = False,
    ) -> TablePermission:
        """Effective permission of a user on a table.

        Args:
            user_id: Acting user; None is an anonymous caller and gets nothing
            table_id: Table ID
            is_super_admin: Grants everything without a role row filter. The
                table's own row filter is applied by the caller regardless.
        """
        if is_super_admin:
            return TablePermission.grant_all()
        if user_id is None:
            return TablePermission.deny_all()

        sql = _GRANT_QUERY.format(join="", table_match="tp.table_id = :table_id")
        rows = await self._fetch_grants(
            sql, {"user_id": user_id, "table_id": table_id, "active": True}
        )
        permission = aggregate_grants(rows)
        logger.debug(
            "Permission user=%s table=%s -> %s", user_id, table_id, permission.to_dict()
        )
        return permission

    async def get_effective_permission_by_name(
        self,
        user_id: int | None,
        connection_name: str,
        schema_name: str | None,
        table_name: str,
        is_super_admin: bool = False,
    ) -> TablePermission:
        """Same as get_effective_permission, addressing the table by name."""
        if is_super_admin:
            return TablePermission.grant_all()
        if user_id is None:
            return TablePermission.deny_all()

        join = (
            "JOIN cms_table t ON t.id = tp.table_id "
            "JOIN cms_connection c ON c.id = t.connection_id"
        )
        match = "c.name = :connection_name AND t.table_name = :table_name"
        params: dict[str, Any] = {
            "user_id": user_id,
            "active": True,
            "connection_name": connection_name,
            "table_name": table_name,
        }
        if schema_name:
            match += " AND t.schema_name = :schema_name"
            params["schema_name"] = schema_name
        else:
            match += " AND t.schema_name IS NULL"

        rows = await self._fetch_grants(_GRANT_QUERY.format(join=join, table_match=match), params)
        return aggregate_grants(rows)
