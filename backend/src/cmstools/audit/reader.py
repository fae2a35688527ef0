"""Read side of the audit trail."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from cmstools.metadata.schema import cms_audit_log, cms_user

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500


@dataclass
class AuditEntry:
    id: int
    user_id: int | None
    username: str | None
    operation: str
    connection_name: str
    schema_name: str | None
    table_name: str
    primary_key_column: str | None
    primary_key_value: str | None
    ip_address: str | None
    user_agent: str | None
    old_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    created_at_utc: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "username": self.username,
            "operation": self.operation,
            "connectionName": self.connection_name,
            "schemaName": self.schema_name,
            "tableName": self.table_name,
            "primaryKeyColumn": self.primary_key_column,
            "primaryKeyValue": self.primary_key_value,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "oldValues": self.old_values,
            "newValues": self.new_values,
            "createdAtUtc": self.created_at_utc.isoformat() if self.created_at_utc else None,
        }


@dataclass
class AuditPage:
    entries: list[AuditEntry] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE


def _decode(raw: str | None) -> dict[str, Any] | None:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Undecodable audit snapshot: %.80s", raw)
        return {"_raw": raw}
    return value if isinstance(value, dict) else {"_value": value}


def _to_entry(row: Any) -> AuditEntry:
    return AuditEntry(
        id=row["id"],
        user_id=row["user_id"],
        username=row["username"],
        operation=row["operation"],
        connection_name=row["connection_name"],
        schema_name=row["schema_name"],
        table_name=row["table_name"],
        primary_key_column=row["primary_key_column"],
        primary_key_value=row["primary_key_value"],
        ip_address=row["ip_address"],
        user_agent=row["user_agent"],
        old_values=_decode(row["old_values"]),
        new_values=_decode(row["new_values"]),
        created_at_utc=row["created_at_utc"],
    )


def _start_of(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


class AuditLogReader:
    """Paged, filtered listing of audit entries, newest first."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine

    def _base(self):
        log = cms_audit_log
        return select(
            *log.c,
            cms_user.c.username,
        ).select_from(log.outerjoin(cms_user, cms_user.c.id == log.c.user_id))

    async def list_entries(
        self,
        operation: str | None = None,
        table: str | None = None,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> AuditPage:
        """List entries matching every given filter.

        Args:
            operation: Exact operation name
            table: Substring of the table name or of "schema.table"
            date_from: Inclusive lower bound
            date_to: Inclusive upper bound; a plain date covers that whole day
            page: 1-based page number
            page_size: Clamped to [1, 500]; out of range becomes 100
        """
        page = page if page >= 1 else 1
        if page_size < 1 or page_size > MAX_PAGE_SIZE:
            page_size = DEFAULT_PAGE_SIZE

        log = cms_audit_log
        conditions = []
        if operation and operation.strip():
            conditions.append(log.c.operation == operation.strip())
        if table and table.strip():
            pattern = f"%{table.strip()}%"
            conditions.append(
                log.c.table_name.like(pattern)
                | (log.c.schema_name + "." + log.c.table_name).like(pattern)
            )
        if date_from is not None:
            conditions.append(log.c.created_at_utc >= _start_of(date_from))
        if date_to is not None:
            if isinstance(date_to, datetime):
                conditions.append(log.c.created_at_utc <= date_to)
            else:
                conditions.append(log.c.created_at_utc < _start_of(date_to) + timedelta(days=1))

        query = self._base().where(*conditions)
        count_query = select(func.count()).select_from(log).where(*conditions)
        query = (
            query.order_by(log.c.created_at_utc.desc(), log.c.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        async with self._engine.connect() as conn:
            rows = (await conn.execute(query)).mappings().all()
            total = (await conn.execute(count_query)).scalar_one()

        return AuditPage(
            entries=[_to_entry(r) for r in rows],
            total=int(total),
            page=page,
            page_size=page_size,
        )

    async def get_entry(self, entry_id: int) -> AuditEntry | None:
        query = self._base().where(cms_audit_log.c.id == entry_id)
        async with self._engine.connect() as conn:
            row = (await conn.execute(query)).mappings().first()
        return _to_entry(row) if row else None
