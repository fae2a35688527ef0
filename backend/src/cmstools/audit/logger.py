"""Audit trail for mutations of managed tables.

Entries go to the metadata database, never to the target database, and
are append-only. Writing an entry never raises: a mutation that already
succeeded must not be reported as failed because its audit write did not.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import Decimal
from typing import Any

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine

from cmstools.metadata.models import TableMeta
from cmstools.metadata.schema import cms_audit_log
from cmstools.metadata.store import MetadataStore

logger = logging.getLogger(__name__)

MAX_OPERATION_LENGTH = 50
MAX_USER_AGENT_LENGTH = 400
MAX_KEY_VALUE_LENGTH = 256

OP_CREATE = "CREATE"
OP_UPDATE = "UPDATE"
OP_SET_STATUS = "SET_STATUS"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


@dataclass
class RequestInfo:
    """Client details captured with an audit entry."""

    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def from_headers(cls, client_host: str | None, headers: Mapping[str, str]) -> RequestInfo:
        """Build from the peer address and request headers.

        The first X-Forwarded-For entry wins over the peer address. The user
        agent is cut to 400 characters.
        """
        ip = client_host
        forwarded = _header(headers, "X-Forwarded-For")
        if forwarded and forwarded.strip():
            ip = forwarded.split(",")[0].strip() or ip

        user_agent = _header(headers, "User-Agent")
        if user_agent is not None:
            user_agent = user_agent[:MAX_USER_AGENT_LENGTH] or None

        return cls(ip_address=ip, user_agent=user_agent)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return str(value)


def serialize_snapshot(values: Mapping[str, Any] | None) -> str | None:
    """JSON text for a snapshot, or None when there is nothing to store."""
    if not values:
        return None
    return json.dumps(dict(values), default=_json_default, ensure_ascii=False)


class AuditLogger:
    """Writes audit entries to cms_audit_log."""

    def __init__(self, engine: AsyncEngine, store: MetadataStore):
        self._engine = engine
        self._store = store

    async def log(
        self,
        user_id: int | None,
        operation: str,
        table: TableMeta,
        pk_column: str | None,
        pk_value: Any,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        request: RequestInfo | None = None,
    ) -> bool:
        """Record one mutation. Returns whether the entry was written.

        Failures are logged and swallowed.
        """
        try:
            connection_name = await self._store.get_connection_name(table.connection_id)
            if not connection_name or not connection_name.strip():
                connection_name = str(table.connection_id)

            request = request or RequestInfo()
            async with self._engine.begin() as conn:
                await conn.execute(
                    insert(cms_audit_log).values(
                        user_id=user_id,
                        operation=operation[:MAX_OPERATION_LENGTH],
                        connection_name=connection_name,
                        schema_name=table.schema_name,
                        table_name=table.table_name,
                        primary_key_column=pk_column,
                        primary_key_value=(
                            None if pk_value is None else str(pk_value)[:MAX_KEY_VALUE_LENGTH]
                        ),
                        ip_address=request.ip_address,
                        user_agent=request.user_agent,
                        old_values=serialize_snapshot(old_values),
                        new_values=serialize_snapshot(new_values),
                        created_at_utc=datetime.now(UTC).replace(tzinfo=None),
                    )
                )
        except Exception:
            logger.exception(
                "Audit write failed: %s on %s (pk=%s)",
                operation,
                table.qualified_name,
                pk_value,
            )
            return False
        return True
