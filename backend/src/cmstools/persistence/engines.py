"""Async engines for the metadata database and target connections.

Each target connection gets one pooled AsyncEngine, created on first use
and reused until its connection string changes or the registry is
disposed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from cmstools.config import to_async_url
from cmstools.errors import BadRequestError, ConfigurationError
from cmstools.metadata.models import ConnectionMeta
from cmstools.persistence.dialects import Dialect, get_dialect

logger = logging.getLogger(__name__)


def create_async_engine_pooled(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine with connection pooling.

    Accepts plain URLs ("sqlite:///cms.db", "postgresql://...") and rewrites
    them to an async driver. SQLite engines keep SQLAlchemy's own pool
    defaults; server databases get a bounded pool with pre-ping.

    Args:
        database_url: SQLAlchemy URL
        **kwargs: Forwarded to create_async_engine, overriding defaults
    """
    url = to_async_url(database_url)
    defaults: dict[str, Any] = {"echo": False}
    if not url.startswith("sqlite"):
        defaults.update(
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=300,
        )
    return create_async_engine(url, **{**defaults, **kwargs})


@dataclass
class ConnectionHealth:
    connection_id: int
    name: str
    provider: str
    ok: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "connectionId": self.connection_id,
            "name": self.name,
            "provider": self.provider,
            "ok": self.ok,
            "error": self.error,
        }


class EngineRegistry:
    """Lazily created engines, one per target connection."""

    def __init__(self, **engine_kwargs: Any):
        self._engines: dict[int, tuple[str, AsyncEngine]] = {}
        self._engine_kwargs = engine_kwargs
        self._lock = asyncio.Lock()

    def dialect_for(self, connection: ConnectionMeta) -> Dialect:
        return get_dialect(connection.provider)

    async def engine_for(self, connection: ConnectionMeta) -> AsyncEngine:
        """Return the engine for a connection, creating it on first use.

        Raises:
            BadRequestError: If the provider is not supported or the connection
                string is not a usable URL.
        """
        get_dialect(connection.provider)
        cached = self._engines.get(connection.id)
        if cached and cached[0] == connection.conn_string:
            return cached[1]

        async with self._lock:
            cached = self._engines.get(connection.id)
            if cached and cached[0] == connection.conn_string:
                return cached[1]
            if cached:
                logger.info("Connection %s changed; replacing engine", connection.name)
                del self._engines[connection.id]
                await cached[1].dispose()

            try:
                engine = create_async_engine_pooled(
                    connection.conn_string, **self._engine_kwargs
                )
            except (ConfigurationError, ArgumentError) as e:
                logger.error("Invalid connection string for %s: %s", connection.name, e)
                raise BadRequestError(
                    "Connection not available: invalid connection string"
                ) from e
            self._engines[connection.id] = (connection.conn_string, engine)
            logger.info(
                "Created engine for connection %s (%s)", connection.name, connection.provider
            )
            return engine

    async def check_health(self, connection: ConnectionMeta) -> ConnectionHealth:
        """Run SELECT 1 against a target connection."""
        try:
            engine = await self.engine_for(connection)
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("Health check failed for connection %s: %s", connection.name, e)
            return ConnectionHealth(
                connection_id=connection.id,
                name=connection.name,
                provider=connection.provider,
                ok=False,
                error=str(e),
            )
        return ConnectionHealth(
            connection_id=connection.id,
            name=connection.name,
            provider=connection.provider,
            ok=True,
        )

    async def dispose(self) -> None:
        engines = [engine for _, engine in self._engines.values()]
        self._engines.clear()
        for engine in engines:
            await engine.dispose()
