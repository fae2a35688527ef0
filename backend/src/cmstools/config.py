"""Runtime configuration and database URL helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass

from cmstools.errors import ConfigurationError

_TRUTHY = ("1", "true", "yes", "on")

# Async driver each URL scheme is rewritten to. The metadata database and
# every target connection go through SQLAlchemy's asyncio extension.
_ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgresql": "postgresql+psycopg",
    "postgres": "postgresql+psycopg",
    "mssql": "mssql+aioodbc",
}

_SYNC_DRIVERS = {
    "sqlite+aiosqlite": "sqlite",
    "postgresql+psycopg": "postgresql+psycopg",
    "postgresql+asyncpg": "postgresql+psycopg",
    "mssql+aioodbc": "mssql+pyodbc",
}


def _split_scheme(url: str) -> tuple[str, str]:
    if "://" not in url:
        raise ConfigurationError(f"Not a database URL: {url!r}")
    scheme, rest = url.split("://", 1)
    return scheme, rest


def to_async_url(url: str) -> str:
    """Rewrite a database URL so SQLAlchemy picks an async driver.

    URLs that already name a driver (``scheme+driver://``) are kept.

    Example: to_async_url("sqlite:///cms.db") -> "sqlite+aiosqlite:///cms.db"
    """
    scheme, rest = _split_scheme(url)
    if "+" in scheme:
        return url
    driver = _ASYNC_DRIVERS.get(scheme.lower())
    if not driver:
        raise ConfigurationError(f"Unsupported database URL scheme: {scheme}")
    return f"{driver}://{rest}"


def to_sync_url(url: str) -> str:
    """Inverse of to_async_url, for Alembic and other sync tooling."""
    scheme, rest = _split_scheme(url)
    driver = _SYNC_DRIVERS.get(scheme.lower())
    if driver:
        return f"{driver}://{rest}"
    if scheme.lower() in ("postgresql", "postgres"):
        return f"postgresql+psycopg://{rest}"
    return url


@dataclass
class Settings:
    """Application settings.

    Attributes:
        database_url: URL of the metadata database (connections, tables,
            columns, roles, permissions, audit log)
        secret_key: HS256 key for access tokens
        disable_auth: Accept X-CMS-User-Id instead of a bearer token (dev only)
        lookup_ttl_minutes: Lifetime of cached lookup option lists
        expose_db_errors: Include raw database messages in HTTP error bodies
        log_level: Root log level for entry points
    """

    database_url: str
    secret_key: str = "dev-secret-key-change-in-production"
    disable_auth: bool = False
    lookup_ttl_minutes: int = 20
    expose_db_errors: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """Create settings from environment variables.

        Resolution order for the metadata database:
        1. CMSTOOLS_DATABASE_URL
        2. DATABASE_URL

        Raises:
            ConfigurationError: If no metadata database URL is configured.
        """
        url = os.environ.get("CMSTOOLS_DATABASE_URL") or os.environ.get("DATABASE_URL")
        if not url:
            raise ConfigurationError(
                "Missing metadata database URL: set CMSTOOLS_DATABASE_URL"
            )

        ttl_raw = os.environ.get("CMSTOOLS_LOOKUP_TTL_MINUTES", "20")
        try:
            ttl = int(ttl_raw)
        except ValueError:
            raise ConfigurationError(
                f"CMSTOOLS_LOOKUP_TTL_MINUTES must be an integer, got {ttl_raw!r}"
            )

        return cls(
            database_url=url,
            secret_key=os.environ.get(
                "CMSTOOLS_SECRET_KEY", "dev-secret-key-change-in-production"
            ),
            disable_auth=os.environ.get("CMSTOOLS_DISABLE_AUTH", "").lower() in _TRUTHY,
            lookup_ttl_minutes=ttl,
            expose_db_errors=os.environ.get("CMSTOOLS_EXPOSE_DB_ERRORS", "").lower() in _TRUTHY,
            log_level=os.environ.get("CMSTOOLS_LOG_LEVEL", "INFO").upper(),
        )

    @property
    def metadata_url(self) -> str:
        """Metadata database URL with an async driver."""
        return to_async_url(self.database_url)

    @property
    def sync_url(self) -> str:
        """Metadata database URL with a sync driver (Alembic)."""
        return to_sync_url(self.metadata_url)
