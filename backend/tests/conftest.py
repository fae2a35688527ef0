"""Shared fixtures: a seeded metadata database and a seeded target database.

Both live in per-test SQLite files. The metadata database describes one
active connection ("Main") pointing at the target database, plus an
inactive one ("Legacy") pointing at the same file.

Managed tables:
    5  article            all columns, Editor/Viewer/Publisher grants
    6  article (drafts)   table row filter "status = 'draft'"
    7  category           on the inactive connection
    8  tag                disabled
    9  tag                no is_list columns, no grants
"""

from datetime import UTC, datetime

import pytest
import pytest_asyncio
import sqlalchemy as sa

from cmstools.audit.logger import AuditLogger
from cmstools.auth.permissions import PermissionResolver
from cmstools.lookups.cache import MemoryLookupCache
from cmstools.lookups.resolver import LookupResolver
from cmstools.metadata.schema import (
    cms_column,
    cms_connection,
    cms_role,
    cms_table,
    cms_table_permission,
    cms_user,
    cms_user_role,
    metadata,
)
from cmstools.metadata.store import MetadataStore
from cmstools.persistence.engines import EngineRegistry, create_async_engine_pooled
from cmstools.router.router import QueryRouter
from cmstools.services.data import DataService

ARTICLE = 5
DRAFTS = 6
INACTIVE_CATEGORY = 7
DISABLED_TAG = 8
TAG = 9

ALICE = 1  # Editor
BOB = 2  # Viewer + Publisher
CAROL = 3  # inactive role only
DAVE = 4  # no roles

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

TARGET_DDL = [
    """
    CREATE TABLE article (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        status TEXT,
        owner_id INTEGER,
        category_id INTEGER,
        author_id INTEGER,
        tag_id INTEGER,
        price NUMERIC,
        published_on TEXT,
        is_featured INTEGER NOT NULL DEFAULT 0,
        created_at TEXT,
        slug TEXT UNIQUE
    )
    """,
    "CREATE TABLE category (id INTEGER PRIMARY KEY, name TEXT NOT NULL, parent_id INTEGER)",
    "CREATE TABLE author (id INTEGER PRIMARY KEY, full_name TEXT NOT NULL, sort_order INTEGER)",
    "CREATE TABLE tag (id INTEGER PRIMARY KEY, label TEXT NOT NULL)",
]

TARGET_ROWS = [
    """
    INSERT INTO article
        (id, name, status, owner_id, category_id, author_id, tag_id, price,
         published_on, is_featured, created_at, slug)
    VALUES
        (1, 'Alpha', 'draft', 1, 2, 1, 1, 9.5, '2024-01-15', 1, '2024-01-15 08:00:00', 'alpha'),
        (2, 'Beta', 'published', 2, 3, 2, NULL, 12, '2024-02-01', 0, '2024-02-01 09:30:00', 'beta'),
        (3, 'Gamma', 'draft', 2, 4, NULL, 2, NULL, NULL, 0, '2024-03-10 10:00:00', 'gamma')
    """,
    """
    INSERT INTO category (id, name, parent_id) VALUES
        (1, 'News', NULL), (2, 'Local', 1), (3, 'World', 1), (4, 'Sports', NULL)
    """,
    "INSERT INTO author (id, full_name, sort_order) VALUES (1, 'Zed', 1), (2, 'Amy', 2)",
    "INSERT INTO tag (id, label) VALUES (1, 'python'), (2, 'async')",
]


def _column(table_id, name, data_type, sort_order, **flags):
    row = {
        "table_id": table_id,
        "column_name": name,
        "data_type": data_type,
        "sort_order": sort_order,
        "display_name": None,
        "is_nullable": True,
        "is_primary": False,
        "is_list": False,
        "is_editable": False,
        "is_filter": False,
        "width": None,
        "format": None,
        "default_expr": None,
    }
    row.update(flags)
    return row


def article_columns(table_id):
    return [
        _column(table_id, "id", "int", 1, display_name="ID", is_primary=True,
                is_list=True, is_nullable=False),
        _column(table_id, "name", "nvarchar(200)", 2, display_name="Name", is_list=True,
                is_editable=True, is_filter=True, is_nullable=False),
        _column(table_id, "status", "nvarchar(20)", 3, display_name="Status", is_list=True,
                is_editable=True, default_expr="CONST:draft"),
        _column(table_id, "owner_id", "int", 4, is_editable=True, is_filter=True,
                default_expr="CURRENT_USER_ID"),
        _column(table_id, "category_id", "int", 5, is_editable=True,
                format="fk:category:id:name"),
        _column(table_id, "author_id", "int", 6, is_editable=True,
                format="fk:author:id:full_name"),
        _column(table_id, "tag_id", "int", 7, is_editable=True, format="fk:tag:id:label"),
        _column(table_id, "price", "decimal(10,2)", 8, is_editable=True),
        _column(table_id, "published_on", "date", 9, is_editable=True, is_filter=True),
        _column(table_id, "is_featured", "bit", 10, is_editable=True, is_filter=True,
                is_nullable=False, default_expr="CONST:0"),
        _column(table_id, "created_at", "datetime", 11, is_filter=True,
                default_expr="UTC_NOW"),
        _column(table_id, "slug", "nvarchar(100)", 12, is_editable=True),
    ]


def _seed(conn, table, rows):
    """Insert rows one statement each; rows may omit columns that have defaults."""
    for row in rows:
        conn.execute(sa.insert(table).values(**row))


def create_target_db(path) -> str:
    """Create and fill the target database; returns its URL."""
    url = f"sqlite:///{path}"
    engine = sa.create_engine(url)
    try:
        with engine.begin() as conn:
            for statement in TARGET_DDL + TARGET_ROWS:
                conn.execute(sa.text(statement))
    finally:
        engine.dispose()
    return url


def create_metadata_db(path, target_url: str) -> str:
    """Create and fill the metadata database; returns its URL."""
    url = f"sqlite:///{path}"
    engine = sa.create_engine(url)
    try:
        metadata.create_all(engine)
        with engine.begin() as conn:
            _seed(
                conn,
                cms_connection,
                [
                    {"id": 1, "name": "Main", "provider": "sqlite",
                     "conn_string": target_url, "is_active": True, "sort_order": 1},
                    {"id": 2, "name": "Legacy", "provider": "sqlite",
                     "conn_string": target_url, "is_active": False, "sort_order": 2},
                ],
            )
            _seed(
                conn,
                cms_table,
                [
                    {"id": ARTICLE, "connection_id": 1, "schema_name": None,
                     "table_name": "article", "display_name": "Articles",
                     "is_enabled": True, "sort_order": 1},
                    {"id": DRAFTS, "connection_id": 1, "schema_name": "main",
                     "table_name": "article", "display_name": "Draft articles",
                     "is_enabled": True, "row_filter": "status = 'draft'", "sort_order": 2},
                    {"id": INACTIVE_CATEGORY, "connection_id": 2, "schema_name": None,
                     "table_name": "category", "is_enabled": True},
                    {"id": DISABLED_TAG, "connection_id": 1, "schema_name": None,
                     "table_name": "tag", "is_enabled": False},
                    {"id": TAG, "connection_id": 1, "schema_name": None,
                     "table_name": "tag", "display_name": "Tags", "is_enabled": True,
                     "sort_order": 3},
                ],
            )
            _seed(
                conn,
                cms_column,
                article_columns(ARTICLE)
                + [
                    _column(DRAFTS, "id", "int", 1, is_primary=True, is_list=True),
                    _column(DRAFTS, "name", "nvarchar(200)", 2, is_list=True,
                            is_editable=True),
                    _column(DRAFTS, "status", "nvarchar(20)", 3, is_list=True,
                            is_editable=True),
                    _column(INACTIVE_CATEGORY, "id", "int", 1, is_primary=True),
                    _column(INACTIVE_CATEGORY, "name", "nvarchar(50)", 2),
                    _column(TAG, "label", "nvarchar(50)", 2, is_editable=True),
                    _column(TAG, "id", "int", 1),
                ],
            )
            _seed(
                conn,
                cms_user,
                [
                    {"id": ALICE, "username": "alice"},
                    {"id": BOB, "username": "bob"},
                    {"id": CAROL, "username": "carol"},
                    {"id": DAVE, "username": "dave"},
                ],
            )
            _seed(
                conn,
                cms_role,
                [
                    {"id": 1, "name": "Editor", "is_active": True},
                    {"id": 2, "name": "Viewer", "is_active": True},
                    {"id": 3, "name": "Ghost", "is_active": False},
                    {"id": 4, "name": "Publisher", "is_active": True},
                ],
            )
            _seed(
                conn,
                cms_user_role,
                [
                    {"user_id": ALICE, "role_id": 1},
                    {"user_id": BOB, "role_id": 2},
                    {"user_id": BOB, "role_id": 4},
                    {"user_id": CAROL, "role_id": 3},
                ],
            )
            _seed(
                conn,
                cms_table_permission,
                [
                    {"table_id": ARTICLE, "role_id": 1, "can_view": True,
                     "can_create": True, "can_update": True},
                    {"table_id": ARTICLE, "role_id": 2, "can_view": True,
                     "row_filter": "owner_id = 2"},
                    {"table_id": ARTICLE, "role_id": 3, "can_view": True,
                     "can_create": True, "can_update": True, "can_delete": True},
                    {"table_id": ARTICLE, "role_id": 4, "can_publish": True,
                     "row_filter": "status <> 'archived'"},
                    {"table_id": DRAFTS, "role_id": 1, "can_view": True,
                     "can_update": True},
                ],
            )
    finally:
        engine.dispose()
    return url


@pytest.fixture
def target_url(tmp_path) -> str:
    return create_target_db(tmp_path / "target.db")


@pytest.fixture
def metadata_url(tmp_path, target_url) -> str:
    return create_metadata_db(tmp_path / "meta.db", target_url)


@pytest_asyncio.fixture
async def meta_engine(metadata_url):
    engine = create_async_engine_pooled(metadata_url)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def engines():
    registry = EngineRegistry()
    yield registry
    await registry.dispose()


@pytest.fixture
def store(meta_engine) -> MetadataStore:
    return MetadataStore(meta_engine)


@pytest.fixture
def router(engines) -> QueryRouter:
    return QueryRouter(engines)


@pytest.fixture
def lookup_cache() -> MemoryLookupCache:
    return MemoryLookupCache()


@pytest.fixture
def data_service(meta_engine, store, router, engines, lookup_cache) -> DataService:
    return DataService(
        store=store,
        permissions=PermissionResolver(meta_engine),
        router=router,
        lookups=LookupResolver(engines, lookup_cache),
        audit=AuditLogger(meta_engine, store),
        clock=lambda: FIXED_NOW,
    )


def count_target_rows(target_url: str, where: str = "1=1") -> int:
    """Row count of the article table, read with a separate sync engine."""
    engine = sa.create_engine(target_url)
    try:
        with engine.connect() as conn:
            return conn.execute(sa.text(f"SELECT COUNT(*) FROM article WHERE {where}")).scalar_one()
    finally:
        engine.dispose()
