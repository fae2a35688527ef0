"""Tests for the audit logger and reader."""

import json
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from conftest import ALICE, ARTICLE, DRAFTS
from cmstools.audit.logger import (
    OP_CREATE,
    OP_SET_STATUS,
    OP_UPDATE,
    AuditLogger,
    RequestInfo,
    serialize_snapshot,
)
from cmstools.audit.reader import AuditLogReader
from cmstools.metadata.models import TableMeta
from cmstools.metadata.store import MetadataStore
from cmstools.persistence.engines import create_async_engine_pooled

ARTICLE_TABLE = TableMeta(id=ARTICLE, connection_id=1, table_name="article", schema_name=None)
DRAFTS_TABLE = TableMeta(id=DRAFTS, connection_id=1, table_name="article", schema_name="main")


@pytest.fixture
def audit_logger(meta_engine, store):
    return AuditLogger(meta_engine, store)


@pytest.fixture
def reader(meta_engine):
    return AuditLogReader(meta_engine)


class TestRequestInfo:
    def test_forwarded_for_wins(self):
        info = RequestInfo.from_headers(
            "10.0.0.1", {"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "pytest"}
        )
        assert info.ip_address == "203.0.113.7"
        assert info.user_agent == "pytest"

    def test_peer_address_and_truncated_agent(self):
        info = RequestInfo.from_headers("10.0.0.1", {"user-agent": "x" * 500})
        assert info.ip_address == "10.0.0.1"
        assert len(info.user_agent) == 400


class TestSerializeSnapshot:
    def test_typed_values(self):
        raw = serialize_snapshot(
            {
                "price": Decimal("9.50"),
                "published_on": date(2024, 1, 15),
                "created_at": datetime(2024, 1, 15, 8, 0),
                "blob": b"\x00\x01",
                "name": "Åsa",
            }
        )
        assert json.loads(raw) == {
            "price": "9.50",
            "published_on": "2024-01-15",
            "created_at": "2024-01-15T08:00:00",
            "blob": "AAE=",
            "name": "Åsa",
        }

    def test_empty_is_none(self):
        assert serialize_snapshot(None) is None
        assert serialize_snapshot({}) is None


class TestAuditLogger:
    @pytest.mark.asyncio
    async def test_writes_entry(self, audit_logger, reader):
        ok = await audit_logger.log(
            ALICE,
            OP_UPDATE,
            ARTICLE_TABLE,
            "id",
            2,
            {"id": 2, "name": "Beta"},
            {"id": 2, "name": "X"},
            RequestInfo("203.0.113.7", "pytest"),
        )
        assert ok

        page = await reader.list_entries()
        assert page.total == 1
        entry = page.entries[0]
        assert entry.operation == "UPDATE"
        assert entry.user_id == ALICE
        assert entry.username == "alice"
        assert entry.connection_name == "Main"
        assert entry.table_name == "article"
        assert entry.primary_key_column == "id"
        assert entry.primary_key_value == "2"
        assert entry.ip_address == "203.0.113.7"
        assert entry.old_values == {"id": 2, "name": "Beta"}
        assert entry.new_values == {"id": 2, "name": "X"}
        assert isinstance(entry.created_at_utc, datetime)

    @pytest.mark.asyncio
    async def test_create_has_no_old_values(self, audit_logger, reader):
        await audit_logger.log(ALICE, OP_CREATE, ARTICLE_TABLE, "id", 4, None, {"id": 4})
        entry = (await reader.list_entries()).entries[0]
        assert entry.old_values is None
        assert entry.ip_address is None

    @pytest.mark.asyncio
    async def test_unknown_connection_falls_back_to_id(self, audit_logger, reader):
        orphan = TableMeta(id=99, connection_id=42, table_name="ghost", schema_name=None)
        assert await audit_logger.log(None, OP_CREATE, orphan, "id", 1, None, {"id": 1})
        entry = (await reader.list_entries()).entries[0]
        assert entry.connection_name == "42"
        assert entry.username is None

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, tmp_path):
        engine = create_async_engine_pooled(f"sqlite:///{tmp_path / 'empty.db'}")
        try:
            broken = AuditLogger(engine, MetadataStore(engine))
            assert await broken.log(ALICE, OP_UPDATE, ARTICLE_TABLE, "id", 1, {}, {}) is False
        finally:
            await engine.dispose()


class TestAuditLogReader:
    """Three entries: CREATE and UPDATE on article, SET_STATUS on main.article."""

    @pytest.mark.asyncio
    async def test_newest_first(self, audit_logger, reader):
        await self._seed(audit_logger)
        page = await reader.list_entries()
        assert [e.operation for e in page.entries] == ["SET_STATUS", "UPDATE", "CREATE"]
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_filter_by_operation(self, audit_logger, reader):
        await self._seed(audit_logger)
        page = await reader.list_entries(operation="UPDATE")
        assert [e.operation for e in page.entries] == ["UPDATE"]
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_filter_by_table(self, audit_logger, reader):
        await self._seed(audit_logger)
        assert (await reader.list_entries(table="artic")).total == 3
        assert (await reader.list_entries(table="main.art")).total == 1
        assert (await reader.list_entries(table="tag")).total == 0

    @pytest.mark.asyncio
    async def test_filter_by_date(self, audit_logger, reader):
        await self._seed(audit_logger)
        today = datetime.now(UTC).date()
        assert (await reader.list_entries(date_from=today, date_to=today)).total == 3
        assert (await reader.list_entries(date_to=today - timedelta(days=1))).total == 0
        assert (await reader.list_entries(date_from=today + timedelta(days=1))).total == 0

    @pytest.mark.asyncio
    async def test_paging(self, audit_logger, reader):
        await self._seed(audit_logger)
        page = await reader.list_entries(page=2, page_size=2)
        assert [e.operation for e in page.entries] == ["CREATE"]
        assert page.total == 3

        clamped = await reader.list_entries(page=0, page_size=1000)
        assert (clamped.page, clamped.page_size) == (1, 100)

    @pytest.mark.asyncio
    async def test_get_entry(self, audit_logger, reader):
        await self._seed(audit_logger)
        newest = (await reader.list_entries()).entries[0]
        entry = await reader.get_entry(newest.id)
        assert entry.to_dict()["operation"] == "SET_STATUS"
        assert entry.to_dict()["schemaName"] == "main"
        assert await reader.get_entry(9999) is None

    async def _seed(self, audit_logger):
        await audit_logger.log(ALICE, OP_CREATE, ARTICLE_TABLE, "id", 4, None, {"id": 4})
        await audit_logger.log(ALICE, OP_UPDATE, ARTICLE_TABLE, "id", 4, {"id": 4}, {"id": 4})
        await audit_logger.log(ALICE, OP_SET_STATUS, DRAFTS_TABLE, "id", 1, {"s": 1}, {"s": 0})
