"""Tests for lookup resolution and the lookup cache."""

import pytest
import sqlalchemy as sa

from cmstools.lookups.cache import LookupKey, LookupOption, MemoryLookupCache, NullLookupCache
from cmstools.lookups.resolver import LookupResolver, indent_label, is_tree_lookup
from cmstools.metadata.models import ColumnMeta, ConnectionMeta, LookupSpec


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def lookup_column(name, fmt):
    return ColumnMeta(id=0, table_id=5, column_name=name, data_type="int", format=fmt)


@pytest.fixture
def connection(target_url):
    return ConnectionMeta(id=1, name="Main", provider="sqlite", conn_string=target_url)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryLookupCache(ttl_seconds=60, clock=clock)


@pytest.fixture
def resolver(engines, cache):
    return LookupResolver(engines, cache)


def run_on_target(target_url, statement):
    engine = sa.create_engine(target_url)
    try:
        with engine.begin() as conn:
            conn.execute(sa.text(statement))
    finally:
        engine.dispose()


class TestMemoryLookupCache:
    def test_get_set_and_expiry(self, cache, clock):
        key = LookupKey(1, "tag", "id", "label")
        assert cache.get(key) is None

        cache.set(key, [LookupOption(1, "python")])
        assert cache.get(key) == [LookupOption(1, "python")]

        clock.now += 59
        assert cache.get(key) is not None
        clock.now += 1
        assert cache.get(key) is None
        assert len(cache) == 0

    def test_keys_are_distinct_per_text_column(self, cache):
        cache.set(LookupKey(1, "tag", "id", "label"), [LookupOption(1, "python")])
        assert cache.get(LookupKey(1, "tag", "id", "slug")) is None
        assert cache.get(LookupKey(2, "tag", "id", "label")) is None

    def test_returned_list_is_a_copy(self, cache):
        key = LookupKey(1, "tag", "id", "label")
        cache.set(key, [LookupOption(1, "python")])
        cache.get(key).append(LookupOption(2, "extra"))
        assert len(cache.get(key)) == 1

    def test_clear(self, cache):
        cache.set(LookupKey(1, "tag", "id", "label"), [])
        cache.clear()
        assert len(cache) == 0

    def test_null_cache_stores_nothing(self):
        cache = NullLookupCache()
        key = LookupKey(1, "tag", "id", "label")
        cache.set(key, [LookupOption(1, "python")])
        assert cache.get(key) is None


class TestTreeDetection:
    def test_explicit_suffix(self):
        assert is_tree_lookup(LookupSpec("section", "id", "title", tree=True))

    def test_category_table_name(self):
        assert is_tree_lookup(LookupSpec("[dbo].[ProductCategories]", "id", "name"))
        assert not is_tree_lookup(LookupSpec("dbo.Author", "id", "name"))

    def test_indent(self):
        assert indent_label("Local", 0) == "Local"
        assert indent_label("Local", 2) == "— — Local"


class TestLookupResolver:
    @pytest.mark.asyncio
    async def test_flat_lookup_uses_sort_order(self, resolver, connection):
        options = await resolver.get_options(connection, LookupSpec("author", "id", "full_name"))
        assert [(o.value, o.text) for o in options] == [(1, "Zed"), (2, "Amy")]

    @pytest.mark.asyncio
    async def test_flat_lookup_without_sort_order_column(self, resolver, connection):
        options = await resolver.get_options(connection, LookupSpec("tag", "id", "label"))
        assert [o.text for o in options] == ["async", "python"]

    @pytest.mark.asyncio
    async def test_tree_lookup(self, resolver, connection):
        options = await resolver.get_options(connection, LookupSpec("category", "id", "name"))
        assert [(o.value, o.text, o.depth) for o in options] == [
            (1, "News", 0),
            (2, "— Local", 1),
            (3, "— World", 1),
            (4, "Sports", 0),
        ]

    @pytest.mark.asyncio
    async def test_results_are_cached(self, resolver, connection, target_url, clock):
        spec = LookupSpec("tag", "id", "label")
        first = await resolver.get_options(connection, spec)

        run_on_target(target_url, "INSERT INTO tag (id, label) VALUES (3, 'sql')")
        assert await resolver.get_options(connection, spec) == first

        clock.now += 61
        refreshed = await resolver.get_options(connection, spec)
        assert [o.text for o in refreshed] == ["async", "python", "sql"]

    @pytest.mark.asyncio
    async def test_failed_query_yields_empty_and_is_not_cached(
        self, resolver, connection, cache, target_url
    ):
        spec = LookupSpec("region", "id", "name")
        assert await resolver.get_options(connection, spec) == []
        assert len(cache) == 0

        run_on_target(target_url, "CREATE TABLE region (id INTEGER PRIMARY KEY, name TEXT)")
        run_on_target(target_url, "INSERT INTO region (id, name) VALUES (1, 'EU')")
        options = await resolver.get_options(connection, spec)
        assert [o.text for o in options] == ["EU"]

    @pytest.mark.asyncio
    async def test_resolve_lookups_per_column(self, resolver, connection):
        columns = [
            lookup_column("author_id", "fk:author:id:full_name"),
            lookup_column("region_id", "fk:region:id:name"),
            lookup_column("unsafe_id", "fk:tag;DELETE FROM tag:id:label"),
            lookup_column("price", "N2"),
        ]
        result = await resolver.resolve_lookups(connection, columns)

        assert set(result) == {"author_id", "region_id"}
        assert [o.text for o in result["author_id"]] == ["Zed", "Amy"]
        assert result["region_id"] == []

    @pytest.mark.asyncio
    async def test_null_cache_always_queries(self, engines, connection, target_url):
        resolver = LookupResolver(engines, NullLookupCache())
        spec = LookupSpec("tag", "id", "label")
        assert len(await resolver.get_options(connection, spec)) == 2

        run_on_target(target_url, "DELETE FROM tag WHERE id = 1")
        assert len(await resolver.get_options(connection, spec)) == 1

    @pytest.mark.asyncio
    async def test_flat_and_tree_cached_separately(self, resolver, connection):
        flat = await resolver.get_options(connection, LookupSpec("author", "id", "full_name"))
        assert [o.text for o in flat] == ["Zed", "Amy"]

        # author has no parent_id column, so the tree query fails
        tree = await resolver.get_options(
            connection, LookupSpec("author", "id", "full_name", tree=True)
        )
        assert tree == []

    @pytest.mark.asyncio
    async def test_invalid_connection_string_yields_empty(self, resolver, cache):
        broken = ConnectionMeta(
            id=3, name="Broken", provider="sqlite", conn_string="Server=db;Database=shop"
        )
        columns = [lookup_column("author_id", "fk:author:id:full_name")]
        assert await resolver.resolve_lookups(broken, columns) == {"author_id": []}
        assert len(cache) == 0
