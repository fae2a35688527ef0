"""Tests for MetadataStore and the metadata records."""

import pytest

from conftest import ARTICLE, DISABLED_TAG, DRAFTS, INACTIVE_CATEGORY, TAG
from cmstools.metadata.models import ColumnMeta, TableMeta, parse_lookup_format


class TestParseLookupFormat:
    def test_plain(self):
        spec = parse_lookup_format("fk:Category:CategoryId:Name")
        assert (spec.table, spec.value_column, spec.text_column, spec.tree) == (
            "Category",
            "CategoryId",
            "Name",
            False,
        )
        assert spec.is_safe

    def test_tree_suffix_and_case(self):
        spec = parse_lookup_format("FK:dbo.Section:id:title:TREE")
        assert spec.tree
        assert spec.table == "dbo.Section"

    def test_not_a_lookup(self):
        assert parse_lookup_format(None) is None
        assert parse_lookup_format("N2") is None
        assert parse_lookup_format("fk:only:two") is None
        assert parse_lookup_format("fk:a::b") is None

    def test_unsafe_is_parsed_but_flagged(self):
        spec = parse_lookup_format("fk:tag;DROP TABLE x:id:label")
        assert spec is not None
        assert not spec.is_safe


class TestColumnMeta:
    def test_required_means_not_nullable_without_default(self):
        assert ColumnMeta(1, 1, "name", "nvarchar(10)", is_nullable=False).is_required
        assert not ColumnMeta(
            1, 1, "status", "nvarchar(10)", is_nullable=False, default_expr="CONST:x"
        ).is_required
        assert not ColumnMeta(1, 1, "note", "nvarchar(10)").is_required

    def test_label_falls_back_to_name(self):
        assert ColumnMeta(1, 1, "name", "nvarchar(10)").label == "name"
        assert ColumnMeta(1, 1, "name", "nvarchar(10)", display_name="Name").label == "Name"


class TestTableMeta:
    def test_qualified_name(self):
        assert TableMeta(1, 1, "Article").qualified_name == "dbo.Article"
        assert TableMeta(1, 1, "article", schema_name=None).qualified_name == "article"


class TestMetadataStore:
    @pytest.mark.asyncio
    async def test_get_table(self, store):
        table = await store.get_table(ARTICLE)
        assert table.table_name == "article"
        assert table.label == "Articles"
        assert table.connection_id == 1
        assert table.row_filter is None

        drafts = await store.get_table(DRAFTS)
        assert drafts.row_filter == "status = 'draft'"

    @pytest.mark.asyncio
    async def test_sparse_row_takes_column_defaults(self, store):
        tables = await store.get_tables_for_connection(2)
        category = tables[0]
        assert category.display_name is None
        assert category.label == "category"
        assert category.row_filter is None
        assert category.is_view is False

    @pytest.mark.asyncio
    async def test_disabled_or_missing_table_is_none(self, store):
        assert await store.get_table(DISABLED_TAG) is None
        assert await store.get_table(999) is None

    @pytest.mark.asyncio
    async def test_columns_ordered_by_sort_order(self, store):
        columns = await store.get_columns(ARTICLE)
        assert [c.column_name for c in columns][:3] == ["id", "name", "status"]
        assert columns[0].is_primary
        assert columns[1].is_filter and columns[1].is_editable
        assert columns[2].default_expr == "CONST:draft"

        tag_columns = await store.get_columns(TAG)
        assert [c.column_name for c in tag_columns] == ["id", "label"]

    @pytest.mark.asyncio
    async def test_list_columns(self, store):
        listed = await store.get_list_columns(ARTICLE)
        assert [c.column_name for c in listed] == ["id", "name", "status"]

    @pytest.mark.asyncio
    async def test_list_columns_fall_back_to_all(self, store):
        listed = await store.get_list_columns(TAG)
        assert [c.column_name for c in listed] == ["id", "label"]

    @pytest.mark.asyncio
    async def test_get_connection_only_active(self, store, target_url):
        main = await store.get_connection(1)
        assert main.name == "Main"
        assert main.provider == "sqlite"
        assert main.conn_string == target_url
        assert "conn_string" not in main.to_dict()

        assert await store.get_connection(2) is None
        assert await store.get_connection_name(2) == "Legacy"
        assert await store.get_connection_name(99) is None

    @pytest.mark.asyncio
    async def test_get_all_connections(self, store):
        active = await store.get_all_connections()
        assert [c.name for c in active] == ["Main"]

        everything = await store.get_all_connections(include_inactive=True)
        assert [(c.name, c.is_active) for c in everything] == [
            ("Main", True),
            ("Legacy", False),
        ]

    @pytest.mark.asyncio
    async def test_tables_for_connection(self, store):
        tables = await store.get_tables_for_connection(1)
        assert [t.id for t in tables] == [ARTICLE, DRAFTS, TAG]

        inactive = await store.get_tables_for_connection(2)
        assert [t.id for t in inactive] == [INACTIVE_CATEGORY]
