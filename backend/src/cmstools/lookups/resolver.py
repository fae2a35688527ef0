"""Resolve ``fk:`` column formats into option lists.

A column formatted ``fk:<table>:<valueColumn>:<textColumn>`` renders as a
select whose options come from the referenced table on the same target
connection. Referenced tables named like a category table, or formats
ending in ``:tree``, are read as a parent_id hierarchy and labelled with
their depth.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from cmstools.errors import BadRequestError
from cmstools.lookups.cache import LookupCache, LookupKey, LookupOption
from cmstools.metadata.models import ColumnMeta, ConnectionMeta, LookupSpec
from cmstools.persistence.dialects import Dialect
from cmstools.persistence.engines import EngineRegistry

logger = logging.getLogger(__name__)

MAX_LOOKUP_ROWS = 2000
MAX_TREE_DEPTH = 32
PARENT_COLUMN = "parent_id"
SORT_COLUMN = "sort_order"
TREE_INDENT = "\u2014 "


def is_tree_lookup(spec: LookupSpec) -> bool:
    """Explicit ``:tree`` suffix, or a table named like a category table."""
    if spec.tree:
        return True
    name = spec.table.split(".")[-1].strip("[]").lower()
    return "categor" in name


def indent_label(label: str, depth: int) -> str:
    return f"{TREE_INDENT * depth}{label}"


class LookupResolver:
    """Loads lookup option lists through a LookupCache."""

    def __init__(self, engines: EngineRegistry, cache: LookupCache):
        self._engines = engines
        self._cache = cache

    @property
    def cache(self) -> LookupCache:
        return self._cache

    async def resolve_lookups(
        self, connection: ConnectionMeta, columns: list[ColumnMeta]
    ) -> dict[str, list[LookupOption]]:
        """Option lists keyed by column name, for every lookup column.

        Unsafe formats are skipped; a failed query yields an empty list for
        that column only. Cancelling the calling task cancels the pending
        query.
        """
        result: dict[str, list[LookupOption]] = {}
        for col in columns:
            spec = col.lookup
            if spec is None:
                continue
            if not spec.is_safe:
                logger.warning(
                    "Skipping lookup for column %s: unsafe format %r",
                    col.column_name,
                    col.format,
                )
                continue
            result[col.column_name] = await self.get_options(connection, spec)
        return result

    async def get_options(
        self, connection: ConnectionMeta, spec: LookupSpec
    ) -> list[LookupOption]:
        tree = is_tree_lookup(spec)
        key = LookupKey(connection.id, spec.table, spec.value_column, spec.text_column, tree)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        dialect = self._engines.dialect_for(connection)
        if tree:
            options = await self._load(connection, [self._tree_sql(dialect, spec)], spec)
        else:
            options = await self._load(connection, self._flat_sql(dialect, spec), spec)

        if options is None:
            return []
        self._cache.set(key, options)
        return options

    async def _load(
        self, connection: ConnectionMeta, statements: list[str], spec: LookupSpec
    ) -> list[LookupOption] | None:
        """Run statements in order until one succeeds; None if all fail."""
        try:
            engine = await self._engines.engine_for(connection)
        except BadRequestError as e:
            logger.warning("Lookup skipped for %s: %s", spec.table, e)
            return None
        last_error: Exception | None = None
        for sql in statements:
            try:
                async with engine.connect() as conn:
                    rows = (await conn.execute(text(sql))).all()
            except SQLAlchemyError as e:
                last_error = e
                continue
            return [
                LookupOption(
                    value=row[0],
                    text=indent_label("" if row[1] is None else str(row[1]), row[2]),
                    depth=row[2],
                )
                for row in rows
            ]

        logger.warning(
            "Lookup query failed for %s(%s, %s): %s",
            spec.table,
            spec.value_column,
            spec.text_column,
            last_error,
        )
        return None

    def _flat_sql(self, dialect: Dialect, spec: LookupSpec) -> list[str]:
        table = dialect.raw_path(spec.table, is_table=True)
        value = dialect.raw_path(spec.value_column)
        label = dialect.raw_path(spec.text_column)
        columns = f"{value}, {label}, 0"
        return [
            dialect.select_limited(
                columns,
                f"FROM {table} ORDER BY {dialect.quote(SORT_COLUMN)}, {label}",
                MAX_LOOKUP_ROWS,
            ),
            dialect.select_limited(columns, f"FROM {table} ORDER BY {label}", MAX_LOOKUP_ROWS),
        ]

    def _tree_sql(self, dialect: Dialect, spec: LookupSpec) -> str:
        table = dialect.raw_path(spec.table, is_table=True)
        value = dialect.raw_path(spec.value_column)
        label = dialect.raw_path(spec.text_column)
        parent = dialect.quote(PARENT_COLUMN)
        path_step = dialect.cast_long_text(
            dialect.concat("t.lk_path", "' > '", f"c.{label}")
        )
        rest = "FROM lookup_tree t ORDER BY t.lk_path"
        return (
            f"{dialect.recursive_with} lookup_tree (lk_value, lk_text, lk_depth, lk_path) AS ("
            f"SELECT r.{value}, r.{label}, 0, {dialect.cast_long_text(f'r.{label}')} "
            f"FROM {table} r WHERE r.{parent} IS NULL "
            "UNION ALL "
            f"SELECT c.{value}, c.{label}, t.lk_depth + 1, {path_step} "
            f"FROM {table} c JOIN lookup_tree t ON c.{parent} = t.lk_value "
            f"WHERE t.lk_depth < {MAX_TREE_DEPTH}"
            ") "
            + dialect.select_limited("t.lk_value, t.lk_text, t.lk_depth", rest, MAX_LOOKUP_ROWS)
        )
