"""Metadata records: connections, tables and columns."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

# Identifiers taken from lookup format strings are spliced into SQL, so they
# are restricted to letters, digits, underscore, dot and brackets.
SAFE_IDENTIFIER = re.compile(r"^[A-Za-z0-9_.\[\]]+$")

LOOKUP_PREFIX = "fk:"


@dataclass
class ConnectionMeta:
    """A target database that managed tables live in.

    Attributes:
        id: Connection ID
        name: Display name, denormalised into audit entries
        provider: Dialect tag ("mssql", "sqlite", "postgresql")
        conn_string: SQLAlchemy URL of the target database
        is_active: Inactive connections disable every table that uses them
    """

    id: int
    name: str
    provider: str
    conn_string: str
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Public view; the connection string stays server-side."""
        return {
            "id": self.id,
            "name": self.name,
            "provider": self.provider,
            "isActive": self.is_active,
        }


@dataclass
class TableMeta:
    """A manageable table or view in a target connection.

    Attributes:
        row_filter: Raw boolean SQL fragment ANDed into every query
        primary_key: Optional primary key override
    """

    id: int
    connection_id: int
    table_name: str
    schema_name: str | None = "dbo"
    display_name: str | None = None
    primary_key: str | None = None
    is_view: bool = False
    is_enabled: bool = True
    row_filter: str | None = None
    custom_detail_url: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.table_name

    @property
    def qualified_name(self) -> str:
        if self.schema_name:
            return f"{self.schema_name}.{self.table_name}"
        return self.table_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "connectionId": self.connection_id,
            "schemaName": self.schema_name,
            "tableName": self.table_name,
            "displayName": self.display_name,
            "primaryKey": self.primary_key,
            "isView": self.is_view,
            "rowFilter": self.row_filter,
            "customDetailUrl": self.custom_detail_url,
        }


@dataclass(frozen=True)
class LookupSpec:
    """Parsed ``fk:<table>:<valueColumn>:<textColumn>[:tree]`` format."""

    table: str
    value_column: str
    text_column: str
    tree: bool = False

    @property
    def is_safe(self) -> bool:
        return all(
            SAFE_IDENTIFIER.match(part)
            for part in (self.table, self.value_column, self.text_column)
        )


def parse_lookup_format(fmt: str | None) -> LookupSpec | None:
    """Parse a column format string into a LookupSpec.

    Returns None when the format is not a lookup at all. A lookup whose
    parts fail the identifier check is still returned; callers check
    ``is_safe`` so they can log what they skipped.
    """
    if not fmt:
        return None
    s = fmt.strip()
    if not s.lower().startswith(LOOKUP_PREFIX):
        return None

    parts = [p.strip() for p in s[len(LOOKUP_PREFIX):].split(":")]
    if len(parts) == 4 and parts[3].lower() == "tree":
        return LookupSpec(parts[0], parts[1], parts[2], tree=True)
    if len(parts) != 3 or not all(parts):
        return None
    return LookupSpec(parts[0], parts[1], parts[2])


@dataclass
class ColumnMeta:
    """One column of a managed table."""

    id: int
    table_id: int
    column_name: str
    data_type: str
    display_name: str | None = None
    is_nullable: bool = True
    is_primary: bool = False
    is_list: bool = False
    is_editable: bool = False
    is_filter: bool = False
    width: int | None = None
    format: str | None = None
    default_expr: str | None = None
    sort_order: int = 0

    @property
    def label(self) -> str:
        return self.display_name or self.column_name

    @property
    def lookup(self) -> LookupSpec | None:
        return parse_lookup_format(self.format)

    @property
    def is_required(self) -> bool:
        """Not nullable and nothing to fall back on."""
        return not self.is_nullable and not (self.default_expr or "").strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.column_name,
            "displayName": self.label,
            "dataType": self.data_type,
            "nullable": self.is_nullable,
            "primary": self.is_primary,
            "list": self.is_list,
            "editable": self.is_editable,
            "filter": self.is_filter,
            "width": self.width,
            "format": self.format,
            "defaultExpr": self.default_expr,
        }
