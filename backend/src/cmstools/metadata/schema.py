"""SQLAlchemy Core definition of the metadata database.

Mirrors migrations/versions/0001_cms_metadata_schema.py. The store queries
with text() statements; this module exists so tests and tooling can
create the schema with ``metadata.create_all``.
"""

import sqlalchemy as sa

metadata = sa.MetaData()

cms_connection = sa.Table(
    "cms_connection",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("name", sa.String(100), nullable=False),
    sa.Column("provider", sa.String(20), nullable=False, server_default="mssql"),
    sa.Column("conn_string", sa.Text, nullable=False),
    sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
)

cms_table = sa.Table(
    "cms_table",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column(
        "connection_id",
        sa.Integer,
        sa.ForeignKey("cms_connection.id"),
        nullable=False,
    ),
    sa.Column("schema_name", sa.String(128), nullable=True),
    sa.Column("table_name", sa.String(128), nullable=False),
    sa.Column("display_name", sa.String(200), nullable=True),
    sa.Column("primary_key", sa.String(128), nullable=True),
    sa.Column("is_view", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("is_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
    sa.Column("row_filter", sa.Text, nullable=True),
    sa.Column("custom_detail_url", sa.String(400), nullable=True),
    sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
)

cms_column = sa.Table(
    "cms_column",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("table_id", sa.Integer, sa.ForeignKey("cms_table.id"), nullable=False),
    sa.Column("column_name", sa.String(128), nullable=False),
    sa.Column("display_name", sa.String(200), nullable=True),
    sa.Column("data_type", sa.String(64), nullable=False),
    sa.Column("is_nullable", sa.Boolean, nullable=False, server_default=sa.true()),
    sa.Column("is_primary", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("is_list", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("is_editable", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("is_filter", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("width", sa.Integer, nullable=True),
    sa.Column("format", sa.String(400), nullable=True),
    sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
    sa.Column("default_expr", sa.String(200), nullable=True),
)

cms_user = sa.Table(
    "cms_user",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("username", sa.String(100), nullable=False, unique=True),
    sa.Column("display_name", sa.String(200), nullable=True),
    sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
)

cms_role = sa.Table(
    "cms_role",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("name", sa.String(100), nullable=False, unique=True),
    sa.Column("description", sa.String(400), nullable=True),
    sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
)

cms_user_role = sa.Table(
    "cms_user_role",
    metadata,
    sa.Column("user_id", sa.Integer, sa.ForeignKey("cms_user.id"), primary_key=True),
    sa.Column("role_id", sa.Integer, sa.ForeignKey("cms_role.id"), primary_key=True),
)

cms_table_permission = sa.Table(
    "cms_table_permission",
    metadata,
    sa.Column("table_id", sa.Integer, sa.ForeignKey("cms_table.id"), primary_key=True),
    sa.Column("role_id", sa.Integer, sa.ForeignKey("cms_role.id"), primary_key=True),
    sa.Column("can_view", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("can_create", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("can_update", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("can_delete", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("can_publish", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("can_schedule", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("can_archive", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("row_filter", sa.Text, nullable=True),
)

cms_audit_log = sa.Table(
    "cms_audit_log",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("user_id", sa.Integer, nullable=True, index=True),
    sa.Column("operation", sa.String(50), nullable=False, index=True),
    sa.Column("connection_name", sa.String(100), nullable=False),
    sa.Column("schema_name", sa.String(128), nullable=True),
    sa.Column("table_name", sa.String(128), nullable=False),
    sa.Column("primary_key_column", sa.String(128), nullable=True),
    sa.Column("primary_key_value", sa.String(256), nullable=True),
    sa.Column("ip_address", sa.String(64), nullable=True),
    sa.Column("user_agent", sa.String(400), nullable=True),
    sa.Column("old_values", sa.Text, nullable=True),
    sa.Column("new_values", sa.Text, nullable=True),
    sa.Column("created_at_utc", sa.DateTime, nullable=False, index=True),
)
