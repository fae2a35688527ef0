"""cms metadata schema"""

revision = "0001"
down_revision = None

from alembic import op
import sqlalchemy as sa


def upgrade():
    op.create_table(
        'cms_connection',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('provider', sa.String(20), nullable=False, server_default='mssql'),
        sa.Column('conn_string', sa.Text(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'cms_table',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('connection_id', sa.Integer(), sa.ForeignKey('cms_connection.id'), nullable=False),
        sa.Column('schema_name', sa.String(128), nullable=True),
        sa.Column('table_name', sa.String(128), nullable=False),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('primary_key', sa.String(128), nullable=True),
        sa.Column('is_view', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('row_filter', sa.Text(), nullable=True),
        sa.Column('custom_detail_url', sa.String(400), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_table(
        'cms_column',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('table_id', sa.Integer(), sa.ForeignKey('cms_table.id'), nullable=False),
        sa.Column('column_name', sa.String(128), nullable=False),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('data_type', sa.String(64), nullable=False),
        sa.Column('is_nullable', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_list', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_editable', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_filter', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('format', sa.String(400), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('default_expr', sa.String(200), nullable=True),
    )
    op.create_table(
        'cms_user',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(100), nullable=False, unique=True),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        'cms_role',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.String(400), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        'cms_user_role',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('cms_user.id'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('cms_role.id'), primary_key=True),
    )
    op.create_table(
        'cms_table_permission',
        sa.Column('table_id', sa.Integer(), sa.ForeignKey('cms_table.id'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('cms_role.id'), primary_key=True),
        sa.Column('can_view', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_create', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_update', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_delete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_publish', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_schedule', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_archive', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('row_filter', sa.Text(), nullable=True),
    )
    op.create_table(
        'cms_audit_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('operation', sa.String(50), nullable=False),
        sa.Column('connection_name', sa.String(100), nullable=False),
        sa.Column('schema_name', sa.String(128), nullable=True),
        sa.Column('table_name', sa.String(128), nullable=False),
        sa.Column('primary_key_column', sa.String(128), nullable=True),
        sa.Column('primary_key_value', sa.String(256), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(400), nullable=True),
        sa.Column('old_values', sa.Text(), nullable=True),
        sa.Column('new_values', sa.Text(), nullable=True),
        sa.Column('created_at_utc', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_cms_audit_log_user_id', 'cms_audit_log', ['user_id'])
    op.create_index('ix_cms_audit_log_operation', 'cms_audit_log', ['operation'])
    op.create_index('ix_cms_audit_log_created_at_utc', 'cms_audit_log', ['created_at_utc'])


def downgrade():
    op.drop_index('ix_cms_audit_log_created_at_utc', table_name='cms_audit_log')
    op.drop_index('ix_cms_audit_log_operation', table_name='cms_audit_log')
    op.drop_index('ix_cms_audit_log_user_id', table_name='cms_audit_log')
    op.drop_table('cms_audit_log')
    op.drop_table('cms_table_permission')
    op.drop_table('cms_user_role')
    op.drop_table('cms_role')
    op.drop_table('cms_user')
    op.drop_table('cms_column')
    op.drop_table('cms_table')
    op.drop_table('cms_connection')
