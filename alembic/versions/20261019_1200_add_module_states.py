"""add module_states table

Revision ID: 7a1c2e9d4b30
Revises:
Create Date: 2026-10-19 12:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '7a1c2e9d4b30'
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(conn, table_name: str) -> bool:
    """检查表是否存在"""
    return sa.inspect(conn).has_table(table_name)


def _index_exists(conn, table_name: str, index_name: str) -> bool:
    """检查索引是否存在"""
    return any(ix["name"] == index_name for ix in sa.inspect(conn).get_indexes(table_name))


def upgrade() -> None:
    """创建模块启用/安装状态表（幂等）"""
    conn = op.get_bind()

    if not _table_exists(conn, 'module_states'):
        op.create_table(
            'module_states',
            sa.Column('id', sa.String(36), primary_key=True),
            sa.Column('module_name', sa.String(100), nullable=False),
            sa.Column('version', sa.String(16), nullable=True),
            sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('installed', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('installed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('schema_ok', sa.Boolean(), nullable=True),
            sa.Column('install_error', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        )

    if not _index_exists(conn, 'module_states', 'ix_module_states_module_name'):
        op.create_index(
            'ix_module_states_module_name', 'module_states', ['module_name'], unique=True
        )


def downgrade() -> None:
    """删除模块状态表"""
    conn = op.get_bind()
    if _table_exists(conn, 'module_states'):
        op.drop_index('ix_module_states_module_name', table_name='module_states')
        op.drop_table('module_states')
