"""
Notes 模块安装器

只做追加式、可重复执行的结构变更：
- mod_notes 表不存在则创建
- 老版本的表缺少 pinned 列则补上
- 标题索引不存在则创建
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from src.utils.database_helpers import (
    add_column_if_missing,
    create_index_if_missing,
    create_table_if_missing,
)

TABLE_NAME = "mod_notes"

metadata = MetaData()

notes_table = Table(
    TABLE_NAME,
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(200), nullable=False),
    Column("body", Text, nullable=True),
    Column("pinned", Boolean, nullable=True),
    Column(
        "created_at",
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    ),
)


def install_notes_schema(engine: Engine) -> dict[str, bool]:
    """
    执行安装（幂等）

    Returns:
        每一步是否实际发生了变更
    """
    return {
        "table": create_table_if_missing(engine, notes_table),
        "pinned": add_column_if_missing(engine, TABLE_NAME, Column("pinned", Boolean, nullable=True)),
        "index": create_index_if_missing(engine, TABLE_NAME, "ix_mod_notes_title", ["title"]),
    }
