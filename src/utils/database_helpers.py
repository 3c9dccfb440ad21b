"""
幂等的结构变更辅助函数

供模块安装器使用：所有操作都是“已存在则跳过”，重复执行安全。
基于 SQLAlchemy Inspector，不依赖具体数据库方言的系统表。
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import Column, MetaData, Table, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.schema import CreateIndex, Index

from src.core.logger import logger


def table_exists(bind: Engine | Connection, table_name: str) -> bool:
    """检查表是否存在"""
    return inspect(bind).has_table(table_name)


def column_exists(bind: Engine | Connection, table_name: str, column_name: str) -> bool:
    """检查列是否存在"""
    if not table_exists(bind, table_name):
        return False
    return any(col["name"] == column_name for col in inspect(bind).get_columns(table_name))


def index_exists(bind: Engine | Connection, table_name: str, index_name: str) -> bool:
    """检查索引是否存在"""
    if not table_exists(bind, table_name):
        return False
    return any(idx["name"] == index_name for idx in inspect(bind).get_indexes(table_name))


def create_table_if_missing(bind: Engine, table: Table) -> bool:
    """
    创建表（已存在则跳过）

    Returns:
        是否实际创建
    """
    if table_exists(bind, table.name):
        return False
    table.create(bind=bind, checkfirst=True)
    logger.info(f"表 {table.name} 已创建")
    return True


def add_column_if_missing(bind: Engine, table_name: str, column: Column) -> bool:
    """
    新增可空列（已存在则跳过）

    只支持追加式变更：列必须可空或带服务端默认值

    Returns:
        是否实际新增
    """
    if column_exists(bind, table_name, column.name):
        return False

    if not column.nullable and column.server_default is None:
        raise ValueError(
            f"Column {table_name}.{column.name} must be nullable or have a server default"
        )

    dialect = bind.dialect
    col_type = column.type.compile(dialect=dialect)
    preparer = dialect.identifier_preparer
    ddl = f"ALTER TABLE {preparer.quote(table_name)} ADD COLUMN {preparer.quote(column.name)} {col_type}"
    if column.server_default is not None:
        default = column.server_default.arg
        if isinstance(default, str):
            default_sql = "'" + default.replace("'", "''") + "'"
        else:
            default_sql = default.text
        ddl += f" DEFAULT {default_sql}"
    if not column.nullable:
        ddl += " NOT NULL"

    with bind.begin() as conn:
        conn.execute(text(ddl))
    logger.info(f"列 {table_name}.{column.name} 已新增")
    return True


def create_index_if_missing(
    bind: Engine, table_name: str, index_name: str, columns: Iterable[str]
) -> bool:
    """创建索引（已存在则跳过）"""
    if index_exists(bind, table_name, index_name):
        return False

    table = Table(table_name, MetaData(), autoload_with=bind)
    index = Index(index_name, *(table.c[name] for name in columns))
    with bind.begin() as conn:
        conn.execute(CreateIndex(index))
    logger.info(f"索引 {index_name} ON {table_name} 已创建")
    return True
