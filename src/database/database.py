"""
数据库引擎管理

DATABASE_URL 是可选的：未配置时 get_engine() 返回 None，
依赖数据库的功能（启用状态门控、安装结果记录）自动跳过。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from src.config import config
from src.core.logger import logger

_engine: Optional[Engine] = None


def get_engine(url: Optional[str] = None) -> Optional[Engine]:
    """获取全局引擎（首次调用时创建）"""
    global _engine

    if _engine is not None:
        return _engine

    url = url or config.database_url
    if not url:
        return None

    kwargs: dict = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}

    _engine = create_engine(url, **kwargs)
    logger.info(f"数据库引擎已创建: {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def reset_engine() -> None:
    """释放全局引擎（关闭时或测试中使用）"""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_db(engine: Optional[Engine] = None) -> bool:
    """
    创建宿主自身的表（已存在则跳过）

    正式环境由 Alembic 迁移负责，这里只保证开发环境开箱可用
    """
    engine = engine if engine is not None else get_engine()
    if engine is None:
        return False

    from src.models.database import Base

    Base.metadata.create_all(bind=engine, checkfirst=True)
    return True
