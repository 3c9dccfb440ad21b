"""
数据库模型定义
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ModuleState(Base):
    """
    模块启用/安装状态表

    表中有记录时，启动只加载 active=True 的模块；表为空时不做门控
    """

    __tablename__ = "module_states"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    module_name = Column(String(100), unique=True, index=True, nullable=False)
    version = Column(String(16), nullable=True)

    # 状态
    active = Column(Boolean, default=True, nullable=False)
    installed = Column(Boolean, default=False, nullable=False)
    installed_at = Column(DateTime(timezone=True), nullable=True)

    # 最近一次安装的结果（NULL 表示未检查）
    schema_ok = Column(Boolean, nullable=True)
    install_error = Column(Text, nullable=True)

    # 时间戳
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
