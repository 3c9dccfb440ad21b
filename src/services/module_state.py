"""
模块启用/安装状态服务
"""

from datetime import datetime, timezone
from typing import List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.logger import logger
from src.core.modules.base import ModuleDescriptor
from src.models.database import ModuleState

# install_error 字段截断长度
MAX_INSTALL_ERROR_LENGTH = 2000


class ModuleStateService:
    """模块状态服务类"""

    @staticmethod
    def get_state(db: Session, module_name: str) -> Optional[ModuleState]:
        return db.query(ModuleState).filter(ModuleState.module_name == module_name).first()

    @staticmethod
    def list_states(db: Session) -> List[ModuleState]:
        return db.query(ModuleState).order_by(ModuleState.module_name.asc()).all()

    @staticmethod
    def get_active_set(db: Session) -> Optional[Set[str]]:
        """
        获取启用模块集合

        表为空时返回 None，表示不做门控（兼容尚未使用模块管理的部署）
        """
        total = db.query(func.count(ModuleState.id)).scalar() or 0
        if total == 0:
            return None
        rows = db.query(ModuleState.module_name).filter(ModuleState.active.is_(True)).all()
        return {row[0] for row in rows}

    @classmethod
    def seed_default(cls, db: Session, descriptor: ModuleDescriptor) -> bool:
        """
        为没有状态记录的模块写入默认启用状态

        只在描述声明 default_active 时写入；已有记录（包括被主动停用的）一律不覆盖

        Returns:
            写入后模块是否处于启用状态
        """
        if not descriptor.default_active:
            return False
        if cls.get_state(db, descriptor.name) is not None:
            return False

        db.add(
            ModuleState(
                module_name=descriptor.name,
                version=descriptor.version,
                active=True,
                installed=False,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            # 并发写入同名记录，以已存在的为准
            db.rollback()
            return False

        logger.info(f"Module [{descriptor.name}] auto-seeded state (active=True)")
        return True

    @classmethod
    def set_active(
        cls, db: Session, module_name: str, active: bool, version: Optional[str] = None
    ) -> ModuleState:
        """设置模块启用状态（不存在则创建）"""
        state = cls.get_state(db, module_name)
        if state is None:
            state = ModuleState(module_name=module_name, version=version, active=active)
            db.add(state)
        else:
            state.active = active
            if version:
                state.version = version
            state.updated_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(state)
        return state

    @classmethod
    def record_install(
        cls,
        db: Session,
        module_name: str,
        error: Optional[BaseException] = None,
        version: Optional[str] = None,
    ) -> ModuleState:
        """记录一次安装尝试的结果"""
        now = datetime.now(timezone.utc)
        state = cls.get_state(db, module_name)
        if state is None:
            state = ModuleState(module_name=module_name, version=version, active=True)
            db.add(state)

        state.schema_ok = error is None
        state.install_error = str(error)[:MAX_INSTALL_ERROR_LENGTH] if error is not None else None
        if error is None:
            state.installed = True
            state.installed_at = now
        if version:
            state.version = version
        state.updated_at = now

        db.commit()
        db.refresh(state)
        return state
