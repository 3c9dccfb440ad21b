"""
模块注册中心

负责模块定义的注册、可用性检查、启用状态门控和健康检查
"""

from __future__ import annotations

import importlib.util
import os
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Set, Tuple

from src.core.logger import logger
from src.core.modules.base import ModuleDefinition, ModuleDescriptor, ModuleHealth, ModuleStatus

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from src.core.modules.loader import ModuleLoader


class ModuleStateBackend(Protocol):
    """启用状态存储（由 services 层注入，core 不直接依赖 services）"""

    def get_active_set(self, db: "Session") -> Optional[Set[str]]: ...

    def seed_default(self, db: "Session", descriptor: ModuleDescriptor) -> bool: ...


class ModuleRegistry:
    """
    模块注册中心 - 单例模式

    职责：
    - 注册模块定义（仅元数据，不加载重依赖）
    - 检查模块可用性（配置 + 环境变量 + 依赖库）
    - 按数据库中的启用状态筛选可加载模块
    - 提供模块状态查询
    """

    _instance: ModuleRegistry | None = None

    def __init__(self, disabled: Optional[Set[str]] = None) -> None:
        self._modules: Dict[str, ModuleDefinition] = {}
        self._state_backend: Optional[ModuleStateBackend] = None
        if disabled is None:
            from src.config import config

            disabled = config.modules_disabled
        self._disabled = set(disabled)

    @classmethod
    def get_instance(cls) -> ModuleRegistry:
        """获取单例实例"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """重置单例（仅用于测试）"""
        cls._instance = None

    def set_state_backend(self, backend: Optional[ModuleStateBackend]) -> None:
        self._state_backend = backend

    def register(self, module: ModuleDefinition) -> None:
        """
        注册模块

        仅注册定义，不执行挂载
        """
        name = module.name
        if name in self._modules:
            logger.warning(f"Module [{name}] already registered, skipping")
            return

        self._modules[name] = module
        logger.debug(f"Module [{name}] registered")

    def register_all(self, modules: List[ModuleDefinition]) -> None:
        for module in modules:
            self.register(module)

    def get_module(self, name: str) -> ModuleDefinition | None:
        """获取模块定义"""
        return self._modules.get(name)

    def get_all_modules(self) -> List[ModuleDefinition]:
        """获取所有已注册模块（保持注册顺序）"""
        return list(self._modules.values())

    # ========== 可用性检查（部署级）==========

    def unavailable_reason(self, name: str) -> Optional[str]:
        """
        返回模块不可用的原因，可用时返回 None

        检查顺序：
        1. 模块是否已注册
        2. MODULES_DISABLED 配置
        3. 环境变量开关
        4. 依赖的 Python 包是否安装
        5. 自定义依赖检测（如果有）
        """
        module = self._modules.get(name)
        if module is None:
            return "not registered"

        if name in self._disabled:
            return "disabled by MODULES_DISABLED"

        meta = module.descriptor
        if meta.env_key:
            env_value = os.getenv(meta.env_key)
            if env_value is not None:
                if env_value.strip().lower() not in ("true", "1", "yes"):
                    return f"disabled by {meta.env_key}"
            elif not meta.default_available:
                return f"{meta.env_key} not set"
        elif not meta.default_available:
            return "not available by default"

        for pkg in meta.required_packages:
            if importlib.util.find_spec(pkg) is None:
                return f"package '{pkg}' not installed"

        if module.check_dependencies:
            try:
                if not module.check_dependencies():
                    return "custom dependency check failed"
            except Exception as e:
                logger.warning(f"Module [{name}] dependency check error: {e}")
                return f"dependency check error: {e}"

        return None

    def is_available(self, name: str) -> bool:
        return self.unavailable_reason(name) is None

    def get_available_modules(self) -> List[ModuleDefinition]:
        """获取所有部署可用的模块"""
        return [m for m in self._modules.values() if self.is_available(m.name)]

    # ========== 启用状态（数据库）==========

    def _active_set(self, db: Optional["Session"]) -> Optional[Set[str]]:
        """数据库中的启用集合；没有数据库或表为空时返回 None（不做门控）"""
        if db is None or self._state_backend is None:
            return None
        try:
            return self._state_backend.get_active_set(db)
        except Exception as e:
            logger.warning(f"读取模块启用状态失败，本次不做门控: {e}")
            return None

    def is_active(self, name: str, db: Optional["Session"] = None) -> bool:
        active_set = self._active_set(db)
        return active_set is None or name in active_set

    def resolve_loadable(
        self, db: Optional["Session"] = None
    ) -> Tuple[List[ModuleDefinition], Dict[str, str]]:
        """
        计算本次启动要加载的模块

        Returns:
            (可加载模块列表, 被跳过的模块 -> 原因)
        """
        loadable: List[ModuleDefinition] = []
        skipped: Dict[str, str] = {}
        active_set = self._active_set(db)

        for module in self._modules.values():
            name = module.name
            reason = self.unavailable_reason(name)
            if reason is not None:
                skipped[name] = reason
                logger.info(f"Module [{name}] skipped: {reason}")
                continue

            if active_set is not None and name not in active_set:
                seeded = False
                if db is not None and self._state_backend is not None:
                    try:
                        seeded = self._state_backend.seed_default(db, module.descriptor)
                    except Exception as e:
                        logger.warning(f"Module [{name}] default state seeding failed: {e}")
                if seeded:
                    active_set.add(name)
                else:
                    skipped[name] = "inactive"
                    logger.info(f"Module [{name}] skipped: inactive by DB state")
                    continue

            loadable.append(module)

        return loadable, skipped

    # ========== 健康检查 ==========

    async def check_health(self, name: str) -> ModuleHealth:
        """
        执行模块健康检查

        没有健康检查的模块返回 UNKNOWN，检查抛异常视为 UNHEALTHY
        """
        module = self._modules.get(name)
        if module is None or not module.health_check:
            return ModuleHealth.UNKNOWN

        try:
            return await module.health_check()
        except Exception as e:
            logger.warning(f"Module [{name}] health check failed: {e}")
            return ModuleHealth.UNHEALTHY

    # ========== 状态查询 ==========

    def get_module_status(
        self,
        name: str,
        db: Optional["Session"] = None,
        loader: Optional["ModuleLoader"] = None,
        health: ModuleHealth | None = None,
    ) -> ModuleStatus | None:
        """获取单个模块状态"""
        module = self._modules.get(name)
        if module is None:
            return None

        meta = module.descriptor
        return ModuleStatus(
            name=name,
            display_name=meta.display_name,
            description=meta.description,
            version=meta.version,
            base_path=meta.base_path,
            capabilities=sorted(c.value for c in meta.capabilities),
            available=self.is_available(name),
            active=self.is_active(name, db),
            loaded=loader.is_loaded(name) if loader else False,
            disabled=loader.is_disabled(name) if loader else False,
            health=health if health else ModuleHealth.UNKNOWN,
        )

    async def get_all_status_async(
        self, db: Optional["Session"] = None, loader: Optional["ModuleLoader"] = None
    ) -> Dict[str, ModuleStatus]:
        """获取所有模块状态（包含健康检查）"""
        result: Dict[str, ModuleStatus] = {}
        for name in self._modules:
            health = await self.check_health(name) if self.is_available(name) else ModuleHealth.UNKNOWN
            status = self.get_module_status(name, db, loader=loader, health=health)
            if status:
                result[name] = status
        return result


def get_module_registry() -> ModuleRegistry:
    """获取模块注册中心实例"""
    return ModuleRegistry.get_instance()
