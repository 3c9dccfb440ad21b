"""
Notes 模块

示例业务模块：在 /api/notes 下提供 JSON 接口，自带幂等安装器和页面入口
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Optional

from src.config import parse_size
from src.core.logger import logger
from src.core.modules.base import (
    LifecycleEvent,
    ModuleCapability,
    ModuleDefinition,
    ModuleDescriptor,
    ModuleHealth,
    ModuleRuntimeContext,
)
from src.core.modules.server import ModuleServer

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

descriptor = ModuleDescriptor(
    name="notes",
    display_name="Notes",
    description="简单笔记，演示请求体解析、安装器与页面入口",
    capabilities=frozenset(
        {
            ModuleCapability.BACKEND_ROUTES,
            ModuleCapability.FRONTEND_SURFACE,
            ModuleCapability.INSTALLER,
        }
    ),
    env_key="NOTES_AVAILABLE",
    default_active=True,
)

# register 时绑定的引擎，健康检查与路由使用同一个
_bound_engine: Optional["Engine"] = None


def register(server: ModuleServer, context: ModuleRuntimeContext) -> None:
    """挂载 JSON 解析（每个前缀只挂一次）、路由与可调度动作"""
    global _bound_engine
    from src.modules.notes.routes import build_router

    limit_env = os.getenv("NOTES_BODY_LIMIT")
    limit = parse_size(limit_env) if limit_env else None
    context.mount_guard.ensure_body_parser(descriptor.base_path, context.json_body_parser(limit))

    _bound_engine = context.engine
    server.include_router(build_router(descriptor, context.engine))

    if context.actions is not None:
        context.actions.register(
            "notes.create",
            descriptor.name,
            descriptor.base_path,
            name="Create note",
            description="按模板新建一条笔记",
            payload_template={"title": "Scheduled note"},
        )
        context.actions.register(
            "notes.pin",
            descriptor.name,
            f"{descriptor.base_path}/:id",
            name="Pin note",
            method="PATCH",
            payload_template={"pinned": True},
            metadata={"path_params": {"id": "id"}},
        )


async def on_module_loaded(event: LifecycleEvent) -> None:
    engine = event.context.engine
    if engine is None:
        logger.info("Notes: 未配置数据库，跳过安装")
        return

    from src.modules.notes.installer import install_notes_schema

    def install() -> None:
        changes = install_notes_schema(engine)
        logger.info(f"Notes schema: {changes}")

    await event.context.installers.run_once(descriptor.name, install)


async def on_module_disabled(event: LifecycleEvent) -> None:
    # 路由保留到重启，这里只记录
    logger.info("Notes: 模块已停用，/api/notes 路由将在重启后移除")


async def _health_check() -> ModuleHealth:
    from src.database import get_engine
    from src.modules.notes.installer import TABLE_NAME
    from src.utils.database_helpers import table_exists

    engine = _bound_engine if _bound_engine is not None else get_engine()
    if engine is None:
        return ModuleHealth.DEGRADED
    return ModuleHealth.HEALTHY if table_exists(engine, TABLE_NAME) else ModuleHealth.UNHEALTHY


notes_module = ModuleDefinition(
    descriptor=descriptor,
    register=register,
    hooks={
        "on_module_loaded": on_module_loaded,
        "on_module_disabled": on_module_disabled,
    },
    health_check=_health_check,
)
