"""
系统模块

提供宿主自身的存活探测和已加载模块列表
"""

from __future__ import annotations

from typing import Any

from src.core.modules.base import (
    ModuleCapability,
    ModuleDefinition,
    ModuleDescriptor,
    ModuleHealth,
    ModuleRuntimeContext,
)
from src.core.modules.router import create_module_router
from src.core.modules.server import ModuleServer

descriptor = ModuleDescriptor(
    name="system",
    display_name="System",
    description="宿主存活探测与已加载模块信息",
    capabilities=frozenset({ModuleCapability.BACKEND_ROUTES}),
    default_active=True,
)


def register(server: ModuleServer, context: ModuleRuntimeContext) -> None:
    router = create_module_router(descriptor)

    @router.get("/info")
    async def info() -> dict[str, Any]:
        from src import __version__

        return {
            "version": __version__,
            "loaded": [m.to_dict() for m in context.get_loaded_modules()],
        }

    server.include_router(router)

    if context.actions is not None:
        context.actions.register(
            "system.ping",
            descriptor.name,
            f"{descriptor.base_path}/ping",
            name="System ping",
            description="宿主存活探测",
            method="GET",
        )


async def _health_check() -> ModuleHealth:
    return ModuleHealth.HEALTHY


system_module = ModuleDefinition(
    descriptor=descriptor,
    register=register,
    health_check=_health_check,
)
