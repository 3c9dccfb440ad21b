"""模块路由辅助"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from src.core.modules.base import ModuleDescriptor


def create_module_router(descriptor: ModuleDescriptor, **kwargs: Any) -> APIRouter:
    """
    创建挂在模块命名空间下的路由，并附带存活探测端点

    GET {base_path}/ping -> {"ok": true, "module": name}
    运维通过它确认模块已挂载成功
    """
    kwargs.setdefault("tags", [f"Module - {descriptor.display_name}"])
    router = APIRouter(prefix=descriptor.base_path, **kwargs)
    name = descriptor.name

    @router.get("/ping", name=f"{name}_ping")
    async def ping() -> dict[str, Any]:
        return {"ok": True, "module": name}

    return router
