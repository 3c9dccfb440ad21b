"""
模块可见的共享 server 句柄

对 FastAPI 应用做一层薄封装：模块只能追加路由和按前缀登记中间件
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List

from src.middleware.prefix_mount import MiddlewareFactory, MountTable, PrefixMountMiddleware

if TYPE_CHECKING:
    from fastapi import APIRouter, FastAPI


class ModuleServer:
    """
    共享 server 句柄

    app 构建时必须已经安装了绑定同一张 MountTable 的 PrefixMountMiddleware，
    见 install_prefix_mounts()
    """

    def __init__(self, app: "FastAPI", mount_table: MountTable) -> None:
        self.app = app
        self.mount_table = mount_table

    def include_router(self, router: "APIRouter", **kwargs: Any) -> None:
        """挂载路由（应用启动后追加同样生效）"""
        self.app.include_router(router, **kwargs)

    def use(self, prefix: str, factory: MiddlewareFactory) -> None:
        """
        在 prefix 上登记中间件

        不做去重；需要“只挂一次”语义时请通过 RouteMountGuard
        """
        self.mount_table.add(prefix, factory)

    @property
    def route_paths(self) -> List[str]:
        return [getattr(route, "path", "") for route in self.app.router.routes]


def install_prefix_mounts(app: "FastAPI") -> ModuleServer:
    """在应用上安装前缀中间件分发器，返回对应的 ModuleServer"""
    table = MountTable()
    app.add_middleware(PrefixMountMiddleware, table=table)
    return ModuleServer(app, table)
