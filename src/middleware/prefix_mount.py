"""
按路径前缀挂载的动态中间件（纯 ASGI 实现）

Starlette 在应用启动后不允许再调用 add_middleware，而模块是在 lifespan 中加载的。
因此应用构建时只安装一次 PrefixMountMiddleware，它持有一张可追加的挂载表，
模块加载期间向表中登记 (prefix, middleware_factory)，请求到达时按前缀组装调用链。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List

from starlette.types import ASGIApp, Receive, Scope, Send

MiddlewareFactory = Callable[[ASGIApp], ASGIApp]


def path_matches_prefix(path: str, prefix: str) -> bool:
    """
    按路径段匹配前缀

    /api/a 匹配 /api/a 和 /api/a/...，不匹配 /api/ab
    """
    prefix = prefix.rstrip("/")
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix + "/")


@dataclass(frozen=True)
class PrefixMount:
    prefix: str
    factory: MiddlewareFactory


class MountTable:
    """挂载表，只允许追加"""

    def __init__(self) -> None:
        self._mounts: List[PrefixMount] = []

    def add(self, prefix: str, factory: MiddlewareFactory) -> PrefixMount:
        mount = PrefixMount(prefix=prefix, factory=factory)
        self._mounts.append(mount)
        return mount

    def matching(self, path: str) -> List[PrefixMount]:
        return [m for m in self._mounts if path_matches_prefix(path, m.prefix)]

    def count(self, prefix: str) -> int:
        return sum(1 for m in self._mounts if m.prefix == prefix)

    @property
    def prefixes(self) -> List[str]:
        return [m.prefix for m in self._mounts]

    def __len__(self) -> int:
        return len(self._mounts)


class PrefixMountMiddleware:
    """
    前缀中间件分发器

    对每个 HTTP 请求，取出所有匹配的挂载项，按登记顺序由外向内包裹下游应用。
    非 HTTP 请求（WebSocket、lifespan）直接透传。
    """

    def __init__(self, app: ASGIApp, table: MountTable) -> None:
        self.app = app
        self.table = table

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        mounts = self.table.matching(scope.get("path", ""))
        if not mounts:
            await self.app(scope, receive, send)
            return

        handler: ASGIApp = self.app
        for mount in reversed(mounts):
            handler = mount.factory(handler)
        await handler(scope, receive, send)
