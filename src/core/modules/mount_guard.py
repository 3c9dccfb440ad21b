"""
路由挂载守卫

保证同一个 HTTP 前缀在整个 server 上最多只挂载一次 JSON 解析中间件，
无论模块的 register 被调用多少次、由哪个模块调用。
"""

from __future__ import annotations

from typing import Iterator, Set

from src.core.logger import logger
from src.core.modules.server import ModuleServer
from src.middleware.prefix_mount import MiddlewareFactory


class MountRegistry:
    """已挂载解析中间件的前缀集合，只允许插入"""

    def __init__(self) -> None:
        self._prefixes: Set[str] = set()

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._prefixes

    def __len__(self) -> int:
        return len(self._prefixes)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._prefixes))

    def add(self, prefix: str) -> bool:
        """插入前缀，已存在时返回 False"""
        if prefix in self._prefixes:
            return False
        self._prefixes.add(prefix)
        return True


class RouteMountGuard:
    """
    “只挂一次”策略

    严格按前缀字符串去重：两个模块选择了相同的 base_path 时会在这里合并，
    重复调用不是错误，静默忽略。
    """

    def __init__(self, server: ModuleServer, registry: MountRegistry | None = None) -> None:
        self.server = server
        self.registry = registry if registry is not None else MountRegistry()

    def ensure_body_parser(self, prefix: str, middleware_factory: MiddlewareFactory) -> bool:
        """
        在 prefix 上挂载请求体解析中间件（幂等）

        Returns:
            本次调用是否实际挂载
        """
        if not self.registry.add(prefix):
            logger.debug(f"Body parser already mounted on {prefix}, skipping")
            return False

        self.server.use(prefix, middleware_factory)
        logger.debug(f"Body parser mounted on {prefix}")
        return True
