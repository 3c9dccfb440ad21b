"""RouteMountGuard: 每个前缀最多挂载一次请求体解析中间件"""

from __future__ import annotations

from fastapi import FastAPI
from starlette.types import ASGIApp

from src.core.modules.mount_guard import MountRegistry, RouteMountGuard
from src.core.modules.server import ModuleServer, install_prefix_mounts


def _identity(app: ASGIApp) -> ASGIApp:
    return app


def _server() -> ModuleServer:
    return install_prefix_mounts(FastAPI())


def test_registry_add_reports_first_insert_only() -> None:
    registry = MountRegistry()
    assert registry.add("/api/a") is True
    assert registry.add("/api/a") is False
    assert "/api/a" in registry
    assert len(registry) == 1


def test_registry_iterates_sorted() -> None:
    registry = MountRegistry()
    for prefix in ("/api/b", "/api/a", "/api/c"):
        registry.add(prefix)
    assert list(registry) == ["/api/a", "/api/b", "/api/c"]


def test_ensure_body_parser_mounts_once_per_prefix() -> None:
    server = _server()
    guard = RouteMountGuard(server)

    assert guard.ensure_body_parser("/api/a", _identity) is True
    assert guard.ensure_body_parser("/api/a", _identity) is False
    assert guard.ensure_body_parser("/api/a", _identity) is False

    assert server.mount_table.count("/api/a") == 1
    assert len(server.mount_table) == 1


def test_distinct_prefixes_each_mounted() -> None:
    server = _server()
    guard = RouteMountGuard(server)

    assert guard.ensure_body_parser("/api/a", _identity) is True
    assert guard.ensure_body_parser("/api/b", _identity) is True
    assert server.mount_table.prefixes == ["/api/a", "/api/b"]


def test_prefix_dedup_is_exact_string_match() -> None:
    # 不做规范化：尾部斜杠视为不同前缀
    server = _server()
    guard = RouteMountGuard(server)

    guard.ensure_body_parser("/api/a", _identity)
    guard.ensure_body_parser("/api/a/", _identity)
    assert len(server.mount_table) == 2


def test_guards_sharing_a_registry_share_dedup() -> None:
    server = _server()
    registry = MountRegistry()
    first = RouteMountGuard(server, registry)
    second = RouteMountGuard(server, registry)

    assert first.ensure_body_parser("/api/a", _identity) is True
    assert second.ensure_body_parser("/api/a", _identity) is False
    assert server.mount_table.count("/api/a") == 1


def test_server_use_does_not_dedup() -> None:
    server = _server()
    server.use("/api/a", _identity)
    server.use("/api/a", _identity)
    assert server.mount_table.count("/api/a") == 2
