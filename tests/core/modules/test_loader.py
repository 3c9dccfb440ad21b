"""ModuleLoader: 顺序加载、失败隔离、重复分发与停用"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import List

import pytest
from fastapi import FastAPI

from src.core.exceptions import NotFoundException
from src.core.modules.base import (
    LifecycleEvent,
    LoadStage,
    ModuleDefinition,
    ModuleDescriptor,
    ModuleRuntimeContext,
)
from src.core.modules.loader import ModuleLoader
from src.core.modules.router import create_module_router
from src.core.modules.server import ModuleServer, install_prefix_mounts


@pytest.fixture()
def loader() -> ModuleLoader:
    server = install_prefix_mounts(FastAPI())
    return ModuleLoader(server, settings=SimpleNamespace(json_body_limit=1024))


def _module(name: str, events: List[str], *, base_path: str = "", fail_register: bool = False,
            fail_hook: bool = False) -> ModuleDefinition:
    descriptor = ModuleDescriptor(name=name, base_path=base_path)

    async def register(server: ModuleServer, context: ModuleRuntimeContext) -> None:
        events.append(f"register:{name}")
        await asyncio.sleep(0)
        if fail_register:
            raise RuntimeError(f"{name} cannot mount")
        context.mount_guard.ensure_body_parser(descriptor.base_path, context.json_body_parser())
        server.include_router(create_module_router(descriptor))

    async def on_loaded(event: LifecycleEvent) -> None:
        await asyncio.sleep(0)
        events.append(f"loaded:{name}")
        if fail_hook:
            raise RuntimeError(f"{name} hook failed")

    async def on_disabled(event: LifecycleEvent) -> None:
        events.append(f"disabled:{name}")

    return ModuleDefinition(
        descriptor=descriptor,
        register=register,
        hooks={"on_module_loaded": on_loaded, "on_module_disabled": on_disabled},
    )


# ---------------------------------------------------------------------------
# load_all
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_modules_load_strictly_in_order(loader: ModuleLoader) -> None:
    events: List[str] = []
    modules = [_module("a", events), _module("b", events), _module("c", events)]

    report = await loader.load_all(modules)

    assert report.ok
    assert report.loaded_names == ["a", "b", "c"]
    assert events == [
        "register:a", "loaded:a",
        "register:b", "loaded:b",
        "register:c", "loaded:c",
    ]


@pytest.mark.asyncio
async def test_one_failing_module_does_not_block_others(loader: ModuleLoader) -> None:
    events: List[str] = []
    modules = [
        _module("a", events),
        _module("b", events, fail_register=True),
        _module("c", events, fail_hook=True),
    ]

    report = await loader.load_all(modules)

    # b 挂载失败：不进入已加载列表，也不分发钩子
    assert report.loaded_names == ["a", "c"]
    assert "loaded:b" not in events
    assert [f.stage for f in report.failures_for("b")] == [LoadStage.MOUNT]

    # c 钩子失败：路由保留，仍视为已加载
    assert [f.stage for f in report.failures_for("c")] == [LoadStage.HOOK]
    assert loader.is_loaded("c")
    assert "/api/c/ping" in loader.server.route_paths
    assert "/api/b/ping" not in loader.server.route_paths

    assert not report.ok
    assert loader.last_report is report


@pytest.mark.asyncio
async def test_invalid_hook_table_does_not_block_later_modules(loader: ModuleLoader) -> None:
    events: List[str] = []

    def register_b(server: ModuleServer, context: ModuleRuntimeContext) -> None:
        events.append("register:b")

    misspelled = ModuleDefinition(
        descriptor=ModuleDescriptor(name="b"),
        register=register_b,
        hooks={"onModuleLoaded": lambda event: events.append("loaded:b")},
    )
    not_callable = ModuleDefinition(
        descriptor=ModuleDescriptor(name="d"),
        hooks={"on_module_loaded": "install"},  # type: ignore[dict-item]
    )

    report = await loader.load_all(
        [_module("a", events), misspelled, _module("c", events), not_callable]
    )

    # b、d 在挂载前就被拒绝，register 不会被调用
    assert events == ["register:a", "loaded:a", "register:c", "loaded:c"]
    assert report.loaded_names == ["a", "c"]
    assert [f.stage for f in report.failures_for("b")] == [LoadStage.DEFINITION]
    assert isinstance(report.failures_for("b")[0].error, ValueError)
    assert isinstance(report.failures_for("d")[0].error, TypeError)
    assert "/api/c/ping" in loader.server.route_paths


@pytest.mark.asyncio
async def test_mount_failure_leaves_module_unknown_to_lifecycle(loader: ModuleLoader) -> None:
    events: List[str] = []
    await loader.load_all([_module("b", events, fail_register=True)])

    with pytest.raises(NotFoundException):
        await loader.unload("b")
    with pytest.raises(NotFoundException):
        await loader.dispatch_loaded("b")

    assert events == ["register:b"]
    assert not loader.is_disabled("b")


@pytest.mark.asyncio
async def test_routes_mounted_before_register_error_stay_mounted(loader: ModuleLoader) -> None:
    descriptor = ModuleDescriptor(name="half")

    def register(server: ModuleServer, context: ModuleRuntimeContext) -> None:
        context.mount_guard.ensure_body_parser(descriptor.base_path, context.json_body_parser())
        server.include_router(create_module_router(descriptor))
        raise RuntimeError("second router failed")

    report = await loader.load_all([ModuleDefinition(descriptor=descriptor, register=register)])

    assert [f.stage for f in report.failures_for("half")] == [LoadStage.MOUNT]
    assert not loader.is_loaded("half")
    assert "/api/half/ping" in loader.server.route_paths
    assert "/api/half" in loader.mount_registry


@pytest.mark.asyncio
async def test_report_serializes_failures(loader: ModuleLoader) -> None:
    report = await loader.load_all([_module("b", [], fail_register=True)])

    data = report.to_dict()
    assert data["ok"] is False
    assert data["failures"] == [
        {"module": "b", "stage": "mount", "error": "RuntimeError: b cannot mount"}
    ]


@pytest.mark.asyncio
async def test_shared_base_path_mounts_body_parser_once(loader: ModuleLoader) -> None:
    events: List[str] = []
    modules = [
        _module("alpha", events, base_path="/api/a"),
        _module("beta", events, base_path="/api/a"),
    ]

    report = await loader.load_all(modules)

    assert report.loaded_names == ["alpha", "beta"]
    assert loader.server.mount_table.count("/api/a") == 1
    assert list(loader.mount_registry) == ["/api/a"]


@pytest.mark.asyncio
async def test_hooks_only_module(loader: ModuleLoader) -> None:
    calls: List[str] = []
    module = ModuleDefinition(
        descriptor=ModuleDescriptor(name="watcher"),
        hooks={"on_module_loaded": lambda event: calls.append(event.module_name)},
    )

    report = await loader.load_all([module])

    assert calls == ["watcher"]
    assert report.loaded[0].method == "hooks-only"


@pytest.mark.asyncio
async def test_context_exposes_loaded_modules(loader: ModuleLoader) -> None:
    seen: List[List[str]] = []

    def on_loaded(event: LifecycleEvent) -> None:
        seen.append([m.name for m in event.context.get_loaded_modules()])

    modules = [
        ModuleDefinition(descriptor=ModuleDescriptor(name="a"), hooks={"on_module_loaded": on_loaded}),
        ModuleDefinition(descriptor=ModuleDescriptor(name="b"), hooks={"on_module_loaded": on_loaded}),
    ]
    await loader.load_all(modules)

    assert seen == [["a"], ["a", "b"]]


# ---------------------------------------------------------------------------
# 重复分发 / 停用
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_redispatching_loaded_is_idempotent(loader: ModuleLoader) -> None:
    installs: List[str] = []

    async def on_loaded(event: LifecycleEvent) -> None:
        await event.context.installers.run_once("notes", lambda: installs.append("notes"))

    module = ModuleDefinition(
        descriptor=ModuleDescriptor(name="notes"),
        register=lambda server, context: context.mount_guard.ensure_body_parser(
            "/api/notes", context.json_body_parser()
        ),
        hooks={"on_module_loaded": on_loaded},
    )
    await loader.load_all([module])

    assert await loader.dispatch_loaded("notes") is None
    assert await loader.dispatch_loaded("notes") is None

    assert installs == ["notes"]
    assert loader.server.mount_table.count("/api/notes") == 1


@pytest.mark.asyncio
async def test_installer_failure_is_contained_by_dispatcher(loader: ModuleLoader) -> None:
    def broken() -> None:
        raise RuntimeError("migration failed")

    async def on_loaded(event: LifecycleEvent) -> None:
        await event.context.installers.run_once("notes", broken)

    module = ModuleDefinition(
        descriptor=ModuleDescriptor(name="notes"),
        hooks={"on_module_loaded": on_loaded},
    )
    report = await loader.load_all([module])

    assert loader.is_loaded("notes")
    assert [f.stage for f in report.failures_for("notes")] == [LoadStage.HOOK]
    # 同一进程内再次分发不会重跑失败的安装器
    assert await loader.dispatch_loaded("notes") is None


@pytest.mark.asyncio
async def test_unload_dispatches_disabled_and_keeps_routes(loader: ModuleLoader) -> None:
    events: List[str] = []
    await loader.load_all([_module("a", events)])

    assert await loader.unload("a") is None

    assert events[-1] == "disabled:a"
    assert loader.is_disabled("a")
    assert loader.is_loaded("a")
    assert "/api/a/ping" in loader.server.route_paths


@pytest.mark.asyncio
async def test_unload_unknown_module_raises(loader: ModuleLoader) -> None:
    with pytest.raises(NotFoundException):
        await loader.unload("missing")


@pytest.mark.asyncio
async def test_context_exposes_action_registry(loader: ModuleLoader) -> None:
    def register(server: ModuleServer, context: ModuleRuntimeContext) -> None:
        context.actions.register("a.ping", "a", "/api/a/ping", method="GET")

    await loader.load_all([ModuleDefinition(descriptor=ModuleDescriptor(name="a"), register=register)])

    assert loader.context.actions is loader.actions
    assert [action.id for action in loader.actions.list_actions("a")] == ["a.ping"]
    assert loader.actions.app is loader.server.app


@pytest.mark.asyncio
async def test_json_body_parser_uses_default_limit(loader: ModuleLoader) -> None:
    factory = loader.context.json_body_parser()
    assert factory.keywords == {"limit": 1024}
    assert loader.context.json_body_parser(10).keywords == {"limit": 10}
