"""HookDispatcher: 按名称查找钩子，异常被截获不外抛"""

from __future__ import annotations

from types import SimpleNamespace
from typing import List

import pytest

from src.core.modules.base import (
    LifecycleEvent,
    LifecycleEventKind,
    ModuleDefinition,
    ModuleDescriptor,
)
from src.core.modules.hooks import KNOWN_HOOKS, HookDispatcher


def _event(kind: LifecycleEventKind, name: str = "notes") -> LifecycleEvent:
    # 钩子分发本身不读取上下文内容
    return LifecycleEvent(
        kind=kind,
        descriptor=ModuleDescriptor(name=name),
        context=SimpleNamespace(),  # type: ignore[arg-type]
    )


def test_known_hooks() -> None:
    assert KNOWN_HOOKS == {"on_module_loaded", "on_module_disabled"}


def test_register_rejects_unknown_hook_name() -> None:
    dispatcher = HookDispatcher()
    with pytest.raises(ValueError):
        dispatcher.register("on_module_started", "notes", lambda event: None)


def test_register_rejects_non_callable() -> None:
    dispatcher = HookDispatcher()
    with pytest.raises(TypeError):
        dispatcher.register("on_module_loaded", "notes", "not callable")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_missing_hook_is_noop() -> None:
    dispatcher = HookDispatcher()
    assert await dispatcher.dispatch(_event(LifecycleEventKind.LOADED)) is None


@pytest.mark.asyncio
async def test_dispatch_routes_by_kind_and_module() -> None:
    calls: List[str] = []
    dispatcher = HookDispatcher()
    dispatcher.register("on_module_loaded", "notes", lambda e: calls.append(f"loaded:{e.module_name}"))
    dispatcher.register("on_module_disabled", "notes", lambda e: calls.append(f"disabled:{e.module_name}"))

    await dispatcher.dispatch(_event(LifecycleEventKind.LOADED))
    await dispatcher.dispatch(_event(LifecycleEventKind.DISABLED))
    await dispatcher.dispatch(_event(LifecycleEventKind.LOADED, name="other"))

    assert calls == ["loaded:notes", "disabled:notes"]


@pytest.mark.asyncio
async def test_async_hook_is_awaited() -> None:
    calls: List[str] = []

    async def on_loaded(event: LifecycleEvent) -> None:
        calls.append(event.kind.value)

    dispatcher = HookDispatcher()
    dispatcher.register("on_module_loaded", "notes", on_loaded)

    await dispatcher.dispatch(_event(LifecycleEventKind.LOADED))
    assert calls == ["on_module_loaded"]


@pytest.mark.asyncio
async def test_hook_exception_is_returned_not_raised() -> None:
    async def on_loaded(event: LifecycleEvent) -> None:
        raise RuntimeError("boom")

    dispatcher = HookDispatcher()
    dispatcher.register("on_module_loaded", "notes", on_loaded)

    error = await dispatcher.dispatch(_event(LifecycleEventKind.LOADED))
    assert isinstance(error, RuntimeError)
    assert str(error) == "boom"


def test_register_module_registers_declared_hooks_only() -> None:
    module = ModuleDefinition(
        descriptor=ModuleDescriptor(name="notes"),
        hooks={"on_module_disabled": lambda event: None},
    )
    dispatcher = HookDispatcher()
    dispatcher.register_module(module)

    assert dispatcher.has("on_module_disabled", "notes")
    assert not dispatcher.has("on_module_loaded", "notes")


def test_register_module_is_all_or_nothing() -> None:
    module = ModuleDefinition(
        descriptor=ModuleDescriptor(name="notes"),
        hooks={"on_module_loaded": lambda event: None, "onModuleDisabled": lambda event: None},
    )
    dispatcher = HookDispatcher()

    with pytest.raises(ValueError):
        dispatcher.validate_module(module)
    with pytest.raises(ValueError):
        dispatcher.register_module(module)

    assert not dispatcher.has("on_module_loaded", "notes")
