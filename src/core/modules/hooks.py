"""
模块生命周期钩子分发

钩子按 (hook_name, module_name) 注册；分发时找不到钩子静默跳过，
钩子抛出的异常在这里被截获并记录，不会向调用方传播。
"""

from __future__ import annotations

import inspect
from typing import Dict, Optional, Tuple

from src.core.logger import logger
from src.core.modules.base import HookFunc, LifecycleEvent, LifecycleEventKind, ModuleDefinition

KNOWN_HOOKS = frozenset(kind.hook_name for kind in LifecycleEventKind)


class HookDispatcher:
    """生命周期钩子分发器"""

    def __init__(self) -> None:
        self._handlers: Dict[Tuple[str, str], HookFunc] = {}

    @staticmethod
    def validate(hook_name: str, module_name: str, handler: HookFunc) -> None:
        if hook_name not in KNOWN_HOOKS:
            raise ValueError(f"Unknown hook '{hook_name}' for module [{module_name}]")
        if not callable(handler):
            raise TypeError(f"Hook '{hook_name}' of module [{module_name}] is not callable")

    def validate_module(self, module: ModuleDefinition) -> None:
        """检查模块的全部钩子，不做注册"""
        for hook_name, handler in module.hooks.items():
            self.validate(hook_name, module.name, handler)

    def register(self, hook_name: str, module_name: str, handler: HookFunc) -> None:
        """注册钩子，同一模块同名钩子后注册的覆盖先注册的"""
        self.validate(hook_name, module_name, handler)
        self._handlers[(hook_name, module_name)] = handler

    def register_module(self, module: ModuleDefinition) -> None:
        self.validate_module(module)
        for hook_name, handler in module.hooks.items():
            self._handlers[(hook_name, module.name)] = handler

    def get(self, hook_name: str, module_name: str) -> Optional[HookFunc]:
        return self._handlers.get((hook_name, module_name))

    def has(self, hook_name: str, module_name: str) -> bool:
        return (hook_name, module_name) in self._handlers

    async def dispatch(self, event: LifecycleEvent) -> Optional[Exception]:
        """
        分发生命周期事件

        异步钩子会被 await 到完成再返回，因此模块之间严格串行。

        Returns:
            钩子抛出的异常；钩子不存在或执行成功时返回 None
        """
        hook_name = event.kind.hook_name
        handler = self.get(hook_name, event.module_name)
        if handler is None:
            return None

        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.opt(exception=e).error(f"Module [{event.module_name}] {hook_name} error: {e}")
            return e

        logger.debug(f"Module [{event.module_name}] {hook_name} completed")
        return None
