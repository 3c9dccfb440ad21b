"""
模块加载器

按顺序驱动每个模块走完挂载 -> LOADED 钩子，单个模块失败只记入 LoadReport，
不会阻止其余模块加载。挂载表、安装账本由加载器实例持有，不使用全局变量。
"""

from __future__ import annotations

import inspect
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Set

from src.core.exceptions import NotFoundException
from src.core.logger import logger
from src.core.modules.actions import ActionRegistry
from src.core.modules.base import (
    LifecycleEvent,
    LifecycleEventKind,
    LoadedModule,
    LoadFailure,
    LoadReport,
    LoadStage,
    ModuleDefinition,
    ModuleRuntimeContext,
)
from src.core.modules.hooks import HookDispatcher
from src.core.modules.ledger import InstallationLedger, InstallerTracker, InstallResultCallback
from src.core.modules.mount_guard import MountRegistry, RouteMountGuard
from src.core.modules.server import ModuleServer
from src.middleware.json_body import JsonBodyMiddleware

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from src.config.settings import Config


def make_json_body_parser(default_limit: Optional[int] = None) -> Callable[..., Callable]:
    """JSON 解析中间件工厂：json_body_parser(limit=None) -> middleware factory"""

    def json_body_parser(limit: Optional[int] = None) -> Callable:
        return partial(JsonBodyMiddleware, limit=limit if limit is not None else default_limit)

    return json_body_parser


class ModuleLoader:
    """
    模块加载器

    职责：
    - 持有 MountRegistry / InstallationLedger / ActionRegistry，并构造共享的运行时上下文
    - load_all：逐个模块挂载路由并分发 LOADED，失败隔离
    - unload：只分发 DISABLED，已挂载的路由保留到进程结束
    """

    def __init__(
        self,
        server: ModuleServer,
        *,
        settings: Optional["Config"] = None,
        engine: Optional["Engine"] = None,
        on_install_result: Optional[InstallResultCallback] = None,
        dispatcher: Optional[HookDispatcher] = None,
    ) -> None:
        if settings is None:
            from src.config import config as settings

        self.server = server
        self.settings = settings
        self.mount_registry = MountRegistry()
        self.ledger = InstallationLedger()
        self.mount_guard = RouteMountGuard(server, self.mount_registry)
        self.installers = InstallerTracker(self.ledger, on_result=on_install_result)
        self.dispatcher = dispatcher if dispatcher is not None else HookDispatcher()
        self.actions = ActionRegistry(server.app)

        self._definitions: Dict[str, ModuleDefinition] = {}
        self._loaded: List[LoadedModule] = []
        self._disabled: Set[str] = set()
        self.last_report: Optional[LoadReport] = None

        self.context = self._build_context(engine)

    def _build_context(self, engine: Optional["Engine"]) -> ModuleRuntimeContext:
        settings = self.settings
        repo_root = Path(getattr(settings, "repo_root", Path.cwd()))
        return ModuleRuntimeContext(
            server=self.server,
            json_body_parser=make_json_body_parser(getattr(settings, "json_body_limit", None)),
            logger=logger,
            repo_root=repo_root,
            modules_root=Path(getattr(settings, "modules_root", repo_root / "src" / "modules")),
            data_dir=Path(getattr(settings, "data_dir", repo_root / "data")),
            mount_guard=self.mount_guard,
            installers=self.installers,
            get_loaded_modules=self.get_loaded_modules,
            settings=settings,
            engine=engine,
            actions=self.actions,
        )

    # ========== 查询 ==========

    def get_loaded_modules(self) -> List[LoadedModule]:
        """已加载模块记录（副本）"""
        return list(self._loaded)

    def is_loaded(self, name: str) -> bool:
        return any(m.name == name for m in self._loaded)

    def is_disabled(self, name: str) -> bool:
        return name in self._disabled

    # ========== 加载 ==========

    async def load_all(
        self,
        modules: Iterable[ModuleDefinition],
        context: Optional[ModuleRuntimeContext] = None,
    ) -> LoadReport:
        """
        按顺序加载模块

        每个模块：先检查钩子表，再调用 register(server, context)，最后分发 LOADED。
        钩子表不合法或挂载失败的模块不分发钩子，也不计入已加载；
        register 抛错前已经挂上的路由和中间件不会撤销。
        钩子失败的模块保留已挂载的路由。
        前一个模块的挂载与钩子全部完成后才会开始下一个模块。
        """
        ctx = context if context is not None else self.context
        report = LoadReport()

        for module in modules:
            name = module.name
            try:
                self.dispatcher.validate_module(module)
            except (ValueError, TypeError) as e:
                logger.error(f"Module [{name}] rejected: {e}")
                report.failures.append(LoadFailure(module=name, stage=LoadStage.DEFINITION, error=e))
                continue

            method = "register" if module.register else "hooks-only"
            if module.register is not None:
                try:
                    result = module.register(ctx.server, ctx)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.opt(exception=e).error(f"Module [{name}] mount failed: {e}")
                    report.failures.append(LoadFailure(module=name, stage=LoadStage.MOUNT, error=e))
                    continue
                logger.info(f"模块 [{name}] 路由已注册: {module.descriptor.base_path}")

            # 只有挂载成功的模块才能被 unload / dispatch_loaded 找到
            self._definitions[name] = module
            self.dispatcher.register_module(module)

            record = LoadedModule(name=name, method=method)
            self._loaded.append(record)
            self._disabled.discard(name)
            report.loaded.append(record)

            error = await self.dispatcher.dispatch(
                LifecycleEvent(kind=LifecycleEventKind.LOADED, descriptor=module.descriptor, context=ctx)
            )
            if error is not None:
                report.failures.append(LoadFailure(module=name, stage=LoadStage.HOOK, error=error))

        self.last_report = report
        logger.info(
            f"功能模块加载完成: {len(report.loaded)} 个已加载, {len(report.failures)} 个失败"
        )
        for failure in report.failures:
            logger.warning(
                f"Module [{failure.module}] failed at {failure.stage.value}: {failure.error}"
            )
        return report

    async def dispatch_loaded(self, name: str) -> Optional[Exception]:
        """重新分发 LOADED（模拟重载，受安装账本保护的副作用不会重复）"""
        module = self._require(name)
        return await self.dispatcher.dispatch(
            LifecycleEvent(kind=LifecycleEventKind.LOADED, descriptor=module.descriptor, context=self.context)
        )

    async def unload(self, name: str) -> Optional[Exception]:
        """
        停用模块：只分发 DISABLED

        已挂载的路由不会被撤销（运行期移除路由不在支持范围内）
        """
        module = self._require(name)
        error = await self.dispatcher.dispatch(
            LifecycleEvent(kind=LifecycleEventKind.DISABLED, descriptor=module.descriptor, context=self.context)
        )
        self._disabled.add(name)
        logger.info(f"Module [{name}] disabled (routes stay mounted until restart)")
        return error

    def _require(self, name: str) -> ModuleDefinition:
        module = self._definitions.get(name)
        if module is None:
            raise NotFoundException(f"模块 '{name}' 未加载")
        return module
