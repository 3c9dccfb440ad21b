"""
模块化系统核心

提供可插拔的功能模块运行时，支持：
- 静态模块清单注册，可用性与启用状态门控
- 每个前缀最多挂载一次请求体解析中间件
- 生命周期钩子分发，单个模块失败不影响整体启动
- 进程内至多一次的安装执行
- 模块登记可调度的 HTTP 动作
- 前端页面入口的懒解析与占位降级
"""

from src.core.modules.actions import ActionRegistry, ActionResult, ModuleAction
from src.core.modules.base import (
    LifecycleEvent,
    LifecycleEventKind,
    LoadedModule,
    LoadFailure,
    LoadReport,
    LoadStage,
    ModuleCapability,
    ModuleDefinition,
    ModuleDescriptor,
    ModuleHealth,
    ModuleRuntimeContext,
    ModuleStatus,
)
from src.core.modules.hooks import HookDispatcher
from src.core.modules.ledger import InstallationLedger, InstallerTracker, InstallStatus
from src.core.modules.loader import ModuleLoader
from src.core.modules.mount_guard import MountRegistry, RouteMountGuard
from src.core.modules.registry import ModuleRegistry, get_module_registry
from src.core.modules.router import create_module_router
from src.core.modules.server import ModuleServer, install_prefix_mounts
from src.core.modules.surface import (
    LazySurface,
    SurfaceManifest,
    SurfaceResolution,
    SurfaceStatus,
    resolve_surface,
)

__all__ = [
    "ActionRegistry",
    "ActionResult",
    "ModuleAction",
    "LifecycleEvent",
    "LifecycleEventKind",
    "LoadedModule",
    "LoadFailure",
    "LoadReport",
    "LoadStage",
    "ModuleCapability",
    "ModuleDefinition",
    "ModuleDescriptor",
    "ModuleHealth",
    "ModuleRuntimeContext",
    "ModuleStatus",
    "HookDispatcher",
    "InstallationLedger",
    "InstallerTracker",
    "InstallStatus",
    "ModuleLoader",
    "MountRegistry",
    "RouteMountGuard",
    "ModuleRegistry",
    "get_module_registry",
    "create_module_router",
    "ModuleServer",
    "install_prefix_mounts",
    "LazySurface",
    "SurfaceManifest",
    "SurfaceResolution",
    "SurfaceStatus",
    "resolve_surface",
]
