"""
模块基础定义

包含模块描述、定义、生命周期事件、运行时上下文和加载报告的数据结构
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from src.config.settings import Config
    from src.core.modules.actions import ActionRegistry
    from src.core.modules.ledger import InstallerTracker
    from src.core.modules.mount_guard import RouteMountGuard
    from src.core.modules.server import ModuleServer


class ModuleCapability(str, Enum):
    """模块能力"""

    BACKEND_ROUTES = "backend_routes"  # 提供 HTTP 路由
    FRONTEND_SURFACE = "frontend_surface"  # 提供前端页面入口
    INSTALLER = "installer"  # 有一次性安装步骤


class ModuleHealth(str, Enum):
    """模块健康状态"""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class LifecycleEventKind(str, Enum):
    """生命周期事件类型，value 即对应的钩子名"""

    LOADED = "on_module_loaded"
    DISABLED = "on_module_disabled"

    @property
    def hook_name(self) -> str:
        return self.value


class LoadStage(str, Enum):
    """加载失败所处阶段"""

    DEFINITION = "definition"  # 钩子表不合法，模块未挂载
    MOUNT = "mount"
    HOOK = "hook"


def _package_name(module_name: str) -> str:
    return module_name.replace("-", "_")


@dataclass(frozen=True)
class ModuleDescriptor:
    """
    模块描述 - 纯数据，运行时只读

    name 是稳定的唯一标识；base_path 是模块的 HTTP 命名空间前缀
    """

    name: str  # 唯一标识: notes, system
    base_path: str = ""  # 默认 /api/<name>
    capabilities: FrozenSet[ModuleCapability] = frozenset()

    display_name: str = ""
    description: str = ""
    version: str = "1.0.0"

    # 可用性控制（部署级）
    env_key: Optional[str] = None  # 环境变量名: NOTES_AVAILABLE
    default_available: bool = True
    required_packages: Tuple[str, ...] = ()

    # 数据库中没有启用记录时，是否自动写入“已启用”
    default_active: bool = False

    # 前端入口候选（按顺序匹配的 glob 模式）
    surface_candidates: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Module name must not be empty")
        # frozen dataclass 只能通过 object.__setattr__ 补默认值
        if not self.base_path:
            object.__setattr__(self, "base_path", f"/api/{self.name}")
        if not self.display_name:
            object.__setattr__(self, "display_name", self.name)
        if not self.surface_candidates:
            package = _package_name(self.name)
            object.__setattr__(
                self,
                "surface_candidates",
                (f"src.modules.{package}.frontend", f"src.modules.{package}.frontend.*"),
            )
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))
        object.__setattr__(self, "required_packages", tuple(self.required_packages))

    def has(self, capability: ModuleCapability) -> bool:
        return capability in self.capabilities


RegisterFunc = Callable[["ModuleServer", "ModuleRuntimeContext"], Optional[Awaitable[None]]]
HookFunc = Callable[["LifecycleEvent"], Optional[Awaitable[None]]]


@dataclass
class ModuleDefinition:
    """
    完整模块定义

    register 在挂载阶段被调用，负责把模块自己的路由挂到共享 server 上；
    hooks 以钩子名为键（on_module_loaded / on_module_disabled），可以只实现其中一个
    """

    descriptor: ModuleDescriptor

    register: Optional[RegisterFunc] = None
    hooks: Dict[str, HookFunc] = field(default_factory=dict)

    health_check: Optional[Callable[[], Awaitable[ModuleHealth]]] = None

    # 自定义依赖检测（可选）
    check_dependencies: Optional[Callable[[], bool]] = None

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class ModuleRuntimeContext:
    """
    共享运行时上下文

    由 ModuleLoader 持有，在所有模块的 register/钩子之间共享；
    模块只能借用，不应保存其中可变部分的独占引用
    """

    server: "ModuleServer"
    json_body_parser: Callable[..., Callable[[Any], Any]]
    logger: Any
    repo_root: Path
    modules_root: Path
    data_dir: Path
    mount_guard: "RouteMountGuard"
    installers: "InstallerTracker"
    get_loaded_modules: Callable[[], List["LoadedModule"]]
    settings: Optional["Config"] = None
    engine: Optional["Engine"] = None
    actions: Optional["ActionRegistry"] = None  # 可调度动作登记


@dataclass(frozen=True)
class LifecycleEvent:
    """生命周期事件，分发时临时构造，不保存"""

    kind: LifecycleEventKind
    descriptor: ModuleDescriptor
    context: ModuleRuntimeContext

    @property
    def module_name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class LoadedModule:
    """已加载模块记录"""

    name: str
    method: str
    loaded_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "method": self.method, "loaded_at": self.loaded_at}


@dataclass(frozen=True)
class LoadFailure:
    """单个模块的加载失败"""

    module: str
    stage: LoadStage
    error: BaseException

    def to_dict(self) -> dict[str, Any]:
        return {
            "module": self.module,
            "stage": self.stage.value,
            "error": f"{type(self.error).__name__}: {self.error}",
        }


@dataclass
class LoadReport:
    """一次 load_all 的结果汇总"""

    loaded: List[LoadedModule] = field(default_factory=list)
    failures: List[LoadFailure] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def loaded_names(self) -> List[str]:
        return [m.name for m in self.loaded]

    def failures_for(self, name: str) -> List[LoadFailure]:
        return [f for f in self.failures if f.module == name]

    def merge(self, other: LoadReport) -> None:
        self.loaded.extend(other.loaded)
        self.failures.extend(other.failures)
        self.skipped.update(other.skipped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "loaded": [m.to_dict() for m in self.loaded],
            "failures": [f.to_dict() for f in self.failures],
            "skipped": dict(self.skipped),
        }


@dataclass
class ModuleStatus:
    """
    模块运行状态

    用于 API 返回
    """

    name: str
    display_name: str
    description: str
    version: str
    base_path: str
    capabilities: List[str]

    available: bool  # 部署级可用（环境变量 + 依赖库）
    active: bool  # 启用状态（数据库，无数据库时视为启用）
    loaded: bool  # 本进程内已完成挂载
    disabled: bool  # 本进程内已分发 DISABLED

    health: ModuleHealth = ModuleHealth.UNKNOWN
