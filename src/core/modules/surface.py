"""
模块前端页面入口解析

启动时生成一份静态清单（模块包下有哪些可导入的入口），
页面渲染时按候选模式顺序在清单中匹配，第一个有匹配的模式胜出，再懒导入该入口。

解析结果分三种：
- resolved: 拿到了可渲染组件（入口导出 Main 或 default）
- absent:   没有任何候选匹配，模块未安装页面
- failed:   入口存在但导入抛异常、或没有可识别的导出

absent 与 failed 渲染为不同文案，运维可以区分“缺失”与“损坏”。
同一个 LazySurface 只解析一次；模块在会话中途安装后需要刷新页面才会生效。
"""

from __future__ import annotations

import html
import importlib
import os
import pkgutil
from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from types import ModuleType
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from src.core.logger import logger

Importer = Callable[[str], ModuleType]
Component = Callable[[], Any]

SURFACE_EXPORTS = ("Main", "default")


class SurfaceStatus(str, Enum):
    RESOLVED = "resolved"
    ABSENT = "absent"
    FAILED = "failed"


class SurfaceFailure(str, Enum):
    IMPORT_ERROR = "import_error"
    INVALID_EXPORT = "invalid_export"
    RENDER_ERROR = "render_error"


@dataclass(frozen=True)
class SurfaceResolution:
    status: SurfaceStatus
    module: str
    entry: Optional[str] = None
    component: Optional[Component] = None
    failure: Optional[SurfaceFailure] = None
    error: Optional[str] = None


def _walk_entries(paths: List[str], prefix: str, depth: int) -> Iterator[str]:
    # 只列举，不导入
    for info in pkgutil.iter_modules(paths, prefix):
        yield info.name
        if info.ispkg and depth > 0:
            finder_path = getattr(info.module_finder, "path", None)
            if finder_path is None:
                continue
            sub_dir = os.path.join(finder_path, info.name.rsplit(".", 1)[-1])
            yield from _walk_entries([sub_dir], info.name + ".", depth - 1)


class SurfaceManifest:
    """可导入入口的静态清单"""

    def __init__(self, entries: Iterable[str] = ()) -> None:
        self._entries: Tuple[str, ...] = tuple(sorted(set(entries)))

    @classmethod
    def build(cls, package: str = "src.modules", depth: int = 3) -> SurfaceManifest:
        """扫描模块包生成清单（启动时执行一次）"""
        try:
            pkg = importlib.import_module(package)
        except ImportError as e:
            logger.warning(f"Surface manifest: package {package} not importable: {e}")
            return cls()
        paths = list(getattr(pkg, "__path__", []))
        manifest = cls(_walk_entries(paths, package + ".", depth))
        logger.debug(f"Surface manifest built: {len(manifest)} entries under {package}")
        return manifest

    def match(self, pattern: str) -> List[str]:
        return [entry for entry in self._entries if fnmatchcase(entry, pattern)]

    @property
    def entries(self) -> Tuple[str, ...]:
        return self._entries

    def __contains__(self, entry: object) -> bool:
        return entry in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _pick_component(mod: ModuleType) -> Optional[Component]:
    for export in SURFACE_EXPORTS:
        candidate = getattr(mod, export, None)
        if callable(candidate):
            return candidate
    return None


class LazySurface:
    """
    懒解析的模块页面

    首次 resolve()/render() 时才匹配与导入，结果在实例生命周期内缓存
    """

    def __init__(
        self,
        module_name: str,
        candidates: Sequence[str],
        manifest: SurfaceManifest,
        importer: Importer = importlib.import_module,
    ) -> None:
        self.module_name = module_name
        self.candidates = tuple(candidates)
        self.manifest = manifest
        self._importer = importer
        self._resolution: Optional[SurfaceResolution] = None

    @property
    def resolved(self) -> bool:
        return self._resolution is not None

    def resolve(self) -> SurfaceResolution:
        if self._resolution is None:
            self._resolution = self._resolve()
        return self._resolution

    def _resolve(self) -> SurfaceResolution:
        name = self.module_name
        for pattern in self.candidates:
            matches = self.manifest.match(pattern)
            if not matches:
                continue

            entry = matches[0]
            try:
                mod = self._importer(entry)
            except Exception as e:
                logger.warning(f"Module [{name}] surface {entry} failed to load: {e}")
                return SurfaceResolution(
                    status=SurfaceStatus.FAILED,
                    module=name,
                    entry=entry,
                    failure=SurfaceFailure.IMPORT_ERROR,
                    error=f"{type(e).__name__}: {e}",
                )

            component = _pick_component(mod)
            if component is None:
                logger.warning(f"Module [{name}] surface {entry} has no Main/default export")
                return SurfaceResolution(
                    status=SurfaceStatus.FAILED,
                    module=name,
                    entry=entry,
                    failure=SurfaceFailure.INVALID_EXPORT,
                )

            return SurfaceResolution(
                status=SurfaceStatus.RESOLVED, module=name, entry=entry, component=component
            )

        return SurfaceResolution(status=SurfaceStatus.ABSENT, module=name)

    def render(self) -> str:
        resolution = self.resolve()
        if resolution.status is SurfaceStatus.RESOLVED and resolution.component is not None:
            try:
                return str(resolution.component())
            except Exception as e:
                logger.warning(f"Module [{self.module_name}] surface render error: {e}")
                return render_placeholder(
                    SurfaceResolution(
                        status=SurfaceStatus.FAILED,
                        module=self.module_name,
                        entry=resolution.entry,
                        failure=SurfaceFailure.RENDER_ERROR,
                        error=f"{type(e).__name__}: {e}",
                    )
                )
        return render_placeholder(resolution)


def resolve_surface(
    module_name: str,
    candidates: Sequence[str],
    manifest: SurfaceManifest,
    importer: Importer = importlib.import_module,
) -> LazySurface:
    """为模块创建懒解析页面"""
    return LazySurface(module_name, candidates, manifest, importer=importer)


def _placeholder(status: str, title: str, detail: Optional[str] = None) -> str:
    parts = [
        f'<div class="module-surface module-surface--{status}" data-surface-status="{status}">',
        f"<div class=\"module-surface__title\">{html.escape(title)}</div>",
    ]
    if detail:
        parts.append(f'<div class="module-surface__error">{html.escape(detail)}</div>')
    parts.append("</div>")
    return "".join(parts)


def render_placeholder(resolution: SurfaceResolution) -> str:
    """未解析成功时的占位内容"""
    name = resolution.module
    if resolution.status is SurfaceStatus.ABSENT:
        return _placeholder("absent", f"Module not installed: {name}")
    if resolution.failure is SurfaceFailure.INVALID_EXPORT:
        return _placeholder("failed", f"Invalid module surface: {name}")
    return _placeholder("failed", f"Module failed to load: {name}", resolution.error)


def render_inactive_placeholder(module_name: str) -> str:
    return _placeholder("inactive", f"Module inactive: {module_name}")
