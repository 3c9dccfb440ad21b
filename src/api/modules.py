"""模块管理 API 端点"""

from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from src.core.exceptions import NotFoundException, ServiceUnavailableException
from src.core.logger import logger
from src.core.modules import ModuleLoader, ModuleRegistry, ModuleStatus, get_module_registry
from src.services.module_state import ModuleStateService

router = APIRouter(prefix="/api/modules", tags=["Modules"])


# ========== Response Models ==========


class ModuleStatusResponse(BaseModel):
    """模块状态响应"""

    name: str
    display_name: str
    description: str
    version: str
    base_path: str
    capabilities: List[str]
    available: bool
    active: bool
    loaded: bool
    disabled: bool
    health: str

    @classmethod
    def from_status(cls, status: ModuleStatus) -> "ModuleStatusResponse":
        return cls(
            name=status.name,
            display_name=status.display_name,
            description=status.description,
            version=status.version,
            base_path=status.base_path,
            capabilities=status.capabilities,
            available=status.available,
            active=status.active,
            loaded=status.loaded,
            disabled=status.disabled,
            health=status.health.value,
        )


class SetModuleActiveRequest(BaseModel):
    """设置模块启用状态请求"""

    active: bool


class SetModuleActiveResponse(BaseModel):
    name: str
    active: bool
    restart_required: bool
    hook_error: Optional[str] = None


class DispatchActionRequest(BaseModel):
    """触发模块动作请求，payload 覆盖动作自带的 payload_template"""

    payload: Dict[str, Any] = Field(default_factory=dict)


def get_module_loader(request: Request) -> ModuleLoader:
    loader = getattr(request.app.state, "module_loader", None)
    if loader is None:
        raise ServiceUnavailableException("模块系统尚未初始化")
    return loader


def get_registry(request: Request) -> ModuleRegistry:
    registry = getattr(request.app.state, "module_registry", None)
    return registry if registry is not None else get_module_registry()


def get_state_db(request: Request) -> Iterator[Optional[Session]]:
    """请求级会话，绑定应用启动时确定的引擎；没有数据库时为 None"""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        yield None
        return
    with Session(bind=engine) as db:
        yield db


# ========== API Endpoints ==========


@router.get("/status", response_model=Dict[str, ModuleStatusResponse])
async def get_all_modules_status(
    db: Optional[Session] = Depends(get_state_db),
    loader: ModuleLoader = Depends(get_module_loader),
    registry: ModuleRegistry = Depends(get_registry),
):
    """
    获取所有模块状态

    返回已注册模块的可用性、启用状态、本进程内是否已加载/已停用以及健康状态
    """
    all_status = await registry.get_all_status_async(db, loader=loader)
    return {name: ModuleStatusResponse.from_status(status) for name, status in all_status.items()}


@router.get("/loaded")
async def get_loaded_modules(loader: ModuleLoader = Depends(get_module_loader)) -> List[Dict[str, Any]]:
    """本进程内已加载的模块"""
    return [m.to_dict() for m in loader.get_loaded_modules()]


@router.get("/report")
async def get_load_report(loader: ModuleLoader = Depends(get_module_loader)) -> Dict[str, Any]:
    """最近一次启动加载的报告（包含失败与跳过原因）"""
    if loader.last_report is None:
        raise NotFoundException("尚未执行模块加载")
    return loader.last_report.to_dict()


@router.put("/{module_name}/active", response_model=SetModuleActiveResponse)
async def set_module_active(
    module_name: str,
    req: SetModuleActiveRequest,
    db: Optional[Session] = Depends(get_state_db),
    loader: ModuleLoader = Depends(get_module_loader),
    registry: ModuleRegistry = Depends(get_registry),
):
    """
    设置模块启用状态

    状态写入数据库，下次启动生效；停用一个已加载的模块会立即分发 DISABLED，
    但已挂载的路由保留到重启
    """
    module = registry.get_module(module_name)
    if module is None:
        raise NotFoundException(f"模块 '{module_name}' 不存在")
    if db is None:
        raise ServiceUnavailableException("未配置数据库，无法保存模块启用状态")

    ModuleStateService.set_active(db, module_name, req.active, version=module.descriptor.version)

    hook_error: Optional[Exception] = None
    if not req.active and loader.is_loaded(module_name) and not loader.is_disabled(module_name):
        hook_error = await loader.unload(module_name)

    restart_required = req.active != loader.is_loaded(module_name) or loader.is_disabled(module_name)
    logger.info(f"Module [{module_name}] active={req.active} (restart_required={restart_required})")
    return SetModuleActiveResponse(
        name=module_name,
        active=req.active,
        restart_required=restart_required,
        hook_error=str(hook_error) if hook_error else None,
    )


@router.get("/actions")
async def list_module_actions(
    module: Optional[str] = None,
    loader: ModuleLoader = Depends(get_module_loader),
) -> List[Dict[str, Any]]:
    """已登记的可调度动作，可按模块过滤"""
    return [action.to_dict() for action in loader.actions.list_actions(module)]


@router.post("/actions/{action_id}/dispatch")
async def dispatch_module_action(
    action_id: str,
    req: DispatchActionRequest,
    loader: ModuleLoader = Depends(get_module_loader),
) -> Dict[str, Any]:
    """
    触发一个已登记的动作

    动作在进程内回调本应用；所属模块在本进程内已停用时拒绝执行
    """
    action = loader.actions.get(action_id)
    if action is None:
        raise NotFoundException(f"动作 '{action_id}' 不存在")
    if loader.is_disabled(action.module):
        raise ServiceUnavailableException(f"模块 '{action.module}' 已停用")

    result = await loader.actions.dispatch(action, req.payload)
    return {"action": action.to_dict(), "result": result.to_dict()}
