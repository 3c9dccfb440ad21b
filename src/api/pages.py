"""模块页面路由"""

import html

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from src.api.modules import get_registry
from src.core.modules import ModuleRegistry, SurfaceManifest, SurfaceResolution, SurfaceStatus
from src.core.modules.surface import render_inactive_placeholder, render_placeholder, resolve_surface

router = APIRouter(tags=["Module Pages"])

PAGE_TEMPLATE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
{content}
</body>
</html>
"""


@router.get("/modules/{module_name}", response_class=HTMLResponse)
async def module_page(
    module_name: str,
    request: Request,
    registry: ModuleRegistry = Depends(get_registry),
) -> HTMLResponse:
    """
    渲染模块页面

    页面入口缺失、损坏或模块未启用时返回占位内容，状态码始终为 200
    """
    module = registry.get_module(module_name)
    loader = getattr(request.app.state, "module_loader", None)

    if module is None:
        content = render_placeholder(SurfaceResolution(status=SurfaceStatus.ABSENT, module=module_name))
        title = module_name
    elif loader is None or not loader.is_loaded(module_name) or loader.is_disabled(module_name):
        content = render_inactive_placeholder(module_name)
        title = module.descriptor.display_name
    else:
        manifest = getattr(request.app.state, "surface_manifest", None) or SurfaceManifest()
        surface = resolve_surface(module_name, module.descriptor.surface_candidates, manifest)
        content = surface.render()
        title = module.descriptor.display_name

    return HTMLResponse(PAGE_TEMPLATE.format(title=html.escape(title), content=content))
