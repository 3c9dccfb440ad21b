"""API 路由"""

from src.api.modules import router as modules_router
from src.api.pages import router as pages_router

__all__ = ["modules_router", "pages_router"]
