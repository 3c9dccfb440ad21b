"""
统一异常定义与全局异常处理器
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from src.core.logger import logger


def error_body(error_type: str, message: str) -> dict[str, Any]:
    """错误响应体（与中间件直接返回的错误保持同一结构）"""
    return {"type": "error", "error": {"type": error_type, "message": message}}


class ModuleHostException(Exception):
    """宿主业务异常基类"""

    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundException(ModuleHostException):
    status_code = 404
    error_type = "not_found"


class InvalidRequestException(ModuleHostException):
    status_code = 400
    error_type = "invalid_request"


class ServiceUnavailableException(ModuleHostException):
    status_code = 503
    error_type = "service_unavailable"


class ExceptionHandlers:
    """FastAPI 全局异常处理器"""

    @staticmethod
    async def handle_host_exception(request: Request, exc: ModuleHostException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.error_type}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_type, exc.message),
        )

    @staticmethod
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("http_error", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @staticmethod
    async def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(f"未处理的异常: {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=error_body("internal_error", "Internal server error"),
        )
