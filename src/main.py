"""
主应用入口
采用模块化架构设计
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from src import __version__ as app_version
from src.api import modules_router, pages_router
from src.config import Config, config
from src.core.exceptions import ExceptionHandlers, ModuleHostException
from src.core.logger import logger
from src.core.modules import (
    ModuleDefinition,
    ModuleLoader,
    ModuleRegistry,
    ModuleServer,
    SurfaceManifest,
    get_module_registry,
    install_prefix_mounts,
)
from src.database import get_engine, init_db, reset_engine
from src.services.module_state import ModuleStateService


def _build_registry(modules: Optional[List[ModuleDefinition]], settings: Config) -> ModuleRegistry:
    """未指定模块时使用全局注册中心和静态清单"""
    if modules is None:
        from src.modules import ALL_MODULES

        registry = get_module_registry()
        modules = ALL_MODULES
    else:
        registry = ModuleRegistry(disabled=settings.modules_disabled)

    registry.set_state_backend(ModuleStateService)
    registry.register_all(modules)
    return registry


def _install_result_recorder(registry: ModuleRegistry, engine: Optional[Engine], settings: Config):
    """安装结果回写 module_states（需要 MODULE_SCHEMA_AUTOCHECK 且有数据库）"""
    if engine is None or not settings.module_schema_autocheck:
        return None

    def record(module_name: str, error: Optional[BaseException]) -> None:
        module = registry.get_module(module_name)
        version = module.descriptor.version if module else None
        with Session(bind=engine) as db:
            ModuleStateService.record_install(db, module_name, error, version=version)

    return record


async def initialize_modules(
    app: FastAPI,
    server: ModuleServer,
    modules: Optional[List[ModuleDefinition]],
    settings: Config,
    engine: Optional[Engine],
) -> ModuleLoader:
    """注册、门控并加载功能模块，结果挂到 app.state"""
    registry = _build_registry(modules, settings)

    if engine is not None:
        with Session(bind=engine) as db:
            loadable, skipped = registry.resolve_loadable(db)
    else:
        loadable, skipped = registry.resolve_loadable(None)

    loader = ModuleLoader(
        server,
        settings=settings,
        engine=engine,
        on_install_result=_install_result_recorder(registry, engine, settings),
    )
    report = await loader.load_all(loadable)
    report.skipped.update(skipped)

    app.state.module_registry = registry
    app.state.module_loader = loader
    app.state.load_report = report
    app.state.surface_manifest = SurfaceManifest.build()

    logger.info(
        f"功能模块初始化完成: {len(report.loaded)}/{len(registry.get_all_modules())} 个模块已加载"
    )
    return loader


def create_app(
    modules: Optional[List[ModuleDefinition]] = None,
    *,
    settings: Optional[Config] = None,
    engine: Optional[Engine] = None,
) -> FastAPI:
    """
    创建应用

    Args:
        modules: 要加载的模块定义；None 表示使用 src.modules.ALL_MODULES
        settings: 配置，默认使用全局 config
        engine: 数据库引擎，默认按 DATABASE_URL 创建（未配置则为 None）
    """
    settings = settings if settings is not None else config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        """应用生命周期管理"""
        logger.info("=" * 60)
        logger.info(f"Module Host v{app_version}")
        logger.info("=" * 60)

        settings.log_startup_warnings()

        db_engine = engine if engine is not None else get_engine(settings.database_url)
        if db_engine is not None:
            logger.info("初始化数据库...")
            init_db(db_engine)
        app.state.engine = db_engine

        logger.info("初始化功能模块系统...")
        await initialize_modules(app, server, modules, settings, db_engine)

        logger.info(f"服务启动成功: http://{settings.host}:{settings.port}")
        logger.info("=" * 60)

        yield  # 应用运行期间

        logger.info("正在关闭服务...")
        if engine is None:
            reset_engine()
        logger.info("服务已关闭")

    app = FastAPI(
        title="Module Host",
        version=app_version,
        lifespan=lifespan,
    )

    # 注册全局异常处理器
    app.add_exception_handler(ModuleHostException, ExceptionHandlers.handle_host_exception)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, ExceptionHandlers.handle_generic_exception)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, ExceptionHandlers.handle_http_exception)  # type: ignore[arg-type]

    # 模块按前缀登记的中间件统一由这一层分发（启动后不能再 add_middleware）
    server = install_prefix_mounts(app)

    if settings.cors_origins:
        allow_credentials = "*" not in settings.cors_origins
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=allow_credentials,
            allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
            allow_headers=["*"],
        )
        logger.info(f"CORS已启用,允许的源: {settings.cors_origins}")

    @app.get("/health", tags=["System"])
    async def health() -> dict[str, Any]:
        loader: Optional[ModuleLoader] = getattr(app.state, "module_loader", None)
        return {
            "status": "ok",
            "version": app_version,
            "modules_loaded": len(loader.get_loaded_modules()) if loader else 0,
        }

    app.include_router(modules_router)
    app.include_router(pages_router)
    return app


app = create_app()


def main() -> Any:
    log_level = config.log_level.split()[0].lower()
    if log_level not in ["debug", "info", "warning", "error", "critical"]:
        log_level = "info"

    uvicorn.run(
        "src.main:app",
        host=config.host,
        port=config.port,
        log_level=log_level,
        reload=config.environment == "development",
        access_log=False,
        log_config=None,  # 日志已由 loguru 接管
    )


if __name__ == "__main__":
    main()
