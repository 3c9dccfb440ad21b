"""
日志系统

基于 loguru，导入时自动初始化：
- stderr 输出，级别取自 LOG_LEVEL
- 可选的文件输出（LOG_FILE），按大小轮转
- 标准库 logging（uvicorn 等）统一转发到 loguru
"""

from __future__ import annotations

import logging
import sys

from loguru import logger

from src.config import config

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}"


class InterceptHandler(logging.Handler):
    """把标准库 logging 的记录转交给 loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """(重新)配置日志输出"""
    level = (level or config.log_level).split()[0].upper()
    log_file = config.log_file if log_file is None else log_file

    logger.remove()
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, backtrace=False)
    if log_file:
        logger.add(
            log_file,
            level=level,
            format=_FILE_FORMAT,
            rotation="20 MB",
            retention=5,
            enqueue=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


setup_logging()

__all__ = ["logger", "setup_logging", "InterceptHandler"]
