"""
服务器配置
从环境变量或 .env 文件加载配置
"""

import os
import re
from pathlib import Path

from dotenv import load_dotenv

env_file = Path(".env")
if env_file.exists():
    load_dotenv(env_file)


_SIZE_UNITS = {
    "b": 1,
    "kb": 1024,
    "mb": 1024 * 1024,
    "gb": 1024 * 1024 * 1024,
}

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmg]?b)?\s*$", re.IGNORECASE)


def parse_size(value: str | int) -> int:
    """
    解析请求体大小限制

    支持纯数字（字节）或带单位的写法，如 "100mb"、"512kb"

    Raises:
        ValueError: 无法解析的大小
    """
    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size value: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "b").lower()])


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    def __init__(self) -> None:
        # 服务器配置
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", "3010"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        # 日志文件（为空则只输出到 stderr）
        self.log_file = os.getenv("LOG_FILE", "")

        self.environment = os.getenv("ENVIRONMENT", "development")

        # 数据库配置 - 可选，未配置时模块启用状态不做门控
        self.database_url = os.getenv("DATABASE_URL") or None

        # 目录
        self.repo_root = Path(__file__).resolve().parents[2]
        self.modules_root = self.repo_root / "src" / "modules"
        self.data_dir = Path(os.getenv("DATA_DIR", str(self.repo_root / "data")))

        # JSON 请求体大小上限（默认与原有部署保持一致，兼容 base64 负载）
        self.json_body_limit = parse_size(os.getenv("JSON_BODY_LIMIT", "100mb"))

        # 部署级禁用的模块（逗号分隔）
        self.modules_disabled = {
            name.strip() for name in os.getenv("MODULES_DISABLED", "").split(",") if name.strip()
        }

        # 安装结果是否回写到 module_states 表
        self.module_schema_autocheck = _env_flag("MODULE_SCHEMA_AUTOCHECK")

        # CORS配置 - 逗号分隔的域名列表
        cors_origins = os.getenv("CORS_ORIGINS", "")
        if cors_origins:
            self.cors_origins = [
                origin.strip() for origin in cors_origins.split(",") if origin.strip()
            ]
        elif self.environment == "development":
            self.cors_origins = [
                "http://localhost:5173",  # Vite 默认端口
                "http://127.0.0.1:5173",
            ]
        else:
            # 生产环境默认不允许跨域,必须显式配置
            self.cors_origins = []

    @property
    def database_enabled(self) -> bool:
        return self.database_url is not None

    def log_startup_warnings(self) -> None:
        """
        记录启动时的配置警告
        这个方法应该在 logger 初始化后调用
        """
        from src.core.logger import logger

        if not self.database_enabled:
            logger.warning("DATABASE_URL 未设置：模块启用状态不做门控，安装器将跳过数据库操作")

        if self.module_schema_autocheck and not self.database_enabled:
            logger.warning("MODULE_SCHEMA_AUTOCHECK 已开启但没有数据库，安装结果不会被记录")

        if self.environment == "production" and not self.cors_origins:
            logger.warning("生产环境 CORS 未配置，前端将无法访问 API。请设置 CORS_ORIGINS。")

    def __repr__(self):
        """配置信息字符串表示"""
        return f"""
Configuration:
  Server: {self.host}:{self.port}
  Log Level: {self.log_level}
  Environment: {self.environment}
  Database: {"enabled" if self.database_enabled else "disabled"}
"""


# 创建全局配置实例
config = Config()
