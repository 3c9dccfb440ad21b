"""配置包"""

from src.config.settings import Config, config, parse_size

__all__ = ["Config", "config", "parse_size"]
