"""ASGI 中间件"""

from src.middleware.json_body import JsonBodyMiddleware
from src.middleware.prefix_mount import MountTable, PrefixMount, PrefixMountMiddleware, path_matches_prefix

__all__ = [
    "JsonBodyMiddleware",
    "MountTable",
    "PrefixMount",
    "PrefixMountMiddleware",
    "path_matches_prefix",
]
