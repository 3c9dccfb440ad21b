"""
功能模块注册

所有可选功能模块在此注册；顺序即加载顺序
"""

from typing import List

from src.core.modules.base import ModuleDefinition

# 导入所有模块定义
from src.modules.notes import notes_module
from src.modules.system import system_module

# 所有模块列表
ALL_MODULES: List[ModuleDefinition] = [
    system_module,
    notes_module,
]

__all__ = ["ALL_MODULES"]
