"""
模块化应用宿主

后端进程按静态模块清单加载功能模块（路由、生命周期钩子、安装器），
并为每个模块按需解析前端页面入口。
"""

__version__ = "0.4.0"
