"""数据库连接"""

from src.database.database import get_engine, init_db, reset_engine

__all__ = ["get_engine", "init_db", "reset_engine"]
