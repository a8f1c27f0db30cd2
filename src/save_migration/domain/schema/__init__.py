"""
Schema 子模块 - 内置存档结构定义
"""
from .save_schemas import CURRENT_VERSION, SCHEMA_V1, SCHEMA_V2, SCHEMA_V3, builtin_schemas

__all__ = [
    "CURRENT_VERSION",
    "SCHEMA_V1",
    "SCHEMA_V2",
    "SCHEMA_V3",
    "builtin_schemas",
]
