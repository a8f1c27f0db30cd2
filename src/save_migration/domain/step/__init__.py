"""
Step 子模块 - 迁移步骤

包含步骤基类、函数适配器与内置历史步骤。
"""
from .migration_step import FunctionStep, MigrationStep, TransformFn
from .builtin_steps import BUILTIN_STEPS, V1ToV2Step, V2ToV3Step, builtin_steps

__all__ = [
    "MigrationStep",
    "FunctionStep",
    "TransformFn",
    "BUILTIN_STEPS",
    "V1ToV2Step",
    "V2ToV3Step",
    "builtin_steps",
]
