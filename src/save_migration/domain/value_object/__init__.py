"""
值对象模块

包含版本号、存档数据树、校验报告与字段约束、备份记录、执行器状态等。
"""
from .schema_version import SchemaVersion, VersionLike
from .save_blob import SaveBlob
from .validation import FieldSpec, SchemaDefinition, ValidationReport, Violation
from .backup import BackupPolicy, BackupRecord, BackupStatus, RollbackInfo, compute_digest
from .executor_state import ExecutorState, StateTransition, can_transition

__all__ = [
    "SchemaVersion",
    "VersionLike",
    "SaveBlob",
    "FieldSpec",
    "SchemaDefinition",
    "ValidationReport",
    "Violation",
    "BackupPolicy",
    "BackupRecord",
    "BackupStatus",
    "RollbackInfo",
    "compute_digest",
    "ExecutorState",
    "StateTransition",
    "can_transition",
]
