"""
存档迁移异常体系

所有致命错误均继承自 MigrationError，游戏侧只需捕获基类即可得到
"该存档无法升级" 的语义；各子类携带结构化字段，便于日志与排查。
"""
from typing import Any, Optional


class MigrationError(Exception):
    """存档迁移错误基类"""


class DecodeError(MigrationError):
    """原始字节无法解析，或版本标签不可读"""

    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        self.original_error = original_error
        if original_error is not None:
            message = f"{message}: {original_error}"
        super().__init__(message)


class UnsupportedVersionError(MigrationError):
    """检测到的版本不在注册表已知范围内"""

    def __init__(self, version: Any, reason: str = "") -> None:
        self.version = version
        message = f"Unsupported save version {version}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NoPathError(MigrationError):
    """迁移链在到达目标版本前中断（缺口）"""

    def __init__(self, from_version: Any, target_version: Any, stopped_at: Any) -> None:
        self.from_version = from_version
        self.target_version = target_version
        self.stopped_at = stopped_at
        super().__init__(
            f"No migration path from {from_version} to {target_version}: "
            f"chain stops at {stopped_at}"
        )


class ValidationError(MigrationError):
    """结构不变量校验失败（迁移前或某一步之后）"""

    def __init__(self, report: Any, stage: str = "") -> None:
        self.report = report
        self.stage = stage
        details = "; ".join(f"{v.field}: {v.reason}" for v in report.violations)
        prefix = f"Validation failed at {stage}" if stage else "Validation failed"
        super().__init__(f"{prefix} (version {report.version}): {details}")


class StepError(MigrationError):
    """迁移步骤执行失败"""

    def __init__(self, step_id: str, message: str) -> None:
        self.step_id = step_id
        super().__init__(f"Step {step_id} failed: {message}")


class MalformedInputError(StepError):
    """
    步骤依赖的字段缺失或形状错误

    输入已通过前置校验却仍然触发，说明 Validator 与 Step 的契约不一致，
    属于需要开发者修复的缺陷，不做静默修补。
    """

    def __init__(self, step_id: str, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(step_id, f"malformed input at '{field}': {reason}")


class DuplicateStepError(MigrationError):
    """同一源版本重复注册迁移步骤（启动期编程错误）"""

    def __init__(self, from_version: Any, existing: str, incoming: str) -> None:
        self.from_version = from_version
        super().__init__(
            f"Migration from version {from_version} already registered "
            f"({existing}); refusing {incoming}"
        )


class BackupError(MigrationError):
    """备份记录不存在、已提交或持久化失败"""

    def __init__(self, record_id: str, message: str) -> None:
        self.record_id = record_id
        super().__init__(f"Backup {record_id}: {message}")


class ExecutorStateError(MigrationError):
    """执行器状态非法（例如重复使用单次执行器）"""


class WriteBackError(MigrationError):
    """迁移已提交，但迁移后的存档无法写回文件（原文件保持不变）"""

    def __init__(self, path: str, original_error: Optional[BaseException] = None) -> None:
        self.path = path
        self.original_error = original_error
        message = f"Cannot write migrated save back to {path}"
        if original_error is not None:
            message = f"{message}: {original_error}"
        super().__init__(message)
