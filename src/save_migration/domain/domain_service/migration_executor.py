"""
MigrationExecutor - 单个存档的迁移编排

流程: 备份 → 解码 → 初始校验 → 计算路径 → 逐步迁移并在每步后校验 → 最终校验 → 提交。
任何失败都进入 ABORTED：备份保持可取回，不向游戏返回任何中间结果。

执行器是一次性的，每个存档使用一个新实例。
"""
import logging
from logging import Logger
from typing import List, Optional, Protocol

from src.save_migration.domain.domain_service.migration_registry import MigrationPath, MigrationRegistry
from src.save_migration.domain.domain_service.validator import Validator
from src.save_migration.domain.event.event_types import DomainEvent
from src.save_migration.domain.event.migration_events import (
    MigrationAbortedEvent,
    MigrationCommittedEvent,
    MigrationStartedEvent,
    StepAppliedEvent,
)
from src.save_migration.domain.exceptions import (
    DecodeError,
    ExecutorStateError,
    MalformedInputError,
    MigrationError,
    StepError,
    UnsupportedVersionError,
)
from src.save_migration.domain.step.migration_step import MigrationStep
from src.save_migration.domain.value_object.backup import BackupRecord
from src.save_migration.domain.value_object.executor_state import (
    ExecutorState,
    StateTransition,
    can_transition,
)
from src.save_migration.domain.value_object.save_blob import SaveBlob
from src.save_migration.domain.value_object.schema_version import SchemaVersion, VersionLike


class SaveDecoder(Protocol):
    def decode(self, raw: bytes) -> SaveBlob: ...


class BackupPort(Protocol):
    def begin_migration(
        self, raw_artifact: bytes, source_version: Optional[SchemaVersion] = None,
        artifact_name: Optional[str] = None,
    ) -> BackupRecord: ...

    def tag_version(self, record: BackupRecord, version: SchemaVersion) -> BackupRecord: ...

    def commit(self, record: BackupRecord, persist: bool = True) -> Optional[str]: ...

    def abort(self, record: BackupRecord) -> None: ...


class MigrationExecutor:
    """
    迁移执行器（状态机）

    职责:
    1. 在任何变换前通过 BackupManager 保存原始字节
    2. 解码并识别版本
    3. 按注册表路径严格顺序执行步骤，每步输出都重新校验
    4. 最终按当前版本全量校验后提交
    5. 记录状态迁移与领域事件
    """

    def __init__(
        self,
        registry: MigrationRegistry,
        validator: Validator,
        codec: SaveDecoder,
        backup_manager: BackupPort,
        current_version: VersionLike,
        strict_final: Optional[bool] = None,
        artifact_name: Optional[str] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._registry = registry
        self._validator = validator
        self._codec = codec
        self._backup_manager = backup_manager
        self._current_version = SchemaVersion.parse(current_version)
        self._strict_final = strict_final
        self._artifact_name = artifact_name
        self._logger = logger or logging.getLogger(__name__)

        self._state = ExecutorState.CREATED
        self._history: List[StateTransition] = [StateTransition(ExecutorState.CREATED)]
        self._domain_events: List[DomainEvent] = []
        self._backup_record: Optional[BackupRecord] = None
        self._error: Optional[MigrationError] = None
        self._steps_applied = 0

    # ========== 只读属性 ==========

    @property
    def state(self) -> ExecutorState:
        return self._state

    @property
    def history(self) -> List[StateTransition]:
        return list(self._history)

    @property
    def backup_record(self) -> Optional[BackupRecord]:
        """迁移开始后的备份记录；中止后用于取回原始存档"""
        return self._backup_record

    @property
    def error(self) -> Optional[MigrationError]:
        return self._error

    @property
    def steps_applied(self) -> int:
        return self._steps_applied

    @property
    def current_version(self) -> SchemaVersion:
        return self._current_version

    # ========== 主流程 ==========

    def migrate(self, raw_bytes: bytes) -> SaveBlob:
        """
        将原始存档迁移到当前版本

        Args:
            raw_bytes: 原始存档字节

        Returns:
            标记为当前版本并通过校验的 SaveBlob

        Raises:
            ExecutorStateError: 执行器已被使用
            MigrationError: 任一阶段失败（已进入 ABORTED）；其他异常被包装后抛出
        """
        if self._state is not ExecutorState.CREATED:
            raise ExecutorStateError(
                f"Executor is single-use; current state is {self._state.value}"
            )

        try:
            self._backup_record = self._backup_manager.begin_migration(
                bytes(raw_bytes), artifact_name=self._artifact_name
            )
            blob = self._codec.decode(self._backup_record.raw)
            self._transition(ExecutorState.DECODED, detail=f"version {blob.version}")
            self._backup_record = self._backup_manager.tag_version(self._backup_record, blob.version)

            self._check_version_supported(blob.version)
            self._domain_events.append(
                MigrationStartedEvent(
                    artifact_name=self._artifact_name or "",
                    source_version=str(blob.version),
                    target_version=str(self._current_version),
                )
            )
            self._logger.info(
                "开始迁移存档 %s: %s -> %s",
                self._artifact_name or "<memory>", blob.version, self._current_version,
            )

            self._transition(ExecutorState.VALIDATING_INITIAL)
            self._validator.validate(blob, blob.version).raise_if_invalid(
                f"initial validation of {blob.version}"
            )

            path = self._registry.path_to(blob.version, self._current_version)
            blob = self._run_path(blob, path)

            self._transition(ExecutorState.FINALIZING)
            self._validator.validate(
                blob, self._current_version, strict=self._strict_final
            ).raise_if_invalid(f"final validation of {self._current_version}")

            # 未执行任何步骤时不持久化备份
            location = self._backup_manager.commit(
                self._backup_record, persist=self._steps_applied > 0
            )
            self._transition(ExecutorState.COMMITTED)
        except MigrationError as e:
            self._abort(e)
            raise
        except Exception as e:
            error = self._wrap_unexpected(e)
            self._logger.error(
                "存档迁移出现未预期异常 [%s]: %s", self._state.value, e, exc_info=True,
            )
            self._abort(error)
            raise error from e

        self._domain_events.append(
            MigrationCommittedEvent(
                artifact_name=self._artifact_name or "",
                source_version=str(self._backup_record.source_version),
                target_version=str(self._current_version),
                steps_applied=self._steps_applied,
                backup_location=location or "",
            )
        )
        self._logger.info(
            "存档迁移完成 %s: 执行 %d 步，当前版本 %s",
            self._artifact_name or "<memory>", self._steps_applied, self._current_version,
        )
        return blob

    def _wrap_unexpected(self, error: Exception) -> MigrationError:
        """把非迁移异常转换为 MigrationError；解码前的失败视为 DecodeError"""
        if self._state is ExecutorState.CREATED:
            return DecodeError(f"Save artifact could not be decoded: {type(error).__name__}", error)
        return MigrationError(
            f"Unexpected {type(error).__name__} in state {self._state.value}: {error}"
        )

    def _check_version_supported(self, version: SchemaVersion) -> None:
        if version > self._current_version:
            raise UnsupportedVersionError(
                version, f"newer than current version {self._current_version}"
            )
        if version != self._current_version and not self._registry.is_known(version):
            raise UnsupportedVersionError(version, "version is not part of the migration chain")

    def _run_path(self, blob: SaveBlob, path: MigrationPath) -> SaveBlob:
        total = len(path)
        if path.is_empty:
            self._logger.debug("存档已是当前版本 %s，跳过迁移", blob.version)
            return blob

        for index, step in enumerate(path, start=1):
            self._transition(
                ExecutorState.MIGRATING, index, total, detail=step.step_id
            )
            blob = self._apply_step(step, blob)

            self._transition(
                ExecutorState.VALIDATING_POST_STEP, index, total, detail=step.step_id
            )
            self._validator.validate(blob, step.to_version).raise_if_invalid(
                f"after step {step.step_id} ({step.name})"
            )
            self._steps_applied = index
            self._domain_events.append(
                StepAppliedEvent(step_id=step.step_id, step_index=index, step_count=total)
            )
            self._logger.debug("步骤 %d/%d 完成: %r", index, total, step)
        return blob

    def _apply_step(self, step: MigrationStep, blob: SaveBlob) -> SaveBlob:
        """执行单步并检查输出标签与输入未被修改"""
        digest_before = blob.digest()
        try:
            result = step.apply(blob)
        except MalformedInputError as e:
            self._logger.error(
                "迁移步骤输入不符合契约 [%r] 字段 %s: %s (存档 %s)",
                step, e.field, e.reason, self._artifact_name or "<memory>",
                exc_info=True,
            )
            raise
        except StepError:
            raise
        except Exception as e:
            self._logger.error(
                "迁移步骤异常 [%r]: %s", step, e, exc_info=True,
            )
            raise StepError(step.step_id, f"{type(e).__name__}: {e}") from e

        if blob.digest() != digest_before:
            raise StepError(step.step_id, "step mutated its input blob")
        if not isinstance(result, SaveBlob):
            raise StepError(step.step_id, f"returned {type(result).__name__}, expected SaveBlob")
        if result.version != step.to_version:
            raise StepError(
                step.step_id, f"output tagged {result.version}, expected {step.to_version}"
            )
        return result

    # ========== 状态机 ==========

    def _transition(
        self,
        state: ExecutorState,
        step_index: Optional[int] = None,
        step_count: Optional[int] = None,
        detail: str = "",
    ) -> None:
        if not can_transition(self._state, state):
            raise ExecutorStateError(
                f"Illegal executor transition {self._state.value} -> {state.value}"
            )
        self._state = state
        self._history.append(StateTransition(state, step_index, step_count, detail))

    def _abort(self, error: MigrationError) -> None:
        failed_state = self._state
        self._error = error
        if not self._state.is_terminal:
            self._state = ExecutorState.ABORTED
            self._history.append(
                StateTransition(ExecutorState.ABORTED, detail=type(error).__name__)
            )
        if self._backup_record is not None:
            self._backup_manager.abort(self._backup_record)
        self._domain_events.append(
            MigrationAbortedEvent(
                artifact_name=self._artifact_name or "",
                state=failed_state.value,
                error_type=type(error).__name__,
                message=str(error),
            )
        )
        self._logger.warning(
            "存档迁移中止 %s [%s]: %s；原始存档保持不变",
            self._artifact_name or "<memory>", failed_state.value, error,
        )

    # ========== 领域事件接口 ==========

    def pop_domain_events(self) -> List[DomainEvent]:
        """
        获取并清空领域事件队列

        Returns:
            领域事件列表
        """
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events

    def has_pending_events(self) -> bool:
        return len(self._domain_events) > 0

    def __repr__(self) -> str:
        return (
            f"MigrationExecutor(state={self._state.value}, "
            f"target={self._current_version}, steps_applied={self._steps_applied})"
        )
