"""存档迁移服务。

把注册表、校验器、编解码器与备份管理器组合起来，为游戏提供迁移入口:
- migrate: 内存中的原始字节 → 当前版本 SaveBlob
- migrate_file: 读取存档文件，迁移后（可选）原子写回；失败时文件保持原样
- migrate_files: 多个存档槽位并行迁移

设计决策:
- 每个存档使用新的 MigrationExecutor（单次使用），槽位之间无共享可变状态
- 注册表启动后只读，可被多线程共享
- 使用 ThreadPoolExecutor 并行处理互相独立的槽位
- 单个槽位失败（包括写回失败与未预期异常）记录在结果中，不影响其他槽位
- 中止的迁移在结果生成后释放备份，原始存档仍在磁盘或调用方手中
"""

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from logging import Logger, getLogger
from pathlib import Path
from typing import Iterable, List, Optional, Union

from src.save_migration.domain.domain_service.migration_executor import MigrationExecutor
from src.save_migration.domain.domain_service.migration_registry import MigrationRegistry
from src.save_migration.domain.domain_service.validator import Validator
from src.save_migration.domain.event.event_types import DomainEvent
from src.save_migration.domain.exceptions import DecodeError, MigrationError, WriteBackError
from src.save_migration.domain.value_object.executor_state import ExecutorState
from src.save_migration.domain.value_object.save_blob import SaveBlob
from src.save_migration.domain.value_object.schema_version import SchemaVersion, VersionLike
from src.save_migration.infrastructure.persistence.artifact_io import (
    read_artifact,
    write_artifact_atomic,
)
from src.save_migration.infrastructure.persistence.backup_manager import BackupManager
from src.save_migration.infrastructure.persistence.save_codec import SaveCodec

DEFAULT_MAX_WORKERS = 4


@dataclass
class SlotMigrationResult:
    """单个存档槽位的迁移结果"""

    path: str
    blob: Optional[SaveBlob] = None
    error: Optional[MigrationError] = None
    source_version: Optional[SchemaVersion] = None
    steps_applied: int = 0
    written: bool = False
    events: List[DomainEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class SaveMigrationService:
    """存档迁移服务"""

    def __init__(
        self,
        registry: MigrationRegistry,
        validator: Validator,
        codec: SaveCodec,
        backup_manager: BackupManager,
        current_version: Optional[VersionLike] = None,
        strict_final: Optional[bool] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        write_back: bool = True,
        logger: Optional[Logger] = None,
    ) -> None:
        if current_version is None:
            current_version = registry.latest_version()
        if current_version is None:
            raise ValueError("current_version is required when the registry is empty")
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._registry = registry
        self._validator = validator
        self._codec = codec
        self._backup_manager = backup_manager
        self._current_version = SchemaVersion.parse(current_version)
        self._strict_final = strict_final
        self._max_workers = max_workers
        self._write_back = write_back
        self._logger = logger or getLogger(__name__)

    @property
    def current_version(self) -> SchemaVersion:
        return self._current_version

    @property
    def codec(self) -> SaveCodec:
        return self._codec

    @property
    def backup_manager(self) -> BackupManager:
        return self._backup_manager

    def new_executor(self, artifact_name: Optional[str] = None) -> MigrationExecutor:
        """为单个存档创建一次性执行器。"""
        return MigrationExecutor(
            registry=self._registry,
            validator=self._validator,
            codec=self._codec,
            backup_manager=self._backup_manager,
            current_version=self._current_version,
            strict_final=self._strict_final,
            artifact_name=artifact_name,
            logger=self._logger,
        )

    def migrate(self, raw_bytes: bytes) -> SaveBlob:
        """迁移内存中的原始存档字节。

        失败时备份随即释放：原始字节仍在调用方手中。
        """
        executor = self.new_executor()
        try:
            return executor.migrate(raw_bytes)
        finally:
            self._release_aborted(executor)

    def migrate_file(
        self, path: Union[str, Path], write_back: Optional[bool] = None
    ) -> SlotMigrationResult:
        """
        迁移存档文件。

        成功且 write_back 时把编码结果原子写回原路径（已是当前版本时不写）；
        读取失败或迁移失败时不写任何内容，错误记录在结果中。
        写回失败时结果保留迁移后的 blob，error 为 WriteBackError，原文件保持不变。
        """
        if write_back is None:
            write_back = self._write_back
        artifact = Path(path)
        result = SlotMigrationResult(path=str(artifact))
        try:
            raw = read_artifact(artifact)
        except OSError as e:
            self._logger.error(f"读取存档失败 [{artifact}]: {e}")
            result.error = DecodeError(f"Cannot read save artifact {artifact}", e)
            return result

        executor = self.new_executor(artifact_name=str(artifact))
        try:
            blob = executor.migrate(raw)
        except MigrationError as e:
            result.error = e
        else:
            result.blob = blob
            result.steps_applied = executor.steps_applied
            if write_back and executor.steps_applied > 0:
                self._write_back_result(artifact, blob, result)
        finally:
            record = executor.backup_record
            if record is not None:
                result.source_version = record.source_version
            result.events = executor.pop_domain_events()
            self._release_aborted(executor)
        return result

    def migrate_files(
        self,
        paths: Iterable[Union[str, Path]],
        write_back: Optional[bool] = None,
        max_workers: Optional[int] = None,
    ) -> List[SlotMigrationResult]:
        """并行迁移多个互相独立的存档槽位，结果顺序与输入一致。"""
        path_list = [Path(p) for p in paths]
        if not path_list:
            return []
        workers = min(max_workers or self._max_workers, len(path_list))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self.migrate_file, p, write_back) for p in path_list]
            results = [self._collect(f, p) for f, p in zip(futures, path_list)]

        failed = sum(1 for r in results if not r.ok)
        self._logger.info(f"批量迁移完成: 共 {len(results)} 个存档，失败 {failed} 个")
        return results

    def _write_back_result(
        self, artifact: Path, blob: SaveBlob, result: SlotMigrationResult
    ) -> None:
        try:
            write_artifact_atomic(artifact, self._codec.encode(blob))
        except Exception as e:
            self._logger.error(f"写回存档失败 [{artifact}]: {e}", exc_info=True)
            result.error = WriteBackError(str(artifact), e)
            return
        result.written = True
        self._logger.info(f"已写回迁移后的存档: {artifact}")

    def _collect(self, future: Future, path: Path) -> SlotMigrationResult:
        try:
            return future.result()
        except Exception as e:
            self._logger.error(f"存档槽位迁移异常 [{path}]: {e}", exc_info=True)
            return SlotMigrationResult(
                path=str(path),
                error=MigrationError(f"Unexpected {type(e).__name__} migrating {path}: {e}"),
            )

    def _release_aborted(self, executor: MigrationExecutor) -> None:
        record = executor.backup_record
        if record is not None and executor.state is ExecutorState.ABORTED:
            self._backup_manager.release(record)
