"""备份管理器: 迁移全过程的安全网。

职责:
- begin_migration: 在任何变换开始前保存原始字节的不可变拷贝
- rollback_info: 提交前随时可取回原始存档
- commit: 最终结果通过校验后释放备份（按策略先持久化为 .bak 或归档）
- abort: 迁移中止时保留备份，原始存档可取回

同一个管理器可被多个并行迁移共享，内部状态由锁保护。
已提交的备份立即释放原始字节，只保留最近 COMMITTED_HISTORY 个记录 id 用于状态查询。
"""

import threading
import uuid
from collections import OrderedDict
from dataclasses import replace
from logging import Logger, getLogger
from typing import Dict, Optional, Protocol

from src.save_migration.domain.exceptions import BackupError
from src.save_migration.domain.value_object.backup import (
    BackupPolicy,
    BackupRecord,
    BackupStatus,
    RollbackInfo,
    compute_digest,
)
from src.save_migration.domain.value_object.schema_version import SchemaVersion

COMMITTED_HISTORY = 1024


class BackupStore(Protocol):
    def persist(self, record: BackupRecord) -> str: ...


class BackupManager:
    """迁移备份管理器"""

    def __init__(
        self,
        policy: BackupPolicy = BackupPolicy.DISCARD,
        store: Optional[BackupStore] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        if policy is not BackupPolicy.DISCARD and store is None:
            raise ValueError(f"Backup policy {policy.value} requires a backup store")
        self._policy = policy
        self._store = store
        self._logger = logger or getLogger(__name__)
        self._records: Dict[str, BackupRecord] = {}
        self._status: Dict[str, BackupStatus] = {}
        self._committed: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def policy(self) -> BackupPolicy:
        return self._policy

    def begin_migration(
        self,
        raw_artifact: bytes,
        source_version: Optional[SchemaVersion] = None,
        artifact_name: Optional[str] = None,
    ) -> BackupRecord:
        """保存原始字节的不可变拷贝并返回备份记录。"""
        raw = bytes(raw_artifact)
        record = BackupRecord(
            record_id=uuid.uuid4().hex,
            raw=raw,
            digest=compute_digest(raw),
            source_version=source_version,
            artifact_name=artifact_name,
        )
        with self._lock:
            self._records[record.record_id] = record
            self._status[record.record_id] = BackupStatus.ACTIVE
        self._logger.debug(f"备份已建立: {record!r}")
        return record

    def tag_version(self, record: BackupRecord, version: SchemaVersion) -> BackupRecord:
        """解码成功后记录检测到的源版本，返回更新后的记录。"""
        with self._lock:
            self._require_known(record)
            updated = replace(record, source_version=version)
            self._records[record.record_id] = updated
        return updated

    def rollback_info(self, record: BackupRecord) -> RollbackInfo:
        """
        取回原始存档信息。提交前（包括中止后）始终可用。

        Raises:
            BackupError: 记录未知或已提交
        """
        with self._lock:
            stored = self._require_known(record)
            status = self._status[record.record_id]
        return RollbackInfo(
            record_id=stored.record_id,
            raw=stored.raw,
            source_version=stored.source_version,
            status=status,
        )

    def commit(self, record: BackupRecord, persist: bool = True) -> Optional[str]:
        """
        提交：按策略持久化后释放备份。

        Args:
            record: begin_migration 返回的备份记录
            persist: False 时跳过持久化（存档未发生变换）

        Returns:
            持久化位置（.bak 路径或 archive:<id>）；DISCARD 策略、未持久化时返回 None

        Raises:
            BackupError: 记录未知、已中止，或持久化失败（备份保持 ACTIVE）
        """
        with self._lock:
            stored = self._require_known(record)
            status = self._status[record.record_id]
            if status is not BackupStatus.ACTIVE:
                raise BackupError(record.record_id, f"cannot commit a {status.value} backup")

        location: Optional[str] = None
        if persist and self._should_persist(stored):
            try:
                location = self._store.persist(stored)
            except BackupError:
                raise
            except Exception as e:
                raise BackupError(
                    record.record_id, f"persist failed: {type(e).__name__}: {e}"
                ) from e

        with self._lock:
            self._records.pop(record.record_id, None)
            self._status.pop(record.record_id, None)
            self._committed[record.record_id] = None
            while len(self._committed) > COMMITTED_HISTORY:
                self._committed.popitem(last=False)
        self._logger.debug(
            f"备份已提交 [{self._policy.value}]: {stored.artifact_name or stored.record_id}"
        )
        return location

    def abort(self, record: BackupRecord) -> None:
        """迁移中止：保留备份，原始存档仍可通过 rollback_info 取回。

        已提交或已释放的记录不受影响。
        """
        with self._lock:
            if self._status.get(record.record_id) is BackupStatus.ACTIVE:
                self._status[record.record_id] = BackupStatus.ABORTED

    def release(self, record: BackupRecord) -> None:
        """调用方确认不再需要已中止的备份时释放内存。"""
        with self._lock:
            self._records.pop(record.record_id, None)
            self._status.pop(record.record_id, None)

    def status(self, record: BackupRecord) -> Optional[BackupStatus]:
        """返回备份状态；已释放或超出提交历史的记录返回 None"""
        with self._lock:
            if record.record_id in self._committed:
                return BackupStatus.COMMITTED
            return self._status.get(record.record_id)

    def retained_count(self) -> int:
        """仍在内存中保留原始字节的备份数量"""
        with self._lock:
            return len(self._records)

    def verify(self, record: BackupRecord, raw: bytes) -> bool:
        """校验给定字节与备份完全一致。"""
        return record.matches(raw)

    def _should_persist(self, record: BackupRecord) -> bool:
        if self._policy is BackupPolicy.DISCARD:
            return False
        if self._policy is BackupPolicy.SIBLING and not record.artifact_name:
            self._logger.debug(f"内存存档无文件路径，跳过 .bak 备份: {record.record_id}")
            return False
        return True

    def _require_known(self, record: BackupRecord) -> BackupRecord:
        if record.record_id in self._committed:
            raise BackupError(record.record_id, "already committed; backup released")
        if record.record_id not in self._status:
            raise BackupError(record.record_id, "unknown or released backup record")
        return self._records[record.record_id]
