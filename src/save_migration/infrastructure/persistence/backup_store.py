"""备份持久化存储。

- SiblingFileBackupStore: 写入存档旁的 <name>.bak 文件
- BackupArchive: 归档到 SQLite save_backup 表，支持按名称取最新备份与按天清理

职责与策略状态仓库一致: 保存（追加）、加载最新、清理旧记录。
"""

from datetime import datetime, timedelta
from logging import Logger
from pathlib import Path
from typing import Optional, Union

from peewee import Database, SqliteDatabase

from src.save_migration.domain.exceptions import BackupError
from src.save_migration.domain.value_object.backup import BackupRecord
from src.save_migration.infrastructure.persistence.artifact_io import write_artifact_atomic
from src.save_migration.infrastructure.persistence.save_backup_model import SaveBackupModel

DEFAULT_BACKUP_SUFFIX = ".bak"


class SiblingFileBackupStore:
    """以 .bak 文件形式把原始存档写到存档旁边。"""

    def __init__(
        self,
        suffix: str = DEFAULT_BACKUP_SUFFIX,
        directory: Optional[Union[str, Path]] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        if not suffix:
            raise ValueError("Backup suffix must not be empty")
        self._suffix = suffix
        self._directory = Path(directory) if directory is not None else None
        self._logger = logger

    def backup_path_for(self, artifact_name: str) -> Path:
        """计算备份文件路径: 与存档同目录（或指定目录）下的 <name><suffix>。"""
        artifact = Path(artifact_name)
        parent = self._directory if self._directory is not None else artifact.parent
        return parent / f"{artifact.name}{self._suffix}"

    def persist(self, record: BackupRecord) -> str:
        if not record.artifact_name:
            raise BackupError(record.record_id, "sibling backup requires an artifact path")
        path = self.backup_path_for(record.artifact_name)
        try:
            write_artifact_atomic(path, record.raw)
        except OSError as e:
            raise BackupError(record.record_id, f"cannot write {path}: {e}") from e
        if self._logger:
            self._logger.info(f"原始存档已备份: {path}")
        return str(path)


class BackupArchive:
    """迁移前原始存档的 SQLite 归档。"""

    def __init__(
        self,
        database: Union[Database, str, Path],
        logger: Optional[Logger] = None,
    ) -> None:
        if isinstance(database, Database):
            self._db = database
        else:
            self._db = SqliteDatabase(str(database))
        self._logger = logger
        SaveBackupModel._meta.database = self._db
        self._db.create_tables([SaveBackupModel], safe=True)

    def _bind(self) -> None:
        SaveBackupModel._meta.database = self._db

    def persist(self, record: BackupRecord) -> str:
        """归档一条备份（INSERT 追加），返回 archive:<record_id>。"""
        self._bind()
        SaveBackupModel.create(
            record_id=record.record_id,
            artifact_name=record.artifact_name or "",
            source_version=str(record.source_version) if record.source_version is not None else None,
            digest=record.digest,
            payload=record.raw,
            saved_at=datetime.now(),
        )
        if self._logger:
            self._logger.info(f"原始存档已归档: {record.artifact_name or record.record_id}")
        return f"archive:{record.record_id}"

    def latest(self, artifact_name: str) -> Optional[bytes]:
        """取指定存档最近一次归档的原始字节，无记录返回 None。"""
        self._bind()
        row = (
            SaveBackupModel.select()
            .where(SaveBackupModel.artifact_name == artifact_name)
            .order_by(SaveBackupModel.saved_at.desc(), SaveBackupModel.id.desc())
            .first()
        )
        if row is None:
            return None
        return bytes(row.payload)

    def count(self, artifact_name: Optional[str] = None) -> int:
        self._bind()
        query = SaveBackupModel.select()
        if artifact_name is not None:
            query = query.where(SaveBackupModel.artifact_name == artifact_name)
        return query.count()

    def cleanup(self, keep_days: int = 7) -> int:
        """清理 saved_at 早于 keep_days 天前的归档，返回删除条数。"""
        self._bind()
        cutoff = datetime.now() - timedelta(days=keep_days)
        deleted = SaveBackupModel.delete().where(SaveBackupModel.saved_at < cutoff).execute()
        if self._logger:
            self._logger.info(f"清理旧备份: 删除 {deleted} 条记录")
        return deleted

    def close(self) -> None:
        if not self._db.is_closed():
            self._db.close()
