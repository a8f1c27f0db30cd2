"""
备份相关值对象

BackupRecord 保存迁移前原始字节的不可变拷贝，直到执行器确认提交。
"""
import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .schema_version import SchemaVersion


class BackupPolicy(Enum):
    """提交后备份的处理策略"""
    DISCARD = "discard"      # 提交后直接释放
    SIBLING = "sibling"      # 写入存档旁的 .bak 文件
    ARCHIVE = "archive"      # 归档到 SQLite 表


class BackupStatus(Enum):
    """备份记录状态"""
    ACTIVE = "active"
    ABORTED = "aborted"
    COMMITTED = "committed"


def compute_digest(raw: bytes) -> str:
    """原始字节的 SHA-256 摘要"""
    return hashlib.sha256(raw).hexdigest()


@dataclass(frozen=True)
class BackupRecord:
    """
    迁移前原始存档的备份记录

    Attributes:
        record_id: 记录标识
        raw: 原始字节（不可变拷贝）
        digest: 原始字节的 SHA-256
        source_version: 检测到的源版本（版本标签不可读时为 None）
        artifact_name: 存档名称或路径（可选，用于 .bak 与归档）
        created_at: 创建时间
    """
    record_id: str
    raw: bytes
    digest: str
    source_version: Optional[SchemaVersion] = None
    artifact_name: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    def matches(self, raw: bytes) -> bool:
        """判断给定字节是否与备份完全一致"""
        return compute_digest(bytes(raw)) == self.digest

    def __repr__(self) -> str:
        return (
            f"BackupRecord(record_id={self.record_id!r}, size={len(self.raw)}, "
            f"source_version={self.source_version}, artifact_name={self.artifact_name!r})"
        )


@dataclass(frozen=True)
class RollbackInfo:
    """
    回滚信息

    Attributes:
        record_id: 对应的备份记录
        raw: 原始字节
        source_version: 源版本
        status: 当前记录状态
    """
    record_id: str
    raw: bytes
    source_version: Optional[SchemaVersion]
    status: BackupStatus
