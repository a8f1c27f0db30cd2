"""
SchemaVersion - 存档数据结构版本

语义化三元组 (major, minor, patch)，全序可比较、可哈希。
磁盘上的版本标签形如 "1.0" / "2.0" / "3.0"。
"""
import re
from dataclasses import dataclass
from typing import Union

_VERSION_PATTERN = re.compile(r"^\s*(\d+)(?:\.(\d+))?(?:\.(\d+))?\s*$")

VersionLike = Union["SchemaVersion", int, str]


@dataclass(frozen=True, order=True)
class SchemaVersion:
    """
    存档数据结构版本

    Attributes:
        major: 主版本号
        minor: 次版本号
        patch: 修订号
    """
    major: int
    minor: int = 0
    patch: int = 0

    def __post_init__(self) -> None:
        for part in (self.major, self.minor, self.patch):
            if isinstance(part, bool) or not isinstance(part, int) or part < 0:
                raise ValueError(f"Invalid schema version component: {part!r}")

    @classmethod
    def parse(cls, value: VersionLike) -> "SchemaVersion":
        """
        解析版本标识

        Args:
            value: SchemaVersion / 非负整数 / "3" / "3.0" / "3.0.1"

        Returns:
            SchemaVersion 实例

        Raises:
            ValueError: 无法解析
        """
        if isinstance(value, SchemaVersion):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid schema version: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            match = _VERSION_PATTERN.match(value)
            if match is None:
                raise ValueError(f"Invalid schema version: {value!r}")
            major, minor, patch = match.groups()
            return cls(int(major), int(minor or 0), int(patch or 0))
        raise ValueError(f"Invalid schema version type: {type(value).__name__}")

    def __str__(self) -> str:
        if self.patch:
            return f"{self.major}.{self.minor}.{self.patch}"
        return f"{self.major}.{self.minor}"
