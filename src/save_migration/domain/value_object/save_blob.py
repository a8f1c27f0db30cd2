"""
SaveBlob - 已解码、带版本标签的存档数据

数据是一棵通用树（字段名 → 标量 / 序列 / 嵌套映射），不绑定任何版本的
固定结构。构造时深拷贝，对外只暴露拷贝，步骤之间不共享可变状态。
"""
import copy
import hashlib
import json
from typing import Any, Dict, Iterator, Mapping, Optional

from .schema_version import SchemaVersion, VersionLike

_MISSING = object()


class SaveBlob:
    """带版本标签的存档数据树"""

    __slots__ = ("_version", "_data")

    def __init__(self, version: VersionLike, data: Mapping[str, Any]) -> None:
        if not isinstance(data, Mapping):
            raise TypeError(f"SaveBlob data must be a mapping, got {type(data).__name__}")
        self._version = SchemaVersion.parse(version)
        self._data: Dict[str, Any] = copy.deepcopy(dict(data))

    @property
    def version(self) -> SchemaVersion:
        return self._version

    def to_dict(self) -> Dict[str, Any]:
        """返回数据的深拷贝，调用方可随意修改"""
        return copy.deepcopy(self._data)

    def evolve(self, data: Mapping[str, Any], version: Optional[VersionLike] = None) -> "SaveBlob":
        """以新数据（及可选的新版本）构造新的 SaveBlob，本实例不变"""
        return SaveBlob(self._version if version is None else version, data)

    def get(self, path: str, default: Any = None) -> Any:
        """
        按点分路径读取字段，例如 "players.0.health"

        序列下标用数字表示；路径不存在时返回 default。
        """
        node: Any = self._data
        for part in path.split("."):
            if isinstance(node, Mapping):
                node = node.get(part, _MISSING)
            elif isinstance(node, list) and part.isdigit():
                index = int(part)
                node = node[index] if index < len(node) else _MISSING
            else:
                return default
            if node is _MISSING:
                return default
        return copy.deepcopy(node)

    def canonical_json(self) -> str:
        """规范化 JSON（键排序），相同内容始终得到相同字符串"""
        return json.dumps(
            {"version": str(self._version), "data": self._data},
            sort_keys=True,
            ensure_ascii=False,
            separators=(",", ":"),
        )

    def digest(self) -> str:
        """版本与数据的 SHA-256 摘要"""
        return hashlib.sha256(self.canonical_json().encode("utf-8", "surrogatepass")).hexdigest()

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SaveBlob):
            return NotImplemented
        return self._version == other._version and self._data == other._data

    def __repr__(self) -> str:
        return f"SaveBlob(version={self._version}, fields={sorted(self._data)})"
