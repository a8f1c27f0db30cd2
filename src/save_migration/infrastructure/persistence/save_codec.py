"""存档编解码器，处理自描述版本标签的 JSON 信封格式。

信封格式:
| 字段       | 内容                                 |
|-----------|--------------------------------------|
| version   | 版本标签字符串，如 "1.0"                |
| data      | 存档数据树（映射）                      |

示例: {"version": "1.0", "data": {"players": [...], "monsters": [...]}}

解码阶段的任何失败（非 UTF-8、非法 JSON、嵌套过深、根不是对象、版本标签缺失或不可读、
data 不是映射）一律抛出 DecodeError，不尝试迁移。
"""

import json
from typing import Any, Dict

from src.save_migration.domain.exceptions import DecodeError
from src.save_migration.domain.value_object.save_blob import SaveBlob
from src.save_migration.domain.value_object.schema_version import SchemaVersion

DEFAULT_VERSION_FIELD = "version"
DEFAULT_DATA_FIELD = "data"


class SaveCodec:
    """存档 JSON 信封编解码器。"""

    def __init__(
        self,
        version_field: str = DEFAULT_VERSION_FIELD,
        data_field: str = DEFAULT_DATA_FIELD,
    ) -> None:
        if not version_field or not data_field or version_field == data_field:
            raise ValueError("version_field and data_field must be distinct, non-empty names")
        self._version_field = version_field
        self._data_field = data_field

    @property
    def version_field(self) -> str:
        return self._version_field

    @property
    def data_field(self) -> str:
        return self._data_field

    def encode(self, blob: SaveBlob) -> bytes:
        """编码为 UTF-8 JSON 字节。

        - 版本标签写为 "major.minor" 字符串
        - sort_keys 保证相同存档始终得到相同字节
        """
        envelope = {
            self._version_field: str(blob.version),
            self._data_field: blob.to_dict(),
        }
        return json.dumps(envelope, sort_keys=True, ensure_ascii=False).encode("utf-8")

    def detect_version(self, raw: bytes) -> SchemaVersion:
        """只读取版本标签，不检查 data。"""
        return self._read_version(self._load_envelope(raw))

    def decode(self, raw: bytes) -> SaveBlob:
        """从原始字节解码为 SaveBlob。

        Raises:
            DecodeError: 字节不可解析或版本标签不可读
        """
        envelope = self._load_envelope(raw)
        version = self._read_version(envelope)

        if self._data_field not in envelope:
            raise DecodeError(f"Missing '{self._data_field}' field in save envelope")
        data = envelope[self._data_field]
        if not isinstance(data, dict):
            raise DecodeError(
                f"Save '{self._data_field}' must be an object, got {type(data).__name__}"
            )
        try:
            return SaveBlob(version, data)
        except RecursionError as e:
            raise DecodeError("Save data nesting too deep", e) from e

    def _load_envelope(self, raw: bytes) -> Dict[str, Any]:
        if not isinstance(raw, (bytes, bytearray, memoryview)):
            raise DecodeError(f"Save artifact must be bytes, got {type(raw).__name__}")
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("Save artifact is not valid UTF-8", e) from e
        try:
            envelope = json.loads(text)
        except json.JSONDecodeError as e:
            raise DecodeError("Save artifact is not valid JSON", e) from e
        except RecursionError as e:
            raise DecodeError("Save artifact nesting too deep", e) from e
        except ValueError as e:
            raise DecodeError(f"Save artifact contains an unreadable value: {e}", e) from e
        if not isinstance(envelope, dict):
            raise DecodeError(f"Save envelope must be an object, got {type(envelope).__name__}")
        return envelope

    def _read_version(self, envelope: Dict[str, Any]) -> SchemaVersion:
        if self._version_field not in envelope:
            raise DecodeError(f"Missing '{self._version_field}' tag in save envelope")
        tag = envelope[self._version_field]
        try:
            return SchemaVersion.parse(tag)
        except ValueError as e:
            raise DecodeError(f"Unreadable version tag {tag!r}", e) from e
