"""
MigrationStep - 单个版本迁移步骤

每个步骤只负责一次升级（N → N+1），注册后不可修改。
apply 消费一个 SaveBlob 并返回新的 SaveBlob，输入保持不变。
"""
import copy
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from src.save_migration.domain.exceptions import MalformedInputError, StepError
from src.save_migration.domain.value_object.save_blob import SaveBlob
from src.save_migration.domain.value_object.schema_version import SchemaVersion, VersionLike

TransformFn = Callable[[Dict[str, Any]], Dict[str, Any]]


class MigrationStep(ABC):
    """
    迁移步骤基类

    子类通过类属性 FROM_VERSION / TO_VERSION 声明版本对，并实现 transform。
    transform 拿到的是输入数据的私有深拷贝，可以原地修改后返回。
    """

    FROM_VERSION: Optional[VersionLike] = None
    TO_VERSION: Optional[VersionLike] = None

    def __init__(
        self,
        from_version: Optional[VersionLike] = None,
        to_version: Optional[VersionLike] = None,
    ) -> None:
        source = from_version if from_version is not None else self.FROM_VERSION
        target = to_version if to_version is not None else self.TO_VERSION
        if source is None or target is None:
            raise ValueError(f"{type(self).__name__} must declare from/to versions")
        self._from_version = SchemaVersion.parse(source)
        self._to_version = SchemaVersion.parse(target)
        if self._to_version <= self._from_version:
            raise ValueError(
                f"Step {type(self).__name__} must increase the version: "
                f"{self._from_version} -> {self._to_version}"
            )

    @property
    def from_version(self) -> SchemaVersion:
        return self._from_version

    @property
    def to_version(self) -> SchemaVersion:
        return self._to_version

    @property
    def step_id(self) -> str:
        return f"{self._from_version}->{self._to_version}"

    @property
    def name(self) -> str:
        return type(self).__name__

    def apply(self, blob: SaveBlob) -> SaveBlob:
        """
        执行迁移

        Args:
            blob: 标记为 from_version 的存档

        Returns:
            标记为 to_version 的新存档

        Raises:
            StepError: 输入版本不符或 transform 返回非映射
            MalformedInputError: 依赖字段缺失或形状错误
        """
        if blob.version != self._from_version:
            raise StepError(
                self.step_id, f"expected input version {self._from_version}, got {blob.version}"
            )
        result = self.transform(blob.to_dict())
        if not isinstance(result, Mapping):
            raise StepError(
                self.step_id, f"transform returned {type(result).__name__}, expected a mapping"
            )
        return SaveBlob(self._to_version, result)

    @abstractmethod
    def transform(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """对私有数据拷贝做结构变换"""

    # ========== 常用变换辅助 ==========

    def require(self, container: Mapping[str, Any], key: str, types: Tuple[type, ...], path: str = "") -> Any:
        """读取必需字段，缺失或类型错误时抛出 MalformedInputError"""
        where = f"{path}.{key}" if path else key
        if not isinstance(container, Mapping):
            raise MalformedInputError(self.step_id, path or "<root>", "expected a mapping")
        if key not in container:
            raise MalformedInputError(self.step_id, where, "field is missing")
        value = container[key]
        if isinstance(value, bool) and bool not in types and object not in types:
            raise MalformedInputError(self.step_id, where, "unexpected bool")
        if not isinstance(value, types):
            expected = "/".join(t.__name__ for t in types)
            raise MalformedInputError(
                self.step_id, where, f"expected {expected}, got {type(value).__name__}"
            )
        return value

    def require_records(self, data: Mapping[str, Any], key: str) -> List[Dict[str, Any]]:
        """读取由映射组成的序列字段"""
        records = self.require(data, key, (list,))
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                raise MalformedInputError(
                    self.step_id, f"{key}[{index}]", f"expected a mapping, got {type(record).__name__}"
                )
        return records

    def rename_field(self, record: Dict[str, Any], old: str, new: str, path: str = "") -> None:
        if new in record:
            raise MalformedInputError(self.step_id, f"{path}.{new}" if path else new, "rename target exists")
        self.require(record, old, (object,), path)
        record[new] = record.pop(old)

    @staticmethod
    def add_default(record: Dict[str, Any], key: str, value: Any) -> None:
        if key not in record:
            record[key] = copy.deepcopy(value)

    @staticmethod
    def drop_field(record: Dict[str, Any], key: str) -> None:
        record.pop(key, None)

    def remap_value(self, record: Dict[str, Any], key: str, table: Mapping[Any, Any], path: str = "") -> None:
        value = self.require(record, key, (object,), path)
        where = f"{path}.{key}" if path else key
        if isinstance(value, (list, dict)):
            raise MalformedInputError(self.step_id, where, "expected a scalar")
        if value not in table:
            raise MalformedInputError(self.step_id, where, f"no mapping for value {value!r}")
        record[key] = table[value]

    def __repr__(self) -> str:
        return f"{self.name}({self.step_id})"


class FunctionStep(MigrationStep):
    """把普通函数包装成迁移步骤，供 register_step 使用"""

    def __init__(
        self,
        from_version: VersionLike,
        to_version: VersionLike,
        fn: TransformFn,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(from_version, to_version)
        if not callable(fn):
            raise TypeError("Migration function must be callable")
        self._fn = fn
        self._name = name or getattr(fn, "__name__", "function_step")

    @property
    def name(self) -> str:
        return self._name

    def transform(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._fn(data)
