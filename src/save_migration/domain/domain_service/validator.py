"""
Validator - 存档结构校验服务

独立于迁移逻辑的结构把关:
1. 迁移前校验刚解码的存档，尽早拒绝损坏文件
2. 每一步之后按该步的目标版本重新校验，阻止步骤缺陷向下游传播

只读，不修改存档；未知字段默认容忍（向前兼容），严格模式下报告。
"""
from numbers import Real
from typing import Any, Dict, Iterable, List, Mapping, Optional

from src.save_migration.domain.value_object.save_blob import SaveBlob
from src.save_migration.domain.value_object.schema_version import SchemaVersion, VersionLike
from src.save_migration.domain.value_object.validation import (
    FieldSpec,
    SchemaDefinition,
    ValidationReport,
    Violation,
)


class Validator:
    """按版本结构定义校验 SaveBlob"""

    def __init__(
        self,
        schemas: Optional[Iterable[SchemaDefinition]] = None,
        strict: bool = False,
    ) -> None:
        self._schemas: Dict[SchemaVersion, SchemaDefinition] = {}
        self._strict = strict
        for schema in schemas or ():
            self.register_schema(schema)

    @property
    def strict(self) -> bool:
        return self._strict

    def register_schema(self, schema: SchemaDefinition) -> None:
        """
        注册某一版本的结构定义

        Raises:
            ValueError: 缺少版本或版本重复
        """
        if schema.version is None:
            raise ValueError("Top-level schema definition requires a version")
        if schema.version in self._schemas:
            raise ValueError(f"Schema for version {schema.version} already registered")
        self._schemas[schema.version] = schema

    def has_schema(self, version: VersionLike) -> bool:
        return SchemaVersion.parse(version) in self._schemas

    def versions(self) -> List[SchemaVersion]:
        return sorted(self._schemas)

    def validate(
        self,
        blob: SaveBlob,
        version: Optional[VersionLike] = None,
        strict: Optional[bool] = None,
    ) -> ValidationReport:
        """
        校验存档

        Args:
            blob: 待校验存档
            version: 期望版本，省略时使用存档自身标签
            strict: 是否报告未知字段，省略时使用实例默认值

        Returns:
            ValidationReport，无违规即通过
        """
        expected = blob.version if version is None else SchemaVersion.parse(version)
        use_strict = self._strict if strict is None else strict
        violations: List[Violation] = []

        if blob.version != expected:
            violations.append(
                Violation("<version>", f"blob is tagged {blob.version}, expected {expected}")
            )

        schema = self._schemas.get(expected)
        if schema is None:
            violations.append(Violation("<schema>", f"no schema registered for version {expected}"))
            return ValidationReport(expected, tuple(violations))

        self._check_mapping(blob.to_dict(), schema, "", use_strict, violations)
        return ValidationReport(expected, tuple(violations))

    # ========== 内部校验 ==========

    def _check_mapping(
        self,
        data: Mapping[str, Any],
        schema: SchemaDefinition,
        prefix: str,
        strict: bool,
        violations: List[Violation],
    ) -> None:
        for spec in schema.fields:
            path = f"{prefix}.{spec.name}" if prefix else spec.name
            if spec.name not in data:
                if spec.required:
                    violations.append(Violation(path, "required field is missing"))
                continue
            self._check_value(data[spec.name], spec, path, strict, violations)

        if strict:
            for name in sorted(set(data) - schema.field_names()):
                path = f"{prefix}.{name}" if prefix else name
                violations.append(Violation(path, "unexpected field"))

    def _check_value(
        self,
        value: Any,
        spec: FieldSpec,
        path: str,
        strict: bool,
        violations: List[Violation],
    ) -> None:
        if value is None:
            if not spec.nullable:
                violations.append(Violation(path, "must not be null"))
            return

        if not _matches_types(value, spec.types):
            expected = "/".join(t.__name__ for t in spec.types)
            violations.append(Violation(path, f"expected {expected}, got {type(value).__name__}"))
            return

        if isinstance(value, Real) and not isinstance(value, bool):
            if spec.min_value is not None and value < spec.min_value:
                violations.append(Violation(path, f"value {value} below minimum {spec.min_value}"))
            if spec.max_value is not None and value > spec.max_value:
                violations.append(Violation(path, f"value {value} above maximum {spec.max_value}"))

        if spec.choices is not None and not isinstance(value, (list, dict)) and value not in spec.choices:
            allowed = ", ".join(sorted(str(c) for c in spec.choices))
            violations.append(Violation(path, f"value {value!r} not in [{allowed}]"))

        if isinstance(value, dict) and spec.schema is not None:
            self._check_mapping(value, spec.schema, path, strict, violations)
        elif isinstance(value, list):
            self._check_items(value, spec, path, strict, violations)

    def _check_items(
        self,
        items: List[Any],
        spec: FieldSpec,
        path: str,
        strict: bool,
        violations: List[Violation],
    ) -> None:
        for index, item in enumerate(items):
            item_path = f"{path}[{index}]"
            if spec.schema is not None:
                if not isinstance(item, dict):
                    violations.append(
                        Violation(item_path, f"expected mapping, got {type(item).__name__}")
                    )
                    continue
                self._check_mapping(item, spec.schema, item_path, strict, violations)
            elif spec.item_types is not None and not _matches_types(item, spec.item_types):
                expected = "/".join(t.__name__ for t in spec.item_types)
                violations.append(
                    Violation(item_path, f"expected {expected}, got {type(item).__name__}")
                )


def _matches_types(value: Any, types: tuple) -> bool:
    """bool 是 int 的子类，只有显式允许时才接受"""
    if isinstance(value, bool) and bool not in types:
        return False
    return isinstance(value, types)
