"""
校验相关值对象

定义单条违规 Violation、校验报告 ValidationReport，
以及声明式的字段约束 FieldSpec 与版本结构定义 SchemaDefinition。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple

from src.save_migration.domain.exceptions import ValidationError
from .schema_version import SchemaVersion


@dataclass(frozen=True)
class Violation:
    """
    单条结构违规

    Attributes:
        field: 字段路径，如 "players[0].health"
        reason: 违规原因
    """
    field: str
    reason: str


@dataclass(frozen=True)
class ValidationReport:
    """
    校验报告

    violations 为空即表示通过。
    """
    version: Optional[SchemaVersion]
    violations: Tuple[Violation, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    def fields(self) -> FrozenSet[str]:
        return frozenset(v.field for v in self.violations)

    def raise_if_invalid(self, stage: str = "") -> None:
        """存在违规时抛出 ValidationError"""
        if self.violations:
            raise ValidationError(self, stage)

    def to_dict(self) -> Dict[str, Any]:
        """序列化为字典 (JSON 兼容)"""
        return {
            "version": str(self.version) if self.version is not None else None,
            "violations": [{"field": v.field, "reason": v.reason} for v in self.violations],
        }


@dataclass(frozen=True)
class FieldSpec:
    """
    字段约束

    Attributes:
        name: 字段名
        types: 允许的 Python 类型（bool 不视为 int，除非显式列出）
        required: 是否必填
        nullable: 是否允许 None
        min_value: 数值下界（含）
        max_value: 数值上界（含）
        choices: 允许的取值集合
        schema: 映射字段的嵌套结构；序列字段则约束其每个元素
        item_types: 标量序列的元素类型
    """
    name: str
    types: Tuple[type, ...]
    required: bool = True
    nullable: bool = False
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    choices: Optional[FrozenSet[Any]] = None
    schema: Optional["SchemaDefinition"] = None
    item_types: Optional[Tuple[type, ...]] = None


@dataclass(frozen=True)
class SchemaDefinition:
    """
    某一版本（或某一嵌套层级）的结构定义

    顶层定义必须携带 version；嵌套定义 version 为 None。
    """
    fields: Tuple[FieldSpec, ...]
    version: Optional[SchemaVersion] = None
    description: str = ""
    field_index: Dict[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: Dict[str, FieldSpec] = {}
        for spec in self.fields:
            if spec.name in index:
                raise ValueError(f"Duplicate field spec: {spec.name}")
            index[spec.name] = spec
        object.__setattr__(self, "field_index", index)

    def field_names(self) -> FrozenSet[str]:
        return frozenset(self.field_index)
