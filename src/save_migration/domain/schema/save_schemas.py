"""
内置存档结构定义

1.0: players[entity, health, level, target?] / monsters[entity, health]
2.0: 玩家 + exp, damage；怪物 + damage
3.0: 玩家 - exp；怪物 + variant (Angry | Scary)
"""
from typing import List

from src.save_migration.domain.step.builtin_steps import MONSTER_VARIANTS
from src.save_migration.domain.value_object.schema_version import SchemaVersion
from src.save_migration.domain.value_object.validation import FieldSpec, SchemaDefinition

U32_MAX = 2 ** 32 - 1
U64_MAX = 2 ** 64 - 1

CURRENT_VERSION = SchemaVersion(3, 0)


def _entity() -> FieldSpec:
    return FieldSpec("entity", (int,), min_value=0, max_value=U64_MAX)


def _u32(name: str) -> FieldSpec:
    return FieldSpec(name, (int,), min_value=0, max_value=U32_MAX)


def _target() -> FieldSpec:
    return FieldSpec("target", (int,), required=False, nullable=True, min_value=0, max_value=U64_MAX)


def _records(name: str, *fields: FieldSpec) -> FieldSpec:
    return FieldSpec(name, (list,), schema=SchemaDefinition(fields=tuple(fields)))


SCHEMA_V1 = SchemaDefinition(
    version=SchemaVersion(1, 0),
    description="初始版本",
    fields=(
        _records("players", _entity(), _u32("health"), _u32("level"), _target()),
        _records("monsters", _entity(), _u32("health")),
    ),
)

SCHEMA_V2 = SchemaDefinition(
    version=SchemaVersion(2, 0),
    description="玩家新增 exp/damage，怪物新增 damage",
    fields=(
        _records(
            "players",
            _entity(), _u32("health"), _u32("level"), _target(), _u32("exp"), _u32("damage"),
        ),
        _records("monsters", _entity(), _u32("health"), _u32("damage")),
    ),
)

SCHEMA_V3 = SchemaDefinition(
    version=SchemaVersion(3, 0),
    description="移除玩家 exp，怪物新增 variant",
    fields=(
        _records("players", _entity(), _u32("health"), _u32("level"), _target(), _u32("damage")),
        _records(
            "monsters",
            _entity(),
            _u32("health"),
            _u32("damage"),
            FieldSpec("variant", (str,), choices=frozenset(MONSTER_VARIANTS)),
        ),
    ),
)


def builtin_schemas() -> List[SchemaDefinition]:
    return [SCHEMA_V1, SCHEMA_V2, SCHEMA_V3]
