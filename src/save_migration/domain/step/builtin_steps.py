"""
内置历史迁移步骤

每次版本升级对应一个步骤类:
- 1.0 → 2.0: 玩家新增 exp（初始 0）与 damage（本版本起玩家可以攻击，默认 5）；
             怪物新增 damage（默认 2）
- 2.0 → 3.0: 玩家移除 exp；怪物新增 variant 枚举（旧存档一律视为 "Angry"）
"""
from typing import Any, Dict, List, Tuple

from .migration_step import MigrationStep

PLAYER_DEFAULT_EXP = 0
PLAYER_DEFAULT_DAMAGE = 5
MONSTER_DEFAULT_DAMAGE = 2
MONSTER_VARIANTS = ("Angry", "Scary")
MONSTER_DEFAULT_VARIANT = "Angry"


class V1ToV2Step(MigrationStep):
    """1.0 → 2.0: 引入经验值与攻击力"""

    FROM_VERSION = "1.0"
    TO_VERSION = "2.0"

    def transform(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for index, player in enumerate(self.require_records(data, "players")):
            self.require(player, "health", (int,), f"players[{index}]")
            self.add_default(player, "exp", PLAYER_DEFAULT_EXP)
            self.add_default(player, "damage", PLAYER_DEFAULT_DAMAGE)

        for index, monster in enumerate(self.require_records(data, "monsters")):
            self.require(monster, "health", (int,), f"monsters[{index}]")
            self.add_default(monster, "damage", MONSTER_DEFAULT_DAMAGE)

        return data


class V2ToV3Step(MigrationStep):
    """2.0 → 3.0: 移除玩家经验值，怪物增加 variant"""

    FROM_VERSION = "2.0"
    TO_VERSION = "3.0"

    def transform(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for player in self.require_records(data, "players"):
            self.drop_field(player, "exp")

        for index, monster in enumerate(self.require_records(data, "monsters")):
            self.require(monster, "damage", (int,), f"monsters[{index}]")
            self.add_default(monster, "variant", MONSTER_DEFAULT_VARIANT)

        return data


BUILTIN_STEPS: Tuple[type, ...] = (V1ToV2Step, V2ToV3Step)


def builtin_steps() -> List[MigrationStep]:
    """实例化全部内置步骤"""
    return [step_cls() for step_cls in BUILTIN_STEPS]
