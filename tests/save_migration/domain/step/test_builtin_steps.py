"""
内置迁移步骤单元测试

验证 1.0 → 2.0 → 3.0 的字段变换、输入不被修改，
以及依赖字段缺失时抛出 MalformedInputError。
"""

import pytest

from src.save_migration.domain.exceptions import MalformedInputError, StepError
from src.save_migration.domain.step.builtin_steps import (
    MONSTER_DEFAULT_DAMAGE,
    MONSTER_DEFAULT_VARIANT,
    PLAYER_DEFAULT_DAMAGE,
    V1ToV2Step,
    V2ToV3Step,
    builtin_steps,
)
from src.save_migration.domain.step.migration_step import FunctionStep, MigrationStep
from src.save_migration.domain.value_object.save_blob import SaveBlob
from src.save_migration.domain.value_object.schema_version import SchemaVersion


def _v1_data():
    return {
        "players": [{"entity": 0, "health": 20, "level": 1, "target": 1}],
        "monsters": [{"entity": 1, "health": 20}],
    }


class TestV1ToV2Step:

    def test_adds_exp_and_damage(self):
        result = V1ToV2Step().apply(SaveBlob("1.0", _v1_data()))

        assert result.version == SchemaVersion(2, 0)
        player = result.to_dict()["players"][0]
        monster = result.to_dict()["monsters"][0]
        assert player == {
            "entity": 0, "health": 20, "level": 1, "target": 1,
            "exp": 0, "damage": PLAYER_DEFAULT_DAMAGE,
        }
        assert monster == {"entity": 1, "health": 20, "damage": MONSTER_DEFAULT_DAMAGE}

    def test_does_not_mutate_input(self):
        blob = SaveBlob("1.0", _v1_data())
        digest = blob.digest()
        V1ToV2Step().apply(blob)
        assert blob.digest() == digest
        assert blob.to_dict() == _v1_data()

    def test_empty_collections(self):
        result = V1ToV2Step().apply(SaveBlob("1.0", {"players": [], "monsters": []}))
        assert result.to_dict() == {"players": [], "monsters": []}

    def test_missing_players_is_malformed(self):
        with pytest.raises(MalformedInputError) as exc_info:
            V1ToV2Step().apply(SaveBlob("1.0", {"monsters": []}))
        assert exc_info.value.field == "players"
        assert exc_info.value.step_id == "1.0->2.0"

    def test_wrong_shape_is_malformed(self):
        data = _v1_data()
        data["players"][0]["health"] = "full"
        with pytest.raises(MalformedInputError) as exc_info:
            V1ToV2Step().apply(SaveBlob("1.0", data))
        assert exc_info.value.field == "players[0].health"

    def test_non_mapping_record_is_malformed(self):
        with pytest.raises(MalformedInputError) as exc_info:
            V1ToV2Step().apply(SaveBlob("1.0", {"players": [3], "monsters": []}))
        assert exc_info.value.field == "players[0]"

    def test_wrong_input_version(self):
        with pytest.raises(StepError):
            V1ToV2Step().apply(SaveBlob("2.0", _v1_data()))


class TestV2ToV3Step:

    def test_drops_exp_and_adds_variant(self):
        v2 = V1ToV2Step().apply(SaveBlob("1.0", _v1_data()))
        v3 = V2ToV3Step().apply(v2)

        assert v3.version == SchemaVersion(3, 0)
        player = v3.to_dict()["players"][0]
        monster = v3.to_dict()["monsters"][0]
        assert "exp" not in player
        assert player["damage"] == PLAYER_DEFAULT_DAMAGE
        assert monster["variant"] == MONSTER_DEFAULT_VARIANT

    def test_keeps_entity_relations(self):
        """玩家 target 指向的实体在迁移后保持一致"""
        v3 = V2ToV3Step().apply(V1ToV2Step().apply(SaveBlob("1.0", _v1_data())))
        data = v3.to_dict()
        assert data["players"][0]["target"] == data["monsters"][0]["entity"]

    def test_monster_without_damage_is_malformed(self):
        blob = SaveBlob("2.0", {"players": [], "monsters": [{"entity": 1, "health": 3}]})
        with pytest.raises(MalformedInputError) as exc_info:
            V2ToV3Step().apply(blob)
        assert exc_info.value.field == "monsters[0].damage"


class TestStepBase:

    def test_builtin_steps_form_chain(self):
        steps = builtin_steps()
        assert [s.step_id for s in steps] == ["1.0->2.0", "2.0->3.0"]

    def test_step_must_increase_version(self):
        with pytest.raises(ValueError):
            FunctionStep("2.0", "1.0", lambda d: d)
        with pytest.raises(ValueError):
            FunctionStep("2.0", "2.0", lambda d: d)

    def test_undeclared_versions_rejected(self):
        class _NoVersions(MigrationStep):
            def transform(self, data):
                return data

        with pytest.raises(ValueError):
            _NoVersions()

    def test_function_step_must_return_mapping(self):
        step = FunctionStep(1, 2, lambda d: [d])
        with pytest.raises(StepError):
            step.apply(SaveBlob(1, {}))

    def test_function_step_name(self):
        def add_mana(data):
            return data

        assert FunctionStep(1, 2, add_mana).name == "add_mana"

    def test_helpers(self):
        step = FunctionStep(1, 2, lambda d: d)
        record = {"health": 5, "kind": 1}
        step.rename_field(record, "health", "hp")
        step.add_default(record, "mana", 0)
        step.add_default(record, "hp", 999)
        step.remap_value(record, "kind", {1: "Angry"})
        step.drop_field(record, "missing")
        assert record == {"hp": 5, "mana": 0, "kind": "Angry"}

    def test_helpers_report_malformed(self):
        step = FunctionStep(1, 2, lambda d: d)
        with pytest.raises(MalformedInputError):
            step.rename_field({"a": 1}, "missing", "b")
        with pytest.raises(MalformedInputError):
            step.rename_field({"a": 1, "b": 2}, "a", "b")
        with pytest.raises(MalformedInputError):
            step.remap_value({"kind": 9}, "kind", {1: "Angry"})
        with pytest.raises(MalformedInputError):
            step.remap_value({"kind": [1]}, "kind", {1: "Angry"})
        with pytest.raises(MalformedInputError):
            step.require({"flag": True}, "flag", (int,))
