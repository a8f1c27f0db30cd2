"""
存档迁移属性测试

使用内置 1.0 → 2.0 → 3.0 迁移链与随机生成的合法存档验证:
- 确定性: 相同输入两次迁移得到逐字节相同的结果
- 幂等性: 已是当前版本的存档再次迁移为零步且内容不变
- 无部分提交: 任一步骤失败时不产生结果，原始字节可从备份完整取回
- 校验夹层: 每一步的输出都满足其目标版本的结构定义
"""

import json

import pytest
from hypothesis import given, settings, strategies as st

from src.main.bootstrap.engine_setup import build_default_registry, build_default_validator
from src.save_migration.domain.domain_service.migration_executor import MigrationExecutor
from src.save_migration.domain.domain_service.migration_registry import MigrationRegistry
from src.save_migration.domain.exceptions import StepError
from src.save_migration.domain.schema.save_schemas import CURRENT_VERSION, U32_MAX
from src.save_migration.domain.step.builtin_steps import builtin_steps
from src.save_migration.domain.step.migration_step import MigrationStep
from src.save_migration.domain.value_object.executor_state import ExecutorState
from src.save_migration.domain.value_object.save_blob import SaveBlob
from src.save_migration.infrastructure.persistence.backup_manager import BackupManager
from src.save_migration.infrastructure.persistence.save_codec import SaveCodec


_u32 = st.integers(min_value=0, max_value=U32_MAX)
_entity_ids = st.integers(min_value=0, max_value=10_000)

_players = st.fixed_dictionaries(
    {"entity": _entity_ids, "health": _u32, "level": _u32},
    optional={"target": st.one_of(st.none(), _entity_ids)},
)
_monsters = st.fixed_dictionaries({"entity": _entity_ids, "health": _u32})

_v1_saves = st.fixed_dictionaries({
    "players": st.lists(_players, max_size=5),
    "monsters": st.lists(_monsters, max_size=5),
})


def _raw(data, version="1.0"):
    return json.dumps({"version": version, "data": data}).encode("utf-8")


def _migrate(raw, registry=None, backup_manager=None):
    executor = MigrationExecutor(
        registry=registry or build_default_registry(),
        validator=build_default_validator(),
        codec=SaveCodec(),
        backup_manager=backup_manager or BackupManager(),
        current_version=CURRENT_VERSION,
    )
    return executor, executor.migrate(raw)


class _FailingStep(MigrationStep):
    def transform(self, data):
        raise RuntimeError("injected failure")


class TestMigrationProperties:

    @settings(max_examples=100, deadline=None)
    @given(data=_v1_saves)
    def test_migration_is_deterministic(self, data):
        """相同输入 → 相同输出"""
        raw = _raw(data)
        _, first = _migrate(raw)
        _, second = _migrate(raw)
        codec = SaveCodec()
        assert codec.encode(first) == codec.encode(second)
        assert first.digest() == second.digest()

    @settings(max_examples=100, deadline=None)
    @given(data=_v1_saves)
    def test_migration_is_idempotent(self, data):
        """迁移结果再次迁移为零步，内容不变"""
        codec = SaveCodec()
        _, migrated = _migrate(_raw(data))
        executor, again = _migrate(codec.encode(migrated))
        assert executor.steps_applied == 0
        assert again == migrated

    @settings(max_examples=100, deadline=None)
    @given(data=_v1_saves)
    def test_every_step_output_satisfies_its_schema(self, data):
        """每一步输出都通过目标版本校验"""
        validator = build_default_validator()
        blob = SaveBlob("1.0", data)
        for step in builtin_steps():
            blob = step.apply(blob)
            assert validator.validate(blob, step.to_version, strict=True).is_valid

    @settings(max_examples=100, deadline=None)
    @given(data=_v1_saves)
    def test_entity_relations_preserved(self, data):
        """实体 id 与 target 关系在迁移前后保持一致"""
        _, result = _migrate(_raw(data))
        migrated = result.to_dict()
        assert [p["entity"] for p in migrated["players"]] == [p["entity"] for p in data["players"]]
        assert [p.get("target") for p in migrated["players"]] == [
            p.get("target") for p in data["players"]
        ]
        assert [m["entity"] for m in migrated["monsters"]] == [m["entity"] for m in data["monsters"]]

    @settings(max_examples=50, deadline=None)
    @given(data=_v1_saves, failing_index=st.integers(min_value=0, max_value=1))
    def test_no_partial_commit(self, data, failing_index):
        """任一步骤失败时无结果返回，原始字节完整保留"""
        steps = list(builtin_steps())
        broken = steps[failing_index]
        steps[failing_index] = _FailingStep(broken.from_version, broken.to_version)

        registry = MigrationRegistry()
        for step in steps:
            registry.register(step)
        backup_manager = BackupManager()
        raw = _raw(data)

        executor = MigrationExecutor(
            registry=registry,
            validator=build_default_validator(),
            codec=SaveCodec(),
            backup_manager=backup_manager,
            current_version=CURRENT_VERSION,
        )
        with pytest.raises(StepError):
            executor.migrate(raw)

        assert executor.state is ExecutorState.ABORTED
        assert executor.steps_applied == failing_index
        assert backup_manager.rollback_info(executor.backup_record).raw == raw
