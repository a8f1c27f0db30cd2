"""
SaveMigrationService 集成测试

使用内置迁移链与临时目录中的存档文件，验证:
- 单个文件迁移、原子写回与 .bak 备份
- 已是当前版本时不写回
- 失败时文件保持原样
- 多个槽位并行迁移，结果顺序与输入一致，失败互不影响
"""

import json
from pathlib import Path

import pytest

from src.main.bootstrap.engine_setup import build_default_registry, build_default_validator
from src.save_migration.domain.event.migration_events import (
    MigrationAbortedEvent,
    MigrationCommittedEvent,
)
from src.save_migration.domain.exceptions import (
    DecodeError,
    MigrationError,
    UnsupportedVersionError,
    WriteBackError,
)
from src.save_migration.domain.value_object.backup import BackupPolicy
from src.save_migration.domain.value_object.schema_version import SchemaVersion
from src.save_migration.infrastructure.persistence.backup_manager import BackupManager
from src.save_migration.infrastructure.persistence.backup_store import SiblingFileBackupStore
from src.save_migration.infrastructure.persistence import migration_service as migration_service_module
from src.save_migration.infrastructure.persistence.migration_service import SaveMigrationService
from src.save_migration.infrastructure.persistence.save_codec import SaveCodec


V1_DATA = {
    "players": [{"entity": 0, "health": 20, "level": 1, "target": 1}],
    "monsters": [{"entity": 1, "health": 20}],
}


def _write_save(path, version, data):
    path.write_bytes(json.dumps({"version": version, "data": data}).encode("utf-8"))
    return path


@pytest.fixture
def service():
    return SaveMigrationService(
        registry=build_default_registry(),
        validator=build_default_validator(),
        codec=SaveCodec(),
        backup_manager=BackupManager(BackupPolicy.SIBLING, SiblingFileBackupStore()),
    )


class TestMigrate:

    def test_current_version_defaults_to_latest(self, service):
        assert service.current_version == SchemaVersion(3, 0)

    def test_migrate_bytes(self, service):
        raw = json.dumps({"version": "1.0", "data": V1_DATA}).encode("utf-8")
        blob = service.migrate(raw)
        assert blob.version == SchemaVersion(3, 0)
        assert blob.get("monsters.0.variant") == "Angry"

    def test_migrate_bytes_failure_is_typed(self, service):
        with pytest.raises(UnsupportedVersionError):
            service.migrate(json.dumps({"version": "9.0", "data": {}}).encode("utf-8"))

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            SaveMigrationService(
                registry=build_default_registry(),
                validator=build_default_validator(),
                codec=SaveCodec(),
                backup_manager=BackupManager(),
                max_workers=0,
            )


class TestMigrateFile:

    def test_migrates_and_writes_back(self, service, tmp_path):
        original = _write_save(tmp_path / "slot1.json", "1.0", V1_DATA).read_bytes()

        result = service.migrate_file(tmp_path / "slot1.json")

        assert result.ok
        assert result.written
        assert result.steps_applied == 2
        assert result.source_version == SchemaVersion(1, 0)
        on_disk = json.loads((tmp_path / "slot1.json").read_bytes())
        assert on_disk["version"] == "3.0"
        assert on_disk["data"]["players"][0] == {
            "entity": 0, "health": 20, "level": 1, "target": 1, "damage": 5,
        }
        assert (tmp_path / "slot1.json.bak").read_bytes() == original
        assert isinstance(result.events[-1], MigrationCommittedEvent)

    def test_no_write_back(self, service, tmp_path):
        original = _write_save(tmp_path / "slot1.json", "1.0", V1_DATA).read_bytes()
        result = service.migrate_file(tmp_path / "slot1.json", write_back=False)
        assert result.ok
        assert not result.written
        assert (tmp_path / "slot1.json").read_bytes() == original

    def test_service_default_write_back(self, tmp_path):
        service = SaveMigrationService(
            registry=build_default_registry(),
            validator=build_default_validator(),
            codec=SaveCodec(),
            backup_manager=BackupManager(),
            write_back=False,
        )
        original = _write_save(tmp_path / "slot1.json", "1.0", V1_DATA).read_bytes()
        assert not service.migrate_file(tmp_path / "slot1.json").written
        assert service.migrate_file(tmp_path / "slot1.json", write_back=True).written
        assert (tmp_path / "slot1.json").read_bytes() != original

    def test_current_save_is_not_rewritten(self, service, tmp_path):
        data = {
            "players": [{"entity": 0, "health": 1, "level": 1, "damage": 5}],
            "monsters": [],
        }
        original = _write_save(tmp_path / "slot1.json", "3.0", data).read_bytes()
        result = service.migrate_file(tmp_path / "slot1.json")
        assert result.ok
        assert result.steps_applied == 0
        assert not result.written
        assert (tmp_path / "slot1.json").read_bytes() == original
        assert not (tmp_path / "slot1.json.bak").exists()

    def test_failure_leaves_file_untouched(self, service, tmp_path):
        original = _write_save(tmp_path / "slot1.json", "9.0", V1_DATA).read_bytes()
        result = service.migrate_file(tmp_path / "slot1.json")

        assert not result.ok
        assert isinstance(result.error, UnsupportedVersionError)
        assert result.source_version == SchemaVersion(9, 0)
        assert (tmp_path / "slot1.json").read_bytes() == original
        assert not (tmp_path / "slot1.json.bak").exists()
        assert isinstance(result.events[-1], MigrationAbortedEvent)

    def test_missing_file(self, service, tmp_path):
        result = service.migrate_file(tmp_path / "absent.json")
        assert isinstance(result.error, DecodeError)
        assert result.blob is None

    def test_write_back_failure_is_reported(self, service, tmp_path, monkeypatch):
        original = _write_save(tmp_path / "slot1.json", "1.0", V1_DATA).read_bytes()

        def read_only_disk(path, data):
            raise OSError(30, "Read-only file system")

        monkeypatch.setattr(migration_service_module, "write_artifact_atomic", read_only_disk)
        result = service.migrate_file(tmp_path / "slot1.json")

        assert not result.ok
        assert isinstance(result.error, WriteBackError)
        assert isinstance(result.error.original_error, OSError)
        assert not result.written
        assert result.blob.version == SchemaVersion(3, 0)
        assert (tmp_path / "slot1.json").read_bytes() == original
        assert (tmp_path / "slot1.json.bak").read_bytes() == original

    def test_deeply_nested_save(self, service, tmp_path):
        depth = 100000
        raw = b'{"version": "1.0", "data": {"players": ' + b"[" * depth + b"]" * depth + b"}}"
        (tmp_path / "deep.json").write_bytes(raw)

        result = service.migrate_file(tmp_path / "deep.json")

        assert isinstance(result.error, DecodeError)
        assert isinstance(result.events[-1], MigrationAbortedEvent)
        assert (tmp_path / "deep.json").read_bytes() == raw


class TestMigrateFiles:

    def test_parallel_slots(self, service, tmp_path):
        paths = []
        for index in range(6):
            version = "1.0" if index % 2 == 0 else "2.0"
            data = V1_DATA if version == "1.0" else {
                "players": [{"entity": 0, "health": 5, "level": 2, "exp": 3, "damage": 5}],
                "monsters": [{"entity": 1, "health": 4, "damage": 2}],
            }
            paths.append(_write_save(tmp_path / f"slot{index}.json", version, data))
        broken = tmp_path / "broken.json"
        broken.write_bytes(b"\x00 not a save")
        paths.insert(3, broken)

        results = service.migrate_files(paths, max_workers=3)

        assert [r.path for r in results] == [str(p) for p in paths]
        assert not results[3].ok
        assert isinstance(results[3].error, DecodeError)
        assert broken.read_bytes() == b"\x00 not a save"
        for result in results[:3] + results[4:]:
            assert result.ok
            assert result.blob.version == SchemaVersion(3, 0)
            assert "exp" not in result.blob.to_dict()["players"][0]

    def test_empty_batch(self, service):
        assert service.migrate_files([]) == []

    def test_deep_slot_does_not_sink_batch(self, service, tmp_path):
        good = _write_save(tmp_path / "good.json", "1.0", V1_DATA)
        depth = 100000
        deep = tmp_path / "deep.json"
        deep.write_bytes(b'{"version": "1.0", "data": {"x": ' + b"[" * depth + b"]" * depth + b"}}")

        results = service.migrate_files([good, deep])

        assert len(results) == 2
        assert results[0].ok
        assert isinstance(results[1].error, DecodeError)

    def test_unexpected_slot_error_is_isolated(self, service, tmp_path, monkeypatch):
        paths = [_write_save(tmp_path / f"slot{i}.json", "1.0", V1_DATA) for i in range(3)]
        migrate_file = service.migrate_file

        def crashing_migrate_file(path, write_back=None):
            if Path(path).name == "slot1.json":
                raise RuntimeError("worker crashed")
            return migrate_file(path, write_back)

        monkeypatch.setattr(service, "migrate_file", crashing_migrate_file)
        results = service.migrate_files(paths)

        assert [r.ok for r in results] == [True, False, True]
        assert isinstance(results[1].error, MigrationError)
        assert "RuntimeError" in str(results[1].error)
        assert results[1].path == str(paths[1])


class TestBackupRetention:

    def test_failed_migrations_release_backups(self, service, tmp_path):
        bad = json.dumps({"version": "9.0", "data": {}}).encode("utf-8")
        for _ in range(50):
            with pytest.raises(UnsupportedVersionError):
                service.migrate(bad)
        _write_save(tmp_path / "slot1.json", "9.0", V1_DATA)
        for _ in range(10):
            assert not service.migrate_file(tmp_path / "slot1.json").ok

        assert service.backup_manager.retained_count() == 0

    def test_successful_migrations_release_backups(self, service, tmp_path):
        raw = json.dumps({"version": "1.0", "data": V1_DATA}).encode("utf-8")
        for _ in range(20):
            service.migrate(raw)
        _write_save(tmp_path / "slot1.json", "1.0", V1_DATA)
        service.migrate_file(tmp_path / "slot1.json")

        assert service.backup_manager.retained_count() == 0
