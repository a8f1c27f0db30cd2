"""
config_loader.py - 配置加载器

支持:
1. TOML 配置文件 (迁移引擎配置)
2. YAML 配置文件 (旧格式，向后兼容)
3. 环境变量覆盖 (.env)
4. 配置验证
"""
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from src.save_migration.domain.value_object.backup import BackupPolicy
from src.save_migration.domain.value_object.schema_version import SchemaVersion

# Python 3.11+ 内置 tomllib，之前版本使用 tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


DEFAULT_CONFIG_PATH = "config/migration.toml"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class MigrationConfig:
    """
    迁移引擎配置

    Attributes:
        current_version: 目标版本，None 表示使用注册表中的最高版本
        strict: 最终校验是否报告未知字段
        backup_policy: 提交后备份处理策略
        backup_suffix: .bak 文件后缀
        backup_dir: .bak 文件目录，None 表示与存档同目录
        archive_path: 归档 SQLite 文件路径
        keep_days: 归档保留天数
        version_field: 信封中的版本标签字段名
        data_field: 信封中的数据字段名
        max_workers: 批量迁移并行度
        write_back: 迁移成功后是否写回存档文件
    """
    current_version: Optional[SchemaVersion] = None
    strict: bool = False
    backup_policy: BackupPolicy = BackupPolicy.SIBLING
    backup_suffix: str = ".bak"
    backup_dir: Optional[str] = None
    archive_path: str = "saves/backups.sqlite3"
    keep_days: int = 7
    version_field: str = "version"
    data_field: str = "data"
    max_workers: int = 4
    write_back: bool = True


class ConfigLoader:
    """
    配置加载器

    - 迁移配置: 从 TOML 文件加载（兼容旧 YAML）
    - 覆盖项: 从环境变量加载 (.env)
    """

    @staticmethod
    def load_toml(path: str) -> Dict[str, Any]:
        """加载 TOML 配置文件"""
        with open(path, "rb") as f:
            return tomllib.load(f)

    @staticmethod
    def load_yaml(path: str) -> Dict[str, Any]:
        """加载 YAML 配置文件（已弃用，保留用于向后兼容）"""
        import yaml
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    @staticmethod
    def load_file(path: str) -> Dict[str, Any]:
        """按扩展名加载配置文件；相对路径以项目根目录为基准"""
        if not os.path.isabs(path):
            # 从 src/main/config/config_loader.py 到项目根目录需要 4 级 parent
            project_root = Path(__file__).resolve().parent.parent.parent.parent
            candidate = project_root / path
            if candidate.exists():
                path = str(candidate)

        if path.endswith((".yaml", ".yml")):
            return ConfigLoader.load_yaml(path)
        return ConfigLoader.load_toml(path)

    @staticmethod
    def load_env_overrides(env_path: Optional[str] = None) -> Dict[str, Any]:
        """
        从环境变量加载覆盖项

        支持:
            SAVE_MIGRATION_CURRENT_VERSION, SAVE_MIGRATION_STRICT,
            SAVE_MIGRATION_BACKUP_POLICY, SAVE_MIGRATION_ARCHIVE_PATH,
            SAVE_MIGRATION_MAX_WORKERS
        """
        if env_path is not None:
            load_dotenv(dotenv_path=env_path)
        else:
            # 显式定位项目根目录下的 .env
            default_env = Path(__file__).resolve().parent.parent.parent.parent / ".env"
            if default_env.exists():
                load_dotenv(dotenv_path=default_env)
            else:
                # 回退到默认搜索
                load_dotenv()

        mapping = {
            "SAVE_MIGRATION_CURRENT_VERSION": ("migration", "current_version"),
            "SAVE_MIGRATION_STRICT": ("migration", "strict"),
            "SAVE_MIGRATION_BACKUP_POLICY": ("backup", "policy"),
            "SAVE_MIGRATION_ARCHIVE_PATH": ("backup", "archive_path"),
            "SAVE_MIGRATION_MAX_WORKERS": ("service", "max_workers"),
        }
        overrides: Dict[str, Any] = {}
        for env_key, (section, key) in mapping.items():
            value = os.getenv(env_key)
            if value:
                overrides.setdefault(section, {})[key] = value
        return overrides

    @staticmethod
    def merge_config(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        按 section 合并配置，override 中的键覆盖 base

        Returns:
            合并后的新配置字典
        """
        merged: Dict[str, Any] = {k: dict(v) if isinstance(v, dict) else v for k, v in base_config.items()}
        for section, values in (override_config or {}).items():
            if isinstance(values, dict):
                merged.setdefault(section, {})
                merged[section] = {**merged[section], **values}
            else:
                merged[section] = values
        return merged

    @staticmethod
    def validate_migration_config(config: Dict[str, Any]) -> bool:
        """
        验证迁移配置

        Args:
            config: 原始配置字典

        Returns:
            True 如果配置有效
        """
        ConfigLoader.build_migration_config(config)
        return True

    @staticmethod
    def build_migration_config(config: Dict[str, Any]) -> MigrationConfig:
        """
        从配置字典构建 MigrationConfig，缺失字段使用默认值

        Raises:
            ValueError: 字段取值非法
        """
        defaults = MigrationConfig()
        migration = config.get("migration", {}) or {}
        backup = config.get("backup", {}) or {}
        codec = config.get("codec", {}) or {}
        service = config.get("service", {}) or {}

        current = migration.get("current_version")
        current_version = SchemaVersion.parse(current) if current not in (None, "") else None

        policy_value = str(backup.get("policy", defaults.backup_policy.value)).lower()
        try:
            policy = BackupPolicy(policy_value)
        except ValueError:
            allowed = ", ".join(p.value for p in BackupPolicy)
            raise ValueError(f"backup.policy 取值非法: {policy_value} (可选: {allowed})")

        keep_days = _to_int(backup.get("keep_days", defaults.keep_days), "backup.keep_days")
        if keep_days < 0:
            raise ValueError("backup.keep_days 不能为负数")

        max_workers = _to_int(service.get("max_workers", defaults.max_workers), "service.max_workers")
        if max_workers < 1:
            raise ValueError("service.max_workers 必须 >= 1")

        suffix = str(backup.get("suffix", defaults.backup_suffix))
        if not suffix:
            raise ValueError("backup.suffix 不能为空")

        version_field = str(codec.get("version_field", defaults.version_field))
        data_field = str(codec.get("data_field", defaults.data_field))
        if not version_field or not data_field or version_field == data_field:
            raise ValueError("codec.version_field 与 codec.data_field 必须非空且不同")

        backup_dir = backup.get("directory")

        return MigrationConfig(
            current_version=current_version,
            strict=_to_bool(migration.get("strict", defaults.strict), "migration.strict"),
            backup_policy=policy,
            backup_suffix=suffix,
            backup_dir=str(backup_dir) if backup_dir else None,
            archive_path=str(backup.get("archive_path", defaults.archive_path)),
            keep_days=keep_days,
            version_field=version_field,
            data_field=data_field,
            max_workers=max_workers,
            write_back=_to_bool(service.get("write_back", defaults.write_back), "service.write_back"),
        )

    @staticmethod
    def load_migration_config(
        path: Optional[str] = DEFAULT_CONFIG_PATH,
        use_env: bool = True,
        env_path: Optional[str] = None,
    ) -> MigrationConfig:
        """
        加载迁移配置: 文件 → 环境变量覆盖 → 验证

        Args:
            path: 配置文件路径，None 或文件不存在时只使用默认值
            use_env: 是否应用环境变量覆盖
            env_path: .env 文件路径

        Returns:
            MigrationConfig 实例
        """
        raw: Dict[str, Any] = {}
        if path:
            try:
                raw = ConfigLoader.load_file(path)
            except FileNotFoundError:
                raw = {}
        if use_env:
            raw = ConfigLoader.merge_config(raw, ConfigLoader.load_env_overrides(env_path))
        return ConfigLoader.build_migration_config(raw)


def _to_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} 不是合法的布尔值: {value!r}")


def _to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} 不是合法的整数: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} 不是合法的整数: {value!r}")
