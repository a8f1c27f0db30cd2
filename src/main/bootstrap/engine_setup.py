"""
engine_setup.py - 迁移引擎启动装配

启动时一次性完成:
1. 注册全部历史迁移步骤（每次版本升级一个步骤）
2. 缺口检查：每个已注册版本都能到达当前版本，否则启动即失败
3. 冻结注册表，此后只读
4. 按配置组装校验器、编解码器、备份管理器与迁移服务
"""
import logging
from pathlib import Path
from typing import Iterable, Optional

from src.main.config.config_loader import ConfigLoader, MigrationConfig
from src.save_migration.domain.domain_service.migration_registry import MigrationRegistry
from src.save_migration.domain.domain_service.validator import Validator
from src.save_migration.domain.schema.save_schemas import builtin_schemas
from src.save_migration.domain.step.builtin_steps import builtin_steps
from src.save_migration.domain.step.migration_step import MigrationStep
from src.save_migration.domain.value_object.backup import BackupPolicy
from src.save_migration.domain.value_object.schema_version import SchemaVersion, VersionLike
from src.save_migration.infrastructure.persistence.backup_manager import BackupManager
from src.save_migration.infrastructure.persistence.backup_store import (
    BackupArchive,
    SiblingFileBackupStore,
)
from src.save_migration.infrastructure.persistence.migration_service import SaveMigrationService
from src.save_migration.infrastructure.persistence.save_codec import SaveCodec

logger = logging.getLogger(__name__)


def build_default_registry(
    steps: Optional[Iterable[MigrationStep]] = None,
    current_version: Optional[VersionLike] = None,
    freeze: bool = True,
) -> MigrationRegistry:
    """
    构建迁移注册表并做缺口检查

    Args:
        steps: 迁移步骤，默认使用内置历史步骤
        current_version: 当前版本，默认取链上最高版本
        freeze: 是否冻结

    Raises:
        DuplicateStepError: 重复注册
        NoPathError: 链上存在缺口
    """
    registry = MigrationRegistry()
    for step in steps if steps is not None else builtin_steps():
        registry.register(step)

    target = current_version if current_version is not None else registry.latest_version()
    if target is not None:
        registry.check_completeness(target)
    if freeze:
        registry.freeze()
    logger.info("迁移注册表就绪: %d 个步骤，当前版本 %s", len(registry), target)
    return registry


def build_default_validator(strict: bool = False) -> Validator:
    """构建加载了内置版本结构的校验器"""
    return Validator(builtin_schemas(), strict=strict)


def build_backup_manager(config: MigrationConfig) -> BackupManager:
    """按配置的备份策略构建备份管理器"""
    if config.backup_policy is BackupPolicy.SIBLING:
        store = SiblingFileBackupStore(suffix=config.backup_suffix, directory=config.backup_dir, logger=logger)
        return BackupManager(BackupPolicy.SIBLING, store)
    if config.backup_policy is BackupPolicy.ARCHIVE:
        Path(config.archive_path).parent.mkdir(parents=True, exist_ok=True)
        archive = BackupArchive(config.archive_path, logger=logger)
        archive.cleanup(config.keep_days)
        return BackupManager(BackupPolicy.ARCHIVE, archive)
    return BackupManager(BackupPolicy.DISCARD)


def build_migration_service(
    config: Optional[MigrationConfig] = None,
    registry: Optional[MigrationRegistry] = None,
    validator: Optional[Validator] = None,
) -> SaveMigrationService:
    """
    组装迁移服务

    Args:
        config: 迁移配置，默认从 config/migration.toml 与环境变量加载
        registry: 自定义注册表，默认内置链
        validator: 自定义校验器，默认内置结构
    """
    if config is None:
        config = ConfigLoader.load_migration_config()

    current: Optional[SchemaVersion] = config.current_version
    if registry is None:
        registry = build_default_registry(current_version=current)
    if validator is None:
        validator = build_default_validator()

    service = SaveMigrationService(
        registry=registry,
        validator=validator,
        codec=SaveCodec(config.version_field, config.data_field),
        backup_manager=build_backup_manager(config),
        current_version=current,
        strict_final=config.strict,
        max_workers=config.max_workers,
        write_back=config.write_back,
    )
    logger.info(
        "存档迁移服务已启动: 目标版本 %s，备份策略 %s",
        service.current_version, config.backup_policy.value,
    )
    return service
