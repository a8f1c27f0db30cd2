"""
Migration Domain Events - 存档迁移领域事件

执行器在生命周期关键节点产生事件，调用方通过 pop_domain_events 取走，
用于审计日志、存档界面提示等，与迁移逻辑解耦。
"""
from dataclasses import dataclass

from .event_types import DomainEvent


@dataclass
class MigrationStartedEvent(DomainEvent):
    """
    迁移开始事件

    触发时机: 原始存档解码成功、版本已识别。
    """
    artifact_name: str = ""
    source_version: str = ""
    target_version: str = ""


@dataclass
class StepAppliedEvent(DomainEvent):
    """
    步骤完成事件

    触发时机: 某一步骤输出通过目标版本校验。
    """
    step_id: str = ""
    step_index: int = 0
    step_count: int = 0


@dataclass
class MigrationCommittedEvent(DomainEvent):
    """
    迁移提交事件

    触发时机: 最终校验通过，备份已按策略提交。
    """
    artifact_name: str = ""
    source_version: str = ""
    target_version: str = ""
    steps_applied: int = 0
    backup_location: str = ""


@dataclass
class MigrationAbortedEvent(DomainEvent):
    """
    迁移中止事件

    触发时机: 任一阶段失败；原始存档保持不变并可通过备份取回。
    """
    artifact_name: str = ""
    state: str = ""                              # 失败时所处状态
    error_type: str = ""
    message: str = ""
