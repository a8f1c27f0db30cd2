"""
领域事件基类
"""
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class DomainEvent:
    """领域事件基类，记录发生时间"""
    timestamp: datetime = field(default_factory=datetime.now)
