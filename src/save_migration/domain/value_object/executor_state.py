"""
迁移执行器状态机

CREATED → DECODED → VALIDATING_INITIAL → MIGRATING → VALIDATING_POST_STEP → ...
→ FINALIZING → COMMITTED；ABORTED 可由任意非终态到达。
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ExecutorState(Enum):
    """执行器状态"""
    CREATED = "created"
    DECODED = "decoded"
    VALIDATING_INITIAL = "validating_initial"
    MIGRATING = "migrating"
    VALIDATING_POST_STEP = "validating_post_step"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutorState.COMMITTED, ExecutorState.ABORTED)


_ALLOWED_TRANSITIONS = {
    ExecutorState.CREATED: {ExecutorState.DECODED},
    ExecutorState.DECODED: {ExecutorState.VALIDATING_INITIAL},
    ExecutorState.VALIDATING_INITIAL: {ExecutorState.MIGRATING, ExecutorState.FINALIZING},
    ExecutorState.MIGRATING: {ExecutorState.VALIDATING_POST_STEP},
    ExecutorState.VALIDATING_POST_STEP: {ExecutorState.MIGRATING, ExecutorState.FINALIZING},
    ExecutorState.FINALIZING: {ExecutorState.COMMITTED},
    ExecutorState.COMMITTED: set(),
    ExecutorState.ABORTED: set(),
}


def can_transition(current: ExecutorState, target: ExecutorState) -> bool:
    """判断状态迁移是否合法"""
    if target is ExecutorState.ABORTED:
        return not current.is_terminal
    return target in _ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class StateTransition:
    """
    一次状态迁移记录

    Attributes:
        state: 进入的状态
        step_index: 当前步骤序号（从 1 开始，仅 MIGRATING / VALIDATING_POST_STEP 有意义）
        step_count: 路径总步数
        detail: 附加说明
    """
    state: ExecutorState
    step_index: Optional[int] = None
    step_count: Optional[int] = None
    detail: str = ""
