"""
MigrationRegistry - 迁移链注册表

每个源版本至多一个后继步骤，构成单一确定的链而非分支图。
注册顺序无关，查找按版本值进行；注册表通常在启动时构建后冻结。
"""
import logging
import threading
from typing import Dict, Iterator, List, Optional, Tuple

from src.save_migration.domain.exceptions import (
    DuplicateStepError,
    NoPathError,
    UnsupportedVersionError,
)
from src.save_migration.domain.step.migration_step import FunctionStep, MigrationStep, TransformFn
from src.save_migration.domain.value_object.schema_version import SchemaVersion, VersionLike

logger = logging.getLogger(__name__)


class MigrationPath:
    """按需计算的有序步骤序列，不做缓存"""

    __slots__ = ("_source", "_target", "_steps")

    def __init__(self, source: SchemaVersion, target: SchemaVersion, steps: Tuple[MigrationStep, ...]) -> None:
        self._source = source
        self._target = target
        self._steps = steps

    @property
    def source(self) -> SchemaVersion:
        return self._source

    @property
    def target(self) -> SchemaVersion:
        return self._target

    @property
    def steps(self) -> Tuple[MigrationStep, ...]:
        return self._steps

    @property
    def versions(self) -> Tuple[SchemaVersion, ...]:
        """路径依次经过的版本（含起点与终点）"""
        return (self._source,) + tuple(step.to_version for step in self._steps)

    @property
    def is_empty(self) -> bool:
        return not self._steps

    def __iter__(self) -> Iterator[MigrationStep]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __repr__(self) -> str:
        chain = " -> ".join(str(v) for v in self.versions)
        return f"MigrationPath({chain})"


class MigrationRegistry:
    """迁移链注册表，以源版本为键管理 MigrationStep。"""

    def __init__(self) -> None:
        self._steps: Dict[SchemaVersion, MigrationStep] = {}
        self._lock = threading.Lock()
        self._frozen = False

    # ========== 注册 ==========

    def register(self, step: MigrationStep) -> MigrationStep:
        """
        注册迁移步骤

        Raises:
            DuplicateStepError: 该源版本已注册过步骤
            RuntimeError: 注册表已冻结
        """
        if not isinstance(step, MigrationStep):
            raise TypeError(f"Expected MigrationStep, got {type(step).__name__}")
        with self._lock:
            if self._frozen:
                raise RuntimeError("Migration registry is frozen; register steps at startup")
            existing = self._steps.get(step.from_version)
            if existing is not None:
                raise DuplicateStepError(step.from_version, repr(existing), repr(step))
            self._steps[step.from_version] = step
        logger.debug("已注册迁移步骤: %r", step)
        return step

    def register_step(
        self,
        from_version: VersionLike,
        to_version: VersionLike,
        fn: Optional[TransformFn] = None,
    ):
        """
        以函数形式注册 from_version → to_version 的迁移

        fn 省略时返回装饰器:

            @registry.register_step("1.0", "2.0")
            def add_mana(data): ...
        """
        if fn is None:
            def decorator(func: TransformFn) -> TransformFn:
                self.register(FunctionStep(from_version, to_version, func))
                return func
            return decorator
        return self.register(FunctionStep(from_version, to_version, fn))

    def freeze(self) -> None:
        """冻结注册表，此后注册将失败"""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ========== 查询 ==========

    def get(self, from_version: VersionLike) -> Optional[MigrationStep]:
        return self._steps.get(SchemaVersion.parse(from_version))

    def versions(self) -> List[SchemaVersion]:
        """全部已注册的源版本（升序）"""
        return sorted(self._steps)

    def steps(self) -> List[MigrationStep]:
        return [self._steps[v] for v in self.versions()]

    def latest_version(self) -> Optional[SchemaVersion]:
        """链上出现过的最高目标版本"""
        if not self._steps:
            return None
        return max(step.to_version for step in self._steps.values())

    def is_known(self, version: VersionLike) -> bool:
        """版本是否出现在链上（作为源或目标）"""
        parsed = SchemaVersion.parse(version)
        if parsed in self._steps:
            return True
        return any(step.to_version == parsed for step in self._steps.values())

    def path_to(self, from_version: VersionLike, target_version: VersionLike) -> MigrationPath:
        """
        计算从 from_version 到 target_version 的迁移路径

        Returns:
            MigrationPath，相同版本时为空路径

        Raises:
            UnsupportedVersionError: from_version 不在链上（既非源版本也非目标版本）
            NoPathError: 链在到达目标前中断或越过目标
        """
        source = SchemaVersion.parse(from_version)
        target = SchemaVersion.parse(target_version)
        if source == target:
            return MigrationPath(source, target, ())

        steps = dict(self._steps)
        if source not in steps and not any(s.to_version == source for s in steps.values()):
            raise UnsupportedVersionError(source, "version is not part of the migration chain")

        path: List[MigrationStep] = []
        current = source
        while current != target:
            step = steps.get(current)
            if step is None or step.to_version > target:
                raise NoPathError(source, target, current)
            path.append(step)
            current = step.to_version
        return MigrationPath(source, target, tuple(path))

    def check_completeness(self, current_version: VersionLike) -> None:
        """
        启动期缺口检查：每个已注册版本都必须能到达 current_version

        Raises:
            NoPathError: 第一个无法到达的版本
        """
        for version in self.versions():
            self.path_to(version, current_version)

    def __contains__(self, version: object) -> bool:
        if isinstance(version, (SchemaVersion, int, str)):
            try:
                return SchemaVersion.parse(version) in self._steps
            except ValueError:
                return False
        return False

    def __len__(self) -> int:
        return len(self._steps)

    def __repr__(self) -> str:
        return f"MigrationRegistry(steps={[s.step_id for s in self.steps()]})"
