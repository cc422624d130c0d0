from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import DeployKitError


ALL_SELECTOR = "all"


class ActionKind(str, Enum):
    BUILD = "build"
    PUSH = "push"
    DEPLOY = "deploy"
    TEST = "test"
    SETUP_REGISTRY = "setup-registry"
    CLEAN = "clean"


class ActionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ServiceDefinition:
    name: str
    build_context: Path
    chart_path: Path
    test_command: Optional[Tuple[str, ...]] = None

    @property
    def dockerfile(self) -> Path:
        return self.build_context / "Dockerfile"


@dataclass(frozen=True)
class TargetSelector:
    """
    명령의 대상 범위. service 가 None 이면 전체(all).
    """

    service: Optional[str] = None

    @property
    def is_all(self) -> bool:
        return self.service is None

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["TargetSelector"]:
        """빈 입력은 None(선택자 없음), 'all' 은 전체 선택자."""
        if raw is None or not raw.strip():
            return None
        value = raw.strip()
        if value == ALL_SELECTOR:
            return cls(service=None)
        return cls(service=value)

    def __str__(self) -> str:
        return ALL_SELECTOR if self.is_all else str(self.service)


@dataclass(frozen=True)
class PlannedAction:
    service: ServiceDefinition
    kind: ActionKind


@dataclass(frozen=True)
class ActionOutcome:
    service: str
    kind: ActionKind
    status: ActionStatus
    detail: str = ""
    error: Optional[str] = None
    image: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ActionStatus.SUCCESS


@dataclass
class RunResult:
    """
    한 번의 CLI 실행 결과.

    status 는 치명적 오류/중단이 없고 모든 outcome 이 SUCCESS 일 때만 SUCCESS 이다.
    (SKIPPED 도 실패로 취급)
    """

    command: str
    outcomes: List[ActionOutcome] = field(default_factory=list)
    fatal: Optional[DeployKitError] = None
    interrupted: bool = False

    @property
    def status(self) -> ActionStatus:
        if self.fatal is not None or self.interrupted:
            return ActionStatus.FAILURE
        if all(o.ok for o in self.outcomes):
            return ActionStatus.SUCCESS
        return ActionStatus.FAILURE

    @property
    def ok(self) -> bool:
        return self.status is ActionStatus.SUCCESS

    @property
    def exit_code(self) -> int:
        if self.interrupted:
            return 130
        return 0 if self.ok else 1

    def failures(self) -> List[ActionOutcome]:
        return [o for o in self.outcomes if o.status is ActionStatus.FAILURE]
