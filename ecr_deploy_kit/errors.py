"""
errors
------

배포 CLI 전반에서 사용하는 예외 계층.

- 치명적 오류(MissingPrerequisite, 선택자 오류)는 실행 전체를 중단한다.
- ActionError 계열은 해당 서비스의 ActionOutcome 에만 기록된다.
"""

from __future__ import annotations

from typing import Optional, Sequence


class DeployKitError(RuntimeError):
    """모든 배포 오류의 기반 클래스."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class MissingPrerequisite(DeployKitError):
    """필수 외부 도구가 없거나 AWS 계정을 확인할 수 없음."""


class UnknownCommand(DeployKitError):
    pass


class UnknownService(DeployKitError):
    def __init__(self, name: str) -> None:
        super().__init__(f"등록되지 않은 서비스입니다: {name}")
        self.name = name


class InvalidSelector(UnknownService):
    pass


class MissingSelector(DeployKitError):
    def __init__(self, command: str) -> None:
        super().__init__(f"'{command}' 명령에는 서비스 이름 또는 'all' 이 필요합니다.")
        self.command = command


class ActionError(DeployKitError):
    """서비스 단위 액션 실패. 형제 서비스의 실행은 중단하지 않는다."""


class MissingBuildContext(ActionError):
    pass


class MissingChart(ActionError):
    pass


class CollaboratorFailure(ActionError):
    """docker/aws/helm 이 0 이 아닌 종료 코드를 반환했다."""

    def __init__(
        self,
        message: str,
        *,
        cmd: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd) if cmd is not None else []
        self.returncode = returncode
        self.output = output


class CommandTimeout(CollaboratorFailure):
    pass


class RegistryAuthError(CollaboratorFailure):
    pass


SELECTOR_ERRORS = (UnknownCommand, UnknownService, MissingSelector)
