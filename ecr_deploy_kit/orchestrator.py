from __future__ import annotations

import shutil
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .aws_cli import AwsCli
from .config import DeployConfig
from .docker_cli import DockerCli
from .errors import DeployKitError, MissingPrerequisite
from .executor import ActionExecutor, ActionOptions
from .helm_cli import HelmCli
from .logging_utils import get_logger
from .models import (
    ActionKind,
    ActionOutcome,
    ActionStatus,
    PlannedAction,
    RunResult,
    TargetSelector,
)
from .registry import ServiceRegistry
from .resolver import resolve


logger = get_logger(__name__)


Which = Callable[[str], Optional[str]]

REQUIRED_TOOLS: Dict[ActionKind, Tuple[str, ...]] = {
    ActionKind.BUILD: ("docker",),
    ActionKind.PUSH: ("docker", "aws"),
    ActionKind.DEPLOY: ("helm",),
    ActionKind.SETUP_REGISTRY: ("aws",),
    ActionKind.TEST: (),
    ActionKind.CLEAN: (),
}

# 원격 이미지 경로({account}.dkr.ecr...)가 필요한 액션
NEEDS_ACCOUNT = frozenset({ActionKind.BUILD, ActionKind.PUSH, ActionKind.DEPLOY})

SKIP_EARLIER_FAILURE = "not run: earlier failure"
SKIP_INTERRUPTED = "interrupted"


@dataclass
class Collaborators:
    docker: DockerCli
    aws: AwsCli
    helm: HelmCli

    @classmethod
    def from_config(cls, cfg: DeployConfig) -> "Collaborators":
        return cls(
            docker=DockerCli(
                timeout=cfg.command_timeout,
                build_timeout=cfg.build_timeout,
                show_progress=cfg.show_progress,
            ),
            aws=AwsCli(timeout=cfg.command_timeout),
            helm=HelmCli(show_progress=cfg.show_progress),
        )


# -----------------------------
# 사전 조건
# -----------------------------
def _missing_tools(kinds: Iterable[ActionKind], which: Which) -> List[str]:
    needed: List[str] = []
    for kind in kinds:
        for tool in REQUIRED_TOOLS[kind]:
            if tool not in needed:
                needed.append(tool)
    return [tool for tool in needed if which(tool) is None]


def _resolve_account(cfg: DeployConfig, aws: AwsCli) -> DeployConfig:
    logger.warning("ACCOUNT_ID 가 설정되지 않았습니다. AWS CLI 로 조회를 시도합니다...")
    account = aws.caller_account_id()
    logger.info("AWS 계정 ID 확인: %s", account)
    return replace(cfg, account_id=account)


def check_prerequisites(
    cfg: DeployConfig,
    kinds: Iterable[ActionKind],
    *,
    aws: AwsCli,
    which: Which = shutil.which,
) -> DeployConfig:
    """
    실행할 액션에 필요한 도구가 PATH 에 있는지, 계정 ID 를 알 수 있는지 확인한다.
    계정 ID 가 조회되면 그 값을 채운 새 설정을 반환한다.
    """
    kinds = set(kinds)
    missing = _missing_tools(kinds, which)
    if missing:
        raise MissingPrerequisite("필수 도구가 없습니다: " + ", ".join(missing))

    if cfg.account_id:
        return cfg

    if kinds & NEEDS_ACCOUNT:
        if which("aws") is None:
            raise MissingPrerequisite(
                "ACCOUNT_ID 가 없고 aws CLI 도 없어 계정 ID 를 확인할 수 없습니다."
            )
        try:
            return _resolve_account(cfg, aws)
        except DeployKitError as e:
            raise MissingPrerequisite(
                f"AWS 계정 ID 를 확인할 수 없습니다. ACCOUNT_ID 환경변수를 설정하세요. ({e})"
            ) from e

    if ActionKind.CLEAN in kinds and which("aws") is not None:
        # clean 은 best-effort: 계정을 모르면 로컬 태그만 지운다.
        try:
            return _resolve_account(cfg, aws)
        except DeployKitError as e:
            logger.warning("계정 ID 조회 실패, 로컬 이미지만 정리합니다: %s", e)

    return cfg


# -----------------------------
# 실행
# -----------------------------
def _group_by_service(actions: Sequence[PlannedAction]) -> List[List[Tuple[int, PlannedAction]]]:
    groups: Dict[str, List[Tuple[int, PlannedAction]]] = {}
    for idx, action in enumerate(actions):
        groups.setdefault(action.service.name, []).append((idx, action))
    return list(groups.values())


def _skipped(action: PlannedAction, detail: str) -> ActionOutcome:
    return ActionOutcome(
        service=action.service.name,
        kind=action.kind,
        status=ActionStatus.SKIPPED,
        detail=detail,
    )


class _Execution:
    """
    서비스 그룹 단위 실행. 같은 서비스의 액션은 항상 순서대로 실행되고,
    앞선 액션이 실패하면 나머지는 SKIPPED 가 된다.
    """

    def __init__(
        self,
        executor: ActionExecutor,
        actions: Sequence[PlannedAction],
        *,
        options: Optional[ActionOptions],
        fail_fast: bool,
    ) -> None:
        self._executor = executor
        self._options = options
        self._fail_fast = fail_fast
        self._stop = threading.Event()
        self._stop_reason = SKIP_EARLIER_FAILURE
        self._lock = threading.Lock()
        self.slots: List[Optional[ActionOutcome]] = [None] * len(actions)
        self.groups = _group_by_service(actions)

    def stop(self, reason: str = SKIP_EARLIER_FAILURE) -> None:
        with self._lock:
            if not self._stop.is_set():
                self._stop_reason = reason
            self._stop.set()

    def run_group(self, group: List[Tuple[int, PlannedAction]]) -> None:
        failed_kind: Optional[ActionKind] = None
        for idx, action in group:
            if failed_kind is not None:
                outcome = _skipped(action, f"not run: {failed_kind.value} failed")
            elif self._stop.is_set():
                # 이미 시작한 그룹의 남은 액션도 새로 발행하지 않는다.
                outcome = _skipped(action, self._stop_reason)
            else:
                outcome = self._executor.execute(action.service, action.kind, self._options)
                if outcome.status is ActionStatus.FAILURE:
                    failed_kind = action.kind
                    if self._fail_fast:
                        self.stop(SKIP_EARLIER_FAILURE)
            with self._lock:
                self.slots[idx] = outcome

    @property
    def stop_reason(self) -> str:
        return self._stop_reason

    def fill_remaining(self, actions: Sequence[PlannedAction], detail: str) -> List[ActionOutcome]:
        return [
            outcome if outcome is not None else _skipped(actions[idx], detail)
            for idx, outcome in enumerate(self.slots)
        ]

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()


def _run_sequential(execution: _Execution) -> bool:
    """Ctrl-C 로 중단되면 True."""
    try:
        for group in execution.groups:
            if execution.stopped:
                break
            execution.run_group(group)
    except KeyboardInterrupt:
        execution.stop(SKIP_INTERRUPTED)
        return True
    return False


def _run_parallel(execution: _Execution, max_workers: int) -> bool:
    pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ecr-deploy")
    futures: List[Future] = []
    interrupted = False
    try:
        futures = [pool.submit(execution.run_group, group) for group in execution.groups]
        for future in futures:
            future.result()
    except KeyboardInterrupt:
        execution.stop(SKIP_INTERRUPTED)
        for future in futures:
            future.cancel()
        interrupted = True
    finally:
        # 이미 실행 중인 외부 명령은 끝나도록 둔다.
        pool.shutdown(wait=True)
    return interrupted


def execute_actions(
    executor: ActionExecutor,
    actions: Sequence[PlannedAction],
    *,
    fail_fast: bool = False,
    max_workers: int = 1,
    options: Optional[ActionOptions] = None,
) -> Tuple[List[ActionOutcome], bool]:
    """
    액션 목록을 실행하고 (resolver 순서대로 정렬된 outcome, 중단 여부)를 반환한다.
    """
    execution = _Execution(executor, actions, options=options, fail_fast=fail_fast)
    if max_workers > 1 and len(execution.groups) > 1:
        interrupted = _run_parallel(execution, max_workers)
    else:
        interrupted = _run_sequential(execution)

    return execution.fill_remaining(actions, execution.stop_reason), interrupted


def run(
    command: str,
    selector_input: Optional[str],
    cfg: DeployConfig,
    *,
    registry: Optional[ServiceRegistry] = None,
    collaborators: Optional[Collaborators] = None,
    options: Optional[ActionOptions] = None,
    which: Which = shutil.which,
    base_dir: str = ".",
) -> RunResult:
    """
    명령 하나를 끝까지 실행한다.

    선택자 해석(외부 호출 없음) -> 사전 조건 확인 -> 액션 실행 -> 집계 순서.
    선택자/사전 조건 오류는 RunResult.fatal 에 담기고 어떤 액션도 실행되지 않는다.
    """
    result = RunResult(command=command)
    registry = registry or ServiceRegistry.from_config(cfg, base_dir)

    try:
        actions = resolve(command, TargetSelector.parse(selector_input), registry)
    except DeployKitError as e:
        logger.error("명령 해석 실패: %s", e)
        result.fatal = e
        return result

    logger.info(
        "실행 대상: %s",
        ", ".join(f"{a.kind.value}:{a.service.name}" for a in actions) or "(none)",
    )

    collaborators = collaborators or Collaborators.from_config(cfg)
    try:
        cfg = check_prerequisites(cfg, {a.kind for a in actions}, aws=collaborators.aws, which=which)
    except MissingPrerequisite as e:
        logger.error("사전 조건 확인 실패: %s", e)
        result.fatal = e
        return result

    executor = ActionExecutor(
        cfg,
        docker=collaborators.docker,
        aws=collaborators.aws,
        helm=collaborators.helm,
    )
    result.outcomes, result.interrupted = execute_actions(
        executor,
        actions,
        fail_fast=cfg.fail_fast,
        max_workers=cfg.max_workers,
        options=options,
    )

    if command == "clean" and not result.interrupted:
        _prune_dangling(collaborators.docker)

    logger.info("실행 결과: %s (%s)", command, result.status.value)
    return result


def _prune_dangling(docker: DockerCli) -> None:
    try:
        docker.prune_dangling()
    except DeployKitError as e:
        logger.warning("dangling 이미지 정리 실패(무시): %s", e)


# -----------------------------
# 리포트
# -----------------------------
def format_summary(result: RunResult) -> str:
    lines: List[str] = []
    lines.append("# Run summary")
    lines.append(f"- command: {result.command}")
    lines.append(f"- status: {result.status.value}")
    if result.interrupted:
        lines.append("- interrupted: yes")

    if result.fatal is not None:
        lines.append("")
        lines.append("## Fatal error")
        lines.append(f"- {result.fatal.kind}: {result.fatal}")
        return "\n".join(lines)

    for title, status in (
        ("Succeeded actions", ActionStatus.SUCCESS),
        ("Failed actions", ActionStatus.FAILURE),
        ("Skipped actions", ActionStatus.SKIPPED),
    ):
        lines.append("")
        lines.append(f"## {title}")
        matched = [o for o in result.outcomes if o.status is status]
        if not matched:
            lines.append("- (none)")
            continue
        for o in matched:
            error = f" [{o.error}]" if o.error else ""
            lines.append(f"- {o.kind.value} {o.service}{error}: {o.detail}")

    return "\n".join(lines)


def plan(
    command: str,
    selector_input: Optional[str],
    cfg: DeployConfig,
    registry: ServiceRegistry,
) -> str:
    """
    실제 도구 호출 없이 실행될 액션과 주요 설정을 요약한다.
    선택자 오류는 그대로 예외로 올린다.
    """
    actions = resolve(command, TargetSelector.parse(selector_input), registry)

    lines: List[str] = []
    lines.append("# Deploy plan")
    lines.append(f"- command: {command}")
    lines.append(f"- region: {cfg.region}")
    lines.append(f"- account: {cfg.account_id or '(auto: aws sts get-caller-identity)'}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- image_prefix: {cfg.image_prefix}")
    lines.append(f"- image_tag: {cfg.image_tag}")
    lines.append(f"- namespace: {cfg.namespace}")
    lines.append(f"- source_root: {cfg.source_root}")
    lines.append(f"- fail_fast: {cfg.fail_fast}")
    lines.append(f"- max_workers: {cfg.max_workers}")
    lines.append("")

    lines.append("## Actions")
    if not actions:
        lines.append("- (none)")
    for action in actions:
        lines.append(f"- {action.kind.value} {action.service.name}")

    return "\n".join(lines)


def check_environment(
    cfg: DeployConfig,
    registry: ServiceRegistry,
    *,
    aws: Optional[AwsCli] = None,
    which: Which = shutil.which,
    show_all: bool = False,
) -> Tuple[str, bool]:
    """
    실제 리소스 변경 없이 배포 가능 상태를 점검한다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 치명적인 이슈가 있는지 여부
    """
    lines: List[str] = []
    critical: List[str] = []
    warnings: List[str] = []

    lines.append("# Deploy pre-check")
    lines.append(f"- region: {cfg.region}")
    lines.append("")

    lines.append("## Tools")
    for tool in ("docker", "aws", "helm"):
        path = which(tool)
        if path is None:
            critical.append(f"Tools: {tool} 없음")
            lines.append(f"- {tool}: 없음")
        elif show_all:
            lines.append(f"- {tool}: {path}")
    lines.append("")

    lines.append("## Account")
    if cfg.account_id:
        lines.append(f"- account: {cfg.account_id} (ACCOUNT_ID)")
    elif which("aws") is None:
        critical.append("Account: ACCOUNT_ID 미설정, aws CLI 없음")
        lines.append("- account: 확인 불가")
    else:
        try:
            account = (aws or AwsCli(timeout=cfg.command_timeout)).caller_account_id()
            lines.append(f"- account: {account} (aws sts)")
        except DeployKitError as e:
            critical.append(f"Account: 조회 실패 ({e})")
            lines.append("- account: 조회 실패")
    lines.append("")

    lines.append("## Services")
    for svc in registry.list():
        if not svc.build_context.is_dir():
            critical.append(f"{svc.name}: 서비스 디렉토리 없음 ({svc.build_context})")
        elif not svc.dockerfile.is_file():
            critical.append(f"{svc.name}: Dockerfile 없음 ({svc.dockerfile})")
        if not svc.chart_path.is_dir():
            warnings.append(f"{svc.name}: Helm 차트 없음 ({svc.chart_path})")
        if not svc.test_command:
            warnings.append(f"{svc.name}: 등록된 테스트 없음")
        if show_all:
            lines.append(f"- {svc.name}: context={svc.build_context} chart={svc.chart_path}")
    lines.append("")

    lines.append("## Summary")
    if critical:
        lines.append("- 상태: 크리티컬 이슈가 있습니다. 배포 전 반드시 해결해야 합니다.")
    elif warnings:
        lines.append("- 상태: 경고만 있습니다.")
    else:
        lines.append("- 상태: 주요 이슈 없음")

    if show_all or critical:
        lines.append("")
        lines.append("### Critical issues")
        for i in critical or ["(none)"]:
            lines.append(f"- {i}")

    if show_all or warnings:
        lines.append("")
        lines.append("### Warnings")
        for i in warnings or ["(none)"]:
            lines.append(f"- {i}")

    return "\n".join(lines), bool(critical)
