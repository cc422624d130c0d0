import sys
from dataclasses import replace
from typing import Optional

import click

from .config import load_env_files, DeployConfig
from .errors import SELECTOR_ERRORS, DeployKitError
from .executor import ActionOptions
from .logging_utils import setup_logging, get_logger, echo_tagged
from .models import ActionStatus, RunResult
from .orchestrator import check_environment, format_summary, plan as plan_actions, run
from .registry import ServiceRegistry
from .resolver import ACTION_COMMANDS


logger = get_logger(__name__)


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

_OUTCOME_TAGS = {
    ActionStatus.SUCCESS: "SUCCESS",
    ActionStatus.FAILURE: "FAILED",
    ActionStatus.SKIPPED: "SKIPPED",
}


class _DeployGroup(click.Group):
    """인자 없이 실행하거나 알 수 없는 명령이면 사용법을 출력하고 exit 1."""

    def parse_args(self, ctx: click.Context, args: list) -> list:
        if not args:
            click.echo(ctx.get_help())
            ctx.exit(1)
        return super().parse_args(ctx, args)

    def resolve_command(self, ctx: click.Context, args: list):  # noqa: ANN201
        name = args[0] if args else None
        if name and not name.startswith("-") and self.get_command(ctx, name) is None:
            echo_tagged("ERROR", f"알 수 없는 명령입니다: {name}", err=True)
            click.echo(ctx.get_help())
            ctx.exit(1)
        return super().resolve_command(ctx, args)


@click.group(cls=_DeployGroup, context_settings=CONTEXT_SETTINGS)
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (기본: 현재 디렉토리). .env 와 서비스 소스를 여기서 찾습니다.",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다.",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """
    마이크로서비스 이미지 빌드 / ECR 푸시 / Helm 배포 CLI

    SERVICE 자리에는 서비스 이름(ui, catalog, cart, checkout, orders) 또는 'all' 을 넣습니다.

    \b
    예시:
      ecr-deploy build ui          # UI 서비스 빌드
      ecr-deploy build all         # 전체 서비스 빌드
      ecr-deploy push catalog      # catalog 이미지를 ECR 로 푸시
      ecr-deploy deploy all        # 전체 서비스 Helm 배포
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_config_from_ctx(ctx: click.Context) -> DeployConfig:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    try:
        cfg = DeployConfig.from_env()
    except ValueError as e:
        echo_tagged("ERROR", f"설정 로드 실패: {e}", err=True)
        sys.exit(1)
    logger.debug("Config loaded: %s", cfg)
    return cfg


def _load_registry(ctx: click.Context, cfg: DeployConfig) -> ServiceRegistry:
    try:
        return ServiceRegistry.from_config(cfg, ctx.obj["chdir"])
    except ValueError as e:
        echo_tagged("ERROR", f"서비스 목록이 올바르지 않습니다: {e}", err=True)
        sys.exit(1)


def _report(result: RunResult) -> None:
    for o in result.outcomes:
        error = f" [{o.error}]" if o.error else ""
        echo_tagged(_OUTCOME_TAGS[o.status], f"{o.kind.value} {o.service}{error}: {o.detail}")

    if result.fatal is not None:
        echo_tagged("ERROR", str(result.fatal), err=True)
        return

    click.echo("")
    click.echo(format_summary(result))
    if result.ok:
        echo_tagged("SUCCESS", f"{result.command} 완료")
    else:
        echo_tagged("ERROR", f"{result.command} 실패 (exit={result.exit_code})", err=True)


def _execute(
    ctx: click.Context,
    command: str,
    service: Optional[str],
    *,
    tag: Optional[str] = None,
    namespace: Optional[str] = None,
    fail_fast: Optional[bool] = None,
    jobs: Optional[int] = None,
) -> None:
    cfg = _load_config_from_ctx(ctx)
    if fail_fast is not None:
        cfg = replace(cfg, fail_fast=fail_fast)
    if jobs is not None:
        cfg = replace(cfg, max_workers=jobs)
    registry = _load_registry(ctx, cfg)

    result = run(
        command,
        service,
        cfg,
        registry=registry,
        options=ActionOptions(tag=tag, namespace=namespace),
    )
    _report(result)

    if isinstance(result.fatal, SELECTOR_ERRORS):
        click.echo(ctx.find_root().get_help())

    if result.exit_code:
        sys.exit(result.exit_code)


def _policy_options(f):  # noqa: ANN001, ANN202
    f = click.option(
        "-j",
        "--jobs",
        type=click.IntRange(min=1),
        default=None,
        help="서비스 단위 병렬 실행 수 (기본: MAX_WORKERS 또는 1)",
    )(f)
    f = click.option(
        "--fail-fast/--keep-going",
        "fail_fast",
        default=None,
        help="첫 실패에서 중단할지 여부 (기본: FAIL_FAST 또는 --keep-going)",
    )(f)
    return f


def _run_options(f):  # noqa: ANN001, ANN202
    f = _policy_options(f)
    f = click.option("--tag", type=str, default=None, help="이미지 태그 (기본: IMAGE_TAG 또는 latest)")(f)
    return f


@main.command()
@click.argument("service", required=False)
@_run_options
@click.pass_context
def build(ctx: click.Context, service: Optional[str], tag: Optional[str],
          fail_fast: Optional[bool], jobs: Optional[int]) -> None:
    """도커 이미지를 로컬에서 빌드하고 ECR 경로로 태그"""
    _execute(ctx, "build", service, tag=tag, fail_fast=fail_fast, jobs=jobs)


@main.command()
@click.argument("service", required=False)
@_run_options
@click.pass_context
def push(ctx: click.Context, service: Optional[str], tag: Optional[str],
         fail_fast: Optional[bool], jobs: Optional[int]) -> None:
    """ECR 로그인 후 이미지를 푸시"""
    _execute(ctx, "push", service, tag=tag, fail_fast=fail_fast, jobs=jobs)


@main.command(name="test")
@click.argument("service", required=False)
@_policy_options
@click.pass_context
def test_(ctx: click.Context, service: Optional[str], fail_fast: Optional[bool],
          jobs: Optional[int]) -> None:
    """서비스별 테스트 실행 (TEST_COMMAND_<SERVICE> 가 없으면 SKIPPED)"""
    _execute(ctx, "test", service, fail_fast=fail_fast, jobs=jobs)


@main.command()
@click.argument("service", required=False)
@_run_options
@click.option("--namespace", type=str, default=None, help="배포 네임스페이스 (기본: K8S_NAMESPACE)")
@click.pass_context
def deploy(ctx: click.Context, service: Optional[str], tag: Optional[str],
           fail_fast: Optional[bool], jobs: Optional[int], namespace: Optional[str]) -> None:
    """Helm upgrade --install 로 서비스 배포"""
    _execute(ctx, "deploy", service, tag=tag, namespace=namespace, fail_fast=fail_fast, jobs=jobs)


@main.command()
@click.argument("service", required=False)
@_run_options
@click.option("--namespace", type=str, default=None, help="배포 네임스페이스 (기본: K8S_NAMESPACE)")
@click.pass_context
def release(ctx: click.Context, service: Optional[str], tag: Optional[str],
            fail_fast: Optional[bool], jobs: Optional[int], namespace: Optional[str]) -> None:
    """서비스별로 build -> push -> deploy 를 순서대로 실행"""
    _execute(ctx, "release", service, tag=tag, namespace=namespace, fail_fast=fail_fast, jobs=jobs)


@main.command()
@click.argument("service", required=False)
@click.pass_context
def setup(ctx: click.Context, service: Optional[str]) -> None:
    """ECR 리포지토리 생성 (이미 있으면 건너뜀)"""
    _execute(ctx, "setup", service)


@main.command()
@click.argument("service", required=False)
@click.option("--tag", type=str, default=None, help="삭제할 이미지 태그 (기본: IMAGE_TAG 또는 latest)")
@click.pass_context
def clean(ctx: click.Context, service: Optional[str], tag: Optional[str]) -> None:
    """로컬 도커 이미지 정리 (없는 이미지는 무시)"""
    _execute(ctx, "clean", service, tag=tag)


@main.command()
@click.argument("command", type=click.Choice(ACTION_COMMANDS))
@click.argument("service", required=False)
@click.pass_context
def plan(ctx: click.Context, command: str, service: Optional[str]) -> None:
    """도구를 호출하지 않고 실행될 액션 목록과 설정을 출력"""
    cfg = _load_config_from_ctx(ctx)
    registry = _load_registry(ctx, cfg)
    try:
        report = plan_actions(command, service, cfg, registry)
    except DeployKitError as e:
        echo_tagged("ERROR", str(e), err=True)
        sys.exit(1)
    click.echo(report)


@main.command()
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help="모든 체크 항목의 상세 상태를 출력합니다. (기본은 이슈만 요약)",
)
@click.pass_context
def check(ctx: click.Context, show_all: bool) -> None:
    """
    배포 전에 도구/계정/서비스 디렉토리 상태를 점검한다.
    (실제 리소스 생성/변경은 하지 않는다)
    """
    cfg = _load_config_from_ctx(ctx)
    registry = _load_registry(ctx, cfg)

    report, has_issues = check_environment(cfg, registry, show_all=show_all)
    click.echo(report)

    # 치명적인 이슈가 있으면 exit 1 로 종료하여 CI 등에서 감지 가능하게 한다.
    if has_issues:
        sys.exit(1)


@main.command(name="help")
@click.pass_context
def help_(ctx: click.Context) -> None:
    """사용법 출력"""
    click.echo(ctx.find_root().get_help())
