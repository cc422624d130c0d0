"""
executor
--------

(서비스, 액션) 하나를 외부 도구 어댑터로 실행하고 ActionOutcome 으로 돌려준다.
서비스 단위 오류는 예외로 올리지 않고 FAILURE outcome 으로 기록한다.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

from .aws_cli import AwsCli
from .config import DeployConfig
from .docker_cli import DockerCli
from .errors import (
    CollaboratorFailure,
    DeployKitError,
    MissingBuildContext,
    MissingChart,
    RegistryAuthError,
)
from .helm_cli import HelmCli
from .logging_utils import get_logger
from .models import ActionKind, ActionOutcome, ActionStatus, ServiceDefinition
from .subprocess_utils import run_command


logger = get_logger(__name__)


NOT_PRESENT = "not present"
NO_TESTS_REGISTERED = "no tests registered"


@dataclass(frozen=True)
class ActionOptions:
    """한 번의 실행에서 설정값을 덮어쓸 때 사용."""

    tag: Optional[str] = None
    namespace: Optional[str] = None


class ActionExecutor:
    def __init__(
        self,
        cfg: DeployConfig,
        *,
        docker: DockerCli,
        aws: AwsCli,
        helm: HelmCli,
        run: Callable = run_command,
    ) -> None:
        self._cfg = cfg
        self._docker = docker
        self._aws = aws
        self._helm = helm
        self._run = run
        self._login_lock = threading.Lock()
        self._logged_in: Set[str] = set()
        self._handlers: Dict[ActionKind, Callable[[ServiceDefinition, ActionOptions], ActionOutcome]] = {
            ActionKind.BUILD: self._build,
            ActionKind.PUSH: self._push,
            ActionKind.DEPLOY: self._deploy,
            ActionKind.TEST: self._test,
            ActionKind.SETUP_REGISTRY: self._setup_registry,
            ActionKind.CLEAN: self._clean,
        }

    def execute(
        self,
        service: ServiceDefinition,
        kind: ActionKind,
        options: Optional[ActionOptions] = None,
    ) -> ActionOutcome:
        opts = options or ActionOptions()
        logger.info("액션 실행: %s %s", kind.value, service.name)
        try:
            outcome = self._handlers[kind](service, opts)
        except DeployKitError as e:
            logger.error("액션 실패: %s %s: %s", kind.value, service.name, e)
            return ActionOutcome(
                service=service.name,
                kind=kind,
                status=ActionStatus.FAILURE,
                detail=str(e),
                error=e.kind,
                image=self._image_for(service, kind, opts),
            )
        logger.info("액션 완료: %s %s (%s)", kind.value, service.name, outcome.status.value)
        return outcome

    # -----------------------------
    # 액션별 구현
    # -----------------------------
    def _tag(self, opts: ActionOptions) -> str:
        return opts.tag or self._cfg.image_tag

    def _image_for(self, service: ServiceDefinition, kind: ActionKind, opts: ActionOptions) -> Optional[str]:
        if kind in (ActionKind.BUILD, ActionKind.PUSH, ActionKind.DEPLOY):
            return self._cfg.remote_image(service.name, self._tag(opts))
        return None

    def _build(self, service: ServiceDefinition, opts: ActionOptions) -> ActionOutcome:
        if not service.build_context.is_dir():
            raise MissingBuildContext(f"서비스 디렉토리가 없습니다: {service.build_context}")
        if not service.dockerfile.is_file():
            raise MissingBuildContext(f"Dockerfile 이 없습니다: {service.dockerfile}")

        tag = self._tag(opts)
        local = self._cfg.local_image(service.name, tag)
        remote = self._cfg.remote_image(service.name, tag)

        self._docker.build(service.build_context, local)
        self._docker.tag(local, remote)
        return ActionOutcome(
            service=service.name,
            kind=ActionKind.BUILD,
            status=ActionStatus.SUCCESS,
            detail=f"built {local}, tagged {remote}",
            image=remote,
        )

    def _ensure_registry_login(self) -> None:
        registry = self._cfg.registry_host
        with self._login_lock:
            if registry in self._logged_in:
                return
            logger.info("ECR 로그인: %s", registry)
            try:
                password = self._aws.ecr_login_password(self._cfg.region)
                self._docker.login(registry, "AWS", password)
            except CollaboratorFailure as e:
                raise RegistryAuthError(
                    f"registry authentication failed: {e}",
                    cmd=e.cmd,
                    returncode=e.returncode,
                    output=e.output,
                ) from e
            self._logged_in.add(registry)

    def _push(self, service: ServiceDefinition, opts: ActionOptions) -> ActionOutcome:
        remote = self._cfg.remote_image(service.name, self._tag(opts))
        self._ensure_registry_login()
        try:
            self._docker.push(remote)
        except CollaboratorFailure as e:
            raise CollaboratorFailure(
                f"image upload failed: {e}",
                cmd=e.cmd,
                returncode=e.returncode,
                output=e.output,
            ) from e
        return ActionOutcome(
            service=service.name,
            kind=ActionKind.PUSH,
            status=ActionStatus.SUCCESS,
            detail=f"pushed {remote}",
            image=remote,
        )

    def _deploy(self, service: ServiceDefinition, opts: ActionOptions) -> ActionOutcome:
        if not service.chart_path.is_dir():
            raise MissingChart(f"Helm 차트가 없습니다: {service.chart_path}")

        tag = self._tag(opts)
        repository = self._cfg.remote_repository(service.name)
        namespace = opts.namespace or self._cfg.namespace
        release = self._cfg.release_name(service.name)

        self._helm.upgrade_install(
            release,
            service.chart_path,
            namespace=namespace,
            values={"image.repository": repository, "image.tag": tag},
            timeout_seconds=self._cfg.deploy_timeout,
        )
        return ActionOutcome(
            service=service.name,
            kind=ActionKind.DEPLOY,
            status=ActionStatus.SUCCESS,
            detail=f"release {release} in {namespace} with image {repository}:{tag}",
            image=f"{repository}:{tag}",
        )

    def _test(self, service: ServiceDefinition, opts: ActionOptions) -> ActionOutcome:  # noqa: ARG002
        if not service.test_command:
            logger.warning("등록된 테스트가 없습니다: %s", service.name)
            return ActionOutcome(
                service=service.name,
                kind=ActionKind.TEST,
                status=ActionStatus.SKIPPED,
                detail=NO_TESTS_REGISTERED,
            )

        if not service.build_context.is_dir():
            raise MissingBuildContext(f"서비스 디렉토리가 없습니다: {service.build_context}")

        self._run(
            list(service.test_command),
            cwd=str(service.build_context),
            timeout=self._cfg.build_timeout,
            stream_output=True,
            spinner_message=f"테스트 실행 중: {service.name}",
            show_progress=self._cfg.show_progress,
        )
        return ActionOutcome(
            service=service.name,
            kind=ActionKind.TEST,
            status=ActionStatus.SUCCESS,
            detail="tests passed: " + " ".join(service.test_command),
        )

    def _setup_registry(self, service: ServiceDefinition, opts: ActionOptions) -> ActionOutcome:  # noqa: ARG002
        name = self._cfg.repository_name(service.name)
        region = self._cfg.region

        if self._aws.repository_exists(name, region):
            logger.info("ECR 리포지토리가 이미 존재합니다: %s", name)
            detail = f"repository {name} already exists"
        else:
            logger.info("ECR 리포지토리 생성: %s", name)
            self._aws.create_repository(
                name,
                region,
                scan_on_push=self._cfg.scan_on_push,
                encryption_type=self._cfg.encryption_type,
            )
            detail = f"repository {name} created"

        return ActionOutcome(
            service=service.name,
            kind=ActionKind.SETUP_REGISTRY,
            status=ActionStatus.SUCCESS,
            detail=detail,
        )

    def _clean(self, service: ServiceDefinition, opts: ActionOptions) -> ActionOutcome:
        tag = self._tag(opts)
        images = [self._cfg.local_image(service.name, tag)]
        if self._cfg.account_id:
            images.append(self._cfg.remote_image(service.name, tag))

        removed: list[str] = []
        problems: list[str] = []
        for image in images:
            # 삭제 실패는 실행 실패로 올리지 않는다. 단, '없음' 과 그 밖의 오류는 구분해서 남긴다.
            try:
                if self._docker.remove_image(image):
                    removed.append(image)
            except DeployKitError as e:
                logger.warning("이미지 삭제 실패(무시): %s: %s", image, e)
                problems.append(f"{image}: {e}")

        if problems:
            detail = "removal failed: " + "; ".join(problems)
        elif removed:
            detail = "removed " + ", ".join(removed)
        else:
            detail = NOT_PRESENT

        return ActionOutcome(
            service=service.name,
            kind=ActionKind.CLEAN,
            status=ActionStatus.SUCCESS,
            detail=detail,
        )
