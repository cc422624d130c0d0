from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv


ENV_FILES_DEFAULT_ORDER = [".env", ".env.deploy"]

DEFAULT_SERVICES: Tuple[str, ...] = ("ui", "catalog", "cart", "checkout", "orders")
DEFAULT_REGION = "us-east-1"

TEST_COMMAND_ENV_PREFIX = "TEST_COMMAND_"


def load_env_files(base_dir: str = ".",
                   files: Optional[List[str]] = None) -> None:
    """
    주어진 디렉토리에서 .env 계열 파일을 순서대로 로드한다.
    후순위 파일이 같은 키를 덮어쓴다.
    """
    order = files or ENV_FILES_DEFAULT_ORDER
    for name in order:
        path = os.path.join(base_dir, name)
        if os.path.exists(path):
            load_dotenv(path, override=True)


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        val = os.getenv(name)
        if val:
            return val.strip()
    return None


def _parse_services(raw: Optional[str]) -> Tuple[str, ...]:
    if raw is None or not raw.strip():
        return DEFAULT_SERVICES
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def _test_commands_from_env(services: Tuple[str, ...]) -> Dict[str, Tuple[str, ...]]:
    # TEST_COMMAND_CATALOG="mvn -q test" 형태. 서비스 이름의 '-' 는 '_' 로 바꿔서 찾는다.
    commands: Dict[str, Tuple[str, ...]] = {}
    for name in services:
        key = TEST_COMMAND_ENV_PREFIX + name.upper().replace("-", "_")
        raw = os.getenv(key)
        if raw and raw.strip():
            commands[name] = tuple(shlex.split(raw))
    return commands


@dataclass
class DeployConfig:
    region: str = DEFAULT_REGION
    # 비어 있으면 aws sts get-caller-identity 로 보정한다.
    account_id: Optional[str] = None

    services: Tuple[str, ...] = DEFAULT_SERVICES
    source_root: str = "src"
    image_prefix: str = "retail-store"
    image_tag: str = "latest"
    namespace: str = "retail-store-local"
    test_commands: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    # 실행 정책
    fail_fast: bool = False
    max_workers: int = 1

    # 타임아웃(초)
    command_timeout: float = 900.0
    build_timeout: float = 1800.0
    deploy_timeout: int = 300

    # ECR 리포지토리 생성 옵션
    scan_on_push: bool = True
    encryption_type: str = "AES256"

    show_progress: bool = True

    @property
    def registry_host(self) -> str:
        return f"{self.account_id or ''}.dkr.ecr.{self.region}.amazonaws.com"

    def repository_name(self, service: str) -> str:
        return f"{self.image_prefix}-{service}"

    def release_name(self, service: str) -> str:
        return self.repository_name(service)

    def local_image(self, service: str, tag: Optional[str] = None) -> str:
        return f"{self.repository_name(service)}:{tag or self.image_tag}"

    def remote_repository(self, service: str) -> str:
        return f"{self.registry_host}/{self.repository_name(service)}"

    def remote_image(self, service: str, tag: Optional[str] = None) -> str:
        return f"{self.remote_repository(service)}:{tag or self.image_tag}"

    @classmethod
    def from_env(cls) -> "DeployConfig":
        invalid: List[str] = []

        def num(name: str, default: float, *, minimum: float, integer: bool = False) -> float:
            raw = os.getenv(name)
            if raw is None or not raw.strip():
                return default
            try:
                value = int(raw) if integer else float(raw)
            except ValueError:
                invalid.append(f"{name}={raw!r}")
                return default
            if value < minimum:
                invalid.append(f"{name}={raw!r}")
                return default
            return value

        services = _parse_services(os.getenv("SERVICES"))

        cfg = cls(
            region=_first_env("REGION", "AWS_REGION") or DEFAULT_REGION,
            account_id=_first_env("ACCOUNT_ID", "AWS_ACCOUNT_ID"),
            services=services,
            source_root=os.getenv("SOURCE_ROOT") or "src",
            image_prefix=os.getenv("IMAGE_PREFIX") or "retail-store",
            image_tag=os.getenv("IMAGE_TAG") or "latest",
            namespace=os.getenv("K8S_NAMESPACE") or "retail-store-local",
            test_commands=_test_commands_from_env(services),
            fail_fast=_get_bool("FAIL_FAST", False),
            max_workers=int(num("MAX_WORKERS", 1, minimum=1, integer=True)),
            command_timeout=num("COMMAND_TIMEOUT_SECONDS", 900.0, minimum=1),
            build_timeout=num("BUILD_TIMEOUT_SECONDS", 1800.0, minimum=1),
            deploy_timeout=int(num("DEPLOY_TIMEOUT_SECONDS", 300, minimum=1, integer=True)),
            scan_on_push=_get_bool("ECR_SCAN_ON_PUSH", True),
            encryption_type=os.getenv("ECR_ENCRYPTION_TYPE") or "AES256",
            show_progress=_get_bool("CLI_SHOW_PROGRESS", True),
        )

        if invalid:
            raise ValueError(
                "환경변수 값이 올바르지 않습니다: " + ", ".join(sorted(set(invalid)))
            )

        if not cfg.services:
            raise ValueError("SERVICES 환경변수에 서비스가 하나 이상 필요합니다.")

        return cfg
