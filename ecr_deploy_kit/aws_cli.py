"""
aws_cli
-------

ECR 리포지토리 조회/생성, ECR 로그인 토큰, STS 계정 조회를 aws CLI 로 처리한다.
"""

from __future__ import annotations

from .errors import CollaboratorFailure
from .logging_utils import get_logger
from .subprocess_utils import Runner, run_command


logger = get_logger(__name__)


_REPO_NOT_FOUND = "RepositoryNotFoundException"


class AwsCli:
    def __init__(self, run: Runner = run_command, *, timeout: float = 900.0) -> None:
        self._run = run
        self._timeout = timeout

    def caller_account_id(self) -> str:
        result = self._run(
            ["aws", "sts", "get-caller-identity", "--query", "Account", "--output", "text"],
            timeout=self._timeout,
        )
        account = result.stdout.strip()
        if not account or account == "None":
            raise CollaboratorFailure("aws sts get-caller-identity 결과에 계정 ID 가 없습니다.")
        return account

    def ecr_login_password(self, region: str) -> str:
        result = self._run(
            ["aws", "ecr", "get-login-password", "--region", region],
            timeout=self._timeout,
        )
        return result.stdout.strip()

    def repository_exists(self, name: str, region: str) -> bool:
        """
        리포지토리 존재 여부. '없음' 이외의 조회 실패(권한 등)는 예외로 올린다.
        """
        cmd = [
            "aws",
            "ecr",
            "describe-repositories",
            "--repository-names",
            name,
            "--region",
            region,
        ]
        result = self._run(cmd, timeout=self._timeout, check=False)
        if result.ok:
            return True
        if _REPO_NOT_FOUND in result.output:
            return False
        raise CollaboratorFailure(
            f"ECR 리포지토리 조회 실패: {name} (exit={result.returncode}) {result.output}",
            cmd=cmd,
            returncode=result.returncode,
            output=result.output,
        )

    def create_repository(
        self,
        name: str,
        region: str,
        *,
        scan_on_push: bool = True,
        encryption_type: str = "AES256",
    ) -> None:
        self._run(
            [
                "aws",
                "ecr",
                "create-repository",
                "--repository-name",
                name,
                "--region",
                region,
                "--image-scanning-configuration",
                f"scanOnPush={'true' if scan_on_push else 'false'}",
                "--encryption-configuration",
                f"encryptionType={encryption_type}",
            ],
            timeout=self._timeout,
        )
        logger.info("ECR 리포지토리를 생성했습니다: %s", name)
