"""
docker_cli
----------

docker 이미지 빌드/태그/로그인/푸시/삭제를 감싸는 어댑터.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .errors import CollaboratorFailure
from .logging_utils import get_logger
from .subprocess_utils import Runner, run_command


logger = get_logger(__name__)


_NOT_FOUND_MARKERS = ("no such image", "image not known")


class DockerCli:
    def __init__(
        self,
        run: Runner = run_command,
        *,
        timeout: float = 900.0,
        build_timeout: float = 1800.0,
        show_progress: Optional[bool] = None,
    ) -> None:
        self._run = run
        self._timeout = timeout
        self._build_timeout = build_timeout
        self._show_progress = show_progress

    def build(self, context_dir: Path, image: str) -> None:
        self._run(
            ["docker", "build", "-t", image, str(context_dir)],
            timeout=self._build_timeout,
            stream_output=True,
            spinner_message=f"이미지 빌드 중: {image}",
            show_progress=self._show_progress,
        )

    def tag(self, source: str, target: str) -> None:
        self._run(["docker", "tag", source, target], timeout=self._timeout)

    def login(self, registry: str, username: str, password: str) -> None:
        self._run(
            ["docker", "login", "--username", username, "--password-stdin", registry],
            timeout=self._timeout,
            input_text=password,
        )

    def push(self, image: str) -> None:
        self._run(
            ["docker", "push", image],
            timeout=self._build_timeout,
            stream_output=True,
            spinner_message=f"이미지 푸시 중: {image}",
            show_progress=self._show_progress,
        )

    def remove_image(self, image: str) -> bool:
        """
        로컬 이미지 태그를 삭제한다.

        Returns:
            True: 삭제함, False: 원래 없었음
        Raises:
            CollaboratorFailure: 그 밖의 이유(사용 중인 컨테이너 등)로 삭제 실패
        """
        result = self._run(["docker", "rmi", image], timeout=self._timeout, check=False)
        if result.ok:
            return True
        message = result.output.lower()
        if any(marker in message for marker in _NOT_FOUND_MARKERS):
            return False
        raise CollaboratorFailure(
            f"이미지 삭제 실패: {image} (exit={result.returncode}) {result.output}",
            cmd=["docker", "rmi", image],
            returncode=result.returncode,
            output=result.output,
        )

    def prune_dangling(self) -> None:
        self._run(["docker", "image", "prune", "-f"], timeout=self._timeout)
