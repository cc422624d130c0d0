from __future__ import annotations

from pathlib import Path
from typing import List, Mapping, Optional

from .subprocess_utils import Runner, run_command


# helm 자체 --timeout 보다 약간 길게 잡아 helm 이 먼저 실패를 보고하게 한다.
_PROCESS_TIMEOUT_MARGIN = 60


class HelmCli:
    def __init__(self, run: Runner = run_command, *, show_progress: Optional[bool] = None) -> None:
        self._run = run
        self._show_progress = show_progress

    def upgrade_install(
        self,
        release: str,
        chart: Path,
        *,
        namespace: str,
        values: Mapping[str, str],
        timeout_seconds: int = 300,
        create_namespace: bool = True,
        wait: bool = True,
    ) -> List[str]:
        """
        helm upgrade --install 을 실행하고 실제로 실행한 명령 인자를 반환한다.
        """
        cmd = ["helm", "upgrade", "--install", release, str(chart), "--namespace", namespace]
        if create_namespace:
            cmd.append("--create-namespace")
        for key, value in values.items():
            cmd.extend(["--set", f"{key}={value}"])
        if wait:
            cmd.append("--wait")
        cmd.extend(["--timeout", f"{int(timeout_seconds)}s"])

        self._run(
            cmd,
            timeout=int(timeout_seconds) + _PROCESS_TIMEOUT_MARGIN,
            stream_output=True,
            spinner_message=f"배포 대기 중: {release} ({namespace})",
            show_progress=self._show_progress,
        )
        return cmd
