from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from textwrap import shorten
from typing import Callable, Mapping, Optional, Sequence

from .errors import CollaboratorFailure, CommandTimeout, DeployKitError, MissingPrerequisite
from .logging_utils import get_logger


logger = get_logger(__name__)


_BRAILLE_FRAMES = ["⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏"]
_ASCII_FRAMES = ["|", "/", "-", "\\"]


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return (self.stderr or self.stdout).strip()


# run_command 와 같은 시그니처의 실행 함수. 테스트에서는 가짜 구현으로 교체한다.
Runner = Callable[..., CommandResult]


def _is_tty(stream) -> bool:  # noqa: ANN001
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError):
        return False


def _env_show_progress() -> Optional[bool]:
    raw = os.getenv("CLI_SHOW_PROGRESS")
    if raw is None:
        return None
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:0.1f}s"
    minutes = int(seconds // 60)
    sec = int(seconds % 60)
    return f"{minutes}m{sec:02d}s"


def _command_text(cmd: Sequence[str]) -> str:
    return " ".join(cmd)


class _IdleProgressIndicator:
    """
    출력이 idle_seconds 이상 없을 때만 stderr 에 스피너를 그린다.
    stdout 로그와 섞이지 않도록 한 줄을 덮어쓰는 방식.
    """

    def __init__(
        self,
        message: str,
        *,
        stream=None,  # noqa: ANN001
        ascii_frames: bool = False,
        interval: float = 0.12,
        idle_seconds: float = 2.0,
    ) -> None:
        self._message = message
        self._stream = stream if stream is not None else sys.stderr
        self._frames = _ASCII_FRAMES if ascii_frames else _BRAILLE_FRAMES
        self._interval = max(float(interval), 0.02)
        self._idle_seconds = max(float(idle_seconds), 0.0)
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._started = time.monotonic()
        self._last_activity = self._started
        self._last_len = 0

    def touch(self) -> None:
        with self._lock:
            self._last_activity = time.monotonic()
        self.clear()

    def _idle_for(self) -> float:
        with self._lock:
            return time.monotonic() - self._last_activity

    def _render(self, idx: int) -> None:
        frame = self._frames[idx % len(self._frames)]
        text = f"{frame} {self._message}  {_format_elapsed(time.monotonic() - self._started)}"
        self._last_len = max(self._last_len, len(text))
        self._stream.write("\r" + text)
        self._stream.flush()

    def clear(self) -> None:
        if self._last_len <= 0:
            return
        self._stream.write("\r" + (" " * self._last_len) + "\r")
        self._stream.flush()
        self._last_len = 0

    def start(self) -> None:
        if self._thread is not None:
            return

        def _run() -> None:
            idx = 0
            while not self._stop.is_set():
                idle = self._idle_for()
                if idle < self._idle_seconds:
                    self._stop.wait(min(self._interval, max(self._idle_seconds - idle, 0.02)))
                    continue
                self._render(idx)
                idx += 1
                self._stop.wait(self._interval)

        self._thread = threading.Thread(target=_run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self.clear()


def _failure(cmd: Sequence[str], returncode: int, output: str) -> CollaboratorFailure:
    detail = ""
    if output.strip():
        detail = "\n출력:\n" + shorten(output.strip(), width=2000)
    return CollaboratorFailure(
        f"명령 실행 실패: {_command_text(cmd)} (exit={returncode}){detail}",
        cmd=cmd,
        returncode=returncode,
        output=output,
    )


def _timeout(cmd: Sequence[str], timeout: Optional[float]) -> CommandTimeout:
    return CommandTimeout(
        f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {_command_text(cmd)}",
        cmd=cmd,
    )


def _missing_tool(cmd: Sequence[str]) -> MissingPrerequisite:
    return MissingPrerequisite(
        f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (docker/aws/helm 이 설치되어 있는지 확인하세요)"
    )


def _start_error(cmd: Sequence[str], cwd: Optional[str], error: OSError) -> DeployKitError:
    # 작업 디렉터리가 없을 때도 FileNotFoundError 가 나므로 filename 으로 구분한다.
    if isinstance(error, FileNotFoundError) and not (cwd is not None and error.filename == cwd):
        return _missing_tool(cmd)
    return CollaboratorFailure(f"명령을 실행할 수 없습니다: {cmd[0]} ({error})", cmd=cmd)


def _run_streaming(
    cmd: Sequence[str],
    *,
    cwd: Optional[str],
    env: Optional[Mapping[str, str]],
    timeout: Optional[float],
    indicator: Optional[_IdleProgressIndicator],
) -> CommandResult:
    # docker/helm 은 진행 로그를 stderr 로도 내보내므로 STDOUT 으로 합친다.
    try:
        proc = subprocess.Popen(  # noqa: S603
            list(cmd),
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
    except OSError as e:
        raise _start_error(cmd, cwd, e) from e

    out_lines: list[str] = []
    timer: Optional[threading.Timer] = None
    timed_out = threading.Event()

    if timeout is not None:
        def _kill() -> None:
            timed_out.set()
            proc.kill()

        timer = threading.Timer(float(timeout), _kill)
        timer.daemon = True
        timer.start()

    try:
        assert proc.stdout is not None
        for line in proc.stdout:
            if indicator is not None:
                indicator.touch()
            out_lines.append(line)
            sys.stdout.write(line)
            sys.stdout.flush()
        returncode = proc.wait()
    finally:
        if timer is not None:
            timer.cancel()
        if proc.stdout is not None:
            proc.stdout.close()

    if timed_out.is_set():
        raise _timeout(cmd, timeout)
    return CommandResult(returncode=returncode, stdout="".join(out_lines), stderr="")


def _run_captured(
    cmd: Sequence[str],
    *,
    cwd: Optional[str],
    env: Optional[Mapping[str, str]],
    timeout: Optional[float],
    input_text: Optional[str],
) -> CommandResult:
    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            input=input_text,
        )
    except OSError as e:
        raise _start_error(cmd, cwd, e) from e
    except subprocess.TimeoutExpired as e:
        raise _timeout(cmd, timeout) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
    return CommandResult(
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = 900.0,
    input_text: Optional[str] = None,
    check: bool = True,
    stream_output: bool = False,
    spinner_message: Optional[str] = None,
    show_progress: Optional[bool] = None,
    progress_idle_seconds: float = 2.0,
    progress_interval: float = 0.12,
) -> CommandResult:
    """
    외부 도구(docker/aws/helm) 실행 공통 유틸.

    - stream_output=False: stdout/stderr 캡처. input_text 는 stdin 으로 전달된다.
    - stream_output=True : 출력을 실시간으로 터미널에 흘린다(빌드/배포 진행 확인용).
    - check=True 이면 0 이 아닌 종료 코드에서 CollaboratorFailure 를 던진다.

    명령이 없으면 MissingPrerequisite, 시간 초과면 CommandTimeout.
    """
    logger.info("명령 실행: %s", _command_text(cmd))

    if show_progress is None:
        env_show = _env_show_progress()
        show_progress = True if env_show is None else env_show

    indicator: Optional[_IdleProgressIndicator] = None
    if show_progress and _is_tty(sys.stderr):
        indicator = _IdleProgressIndicator(
            spinner_message or shorten(_command_text(cmd), width=72, placeholder="…"),
            stream=sys.stderr,
            interval=progress_interval,
            idle_seconds=progress_idle_seconds,
        )
        indicator.start()

    try:
        if stream_output and input_text is None:
            result = _run_streaming(cmd, cwd=cwd, env=env, timeout=timeout, indicator=indicator)
        else:
            result = _run_captured(cmd, cwd=cwd, env=env, timeout=timeout, input_text=input_text)
    finally:
        if indicator is not None:
            indicator.stop()

    if check and not result.ok:
        raise _failure(cmd, result.returncode, result.stderr or result.stdout)
    return result
