import pytest
from click.testing import CliRunner

from ecr_deploy_kit import cli
from ecr_deploy_kit.models import ActionKind, ActionOutcome, ActionStatus, RunResult


@pytest.fixture()
def runner(monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    for key in ("SERVICES", "FAIL_FAST", "MAX_WORKERS", "IMAGE_TAG"):
        monkeypatch.delenv(key, raising=False)
    return CliRunner()


@pytest.mark.parametrize("args", [["help"], ["--help"], ["-h"]])
def test_help_exits_zero(runner: CliRunner, args) -> None:
    result = runner.invoke(cli.main, args)

    assert result.exit_code == 0
    assert "Usage" in result.output


def test_no_arguments_prints_usage_and_fails(runner: CliRunner) -> None:
    result = runner.invoke(cli.main, [])

    assert result.exit_code == 1
    assert "Usage" in result.output


def test_unknown_command_prints_usage_and_fails(runner: CliRunner) -> None:
    result = runner.invoke(cli.main, ["publish"])

    assert result.exit_code == 1
    assert "[ERROR]" in result.output
    assert "Usage" in result.output


@pytest.mark.parametrize("command", ["build", "push", "test", "deploy", "release"])
def test_missing_service_argument_fails(runner: CliRunner, tmp_path, command: str) -> None:
    result = runner.invoke(cli.main, ["-C", str(tmp_path), command])

    assert result.exit_code == 1
    assert "[ERROR]" in result.output
    assert "'all'" in result.output


def test_unknown_service_fails(runner: CliRunner, tmp_path) -> None:
    result = runner.invoke(cli.main, ["-C", str(tmp_path), "deploy", "payments"])

    assert result.exit_code == 1
    assert "payments" in result.output


def _fake_run(result: RunResult, seen: dict):
    def _run(command, selector, cfg, **kwargs):  # noqa: ANN001, ANN003
        seen.update(command=command, selector=selector, cfg=cfg, **kwargs)
        return result

    return _run


def test_successful_run_prints_tagged_outcomes(runner: CliRunner, tmp_path, monkeypatch) -> None:
    seen: dict = {}
    ok = RunResult(
        command="build",
        outcomes=[ActionOutcome("ui", ActionKind.BUILD, ActionStatus.SUCCESS, "built retail-store-ui:latest")],
    )
    monkeypatch.setattr(cli, "run", _fake_run(ok, seen))

    result = runner.invoke(cli.main, ["-C", str(tmp_path), "build", "ui", "--tag", "v3", "-j", "2", "--fail-fast"])

    assert result.exit_code == 0
    assert "[SUCCESS] build ui: built retail-store-ui:latest" in result.output
    assert seen["selector"] == "ui"
    assert seen["options"].tag == "v3"
    assert seen["cfg"].max_workers == 2
    assert seen["cfg"].fail_fast is True


def test_failed_run_exits_one(runner: CliRunner, tmp_path, monkeypatch) -> None:
    failed = RunResult(
        command="deploy",
        outcomes=[
            ActionOutcome("ui", ActionKind.DEPLOY, ActionStatus.FAILURE, "Helm 차트가 없습니다", error="MissingChart"),
        ],
    )
    monkeypatch.setattr(cli, "run", _fake_run(failed, {}))

    result = runner.invoke(cli.main, ["-C", str(tmp_path), "deploy", "ui"])

    assert result.exit_code == 1
    assert "[FAILED] deploy ui [MissingChart]" in result.output


def test_plan_command(runner: CliRunner, tmp_path) -> None:
    result = runner.invoke(cli.main, ["-C", str(tmp_path), "plan", "build", "all"])

    assert result.exit_code == 0
    assert "# Deploy plan" in result.output
    assert "- build ui" in result.output


def test_plan_without_selector_fails(runner: CliRunner, tmp_path) -> None:
    result = runner.invoke(cli.main, ["-C", str(tmp_path), "plan", "push"])

    assert result.exit_code == 1
    assert "[ERROR]" in result.output


def test_test_command_has_no_tag_option(runner: CliRunner, tmp_path, monkeypatch) -> None:
    seen: dict = {}
    monkeypatch.setattr(cli, "run", _fake_run(RunResult(command="test", outcomes=[]), seen))

    help_result = runner.invoke(cli.main, ["test", "--help"])
    result = runner.invoke(cli.main, ["-C", str(tmp_path), "test", "ui", "--tag", "v3"])

    assert help_result.exit_code == 0
    assert "--tag" not in help_result.output
    assert "--fail-fast" in help_result.output
    assert result.exit_code == 2
    assert "--tag" in result.output
    assert seen == {}
