from pathlib import Path

import pytest

from ecr_deploy_kit.aws_cli import AwsCli
from ecr_deploy_kit.docker_cli import DockerCli
from ecr_deploy_kit.errors import CollaboratorFailure
from ecr_deploy_kit.helm_cli import HelmCli

from fakes import FakeRunner


def test_docker_build_and_tag_commands() -> None:
    runner = FakeRunner()
    docker = DockerCli(run=runner, build_timeout=42)

    docker.build(Path("src/ui"), "retail-store-ui:latest")
    docker.tag("retail-store-ui:latest", "reg/retail-store-ui:latest")

    assert runner.commands == [
        ["docker", "build", "-t", "retail-store-ui:latest", "src/ui"],
        ["docker", "tag", "retail-store-ui:latest", "reg/retail-store-ui:latest"],
    ]
    assert runner.calls[0][1]["timeout"] == 42
    assert runner.calls[0][1]["stream_output"] is True


def test_docker_login_sends_password_on_stdin() -> None:
    runner = FakeRunner()

    DockerCli(run=runner).login("reg.example", "AWS", "pw")

    cmd, kwargs = runner.calls[0]
    assert cmd == ["docker", "login", "--username", "AWS", "--password-stdin", "reg.example"]
    assert kwargs["input_text"] == "pw"
    assert "pw" not in cmd


@pytest.mark.parametrize(
    "stderr",
    [
        "Error response from daemon: No such image: retail-store-ui:latest",
        "Error: retail-store-ui:latest: image not known",
    ],
)
def test_docker_remove_missing_image_returns_false(stderr: str) -> None:
    docker = DockerCli(run=FakeRunner(lambda cmd: (1, "", stderr)))

    assert docker.remove_image("retail-store-ui:latest") is False


def test_docker_remove_other_error_raises() -> None:
    stderr = "Error response from daemon: conflict: unable to remove repository reference (must force)"
    docker = DockerCli(run=FakeRunner(lambda cmd: (1, "", stderr)))

    with pytest.raises(CollaboratorFailure):
        docker.remove_image("retail-store-ui:latest")


def test_docker_remove_unrelated_not_found_error_raises() -> None:
    stderr = "Error response from daemon: network retail-store not found"
    docker = DockerCli(run=FakeRunner(lambda cmd: (1, "", stderr)))

    with pytest.raises(CollaboratorFailure):
        docker.remove_image("retail-store-ui:latest")


def test_aws_caller_account_id() -> None:
    aws = AwsCli(run=FakeRunner(lambda cmd: (0, "123456789012\n", "")))

    assert aws.caller_account_id() == "123456789012"


def test_aws_repository_exists_variants() -> None:
    not_found = "An error occurred (RepositoryNotFoundException) when calling the DescribeRepositories operation"
    denied = "An error occurred (AccessDeniedException)"

    assert AwsCli(run=FakeRunner()).repository_exists("retail-store-ui", "us-east-1") is True
    assert AwsCli(run=FakeRunner(lambda cmd: (254, "", not_found))).repository_exists("x", "us-east-1") is False
    with pytest.raises(CollaboratorFailure):
        AwsCli(run=FakeRunner(lambda cmd: (254, "", denied))).repository_exists("x", "us-east-1")


def test_aws_create_repository_enables_scanning_and_encryption() -> None:
    runner = FakeRunner()

    AwsCli(run=runner).create_repository("retail-store-ui", "eu-west-1")

    cmd = runner.commands[0]
    assert cmd[:3] == ["aws", "ecr", "create-repository"]
    assert "scanOnPush=true" in cmd
    assert "encryptionType=AES256" in cmd
    assert cmd[cmd.index("--region") + 1] == "eu-west-1"


def test_helm_upgrade_install_is_bounded() -> None:
    runner = FakeRunner()

    cmd = HelmCli(run=runner).upgrade_install(
        "retail-store-ui",
        Path("src/ui/chart"),
        namespace="retail-store-local",
        values={"image.repository": "reg/retail-store-ui", "image.tag": "latest"},
        timeout_seconds=300,
    )

    assert runner.commands[0] == cmd
    assert cmd[:5] == ["helm", "upgrade", "--install", "retail-store-ui", "src/ui/chart"]
    assert "--create-namespace" in cmd
    assert "image.repository=reg/retail-store-ui" in cmd
    assert "image.tag=latest" in cmd
    assert "--wait" in cmd
    assert cmd[cmd.index("--timeout") + 1] == "300s"
    assert runner.calls[0][1]["timeout"] == 360
