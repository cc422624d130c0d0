from pathlib import Path

import pytest

from ecr_deploy_kit.config import DeployConfig
from ecr_deploy_kit.errors import InvalidSelector, MissingSelector, UnknownCommand, UnknownService
from ecr_deploy_kit.models import ActionKind, ServiceDefinition, TargetSelector
from ecr_deploy_kit.registry import ServiceRegistry
from ecr_deploy_kit.resolver import resolve


def _svc(name: str) -> ServiceDefinition:
    return ServiceDefinition(name=name, build_context=Path("src") / name, chart_path=Path("src") / name / "chart")


def _registry() -> ServiceRegistry:
    return ServiceRegistry(_svc(n) for n in ("ui", "catalog", "cart", "checkout", "orders"))


def test_registry_keeps_configured_order_and_paths() -> None:
    cfg = DeployConfig(services=("catalog", "ui"), source_root="services",
                       test_commands={"ui": ("npm", "test")})

    registry = ServiceRegistry.from_config(cfg, base_dir="/work")

    assert registry.names() == ("catalog", "ui")
    ui = registry.find("ui")
    assert ui.build_context == Path("/work/services/ui")
    assert ui.chart_path == Path("/work/services/ui/chart")
    assert ui.test_command == ("npm", "test")
    assert registry.find("catalog").test_command is None


def test_registry_find_unknown_raises() -> None:
    with pytest.raises(UnknownService):
        _registry().find("payments")


@pytest.mark.parametrize("names", [("ui", "ui"), ("ui", "all")])
def test_registry_rejects_duplicate_and_reserved_names(names) -> None:
    with pytest.raises(ValueError):
        ServiceRegistry(_svc(n) for n in names)


def test_selector_parsing() -> None:
    assert TargetSelector.parse(None) is None
    assert TargetSelector.parse("  ") is None
    assert TargetSelector.parse("all").is_all
    assert TargetSelector.parse("cart") == TargetSelector(service="cart")


def test_resolve_single_service() -> None:
    registry = _registry()

    actions = resolve("build", TargetSelector.parse("catalog"), registry)

    assert len(actions) == 1
    assert actions[0].service == registry.find("catalog")
    assert actions[0].kind is ActionKind.BUILD


def test_resolve_all_follows_registry_order() -> None:
    registry = _registry()

    actions = resolve("build", TargetSelector.parse("all"), registry)

    assert [a.service.name for a in actions] == list(registry.names())
    assert {a.kind for a in actions} == {ActionKind.BUILD}


def test_release_orders_steps_within_each_service() -> None:
    registry = ServiceRegistry([_svc("ui"), _svc("cart")])

    actions = resolve("release", TargetSelector.parse("all"), registry)

    assert [(a.service.name, a.kind) for a in actions] == [
        ("ui", ActionKind.BUILD),
        ("ui", ActionKind.PUSH),
        ("ui", ActionKind.DEPLOY),
        ("cart", ActionKind.BUILD),
        ("cart", ActionKind.PUSH),
        ("cart", ActionKind.DEPLOY),
    ]


@pytest.mark.parametrize("command", ["build", "push", "test", "deploy", "release"])
def test_missing_selector(command: str) -> None:
    with pytest.raises(MissingSelector):
        resolve(command, None, _registry())


@pytest.mark.parametrize("command", ["setup", "clean"])
def test_setup_and_clean_default_to_all(command: str) -> None:
    actions = resolve(command, None, _registry())

    assert len(actions) == 5


def test_unknown_service_is_invalid_selector() -> None:
    with pytest.raises(InvalidSelector):
        resolve("deploy", TargetSelector.parse("payments"), _registry())


def test_unknown_command() -> None:
    with pytest.raises(UnknownCommand):
        resolve("publish", TargetSelector.parse("all"), _registry())
