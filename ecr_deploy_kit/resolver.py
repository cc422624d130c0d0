from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from .errors import InvalidSelector, MissingSelector, UnknownCommand, UnknownService
from .models import ActionKind, PlannedAction, TargetSelector
from .registry import ServiceRegistry


# 명령 -> 서비스 하나에 대해 순서대로 실행할 액션들
COMMAND_ACTIONS: Dict[str, Tuple[ActionKind, ...]] = {
    "build": (ActionKind.BUILD,),
    "push": (ActionKind.PUSH,),
    "test": (ActionKind.TEST,),
    "deploy": (ActionKind.DEPLOY,),
    "release": (ActionKind.BUILD, ActionKind.PUSH, ActionKind.DEPLOY),
    "setup": (ActionKind.SETUP_REGISTRY,),
    "clean": (ActionKind.CLEAN,),
}

# 선택자가 없으면 전체(all)로 간주하는 명령
SELECTOR_OPTIONAL = frozenset({"setup", "clean"})

ACTION_COMMANDS: Tuple[str, ...] = tuple(COMMAND_ACTIONS)


def resolve(
    command: str,
    selector: Optional[TargetSelector],
    registry: ServiceRegistry,
) -> List[PlannedAction]:
    """
    명령과 선택자를 (서비스, 액션) 목록으로 펼친다.

    같은 서비스의 액션은 연속해서 나오므로(build -> push -> deploy),
    서비스 내부의 선후 관계는 이 순서로 보장된다.
    """
    kinds = COMMAND_ACTIONS.get(command)
    if kinds is None:
        raise UnknownCommand(f"알 수 없는 명령입니다: {command}")

    if selector is None:
        if command not in SELECTOR_OPTIONAL:
            raise MissingSelector(command)
        selector = TargetSelector()

    if selector.is_all:
        services = registry.list()
    else:
        try:
            services = (registry.find(str(selector.service)),)
        except UnknownService as e:
            raise InvalidSelector(e.name) from e

    return [PlannedAction(service=svc, kind=kind) for svc in services for kind in kinds]
