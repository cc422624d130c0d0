"""
registry
--------

배포 대상 서비스 목록(ServiceDefinition)을 보관한다.
실행 동안 변하지 않으며, 등록 순서가 곧 실행/출력 순서다.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Tuple

from .config import DeployConfig
from .errors import UnknownService
from .models import ALL_SELECTOR, ServiceDefinition


class ServiceRegistry:
    def __init__(self, services: Iterable[ServiceDefinition]) -> None:
        ordered = tuple(services)
        by_name: Dict[str, ServiceDefinition] = {}
        for svc in ordered:
            if svc.name == ALL_SELECTOR:
                raise ValueError(f"'{ALL_SELECTOR}' 는 예약어라 서비스 이름으로 쓸 수 없습니다.")
            if svc.name in by_name:
                raise ValueError(f"서비스 이름이 중복되었습니다: {svc.name}")
            by_name[svc.name] = svc
        self._services = ordered
        self._by_name = by_name

    @classmethod
    def from_config(cls, cfg: DeployConfig, base_dir: str = ".") -> "ServiceRegistry":
        """
        <base_dir>/<source_root>/<service> 를 빌드 컨텍스트로,
        그 아래 chart/ 를 Helm 차트로 사용한다.
        """
        root = Path(base_dir) / cfg.source_root
        return cls(
            ServiceDefinition(
                name=name,
                build_context=root / name,
                chart_path=root / name / "chart",
                test_command=cfg.test_commands.get(name),
            )
            for name in cfg.services
        )

    def list(self) -> Tuple[ServiceDefinition, ...]:
        return self._services

    def names(self) -> Tuple[str, ...]:
        return tuple(s.name for s in self._services)

    def find(self, name: str) -> ServiceDefinition:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownService(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._services)
