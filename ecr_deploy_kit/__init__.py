"""
ecr_deploy_kit
--------------

여러 마이크로서비스의 도커 이미지 빌드, ECR 푸시, Helm 배포를
하나의 CLI 로 묶는 패키지.
docker / aws / helm CLI 를 감싸기만 하고, 설정은 환경변수(.env)로 받는다.
"""

__all__ = [
    "config",
    "orchestrator",
]
