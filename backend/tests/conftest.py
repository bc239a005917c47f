"""Pytest configuration and shared fixtures."""

import base64
import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from kubernetes import client

PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str in sys.path:
    sys.path.remove(project_root_str)
sys.path.insert(0, project_root_str)

# ruff: noqa: E402 - Imports must come after path setup
from kubeforge.config import Settings
from kubeforge.services.k8s_client import KubernetesService
from kubeforge.services.orchestrator import Orchestrator

NGINX_HASH = "a" * 64
REDIS_HASH = "b" * 64


@pytest.fixture(autouse=True)
def _disable_rate_limits():
    """Keep slowapi from throttling repeated test requests."""
    from kubeforge.api import scans
    from kubeforge.main import limiter

    scans.limiter.enabled = False
    limiter.enabled = False
    yield
    scans.limiter.enabled = True
    limiter.enabled = True


@pytest.fixture(autouse=True)
def _reset_orchestrator_singleton(monkeypatch):
    """Give every test a fresh global orchestrator."""
    from kubeforge.services import orchestrator as orchestrator_module

    monkeypatch.setattr(orchestrator_module, "_orchestrator", None)


@pytest.fixture
def make_pod():
    """Factory for V1Pod objects with matching container statuses."""

    def _make_pod(
        name: str,
        containers: dict[str, str],
        namespace: str = "default",
        labels: dict[str, str] | None = None,
        image_ids: dict[str, str] | None = None,
        pull_secrets: list[str] | None = None,
    ) -> client.V1Pod:
        if image_ids is None:
            image_ids = {
                container_name: f"docker-pullable://{image}@sha256:{NGINX_HASH}"
                for container_name, image in containers.items()
            }
        return client.V1Pod(
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=namespace,
                uid=f"uid-{name}",
                labels=labels,
            ),
            spec=client.V1PodSpec(
                containers=[
                    client.V1Container(name=container_name, image=image)
                    for container_name, image in containers.items()
                ],
                image_pull_secrets=[
                    client.V1LocalObjectReference(name=secret) for secret in pull_secrets or []
                ]
                or None,
            ),
            status=client.V1PodStatus(
                container_statuses=[
                    client.V1ContainerStatus(
                        name=container_name,
                        image=containers.get(container_name, ""),
                        image_id=image_id,
                        ready=True,
                        restart_count=0,
                    )
                    for container_name, image_id in image_ids.items()
                ]
            ),
        )

    return _make_pod


@pytest.fixture
def make_pull_secret():
    """Factory for dockerconfigjson secrets."""

    def _make_pull_secret(name: str, registries: list[str]) -> client.V1Secret:
        config = {"auths": {registry: {"auth": "dXNlcjpwYXNz"} for registry in registries}}
        encoded = base64.b64encode(json.dumps(config).encode()).decode()
        return client.V1Secret(
            metadata=client.V1ObjectMeta(name=name),
            type="kubernetes.io/dockerconfigjson",
            data={".dockerconfigjson": encoded},
        )

    return _make_pull_secret


@pytest.fixture
def mock_k8s():
    """Kubernetes service stub with no pods and no secrets."""
    k8s = MagicMock(spec=KubernetesService)
    k8s.list_pods.return_value = []
    k8s.get_pod_image_pull_secrets.return_value = []
    return k8s


class FakeLauncher:
    """Records launch requests instead of creating jobs."""

    def __init__(self, fail_images: set[str] | None = None):
        self.launched: list[str] = []
        self.records: dict = {}
        self.cleaned: list[str] = []
        self.fail_images = fail_images or set()

    async def launch(self, record):
        from kubeforge.services.scan_errors import (
            LaunchError,
            LaunchErrorType,
            LaunchFailure,
        )

        self.launched.append(record.image)
        self.records[record.image] = record
        if record.image in self.fail_images:
            raise LaunchError(
                record.image,
                LaunchFailure(
                    error_type=LaunchErrorType.PERMISSION,
                    original_error="forbidden",
                    user_message="Service account is not allowed to create jobs",
                ),
            )
        record.job_namespace = "kubeforge"
        record.job_name = f"scanner-{len(self.launched)}"
        return record.job_namespace, record.job_name

    async def cleanup(self, record):
        self.cleaned.append(record.image)


@pytest.fixture
def fake_launcher():
    """Launcher stub that records launched images."""
    return FakeLauncher()


@pytest.fixture
def test_settings():
    """Settings with short timeouts for tests."""
    return Settings(
        max_parallelism=2,
        scan_timeout=5,
        target_namespace="",
        ignored_namespaces=["kube-system"],
    )


@pytest.fixture
async def orchestrator(test_settings, mock_k8s, fake_launcher):
    """Orchestrator wired to stubbed cluster and launcher."""
    orchestrator = Orchestrator(settings=test_settings, k8s=mock_k8s, launcher=fake_launcher)
    yield orchestrator
    await orchestrator.stop()
