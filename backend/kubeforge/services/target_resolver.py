"""Resolve the pods of a scan scope into per-container image contexts."""

import logging
from dataclasses import dataclass, field
from typing import Any

from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from kubeforge.services.k8s_client import KubernetesService
from kubeforge.services.scan_errors import InitializationError
from kubeforge.services.session_state import PodContext
from kubeforge.utils.image_ref import get_matching_secret_name, parse_image_hash

logger = logging.getLogger(__name__)

IGNORE_POD_SCAN_LABEL_KEY = "kubeiShouldScan"
IGNORE_POD_SCAN_LABEL_VALUE = "false"


@dataclass
class ScanScope:
    """Which pods a scan session covers."""

    target_namespace: str = ""  # Empty means all namespaces
    ignored_namespaces: list[str] = field(default_factory=list)


def should_ignore_pod(pod: Any, ignored_namespaces: list[str]) -> bool:
    """Check whether a pod is excluded from scanning."""
    name = pod.metadata.name
    namespace = pod.metadata.namespace

    if namespace in ignored_namespaces:
        logger.info(
            f"Skipping pod scan, namespace is in the ignored namespaces list. "
            f"pod={name}, namespace={namespace}"
        )
        return True

    labels = pod.metadata.labels or {}
    if labels.get(IGNORE_POD_SCAN_LABEL_KEY) == IGNORE_POD_SCAN_LABEL_VALUE:
        logger.info(
            f"Skipping pod scan, pod has an ignore label. pod={name}, namespace={namespace}"
        )
        return True

    return False


def get_image_hash(container_name_to_image_id: dict[str, str], container: Any) -> str | None:
    """Resolve a container's content hash from the observed container statuses."""
    image_id = container_name_to_image_id.get(container.name)
    if image_id is None:
        logger.warning(f"Image id is missing. container={container.name}, image={container.image}")
        return None

    image_hash = parse_image_hash(image_id)
    if not image_hash:
        logger.warning(
            f"Failed to parse image hash. container={container.name}, image={container.image}, "
            f"image id={image_id}"
        )
        return None

    return image_hash


class TargetResolver:
    """Produces pod contexts for every eligible container in a scope."""

    def __init__(self, k8s: KubernetesService):
        self.k8s = k8s

    def resolve(self, scope: ScanScope) -> list[tuple[str, PodContext]]:
        """
        List pods in scope and build (image, context) pairs.

        Raises:
            InitializationError: If the pods of the scope cannot be listed
        """
        try:
            pods = self.k8s.list_pods(scope.target_namespace)
        except (ApiException, HTTPError) as e:
            raise InitializationError(
                f"failed to list pods. namespace={scope.target_namespace or '*'}: {e}"
            ) from e

        targets: list[tuple[str, PodContext]] = []
        for pod in pods:
            if should_ignore_pod(pod, scope.ignored_namespaces):
                continue
            targets.extend(self._pod_targets(pod))

        return targets

    def _pod_targets(self, pod: Any) -> list[tuple[str, PodContext]]:
        secrets = self.k8s.get_pod_image_pull_secrets(pod)

        # The image name in the container statuses can differ from the one in
        # the spec, so only the image id is taken from the statuses.
        container_name_to_image_id = {
            status.name: status.image_id
            for status in (pod.status.container_statuses or [])
        }

        targets = []
        for container in pod.spec.containers:
            context = PodContext(
                container_name=container.name,
                pod_name=pod.metadata.name,
                namespace=pod.metadata.namespace,
                pod_uid=str(pod.metadata.uid),
                image_pull_secret=get_matching_secret_name(secrets, container.image),
                image_hash=get_image_hash(container_name_to_image_id, container),
            )
            targets.append((container.image, context))

        return targets
