"""
Helpers for container image references and registry pull credentials.

Kubernetes reports the running image twice: once in the pod spec (what was
requested) and once in the container status (what the runtime resolved).
The helpers here work on either form.
"""

import base64
import binascii
import json
import logging
import re
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DOCKER_HUB_REGISTRY = "docker.io"
DOCKER_HUB_ALIASES = {
    "docker.io",
    "index.docker.io",
    "registry-1.docker.io",
    "registry.hub.docker.com",
}

_IMAGE_HASH_PATTERN = re.compile(r"@sha256:([a-fA-F0-9]{64})$")


def parse_image_hash(image_id: str) -> str:
    """
    Extract the sha256 content hash from a container status image id.

    Args:
        image_id: Runtime image id, e.g. "docker-pullable://nginx@sha256:<hex>"

    Returns:
        The hex digest, or an empty string if the id has no sha256 digest
    """
    if not image_id:
        return ""

    match = _IMAGE_HASH_PATTERN.search(image_id)
    if not match:
        return ""
    return match.group(1)


def normalize_registry(host: str) -> str:
    """Normalize a registry host or auth URL to a bare host name."""
    host = host.strip()
    if "://" in host:
        host = urlparse(host).netloc
    host = host.split("/", 1)[0].lower()
    if host in DOCKER_HUB_ALIASES:
        return DOCKER_HUB_REGISTRY
    return host


def get_image_registry(image: str) -> str:
    """
    Return the registry host an image reference will be pulled from.

    Examples:
        >>> get_image_registry("nginx:1.25")
        'docker.io'
        >>> get_image_registry("registry.example.com:5000/team/app@sha256:abc")
        'registry.example.com:5000'
    """
    first, sep, _ = image.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        return normalize_registry(first)
    return DOCKER_HUB_REGISTRY


def _decode_docker_config(secret: Any) -> dict[str, Any]:
    """Decode the auth map of a dockerconfigjson or legacy dockercfg secret."""
    data = secret.data or {}

    raw = data.get(".dockerconfigjson")
    legacy = False
    if raw is None:
        raw = data.get(".dockercfg")
        legacy = True
    if raw is None:
        return {}

    config = json.loads(base64.b64decode(raw))
    if legacy:
        return config
    return config.get("auths", {})


def get_matching_secret_name(secrets: Iterable[Any], image: str) -> Optional[str]:
    """
    Find the pull secret whose registry matches the image's registry.

    Args:
        secrets: V1Secret objects attached to the pod as image pull secrets
        image: Image reference from the pod spec

    Returns:
        Name of the first matching secret, or None if no secret applies
    """
    registry = get_image_registry(image)

    for secret in secrets:
        name = secret.metadata.name
        try:
            auths = _decode_docker_config(secret)
        except (binascii.Error, ValueError, AttributeError) as e:
            logger.warning(f"Failed to decode image pull secret. secret={name}: {e}")
            continue

        for auth_host in auths:
            if normalize_registry(auth_host) == registry:
                return name

    return None
