"""Scan session errors and scanner job launch error classification."""

from dataclasses import dataclass
from enum import Enum

from kubernetes.client.rest import ApiException


class ScanSessionError(Exception):
    """Base class for scan session errors."""


class InitializationError(ScanSessionError):
    """Target pods could not be resolved; the session did not start."""


class EndpointError(ScanSessionError):
    """The result listener could not be started."""


class LaunchError(ScanSessionError):
    """The scanner job for one image could not be created."""

    def __init__(self, image: str, classified: "LaunchFailure"):
        super().__init__(f"failed to launch scan for image {image}: {classified.user_message}")
        self.image = image
        self.classified = classified


class ResultError(ScanSessionError):
    """Base class for inbound result anomalies."""


class ResultDecodeError(ResultError):
    """Inbound result payload could not be decoded."""


class UnknownImageError(ResultError):
    """Result refers to an image that has no record in the current session."""


class StaleResultError(ResultError):
    """Result carries a scan identifier from a superseded session."""


class DuplicateResultError(ResultError):
    """Result arrived for a record that is already completed."""


class LaunchErrorType(Enum):
    """Types of job launch failures."""

    PERMISSION = "permission"  # RBAC forbids job creation
    NAMESPACE_NOT_FOUND = "namespace_not_found"
    CONFLICT = "conflict"  # Job with that name already exists
    INVALID = "invalid"  # Manifest rejected by the API server
    QUOTA = "quota"  # Resource quota exceeded
    UNAVAILABLE = "unavailable"  # API server unreachable or overloaded
    UNKNOWN = "unknown"


@dataclass
class LaunchFailure:
    """Classified job launch failure."""

    error_type: LaunchErrorType
    original_error: str
    user_message: str


def classify_launch_error(error: Exception) -> LaunchFailure:
    """
    Classify a job creation failure.

    Args:
        error: Exception raised while creating the scanner job

    Returns:
        LaunchFailure with a user-facing explanation
    """
    original = str(error)

    if not isinstance(error, ApiException):
        return LaunchFailure(
            error_type=LaunchErrorType.UNAVAILABLE,
            original_error=original,
            user_message="Kubernetes API server could not be reached",
        )

    status = error.status or 0
    body = (error.body or "").lower() if isinstance(error.body, str) else ""

    if status == 403 and "quota" in body:
        return LaunchFailure(
            error_type=LaunchErrorType.QUOTA,
            original_error=original,
            user_message="Resource quota exceeded in the scanner namespace",
        )
    if status in (401, 403):
        return LaunchFailure(
            error_type=LaunchErrorType.PERMISSION,
            original_error=original,
            user_message="Service account is not allowed to create jobs",
        )
    if status == 404:
        return LaunchFailure(
            error_type=LaunchErrorType.NAMESPACE_NOT_FOUND,
            original_error=original,
            user_message="Namespace for the scanner job does not exist",
        )
    if status == 409:
        return LaunchFailure(
            error_type=LaunchErrorType.CONFLICT,
            original_error=original,
            user_message="A scanner job with the same name already exists",
        )
    if status == 422:
        return LaunchFailure(
            error_type=LaunchErrorType.INVALID,
            original_error=original,
            user_message="Scanner job manifest was rejected by the API server",
        )
    if status == 429 or status >= 500:
        return LaunchFailure(
            error_type=LaunchErrorType.UNAVAILABLE,
            original_error=original,
            user_message=f"Kubernetes API server is unavailable (HTTP {status})",
        )

    return LaunchFailure(
        error_type=LaunchErrorType.UNKNOWN,
        original_error=original,
        user_message=f"Job creation failed with HTTP {status}",
    )
