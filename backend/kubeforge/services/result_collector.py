"""Validation and storage of inbound scanner results."""

import logging
from enum import Enum

from pydantic import ValidationError

from kubeforge.schemas.scan import ImageVulnerabilities
from kubeforge.services.scan_errors import (
    DuplicateResultError,
    ResultDecodeError,
    StaleResultError,
    UnknownImageError,
)
from kubeforge.services.session_state import ScanRecord

logger = logging.getLogger(__name__)


class ResultOutcome(Enum):
    """What happened to an inbound result."""

    ACCEPTED = "accepted"
    STALE = "stale"
    DUPLICATE = "duplicate"


def decode_result(body: bytes) -> ImageVulnerabilities:
    """
    Decode a result payload.

    Raises:
        ResultDecodeError: If the body is not a valid result object
    """
    try:
        return ImageVulnerabilities.model_validate_json(body)
    except ValidationError as e:
        raise ResultDecodeError(f"failed to decode result: {e}") from e


def store_result(records: dict[str, ScanRecord], result: ImageVulnerabilities) -> ScanRecord:
    """
    Apply a result to the matching record of the current session.

    Must be called with the session lock held.

    Raises:
        UnknownImageError: No record exists for the image
        StaleResultError: The scan identifier belongs to another session
        DuplicateResultError: The record already holds a result
    """
    record = records.get(result.image)
    if record is None:
        raise UnknownImageError(f"no scan data for image '{result.image}'")

    if result.scan_uuid != record.scan_uuid:
        raise StaleResultError(
            f"Scan UUID mismatch. image={result.image}, received={result.scan_uuid}, "
            f"expected={record.scan_uuid}"
        )

    if not record.complete(result.success, result.vulnerabilities):
        raise DuplicateResultError(
            f"Duplicate result for image scan. image={result.image}, scan uuid={result.scan_uuid}"
        )

    if result.success and not result.vulnerabilities:
        logger.info(f"No vulnerabilities found on image {result.image}.")
    if not result.success:
        logger.warning(
            f"Scan of image {result.image} has failed! See the scanner job logs for more info."
        )

    return record
