"""Pydantic schemas for API request/response validation."""

from kubeforge.schemas.scan import (
    ImageScanResultSchema,
    ImageVulnerabilities,
    ResultAccepted,
    ScanProgressSchema,
    ScanRequest,
    ScanResultsSchema,
    ScanStatusSchema,
)

__all__ = [
    "ImageScanResultSchema",
    "ImageVulnerabilities",
    "ResultAccepted",
    "ScanProgressSchema",
    "ScanRequest",
    "ScanResultsSchema",
    "ScanStatusSchema",
]
