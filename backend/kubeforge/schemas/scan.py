"""Scan schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ImageVulnerabilities(BaseModel):
    """Result payload posted by a scanner job."""

    model_config = ConfigDict(populate_by_name=True)

    image: str
    scan_uuid: str = Field(alias="scanUUID")
    success: bool
    vulnerabilities: list[dict[str, Any]] | None = None


class ResultAccepted(BaseModel):
    """Acknowledgement for an inbound result."""

    image: str
    outcome: str  # accepted, stale, duplicate


class ScanRequest(BaseModel):
    """Schema for requesting a scan. Omitted fields fall back to configuration."""

    namespace: str | None = None
    ignored_namespaces: list[str] | None = None


class ScanProgressSchema(BaseModel):
    """Progress counters of the current session."""

    model_config = ConfigDict(from_attributes=True)

    images_to_scan: int
    images_started: int
    images_completed: int
    finished: bool


class ScanStatusSchema(BaseModel):
    """Current session status."""

    status: str  # Idle, Initializing, InitializationFailed, Scanning
    started_at: datetime | None = None


class ImageScanResultSchema(BaseModel):
    """One result row."""

    model_config = ConfigDict(from_attributes=True)

    image: str
    pod_name: str
    namespace: str
    container_name: str
    pod_uid: str
    image_hash: str | None
    vulnerabilities: list[dict[str, Any]] | None
    success: bool


class ScanResultsSchema(BaseModel):
    """Aggregated results with the progress snapshot they were taken at."""

    model_config = ConfigDict(from_attributes=True)

    image_scan_results: list[ImageScanResultSchema]
    progress: ScanProgressSchema
