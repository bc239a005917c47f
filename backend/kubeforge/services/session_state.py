"""Scan session state: per-image records, progress counters and status."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ScanStatus(Enum):
    """Lifecycle status of the current scan session."""

    IDLE = "Idle"
    INITIALIZING = "Initializing"
    INITIALIZATION_FAILED = "InitializationFailed"
    SCANNING = "Scanning"


# Allowed status transitions; clear() may always return to IDLE.
STATUS_TRANSITIONS: dict[ScanStatus, set[ScanStatus]] = {
    ScanStatus.IDLE: {ScanStatus.INITIALIZING},
    ScanStatus.INITIALIZING: {ScanStatus.SCANNING, ScanStatus.INITIALIZATION_FAILED},
    ScanStatus.INITIALIZATION_FAILED: {ScanStatus.INITIALIZING, ScanStatus.IDLE},
    ScanStatus.SCANNING: {ScanStatus.INITIALIZING, ScanStatus.IDLE},
}


def new_scan_uuid() -> str:
    """Generate an opaque, session-scoped scan identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class PodContext:
    """One container occurrence of an image."""

    container_name: str
    pod_name: str
    namespace: str
    pod_uid: str
    image_pull_secret: str | None = None
    image_hash: str | None = None


@dataclass
class ScanRecord:
    """Bookkeeping for one distinct image within a session."""

    image: str
    contexts: list[PodContext] = field(default_factory=list)
    scan_uuid: str = field(default_factory=new_scan_uuid)
    completed: bool = False
    success: bool = False
    vulnerabilities: list[dict[str, Any]] | None = None
    job_name: str | None = None
    job_namespace: str | None = None
    done_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False, compare=False)

    @property
    def credential_context(self) -> PodContext | None:
        """First owning context that carries a pull secret."""
        for context in self.contexts:
            if context.image_pull_secret:
                return context
        return None

    def complete(self, success: bool, vulnerabilities: list[dict[str, Any]] | None) -> bool:
        """
        Store the scan outcome. Only the first call has any effect.

        Returns:
            True if the record transitioned to completed
        """
        if self.completed:
            return False

        self.completed = True
        self.success = success
        self.vulnerabilities = vulnerabilities
        # Waking a waiter that already gave up is harmless.
        self.done_event.set()
        return True


@dataclass
class ScanProgress:
    """Progress counters of a scan session."""

    images_to_scan: int = 0
    images_started: int = 0
    images_completed: int = 0

    @property
    def finished(self) -> bool:
        """True once every image of a non-empty session has a recorded attempt."""
        return self.images_to_scan > 0 and self.images_completed == self.images_to_scan

    def snapshot(self) -> ScanProgress:
        """Return an independent copy of the counters."""
        return ScanProgress(
            images_to_scan=self.images_to_scan,
            images_started=self.images_started,
            images_completed=self.images_completed,
        )


@dataclass
class ImageScanResult:
    """One result row: an image outcome attributed to one pod container."""

    image: str
    pod_name: str
    namespace: str
    container_name: str
    pod_uid: str
    image_hash: str | None
    vulnerabilities: list[dict[str, Any]] | None
    success: bool


@dataclass
class ScanResults:
    """Aggregated results of the current session."""

    image_scan_results: list[ImageScanResult]
    progress: ScanProgress


class InvalidStatusTransition(Exception):
    """Raised when a session status change is not allowed."""


@dataclass
class SessionState:
    """
    Mutable state of one scan session.

    Owned by the orchestrator and only touched while holding its lock.
    A new object is swapped in for every scan and on clear, so work that
    still references an old session can never leak into the current one.
    """

    records: dict[str, ScanRecord] = field(default_factory=dict)
    progress: ScanProgress = field(default_factory=ScanProgress)
    status: ScanStatus = ScanStatus.IDLE
    started_at: datetime | None = None

    def transition(self, status: ScanStatus) -> None:
        """Move to a new status, enforcing the allowed transitions."""
        if status not in STATUS_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(f"{self.status.value} -> {status.value}")
        self.status = status

    def collect_results(self) -> ScanResults:
        """Expand every completed record into one row per owning container."""
        rows: list[ImageScanResult] = []

        for record in self.records.values():
            if not record.completed:
                continue
            for context in record.contexts:
                rows.append(
                    ImageScanResult(
                        image=record.image,
                        pod_name=context.pod_name,
                        namespace=context.namespace,
                        container_name=context.container_name,
                        pod_uid=context.pod_uid,
                        image_hash=context.image_hash,
                        vulnerabilities=record.vulnerabilities,
                        success=record.success,
                    )
                )

        return ScanResults(image_scan_results=rows, progress=self.progress.snapshot())
