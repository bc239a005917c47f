"""Bounded batch runner that launches one scanner job per distinct image."""

import asyncio
import logging

from kubeforge.services.job_launcher import JobLauncher
from kubeforge.services.scan_errors import LaunchError
from kubeforge.services.session_state import ScanRecord, SessionState

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Drives scanner jobs for every record of a session.

    At most ``max_parallelism`` scans are in flight. A slot is held from
    job launch until the record completes or its wait times out. Waiting
    happens outside the session lock so inbound results and progress
    queries are never blocked by a running scan.
    """

    def __init__(
        self,
        session: SessionState,
        lock: asyncio.Lock,
        launcher: JobLauncher,
        max_parallelism: int = 10,
        scan_timeout: float = 600,
    ):
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")

        self.session = session
        self.lock = lock
        self.launcher = launcher
        self.max_parallelism = max_parallelism
        self.scan_timeout = scan_timeout

    async def run(self) -> None:
        """Admit every record once and wait for all of them."""
        admission = asyncio.Semaphore(self.max_parallelism)
        tasks: list[asyncio.Task] = []
        records = list(self.session.records.values())

        logger.info(
            f"Starting scan batch: {len(records)} images, max parallelism {self.max_parallelism}"
        )

        try:
            for record in records:
                await admission.acquire()
                tasks.append(asyncio.create_task(self._scan_image(record, admission)))

            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Scan batch cancelled")
            raise

        logger.info(f"Scan batch finished: {len(records)} images")

    async def _scan_image(self, record: ScanRecord, admission: asyncio.Semaphore) -> None:
        """Launch one image scan and wait for its result or the timeout."""
        try:
            async with self.lock:
                self.session.progress.images_started += 1

            try:
                await self.launcher.launch(record)
            except LaunchError as e:
                logger.error(f"Failed to launch scan. image={record.image}: {e}")
                await self._mark_failed(record)
            except Exception:
                logger.exception(f"Unexpected error launching scan. image={record.image}")
                await self._mark_failed(record)
            else:
                await self._wait_for_result(record)

            async with self.lock:
                self.session.progress.images_completed += 1
        finally:
            admission.release()

    async def _mark_failed(self, record: ScanRecord) -> None:
        async with self.lock:
            record.complete(success=False, vulnerabilities=None)

    async def _wait_for_result(self, record: ScanRecord) -> None:
        try:
            await asyncio.wait_for(record.done_event.wait(), timeout=self.scan_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Timed out waiting for scan result. image={record.image}, "
                f"scan uuid={record.scan_uuid}, timeout={self.scan_timeout}s"
            )
