"""Scan session controller."""

import asyncio
import logging
import socket
from collections.abc import Coroutine
from typing import Any, Optional

import uvicorn

from kubeforge.config import Settings
from kubeforge.config import settings as app_settings
from kubeforge.schemas.scan import ImageVulnerabilities
from kubeforge.services.dispatcher import Dispatcher
from kubeforge.services.image_registry import build_scan_records
from kubeforge.services.job_launcher import JobLauncher
from kubeforge.services.k8s_client import KubernetesService
from kubeforge.services.result_collector import ResultOutcome, store_result
from kubeforge.services.scan_errors import (
    DuplicateResultError,
    EndpointError,
    InitializationError,
    StaleResultError,
)
from kubeforge.services.session_state import (
    ScanProgress,
    ScanResults,
    ScanStatus,
    SessionState,
)
from kubeforge.services.target_resolver import ScanScope, TargetResolver
from kubeforge.utils.timezone import get_now

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Owns the scan session and serializes every access to it.

    One session is held at a time. ``scan()`` resolves targets and hands the
    records to a background dispatcher, inbound results are applied through
    ``handle_result()``, and readers get consistent snapshots. All of it goes
    through a single lock.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        k8s: KubernetesService | None = None,
        launcher: JobLauncher | None = None,
    ):
        self.settings = settings or app_settings
        self._k8s = k8s
        self._launcher = launcher
        self._lock = asyncio.Lock()
        self._session = SessionState()
        self._background_tasks: set[asyncio.Task] = set()
        self._server: uvicorn.Server | None = None
        self._server_task: asyncio.Task | None = None

    @property
    def k8s(self) -> KubernetesService:
        """Kubernetes client, connected on first use."""
        if self._k8s is None:
            self._k8s = KubernetesService()
        return self._k8s

    @property
    def launcher(self) -> JobLauncher:
        """Scanner job launcher, created on first use."""
        if self._launcher is None:
            self._launcher = JobLauncher(self.k8s, self.settings)
        return self._launcher

    async def start(self) -> None:
        """
        Start the result listener.

        Raises:
            EndpointError: If the listen address cannot be bound
        """
        if self._server_task is not None:
            logger.warning("Orchestrator server already running")
            return

        host = self.settings.result_listen_host
        port = self.settings.result_listen_port
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            raise EndpointError(f"failed to bind result listener on {host}:{port}: {e}") from e

        # Deferred: kubeforge.api.results imports this module.
        from kubeforge.api.results import create_result_app

        config = uvicorn.Config(
            create_result_app(self),
            log_level=self.settings.log_level.lower(),
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        logger.info(f"Starting Orchestrator server on {host}:{port}")
        self._server_task = asyncio.create_task(self._server.serve(sockets=[sock]))

    async def stop(self) -> None:
        """Shut down the result listener and any in-process scan batch."""
        logger.info("Stopping Orchestrator server")

        for task in list(self._background_tasks):
            task.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        if self._server is not None and self._server_task is not None:
            self._server.should_exit = True
            try:
                await self._server_task
            except Exception as e:
                logger.error(f"Failed to shutdown server: {e}")
        self._server = None
        self._server_task = None

        if self._k8s is not None:
            self._k8s.close()

    async def scan(self, scope: Optional[ScanScope] = None) -> None:
        """
        Initialize a new scan session and start dispatching it.

        Returns once targets are resolved; scanning continues in the background.

        Raises:
            InitializationError: If the scope could not be resolved
        """
        if scope is None:
            scope = ScanScope(
                target_namespace=self.settings.target_namespace,
                ignored_namespaces=list(self.settings.ignored_namespaces),
            )

        async with self._lock:
            logger.info("Start scanning...")
            self._session.transition(ScanStatus.INITIALIZING)

            try:
                resolver = TargetResolver(self.k8s)
                targets = await asyncio.to_thread(resolver.resolve, scope)

                records = build_scan_records(targets)
                session = SessionState(
                    records=records,
                    progress=ScanProgress(images_to_scan=len(records)),
                    status=ScanStatus.INITIALIZING,
                    started_at=get_now(),
                )
                dispatcher = Dispatcher(
                    session,
                    self._lock,
                    self.launcher,
                    max_parallelism=self.settings.max_parallelism,
                    scan_timeout=self.settings.scan_timeout,
                )
            except InitializationError as e:
                self._fail_initialization(e)
                raise
            except asyncio.CancelledError:
                self._fail_initialization("scan was cancelled")
                raise
            except Exception as e:
                self._fail_initialization(e)
                raise InitializationError(f"failed to initiate scan: {e}") from e

            session.transition(ScanStatus.SCANNING)
            self._session = session
            self._spawn(dispatcher.run())

    def _fail_initialization(self, error: Exception | str) -> None:
        logger.error(f"Failed to initiate scan: {error}")
        self._session.transition(ScanStatus.INITIALIZATION_FAILED)

    async def handle_result(self, result: ImageVulnerabilities) -> ResultOutcome:
        """
        Apply an inbound result to the current session.

        Stale and duplicate results are dropped with a warning.

        Raises:
            UnknownImageError: If the image has no record in this session
        """
        async with self._lock:
            try:
                record = store_result(self._session.records, result)
            except StaleResultError as e:
                logger.warning(str(e))
                return ResultOutcome.STALE
            except DuplicateResultError as e:
                logger.warning(str(e))
                return ResultOutcome.DUPLICATE

        logger.debug(f"Result was added successfully. image={result.image}")
        if self._launcher is not None:
            self._spawn(self._launcher.cleanup(record))
        return ResultOutcome.ACCEPTED

    async def progress(self) -> ScanProgress:
        """Snapshot of the progress counters."""
        async with self._lock:
            return self._session.progress.snapshot()

    async def status(self) -> ScanStatus:
        """Current session status."""
        async with self._lock:
            return self._session.status

    async def status_info(self) -> dict:
        """Current status together with the session start time."""
        async with self._lock:
            return {"status": self._session.status, "started_at": self._session.started_at}

    async def results(self) -> ScanResults:
        """Result rows of every completed record plus the progress snapshot."""
        async with self._lock:
            return self._session.collect_results()

    async def clear(self) -> None:
        """
        Drop the current session and return to idle.

        A running dispatcher is not cancelled; it keeps its own detached
        session, so its late results are rejected as stale or unknown.
        """
        async with self._lock:
            self._session = SessionState()
        logger.info("Scan session cleared")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        """Run a coroutine in the background and keep a reference to it."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task failed: {exc!r}")


# Global orchestrator instance
_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Get or create the global orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = Orchestrator()
    return _orchestrator
