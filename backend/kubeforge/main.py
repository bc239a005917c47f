"""KubeForge FastAPI application."""

import logging
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from kubeforge.api import scans
from kubeforge.config import settings as app_settings
from kubeforge.services.orchestrator import get_orchestrator

# Configure logging
logging.basicConfig(
    level=getattr(logging, app_settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


# Filter to exclude health check endpoints from access logs
class EndpointFilter(logging.Filter):
    """Filter to exclude specific endpoints from uvicorn access logs."""

    def __init__(self, excluded_paths: list[str]) -> None:
        super().__init__()
        self.excluded_paths = excluded_paths

    def filter(self, record: logging.LogRecord) -> bool:
        """Return False if the log record is for an excluded endpoint."""
        message = record.getMessage()
        return not any(path in message for path in self.excluded_paths)


logging.getLogger("uvicorn.access").addFilter(EndpointFilter(["/health"]))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting KubeForge...")

    orchestrator = get_orchestrator()
    app.state.orchestrator = orchestrator
    await orchestrator.start()
    logger.info(
        f"Result listener started on port {app_settings.result_listen_port} "
        f"(max parallelism {app_settings.max_parallelism})"
    )

    yield

    logger.info("Shutting down KubeForge...")
    await orchestrator.stop()
    logger.info("Orchestrator stopped")


try:
    _APP_VERSION = pkg_version("kubeforge")
except Exception:
    _APP_VERSION = "0.0.0"

app = FastAPI(
    title="KubeForge",
    description="Kubernetes image vulnerability scan orchestrator",
    version=_APP_VERSION,
    lifespan=lifespan,
)

# Rate limiter setup
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "KubeForge"}


app.include_router(scans.router, prefix="/api/v1/scans", tags=["Scans"])
