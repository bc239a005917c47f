"""Scan session control API endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from kubeforge.schemas import (
    ScanProgressSchema,
    ScanRequest,
    ScanResultsSchema,
    ScanStatusSchema,
)
from kubeforge.services.scan_errors import InitializationError
from kubeforge.services.target_resolver import ScanScope

logger = logging.getLogger(__name__)

router = APIRouter()

# Create limiter instance
limiter = Limiter(key_func=get_remote_address)


@router.post("/scan", response_model=ScanStatusSchema)
@limiter.limit("10/minute")
async def start_scan(request: Request, scan_request: ScanRequest | None = None):
    """Start a scan session. A session that was not cleared is replaced."""
    orchestrator = request.app.state.orchestrator
    settings = orchestrator.settings
    scan_request = scan_request or ScanRequest()

    scope = ScanScope(
        target_namespace=(
            scan_request.namespace
            if scan_request.namespace is not None
            else settings.target_namespace
        ),
        ignored_namespaces=(
            scan_request.ignored_namespaces
            if scan_request.ignored_namespaces is not None
            else list(settings.ignored_namespaces)
        ),
    )

    try:
        await orchestrator.scan(scope)
    except InitializationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    info = await orchestrator.status_info()
    return ScanStatusSchema(status=info["status"].value, started_at=info["started_at"])


@router.get("/progress", response_model=ScanProgressSchema)
async def get_progress(request: Request):
    """Get progress counters of the current session."""
    progress = await request.app.state.orchestrator.progress()
    return ScanProgressSchema.model_validate(progress)


@router.get("/status", response_model=ScanStatusSchema)
async def get_status(request: Request):
    """Get the current session status."""
    info = await request.app.state.orchestrator.status_info()
    return ScanStatusSchema(status=info["status"].value, started_at=info["started_at"])


@router.get("/results", response_model=ScanResultsSchema)
async def get_results(request: Request):
    """Get per-pod results of every image scanned so far."""
    results = await request.app.state.orchestrator.results()
    return ScanResultsSchema.model_validate(results)


@router.post("/clear", response_model=ScanStatusSchema)
async def clear_session(request: Request):
    """Discard the current session and return to idle."""
    orchestrator = request.app.state.orchestrator
    await orchestrator.clear()
    info = await orchestrator.status_info()
    return ScanStatusSchema(status=info["status"].value, started_at=info["started_at"])
