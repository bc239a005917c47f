"""Result callback endpoint for scanner jobs."""

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from kubeforge.schemas import ResultAccepted
from kubeforge.services.result_collector import decode_result
from kubeforge.services.scan_errors import ResultDecodeError, UnknownImageError

if TYPE_CHECKING:
    from kubeforge.services.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/result/{path:path}", status_code=202, response_model=ResultAccepted)
async def receive_result(request: Request, path: str = ""):
    """Accept one scanner result. Malformed or unknown results get 400."""
    orchestrator: "Orchestrator" = request.app.state.orchestrator
    body = await request.body()

    try:
        result = decode_result(body)
    except ResultDecodeError as e:
        logger.error(f"Invalid result. err={e}")
        return JSONResponse(status_code=400, content={"detail": "invalid result payload"})

    logger.debug(
        f"Result was received. image={result.image}, success={result.success}, "
        f"scanUUID={result.scan_uuid}"
    )

    try:
        outcome = await orchestrator.handle_result(result)
    except UnknownImageError as e:
        logger.error(f"Failed to handle result. err={e}, image={result.image}")
        return JSONResponse(status_code=400, content={"detail": str(e)})

    return ResultAccepted(image=result.image, outcome=outcome.value)


def create_result_app(orchestrator: "Orchestrator") -> FastAPI:
    """Build the standalone app served on the result listener port."""
    app = FastAPI(title="KubeForge result listener", docs_url=None, redoc_url=None)
    app.state.orchestrator = orchestrator
    app.include_router(router)
    return app
