"""
Score processing endpoint.

``POST /api/process-score`` takes a base64 upload, runs the score pipeline
in a fresh session and answers with MusicXML, metadata and per-measure-group
previews. The session workspace is released after the response body has
been sent (FastAPI background task + grace delay), or immediately when the
pipeline fails.
"""
import base64
import binascii
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from omr_worker.auth.dependencies import require_api_key
from omr_worker.config import get_settings
from omr_worker.core.pipeline import ScorePipeline
from omr_worker.core.session import UploadedArtifact
from omr_worker.core.session_limiter import SessionLimiter, SessionLimitExceeded
from omr_worker.models.requests import ProcessScoreRequest
from omr_worker.models.responses import ProcessScoreError, ProcessScoreResponse

router = APIRouter()
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


def _process_rate_limit() -> str:
    return get_settings().process_rate_limit


def decode_file_data(file_data: str) -> bytes:
    """Decode base64 upload data, accepting an optional ``data:…;base64,`` prefix.

    Raises:
        ValueError: The payload is not valid base64.
    """
    payload = file_data.strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"fileData is not valid base64: {exc}") from exc


@router.post(
    "/process-score",
    response_model=ProcessScoreResponse,
    responses={500: {"model": ProcessScoreError}},
)
@limiter.limit(_process_rate_limit)
async def process_score(
    request: Request,
    body: ProcessScoreRequest,
    background_tasks: BackgroundTasks,
    _auth: None = Depends(require_api_key),
):
    """Run OMR + rendering for one uploaded score."""
    try:
        data = decode_file_data(body.file_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="fileData is empty")

    max_bytes = request.app.state.settings.max_upload_bytes
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds {max_bytes} bytes",
        )

    upload = UploadedArtifact(data=data, file_type=body.file_type, file_name=body.file_name)
    pipeline: ScorePipeline = request.app.state.pipeline
    session_limiter: SessionLimiter = request.app.state.session_limiter

    try:
        async with session_limiter.acquire():
            result = await pipeline.process(upload, body.score_id)
    except SessionLimitExceeded as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
            headers={"Retry-After": "5"},
        )

    if not result.success:
        error = ProcessScoreError(
            error=result.error or "Processing failed",
            score_id=result.score_id,
            session_id=result.session_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error.model_dump(by_alias=True),
        )

    # Background tasks run only after the response body has been sent.
    background_tasks.add_task(pipeline.schedule_release, result.session)
    return ProcessScoreResponse.from_result(result)
