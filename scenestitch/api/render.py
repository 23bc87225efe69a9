"""
Render API endpoints for SceneStitch.

Provides endpoints for rendering synchronously, queueing renders, polling
job progress and serving locally published artifacts.

Request bodies are taken as raw JSON and parsed by the pipeline's own
validator, so every problem in a request is reported in one 400 response.
"""

import logging
import mimetypes
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse

from ..core.config import get_settings
from ..core.object_store import DEFAULT_CACHE_CONTROL, LocalObjectStore
from ..exceptions import JobValidationError
from ..schemas.render import RenderJobAccepted, RenderJobStatus, RenderResult
from ..tasks.catalog import OUTPUT_FORMATS
from ..tasks.progress import JobStore, ProgressReporter, get_job_store
from ..tasks.render import RenderPipeline, enqueue_render
from ..tasks.validation import parse_render_request

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Dependencies
# =============================================================================


def get_store() -> JobStore:
    """Job store selected by configuration."""
    return get_job_store()


def get_render_pipeline() -> RenderPipeline:
    """Pipeline used by the synchronous render endpoint."""
    return RenderPipeline()


def _status_code_for(result: RenderResult) -> int:
    if result.success:
        return status.HTTP_200_OK
    if result.failed_stage == JobValidationError.stage:
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/render",
    summary="Render scenes synchronously",
    description="Run the full pipeline and return the published video URL.",
    responses={
        400: {"description": "Invalid render request"},
        500: {"description": "Render failed"},
    },
)
async def render(
    payload: Dict[str, Any] = Body(...),
    pipeline: RenderPipeline = Depends(get_render_pipeline),
) -> JSONResponse:
    """
    Render a scene list and wait for the result.

    Returns:
        200 ``{success: true, videoUrl}`` or 400/500 ``{success: false, error}``
    """
    result = await run_in_threadpool(pipeline.run, payload)
    return JSONResponse(status_code=_status_code_for(result), content=result.to_response())


@router.post(
    "/render/jobs",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a render job",
    description="Validate the request, enqueue it on the render queue and return immediately.",
    responses={
        400: {"description": "Invalid render request"},
        500: {"description": "Failed to enqueue render job"},
    },
)
async def queue_render(
    payload: Dict[str, Any] = Body(...),
    store: JobStore = Depends(get_store),
) -> JSONResponse:
    """
    Queue a render.

    Steps:
    1. Validate the request (400 on failure, nothing is queued)
    2. Write the initial ``preparing`` record
    3. Enqueue the RQ task
    4. Return 202 with the job ID
    """
    try:
        request = parse_render_request(payload)
    except JobValidationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": e.public_message},
        )

    reporter = ProgressReporter(store, request.job_id)
    reporter.report("preparing", "Queued")

    try:
        rq_job = enqueue_render(request)
    except Exception as e:
        logger.error(f"Failed to enqueue render job {request.job_id}: {e}", exc_info=True)
        reporter.fail("Failed to enqueue render job")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "internal_error",
                "message": "Failed to enqueue render job",
            },
        )

    accepted = RenderJobAccepted(job_id=request.job_id, rq_job_id=rq_job.id)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=accepted.model_dump(by_alias=True, exclude_none=True),
    )


@router.get(
    "/render/{job_id}",
    response_model=RenderJobStatus,
    response_model_by_alias=True,
    summary="Get render job progress",
)
async def get_render_status(
    job_id: str,
    store: JobStore = Depends(get_store),
) -> RenderJobStatus:
    """Latest progress record for a job, or 404."""
    record = await run_in_threadpool(store.get, job_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "not_found",
                "message": "Render job not found",
                "resource_type": "render_job",
                "resource_id": job_id,
            },
        )
    return record


@router.get(
    "/artifacts/{key:path}",
    summary="Download a published artifact",
    description="Serves videos published by the local object store.",
)
async def get_artifact(key: str) -> FileResponse:
    """
    Stream a locally stored artifact.

    Only available with STORAGE_BACKEND=local; GCS artifacts are served by
    the bucket.
    """
    settings = get_settings()
    not_found = HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": "not_found",
            "message": "Artifact not found",
            "resource_type": "artifact",
            "resource_id": key,
        },
    )

    if settings.storage_backend != "local":
        raise not_found

    store = LocalObjectStore(settings.storage_root, settings.public_base_url)
    try:
        path = store.resolve(key)
    except ValueError:
        raise not_found

    if not path.is_file():
        raise not_found

    extension = path.suffix.lstrip(".")
    if extension in OUTPUT_FORMATS:
        media_type = OUTPUT_FORMATS[extension].content_type
    else:
        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

    return FileResponse(
        path=path,
        media_type=media_type,
        filename=path.name,
        headers={"Cache-Control": DEFAULT_CACHE_CONTROL},
    )
