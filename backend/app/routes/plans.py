import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlmodel import Session

from database import get_sync_session
from models.db_models import ParseStatus
from models.schemas import (
    ParseRequest, ParseResponse, JobQueuedResponse, JobStatus,
    VisionFallbackRequest, VisionFallbackResponse
)
from services.error_types import CriticalError
from services.inference_backend import get_inference_backend
from services.job_service import job_service
from services.plan_pipeline import plan_pipeline
from services.result_assembler import fallback_payload, friendly_error_message, room_payload
from services.vision_fallback import VisionFallbackExtractor
from app.middleware.error_handler import create_error_response

logger = logging.getLogger(__name__)
router = APIRouter()


def _error_json(error: CriticalError, job_id: str = None) -> JSONResponse:
    payload = fallback_payload(job_id, friendly_error_message(error))
    payload["errorCode"] = error.error_code
    return JSONResponse(status_code=error.status_code, content=payload)


@router.post("/parse")
def parse_plans(request: ParseRequest, session: Session = Depends(get_sync_session)):
    """
    Parse uploaded plans into rooms and unpriced line items.

    Runs inline and returns the full result, or queues the job on the worker
    when `async` is set and returns its id.
    """
    logger.info(f"Parse requested for project {request.project_id}: {len(request.file_urls)} file(s)")

    if request.run_async:
        # Imported here so the inline path never needs the broker client
        from tasks.parse_plans import parse_plans as parse_plans_task

        job = job_service.get_or_create_job(
            request.project_id, request.file_urls, request.estimate_id, request.upload_id, session
        )
        parse_plans_task.delay(
            job.id, request.project_id, request.file_urls,
            request.upload_ids, request.resolve_from_project
        )
        logger.info(f"Queued parse job {job.id}")
        return JSONResponse(
            status_code=202,
            content=JobQueuedResponse(job_id=job.id, status=ParseStatus.UPLOADED.value).model_dump(by_alias=True)
        )

    try:
        outcome = plan_pipeline.run(
            project_id=request.project_id,
            file_urls=request.file_urls,
            estimate_id=request.estimate_id,
            upload_id=request.upload_id,
            upload_ids=request.upload_ids,
            resolve_from_project=request.resolve_from_project,
            session=session
        )
    except CriticalError as e:
        logger.error(f"Parse request failed before the job started: {e}")
        return _error_json(e)

    payload = dict(outcome.payload)
    if outcome.error_code:
        payload["errorCode"] = outcome.error_code
    response = ParseResponse(**payload)
    return JSONResponse(status_code=outcome.status_code, content=response.model_dump(by_alias=True))


@router.get("/jobs/{job_id}", response_model=JobStatus)
def get_parse_job(job_id: str, session: Session = Depends(get_sync_session)):
    """Status and, once finished, result of a parse job"""
    job = job_service.get_job(job_id, session)
    if not job:
        return JSONResponse(status_code=404, content=create_error_response("JobNotFound", "Parse job not found"))

    status = job.status.value if isinstance(job.status, ParseStatus) else str(job.status)
    return JSONResponse(content=JobStatus(
        job_id=job.id,
        status=status,
        result=job.parse_result_json,
        error_code=job.error_code,
        error=job.error_message,
        processing_time_ms=job.processing_time_ms
    ).model_dump(by_alias=True))


@router.post("/vision-fallback")
def vision_fallback(request: VisionFallbackRequest):
    """Rooms from page images rendered by the client when server rendering failed"""
    try:
        backend = get_inference_backend()
        extractor = VisionFallbackExtractor(backend)
        result, _ = extractor.extract_client_images([(p.page_number, p.base64) for p in request.pages])
    except CriticalError as e:
        logger.warning(f"Vision fallback rejected: {e}")
        return JSONResponse(
            status_code=e.status_code,
            content=create_error_response(type(e).__name__, friendly_error_message(e), e.error_code)
        )

    return JSONResponse(content=VisionFallbackResponse(
        success=True,
        rooms=[room_payload(r) for r in result.rooms],
        assumptions=result.assumptions,
        warnings=result.warnings,
        missing_info=result.missing_info
    ).model_dump(by_alias=True))
