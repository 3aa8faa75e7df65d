"""
Worker entry point for plan parsing

The API creates the job in `uploaded` and queues its id; the worker runs the
same pipeline as the inline path.
"""

import logging
from typing import Dict, Any, List, Optional

from celery.exceptions import SoftTimeLimitExceeded

from tasks import app as celery_app
from services.error_types import ParseTimeoutError
from services.plan_pipeline import plan_pipeline
from services.job_service import job_service

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.parse_plans.parse_plans", acks_late=True, reject_on_worker_lost=True,
                 time_limit=180, soft_time_limit=150)
def parse_plans(
    job_id: str,
    project_id: str,
    file_urls: List[str],
    upload_ids: Optional[List[str]] = None,
    resolve_from_project: bool = False
) -> Dict[str, Any]:
    """
    Run the plan pipeline for an existing job.

    Returns:
        {"job_id", "status", "error_code"}; the full payload lives on the job
    """
    logger.info(f"Worker picked up parse job {job_id} ({len(file_urls)} reference(s))")
    try:
        outcome = plan_pipeline.run(
            project_id=project_id,
            file_urls=file_urls,
            upload_ids=upload_ids,
            resolve_from_project=resolve_from_project,
            job_id=job_id
        )
    except SoftTimeLimitExceeded:
        error = ParseTimeoutError("Worker soft time limit exceeded")
        logger.error(f"Parse job {job_id}: {error.message}")
        job_service.fail_job(job_id, error.error_code, error.message)
        return {"job_id": job_id, "status": "failed", "error_code": error.error_code}

    return {"job_id": outcome.job_id, "status": outcome.status.value, "error_code": outcome.error_code}
