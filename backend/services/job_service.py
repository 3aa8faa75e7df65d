from typing import Optional, List, Dict, Any
from sqlmodel import Session, select
from models.db_models import ParseJob, ParseStatus, STATUS_TRANSITIONS, utcnow
from database import SyncSessionLocal
from services.error_types import InvalidJobTransition
import logging

logger = logging.getLogger(__name__)


class JobService:
    """SQLModel-backed tracker for ParseJob records and their status machine"""

    @staticmethod
    def get_job(job_id: str, session: Optional[Session] = None) -> Optional[ParseJob]:
        """Get a parse job by ID"""
        if session is None:
            with SyncSessionLocal() as session:
                return JobService.get_job(job_id, session)

        return session.get(ParseJob, job_id)

    @staticmethod
    def find_uploaded_job(upload_id: str, session: Session) -> Optional[ParseJob]:
        """Latest job for an upload that is still waiting in `uploaded`"""
        statement = (
            select(ParseJob)
            .where(ParseJob.upload_id == upload_id)
            .where(ParseJob.status == ParseStatus.UPLOADED)
            .order_by(ParseJob.created_at.desc())
        )
        return session.exec(statement).first()

    @staticmethod
    def get_or_create_job(
        project_id: str,
        file_urls: List[str],
        estimate_id: Optional[str] = None,
        upload_id: Optional[str] = None,
        session: Optional[Session] = None
    ) -> ParseJob:
        """
        Return the `uploaded` job for this upload, creating one if none exists.

        Re-running a parse on the same upload reuses the waiting job instead of
        creating a duplicate.
        """
        if session is None:
            with SyncSessionLocal() as session:
                return JobService.get_or_create_job(project_id, file_urls, estimate_id, upload_id, session)

        job = JobService.find_uploaded_job(upload_id, session) if upload_id else None

        if job:
            logger.info(f"Reusing uploaded parse job {job.id} for upload {upload_id}")
            job.file_urls = list(file_urls)
            if estimate_id:
                job.estimate_id = estimate_id
        else:
            job = ParseJob(
                project_id=project_id,
                estimate_id=estimate_id,
                upload_id=upload_id,
                file_urls=list(file_urls),
                status=ParseStatus.UPLOADED
            )
            logger.info(f"Created parse job {job.id} for project {project_id}")

        session.add(job)
        session.commit()
        session.refresh(job)
        return job

    @staticmethod
    def update_job(job_id: str, updates: Dict[str, Any], session: Optional[Session] = None) -> ParseJob:
        """
        Apply field updates to a job, enforcing the status state machine.

        Raises:
            InvalidJobTransition: unknown job or disallowed status change
        """
        if session is None:
            with SyncSessionLocal() as session:
                return JobService.update_job(job_id, updates, session)

        job = session.get(ParseJob, job_id)
        if job is None:
            raise InvalidJobTransition(f"Parse job {job_id} not found")

        new_status = updates.get("status")
        if new_status is not None:
            new_status = ParseStatus(new_status)
            current = ParseStatus(job.status)
            if new_status != current and new_status not in STATUS_TRANSITIONS[current]:
                raise InvalidJobTransition(
                    f"Cannot move parse job {job_id} from {current.value} to {new_status.value}",
                    {"job_id": job_id, "from": current.value, "to": new_status.value}
                )
            updates = {**updates, "status": new_status}

        for key, value in updates.items():
            if hasattr(job, key):
                setattr(job, key, value)
            else:
                logger.warning(f"Ignoring unknown ParseJob field {key}")

        session.add(job)
        session.commit()
        session.refresh(job)
        return job

    @staticmethod
    def start_job(job_id: str, session: Optional[Session] = None) -> ParseJob:
        """uploaded -> processing"""
        logger.info(f"Parse job {job_id} processing")
        return JobService.update_job(job_id, {
            "status": ParseStatus.PROCESSING,
            "started_at": utcnow(),
            "error_code": None,
            "error_message": None
        }, session)

    @staticmethod
    def complete_job(
        job_id: str,
        payload: Dict[str, Any],
        processing_time_ms: int,
        source_file_pages: Optional[int] = None,
        pages_of_interest: Optional[Dict[str, Any]] = None,
        session: Optional[Session] = None
    ) -> ParseJob:
        """processing -> parsed"""
        logger.info(f"Parse job {job_id} parsed in {processing_time_ms}ms")
        return JobService.update_job(job_id, {
            "status": ParseStatus.PARSED,
            "parse_result_json": payload,
            "processing_time_ms": processing_time_ms,
            "source_file_pages": source_file_pages,
            "pages_of_interest": pages_of_interest,
            "parsed_at": utcnow()
        }, session)

    @staticmethod
    def fail_job(
        job_id: str,
        error_code: str,
        error_message: str,
        processing_time_ms: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
        session: Optional[Session] = None
    ) -> ParseJob:
        """uploaded/processing -> failed"""
        logger.error(f"Parse job {job_id} failed ({error_code}): {error_message}")
        return JobService.update_job(job_id, {
            "status": ParseStatus.FAILED,
            "error_code": error_code,
            "error_message": error_message[:2000],
            "processing_time_ms": processing_time_ms,
            "parse_result_json": payload,
            "parsed_at": utcnow()
        }, session)


# Global instance
job_service = JobService()
