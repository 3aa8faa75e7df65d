"""
Plan parsing pipeline

One job end to end: acquire each file, route it by container kind and
document type, merge the per-file accumulators, deduplicate, scaffold line
items and persist the result. Files are processed sequentially under a
single wall-clock budget.
"""

import logging
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Callable

from sqlmodel import Session

from models.db_models import ParseStatus
from models.enums import DocumentType, FileKind
from services.deduplicator import deduplicate_rooms, summarize_rooms
from services.document_acquirer import AcquiredDocument, DocumentAcquirer, document_acquirer
from services.error_types import (
    CriticalError, NonCriticalError, InvalidParseRequest, categorize_exception, log_error_with_context
)
from services.inference_backend import InferenceBackend, get_inference_backend
from services.job_service import job_service
from services.line_item_scaffolder import LineItemScaffolder
from services.page_classifier import PageClassifier
from services.parse_deadline import ParseDeadline
from services.pdf_text_extractor import PDFTextExtractor, pdf_text_extractor
from services.pdf_to_images import PDFToImages, pdf_converter
from services.pipeline_config import pipeline_config, PipelineConfig
from services.plan_contracts import ParseAccumulator
from services.result_assembler import assemble_payload, fallback_payload, friendly_error_message
from services.room_extractor import RoomExtractor
from services.sheet_grouper import group_sheets, sheets_by_level
from services.vision_fallback import VisionFallbackExtractor
from utils.logging_utils import log_operation, log_performance_metric, create_job_logger

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    """What a caller gets back from one run"""
    job_id: Optional[str]
    status: ParseStatus
    payload: Dict[str, Any]
    error_code: Optional[str] = None
    status_code: int = 200


class PlanPipeline:
    """
    Orchestrates the stages for one parse job.

    Collaborators are injectable; the defaults are the module singletons.
    The inference backend is resolved lazily inside the run so a missing API
    key fails the job instead of the caller.
    """

    def __init__(
        self,
        backend: Optional[InferenceBackend] = None,
        acquirer: Optional[DocumentAcquirer] = None,
        text_extractor: Optional[PDFTextExtractor] = None,
        converter: Optional[PDFToImages] = None,
        config: Optional[PipelineConfig] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self._backend = backend
        self.acquirer = acquirer or document_acquirer
        self.text_extractor = text_extractor or pdf_text_extractor
        self.converter = converter or pdf_converter
        self.config = config or pipeline_config
        self.clock = clock

    def run(
        self,
        project_id: str,
        file_urls: List[str],
        estimate_id: Optional[str] = None,
        upload_id: Optional[str] = None,
        upload_ids: Optional[List[str]] = None,
        resolve_from_project: bool = False,
        job_id: Optional[str] = None,
        session: Optional[Session] = None
    ) -> PipelineOutcome:
        """
        Parse the referenced plans and persist the outcome on the job.

        Args:
            project_id: Owning project
            file_urls: Storage keys or http(s) URLs; may hold the
                resolve-from-uploads placeholder
            estimate_id: Optional estimate the result is attached to
            upload_id: Upload whose waiting job should be reused
            upload_ids: Uploads whose stored files should be parsed
            resolve_from_project: Parse every stored upload of the project
            job_id: Existing job to run (the worker path)
            session: Job store session; one is opened per call when omitted

        Returns:
            PipelineOutcome; the job is `parsed` or `failed`, never left
            `processing`
        """
        deadline = ParseDeadline(self.config.time_budget_seconds, self.clock)

        if job_id:
            job = job_service.get_job(job_id, session)
            if job is None:
                raise InvalidParseRequest(f"Parse job {job_id} not found")
        else:
            job = job_service.get_or_create_job(project_id, file_urls, estimate_id, upload_id, session)
        job_id = job.id
        log = create_job_logger(job_id, logger)

        try:
            job_service.start_job(job_id, session)
            with log_operation("parse_plans", {"job_id": job_id, "project_id": project_id}, logger):
                payload, total_pages, pages_of_interest = self._execute(
                    project_id, file_urls, upload_ids, resolve_from_project, job_id, deadline, log
                )
            job_service.complete_job(
                job_id, payload, deadline.elapsed_ms,
                source_file_pages=total_pages,
                pages_of_interest=pages_of_interest,
                session=session
            )
            log_performance_metric("plan_parse_duration", deadline.elapsed_ms, "ms",
                                   {"status": "parsed"}, logger)
            return PipelineOutcome(job_id=job_id, status=ParseStatus.PARSED, payload=payload)

        except Exception as e:
            error = e if isinstance(e, CriticalError) else categorize_exception(e)
            if not isinstance(error, CriticalError):
                error = CriticalError(str(error))
            log_error_with_context(error, {"job_id": job_id, "elapsed_ms": deadline.elapsed_ms})
            return self._fail(job_id, error, deadline, session)

    def _fail(self, job_id: str, error: CriticalError, deadline: ParseDeadline,
              session: Optional[Session]) -> PipelineOutcome:
        payload = fallback_payload(job_id, friendly_error_message(error), deadline.elapsed_ms)
        try:
            job_service.fail_job(job_id, error.error_code, error.message, deadline.elapsed_ms, payload, session)
        except Exception as db_error:
            logger.error(f"Failed to record failure for parse job {job_id}: {db_error}")
        log_performance_metric("plan_parse_duration", deadline.elapsed_ms, "ms",
                               {"status": "failed", "error_code": error.error_code}, logger)
        return PipelineOutcome(
            job_id=job_id,
            status=ParseStatus.FAILED,
            payload=payload,
            error_code=error.error_code,
            status_code=error.status_code
        )

    def _execute(
        self,
        project_id: str,
        file_urls: List[str],
        upload_ids: Optional[List[str]],
        resolve_from_project: bool,
        job_id: str,
        deadline: ParseDeadline,
        log
    ):
        references = self.acquirer.resolve_references(project_id, file_urls, upload_ids, resolve_from_project)
        if not references:
            raise InvalidParseRequest("No plan files to parse")
        log.info(f"Parsing {len(references)} file(s)")

        backend = self._backend or get_inference_backend()
        run = ParseAccumulator()

        for reference in references:
            deadline.check(f"acquiring {reference}")
            document, warning = self.acquirer.acquire(reference)
            if document is None:
                run.warn(warning)
                continue

            file_acc = ParseAccumulator()
            try:
                with log_operation("parse_file", {"job_id": job_id, "file": document.name}, logger):
                    self._process_document(document, backend, file_acc, deadline, log)
            except NonCriticalError as e:
                log.warning(f"Skipping {document.name}: {e}")
                run.warn(f"Could not process {document.name}: {e.message}")
                continue
            run.merge(file_acc)
            log.info(f"{document.name}: {file_acc.summary()}")

        deadline.check("deduplication")
        run.rooms = deduplicate_rooms(run.rooms)
        summarize_rooms(run.rooms)

        deadline.check("line item scaffolding")
        scaffolds, warning = LineItemScaffolder(backend).scaffold(run.rooms)
        if warning:
            run.warn(warning)

        payload = assemble_payload(run, scaffolds, job_id, deadline.elapsed_ms)
        pages_of_interest = {
            "relevant_pages": payload["relevantPages"],
            "classifications": [c.model_dump(mode="json") for c in run.classifications],
            "sheets": [s.sheet_id for s in run.sheets],
            "vision_invocations": run.vision_invocations,
        }
        log.info(f"Parse complete: {len(payload['rooms'])} rooms, "
                 f"{len(payload['lineItemScaffold'])} line items, "
                 f"{run.vision_invocations} vision call(s)")
        return payload, run.total_pages, pages_of_interest

    def _process_document(
        self,
        document: AcquiredDocument,
        backend: InferenceBackend,
        acc: ParseAccumulator,
        deadline: ParseDeadline,
        log
    ) -> None:
        vision = VisionFallbackExtractor(backend, self.converter, self.config)

        if document.kind == FileKind.image:
            deadline.check("image vision analysis")
            result, calls = vision.extract_image(document, deadline)
            acc.vision_invocations += calls
            acc.total_pages += 1
            acc.add_result(result)
            return

        deadline.check("text extraction")
        extraction = self.text_extractor.extract_pages(document.content)
        if extraction.error:
            log.warning(extraction.error)
        detection = self.text_extractor.detect_document_type(extraction, document.size_bytes)
        page_count = self.text_extractor.resolve_page_count(extraction, document.content)
        acc.total_pages += page_count
        log.info(f"{document.name}: {detection.type.value} PDF, {detection.pages_with_text}/"
                 f"{detection.total_pages} pages with text")

        if detection.type == DocumentType.scanned:
            acc.warn(f"PDF detected as scanned ({detection.pages_with_text}/{detection.total_pages} "
                     f"pages with text). Using vision analysis.")
            deadline.check("scanned vision analysis")
            result, calls = vision.extract_scanned(document, extraction, detection, page_count, deadline)
            acc.vision_invocations += calls
            acc.add_result(result)
            if not result.is_empty:
                return

        deadline.check("page classification")
        classified = PageClassifier(backend, self.config).classify_pages(extraction.pages)
        acc.classifications.extend(classified.classifications)
        acc.warnings.extend(classified.warnings)

        deadline.check("sheet grouping")
        sheets = group_sheets(classified.classifications, self.config)
        extractor = RoomExtractor(backend, self.config)

        if sheets:
            log.info(f"Sheet map by level: {sheets_by_level(sheets)}")
            result, sheet_results = extractor.extract_sheets(sheets, extraction.pages, deadline)
            acc.add_result(result)
            acc.sheets.extend(sheet_results)
            acc.relevant_pages.extend(s.page_number for s in sheets)
        else:
            deadline.check("legacy room extraction")
            result = extractor.extract_legacy(extraction.pages)
            acc.add_result(result)
            acc.relevant_pages.extend(
                p.page_number for p in extraction.pages[:self.config.legacy_prefix_pages] if p.text.strip()
            )

        if detection.type == DocumentType.mixed and not acc.rooms:
            image_pages = min(detection.pages_without_text, self.config.mixed_vision_pages)
            acc.warn(f"Mixed PDF: text extraction found no rooms. "
                     f"Trying vision on {image_pages} image-only page(s).")
            deadline.check("mixed vision analysis")
            result, calls = vision.extract_mixed(document, extraction, detection, deadline)
            acc.vision_invocations += calls
            acc.add_result(result)


plan_pipeline = PlanPipeline()
