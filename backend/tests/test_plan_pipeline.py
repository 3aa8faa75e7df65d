"""
End-to-end pipeline scenarios against a scripted backend, local storage and
an in-memory job store
"""

from unittest.mock import MagicMock

import pytest
from celery.exceptions import SoftTimeLimitExceeded

from models.db_models import ParseStatus
from services import inference_backend
from services.document_acquirer import DocumentAcquirer, RESOLVE_FROM_UPLOADS
from services.inference_backend import set_inference_backend
from services.inference_config import InferenceConfig
from services.job_service import job_service
from services.pdf_text_extractor import PDFTextExtractor
from services.pdf_to_images import PDFToImages
from services.pipeline_config import PipelineConfig
from services.plan_pipeline import PlanPipeline
from services.result_assembler import NO_ROOMS_WARNING
from services.storage import StorageService
from services.vision_fallback import IMAGE_NO_ROOMS_WARNING, SCANNED_EXHAUSTED_WARNING

PLANS = "proj-1/up-1/plans.pdf"


@pytest.fixture
def build_pipeline(fake_backend, storage):
    def build(backend=fake_backend, store=storage, clock=None, text_extractor=None):
        config = PipelineConfig()
        return PlanPipeline(
            backend=backend,
            acquirer=DocumentAcquirer(store),
            text_extractor=text_extractor or PDFTextExtractor(config),
            converter=PDFToImages(config),
            config=config,
            clock=clock
        )
    return build


def vision_calls(backend):
    return backend.calls_to("extract_rooms_from_images") + backend.calls_to("extract_rooms_from_url")


class TestVectorPlans:

    def test_two_sheets_three_rooms_each(self, build_pipeline, fake_backend, storage, session,
                                         two_floor_pdf, room_fixtures):
        storage.save(PLANS, two_floor_pdf)
        fake_backend.rooms_by_page = {1: room_fixtures["first"], 2: room_fixtures["second"]}

        outcome = build_pipeline().run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.PARSED
        payload = outcome.payload
        assert payload["success"] is True
        assert len(payload["rooms"]) == 6
        assert payload["sheetsDetected"] == 2
        assert payload["totalPages"] == 2
        assert payload["relevantPages"] == [1, 2]
        assert vision_calls(fake_backend) == []
        levels = {r["name"]: r["level"] for r in payload["rooms"]}
        assert levels["Kitchen"] == "Level 1"
        assert levels["Office"] == "Level 2"
        assert len(payload["lineItemScaffold"]) == 6
        assert all(i["direct_cost"] is None and i["client_price"] is None and i["margin"] is None
                   for i in payload["lineItemScaffold"])

        job = job_service.get_job(outcome.job_id, session)
        assert job.status == ParseStatus.PARSED
        assert job.parse_result_json["planParseId"] == outcome.job_id
        assert job.source_file_pages == 2
        assert job.pages_of_interest["vision_invocations"] == 0
        assert [c["page_number"] for c in job.pages_of_interest["classifications"]] == [1, 2]
        assert job.pages_of_interest["classifications"][0]["detected_level"] == "Level 1"

    def test_duplicates_across_files_collapse(self, build_pipeline, fake_backend, storage, session,
                                              two_floor_pdf, room_fixtures):
        storage.save("proj-1/up-1/a.pdf", two_floor_pdf)
        storage.save("proj-1/up-1/b.pdf", two_floor_pdf)
        fake_backend.rooms_by_page = {1: room_fixtures["first"], 2: room_fixtures["second"]}

        outcome = build_pipeline().run("proj-1", ["proj-1/up-1/a.pdf", "proj-1/up-1/b.pdf"], session=session)

        assert len(outcome.payload["rooms"]) == 6
        assert outcome.payload["sheetsDetected"] == 4
        assert outcome.payload["totalPages"] == 4

    def test_bad_files_skipped_with_warnings(self, build_pipeline, fake_backend, storage, session,
                                             two_floor_pdf, room_fixtures):
        storage.save(PLANS, two_floor_pdf)
        fake_backend.rooms_by_page = {1: room_fixtures["first"]}

        outcome = build_pipeline().run(
            "proj-1", [PLANS, "proj-1/up-1/missing.pdf", "proj-1/up-1/model.dwg"], session=session
        )

        assert outcome.status == ParseStatus.PARSED
        warnings = outcome.payload["warnings"]
        assert "Failed to download file: missing.pdf" in warnings
        assert "Unsupported file type: dwg" in warnings
        assert len(outcome.payload["rooms"]) == 3

    def test_scaffold_failure_still_parses(self, build_pipeline, fake_backend, storage, session,
                                           two_floor_pdf, room_fixtures):
        storage.save(PLANS, two_floor_pdf)
        fake_backend.rooms_by_page = {1: room_fixtures["first"]}
        fake_backend.failing.add("scaffold_line_items")

        outcome = build_pipeline().run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.PARSED
        assert outcome.payload["lineItemScaffold"] == []
        assert "Line item scaffold generation failed. Add line items manually." in outcome.payload["warnings"]


class TestScannedAndMixedPlans:

    def test_scanned_pdf_uses_vision(self, build_pipeline, fake_backend, storage, session, make_pdf):
        storage.save(PLANS, make_pdf([""] * 4))
        fake_backend.image_rooms = [{"name": "Kitchen", "type": "kitchen"}, {"name": "Den"}]

        outcome = build_pipeline().run("proj-1", [PLANS], session=session)

        payload = outcome.payload
        assert outcome.status == ParseStatus.PARSED
        assert [r["name"] for r in payload["rooms"]] == ["Kitchen", "Den"]
        assert "PDF detected as scanned (0/4 pages with text). Using vision analysis." in payload["warnings"]
        assert "Analyzed 3 rendered page(s) using vision AI" in payload["assumptions"]
        assert fake_backend.calls_to("extract_rooms_from_images") == [[2, 3, 4]]
        assert fake_backend.calls_to("classify") == []

    def test_scanned_pdf_without_vision_falls_back_to_text_path(self, build_pipeline, fake_backend,
                                                                storage, session, make_pdf):
        storage.save(PLANS, make_pdf([""] * 2))
        fake_backend.failing.add("extract_rooms_from_images")

        outcome = build_pipeline().run("proj-1", [PLANS], session=session)

        payload = outcome.payload
        assert outcome.status == ParseStatus.PARSED
        assert SCANNED_EXHAUSTED_WARNING in payload["warnings"]
        assert len(fake_backend.calls_to("classify")) == 1
        assert [r["name"] for r in payload["rooms"]] == ["General / Scope Notes"]
        assert NO_ROOMS_WARNING in payload["warnings"]

    def test_mixed_pdf_without_text_rooms_tries_image_pages(self, build_pipeline, fake_backend,
                                                            storage, session, make_pdf):
        text = "GENERAL NOTES\nAll work per local code and manufacturer instructions"
        storage.save(PLANS, make_pdf([text, text, ""]))
        fake_backend.classifications = [
            {"page_number": 1, "type": "notes", "confidence": 90},
            {"page_number": 2, "type": "notes", "confidence": 90},
        ]
        fake_backend.image_rooms = [{"name": "Garage", "level": "Garage", "type": "garage"}]

        outcome = build_pipeline().run("proj-1", [PLANS], session=session)

        payload = outcome.payload
        assert "Mixed PDF: text extraction found no rooms. Trying vision on 1 image-only page(s)." \
            in payload["warnings"]
        assert fake_backend.calls_to("extract_rooms_from_images") == [[3]]
        assert [r["name"] for r in payload["rooms"]] == ["Garage"]
        job = job_service.get_job(outcome.job_id, session)
        assert job.pages_of_interest["vision_invocations"] == 1


class TestImages:

    def test_blank_image_parses_with_sentinel(self, build_pipeline, fake_backend, public_storage, session):
        outcome = build_pipeline(store=public_storage).run("proj-1", ["proj-1/up-1/plan.png"], session=session)

        payload = outcome.payload
        assert outcome.status == ParseStatus.PARSED
        assert payload["success"] is True
        assert [r["name"] for r in payload["rooms"]] == ["General / Scope Notes"]
        assert payload["lineItemScaffold"][0]["description"] == "General scope item - add details"
        assert IMAGE_NO_ROOMS_WARNING in payload["warnings"]
        assert NO_ROOMS_WARNING in payload["warnings"]
        assert fake_backend.calls_to("extract_rooms_from_url") == ["https://files.example.com/proj-1/up-1/plan.png"]
        assert fake_backend.calls_to("scaffold_line_items") == []


class TestFailures:

    def test_time_budget_exceeded(self, build_pipeline, fake_backend, storage, session,
                                  two_floor_pdf, room_fixtures):
        storage.save(PLANS, two_floor_pdf)
        fake_backend.rooms_by_page = {1: room_fixtures["first"]}
        now = [0.0]
        classify = fake_backend.classify

        def slow_classify(pages):
            now[0] += 500
            return classify(pages)

        fake_backend.classify = slow_classify

        outcome = build_pipeline(clock=lambda: now[0]).run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.FAILED
        assert outcome.error_code == "TIMEOUT"
        assert outcome.status_code == 504
        assert outcome.payload["success"] is False
        assert outcome.payload["rooms"][0]["name"] == "General / Scope Notes"
        assert fake_backend.calls_to("extract_rooms") == []
        job = job_service.get_job(outcome.job_id, session)
        assert job.status == ParseStatus.FAILED
        assert job.error_code == "TIMEOUT"

    def test_worker_soft_time_limit_is_a_timeout(self, build_pipeline, fake_backend, storage, session,
                                                 two_floor_pdf):
        storage.save(PLANS, two_floor_pdf)

        def interrupted(pages):
            raise SoftTimeLimitExceeded()

        fake_backend.classify = interrupted

        outcome = build_pipeline().run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.FAILED
        assert outcome.error_code == "TIMEOUT"
        assert outcome.status_code == 504
        assert job_service.get_job(outcome.job_id, session).error_code == "TIMEOUT"

    def test_malformed_classification_falls_back(self, build_pipeline, fake_backend, storage, session,
                                                 two_floor_pdf):
        storage.save(PLANS, two_floor_pdf)
        fake_backend.classifications = None
        fake_backend.rooms_by_page = {1: [{"name": "Kitchen", "type": "kitchen"}]}

        outcome = build_pipeline().run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.PARSED
        assert "Page classification unavailable. Used text heuristics to pick pages." in outcome.payload["warnings"]
        assert [r["name"] for r in outcome.payload["rooms"]] == ["Kitchen"]

    def test_backend_not_configured(self, build_pipeline, storage, session, two_floor_pdf, monkeypatch):
        storage.save(PLANS, two_floor_pdf)
        set_inference_backend(None)
        monkeypatch.setattr(inference_backend, "inference_config", InferenceConfig(openai_api_key=""))

        outcome = build_pipeline(backend=None).run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.FAILED
        assert outcome.error_code == "BACKEND_UNAVAILABLE"
        assert outcome.status_code == 503
        assert "AI service" in outcome.payload["warnings"][0]

    def test_storage_unreachable(self, build_pipeline, session, tmp_path):
        store = StorageService(str(tmp_path / "unmounted"))

        outcome = build_pipeline(store=store).run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.FAILED
        assert outcome.error_code == "STORAGE_ERROR"
        assert job_service.get_job(outcome.job_id, session).status == ParseStatus.FAILED

    def test_nothing_to_parse(self, build_pipeline, session):
        outcome = build_pipeline().run("proj-1", [RESOLVE_FROM_UPLOADS], session=session)

        assert outcome.status == ParseStatus.FAILED
        assert outcome.error_code == "INVALID_REQUEST"
        assert outcome.status_code == 400

    def test_unexpected_error_fails_job(self, build_pipeline, storage, session, two_floor_pdf):
        storage.save(PLANS, two_floor_pdf)
        broken = MagicMock(spec=PDFTextExtractor)
        broken.extract_pages.side_effect = ValueError("boom")

        outcome = build_pipeline(text_extractor=broken).run("proj-1", [PLANS], session=session)

        assert outcome.status == ParseStatus.FAILED
        assert outcome.error_code == "PARSE_ERROR"
        assert outcome.status_code == 500
        assert job_service.get_job(outcome.job_id, session).status != ParseStatus.PROCESSING


class TestJobReuse:

    def test_reuses_uploaded_job(self, build_pipeline, fake_backend, storage, session,
                                 two_floor_pdf, room_fixtures):
        storage.save(PLANS, two_floor_pdf)
        waiting = job_service.get_or_create_job("proj-1", [PLANS], upload_id="up-1", session=session)

        outcome = build_pipeline().run("proj-1", [PLANS], upload_id="up-1", session=session)

        assert outcome.job_id == waiting.id
        assert outcome.status == ParseStatus.PARSED

    def test_runs_existing_job_by_id(self, build_pipeline, fake_backend, storage, session,
                                     two_floor_pdf, room_fixtures):
        storage.save(PLANS, two_floor_pdf)
        fake_backend.rooms_by_page = {1: room_fixtures["first"]}
        queued = job_service.get_or_create_job("proj-1", [PLANS], session=session)

        outcome = build_pipeline().run("proj-1", [PLANS], job_id=queued.id, session=session)

        assert outcome.job_id == queued.id
        assert job_service.get_job(queued.id, session).status == ParseStatus.PARSED

    def test_upload_ids_resolve_stored_files(self, build_pipeline, fake_backend, storage, session,
                                             two_floor_pdf, room_fixtures):
        storage.save("proj-1/up-7/plans.pdf", two_floor_pdf)
        fake_backend.rooms_by_page = {1: room_fixtures["first"]}

        outcome = build_pipeline().run("proj-1", [RESOLVE_FROM_UPLOADS], upload_ids=["up-7"], session=session)

        assert outcome.status == ParseStatus.PARSED
        assert len(outcome.payload["rooms"]) == 3
