"""
Page classification for plan PDFs
Samples pages, delegates classification to the inference backend, then
enriches each result with a sheet title and building level
"""

import logging
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field

from models.enums import SheetType
from services.error_types import InferenceError
from services.inference_backend import InferenceBackend
from services.page_sampler import sample_pages_for_classification, prepare_pages_for_classification
from services.pipeline_config import pipeline_config, PipelineConfig
from services.plan_contracts import ExtractedPage, PageClassification
from services.room_processor import extract_sheet_title, detect_level
from services.strict_json_parser import strict_parser

logger = logging.getLogger(__name__)


@dataclass
class ClassificationResult:
    """Enriched classifications plus any warnings raised while producing them"""
    classifications: List[PageClassification] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    used_fallback: bool = False


class PageClassifier:
    """
    Classify sampled pages and enrich them with level/title metadata.

    Enrichment never changes the backend's type or confidence.
    """

    # Weak text signal used when the backend is unavailable
    ROOM_KEYWORDS = ["room", "bedroom", "kitchen"]

    def __init__(self, backend: InferenceBackend, config: Optional[PipelineConfig] = None):
        self.backend = backend
        self.config = config or pipeline_config

    def classify_pages(self, pages: List[ExtractedPage]) -> ClassificationResult:
        """
        Classify a document's pages.

        Args:
            pages: Every extracted page of the document

        Returns:
            ClassificationResult with one enriched classification per
            classified page, sorted by page number
        """
        if not pages:
            return ClassificationResult()

        sampled = sample_pages_for_classification(pages, self.config)
        prepared = prepare_pages_for_classification(sampled, self.config)
        result = ClassificationResult()

        try:
            raw = strict_parser.extract_list(self.backend.classify(prepared), ("pages", "classifications"))
            if raw is None:
                raise InferenceError("Classification response has no page list")
            classifications = self._validate(raw, {p["page_number"] for p in prepared})
            if not classifications:
                raise InferenceError("Classification response contained no usable pages")
        except InferenceError as e:
            logger.warning(f"Page classification unavailable, using fallback: {e}")
            result.warnings.append("Page classification unavailable. Used text heuristics to pick pages.")
            result.used_fallback = True
            classifications = self._fallback(prepared)

        page_text = {p.page_number: p.text for p in pages}
        result.classifications = sorted(
            (self._enrich(c, page_text.get(c.page_number, "")) for c in classifications),
            key=lambda c: c.page_number
        )
        logger.info(f"Classified {len(result.classifications)} of {len(pages)} pages")
        return result

    def _validate(self, raw: List[Any], known_pages: set) -> List[PageClassification]:
        """Validate each entry; invalid entries degrade to `other` with room labels assumed"""
        classifications: Dict[int, PageClassification] = {}
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            entry = self._normalize_keys(entry)
            page_number = self._page_number(entry.get("page_number"))
            entry["page_number"] = page_number
            if page_number not in known_pages:
                logger.debug(f"Dropping classification for unknown page {page_number!r}")
                continue

            ok, classification, error = strict_parser.validate_against_schema(entry, PageClassification)
            if not ok:
                logger.debug(f"Invalid classification for page {page_number}: {error}")
                classification = PageClassification(
                    page_number=page_number,
                    type=SheetType.other,
                    confidence=50,
                    has_room_labels=True,
                    reason="Classification failed"
                )
            classifications.setdefault(page_number, classification)
        return list(classifications.values())

    @staticmethod
    def _page_number(value) -> Optional[int]:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return None

    @staticmethod
    def _normalize_keys(entry: Dict[str, Any]) -> Dict[str, Any]:
        """Accept camelCase keys from the backend"""
        aliases = {"pageNumber": "page_number", "hasRoomLabels": "has_room_labels"}
        normalized = {aliases.get(k, k): v for k, v in entry.items()}
        # Only the backend's own fields; enrichment is ours
        normalized.pop("detected_level", None)
        normalized.pop("sheet_title", None)
        return normalized

    def _fallback(self, prepared: List[Dict[str, Any]]) -> List[PageClassification]:
        classifications = []
        for page in prepared:
            text = page["text"].lower()
            classifications.append(PageClassification(
                page_number=page["page_number"],
                type=SheetType.other,
                confidence=30,
                has_room_labels=any(k in text for k in self.ROOM_KEYWORDS),
                reason="Fallback - API unavailable"
            ))
        return classifications

    @staticmethod
    def _enrich(classification: PageClassification, text: str) -> PageClassification:
        title = extract_sheet_title(text)
        return classification.model_copy(update={
            "sheet_title": title,
            "detected_level": detect_level(title, text)
        })
