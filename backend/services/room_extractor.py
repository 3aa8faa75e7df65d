"""
Room Extractor (text path)

Per-sheet extraction over page text, with a legacy prefix fallback when no
sheet qualified. Backend payloads are validated room by room here.
"""

import logging
from typing import List, Dict, Any, Optional, Tuple

from services.error_types import InferenceError
from services.inference_backend import InferenceBackend
from services.parse_deadline import ParseDeadline
from services.pipeline_config import pipeline_config, PipelineConfig
from services.plan_contracts import (
    ExtractedPage, ExtractedRoom, ExtractionResult, SheetInfo, SheetParseResult, DEFAULT_LEVEL
)
from services.room_processor import post_process_rooms, post_process_by_level
from services.strict_json_parser import strict_parser

logger = logging.getLogger(__name__)

LEGACY_FALLBACK_WARNING = "No floor plan pages detected. Parsing first pages as fallback."


def build_extraction_result(payload: Any, default_level: Optional[str] = None) -> ExtractionResult:
    """
    Validate a backend room payload.

    Invalid rooms are dropped individually; a payload without a room list is
    treated as zero rooms plus a warning.
    """
    raw_rooms = strict_parser.extract_list(payload, ("rooms",))
    if raw_rooms is None:
        return ExtractionResult.failed("Room extraction returned an unexpected response.")

    rooms, rejected = strict_parser.validate_items(
        raw_rooms,
        ExtractedRoom,
        defaults={"name": "Unnamed Room", "level": default_level or DEFAULT_LEVEL}
    )
    if rejected:
        logger.info(f"Dropped {rejected} invalid room(s) from backend payload")

    return ExtractionResult(
        rooms=rooms,
        assumptions=strict_parser.string_list(payload, "assumptions"),
        warnings=strict_parser.string_list(payload, "warnings"),
        missing_info=(strict_parser.string_list(payload, "missing_info")
                      or strict_parser.string_list(payload, "missingInfo"))
    )


class RoomExtractor:
    """Ask the inference backend for rooms, one sheet at a time"""

    def __init__(self, backend: InferenceBackend, config: Optional[PipelineConfig] = None):
        self.backend = backend
        self.config = config or pipeline_config

    def extract_sheet(self, sheet: SheetInfo, page_text: str) -> Tuple[ExtractionResult, Optional[SheetParseResult]]:
        """
        Extract rooms from one sheet. Rooms take the sheet's level and title.

        Returns:
            (result, sheet_result); sheet_result is None when the sheet was
            skipped or the backend failed
        """
        label = f"Page {sheet.page_number} ({sheet.sheet_title})"

        if len(page_text.strip()) < self.config.min_text_chars:
            return ExtractionResult.failed(f"{label}: insufficient text for extraction"), None

        logger.info(f"Extracting rooms from page {sheet.page_number}: "
                    f"\"{sheet.sheet_title}\" -> {sheet.detected_level}")
        try:
            payload = self.backend.extract_rooms(page_text, sheet)
        except InferenceError as e:
            logger.warning(f"Room extraction failed for page {sheet.page_number}: {e}")
            return ExtractionResult.failed(f"{label}: room extraction failed"), None

        result = build_extraction_result(payload, sheet.detected_level)
        rooms = [
            room.model_copy(update={"sheet_label": sheet.sheet_title})
            for room in post_process_rooms(result.rooms, sheet.detected_level)
        ]
        result = result.model_copy(update={"rooms": rooms})

        if rooms:
            result.assumptions.append(f"{label}: found {len(rooms)} rooms on {sheet.detected_level}")
        else:
            result.warnings.append(f"{label}: no rooms detected")

        sheet_result = SheetParseResult(
            sheet_id=sheet.page_number,
            sheet_title=sheet.sheet_title,
            detected_level=sheet.detected_level,
            classification=sheet.classification,
            confidence=sheet.confidence,
            rooms=rooms
        )
        return result, sheet_result

    def extract_sheets(
        self,
        sheets: List[SheetInfo],
        pages: List[ExtractedPage],
        deadline: Optional[ParseDeadline] = None
    ) -> Tuple[ExtractionResult, List[SheetParseResult]]:
        """Run extract_sheet over the worklist, checking the deadline between sheets"""
        page_text = {p.page_number: p.text for p in pages}
        combined = ExtractionResult()
        sheet_results: List[SheetParseResult] = []

        for sheet in sheets:
            if deadline:
                deadline.check(f"room extraction for page {sheet.page_number}")
            result, sheet_result = self.extract_sheet(sheet, page_text.get(sheet.page_number, ""))
            combined.rooms.extend(result.rooms)
            combined.assumptions.extend(result.assumptions)
            combined.warnings.extend(result.warnings)
            combined.missing_info.extend(result.missing_info)
            if sheet_result:
                sheet_results.append(sheet_result)

        for sr in sheet_results:
            types: Dict[str, int] = {}
            for room in sr.rooms:
                types[room.type.value] = types.get(room.type.value, 0) + 1
            logger.info(f"Sheet p{sr.sheet_id} \"{sr.sheet_title}\" ({sr.detected_level}): "
                        f"{len(sr.rooms)} rooms {types}")

        return combined, sheet_results

    def extract_legacy(self, pages: List[ExtractedPage]) -> ExtractionResult:
        """
        Last resort when no sheet qualified: one call over the first pages
        that have any text. Returns an empty result when none do.
        """
        prefix = [p for p in pages[:self.config.legacy_prefix_pages] if p.text.strip()]
        if not prefix:
            return ExtractionResult()

        text = "\n\n".join(f"=== PAGE {p.page_number} ===\n{p.text}" for p in prefix)
        try:
            payload = self.backend.extract_rooms(text, None)
        except InferenceError as e:
            logger.warning(f"Legacy room extraction failed: {e}")
            return ExtractionResult(warnings=[
                LEGACY_FALLBACK_WARNING,
                "AI room extraction failed. Please add rooms manually."
            ])

        result = build_extraction_result(payload)
        return result.model_copy(update={
            "rooms": post_process_by_level(result.rooms),
            "warnings": [LEGACY_FALLBACK_WARNING] + result.warnings
        })
