"""
Sheet grouping: promotes enriched classifications to the deep-extraction worklist
"""

import logging
from typing import List, Dict, Optional

from models.enums import SheetType
from services.pipeline_config import pipeline_config, PipelineConfig
from services.plan_contracts import PageClassification, SheetInfo, DEFAULT_LEVEL

logger = logging.getLogger(__name__)


def is_admitted(classification: PageClassification, config: Optional[PipelineConfig] = None) -> bool:
    """
    A page qualifies when it is a floor plan with enough confidence, carries
    room labels, or is a schedule with enough confidence.
    """
    config = config or pipeline_config
    if classification.type == SheetType.floor_plan and classification.confidence >= config.floor_plan_min_confidence:
        return True
    if classification.has_room_labels:
        return True
    return (classification.type == SheetType.schedule
            and classification.confidence >= config.schedule_min_confidence)


def _priority(classification: PageClassification) -> int:
    if classification.type == SheetType.floor_plan:
        return 0
    if classification.has_room_labels:
        return 1
    return 2


def group_sheets(
    classifications: List[PageClassification],
    config: Optional[PipelineConfig] = None
) -> List[SheetInfo]:
    """
    Build the SheetInfo worklist.

    When more pages qualify than `max_deep_parse_sheets`, floor plans are kept
    first, then pages with room labels, then schedules. The worklist is
    returned in page order.
    """
    config = config or pipeline_config
    admitted = [c for c in classifications if is_admitted(c, config)]
    admitted.sort(key=lambda c: (_priority(c), c.page_number))
    selected = sorted(admitted[:config.max_deep_parse_sheets], key=lambda c: c.page_number)

    if len(admitted) > len(selected):
        logger.info(f"Capped deep-parse worklist at {len(selected)} of {len(admitted)} qualifying pages")

    return [
        SheetInfo(
            page_number=c.page_number,
            sheet_title=c.sheet_title or "Untitled Sheet",
            detected_level=c.detected_level or DEFAULT_LEVEL,
            classification=c.type,
            confidence=c.confidence
        )
        for c in selected
    ]


def sheets_by_level(sheets: List[SheetInfo]) -> Dict[str, List[int]]:
    """Level -> page numbers, for logging the sheet/level map"""
    grouped: Dict[str, List[int]] = {}
    for sheet in sheets:
        grouped.setdefault(sheet.detected_level, []).append(sheet.page_number)
    return grouped
