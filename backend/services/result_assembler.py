"""
Result Assembler - builds the response payload for a parse job

Every successful run returns at least one room: when nothing was detected
the sentinel "General / Scope Notes" room and one placeholder line item are
substituted so the review screen always has something to edit.
"""

import uuid
import logging
from typing import List, Dict, Any, Optional

from services.error_types import PlanParseError
from services.plan_contracts import (
    ParseAccumulator, ExtractedRoom, LineItemScaffold, DEFAULT_LEVEL
)
from models.enums import RoomType

logger = logging.getLogger(__name__)

NO_ROOMS_WARNING = "No rooms detected in the uploaded plans. A general scope room was added instead."

FALLBACK_ROOM = ExtractedRoom(
    name="General / Scope Notes",
    level=DEFAULT_LEVEL,
    type=RoomType.other,
    confidence=0,
    notes=("We couldn't detect specific rooms from your plans. You can rename this room "
           "and add line items manually, or try uploading clearer floor plan pages.")
)

FALLBACK_LINE_ITEMS = [
    LineItemScaffold(
        description="General scope item - add details",
        category="General",
        cost_code="999",
        room_name=FALLBACK_ROOM.name,
        quantity=1,
        unit="LS",
        notes="Placeholder item - update with actual scope"
    )
]


def room_payload(room: ExtractedRoom) -> Dict[str, Any]:
    data = room.model_dump(mode="json")
    data["id"] = str(uuid.uuid4())
    data["is_included"] = True
    return data


def _line_item_payload(item: LineItemScaffold) -> Dict[str, Any]:
    data = item.model_dump(mode="json")
    data["id"] = str(uuid.uuid4())
    # Always present, always null
    data["direct_cost"] = None
    data["client_price"] = None
    data["margin"] = None
    return data


def assemble_payload(
    acc: ParseAccumulator,
    scaffolds: List[LineItemScaffold],
    job_id: str,
    processing_time_ms: int
) -> Dict[str, Any]:
    """
    Build the success payload from the merged, deduplicated accumulator.

    Args:
        acc: Run accumulator (rooms already deduplicated)
        scaffolds: Validated line item scaffolds
        job_id: Parse job id returned as planParseId
        processing_time_ms: Elapsed wall-clock time

    Returns:
        JSON-serializable response payload
    """
    rooms = acc.rooms
    warnings = list(acc.warnings)
    if not rooms:
        logger.info(f"Job {job_id}: no rooms detected, substituting sentinel room")
        rooms = [FALLBACK_ROOM]
        scaffolds = list(FALLBACK_LINE_ITEMS)
        warnings.append(NO_ROOMS_WARNING)

    return {
        "success": True,
        "planParseId": job_id,
        "rooms": [room_payload(r) for r in rooms],
        "lineItemScaffold": [_line_item_payload(i) for i in scaffolds],
        "sheets": [s.model_dump(mode="json") for s in acc.sheets],
        "sheetsDetected": len(acc.sheets),
        "assumptions": list(dict.fromkeys(acc.assumptions)),
        "warnings": list(dict.fromkeys(warnings)),
        "missingInfo": list(dict.fromkeys(acc.missing_info)),
        "pageClassifications": [c.model_dump(mode="json") for c in acc.classifications],
        "totalPages": acc.total_pages,
        "relevantPages": sorted(set(acc.relevant_pages)),
        "processingTimeMs": processing_time_ms,
    }


def fallback_payload(job_id: Optional[str], message: str, processing_time_ms: int = 0) -> Dict[str, Any]:
    """Safe payload returned alongside a failed job"""
    return {
        "success": False,
        "planParseId": job_id,
        "rooms": [room_payload(FALLBACK_ROOM)],
        "lineItemScaffold": [_line_item_payload(i) for i in FALLBACK_LINE_ITEMS],
        "sheets": [],
        "sheetsDetected": 0,
        "assumptions": [],
        "warnings": [message],
        "missingInfo": [],
        "pageClassifications": [],
        "totalPages": 0,
        "relevantPages": [],
        "processingTimeMs": processing_time_ms,
    }


def friendly_error_message(error: Exception) -> str:
    """Map a technical failure to text a user can act on"""
    raw = error.message if isinstance(error, PlanParseError) else str(error)
    text = raw.lower()

    if "openai" in text or "api key" in text or "api_key" in text:
        return "AI service is temporarily unavailable. Please try again in a few minutes."
    if "scanned" in text:
        return ("This PDF appears to be scanned. For best results, upload a PDF exported "
                "directly from your design software.")
    if "no rooms" in text:
        return "We could not identify rooms in these plans. Try uploading the floor plan pages only."
    if "corrupted" in text or "invalid" in text:
        return "The file couldn't be read. Please check that it is a valid PDF or image and try again."
    if "timeout" in text or "timed out" in text or "time budget" in text:
        return "Plan parsing took too long. Try uploading fewer pages or a smaller file."
    if "unauthorized" in text:
        return "Your session has expired. Please sign in again."

    first_line = raw.strip().splitlines()[0] if raw.strip() else "Plan parsing failed."
    return first_line[:200]
