"""
Room deduplication across sheets and files
"""

import logging
from typing import List, Dict, Any

from services.plan_contracts import ExtractedRoom

logger = logging.getLogger(__name__)


def deduplicate_rooms(rooms: List[ExtractedRoom]) -> List[ExtractedRoom]:
    """
    Keep the first room seen for each (level, name) key.

    Order of the survivors is preserved, so running this twice returns the
    same list.
    """
    seen = set()
    unique = []
    for room in rooms:
        key = room.dedup_key()
        if key in seen:
            logger.debug(f"Dropping duplicate room {key}")
            continue
        seen.add(key)
        unique.append(room)

    if len(unique) < len(rooms):
        logger.info(f"Deduplicated {len(rooms)} rooms to {len(unique)}")
    return unique


def summarize_rooms(rooms: List[ExtractedRoom]) -> Dict[str, Any]:
    """Totals per level and per type"""
    by_level: Dict[str, int] = {}
    by_type: Dict[str, int] = {}
    for room in rooms:
        by_level[room.level] = by_level.get(room.level, 0) + 1
        by_type[room.type.value] = by_type.get(room.type.value, 0) + 1

    summary = {"total": len(rooms), "by_level": by_level, "by_type": by_type}
    logger.info(f"Room summary: {summary['total']} total, by level {by_level}, by type {by_type}")
    return summary
