"""
Tests for room deduplication and summaries
"""

from services.deduplicator import deduplicate_rooms, summarize_rooms
from services.plan_contracts import ExtractedRoom


def rooms():
    return [
        ExtractedRoom(name="Kitchen", level="Level 1", confidence=60, notes="first"),
        ExtractedRoom(name=" kitchen ", level="level 1", confidence=95, notes="second"),
        ExtractedRoom(name="Kitchen", level="Level 2"),
        ExtractedRoom(name="Bath", level=None, type="bathroom"),
        ExtractedRoom(name="BATH", level="Level 1"),
    ]


class TestDeduplicateRooms:

    def test_first_seen_wins(self):
        unique = deduplicate_rooms(rooms())
        assert len(unique) == 3
        kitchen = unique[0]
        assert kitchen.notes == "first"
        assert kitchen.confidence == 60

    def test_levels_distinguish_rooms(self):
        keys = [r.dedup_key() for r in deduplicate_rooms(rooms())]
        assert keys == ["level 1::kitchen", "level 2::kitchen", "level 1::bath"]

    def test_idempotent(self):
        once = deduplicate_rooms(rooms())
        assert deduplicate_rooms(once) == once

    def test_keys_unique_after_dedup(self):
        keys = [r.dedup_key() for r in deduplicate_rooms(rooms() + rooms())]
        assert len(keys) == len(set(keys))

    def test_empty(self):
        assert deduplicate_rooms([]) == []


class TestSummarizeRooms:

    def test_counts(self):
        summary = summarize_rooms(deduplicate_rooms(rooms()))
        assert summary["total"] == 3
        assert summary["by_level"] == {"Level 1": 2, "Level 2": 1}
        assert summary["by_type"] == {"other": 2, "bathroom": 1}
