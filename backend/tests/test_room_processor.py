"""
Tests for deterministic room post-processing
"""

import pytest

from services.plan_contracts import ExtractedRoom
from services.room_processor import (
    detect_level, extract_sheet_title, parse_dimensions, clean_room_name,
    apply_deterministic_names, post_process_rooms, post_process_by_level
)


class TestParseDimensions:

    @pytest.mark.parametrize("text,expected", [
        ("12'-6\" x 14'-0\"", (12.5, 14.0)),
        ("12'6\" x 14'3\"", (12.5, 14.25)),
        ("12' x 14'", (12.0, 14.0)),
        ("12x14", (12.0, 14.0)),
        ("12.5 x 14.5", (12.5, 14.5)),
    ])
    def test_formats(self, text, expected):
        assert parse_dimensions(text) == expected

    @pytest.mark.parametrize("text", [None, "", "n/a", "approx. large"])
    def test_unparseable(self, text):
        assert parse_dimensions(text) is None


class TestLevels:

    def test_title_wins(self):
        assert detect_level("SECOND FLOOR PLAN", "BASEMENT notes") == "Level 2"

    def test_falls_back_to_page_header(self):
        assert detect_level("Untitled Sheet", "BASEMENT PLAN\nMECH ROOM") == "Basement"

    def test_garage_before_numbered_level(self):
        assert detect_level("GARAGE - LEVEL 1") == "Garage"

    def test_sheet_numbers(self):
        assert detect_level("A2-01 PLAN") == "Level 2"

    def test_default(self):
        assert detect_level("", "") == "Level 1"


class TestSheetTitle:

    def test_title_block_match(self):
        assert extract_sheet_title("A1.1\nFIRST FLOOR PLAN\nKITCHEN") == "FIRST FLOOR PLAN"

    def test_first_reasonable_line(self):
        assert extract_sheet_title("ab\nProject Title Sheet\nnotes") == "Project Title Sheet"

    def test_untitled(self):
        assert extract_sheet_title("") == "Untitled Sheet"


class TestNaming:

    @pytest.mark.parametrize("raw,expected", [
        ("MBR", "Master Bedroom"),
        ("br 2", "Bedroom"),
        ("living room - Level 2", "Living Room"),
        ("WALK IN PANTRY", "Walk In Pantry"),
    ])
    def test_clean_room_name(self, raw, expected):
        assert clean_room_name(raw) == expected

    def test_repeated_names_numbered(self):
        rooms = [ExtractedRoom(name=n) for n in ("Bedroom", "Bedroom", "Kitchen")]
        named = apply_deterministic_names(rooms, "Level 2")
        assert [r.name for r in named] == ["Bedroom 1", "Bedroom 2", "Kitchen"]
        assert {r.level for r in named} == {"Level 2"}

    def test_numbering_never_changes_count(self):
        rooms = [ExtractedRoom(name=n) for n in ("Bath 1", "Bath 2", "Bath")]
        assert len(apply_deterministic_names(rooms, "Level 1")) == 3

    def test_dimensions_fill_length_and_width(self):
        rooms = [
            ExtractedRoom(name="Den", dimensions="12x14"),
            ExtractedRoom(name="Office", dimensions="10x10", length_ft=11),
        ]
        processed = post_process_rooms(rooms, "Level 1")
        assert (processed[0].length_ft, processed[0].width_ft) == (12.0, 14.0)
        assert (processed[1].length_ft, processed[1].width_ft) == (11, 10.0)

    def test_by_level_keeps_levels_apart(self):
        rooms = [
            ExtractedRoom(name="Bedroom", level="Level 1"),
            ExtractedRoom(name="Bedroom", level="Level 2"),
        ]
        processed = post_process_by_level(rooms)
        assert [(r.name, r.level) for r in processed] == [("Bedroom", "Level 1"), ("Bedroom", "Level 2")]
