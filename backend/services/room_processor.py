"""
Deterministic room post-processing

Level detection and sheet titles for classified pages, dimension string
parsing, and stable room naming within a sheet. Everything here is pure
text processing; no model calls.
"""

import re
import logging
from collections import Counter
from typing import List, Optional, Tuple

from services.plan_contracts import ExtractedRoom, DEFAULT_LEVEL

logger = logging.getLogger(__name__)

CANONICAL_LEVELS = [
    'Basement', 'Level 1', 'Level 2', 'Level 3', 'Level 4', 'Garage', 'Attic', 'Roof'
]

# Order matters: specific patterns first, garage before numbered levels
LEVEL_PATTERNS = [
    (re.compile(r'\bbasement\b', re.I), 'Basement'),
    (re.compile(r'\blower\s*level\b', re.I), 'Basement'),
    (re.compile(r'\bcellar\b', re.I), 'Basement'),
    (re.compile(r'\bgarage\b', re.I), 'Garage'),
    (re.compile(r'\battic\b', re.I), 'Attic'),
    (re.compile(r'\broof\s*(?:plan|level)?\b', re.I), 'Roof'),
    (re.compile(r'\blevel\s*4\b', re.I), 'Level 4'),
    (re.compile(r'\blevel\s*3\b', re.I), 'Level 3'),
    (re.compile(r'\blevel\s*2\b', re.I), 'Level 2'),
    (re.compile(r'\blevel\s*1\b', re.I), 'Level 1'),
    (re.compile(r'\b(?:4th|fourth)\s*floor\b', re.I), 'Level 4'),
    (re.compile(r'\b(?:3rd|third)\s*floor\b', re.I), 'Level 3'),
    (re.compile(r'\b(?:2nd|second)\s*floor\b', re.I), 'Level 2'),
    (re.compile(r'\b(?:1st|first|ground)\s*floor\b', re.I), 'Level 1'),
    (re.compile(r'\bmain\s*(?:level|floor)\b', re.I), 'Level 1'),
    (re.compile(r'\bupper\s*(?:level|floor|story)\b', re.I), 'Level 2'),
    (re.compile(r'\blower\s*(?:floor|story)\b', re.I), 'Level 1'),
    # Sheet numbers: A1-01 is level 1, A2-01 is level 2
    (re.compile(r'\bA-?1[-\s]', re.I), 'Level 1'),
    (re.compile(r'\bA-?2[-\s]', re.I), 'Level 2'),
    (re.compile(r'\bA-?3[-\s]', re.I), 'Level 3'),
]

SHEET_TITLE_PATTERN = re.compile(r'floor\s*plan|level\s*\d|basement|garage|attic', re.I)

ABBREVIATIONS = {
    'mbr': 'Master Bedroom',
    'mba': 'Master Bathroom',
    'mbath': 'Master Bathroom',
    'br': 'Bedroom',
    'ba': 'Bathroom',
    'kit': 'Kitchen',
    'lr': 'Living Room',
    'dr': 'Dining Room',
    'fr': 'Family Room',
    'gr': 'Great Room',
    'gar': 'Garage',
    'lndry': 'Laundry',
    'util': 'Utility',
    'mech': 'Mechanical',
    'wic': 'Walk-in Closet',
    'pwdr': 'Powder Room',
    'foy': 'Foyer',
    'pnt': 'Pantry',
    'mud': 'Mudroom',
}

_LEVEL_SUFFIX = re.compile(r'\s*[-–—]\s*Level\s*\d+', re.I)
_NAMED_LEVEL_SUFFIX = re.compile(r'\s*[-–—]\s*(?:Basement|Garage|Attic|Roof)', re.I)

_FEET_INCHES = re.compile(
    r"(\d+)'[-\s]?(\d+)?\"?\s*[xX×]\s*(\d+)'[-\s]?(\d+)?\"?"
)
_FEET_ONLY = re.compile(r"(\d+(?:\.\d+)?)['\s]*[xX×]\s*(\d+(?:\.\d+)?)['\s]*")


def detect_level(sheet_title: str, page_text: Optional[str] = None) -> str:
    """
    Canonical building level from the sheet title, then the top of the page.

    Returns:
        One of CANONICAL_LEVELS; "Level 1" when nothing matches
    """
    for pattern, level in LEVEL_PATTERNS:
        if pattern.search(sheet_title or ''):
            return level

    if page_text:
        header = page_text[:500]
        for pattern, level in LEVEL_PATTERNS:
            if pattern.search(header):
                return level

    return DEFAULT_LEVEL


def extract_sheet_title(page_text: str) -> str:
    """Title-block heuristic over the first lines of a page"""
    lines = [line.strip() for line in (page_text or '').split('\n') if line.strip()]

    for line in lines[:15]:
        if SHEET_TITLE_PATTERN.search(line):
            return line[:100]

    for line in lines[:5]:
        if 5 < len(line) < 120:
            return line

    return 'Untitled Sheet'


def parse_dimensions(dim_string: Optional[str]) -> Optional[Tuple[float, float]]:
    """
    Parse a dimension string into (length_ft, width_ft).

    Handles 12'-6" x 14'-0", 12'6" x 14'3", 12' x 14', 12x14 and 12.5 x 14.5.
    """
    if not dim_string:
        return None

    cleaned = (dim_string
               .replace('‘', "'").replace('’', "'")
               .replace('“', "'").replace('”', "'")
               .replace('″', '"').replace('′', "'"))
    cleaned = re.sub(r'\s+', ' ', cleaned).strip()

    match = _FEET_INCHES.search(cleaned)
    if match:
        ft1, in1, ft2, in2 = match.groups()
        return (round(int(ft1) + int(in1 or 0) / 12, 2),
                round(int(ft2) + int(in2 or 0) / 12, 2))

    match = _FEET_ONLY.search(cleaned)
    if match:
        return round(float(match.group(1)), 2), round(float(match.group(2)), 2)

    return None


def _strip_level_suffix(name: str) -> str:
    return _NAMED_LEVEL_SUFFIX.sub('', _LEVEL_SUFFIX.sub('', name, count=1), count=1).strip()


def extract_base_name(name: str) -> str:
    """Grouping key for numbering: "Bathroom 1" and "Bathroom" share "Bathroom" """
    base = _strip_level_suffix(name)
    base = re.sub(r'\s+\d+\s*$', '', base)
    base = re.sub(r'\s*#\d+\s*$', '', base)
    return base.strip()


def clean_room_name(name: str) -> str:
    """Expand plan abbreviations and title-case the rest"""
    cleaned = _strip_level_suffix(name)
    lower = cleaned.lower().strip()

    if lower in ABBREVIATIONS:
        return ABBREVIATIONS[lower]

    match = re.match(r'^([a-z]+)\s*(\d+)?$', lower)
    if match and match.group(1) in ABBREVIATIONS:
        return ABBREVIATIONS[match.group(1)]

    return ' '.join(word[:1].upper() + word[1:].lower() for word in cleaned.split()).strip()


def apply_deterministic_names(rooms: List[ExtractedRoom], level: str) -> List[ExtractedRoom]:
    """
    Stable naming within one sheet: unique names are cleaned, repeated base
    names are numbered ("Bedroom 1", "Bedroom 2"). The room count never changes.
    """
    if not rooms:
        return []

    base_counts = Counter(extract_base_name(room.name) for room in rooms)
    counters: Counter = Counter()

    named = []
    for room in rooms:
        base = extract_base_name(room.name)
        if base_counts[base] == 1:
            display = clean_room_name(room.name)
        else:
            counters[base] += 1
            display = f"{clean_room_name(base)} {counters[base]}"
        named.append(room.model_copy(update={"name": (display or room.name)[:100], "level": level}))
    return named


def post_process_rooms(rooms: List[ExtractedRoom], level: str) -> List[ExtractedRoom]:
    """Fill length/width from dimension strings, then apply deterministic names"""
    with_dimensions = []
    for room in rooms:
        parsed = parse_dimensions(room.dimensions)
        length_ft, width_ft = parsed if parsed else (None, None)
        with_dimensions.append(room.model_copy(update={
            "level": level,
            "length_ft": room.length_ft if room.length_ft is not None else length_ft,
            "width_ft": room.width_ft if room.width_ft is not None else width_ft,
        }))
    return apply_deterministic_names(with_dimensions, level)


def post_process_by_level(rooms: List[ExtractedRoom]) -> List[ExtractedRoom]:
    """Post-process rooms that carry their own levels (vision results), level by level"""
    by_level = {}
    for room in rooms:
        by_level.setdefault(room.level or DEFAULT_LEVEL, []).append(room)

    processed = []
    for level, level_rooms in by_level.items():
        processed.extend(post_process_rooms(level_rooms, level))
    return processed
