"""
Enums for PlanScope models to ensure type safety and consistency
"""

from enum import Enum


class SheetType(str, Enum):
    """Closed set of page classifications"""
    floor_plan = 'floor_plan'
    schedule = 'schedule'
    notes = 'notes'
    elevation = 'elevation'
    cover = 'cover'
    other = 'other'


class RoomType(str, Enum):
    """Room-type tags the extractor can assign"""
    bedroom = 'bedroom'
    bathroom = 'bathroom'
    kitchen = 'kitchen'
    living = 'living'
    dining = 'dining'
    garage = 'garage'
    closet = 'closet'
    utility = 'utility'
    laundry = 'laundry'
    hallway = 'hallway'
    foyer = 'foyer'
    office = 'office'
    basement = 'basement'
    attic = 'attic'
    deck = 'deck'
    patio = 'patio'
    porch = 'porch'
    mudroom = 'mudroom'
    pantry = 'pantry'
    storage = 'storage'
    mechanical = 'mechanical'
    other = 'other'


class DocumentType(str, Enum):
    """Text-density signature of a PDF"""
    vector = 'vector'
    scanned = 'scanned'
    mixed = 'mixed'


class FileKind(str, Enum):
    """Container kind of an uploaded file"""
    image = 'image'
    pdf = 'pdf'


# Loose labels the classifier model may return, keyed by the label with
# everything except letters and underscores removed
SHEET_TYPE_ALIASES = {
    'floor_plan': SheetType.floor_plan,
    'floorplan': SheetType.floor_plan,
    'plan': SheetType.floor_plan,
    'schedule': SheetType.schedule,
    'room_schedule': SheetType.schedule,
    'roomschedule': SheetType.schedule,
    'finish_schedule': SheetType.schedule,
    'finishschedule': SheetType.schedule,
    'notes': SheetType.notes,
    'specs': SheetType.notes,
    'specifications': SheetType.notes,
    'elevation': SheetType.elevation,
    'elevations': SheetType.elevation,
    'section': SheetType.elevation,
    'cover': SheetType.cover,
    'title': SheetType.cover,
    'index': SheetType.cover,
    'other': SheetType.other,
}

ROOM_TYPE_ALIASES = {
    'bath': RoomType.bathroom,
    'livingroom': RoomType.living,
    'diningroom': RoomType.dining,
    'hall': RoomType.hallway,
    'entry': RoomType.foyer,
    'study': RoomType.office,
}


def normalize_sheet_type(value) -> SheetType:
    """Coerce a backend-provided page type to the closed enum"""
    if isinstance(value, SheetType):
        return value
    if not isinstance(value, str):
        return SheetType.other
    key = ''.join(ch for ch in value.lower() if ch.isalpha() or ch == '_')
    return SHEET_TYPE_ALIASES.get(key, SheetType.other)


def normalize_room_type(value) -> RoomType:
    """Coerce a backend-provided room type to the closed vocabulary"""
    if isinstance(value, RoomType):
        return value
    if not isinstance(value, str):
        return RoomType.other
    key = ''.join(ch for ch in value.lower() if ch.isalpha())
    if key in ROOM_TYPE_ALIASES:
        return ROOM_TYPE_ALIASES[key]
    try:
        return RoomType(key)
    except ValueError:
        return RoomType.other
