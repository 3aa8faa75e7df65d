"""
Plan Contracts - Strict Pydantic models for inter-stage data transfer
Backend payloads are validated here and coerced to closed enums so later
stages never branch on loose strings
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from pydantic import BaseModel, Field, validator

from models.enums import SheetType, RoomType, normalize_sheet_type, normalize_room_type

DEFAULT_LEVEL = "Level 1"

# Keys that must never carry a value on a line-item scaffold
PRICING_FIELDS = ("direct_cost", "client_price", "margin", "unit_cost", "price", "cost", "total")


def _clamp_confidence(value, default: int = 50) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(max(0, min(100, round(value))))


def _positive_or_none(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def _trimmed_or_none(value, max_length: int) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text[:max_length] if text else None


class ExtractedPage(BaseModel):
    """Text content of a single PDF page (1-based page number)"""
    page_number: int = Field(..., ge=1)
    text: str = ""
    has_text: bool = False

    class Config:
        frozen = True

    @classmethod
    def from_text(cls, page_number: int, text: Optional[str], min_chars: int = 20) -> "ExtractedPage":
        text = text or ""
        return cls(page_number=page_number, text=text, has_text=len(text.strip()) > min_chars)


class PageClassification(BaseModel):
    """Per-page classification, enriched with level and title after the backend call"""
    page_number: int = Field(..., ge=1)
    type: SheetType = SheetType.other
    confidence: int = Field(50, ge=0, le=100)
    has_room_labels: bool = False
    reason: Optional[str] = None
    detected_level: Optional[str] = None
    sheet_title: Optional[str] = None

    @validator('type', pre=True)
    def coerce_type(cls, v):
        return normalize_sheet_type(v)

    @validator('confidence', pre=True)
    def coerce_confidence(cls, v):
        return _clamp_confidence(v)

    @validator('has_room_labels', pre=True)
    def coerce_room_labels(cls, v):
        return bool(v)

    @validator('reason', pre=True)
    def truncate_reason(cls, v):
        return _trimmed_or_none(v, 100)


class SheetInfo(BaseModel):
    """A classified page admitted for deep room extraction"""
    page_number: int
    sheet_title: str
    detected_level: str
    classification: SheetType
    confidence: int


class ExtractedRoom(BaseModel):
    """A room reported by the text or vision extractor"""
    name: str = Field(..., min_length=1, max_length=100)
    level: str = DEFAULT_LEVEL
    type: RoomType = RoomType.other
    area_sqft: Optional[float] = None
    length_ft: Optional[float] = None
    width_ft: Optional[float] = None
    ceiling_height_ft: Optional[float] = None
    dimensions: Optional[str] = None
    notes: Optional[str] = None
    confidence: int = Field(50, ge=0, le=100)
    sheet_label: Optional[str] = None

    @validator('name', pre=True)
    def clean_name(cls, v):
        if v is None:
            return v
        return str(v).strip()[:100]

    @validator('level', pre=True)
    def default_level(cls, v):
        text = _trimmed_or_none(v, 50)
        return text or DEFAULT_LEVEL

    @validator('type', pre=True)
    def coerce_type(cls, v):
        return normalize_room_type(v)

    @validator('area_sqft', 'length_ft', 'width_ft', 'ceiling_height_ft', pre=True)
    def positive_measurements(cls, v):
        return _positive_or_none(v)

    @validator('dimensions', pre=True)
    def truncate_dimensions(cls, v):
        return _trimmed_or_none(v, 50)

    @validator('notes', pre=True)
    def truncate_notes(cls, v):
        return _trimmed_or_none(v, 500)

    @validator('confidence', pre=True)
    def coerce_confidence(cls, v):
        return _clamp_confidence(v)

    def dedup_key(self) -> str:
        """Canonical identity: lower(level or "Level 1") :: lower(trim(name))"""
        return f"{(self.level or DEFAULT_LEVEL).lower()}::{self.name.strip().lower()}"


class LineItemScaffold(BaseModel):
    """
    An unpriced placeholder line item.

    Pricing fields exist only so consumers see them as null; any other value
    is rejected at construction and the model is frozen against assignment.
    """
    description: str = Field(..., min_length=1, max_length=200)
    category: str = "Other"
    cost_code: Optional[str] = Field("999", max_length=10)
    room_name: str = "General"
    quantity: Optional[float] = None
    unit: Optional[str] = None
    notes: Optional[str] = None
    direct_cost: Optional[float] = None
    client_price: Optional[float] = None
    margin: Optional[float] = None

    class Config:
        frozen = True
        extra = "ignore"

    @validator('description', pre=True)
    def clean_description(cls, v):
        if v is None:
            return v
        return str(v).strip()[:200]

    @validator('category', pre=True)
    def default_category(cls, v):
        return _trimmed_or_none(v, 100) or "Other"

    @validator('room_name', pre=True)
    def default_room_name(cls, v):
        return _trimmed_or_none(v, 100) or "General"

    @validator('cost_code', pre=True)
    def clean_cost_code(cls, v):
        text = _trimmed_or_none(v, 10)
        return text or "999"

    @validator('quantity', pre=True)
    def positive_quantity(cls, v):
        return _positive_or_none(v)

    @validator('unit', 'notes', pre=True)
    def optional_text(cls, v):
        return _trimmed_or_none(v, 500)

    @validator('direct_cost', 'client_price', 'margin', pre=True)
    def no_pricing(cls, v):
        if v is not None:
            raise ValueError("line item scaffolds never carry pricing")
        return v


class SheetParseResult(BaseModel):
    """Rooms found on one sheet, kept for the review UI"""
    sheet_id: int
    sheet_title: str
    detected_level: str
    classification: SheetType
    confidence: int
    rooms: List[ExtractedRoom] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Rooms plus advisory notes from one extraction attempt"""
    rooms: List[ExtractedRoom] = Field(default_factory=list)
    assumptions: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    missing_info: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rooms

    @classmethod
    def failed(cls, warning: str) -> "ExtractionResult":
        return cls(warnings=[warning])


@dataclass
class ParseAccumulator:
    """
    Explicit accumulator threaded through the stages of one run.

    Each file gets its own accumulator; it is merged into the run's
    accumulator only when the file finishes.
    """
    rooms: List[ExtractedRoom] = field(default_factory=list)
    sheets: List[SheetParseResult] = field(default_factory=list)
    assumptions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    missing_info: List[str] = field(default_factory=list)
    classifications: List[PageClassification] = field(default_factory=list)
    relevant_pages: List[int] = field(default_factory=list)
    total_pages: int = 0
    vision_invocations: int = 0

    def add_result(self, result: ExtractionResult) -> None:
        self.rooms.extend(result.rooms)
        self.assumptions.extend(result.assumptions)
        self.warnings.extend(result.warnings)
        self.missing_info.extend(result.missing_info)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def merge(self, other: "ParseAccumulator") -> None:
        self.rooms.extend(other.rooms)
        self.sheets.extend(other.sheets)
        self.assumptions.extend(other.assumptions)
        self.warnings.extend(other.warnings)
        self.missing_info.extend(other.missing_info)
        self.classifications.extend(other.classifications)
        self.relevant_pages.extend(other.relevant_pages)
        self.total_pages += other.total_pages
        self.vision_invocations += other.vision_invocations

    def summary(self) -> Dict[str, Any]:
        return {
            "rooms": len(self.rooms),
            "sheets": len(self.sheets),
            "warnings": len(self.warnings),
            "total_pages": self.total_pages,
            "vision_invocations": self.vision_invocations,
        }
