"""
Inference Backend - model calls used by the plan pipeline

The pipeline only depends on the InferenceBackend interface. The OpenAI
implementation returns the raw JSON payloads; validation and enum coercion
happen in the calling stage so a malformed response is never trusted.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional

from openai import OpenAI

from services.error_types import InferenceError
from services.inference_config import inference_config, InferenceConfig, ModelConfig
from services.pdf_to_images import PageImage, PDFToImages
from services.plan_contracts import ExtractedRoom, SheetInfo
from services.strict_json_parser import strict_parser
from utils.logging_utils import timed_operation

logger = logging.getLogger(__name__)

ROOM_TYPES_TEXT = (
    "bedroom, bathroom, kitchen, living, dining, garage, closet, utility, laundry, "
    "hallway, foyer, office, basement, attic, deck, patio, porch, mudroom, pantry, "
    "storage, mechanical, other"
)


class InferenceBackend(ABC):
    """External capability: page classification, room extraction, scaffolding"""

    @abstractmethod
    def classify(self, pages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """[{page_number, text}] -> [{page_number, type, confidence, has_room_labels, reason}]"""

    @abstractmethod
    def extract_rooms(self, text: str, sheet: Optional[SheetInfo] = None) -> Dict[str, Any]:
        """Sheet text -> {rooms, assumptions, warnings, missing_info}; no sheet means legacy multi-page text"""

    @abstractmethod
    def extract_rooms_from_images(self, images: List[PageImage]) -> Dict[str, Any]:
        """Rendered pages -> {rooms, assumptions, warnings, missing_info}"""

    @abstractmethod
    def extract_rooms_from_url(self, url: str) -> Dict[str, Any]:
        """Publicly resolvable file URL -> {rooms, assumptions, warnings, missing_info}"""

    @abstractmethod
    def scaffold_line_items(self, rooms: List[ExtractedRoom]) -> List[Dict[str, Any]]:
        """Deduplicated rooms -> raw line-item dicts (pricing is stripped by the caller)"""


CLASSIFY_PROMPT = """You are an expert at analyzing construction blueprint and plan documents.

Classify each page. For each page return:
1. page_number: the page number provided
2. type: one of floor_plan, schedule, notes, elevation, cover, other
3. confidence: 0-100
4. has_room_labels: true if the page contains room names (BEDROOM, KITCHEN, BATH, LIVING, ...)
5. reason: brief reason (max 50 characters)

Return JSON: {"pages": [{"page_number": 1, "type": "cover", "confidence": 95, "has_room_labels": false, "reason": "Title sheet"}]}

floor_plan pages (room layouts with walls, doors and labels) and room/finish schedules matter most."""

SHEET_PROMPT = """You are an expert construction estimator analyzing a SINGLE floor plan sheet.

THIS SHEET IS: "{title}"
BUILDING LEVEL: {level}

Extract every room and space shown on this sheet. For each: name (as labeled, abbreviations expanded),
type (one of: {room_types}), area_sqft (number or null), dimensions (string or null), notes, confidence (0-100).

Return JSON: {{"rooms": [...], "assumptions": [], "missing_info": [], "warnings": []}}

Report every distinct room; never merge two rooms with the same label. Do not include any pricing."""

LEGACY_PROMPT = """You are an expert construction estimator analyzing floor plans and blueprints.

Extract all rooms and spaces from the document. For each: name, type (one of: {room_types}),
level ("Level 1", "Level 2", "Basement", "Garage", "Attic" detected from the sheet context),
area_sqft, dimensions, notes, confidence (0-100).

Return JSON: {{"rooms": [...], "assumptions": [], "missing_info": [], "warnings": []}}

Never merge rooms. Set lower confidence for inferred rooms. Do not include any pricing."""

VISION_PROMPT = """You are an expert construction estimator analyzing floor plan images.

Extract every room and space you can identify. For each: name (as labeled, abbreviations expanded),
level ("Level 1", "Level 2", "Basement", "Garage", "Attic"; default "Level 1"),
type (one of: {room_types}), area_sqft, dimensions, notes, confidence (0-100).

Return JSON: {{"rooms": [...], "assumptions": [], "missing_info": [], "warnings": []}}

Report every distinct room; note when image quality limits the analysis. Do not include any pricing."""

SCAFFOLD_PROMPT = """You are an expert construction estimator. Generate typical line items for the given rooms.

Return JSON: {"items": [{"description": "Paint walls and ceiling", "category": "Paint", "cost_code": "723",
"room_name": "Master Bedroom", "quantity": null, "unit": "ROOM", "notes": null}]}

Cost codes: 723 Paint, 734 Wood Floor, 733 Vinyl Floor, 737 Carpet, 405 Electrical, 404 Plumbing,
728 Tile, 402 HVAC, 740 Lighting, 716 Cabinetry, 721 Countertops, 739 Plumbing Fixtures, 999 General.

3-5 key items per room. Quantities may be null. NEVER include unit costs, prices or any pricing."""


class OpenAIInferenceBackend(InferenceBackend):
    """InferenceBackend over the OpenAI chat completions API"""

    def __init__(self, config: Optional[InferenceConfig] = None, client: Optional[OpenAI] = None):
        self.config = config or inference_config
        self.client = client or OpenAI(
            api_key=self.config.openai_api_key,
            base_url=self.config.openai_base_url,
            timeout=self.config.request_timeout_seconds,
            max_retries=self.config.max_retries
        )

    def _complete(self, model: ModelConfig, system_prompt: str, user_content) -> Any:
        """
        One blocking chat completion returning parsed JSON.

        Raises:
            InferenceError: transport failure, empty content, or unparseable JSON
        """
        try:
            response = self.client.chat.completions.create(
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content}
                ],
                timeout=self.config.request_timeout_seconds,
                **model.get_api_params()
            )
        except Exception as e:
            raise InferenceError(f"{model.name} request failed: {e}", {"model": model.name})

        content = response.choices[0].message.content if response.choices else None
        data = strict_parser.extract_json(content)
        if data is None:
            raise InferenceError(f"{model.name} returned no parseable JSON", {"model": model.name})
        return data

    @timed_operation("inference.classify")
    def classify(self, pages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        limit = self.config.classify_chars_per_page
        body = "\n\n".join(f"--- PAGE {p['page_number']} ---\n{p['text'][:limit]}" for p in pages)
        data = self._complete(
            self.config.classifier,
            CLASSIFY_PROMPT,
            f"Classify these {len(pages)} pages:\n\n{body}"
        )
        entries = strict_parser.extract_list(data, ("pages", "classifications"))
        if entries is None:
            raise InferenceError("Classification response has no page list")
        return entries

    @timed_operation("inference.extract_rooms")
    def extract_rooms(self, text: str, sheet: Optional[SheetInfo] = None) -> Dict[str, Any]:
        if sheet is not None:
            limit = self.config.sheet_text_max_chars
            prompt = SHEET_PROMPT.format(title=sheet.sheet_title, level=sheet.detected_level,
                                         room_types=ROOM_TYPES_TEXT)
            user = f"Extract all rooms from this {sheet.detected_level} floor plan sheet:\n\n"
        else:
            limit = self.config.legacy_text_max_chars
            prompt = LEGACY_PROMPT.format(room_types=ROOM_TYPES_TEXT)
            user = "Extract all rooms from these pages:\n\n"

        if len(text) > limit:
            text = text[:limit] + "\n[... truncated ...]"
        return self._as_payload(self._complete(self.config.room_extractor, prompt, user + text))

    @timed_operation("inference.extract_rooms_from_images")
    def extract_rooms_from_images(self, images: List[PageImage]) -> Dict[str, Any]:
        content = [{"type": "text", "text": f"Analyze these {len(images)} floor plan page(s) and extract all rooms:"}]
        content.extend(PDFToImages.prepare_for_vision_api(images, self.config.vision.image_detail))
        return self._as_payload(self._complete(
            self.config.vision, VISION_PROMPT.format(room_types=ROOM_TYPES_TEXT), content
        ))

    @timed_operation("inference.extract_rooms_from_url")
    def extract_rooms_from_url(self, url: str) -> Dict[str, Any]:
        content = [
            {"type": "text", "text": "Analyze this floor plan and extract all rooms:"},
            {"type": "image_url", "image_url": {"url": url}}
        ]
        return self._as_payload(self._complete(
            self.config.vision, VISION_PROMPT.format(room_types=ROOM_TYPES_TEXT), content
        ))

    @timed_operation("inference.scaffold_line_items")
    def scaffold_line_items(self, rooms: List[ExtractedRoom]) -> List[Dict[str, Any]]:
        room_list = "\n".join(
            f"- {r.name} ({r.type.value}{f', {r.area_sqft:g} sqft' if r.area_sqft else ''})"
            for r in rooms
        )
        data = self._complete(
            self.config.scaffolder,
            SCAFFOLD_PROMPT,
            f"Generate line item scaffolds for these rooms:\n{room_list}"
        )
        items = strict_parser.extract_list(data, ("items", "line_items", "lineItems"))
        if items is None:
            raise InferenceError("Scaffold response has no item list")
        return items

    @staticmethod
    def _as_payload(data: Any) -> Dict[str, Any]:
        if isinstance(data, list):
            return {"rooms": data}
        if not isinstance(data, dict):
            raise InferenceError("Room extraction response is not a JSON object")
        return data


_backend: Optional[InferenceBackend] = None


def get_inference_backend() -> InferenceBackend:
    """
    Lazily build the default backend.

    Raises:
        ConfigurationError: OPENAI_API_KEY is not set
    """
    global _backend
    if _backend is None:
        inference_config.validate()
        _backend = OpenAIInferenceBackend(inference_config)
    return _backend


def set_inference_backend(backend: Optional[InferenceBackend]) -> None:
    """Install a backend (or clear it so the default is rebuilt)"""
    global _backend
    _backend = backend
