"""
Pytest configuration and fixtures
"""
import base64
import io
import os
import tempfile

# Point the module-level engine at a throwaway database before anything imports it
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/planscope_test.db")

import fitz  # PyMuPDF
import pytest
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import models.db_models  # noqa: F401
from services.error_types import InferenceError
from services.inference_backend import InferenceBackend
from services.storage import StorageService


# Marks "no scripted classification payload"; None is itself a payload under test
UNSCRIPTED = object()


class FakeBackend(InferenceBackend):
    """
    Scripted inference backend.

    Rooms for the text path are keyed by page number (sheet calls) or
    "legacy" (prefix calls). Any method named in `failing` raises
    InferenceError.
    """

    def __init__(self):
        self.classifications = UNSCRIPTED
        self.rooms_by_page = {}
        self.legacy_rooms = []
        self.image_rooms = []
        self.url_rooms = []
        self.line_items = None
        self.failing = set()
        self.calls = []

    def _record(self, name, arg=None):
        self.calls.append((name, arg))
        if name in self.failing:
            raise InferenceError(f"{name} unavailable")

    def calls_to(self, name):
        return [arg for call, arg in self.calls if call == name]

    def classify(self, pages):
        self._record("classify", [p["page_number"] for p in pages])
        if self.classifications is not UNSCRIPTED:
            return self.classifications
        return [
            {"page_number": p["page_number"], "type": "floor_plan", "confidence": 90,
             "has_room_labels": True, "reason": "Room labels present"}
            for p in pages
        ]

    def extract_rooms(self, text, sheet=None):
        key = sheet.page_number if sheet else "legacy"
        self._record("extract_rooms", key)
        rooms = self.rooms_by_page.get(key, []) if sheet else self.legacy_rooms
        return {"rooms": [dict(r) for r in rooms], "assumptions": [], "warnings": []}

    def extract_rooms_from_images(self, images):
        self._record("extract_rooms_from_images", [i.page_number for i in images])
        return {"rooms": [dict(r) for r in self.image_rooms]}

    def extract_rooms_from_url(self, url):
        self._record("extract_rooms_from_url", url)
        return {"rooms": [dict(r) for r in self.url_rooms]}

    def scaffold_line_items(self, rooms):
        self._record("scaffold_line_items", [r.name for r in rooms])
        if self.line_items is not None:
            return self.line_items
        return [
            {"description": f"Paint walls - {r.name}", "category": "Finishes", "cost_code": "099",
             "room_name": r.name, "quantity": 1, "unit": "LS"}
            for r in rooms
        ]


def build_pdf(page_texts):
    """PDF bytes with one page per entry; empty strings become blank pages"""
    doc = fitz.open()
    try:
        for text in page_texts:
            page = doc.new_page()
            if text:
                page.insert_text((72, 72), text, fontsize=11)
        return doc.tobytes()
    finally:
        doc.close()


def build_png(width=64, height=64):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def png_bytes():
    return build_png()


@pytest.fixture
def page_image_b64():
    """A rendered page as the client would post it"""
    return base64.b64encode(build_png(400, 300)).decode()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    """Local storage bucket without a public URL"""
    root = tmp_path / "uploads"
    root.mkdir()
    return StorageService(str(root), public_base_url="")


@pytest.fixture
def public_storage(tmp_path):
    """Local storage bucket that exposes public URLs"""
    root = tmp_path / "public-uploads"
    root.mkdir()
    return StorageService(str(root), public_base_url="https://files.example.com")


# Room payloads shared by pipeline tests
FIRST_FLOOR_ROOMS = [
    {"name": "Kitchen", "type": "kitchen", "dimensions": "12' x 14'", "confidence": 90},
    {"name": "Living Room", "type": "living", "area_sqft": 320, "confidence": 85},
    {"name": "Powder Room", "type": "bathroom", "confidence": 80},
]

SECOND_FLOOR_ROOMS = [
    {"name": "Primary Bedroom", "type": "bedroom", "confidence": 90},
    {"name": "Hall Bathroom", "type": "bathroom", "confidence": 85},
    {"name": "Office", "type": "office", "confidence": 75},
]

FIRST_FLOOR_TEXT = "FIRST FLOOR PLAN\nKITCHEN 12x14\nLIVING ROOM\nPOWDER ROOM\nScale 1/4 inch = 1 foot"
SECOND_FLOOR_TEXT = "SECOND FLOOR PLAN\nPRIMARY BEDROOM\nHALL BATHROOM\nOFFICE\nScale 1/4 inch = 1 foot"


@pytest.fixture
def two_floor_pdf():
    return build_pdf([FIRST_FLOOR_TEXT, SECOND_FLOOR_TEXT])


@pytest.fixture
def room_fixtures():
    return {"first": FIRST_FLOOR_ROOMS, "second": SECOND_FLOOR_ROOMS}
