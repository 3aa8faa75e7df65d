"""
Vision Fallback Extractor

Rooms from page images or a public document URL when the text path cannot
be trusted. Strategies share one signature, `(VisionContext) -> result or
None`, and are tried in order as named chains; the first non-empty result
wins.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from models.enums import FileKind
from services.document_acquirer import AcquiredDocument
from services.error_types import CriticalError, NonCriticalError, InferenceError, InvalidParseRequest, RenderError
from services.inference_backend import InferenceBackend
from services.parse_deadline import ParseDeadline
from services.pdf_text_extractor import PdfExtraction, DocumentTypeDetection
from services.pdf_to_images import PDFToImages, PageImage, pdf_converter, select_pages_for_vision
from services.pipeline_config import pipeline_config, PipelineConfig
from services.plan_contracts import ExtractionResult
from services.room_extractor import build_extraction_result
from services.room_processor import post_process_by_level

logger = logging.getLogger(__name__)

RENDER_FAILED_WARNING = "Could not render PDF pages to images for vision analysis."
SCANNED_EXHAUSTED_WARNING = "Vision analysis unavailable for scanned PDF. Falling back to text extraction."
IMAGE_NO_ROOMS_WARNING = "Vision analysis found no rooms in the uploaded image."
IMAGE_FAILED_WARNING = "Vision analysis of the uploaded image failed."


@dataclass
class VisionContext:
    """Everything a strategy may look at for one document"""
    document: AcquiredDocument
    backend: InferenceBackend
    extraction: Optional[PdfExtraction] = None
    detection: Optional[DocumentTypeDetection] = None
    page_count: int = 0
    warnings: List[str] = field(default_factory=list)
    invocations: int = 0


Strategy = Callable[[VisionContext], Optional[ExtractionResult]]


def _submit_images(ctx: VisionContext, images: List[PageImage]) -> ExtractionResult:
    ctx.invocations += 1
    payload = ctx.backend.extract_rooms_from_images(images)
    result = build_extraction_result(payload)
    if result.rooms:
        result.assumptions.append(f"Analyzed {len(images)} rendered page(s) using vision AI")
    return result


class VisionStrategies:
    """Named strategies bound to a renderer and pipeline settings"""

    def __init__(self, converter: Optional[PDFToImages] = None, config: Optional[PipelineConfig] = None):
        self.converter = converter or pdf_converter
        self.config = config or pipeline_config

    def local_render(self, ctx: VisionContext) -> Optional[ExtractionResult]:
        """Render the first pages past the cover and submit them as images"""
        if not ctx.document.content:
            return None
        pages = select_pages_for_vision(ctx.page_count, self.config.scanned_vision_pages)
        if not pages:
            return None
        try:
            images = self.converter.render_pages(ctx.document.content, pages, self.config.render_scale)
        except NonCriticalError as e:
            logger.warning(f"Local render failed for {ctx.document.name}: {e}")
            ctx.warnings.append(RENDER_FAILED_WARNING)
            return None
        return _submit_images(ctx, images)

    def public_url(self, ctx: VisionContext) -> Optional[ExtractionResult]:
        """Let the backend fetch the document itself"""
        if not ctx.document.public_url:
            return None
        ctx.invocations += 1
        payload = ctx.backend.extract_rooms_from_url(ctx.document.public_url)
        result = build_extraction_result(payload)
        if result.rooms:
            result.assumptions.append("Analyzed document via public URL using vision AI")
        return result

    def image_only_pages(self, ctx: VisionContext) -> Optional[ExtractionResult]:
        """Render the pages the text pass could not read"""
        if not ctx.document.content or not ctx.extraction:
            return None
        pages = [p.page_number for p in ctx.extraction.pages if not p.has_text]
        pages = pages[:self.config.mixed_vision_pages]
        if not pages:
            return None
        try:
            images = self.converter.render_pages(ctx.document.content, pages, self.config.render_scale)
        except NonCriticalError as e:
            logger.warning(f"Rendering image-only pages failed for {ctx.document.name}: {e}")
            ctx.warnings.append(RENDER_FAILED_WARNING)
            return None
        return _submit_images(ctx, images)

    def inline_image(self, ctx: VisionContext) -> Optional[ExtractionResult]:
        """Submit the uploaded image bytes directly"""
        if not ctx.document.content:
            return None
        image = self.converter.encode_image(ctx.document.content)
        ctx.invocations += 1
        payload = ctx.backend.extract_rooms_from_images([image])
        result = build_extraction_result(payload)
        if result.rooms:
            result.assumptions.append("Analyzed uploaded image using vision AI")
        return result

    def scanned_chain(self) -> List[Tuple[str, Strategy]]:
        return [("local_render", self.local_render), ("public_url", self.public_url)]

    def mixed_chain(self) -> List[Tuple[str, Strategy]]:
        return [("image_only_pages", self.image_only_pages)]

    def image_chain(self) -> List[Tuple[str, Strategy]]:
        return [("public_url", self.public_url), ("inline_image", self.inline_image)]


def run_chain(
    chain: List[Tuple[str, Strategy]],
    ctx: VisionContext,
    deadline: Optional[ParseDeadline] = None
) -> Tuple[Optional[ExtractionResult], Optional[str]]:
    """
    Try strategies in order until one yields rooms.

    Stage-local failures move on to the next strategy; critical errors
    propagate.

    Returns:
        (result, strategy_name) for the first non-empty result, else
        (last empty result or None, None)
    """
    last_result = None
    for name, strategy in chain:
        if deadline:
            deadline.check(f"vision strategy {name}")
        try:
            result = strategy(ctx)
        except CriticalError:
            raise
        except NonCriticalError as e:
            logger.warning(f"Vision strategy {name} failed for {ctx.document.name}: {e}")
            continue

        if result is None:
            logger.debug(f"Vision strategy {name} not applicable to {ctx.document.name}")
            continue
        if not result.is_empty:
            logger.info(f"Vision strategy {name} found {len(result.rooms)} rooms in {ctx.document.name}")
            return result, name
        last_result = result
        logger.info(f"Vision strategy {name} found no rooms in {ctx.document.name}")

    return last_result, None


class VisionFallbackExtractor:
    """Entry points the pipeline calls for each routing case"""

    def __init__(
        self,
        backend: InferenceBackend,
        converter: Optional[PDFToImages] = None,
        config: Optional[PipelineConfig] = None
    ):
        self.backend = backend
        self.strategies = VisionStrategies(converter, config)

    def _finish(self, result: Optional[ExtractionResult], ctx: VisionContext) -> ExtractionResult:
        if result is None or result.is_empty:
            return ExtractionResult(warnings=list(ctx.warnings))
        return result.model_copy(update={
            "rooms": post_process_by_level(result.rooms),
            "warnings": ctx.warnings + result.warnings
        })

    def extract_scanned(
        self,
        document: AcquiredDocument,
        extraction: PdfExtraction,
        detection: DocumentTypeDetection,
        page_count: int,
        deadline: Optional[ParseDeadline] = None
    ) -> Tuple[ExtractionResult, int]:
        """
        Scanned PDF chain. An empty result carries a warning and the caller
        continues down the text path.

        Returns:
            (result, vision invocation count)
        """
        ctx = VisionContext(document, self.backend, extraction, detection, page_count)
        result, used = run_chain(self.strategies.scanned_chain(), ctx, deadline)
        if used is None:
            ctx.warnings.append(SCANNED_EXHAUSTED_WARNING)
        return self._finish(result if used else None, ctx), ctx.invocations

    def extract_mixed(
        self,
        document: AcquiredDocument,
        extraction: PdfExtraction,
        detection: DocumentTypeDetection,
        deadline: Optional[ParseDeadline] = None
    ) -> Tuple[ExtractionResult, int]:
        """Mixed PDF chain, used only when the text path found no rooms"""
        ctx = VisionContext(document, self.backend, extraction, detection, extraction.total_pages)
        result, used = run_chain(self.strategies.mixed_chain(), ctx, deadline)
        return self._finish(result if used else None, ctx), ctx.invocations

    def extract_image(
        self,
        document: AcquiredDocument,
        deadline: Optional[ParseDeadline] = None
    ) -> Tuple[ExtractionResult, int]:
        """Image upload chain; PDF stages do not apply"""
        if document.kind != FileKind.image:
            raise ValueError(f"extract_image called with {document.kind.value} document")
        ctx = VisionContext(document, self.backend)
        result, used = run_chain(self.strategies.image_chain(), ctx, deadline)
        if used is None:
            ctx.warnings.append(IMAGE_NO_ROOMS_WARNING if result is not None else IMAGE_FAILED_WARNING)
        return self._finish(result if used else None, ctx), ctx.invocations

    def extract_client_images(self, pages: List[Tuple[int, str]]) -> Tuple[ExtractionResult, int]:
        """
        Rooms from page images the client rendered itself.

        Args:
            pages: (page_number, base64 image) pairs

        Raises:
            InvalidParseRequest: an image could not be decoded
        """
        images = []
        for page_number, data in pages:
            if "," in data and data.startswith("data:"):
                data = data.split(",", 1)[1]
            try:
                image = self.strategies.converter.encode_image(base64.b64decode(data, validate=True))
            except (binascii.Error, ValueError, RenderError) as e:
                raise InvalidParseRequest(f"Page {page_number} is not a readable image: {e}")
            image.page_number = page_number
            images.append(image)

        logger.info(f"Analyzing {len(images)} client-rendered page(s)")
        ctx = VisionContext(AcquiredDocument(reference="client-rendered", kind=FileKind.image), self.backend)
        try:
            result = _submit_images(ctx, images)
        except InferenceError as e:
            logger.warning(f"Vision analysis of client-rendered pages failed: {e}")
            return ExtractionResult.failed("Vision analysis of the rendered pages failed."), ctx.invocations
        return self._finish(result, ctx), ctx.invocations
