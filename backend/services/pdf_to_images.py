"""
PDF to Images Converter - renders plan pages for vision analysis
Pages are rendered with PyMuPDF and normalized with Pillow
"""

import fitz  # PyMuPDF
import base64
import io
import logging
from typing import List, Dict, Any, Optional
from PIL import Image
from dataclasses import dataclass

from services.error_types import RenderError
from services.pipeline_config import pipeline_config, PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class PageImage:
    """A single rendered page (or uploaded image) as base64 PNG"""
    page_number: int  # 1-indexed
    image_base64: str
    width_px: int
    height_px: int
    scale: float

    @property
    def data_url(self) -> str:
        return f"data:image/png;base64,{self.image_base64}"


def select_pages_for_vision(total_pages: int, max_pages: int = 3) -> List[int]:
    """
    Pick candidate pages for vision analysis of a scanned document.

    Small documents are taken whole; otherwise the cover is skipped and the
    next `max_pages` pages are used.
    """
    if total_pages <= 0:
        return []
    if total_pages <= max_pages:
        return list(range(1, total_pages + 1))
    return list(range(2, min(total_pages, max_pages + 1) + 1))


class PDFToImages:
    """Convert PDF pages to images for vision processing"""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or pipeline_config
        self.max_dimension = 4096  # Max dimension for vision models

    def render_pages(
        self,
        pdf_bytes: bytes,
        page_numbers: List[int],
        scale: Optional[float] = None
    ) -> List[PageImage]:
        """
        Render specific pages of a PDF.

        Args:
            pdf_bytes: PDF file content
            page_numbers: 1-indexed pages to render
            scale: Render scale (1.0 = 72 DPI)

        Returns:
            Rendered pages; pages that fail individually are skipped

        Raises:
            RenderError: the document cannot be opened or no page rendered
        """
        scale = scale or self.config.render_scale
        logger.info(f"Rendering pages {page_numbers} at scale {scale}")

        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as e:
            raise RenderError(f"Could not open PDF for rendering: {e}")

        page_images = []
        try:
            total_pages = len(doc)
            for page_number in page_numbers:
                if not 1 <= page_number <= total_pages:
                    logger.warning(f"Page {page_number} out of range (total: {total_pages})")
                    continue
                page_image = self._render_within_limit(doc, page_number, scale)
                if page_image:
                    page_images.append(page_image)
        finally:
            doc.close()

        if page_numbers and not page_images:
            raise RenderError(f"No pages could be rendered from {page_numbers}")

        logger.info(f"Rendered {len(page_images)} page(s) to images")
        return page_images

    def _render_within_limit(self, doc: fitz.Document, page_number: int, scale: float) -> Optional[PageImage]:
        """Render a page, re-rendering at the reduced scale when the payload is too large"""
        page_image = self._render_page(doc, page_number, scale)
        if page_image and len(page_image.image_base64) > self.config.max_image_base64_bytes:
            reduced = self.config.reduced_render_scale
            logger.info(f"Page {page_number} image exceeds "
                        f"{self.config.max_image_base64_bytes} bytes, re-rendering at {reduced}")
            page_image = self._render_page(doc, page_number, reduced)
        return page_image

    def _render_page(self, doc: fitz.Document, page_number: int, scale: float) -> Optional[PageImage]:
        try:
            page = doc[page_number - 1]

            # Keep the longest side within the vision model limit
            longest = max(page.rect.width, page.rect.height) * scale
            if longest > self.max_dimension:
                scale = self.max_dimension / max(page.rect.width, page.rect.height)

            pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            img = self._optimize_image(img)

            return PageImage(
                page_number=page_number,
                image_base64=self._to_base64(img),
                width_px=img.width,
                height_px=img.height,
                scale=scale
            )
        except Exception as e:
            logger.error(f"Error rendering page {page_number}: {e}")
            return None

    def encode_image(self, image_bytes: bytes) -> PageImage:
        """
        Normalize an uploaded image (jpg/png/gif/webp) to an RGB PNG.

        Raises:
            RenderError: the bytes are not a readable image
        """
        try:
            img = Image.open(io.BytesIO(image_bytes))
            img.load()
        except Exception as e:
            raise RenderError(f"Could not read image: {e}")

        img = self._optimize_image(img)
        if max(img.size) > self.max_dimension:
            img.thumbnail((self.max_dimension, self.max_dimension))

        return PageImage(
            page_number=1,
            image_base64=self._to_base64(img),
            width_px=img.width,
            height_px=img.height,
            scale=1.0
        )

    def _optimize_image(self, img: Image.Image) -> Image.Image:
        """Flatten transparency and convert to RGB"""
        if img.mode == 'RGBA':
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[3])
            img = background
        elif img.mode != 'RGB':
            img = img.convert('RGB')
        return img

    @staticmethod
    def _to_base64(img: Image.Image) -> str:
        buffered = io.BytesIO()
        img.save(buffered, format="PNG", optimize=True)
        return base64.b64encode(buffered.getvalue()).decode('utf-8')

    @staticmethod
    def prepare_for_vision_api(page_images: List[PageImage], detail: str = "high") -> List[Dict[str, Any]]:
        """Format page images as chat-completion image parts"""
        return [
            {
                "type": "image_url",
                "image_url": {
                    "url": page.data_url,
                    "detail": detail
                }
            }
            for page in page_images
        ]


# Global converter instance
pdf_converter = PDFToImages()
