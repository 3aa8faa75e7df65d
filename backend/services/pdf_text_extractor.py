"""
PDF Text Extractor - per-page text and document type signature

Uses PyMuPDF for text extraction and pdfplumber as the lightweight
secondary page-count probe when extraction yields nothing.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import fitz  # PyMuPDF
import pdfplumber

from models.enums import DocumentType
from services.plan_contracts import ExtractedPage
from services.pipeline_config import pipeline_config, PipelineConfig

logger = logging.getLogger(__name__)


@dataclass
class PdfExtraction:
    """Result of pulling text out of every page of a PDF"""
    pages: List[ExtractedPage] = field(default_factory=list)
    total_pages: int = 0
    error: Optional[str] = None

    @property
    def pages_with_text(self) -> int:
        return sum(1 for p in self.pages if p.has_text)


@dataclass
class DocumentTypeDetection:
    """Text-density signature used to route a PDF through the pipeline"""
    type: DocumentType
    text_ratio: float
    total_pages: int
    pages_with_text: int
    pages_without_text: int
    file_size_bytes: Optional[int] = None


def classify_text_ratio(
    pages_with_text: int,
    total_pages: int,
    config: PipelineConfig = pipeline_config
) -> DocumentType:
    """
    Map a text ratio to a document type. Monotonic in the ratio:
    scanned <= scanned_max_text_ratio < mixed < vector_min_text_ratio <= vector.
    """
    if total_pages <= 0 or pages_with_text <= 0:
        return DocumentType.scanned
    ratio = pages_with_text / total_pages
    if ratio <= config.scanned_max_text_ratio:
        return DocumentType.scanned
    if ratio >= config.vector_min_text_ratio:
        return DocumentType.vector
    return DocumentType.mixed


class PDFTextExtractor:
    """Extract page text and classify the document as vector/scanned/mixed"""

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or pipeline_config

    def extract_pages(self, pdf_bytes: bytes) -> PdfExtraction:
        """
        Extract text from every page.

        A page that fails to extract becomes an empty page; a document that
        fails to open yields zero pages plus an error message.
        """
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as e:
            logger.error(f"Could not open PDF for text extraction: {e}")
            return PdfExtraction(error=f"PDF text extraction failed: {e}")

        pages = []
        try:
            for index in range(len(doc)):
                try:
                    text = doc[index].get_text() or ""
                except Exception as e:
                    logger.warning(f"Text extraction failed on page {index + 1}: {e}")
                    text = ""
                pages.append(ExtractedPage.from_text(index + 1, text, self.config.min_text_chars))
        finally:
            doc.close()

        extraction = PdfExtraction(pages=pages, total_pages=len(pages))
        logger.info(f"Extracted text from {extraction.total_pages} pages "
                    f"({extraction.pages_with_text} with text)")
        return extraction

    def detect_document_type(
        self,
        extraction: PdfExtraction,
        file_size_bytes: Optional[int] = None
    ) -> DocumentTypeDetection:
        """Compute the text ratio and classify the document"""
        total = extraction.total_pages
        if total == 0:
            return DocumentTypeDetection(
                type=DocumentType.scanned,
                text_ratio=0.0,
                total_pages=0,
                pages_with_text=0,
                pages_without_text=0,
                file_size_bytes=file_size_bytes
            )

        with_text = extraction.pages_with_text
        return DocumentTypeDetection(
            type=classify_text_ratio(with_text, total, self.config),
            text_ratio=with_text / total,
            total_pages=total,
            pages_with_text=with_text,
            pages_without_text=total - with_text,
            file_size_bytes=file_size_bytes
        )

    def probe_page_count(self, pdf_bytes: bytes) -> int:
        """Secondary page count using pdfplumber; 0 when the probe fails"""
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                return len(pdf.pages)
        except Exception as e:
            logger.warning(f"Page count probe failed: {e}")
            return 0

    def resolve_page_count(self, extraction: PdfExtraction, pdf_bytes: bytes) -> int:
        """
        Positive page count for page selection: extraction count, then the
        probe, then the assumed minimum.
        """
        if extraction.total_pages > 0:
            return extraction.total_pages

        probed = self.probe_page_count(pdf_bytes)
        if probed > 0:
            logger.info(f"Text extraction found no pages; probe reports {probed}")
            return probed

        logger.warning(f"Page count unknown; assuming {self.config.assumed_min_page_count} pages")
        return self.config.assumed_min_page_count


# Global extractor instance
pdf_text_extractor = PDFTextExtractor()
