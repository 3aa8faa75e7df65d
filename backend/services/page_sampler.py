"""
Page sampling for classification.

Large plan sets are bounded to a representative subset before classification:
the head of the set (cover, index, first plans), the tail, and evenly spaced
middle pages that have text.
"""

import logging
from typing import List, Dict, Any, Optional

from services.plan_contracts import ExtractedPage
from services.pipeline_config import pipeline_config, PipelineConfig

logger = logging.getLogger(__name__)


def sample_pages_for_classification(
    pages: List[ExtractedPage],
    config: Optional[PipelineConfig] = None
) -> List[ExtractedPage]:
    """
    Select at most `sample_max_pages` pages, sorted by page number.

    Args:
        pages: Every extracted page of the document
        config: Pipeline policy (cap, head and tail sizes)

    Returns:
        The pages to classify; all pages when the document is under the cap
    """
    config = config or pipeline_config
    max_pages = config.sample_max_pages
    total = len(pages)
    if total <= max_pages:
        return list(pages)

    samples: List[ExtractedPage] = []
    used = set()

    def take(page: ExtractedPage):
        if page.page_number not in used and len(samples) < max_pages:
            samples.append(page)
            used.add(page.page_number)

    head = min(config.sample_head_pages, total)
    for page in pages[:head]:
        take(page)

    tail = min(config.sample_tail_pages, total - head)
    for page in pages[total - tail:]:
        take(page)

    remaining = max_pages - len(samples)
    if remaining > 0:
        middle = [p for p in pages if p.page_number not in used and p.has_text]
        if middle:
            step = max(1, len(middle) // remaining)
            for page in middle[::step][:remaining]:
                take(page)

    logger.info(f"Sampled {len(samples)} of {total} pages for classification")
    return sorted(samples, key=lambda p: p.page_number)


def truncate_page_text(text: str, max_chars: int = 1500) -> str:
    """Cut text at the last sentence or line break near `max_chars`"""
    if len(text) <= max_chars:
        return text
    truncated = text[:max_chars]
    cut_point = max(truncated.rfind('.'), truncated.rfind('\n'), max_chars - 100)
    return truncated[:cut_point] + '...'


def prepare_pages_for_classification(
    pages: List[ExtractedPage],
    config: Optional[PipelineConfig] = None
) -> List[Dict[str, Any]]:
    """
    Marshal pages as [{page_number, text}] within the total character budget.
    """
    config = config or pipeline_config
    if not pages:
        return []

    per_page = min(config.classification_max_total_chars // len(pages), config.page_text_max_chars)
    result = []
    total_chars = 0
    for page in pages:
        text = truncate_page_text(page.text, per_page)
        result.append({"page_number": page.page_number, "text": text})
        total_chars += len(text)
        if total_chars > config.classification_max_total_chars:
            break
    return result
