"""
Tests for classification page sampling
"""

from services.page_sampler import (
    sample_pages_for_classification, truncate_page_text, prepare_pages_for_classification
)
from services.pipeline_config import PipelineConfig
from services.plan_contracts import ExtractedPage


def make_pages(count, text="Sheet content with enough characters", blank=()):
    return [
        ExtractedPage.from_text(n, "" if n in blank else f"{text} {n}")
        for n in range(1, count + 1)
    ]


class TestSampling:

    def test_small_document_returned_whole(self):
        pages = make_pages(12)
        assert sample_pages_for_classification(pages, PipelineConfig()) == pages

    def test_large_document_capped(self):
        sampled = sample_pages_for_classification(make_pages(60), PipelineConfig())
        numbers = [p.page_number for p in sampled]
        assert len(numbers) <= 20
        assert numbers == sorted(numbers)
        assert len(set(numbers)) == len(numbers)
        assert numbers[:5] == [1, 2, 3, 4, 5]
        assert numbers[-2:] == [59, 60]

    def test_middle_pages_need_text(self):
        pages = make_pages(40, blank=range(6, 39))
        numbers = [p.page_number for p in sample_pages_for_classification(pages, PipelineConfig())]
        assert numbers == [1, 2, 3, 4, 5, 39, 40]

    def test_cap_is_configurable(self):
        config = PipelineConfig(sample_max_pages=8)
        sampled = sample_pages_for_classification(make_pages(30), config)
        assert len(sampled) == 8


class TestTruncation:

    def test_short_text_unchanged(self):
        assert truncate_page_text("Kitchen", 1500) == "Kitchen"

    def test_cut_at_sentence(self):
        text = "First sentence here. " * 100
        truncated = truncate_page_text(text, 200)
        assert truncated.endswith("...")
        assert len(truncated) <= 203

    def test_prepare_respects_total_budget(self):
        config = PipelineConfig(classification_max_total_chars=1000)
        pages = [ExtractedPage.from_text(n, "x" * 500) for n in range(1, 11)]
        prepared = prepare_pages_for_classification(pages, config)
        assert [p["page_number"] for p in prepared] == list(range(1, 11))
        assert all(len(p["text"]) <= 103 for p in prepared)

    def test_prepare_empty(self):
        assert prepare_pages_for_classification([], PipelineConfig()) == []
