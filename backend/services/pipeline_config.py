"""
Pipeline policy configuration: thresholds, fan-out caps and time budget.
Every value can be overridden from the environment.
"""

import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class PipelineConfig:
    """Tunable policy values for the plan parsing pipeline"""

    # Document type detection (monotonic in text ratio)
    scanned_max_text_ratio: float = field(default_factory=lambda: _env_float("SCANNED_MAX_TEXT_RATIO", 0.2))
    vector_min_text_ratio: float = field(default_factory=lambda: _env_float("VECTOR_MIN_TEXT_RATIO", 0.8))
    min_text_chars: int = 20
    assumed_min_page_count: int = 3

    # Sampling
    sample_max_pages: int = field(default_factory=lambda: _env_int("SAMPLE_MAX_PAGES", 20))
    sample_head_pages: int = 5
    sample_tail_pages: int = 2
    page_text_max_chars: int = 1500
    classification_max_total_chars: int = 50000

    # Sheet admission
    floor_plan_min_confidence: int = field(default_factory=lambda: _env_int("FLOOR_PLAN_MIN_CONFIDENCE", 0))
    schedule_min_confidence: int = field(default_factory=lambda: _env_int("SCHEDULE_MIN_CONFIDENCE", 0))
    max_deep_parse_sheets: int = field(default_factory=lambda: _env_int("MAX_DEEP_PARSE_SHEETS", 10))
    legacy_prefix_pages: int = 5

    # Vision fallback
    scanned_vision_pages: int = field(default_factory=lambda: _env_int("SCANNED_VISION_PAGES", 3))
    mixed_vision_pages: int = field(default_factory=lambda: _env_int("MIXED_VISION_PAGES", 6))
    render_scale: float = 1.5
    reduced_render_scale: float = 0.75
    max_image_base64_bytes: int = 4 * 1024 * 1024

    # Wall-clock budget for one job
    time_budget_seconds: float = field(default_factory=lambda: _env_float("PARSE_TIME_BUDGET_SECONDS", 120))


# Global configuration instance
pipeline_config = PipelineConfig()
