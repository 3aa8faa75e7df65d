"""
Inference Model Configuration
Centralized configuration for the OpenAI models used by the plan pipeline
"""

import os
from typing import Dict, Any, Optional
from dataclasses import dataclass, field

from services.error_types import ConfigurationError


@dataclass
class ModelConfig:
    """Configuration for a specific model call"""
    name: str
    max_tokens: int = 4000
    temperature: float = 0.1
    image_detail: str = "high"
    json_mode: bool = True

    def get_api_params(self) -> Dict[str, Any]:
        """Get API parameters for this model"""
        params = {
            "model": self.name,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        if self.json_mode:
            params["response_format"] = {"type": "json_object"}

        return params


@dataclass
class InferenceConfig:
    """Central configuration for inference calls"""

    # API configuration
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_base_url: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_BASE_URL") or None)

    # One model per call type
    classifier: ModelConfig = field(default_factory=lambda: ModelConfig(
        name=os.getenv("CLASSIFIER_MODEL", "gpt-4o-mini"),
        temperature=0.2,
    ))
    room_extractor: ModelConfig = field(default_factory=lambda: ModelConfig(
        name=os.getenv("ROOM_EXTRACTOR_MODEL", "gpt-4o"),
        temperature=0.1,
    ))
    vision: ModelConfig = field(default_factory=lambda: ModelConfig(
        name=os.getenv("VISION_MODEL", "gpt-4o"),
        temperature=0.3,
    ))
    scaffolder: ModelConfig = field(default_factory=lambda: ModelConfig(
        name=os.getenv("SCAFFOLD_MODEL", "gpt-4o-mini"),
        temperature=0.4,
    ))

    # Per-call timeout; no automatic retries, fallbacks are separate strategies
    request_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("INFERENCE_TIMEOUT_SECONDS", "60"))
    )
    max_retries: int = 0

    # Input size limits
    classify_chars_per_page: int = 1200
    sheet_text_max_chars: int = 20000
    legacy_text_max_chars: int = 40000

    def validate(self) -> bool:
        """Validate configuration"""
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for plan parsing")

        return True


# Global configuration instance
inference_config = InferenceConfig()
