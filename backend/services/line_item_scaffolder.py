"""
Line-Item Scaffolder - unpriced line items for the detected rooms
"""

import logging
from typing import List, Optional, Tuple

from services.error_types import InferenceError
from services.inference_backend import InferenceBackend
from services.plan_contracts import ExtractedRoom, LineItemScaffold, PRICING_FIELDS
from services.strict_json_parser import strict_parser

logger = logging.getLogger(__name__)

SCAFFOLD_FAILED_WARNING = "Line item scaffold generation failed. Add line items manually."


class LineItemScaffolder:

    def __init__(self, backend: InferenceBackend):
        self.backend = backend

    def scaffold(self, rooms: List[ExtractedRoom]) -> Tuple[List[LineItemScaffold], Optional[str]]:
        """
        Ask the backend for line items covering `rooms`.

        Pricing-shaped keys are stripped before validation and invalid
        entries are dropped.

        Returns:
            (scaffolds, warning); warning is set only when the backend failed
        """
        if not rooms:
            return [], None

        try:
            raw = self.backend.scaffold_line_items(rooms)
        except InferenceError as e:
            logger.warning(f"Line item scaffolding failed: {e}")
            return [], SCAFFOLD_FAILED_WARNING

        entries = strict_parser.extract_list(raw, ("line_items", "lineItems", "items"))
        if entries is None:
            logger.warning("Line item scaffolding returned an unexpected response")
            return [], SCAFFOLD_FAILED_WARNING

        cleaned = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            cleaned.append({k: v for k, v in entry.items() if k not in PRICING_FIELDS})

        scaffolds, rejected = strict_parser.validate_items(cleaned, LineItemScaffold)
        if rejected:
            logger.info(f"Dropped {rejected} invalid line item(s)")
        logger.info(f"Generated {len(scaffolds)} line item scaffolds for {len(rooms)} rooms")
        return scaffolds, None
