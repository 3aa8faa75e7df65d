"""
Strict JSON Parser - Helper for parsing and validating model responses
Handles markdown fences, locates list payloads and validates each entry
"""

import json
import re
import logging
from typing import Dict, Any, List, Optional, Type, Tuple, Union
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

JSONValue = Union[Dict[str, Any], List[Any]]


class StrictJSONParser:
    """Parse and validate JSON responses from the inference backend"""

    @staticmethod
    def extract_json(content: Optional[str]) -> Optional[JSONValue]:
        """
        Extract JSON from response content, handling markdown fences

        Args:
            content: Raw response content from the model

        Returns:
            Parsed JSON object/array or None if parsing fails
        """
        if not content:
            return None

        try:
            return json.loads(content)
        except json.JSONDecodeError:
            pass

        # ```json ... ``` fences
        fence_pattern = r'```(?:json)?\s*([\[{].*?[\]}])\s*```'
        match = re.search(fence_pattern, content, re.DOTALL | re.IGNORECASE)
        if match:
            try:
                return json.loads(match.group(1))
            except json.JSONDecodeError as e:
                logger.debug(f"Failed to parse JSON from markdown fence: {e}")

        # Leading prose, then a balanced object
        start = content.find('{')
        if start >= 0:
            depth = 0
            in_string = False
            escaped = False
            for i, char in enumerate(content[start:], start):
                if in_string:
                    if escaped:
                        escaped = False
                    elif char == '\\':
                        escaped = True
                    elif char == '"':
                        in_string = False
                    continue
                if char == '"':
                    in_string = True
                elif char == '{':
                    depth += 1
                elif char == '}':
                    depth -= 1
                    if depth == 0:
                        try:
                            return json.loads(content[start:i + 1])
                        except json.JSONDecodeError:
                            break

        logger.warning(f"Could not extract valid JSON from response (first 200 chars): {content[:200]}")
        return None

    @staticmethod
    def extract_list(data: Optional[JSONValue], keys: Tuple[str, ...]) -> Optional[List[Any]]:
        """
        Find the list payload in a response: a bare array, or the first of
        `keys` that holds a list.

        Returns:
            The list, or None when the payload has no list in any expected place
        """
        if isinstance(data, list):
            return data
        if not isinstance(data, dict):
            return None
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
        return None

    @staticmethod
    def string_list(data: Optional[JSONValue], key: str) -> List[str]:
        """List of non-empty strings under `key`; anything else is ignored"""
        if not isinstance(data, dict):
            return []
        value = data.get(key)
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]

    @staticmethod
    def validate_against_schema(
        data: Dict[str, Any],
        schema_class: Type[BaseModel]
    ) -> Tuple[bool, Optional[BaseModel], Optional[str]]:
        """
        Validate JSON data against a Pydantic schema

        Args:
            data: Parsed JSON dictionary
            schema_class: Pydantic model class to validate against

        Returns:
            Tuple of (is_valid, validated_object, error_message)
        """
        try:
            validated = schema_class(**data)
            return True, validated, None
        except ValidationError as e:
            error_details = []
            for error in e.errors():
                field_path = " -> ".join(str(x) for x in error['loc'])
                error_details.append(f"{field_path}: {error['msg']}")

            error_message = "Schema validation failed: " + "; ".join(error_details)
            logger.debug(f"Validation errors: {error_message}")
            return False, None, error_message

    @staticmethod
    def validate_items(
        items: List[Any],
        schema_class: Type[BaseModel],
        defaults: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[BaseModel], int]:
        """
        Validate each entry of a list independently.

        Args:
            items: Raw entries from the response
            schema_class: Pydantic model for one entry
            defaults: Values applied where an entry leaves a key missing or null

        Returns:
            Tuple of (valid_objects, rejected_count)
        """
        valid = []
        rejected = 0
        for item in items:
            if not isinstance(item, dict):
                rejected += 1
                continue
            data = dict(item)
            for key, value in (defaults or {}).items():
                if data.get(key) in (None, ""):
                    data[key] = value
            ok, obj, _ = StrictJSONParser.validate_against_schema(data, schema_class)
            if ok:
                valid.append(obj)
            else:
                rejected += 1
        return valid, rejected


# Global parser instance
strict_parser = StrictJSONParser()
