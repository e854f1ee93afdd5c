"""Lenient JSON parsing for model responses."""
import json
import re
from typing import Any

from mailspend.utils.exceptions import LLMError
from mailspend.utils.logger import get_logger

logger = get_logger()


def parse_json_response(response_text: str) -> Any:
    """
    Parse a model's JSON answer.

    Returns None for an empty answer or a literal ``null``.

    Raises:
        LLMError: If the text is not JSON even after cleanup
    """
    cleaned = (response_text or "").strip()
    if cleaned.startswith("```"):
        # Remove markdown code blocks
        cleaned = re.sub(r"^```(?:json)?", "", cleaned).strip()
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3].strip()

    if not cleaned or cleaned.lower() == "null":
        return None

    # Normalize smart quotes to standard double-quote
    cleaned = cleaned.replace("“", '"').replace("”", '"')

    # Remove trailing commas before closing brackets/braces
    cleaned = re.sub(r",\s*([\]}])", r"\1", cleaned)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # The model wrapped JSON in prose; try the first object/array
    json_match = re.search(r"\{.*\}|\[.*\]", cleaned, re.DOTALL)
    if json_match:
        try:
            return json.loads(json_match.group(0))
        except json.JSONDecodeError as e:
            logger.debug(f"Response text: {response_text[:500]}")
            raise LLMError(f"Invalid JSON response from LLM: {e}") from e

    logger.debug(f"Response text: {response_text[:500]}")
    raise LLMError("LLM response contains no JSON")
