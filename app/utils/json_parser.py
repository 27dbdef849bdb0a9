import json
import re
from typing import Any, Dict, List, Union

from app.core.exceptions import MalformedOutputError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Opening fence with an optional language tag (```json, ```JSON, ```) and the
# closing fence. Only the outermost delimiters are removed.
_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_CLOSING_FENCE = re.compile(r"\r?\n?```$")


def strip_code_fences(text: str) -> str:
    """Remove surrounding whitespace and markdown code-fence delimiters.

    Interior content, including any fences nested inside string values, is
    left untouched.

    Args:
        text: Raw provider text

    Returns:
        The text without the outer fence markers
    """
    cleaned = text.strip()
    cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
    cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_llm_json(text: str) -> Union[Dict[str, Any], List[Any]]:
    """Parse a provider response as strict JSON.

    Handles:
    - Markdown code blocks (```json ... ``` or ``` ... ```)
    - Leading/trailing whitespace

    No lenient recovery is attempted: truncated or concatenated documents
    are rejected so the caller can ask the provider again.

    Args:
        text: The raw text returned by the provider

    Returns:
        Parsed JSON object or array

    Raises:
        MalformedOutputError: If the text is empty or not valid JSON
    """
    if text is None or not text.strip():
        raise MalformedOutputError("Provider returned an empty response", raw_text=text or "")

    cleaned_text = strip_code_fences(text)

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(
            f"Provider output is not valid JSON: {e}",
            extra={"preview": cleaned_text[:200]},
        )
        raise MalformedOutputError(
            f"Malformed provider output: {e.msg} at position {e.pos}",
            raw_text=text,
            original_error=e,
        ) from e
