"""Recover a JSON object from a raw model response."""

import json
import logging
import re

from app.services.ai_errors import ResponseParseError

logger = logging.getLogger(__name__)

# First "{" through the last "}" (greedy, spans newlines)
_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def _loads_object(text: str):
    try:
        parsed = json.loads(text)
    except (ValueError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_json(raw: str) -> dict:
    """
    Parse a model response into a JSON object.

    Tries the whole text first. If that fails, parses the outermost
    "{...}" span, which tolerates prose or code fences around the object.
    Broken JSON is not repaired.

    Raises:
        ResponseParseError: If no JSON object can be recovered
    """
    if not isinstance(raw, str):
        raise ResponseParseError(
            "Failed to parse model response as JSON: response is not text",
            raw_text=None,
        )

    parsed = _loads_object(raw)
    if parsed is not None:
        return parsed

    match = _OBJECT_PATTERN.search(raw)
    if match:
        parsed = _loads_object(match.group(0))
        if parsed is not None:
            logger.warning(
                "Recovered JSON object from surrounding text (%d chars dropped)",
                len(raw) - len(match.group(0)),
            )
            return parsed

    raise ResponseParseError(
        "Failed to parse model response as JSON", raw_text=raw
    )
