import json
import re
from typing import Any

from .errors import ParseError

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def clean_response_text(text: str) -> str:
    """Strip Markdown fences and any prose around the outermost JSON object."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned)).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    return cleaned


def parse_quiz_json(text: str) -> dict[str, Any]:
    """Parse the model response into the ``{"questions": [...], "blueprint": [...]}`` object."""
    cleaned = clean_response_text(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON from AI: {e.msg} at position {e.pos}") from e
    if not isinstance(data, dict):
        raise ParseError("AI response is not a JSON object")
    if not isinstance(data.get("questions"), list):
        raise ParseError("AI response has no 'questions' array")
    return data
