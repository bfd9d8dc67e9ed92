"""
JSON parsing helpers for extraction model responses.

Model output frequently arrives wrapped in markdown fences, preceded by a
sentence of prose, or with small syntax slips. These helpers cut the JSON
block out of the text and apply conservative repairs before giving up.
"""

import json
import re
from typing import Any

from .exceptions import ExtractionParseError

_FENCE = re.compile(r"```(?:json|JSON)?\s*")
_CLOSERS = {"{": "}", "[": "]"}


def strip_markdown_fences(text: str) -> str:
    """Remove ```json fences the model adds despite instructions."""
    return _FENCE.sub("", text).strip()


def extract_json_block(text: str) -> str:
    """Return the outermost {...} or [...] block, or the text unchanged if there is none."""
    candidates = []
    for opener, closer in _CLOSERS.items():
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            candidates.append((start, end))

    if not candidates:
        return text

    start, end = min(candidates)
    return text[start:end + 1]


def try_parse_or_repair_json(json_str: str) -> Any:
    """
    Attempt to parse a JSON string, applying repair strategies if initial parsing fails.

    Args:
        json_str: The JSON string to parse

    Returns:
        Parsed JSON value

    Raises:
        json.JSONDecodeError: If the text cannot be parsed even after repair attempts
    """
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        repaired_json = json_str

        # Strategy 1: Remove trailing commas before a closing bracket
        repaired_json = re.sub(r",\s*([}\]])", r"\1", repaired_json)

        # Strategy 2: Remove parenthetical notes after quoted strings
        # Pattern: "text" (explanation) -> "text"
        repaired_json = re.sub(r'"([^"]*)" \([^)]*\)', r'"\1"', repaired_json)

        # Strategy 3: Fix missing commas between objects of an array
        # Pattern: }\n    { -> },\n    {
        repaired_json = re.sub(r"}\s*\n\s*{", "},\n{", repaired_json)

        # Strategy 4: Fix missing commas between a value and the next key
        # Pattern: "value"\n    "key": -> "value",\n    "key":
        repaired_json = re.sub(
            r'("(?:[^"\\]|\\.)*"|\d|true|false|null)\s*\n\s*("(?:[^"\\]|\\.)*"\s*:)',
            r"\1,\n\2",
            repaired_json
        )

        return json.loads(repaired_json)  # may raise; let it propagate for caller handling


def parse_extraction_text(text: str | None) -> dict[str, Any]:
    """Parse the raw text returned by the extraction model into a JSON object.

    Raises:
        ExtractionParseError: If no JSON object can be recovered; carries the full raw text
    """
    if text is None or not text.strip():
        raise ExtractionParseError(text or "", "empty response")

    candidate = extract_json_block(strip_markdown_fences(text))

    try:
        parsed = try_parse_or_repair_json(candidate)
    except json.JSONDecodeError as e:
        raise ExtractionParseError(text, "response is not valid JSON", e) from e

    if not isinstance(parsed, dict):
        raise ExtractionParseError(text, f"top-level value is a {type(parsed).__name__}, expected an object")

    return parsed
