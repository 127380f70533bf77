"""Helpers for reading structured output from model responses.

This module provides:
- _strip_json_fences: Remove markdown code fences from LLM output
- _parse_json_response: Parse the first JSON object from an LLM response
"""

import json
import re

_OPENING_FENCE = re.compile(r"^```[\w-]*\s*")
_CLOSING_FENCE = re.compile(r"\s*```$")
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _strip_json_fences(content: str) -> str:
    """Remove markdown code fences wrapping JSON output."""
    content = content.strip()
    if not content.startswith("```"):
        return content
    return _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", content, count=1))


def _parse_json_response(content: str) -> dict:
    """Parse JSON from LLM response, stripping fences and surrounding prose.

    Raises:
        ValueError: If no JSON object can be found (json.JSONDecodeError is a ValueError)
    """
    match = _JSON_OBJECT.search(_strip_json_fences(content))
    if match is None:
        raise ValueError("No JSON object found in LLM response")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("LLM response JSON is not an object")
    return parsed
