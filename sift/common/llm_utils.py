"""Shared utilities for preparing LLM input and parsing LLM responses."""

from __future__ import annotations

import json
import re

# data:image/png;base64,.... and bare base64 runs long enough to be binary payloads
_DATA_URI_RE = re.compile(r"data:[\w/+.-]+;base64,[A-Za-z0-9+/=\s]+")
_BASE64_RUN_RE = re.compile(r"[A-Za-z0-9+/]{200,}={0,2}")
_URL_RE = re.compile(r"https?://\S+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def parse_llm_json(raw: str) -> dict:
    """Parse JSON from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict

    Anything that does not decode to a JSON object yields an empty dict.
    """
    if not raw:
        return {}

    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            parsed = json.loads(raw[start:end])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    return {}


def scrub_content(text: str, max_chars: int = 15000, max_url_length: int = 200) -> str:
    """Remove embedded binary payloads and over-long URLs, then hard-truncate.

    Args:
        text: Raw fetched content
        max_chars: Character budget for the prompt
        max_url_length: URLs longer than this are dropped

    Returns:
        Cleaned text no longer than ``max_chars``
    """
    if not text:
        return ""

    cleaned = _DATA_URI_RE.sub("", text)
    cleaned = _BASE64_RUN_RE.sub("", cleaned)
    cleaned = _URL_RE.sub(
        lambda m: m.group(0) if len(m.group(0)) <= max_url_length else "",
        cleaned,
    )
    cleaned = _BLANK_LINES_RE.sub("\n\n", cleaned).strip()
    return cleaned[:max_chars]


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Cut text to ``limit`` characters, appending ``suffix`` when cut."""
    if not text or len(text) <= limit:
        return text or ""
    return text[:limit] + suffix
