"""Shared utilities for parsing structured LLM replies."""

from __future__ import annotations

import json
import re

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*|\s*```\s*$")


def strip_code_fences(raw: str) -> str:
    """Remove a leading ```json / ``` fence and its closing fence."""
    return _FENCE_RE.sub("", raw.strip())


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM reply.

    Models wrap their JSON in code fences or surround it with prose, so this
    tries, in order: the fence-stripped text, then the substring between the
    first '{' and the last '}'. Anything that is not a JSON object yields {}.
    """
    if not raw:
        return {}

    candidates = [strip_code_fences(raw)]
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        candidates.append(raw[start:end])

    for text in candidates:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    return {}
