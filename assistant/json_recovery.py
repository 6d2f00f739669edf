"""
assistant/json_recovery.py
--------------------------
Recover a single JSON object from a noisy model response.

Models wrap JSON in markdown fences or surround it with prose often enough
that a plain ``json.loads`` is not sufficient.  ``parse_model_json`` first
strips one fenced block, then tries a whole-string parse, and finally scans
for the first balanced ``{...}`` outside of string literals.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import Any, Dict, Optional

from .errors import ModelResponseParseError

_FENCE_RE = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?(?P<body>.*?)\n?[ \t]*```$", re.S)


class _ScanState(Enum):
    NORMAL = "normal"
    IN_STRING = "in_string"
    ESCAPED = "escaped"


def strip_code_fences(s: str) -> str:
    """Remove one leading/trailing triple backtick fence (with or without a language tag)."""
    s = (s or "").strip()
    m = _FENCE_RE.match(s)
    if m:
        return m.group("body").strip()
    return s


def first_complete_object(s: str) -> Optional[str]:
    """Return the text of the first balanced ``{...}`` in ``s`` or None.

    Braces inside string literals are ignored; a backslash inside a string
    escapes the following character.
    """
    start = s.find("{")
    if start == -1:
        return None

    state = _ScanState.NORMAL
    depth = 0
    for i in range(start, len(s)):
        ch = s[i]
        if state is _ScanState.ESCAPED:
            state = _ScanState.IN_STRING
        elif state is _ScanState.IN_STRING:
            if ch == "\\":
                state = _ScanState.ESCAPED
            elif ch == '"':
                state = _ScanState.NORMAL
        elif ch == '"':
            state = _ScanState.IN_STRING
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return s[start : i + 1]
    return None


def parse_model_json(raw: str) -> Dict[str, Any]:
    """Parse a model response into a dict or raise ``ModelResponseParseError``."""
    cleaned = strip_code_fences(raw)
    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    except (ValueError, TypeError):
        pass

    candidate = first_complete_object(cleaned)
    if candidate is None:
        raise ModelResponseParseError("no balanced JSON object found in model response")
    try:
        parsed = json.loads(candidate)
    except ValueError as e:
        raise ModelResponseParseError(f"recovered object is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ModelResponseParseError("recovered JSON is not an object")
    return parsed
