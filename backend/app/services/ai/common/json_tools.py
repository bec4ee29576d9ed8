"""Robust JSON extraction from LLM responses.

All model output goes through :func:`parse_model_json` before any contract
validation; nothing here raises for malformed text.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# ```json\n ... \n``` or ``` ... ```; the tag must end its own line.
_FENCED_RE = re.compile(r"^```(?:[\w+.-]*[ \t]*\n)?(?P<body>.*?)\s*```$", re.DOTALL)
_VALUE_START_RE = re.compile(r"[{\[]")


def strip_code_fence(text: str) -> str:
    """Remove markdown code-fence wrapping and surrounding whitespace.

    Handles language-tagged and bare fences, and a leading fence whose closing
    marker was cut off. Idempotent.
    """
    s = (text or "").strip()
    while s.startswith("```"):
        match = _FENCED_RE.match(s)
        if match:
            s = match.group("body").strip()
            continue
        # Unterminated fence: drop the opening line.
        s = s.split("\n", 1)[1].strip() if "\n" in s else s[3:].strip()
    while s.endswith("```"):
        s = s[:-3].strip()
    return s


def parse_model_json(text: str, *, expect: type | None = None) -> Any | None:
    """Strip fences and parse *text*; fall back to the first embedded JSON value.

    With *expect* (``dict`` or ``list``) the fallback skips embedded values of
    another type, so prose like ``"see [1]: {...}"`` yields the object.
    Returns ``None`` when nothing parses.
    """
    cleaned = strip_code_fence(text)
    if not cleaned:
        return None
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, ValueError):
        pass
    extracted = extract_json(cleaned, expect=expect)
    if extracted is None:
        logger.debug("No JSON value found in model output (%d chars)", len(cleaned))
    return extracted


def extract_json(text: str, *, expect: type | None = None) -> dict | list | None:
    """Return the first JSON object or array embedded in *text*, or ``None``.

    Each ``{`` or ``[`` is tried as the start of a value; whatever follows the
    decoded value is ignored.
    """
    if not text or not text.strip():
        return None

    decoder = json.JSONDecoder()
    stripped = text.strip()
    for match in _VALUE_START_RE.finditer(stripped):
        try:
            value, _end = decoder.raw_decode(stripped, match.start())
        except ValueError:
            continue
        if isinstance(value, expect or (dict, list)):
            return value
    return None
