"""
Raw-text cleanup and timing pre-extraction.

EXPLAIN output rarely arrives pristine. psql wraps it in a "QUERY PLAN"
header, a dashed separator and a "(N rows)" footer; aligned psql output adds
" +" continuation markers; pgAdmin and CSV exports double every quote. The
helpers here undo that and locate the JSON document inside the noise.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping

_HEADER_RE = re.compile(r"^\s*QUERY PLAN\s*[-=]*\s*\n", re.IGNORECASE)
_FOOTER_RE = re.compile(r"\n?\s*\(\d+\s+rows?\)\s*$")
_CONTINUATION_RE = re.compile(r"[ \t]+\+[ \t]*$", re.MULTILINE)

# Line-anchored; pgAdmin exports wrap each row in quotes
_PLANNING_TIME_RE = re.compile(r"^\s*\"?Planning Time:\s*([\d.]+)\s*ms", re.IGNORECASE)
_EXECUTION_TIME_RE = re.compile(r"^\s*\"?Execution Time:\s*([\d.]+)\s*ms", re.IGNORECASE)
# PostgreSQL < 9.4 printed "Total runtime" instead of "Execution Time"
_TOTAL_RUNTIME_RE = re.compile(r"^\s*\"?Total runtime:\s*([\d.]+)\s*ms", re.IGNORECASE)

_decoder = json.JSONDecoder()


def clean_json_text(text: str) -> str:
    """Strip psql chrome and collapse doubled quotes."""
    cleaned = _HEADER_RE.sub("", text, count=1)
    cleaned = _FOOTER_RE.sub("", cleaned)
    cleaned = _CONTINUATION_RE.sub("", cleaned)
    if _is_quote_escaped(cleaned):
        cleaned = cleaned.replace('""', '"')
    return cleaned


def _is_quote_escaped(text: str) -> bool:
    # Legitimate empty strings ("Alias": "") must survive, so only collapse
    # when the keys themselves are doubled.
    return '""Plan""' in text or '""Node Type""' in text


def decode_first_json(text: str) -> Any:
    """
    Clean the text and decode the first JSON array or object in it.

    Anything after the first complete value is ignored, so trailing
    "Planning Time" lines or psql footers do not break decoding.

    Raises:
        ValueError: No JSON value found, or it is malformed
            (json.JSONDecodeError is a ValueError).
    """
    cleaned = clean_json_text(text)
    starts = [i for i in (cleaned.find("["), cleaned.find("{")) if i >= 0]
    if not starts:
        raise ValueError("No JSON array or object found in input")

    value, _ = _decoder.raw_decode(cleaned, min(starts))
    return value


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def timing_from_document(document: Any) -> tuple[float | None, float | None]:
    """
    Read (planning, execution) time from one EXPLAIN JSON document.

    Root-level "Planning Time" / "Execution Time" win. When absent, the
    plan's "Planning Time" and "Actual Total Time" stand in.
    """
    if isinstance(document, list):
        document = document[0] if document else None
    if not isinstance(document, Mapping):
        return None, None

    planning = _number(document.get("Planning Time"))
    execution = _number(document.get("Execution Time"))

    plan = document.get("Plan", document.get("plan"))
    if isinstance(plan, Mapping):
        if execution is None:
            execution = _number(plan.get("Actual Total Time"))
        if planning is None:
            planning = _number(plan.get("Planning Time"))

    return planning, execution


def extract_text_timing(text: str) -> tuple[float | None, float | None]:
    """Scan TEXT-format lines for "Planning Time: X ms" and "Execution Time: X ms"."""
    planning: float | None = None
    execution: float | None = None

    for line in text.splitlines():
        if planning is None:
            match = _PLANNING_TIME_RE.match(line)
            if match:
                planning = _to_float(match.group(1))
                continue
        if execution is None:
            match = _EXECUTION_TIME_RE.match(line) or _TOTAL_RUNTIME_RE.match(line)
            if match:
                execution = _to_float(match.group(1))

    return planning, execution


def extract_timing(text: str) -> tuple[float | None, float | None]:
    """
    Timing pre-extraction, run before any parsing stage.

    TEXT markers are tried first. If neither is present the text is treated
    as JSON and the timing read from the decoded document.

    Returns:
        (planning_time_ms, execution_time_ms), either may be None
    """
    planning, execution = extract_text_timing(text)
    if planning is not None or execution is not None:
        return planning, execution

    try:
        document = decode_first_json(text)
    except (ValueError, RecursionError):
        return None, None

    return timing_from_document(document)


def _to_float(raw: str) -> float | None:
    try:
        return float(raw)
    except ValueError:
        return None
