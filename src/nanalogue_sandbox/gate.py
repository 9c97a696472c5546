# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_sandbox

"""Output size gating.

Large results are shrunk at semantic boundaries (list items, whole lines,
mapping fields) so that what reaches the model is still valid, parseable data
carrying explicit truncation metadata, and never larger than the byte budget.
"""

import json
from collections.abc import Mapping
from typing import Any, Callable, NamedTuple

SERIALIZATION_FALLBACK: dict[str, str] = {"_error": "cyclic or non-serializable value"}
TRUNCATED_MARKER = "[TRUNCATED]"


class GateResult(NamedTuple):
    value: Any
    truncated: bool


def safe_serialize(value: Any) -> str | None:
    """Compact JSON for value, or None for cyclic / non-serializable values."""
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError, RecursionError):
        return None


def byte_length(text: str) -> int:
    return len(text.encode("utf-8"))


def serialized_size(value: Any) -> int | None:
    serialized = safe_serialize(value)
    return None if serialized is None else byte_length(serialized)


def normalize(value: Any, _active: set[int] | None = None) -> Any:
    """Convert interpreter values into plain JSON-shaped data.

    Tuples, sets and frozensets become lists and mapping keys become strings.
    A container that refers back to itself is left as is, so serialisation of
    the result fails and the gate falls back to its error payload.
    """
    active = _active if _active is not None else set()
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if id(value) in active:
            return value
        active.add(id(value))
        try:
            if isinstance(value, Mapping):
                return {str(key): normalize(item, active) for key, item in value.items()}
            items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else value
            return [normalize(item, active) for item in items]
        finally:
            active.discard(id(value))
    return value


def _largest_fitting(upper: int, fits: Callable[[int], bool]) -> int:
    """Largest n in [0, upper] with fits(n), assuming fits is monotone decreasing."""
    low, high = 0, upper
    while low < high:
        mid = (low + high + 1) // 2
        if fits(mid):
            low = mid
        else:
            high = mid - 1
    return low


def _fit_text(text: str, suffix: str, max_bytes: int) -> str:
    """Longest prefix of text that, with suffix appended, serialises within max_bytes."""

    def fits(n: int) -> bool:
        return serialized_size(text[:n] + suffix) <= max_bytes  # type: ignore[operator]

    if not fits(0):
        return TRUNCATED_MARKER
    return text[: _largest_fitting(len(text), fits)] + suffix


def _gate_list(value: list[Any], max_bytes: int, total_bytes: int) -> Any:
    total = len(value)

    def envelope(items: list[Any], kept: int, dropped: int) -> dict[str, Any]:
        return {
            "items": items,
            "_truncated": {"kept": kept, "total": total, "dropped": dropped, "total_bytes": total_bytes},
        }

    # Worst-case digits for the counters, so the real footer is never larger.
    current = serialized_size(envelope([], total, total)) or 0
    if current > max_bytes:
        return TRUNCATED_MARKER
    items: list[Any] = []
    for item in value:
        item_bytes = serialized_size(item)
        if item_bytes is None:
            break
        cost = item_bytes + (1 if items else 0)
        if current + cost > max_bytes:
            break
        items.append(item)
        current += cost
    return envelope(items, len(items), total - len(items))


def _gate_string(value: str, max_bytes: int, total_bytes: int) -> str:
    lines = value.split("\n")
    total_lines = len(lines)

    def note(kept: int) -> str:
        return f"\n[TRUNCATED: showing {kept} of {total_lines} lines, {total_bytes} bytes total]"

    def fits(kept: int) -> bool:
        candidate = "\n".join(lines[:kept]) + note(kept)
        return serialized_size(candidate) <= max_bytes  # type: ignore[operator]

    kept = _largest_fitting(total_lines, fits)
    if kept > 0:
        return "\n".join(lines[:kept]) + note(kept)
    # The first line alone is too long; cut it by characters.
    return _fit_text(lines[0], note(1), max_bytes)


def _gate_mapping(value: dict[str, Any], max_bytes: int) -> Any:
    field_budget = max_bytes // 4
    gated: dict[str, Any] = {}
    for key, item in value.items():
        item_bytes = serialized_size(item)
        if isinstance(item, (str, list)) and (item_bytes is None or item_bytes > field_budget):
            gated[key] = gate_output_size(item, field_budget).value
        else:
            gated[key] = item
    serialized = safe_serialize(gated)
    if serialized is None:
        return dict(SERIALIZATION_FALLBACK)
    if byte_length(serialized) > max_bytes:
        note = f"\n[TRUNCATED: object exceeded {max_bytes} bytes after structural truncation]"
        return _fit_text(serialized, note, max_bytes)
    return gated


def gate_output_size(value: Any, max_bytes: int) -> GateResult:
    """Bound the serialised size of value to max_bytes.

    Args:
        value: The result value to gate.
        max_bytes: The output budget in bytes (UTF-8 of compact JSON).

    Returns:
        GateResult: The original value when it fits, otherwise a truncated,
        still-parseable value, and whether truncation happened.
    """
    value = normalize(value)
    serialized = safe_serialize(value)
    if serialized is None:
        return GateResult(dict(SERIALIZATION_FALLBACK), True)

    total_bytes = byte_length(serialized)
    if total_bytes <= max_bytes:
        return GateResult(value, False)

    if isinstance(value, list):
        return GateResult(_gate_list(value, max_bytes, total_bytes), True)
    if isinstance(value, str):
        return GateResult(_gate_string(value, max_bytes, total_bytes), True)
    if isinstance(value, dict):
        return GateResult(_gate_mapping(value, max_bytes), True)
    note = f"\n[TRUNCATED: value exceeded {max_bytes} bytes]"
    return GateResult(_fit_text(serialized, note, max_bytes), True)
