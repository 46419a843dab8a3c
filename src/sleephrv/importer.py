"""Load RR interval recordings from CSV, JSON or plain text files."""

from __future__ import annotations

import csv
import io
import json
import math
import re
from pathlib import Path
from typing import Any

from sleephrv.series import RRPoint, RRSeries

# Values below this are taken to be seconds
SECONDS_CUTOFF = 10.0

JSON_RR_KEYS = ("rr", "RR", "rr_ms", "rr_intervals", "rrIntervals", "RRIntervals", "ibi", "IBI", "nn", "NN")
JSON_ITEM_KEYS = ("rr", "RR", "rr_ms", "rrInterval")

_COMMENT_PREFIXES = ("#", "//")
_TEXT_SPLIT = re.compile(r"[\s,;]+")


class ImportFormatError(ValueError):
    """The file could not be read as RR interval data."""


def to_milliseconds(value: float) -> int:
    if not math.isfinite(value):
        raise ImportFormatError(f"not a finite RR value: {value}")
    if value < SECONDS_CUTOFF:
        value *= 1000.0
    return int(round(value))


def _number(text: str) -> float | None:
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _is_numeric(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def _json_number(value: Any) -> float | None:
    # JSON allows NaN and Infinity literals; bools are ints in Python
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def _content_lines(text: str) -> list[str]:
    lines = (line.strip() for line in text.splitlines())
    return [line for line in lines if line and not line.startswith(_COMMENT_PREFIXES)]


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _find_column(headers: list[str], *, exact: tuple[str, ...], partial: tuple[str, ...] = ()) -> int | None:
    for i, h in enumerate(headers):
        if h in exact:
            return i
    for i, h in enumerate(headers):
        if any(p in h for p in partial):
            return i
    return None


def parse_csv(text: str) -> RRSeries:
    """Parse delimited text with an optional header row.

    With a header the RR column is found by name (``rr``, ``ibi``,
    ``interval``), and ``timestamp_ms`` / ``hr`` columns are used when
    present.  Without one, a single column is the RR value; with several,
    the second column is tried first (``timestamp, rr`` layout).
    """
    lines = _content_lines(text)
    if not lines:
        raise ImportFormatError("no data lines")
    delimiter = ";" if ";" in lines[0] and "," not in lines[0] else ","
    rows = [[c.strip() for c in row] for row in csv.reader(io.StringIO("\n".join(lines)), delimiter=delimiter)]

    first = rows[0]
    has_header = any(not _is_numeric(c) for c in first if c)
    rr_col = ts_col = hr_col = None
    if has_header:
        headers = [h.lower() for h in first]
        rr_col = _find_column(headers, exact=("rr", "rr_ms", "ibi", "interval", "ms"), partial=("rr", "ibi", "interval"))
        ts_col = _find_column(headers, exact=("timestamp_ms", "t_ms", "time_ms", "timestamp"))
        hr_col = _find_column(headers, exact=("hr", "heart_rate", "bpm"))
        if rr_col is None:
            raise ImportFormatError(f"no RR column in header: {', '.join(first)}")
        rows = rows[1:]

    points: list[tuple[int | None, int, int | None]] = []
    for row in rows:
        if rr_col is not None:
            raw = _number(row[rr_col]) if rr_col < len(row) else None
        elif len(row) == 1:
            raw = _number(row[0])
        else:
            raw = _number(row[1])
            if raw is None:
                raw = _number(row[0])
        if raw is None:
            continue
        ts = None
        if ts_col is not None and ts_col < len(row):
            value = _number(row[ts_col])
            ts = None if value is None else int(value)
        hr = None
        if hr_col is not None and hr_col < len(row):
            value = _number(row[hr_col])
            hr = None if value is None else int(round(value))
        points.append((ts, to_milliseconds(raw), hr))

    if not points:
        raise ImportFormatError("no RR values found")
    if all(ts is not None for ts, _, _ in points):
        return RRSeries(tuple(RRPoint(ts, rr, hr) for ts, rr, hr in points))
    return RRSeries.from_intervals(
        [rr for _, rr, _ in points],
        hr=[hr for _, _, hr in points] if hr_col is not None else None,
    )


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def _item_rr(item: dict[str, Any]) -> float | None:
    for key in JSON_ITEM_KEYS:
        value = _json_number(item.get(key))
        if value is not None:
            return value
    return None


def parse_json(text: str) -> RRSeries:
    """Parse a JSON list of numbers, a list of objects, or an export object."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFormatError(f"invalid JSON: {exc}") from exc

    device = None
    if isinstance(data, dict):
        device = data.get("device") if isinstance(data.get("device"), str) else None
        values = next((data[k] for k in JSON_RR_KEYS if isinstance(data.get(k), list)), None)
        if values is None:
            raise ImportFormatError("no RR key in JSON object")
        data = values

    if not isinstance(data, list):
        raise ImportFormatError("expected a JSON list or object")

    rr: list[int] = []
    for item in data:
        value = _item_rr(item) if isinstance(item, dict) else _json_number(item)
        if value is not None:
            rr.append(to_milliseconds(value))
    if not rr:
        raise ImportFormatError("no RR values found")
    return RRSeries.from_intervals(rr, device=device)


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


def parse_text(text: str) -> RRSeries:
    """Numbers separated by whitespace, commas or semicolons."""
    rr = []
    for line in _content_lines(text):
        for token in _TEXT_SPLIT.split(line):
            value = _number(token) if token else None
            if value is not None:
                rr.append(to_milliseconds(value))
    if not rr:
        raise ImportFormatError("no RR values found")
    return RRSeries.from_intervals(rr)


def load_rr_file(path: str | Path) -> RRSeries:
    """Load a recording, choosing the parser from the file suffix.

    Unknown suffixes are tried as JSON when the content starts with ``[`` or
    ``{``, as CSV when the first line has a delimiter, else as plain text.
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8-sig")
    suffix = path.suffix.lower()
    if suffix == ".json":
        return parse_json(text)
    if suffix == ".csv":
        return parse_csv(text)
    if suffix == ".txt":
        return parse_text(text)

    stripped = text.lstrip()
    if stripped.startswith(("[", "{")):
        return parse_json(text)
    lines = _content_lines(text)
    if lines and ("," in lines[0] or ";" in lines[0]):
        return parse_csv(text)
    return parse_text(text)
