"""Artifact detection and correction for RR interval series.

Detection compares every interval against a centered rolling median and
labels it technical (outside the physiological range), ectopic, missed
(long, a skipped detection) or extra (short, a double detection).

Correction is a separate, pure step: it takes interval values and flags and
returns repaired values plus updated flags.  Corrected points keep their
original type and confidence so the repair can be audited.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Sequence

import numpy as np

from sleephrv.config import ArtifactConfig, CorrectionConfig
from sleephrv.series import RRSeries


class ArtifactType(str, Enum):
    TECHNICAL = "technical"
    ECTOPIC = "ectopic"
    MISSED = "missed"
    EXTRA = "extra"
    NONE = "none"


class CorrectionMethod(str, Enum):
    NONE = "none"
    DELETION = "deletion"
    LINEAR_INTERPOLATION = "linear_interpolation"
    CUBIC_SPLINE = "cubic_spline"
    MEDIAN = "median"


@dataclass(frozen=True)
class ArtifactFlag:
    """Per-beat artifact label, index aligned with its series."""

    is_artifact: bool
    type: ArtifactType = ArtifactType.NONE
    confidence: float = 1.0
    corrected: bool = False

    @classmethod
    def clean(cls) -> ArtifactFlag:
        return cls(is_artifact=False, type=ArtifactType.NONE, confidence=1.0)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


def rolling_median(values: Sequence[float], window_size: int) -> np.ndarray:
    """Centered rolling median, with the window clipped at the edges."""
    arr = np.asarray(values, dtype=np.float64)
    n = len(arr)
    half = window_size // 2
    out = np.empty(n, dtype=np.float64)
    for i in range(n):
        lo = max(0, i - half)
        hi = min(n, i + half + 1)
        out[i] = np.median(arr[lo:hi])
    return out


def _classify_beat(value: float, median: float, cfg: ArtifactConfig) -> ArtifactFlag:
    if value < cfg.min_rr_ms or value > cfg.max_rr_ms:
        return ArtifactFlag(True, ArtifactType.TECHNICAL, 1.0)
    if median <= 0:
        return ArtifactFlag.clean()

    ratio = abs(value - median) / median

    if value < median * (1.0 - cfg.extra_threshold):
        confidence = min(1.0, ratio / cfg.extra_threshold)
        if value < median * cfg.extra_fraction:
            return ArtifactFlag(True, ArtifactType.EXTRA, confidence)
        return ArtifactFlag(ratio > cfg.ectopic_threshold, ArtifactType.ECTOPIC, confidence)

    if value > median * (1.0 + cfg.missed_threshold):
        return ArtifactFlag(True, ArtifactType.MISSED, min(1.0, ratio / cfg.missed_threshold))

    if ratio > cfg.ectopic_threshold:
        return ArtifactFlag(True, ArtifactType.ECTOPIC, min(1.0, ratio / cfg.ectopic_threshold))

    return ArtifactFlag.clean()


def detect_artifacts(
    series: RRSeries | Sequence[float],
    config: ArtifactConfig | None = None,
) -> list[ArtifactFlag]:
    """Flag every beat of *series*.

    Args:
        series: An RRSeries or a plain sequence of intervals (ms).
        config: Detection thresholds (defaults if omitted).

    Returns:
        One :class:`ArtifactFlag` per input beat, in order.
    """
    cfg = config or ArtifactConfig()
    values = series.rr_values if isinstance(series, RRSeries) else np.asarray(series, dtype=np.float64)
    if len(values) == 0:
        return []
    medians = rolling_median(values, cfg.window_size)
    return [_classify_beat(float(v), float(m), cfg) for v, m in zip(values, medians)]


def artifact_percentage(
    flags: Sequence[ArtifactFlag],
    start: int = 0,
    end: int | None = None,
) -> float:
    """Percentage of flagged beats in ``flags[start:end]``."""
    window = flags[start:end]
    if len(window) == 0:
        return 0.0
    count = sum(1 for f in window if f.is_artifact)
    return count / len(window) * 100.0


def count_by_type(flags: Sequence[ArtifactFlag]) -> dict[str, int]:
    """Number of artifacts of each type (clean beats excluded)."""
    counts = {t.value: 0 for t in ArtifactType if t is not ArtifactType.NONE}
    for f in flags:
        if f.is_artifact:
            counts[f.type.value] += 1
    return counts


# ---------------------------------------------------------------------------
# Correction
# ---------------------------------------------------------------------------


def _round_ms(value: float) -> int:
    # half-up, intervals are positive
    return int(math.floor(value + 0.5))


def _mark_corrected(flag: ArtifactFlag) -> ArtifactFlag:
    return replace(flag, is_artifact=False, corrected=True)


def _deletion(values: list[int], flags: list[ArtifactFlag]) -> tuple[list[int], list[ArtifactFlag]]:
    kept = [v for v, f in zip(values, flags) if not f.is_artifact]
    return kept, [ArtifactFlag.clean() for _ in kept]


def _linear_interpolation(
    values: list[int],
    flags: list[ArtifactFlag],
) -> tuple[list[int], list[ArtifactFlag]]:
    corrected = list(values)
    new_flags = list(flags)
    n = len(values)
    i = 0
    while i < n:
        if not flags[i].is_artifact:
            i += 1
            continue
        j = i
        while j < n and flags[j].is_artifact:
            j += 1
        before = i - 1 if i > 0 else None
        after = j if j < n else None

        for k in range(i, j):
            if before is not None and after is not None:
                frac = (k - before) / (after - before)
                corrected[k] = _round_ms(values[before] + frac * (values[after] - values[before]))
            elif before is not None:
                corrected[k] = values[before]
            elif after is not None:
                corrected[k] = values[after]
            else:
                continue
            new_flags[k] = _mark_corrected(flags[k])
        i = j
    return corrected, new_flags


def natural_cubic_spline(
    x: Sequence[float],
    y: Sequence[float],
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Coefficients of a natural cubic spline through ``(x, y)``.

    The tridiagonal system for the second-derivative terms is solved with
    the Thomas algorithm.  Segment ``i`` evaluates as
    ``a[i] + b[i]*dt + c[i]*dt**2 + d[i]*dt**3`` with ``dt = t - x[i]``.

    Returns:
        (a, b, c, d); ``a`` and ``c`` have one entry per knot, ``b`` and
        ``d`` one per segment.
    """
    xs = np.asarray(x, dtype=np.float64)
    a = np.asarray(y, dtype=np.float64)
    n = len(xs)
    h = np.diff(xs)

    alpha = np.zeros(n)
    for i in range(1, n - 1):
        if h[i - 1] > 0 and h[i] > 0:
            alpha[i] = 3.0 / h[i] * (a[i + 1] - a[i]) - 3.0 / h[i - 1] * (a[i] - a[i - 1])

    # forward sweep
    lower = np.ones(n)
    mu = np.zeros(n)
    z = np.zeros(n)
    for i in range(1, n - 1):
        lower[i] = 2.0 * (xs[i + 1] - xs[i - 1]) - h[i - 1] * mu[i - 1]
        if lower[i] == 0:
            continue
        mu[i] = h[i] / lower[i]
        z[i] = (alpha[i] - h[i - 1] * z[i - 1]) / lower[i]

    # back substitution; c[n-1] = 0 for a natural spline
    c = np.zeros(n)
    for j in range(n - 2, -1, -1):
        c[j] = z[j] - mu[j] * c[j + 1]

    b = np.zeros(n - 1)
    d = np.zeros(n - 1)
    for i in range(n - 1):
        if h[i] <= 0:
            continue
        b[i] = (a[i + 1] - a[i]) / h[i] - h[i] * (c[i + 1] + 2.0 * c[i]) / 3.0
        d[i] = (c[i + 1] - c[i]) / (3.0 * h[i])
    return a, b, c, d


def _cubic_spline(
    values: list[int],
    flags: list[ArtifactFlag],
    cfg: CorrectionConfig,
) -> tuple[list[int], list[ArtifactFlag]]:
    clean_idx = [i for i, f in enumerate(flags) if not f.is_artifact]
    if len(clean_idx) < cfg.spline_min_points:
        return _linear_interpolation(values, flags)

    xs = np.asarray(clean_idx, dtype=np.float64)
    a, b, c, d = natural_cubic_spline(xs, [values[i] for i in clean_idx])

    corrected = list(values)
    new_flags = list(flags)
    last_segment = len(xs) - 2
    for i, flag in enumerate(flags):
        if not flag.is_artifact:
            continue
        seg = int(np.searchsorted(xs, i, side="right")) - 1
        seg = min(max(seg, 0), last_segment)
        dt = i - xs[seg]
        est = a[seg] + b[seg] * dt + c[seg] * dt ** 2 + d[seg] * dt ** 3
        corrected[i] = _round_ms(min(cfg.clamp_max_ms, max(cfg.clamp_min_ms, est)))
        new_flags[i] = _mark_corrected(flag)
    return corrected, new_flags


def _median_replacement(
    values: list[int],
    flags: list[ArtifactFlag],
    cfg: CorrectionConfig,
) -> tuple[list[int], list[ArtifactFlag]]:
    corrected = list(values)
    new_flags = list(flags)
    half = cfg.median_window // 2
    n = len(values)
    for i, flag in enumerate(flags):
        if not flag.is_artifact:
            continue
        lo = max(0, i - half)
        hi = min(n, i + half + 1)
        neighbours = sorted(values[j] for j in range(lo, hi) if not flags[j].is_artifact)
        if not neighbours:
            continue
        mid = len(neighbours) // 2
        if len(neighbours) % 2 == 0:
            corrected[i] = (neighbours[mid - 1] + neighbours[mid]) // 2
        else:
            corrected[i] = neighbours[mid]
        new_flags[i] = _mark_corrected(flag)
    return corrected, new_flags


def correct_artifacts(
    rr_values: Sequence[int],
    flags: Sequence[ArtifactFlag],
    method: CorrectionMethod | str = CorrectionMethod.NONE,
    config: CorrectionConfig | None = None,
) -> tuple[list[int], list[ArtifactFlag]]:
    """Repair flagged intervals.

    Args:
        rr_values: Interval values (ms).
        flags: Artifact flags aligned with *rr_values*.
        method: One of :class:`CorrectionMethod` (or its string value).
        config: Correction parameters (defaults if omitted).

    Returns:
        ``(corrected_values, new_flags)``.  Only ``deletion`` changes the
        length.
    """
    if len(rr_values) != len(flags):
        raise ValueError("rr_values and flags must have the same length")
    cfg = config or CorrectionConfig()
    method = CorrectionMethod(method)
    values = [int(v) for v in rr_values]
    flag_list = list(flags)

    if method is CorrectionMethod.NONE:
        return values, flag_list
    if method is CorrectionMethod.DELETION:
        return _deletion(values, flag_list)
    if method is CorrectionMethod.LINEAR_INTERPOLATION:
        return _linear_interpolation(values, flag_list)
    if method is CorrectionMethod.CUBIC_SPLINE:
        return _cubic_spline(values, flag_list, cfg)
    return _median_replacement(values, flag_list, cfg)


def corrected_series(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    method: CorrectionMethod | str,
    config: CorrectionConfig | None = None,
) -> tuple[RRSeries, list[ArtifactFlag]]:
    """Apply :func:`correct_artifacts` to a series, keeping beat timestamps.

    Deletion drops points (timestamps of survivors are unchanged); the other
    methods replace interval values in place.
    """
    values, new_flags = correct_artifacts(series.rr_values, flags, method, config)
    if CorrectionMethod(method) is CorrectionMethod.DELETION:
        kept = [p for p, f in zip(series.points, flags) if not f.is_artifact]
        return RRSeries(tuple(kept), device=series.device), new_flags
    points = tuple(replace(p, rr_ms=v) for p, v in zip(series.points, values))
    return RRSeries(points, device=series.device), new_flags
