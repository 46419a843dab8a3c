"""Time-domain HRV metrics.

Plain helpers (RMSSD, SDNN, pNN50, SDSD, triangular index) work on interval
lists; :func:`time_domain` computes the full metric set over the clean beats
of a sub-range of an :class:`~sleephrv.series.RRSeries`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from sleephrv.analytics.artifacts import ArtifactFlag
from sleephrv.config import TimeDomainConfig
from sleephrv.outcome import Found, Insufficient, Outcome
from sleephrv.series import RRSeries


# ---------------------------------------------------------------------------
# HRV metrics
# ---------------------------------------------------------------------------


def compute_rmssd(rr_intervals: Sequence[float]) -> float | None:
    """Root mean square of successive RR-interval differences (ms).

    Returns None if fewer than 2 intervals are provided.
    """
    if len(rr_intervals) < 2:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    diffs = np.diff(arr)
    return round(float(np.sqrt(np.mean(diffs ** 2))), 2)


def sdnn(rr_intervals: Sequence[float]) -> float | None:
    """Standard deviation of NN (RR) intervals (ms).

    Returns None if fewer than 2 intervals.
    """
    if len(rr_intervals) < 2:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    return round(float(np.std(arr, ddof=1)), 2)


def sdsd(rr_intervals: Sequence[float]) -> float | None:
    """Standard deviation of successive differences (ms).

    Returns None if fewer than 3 intervals.
    """
    if len(rr_intervals) < 3:
        return None
    diffs = np.diff(np.asarray(rr_intervals, dtype=np.float64))
    return round(float(np.std(diffs, ddof=1)), 2)


def pnn50(rr_intervals: Sequence[float]) -> float | None:
    """Percentage of successive RR differences > 50 ms.

    Returns None if fewer than 2 intervals.
    """
    if len(rr_intervals) < 2:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    diffs = np.abs(np.diff(arr))
    return round(float(np.sum(diffs > 50.0) / len(diffs) * 100.0), 1)


def triangular_index(
    rr_intervals: Sequence[float],
    config: TimeDomainConfig | None = None,
) -> float | None:
    """HRV triangular index: beat count / tallest histogram bin.

    Uses 7.8125 ms bins by default.  Returns None below
    ``config.triangular_min_beats`` beats or for a zero range.
    """
    cfg = config or TimeDomainConfig()
    if len(rr_intervals) < cfg.triangular_min_beats:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    lo, hi = float(arr.min()), float(arr.max())
    if hi <= lo:
        return None
    n_bins = int(math.ceil((hi - lo) / cfg.triangular_bin_ms)) + 1
    bins = np.minimum(((arr - lo) / cfg.triangular_bin_ms).astype(np.int64), n_bins - 1)
    tallest = int(np.bincount(bins, minlength=n_bins).max())
    return round(len(arr) / tallest, 2)


# ---------------------------------------------------------------------------
# Heart rate
# ---------------------------------------------------------------------------


def _hr_stats(values: Sequence[float]) -> tuple[float, float, float, float]:
    arr = np.asarray(values, dtype=np.float64)
    return float(arr.mean()), float(arr.std()), float(arr.min()), float(arr.max())


def heart_rate_stats(
    points: Sequence,
    flags: Sequence[ArtifactFlag],
    config: TimeDomainConfig | None = None,
) -> tuple[float, float, float, float]:
    """Mean, SD, min and max heart rate (bpm) for aligned points and flags.

    Sensor-reported HR is used when any point carries it.  Otherwise HR is
    estimated from rolling 10-second windows of clean beats, falling back
    to 60000 / mean RR.
    """
    cfg = config or TimeDomainConfig()
    default = cfg.hr_default_bpm
    if any(p.hr is not None for p in points):
        hr_values = [p.hr for p, f in zip(points, flags) if not f.is_artifact and p.hr is not None]
        if not hr_values:
            return default, 0.0, default, default
        return _hr_stats(hr_values)

    samples: list[float] = []
    n = len(points)
    i = 0
    while i < n:
        beats = 0
        duration = 0
        j = i
        while j < n and duration < cfg.hr_window_ms:
            if not flags[j].is_artifact:
                beats += 1
                duration += points[j].rr_ms
            j += 1
        if beats >= cfg.hr_window_min_beats and duration > 0:
            hr = beats / duration * 60000.0
            if cfg.hr_min_bpm <= hr <= cfg.hr_max_bpm:
                samples.append(hr)
        step = cfg.hr_window_step
        i = i + step if j > i + step else j

    if samples:
        return _hr_stats(samples)

    clean = [p.rr_ms for p, f in zip(points, flags) if not f.is_artifact]
    if clean:
        mean_hr = 60000.0 / float(np.mean(clean))
        return mean_hr, 0.0, mean_hr, mean_hr
    return default, 0.0, default, default


# ---------------------------------------------------------------------------
# Time-domain metric set
# ---------------------------------------------------------------------------


@dataclass
class TimeDomainMetrics:
    """Time-domain HRV over the clean beats of a window."""

    mean_rr: float
    sdnn: float
    rmssd: float
    pnn50: float
    sdsd: float
    mean_hr: float
    sd_hr: float
    min_hr: float
    max_hr: float
    triangular_index: float | None
    n_beats: int

    def __repr__(self) -> str:
        return (
            f"TimeDomainMetrics(rmssd={self.rmssd:.1f}ms, sdnn={self.sdnn:.1f}ms, "
            f"hr={self.mean_hr:.0f}bpm, n={self.n_beats})"
        )


def time_domain(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    start: int = 0,
    end: int | None = None,
    config: TimeDomainConfig | None = None,
) -> Outcome[TimeDomainMetrics]:
    """Compute time-domain metrics over ``series[start:end]``.

    Args:
        series: The recording.
        flags: Artifact flags aligned with *series*.
        start: First index of the window.
        end: One past the last index (default: end of series).
        config: Beat minimums and HR estimation settings.

    Returns:
        Found(TimeDomainMetrics), or Insufficient under ``config.min_beats``
        clean beats.
    """
    cfg = config or TimeDomainConfig()
    end = len(series) if end is None else end
    points = series.points[start:end]
    window_flags = flags[start:end]
    clean = [p.rr_ms for p, f in zip(points, window_flags) if not f.is_artifact]
    if len(clean) < cfg.min_beats:
        return Insufficient(f"{len(clean)} clean beats, need {cfg.min_beats}")

    mean_hr, sd_hr, min_hr, max_hr = heart_rate_stats(points, window_flags, cfg)

    return Found(
        TimeDomainMetrics(
            mean_rr=round(float(np.mean(clean)), 2),
            sdnn=sdnn(clean),
            rmssd=compute_rmssd(clean),
            pnn50=pnn50(clean),
            sdsd=sdsd(clean),
            mean_hr=round(mean_hr, 1),
            sd_hr=round(sd_hr, 1),
            min_hr=round(min_hr, 1),
            max_hr=round(max_hr, 1),
            triangular_index=triangular_index(clean, cfg),
            n_beats=len(clean),
        )
    )
