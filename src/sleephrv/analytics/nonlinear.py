"""Nonlinear HRV metrics: Poincare geometry, entropy and DFA.

Entropy estimators use O(n^2) template matching with a Chebyshev distance
tolerance of ``r * SD``.  Templates are compared one row at a time against
all later rows, so memory stays O(n * m).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from sleephrv.analytics.artifacts import ArtifactFlag
from sleephrv.analytics.dfa import dfa
from sleephrv.config import NonlinearConfig
from sleephrv.outcome import Found, Insufficient, Outcome, unwrap
from sleephrv.series import RRSeries


# ---------------------------------------------------------------------------
# Poincare
# ---------------------------------------------------------------------------


def poincare(rr_intervals: Sequence[float]) -> tuple[float, float] | None:
    """Poincare plot axes (SD1, SD2) in ms.

    SD1 = sqrt(var(diff) / 2), SD2 = sqrt(2 * SDNN^2 - SD1^2), both clamped
    at zero.  Returns None for fewer than 3 intervals.
    """
    if len(rr_intervals) < 3:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    var_diff = float(np.var(np.diff(arr)))
    sd1 = math.sqrt(max(0.0, var_diff) / 2.0)
    sdnn_val = float(np.std(arr, ddof=1))
    sd2 = math.sqrt(max(0.0, 2.0 * sdnn_val ** 2 - sd1 ** 2))
    return sd1, sd2


# ---------------------------------------------------------------------------
# Entropy
# ---------------------------------------------------------------------------


def _tolerance(arr: np.ndarray, r: float) -> float:
    return r * float(np.std(arr, ddof=1))


def _count_matching_pairs(templates: np.ndarray, tol: float) -> int:
    total = 0
    for i in range(len(templates) - 1):
        dist = np.max(np.abs(templates[i + 1:] - templates[i]), axis=1)
        total += int(np.count_nonzero(dist <= tol))
    return total


def sample_entropy(
    rr_intervals: Sequence[float],
    m: int = 2,
    r: float = 0.2,
) -> float | None:
    """Sample entropy (SampEn), excluding self-matches.

    Both template lengths use the same ``n - m`` starting positions.
    Returns None for fewer than ``m + 2`` points or when no matches exist.
    """
    n = len(rr_intervals)
    if n < m + 2:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    tol = _tolerance(arr, r)
    n_templates = n - m
    count_m = _count_matching_pairs(sliding_window_view(arr, m)[:n_templates], tol)
    count_m1 = _count_matching_pairs(sliding_window_view(arr, m + 1)[:n_templates], tol)
    if count_m == 0 or count_m1 == 0:
        return None
    return -math.log(count_m1 / count_m)


def _phi(arr: np.ndarray, length: int, tol: float) -> float:
    templates = sliding_window_view(arr, length)
    n_templates = len(templates)
    log_sum = 0.0
    for template in templates:
        matches = np.count_nonzero(np.max(np.abs(templates - template), axis=1) <= tol)
        log_sum += math.log(matches / n_templates)
    return log_sum / n_templates


def approximate_entropy(
    rr_intervals: Sequence[float],
    m: int = 2,
    r: float = 0.2,
) -> float | None:
    """Approximate entropy (ApEn), self-matches included.

    Returns None for fewer than ``m + 2`` points.
    """
    if len(rr_intervals) < m + 2:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    tol = _tolerance(arr, r)
    return _phi(arr, m, tol) - _phi(arr, m + 1, tol)


# ---------------------------------------------------------------------------
# Nonlinear metric set
# ---------------------------------------------------------------------------


@dataclass
class NonlinearMetrics:
    """Poincare, entropy and fractal metrics over a window."""

    sd1: float
    sd2: float
    sd1_sd2_ratio: float
    sample_entropy: float | None
    approximate_entropy: float | None
    dfa_alpha1: float | None
    dfa_alpha2: float | None
    dfa_alpha1_r2: float | None
    dfa_alpha2_r2: float | None

    def __repr__(self) -> str:
        a1 = "n/a" if self.dfa_alpha1 is None else f"{self.dfa_alpha1:.2f}"
        return f"NonlinearMetrics(sd1={self.sd1:.1f}, sd2={self.sd2:.1f}, alpha1={a1})"


def _maybe_round(value: float | None, digits: int) -> float | None:
    return None if value is None else round(value, digits)


def nonlinear(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    start: int = 0,
    end: int | None = None,
    config: NonlinearConfig | None = None,
) -> Outcome[NonlinearMetrics]:
    """Compute nonlinear metrics over the clean beats of ``series[start:end]``.

    Returns Insufficient under 10 clean beats.
    """
    cfg = config or NonlinearConfig()
    end = len(series) if end is None else end
    clean = [p.rr_ms for p, f in zip(series.points[start:end], flags[start:end]) if not f.is_artifact]
    if len(clean) < cfg.min_beats:
        return Insufficient(f"{len(clean)} clean beats, need {cfg.min_beats}")

    sd1, sd2 = poincare(clean)
    fractal = unwrap(dfa(clean, cfg))

    return Found(
        NonlinearMetrics(
            sd1=round(sd1, 2),
            sd2=round(sd2, 2),
            sd1_sd2_ratio=round(sd1 / sd2, 4) if sd2 > 0 else 0.0,
            sample_entropy=_maybe_round(sample_entropy(clean, cfg.entropy_m, cfg.entropy_r), 4),
            approximate_entropy=_maybe_round(
                approximate_entropy(clean, cfg.entropy_m, cfg.entropy_r), 4
            ),
            dfa_alpha1=None if fractal is None else fractal.alpha1,
            dfa_alpha2=None if fractal is None else fractal.alpha2,
            dfa_alpha1_r2=None if fractal is None else fractal.alpha1_r2,
            dfa_alpha2_r2=None if fractal is None else fractal.alpha2_r2,
        )
    )
