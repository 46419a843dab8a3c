"""Detrended fluctuation analysis (DFA) of RR interval sequences.

The mean-centered series is integrated, cut into non-overlapping boxes of
``n`` beats, each box is linearly detrended by least squares, and the RMS
fluctuation F(n) is regressed against n on log-log axes.  The slope is the
scaling exponent:

    alpha1 -- short-term, boxes of 4-16 beats
    alpha2 -- long-term, boxes of 16-64 beats (needs >= 256 beats)

alpha1 near 1.0 indicates fractal, well-organized autonomic control; values
near 0.5 look like uncorrelated noise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from sleephrv.config import NonlinearConfig
from sleephrv.outcome import Found, Insufficient, Outcome


LOG_FLOOR = -10.0  # log10 used for a zero fluctuation
DEGENERATE_EPS = 1e-10


@dataclass
class DFAResult:
    """Scaling exponents and regression quality."""

    alpha1: float
    alpha1_r2: float
    alpha2: float | None = None
    alpha2_r2: float | None = None

    def __repr__(self) -> str:
        a2 = "n/a" if self.alpha2 is None else f"{self.alpha2:.3f}"
        return f"DFAResult(alpha1={self.alpha1:.3f}, alpha2={a2})"


def fluctuation(profile: np.ndarray, box_size: int) -> float:
    """RMS of the linearly detrended profile over non-overlapping boxes."""
    n_boxes = len(profile) // box_size
    if n_boxes == 0:
        return 0.0
    boxes = profile[: n_boxes * box_size].reshape(n_boxes, box_size)
    t = np.arange(box_size, dtype=np.float64)
    t_centered = t - t.mean()
    denom = float(np.sum(t_centered ** 2))
    box_mean = boxes.mean(axis=1, keepdims=True)
    if abs(denom) < DEGENERATE_EPS:
        residual = boxes
    else:
        slope = np.sum(t_centered * (boxes - box_mean), axis=1, keepdims=True) / denom
        residual = boxes - (box_mean + slope * t_centered)
    return float(np.sqrt(np.sum(residual ** 2) / (n_boxes * box_size)))


def loglog_fit(
    box_sizes: Sequence[int],
    fluctuations: Sequence[float],
) -> tuple[float, float]:
    """Least-squares slope and R^2 of log10 F(n) against log10 n.

    Degenerate fits (collinear x) return (0.0, 0.0).
    """
    x = np.log10(np.asarray(box_sizes, dtype=np.float64))
    f = np.asarray(fluctuations, dtype=np.float64)
    y = np.full(len(f), LOG_FLOOR)
    positive = f > 0
    y[positive] = np.log10(f[positive])

    n = len(x)
    sum_x, sum_y = float(np.sum(x)), float(np.sum(y))
    denom = n * float(np.sum(x * x)) - sum_x ** 2
    if abs(denom) < DEGENERATE_EPS:
        return 0.0, 0.0
    slope = (n * float(np.sum(x * y)) - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n

    ss_total = float(np.sum((y - y.mean()) ** 2))
    if ss_total <= 0:
        return slope, 0.0
    ss_resid = float(np.sum((y - (intercept + slope * x)) ** 2))
    r2 = min(1.0, max(0.0, 1.0 - ss_resid / ss_total))
    return slope, r2


def _exponent(profile: np.ndarray, box_sizes: list[int]) -> tuple[float, float]:
    flucts = [fluctuation(profile, size) for size in box_sizes]
    return loglog_fit(box_sizes, flucts)


def dfa(
    rr_intervals: Sequence[float],
    config: NonlinearConfig | None = None,
) -> Outcome[DFAResult]:
    """Compute DFA alpha1 (and alpha2 when the series is long enough).

    Args:
        rr_intervals: Clean RR intervals (ms).
        config: Box-size ranges and minimum lengths.

    Returns:
        Found(DFAResult), or Insufficient under 64 beats or with fewer than
        3 usable alpha1 box sizes.
    """
    cfg = config or NonlinearConfig()
    n = len(rr_intervals)
    if n < cfg.dfa_min_beats:
        return Insufficient(f"{n} beats, need {cfg.dfa_min_beats}")

    rr = np.asarray(rr_intervals, dtype=np.float64)
    profile = np.cumsum(rr - rr.mean())

    a1_sizes = list(range(cfg.alpha1_min_box, min(cfg.alpha1_max_box, n // 4) + 1))
    if len(a1_sizes) < cfg.min_box_sizes:
        return Insufficient("too few alpha1 box sizes")
    alpha1, alpha1_r2 = _exponent(profile, a1_sizes)

    result = DFAResult(alpha1=round(alpha1, 4), alpha1_r2=round(alpha1_r2, 4))

    a2_sizes = list(
        range(cfg.alpha2_min_box, min(cfg.alpha2_max_box, n // 4) + 1, cfg.alpha2_step)
    )
    if len(a2_sizes) >= cfg.min_box_sizes and n >= cfg.alpha2_min_beats:
        alpha2, alpha2_r2 = _exponent(profile, a2_sizes)
        result.alpha2 = round(alpha2, 4)
        result.alpha2_r2 = round(alpha2_r2, 4)

    return Found(result)
