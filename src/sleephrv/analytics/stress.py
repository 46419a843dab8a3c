"""Autonomic (ANS) indices.

- Baevsky Stress Index from the RR histogram
- PNS / SNS composite indices: fixed-reference z-score averages
- Nocturnal heart-rate dip
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from sleephrv.config import StressConfig


@dataclass
class ANSMetrics:
    """Composite autonomic indices for a window."""

    stress_index: float | None
    pns_index: float | None
    sns_index: float | None
    readiness_score: float | None = None
    respiration_rate: float | None = None
    nocturnal_hr_dip: float | None = None
    daytime_resting_hr: float | None = None
    nocturnal_median_hr: float | None = None

    @property
    def balance(self) -> float | None:
        """PNS - SNS; positive means parasympathetic dominance."""
        if self.pns_index is None or self.sns_index is None:
            return None
        return round(self.pns_index - self.sns_index, 3)

    def __repr__(self) -> str:
        si = "n/a" if self.stress_index is None else f"{self.stress_index:.0f}"
        return f"ANSMetrics(si={si}, pns={self.pns_index}, sns={self.sns_index})"


def stress_index(rr_intervals: Sequence[float], config: StressConfig | None = None) -> float | None:
    """Baevsky Stress Index: AMo / (2 * Mo * MxDMn).

    Mo is the center of the modal 50 ms bin in seconds, AMo that bin's share
    of all beats in percent, MxDMn the RR range in seconds.

    Returns None below ``config.min_beats`` beats or for a zero range.
    """
    cfg = config or StressConfig()
    if len(rr_intervals) < cfg.min_beats:
        return None
    arr = np.asarray(rr_intervals, dtype=np.float64)
    lo, hi = float(arr.min()), float(arr.max())
    mxdmn = (hi - lo) / 1000.0
    if mxdmn <= 0:
        return None

    n_bins = int(math.ceil((hi - lo) / cfg.bin_ms)) + 1
    bins = np.minimum(((arr - lo) / cfg.bin_ms).astype(np.int64), n_bins - 1)
    counts = np.bincount(bins, minlength=n_bins)
    mode_bin = int(np.argmax(counts))

    mo = (lo + mode_bin * cfg.bin_ms + cfg.bin_ms / 2.0) / 1000.0
    amo = counts[mode_bin] / len(arr) * 100.0
    return float(amo / (2.0 * mo * mxdmn))


def _z(value: float, ref: tuple[float, float]) -> float:
    return (value - ref[0]) / ref[1]


def pns_index(mean_rr: float, rmssd: float, sd1: float, config: StressConfig | None = None) -> float:
    """Parasympathetic index (typically -3 to +3)."""
    cfg = config or StressConfig()
    return (
        _z(mean_rr, cfg.pns_ref_mean_rr) + _z(rmssd, cfg.pns_ref_rmssd) + _z(sd1, cfg.pns_ref_sd1)
    ) / 3.0


def sns_index(mean_hr: float, stress: float, sd2: float, config: StressConfig | None = None) -> float:
    """Sympathetic index (typically -3 to +3).  SD2 counts inverted."""
    cfg = config or StressConfig()
    return (
        _z(mean_hr, cfg.sns_ref_mean_hr) + _z(stress, cfg.sns_ref_si) - _z(sd2, cfg.sns_ref_sd2)
    ) / 3.0


def nocturnal_hr_dip(daytime_hr: float, sleep_hr: float) -> float | None:
    """Percentage drop of sleeping HR below daytime resting HR.

    10-20% is typical; below 10% is a blunted dip.
    """
    if daytime_hr <= 0:
        return None
    return round((daytime_hr - sleep_hr) / daytime_hr * 100.0, 1)


def ans_metrics(
    clean_rr: Sequence[float],
    mean_rr: float | None,
    rmssd: float | None,
    mean_hr: float | None,
    sd1: float | None,
    sd2: float | None,
    respiration_rate: float | None = None,
    daytime_resting_hr: float | None = None,
    config: StressConfig | None = None,
) -> ANSMetrics:
    """Assemble ANS indices from already-computed window metrics.

    Any index whose inputs are missing is left as None.
    """
    cfg = config or StressConfig()
    si = stress_index(clean_rr, cfg)
    pns = None
    if mean_rr is not None and rmssd is not None and sd1 is not None:
        pns = round(pns_index(mean_rr, rmssd, sd1, cfg), 3)
    sns = None
    if mean_hr is not None and si is not None and sd2 is not None:
        sns = round(sns_index(mean_hr, si, sd2, cfg), 3)

    median_hr = None
    dip = None
    if len(clean_rr) > 0:
        median_hr = round(float(np.median(60000.0 / np.asarray(clean_rr, dtype=np.float64))), 1)
        if daytime_resting_hr is not None:
            dip = nocturnal_hr_dip(daytime_resting_hr, median_hr)

    return ANSMetrics(
        stress_index=None if si is None else round(si, 2),
        pns_index=pns,
        sns_index=sns,
        respiration_rate=respiration_rate,
        nocturnal_hr_dip=dip,
        daytime_resting_hr=daytime_resting_hr,
        nocturnal_median_hr=median_hr,
    )
