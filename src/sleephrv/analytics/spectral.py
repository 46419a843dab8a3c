"""Frequency-domain HRV via Welch's method.

Algorithm:
1. Take the clean beats of the window and place each interval at its
   midpoint time.
2. Linearly resample onto a uniform 4 Hz grid and remove the mean.
3. Welch PSD: Hann-windowed, 50%-overlapping 256-sample segments, density
   scaling (power normalized by window energy and sample rate).  Signals
   shorter than one segment get a single zero-padded Hann window.
4. Integrate VLF / LF / HF band powers rectangularly.

Hann windows are kept in a :class:`PlanCache` owned by the analysis context,
so repeated windows of the same transform size are not rebuilt.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy import signal as sig

from sleephrv.analytics.artifacts import ArtifactFlag
from sleephrv.config import SpectralConfig
from sleephrv.outcome import Found, Insufficient, Outcome
from sleephrv.series import RRSeries


# ---------------------------------------------------------------------------
# Transform plan cache
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpectralPlan:
    """Precomputed per-size transform state."""

    size: int
    window: np.ndarray  # periodic Hann, read-only
    window_power: float  # sum of squared window weights


class PlanCache:
    """Bounded, lock-guarded cache of :class:`SpectralPlan` keyed by size.

    When full, an arbitrary entry is evicted to make room.
    """

    def __init__(self, max_entries: int = 10) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._plans: dict[int, SpectralPlan] = {}
        self._lock = threading.Lock()

    def get(self, size: int) -> SpectralPlan:
        with self._lock:
            plan = self._plans.get(size)
            if plan is not None:
                return plan
            if len(self._plans) >= self.max_entries:
                self._plans.pop(next(iter(self._plans)))
            window = sig.get_window("hann", size, fftbins=True)
            window.flags.writeable = False
            plan = SpectralPlan(size, window, float(np.sum(window ** 2)))
            self._plans[size] = plan
            return plan

    def teardown(self) -> None:
        """Release every cached plan."""
        with self._lock:
            self._plans.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._plans)

    def __contains__(self, size: object) -> bool:
        with self._lock:
            return size in self._plans


# ---------------------------------------------------------------------------
# PSD
# ---------------------------------------------------------------------------


def _next_pow2(n: int) -> int:
    return 1 << max(0, int(n - 1).bit_length())


def welch_psd(
    samples: np.ndarray,
    fs: float,
    cache: PlanCache,
    segment_length: int = 256,
) -> tuple[np.ndarray, np.ndarray]:
    """One-sided power spectral density of a mean-removed, evenly sampled signal.

    Args:
        samples: Uniformly sampled signal.
        fs: Sample rate in Hz.
        cache: Plan cache supplying Hann windows.
        segment_length: Welch segment size (power of two).

    Returns:
        (freqs, psd) arrays; PSD in units^2/Hz.
    """
    x = np.asarray(samples, dtype=np.float64)
    if len(x) >= segment_length:
        plan = cache.get(segment_length)
        return sig.welch(
            x,
            fs=fs,
            window=plan.window,
            nperseg=segment_length,
            noverlap=segment_length // 2,
            detrend=False,
            scaling="density",
        )

    fft_n = _next_pow2(len(x))
    padded = np.zeros(fft_n)
    padded[: len(x)] = x
    plan = cache.get(fft_n)
    return sig.welch(
        padded,
        fs=fs,
        window=plan.window,
        nperseg=fft_n,
        noverlap=0,
        detrend=False,
        scaling="density",
    )


def band_power(
    freqs: np.ndarray,
    psd: np.ndarray,
    lo: float,
    hi: float,
    include_hi: bool = False,
) -> float:
    """Rectangular integral of *psd* over ``[lo, hi)`` (or ``[lo, hi]``)."""
    if len(freqs) < 2:
        return 0.0
    df = float(freqs[1] - freqs[0])
    mask = (freqs >= lo) & ((freqs <= hi) if include_hi else (freqs < hi))
    return float(np.sum(psd[mask]) * df)


# ---------------------------------------------------------------------------
# Frequency-domain metric set
# ---------------------------------------------------------------------------


@dataclass
class FrequencyDomainMetrics:
    """Band powers (ms^2) over a window."""

    vlf: float | None  # None when the span is under 10 minutes
    lf: float
    hf: float
    lf_hf_ratio: float | None  # None when HF is zero
    total_power: float
    hf_peak_hz: float | None = None

    @property
    def lf_nu(self) -> float | None:
        total = self.lf + self.hf
        return self.lf / total * 100.0 if total > 0 else None

    @property
    def hf_nu(self) -> float | None:
        total = self.lf + self.hf
        return self.hf / total * 100.0 if total > 0 else None

    def __repr__(self) -> str:
        ratio = "n/a" if self.lf_hf_ratio is None else f"{self.lf_hf_ratio:.2f}"
        return (
            f"FrequencyDomainMetrics(lf={self.lf:.0f}, hf={self.hf:.0f}, "
            f"lf/hf={ratio}, total={self.total_power:.0f})"
        )


def resample_clean(
    times_s: np.ndarray,
    values: np.ndarray,
    fs: float,
) -> np.ndarray:
    """Linearly interpolate ``(times_s, values)`` onto a uniform grid."""
    duration = float(times_s[-1] - times_s[0])
    n = int(round(duration * fs)) + 1
    grid = times_s[0] + np.arange(n) / fs
    return np.interp(grid, times_s, values)


def frequency_domain(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    cache: PlanCache,
    start: int = 0,
    end: int | None = None,
    config: SpectralConfig | None = None,
) -> Outcome[FrequencyDomainMetrics]:
    """Compute VLF/LF/HF band powers over ``series[start:end]``.

    Returns Insufficient for fewer than 120 points in the window, fewer than
    60 clean beats, or fewer than 64 resampled samples.
    """
    cfg = config or SpectralConfig()
    end = len(series) if end is None else end
    if end - start < cfg.min_window_points:
        return Insufficient(f"{end - start} points, need {cfg.min_window_points}")

    clean = [p for p, f in zip(series.points[start:end], flags[start:end]) if not f.is_artifact]
    if len(clean) < cfg.min_clean_points:
        return Insufficient(f"{len(clean)} clean beats, need {cfg.min_clean_points}")

    times = np.array([p.midpoint_ms for p in clean], dtype=np.float64) / 1000.0
    values = np.array([p.rr_ms for p in clean], dtype=np.float64)
    if times[-1] <= times[0]:
        return Insufficient("zero-length clean span")

    resampled = resample_clean(times, values, cfg.resample_hz)
    if len(resampled) < cfg.min_samples:
        return Insufficient(f"{len(resampled)} samples, need {cfg.min_samples}")
    resampled = resampled - np.mean(resampled)

    freqs, psd = welch_psd(resampled, cfg.resample_hz, cache, cfg.segment_length)

    lf = band_power(freqs, psd, *cfg.lf_band)
    hf = band_power(freqs, psd, *cfg.hf_band, include_hi=True)
    span_min = float(times[-1] - times[0]) / 60.0
    vlf = band_power(freqs, psd, *cfg.vlf_band) if span_min >= cfg.vlf_min_minutes else None

    hf_mask = (freqs >= cfg.hf_band[0]) & (freqs <= cfg.hf_band[1])
    hf_peak = None
    if np.any(hf_mask) and hf > 0:
        hf_peak = round(float(freqs[hf_mask][int(np.argmax(psd[hf_mask]))]), 4)

    return Found(
        FrequencyDomainMetrics(
            vlf=None if vlf is None else round(vlf, 2),
            lf=round(lf, 2),
            hf=round(hf, 2),
            lf_hf_ratio=round(lf / hf, 3) if hf > 0 else None,
            total_power=round((vlf or 0.0) + lf + hf, 2),
            hf_peak_hz=hf_peak,
        )
    )
