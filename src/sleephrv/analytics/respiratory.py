"""Respiratory rate estimation from RR intervals.

Respiratory sinus arrhythmia (RSA) causes the RR interval to modulate
at the breathing frequency (typically 0.15–0.5 Hz, i.e. 9–30 breaths/min).

Algorithm:
1. Interpolate the (irregularly sampled) RR interval series to a uniform
   sample rate.
2. Remove the mean and apply a bandpass filter to isolate the respiratory band.
3. Zero-pad to a power of two, apply a Hann window and find the dominant
   frequency via FFT peak detection.
4. Convert Hz → breaths per minute, rejecting implausible rates.

Short or weakly modulated windows fall back to counting zero crossings of
the band-passed signal (:func:`respiratory_rate`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy import signal as sig

from sleephrv.config import RespiratoryConfig


@dataclass
class RespiratoryResult:
    """Estimated respiratory rate and confidence."""

    rate_bpm: float  # breaths per minute
    confidence: float  # 0-1 quality indicator

    def __repr__(self) -> str:
        return (
            f"RespiratoryResult(rate={self.rate_bpm:.1f} breaths/min, "
            f"conf={self.confidence:.2f})"
        )


def _interpolate_rr(
    rr_intervals_ms: Sequence[float],
    fs: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Interpolate RR intervals to a uniform sample rate.

    Args:
        rr_intervals_ms: Successive RR intervals in milliseconds.
        fs: Target sample rate in Hz.

    Returns:
        (time_uniform, rr_uniform) arrays; the time axis starts at 0 s.
    """
    rr = np.asarray(rr_intervals_ms, dtype=np.float64)
    # each interval is placed at the beat that starts it
    t_vals = np.concatenate(([0.0], np.cumsum(rr[:-1]))) / 1000.0
    t_uniform = np.arange(0.0, t_vals[-1], 1.0 / fs)
    return t_uniform, np.interp(t_uniform, t_vals, rr)


def _bandpass_filter(
    data: np.ndarray,
    fs: float,
    lo: float,
    hi: float,
    order: int = 4,
) -> np.ndarray:
    """Apply a Butterworth bandpass filter."""
    nyq = fs / 2.0
    # Clamp to avoid invalid Wn values
    lo_n = max(lo / nyq, 0.001)
    hi_n = min(hi / nyq, 0.999)
    if lo_n >= hi_n:
        return data
    sos = sig.butter(order, [lo_n, hi_n], btype="band", output="sos")
    return sig.sosfiltfilt(sos, data)


def estimate_respiratory_rate(
    rr_intervals_ms: Sequence[float],
    config: RespiratoryConfig | None = None,
) -> RespiratoryResult | None:
    """Estimate respiratory rate from clean RR intervals.

    Args:
        rr_intervals_ms: Successive clean RR intervals in milliseconds.
        config: Band, resampling rate and plausibility limits.

    Returns:
        RespiratoryResult, or None when there are fewer than
        ``config.min_intervals`` intervals, no respiratory power, or the
        peak is outside the plausible breathing range.
    """
    cfg = config or RespiratoryConfig()
    if len(rr_intervals_ms) < cfg.min_intervals:
        return None

    fs = cfg.resample_hz
    lo, hi = cfg.band_hz
    _, rr_uniform = _interpolate_rr(rr_intervals_ms, fs)
    if len(rr_uniform) < cfg.min_samples:
        return None

    centered = rr_uniform - np.mean(rr_uniform)
    filtered = _bandpass_filter(centered, fs, lo, hi, cfg.filter_order)

    fft_n = 1 << int(np.ceil(np.log2(len(filtered))))
    padded = np.zeros(fft_n)
    padded[: len(filtered)] = filtered
    padded *= sig.get_window("hann", fft_n)

    freqs = np.fft.rfftfreq(fft_n, d=1.0 / fs)
    power = np.abs(np.fft.rfft(padded)) ** 2

    mask = (freqs >= lo) & (freqs <= hi)
    band_power = power[mask]
    total = float(np.sum(band_power))
    if not np.any(mask) or total <= 0:
        return None

    peak_idx = int(np.argmax(band_power))
    rate_bpm = float(freqs[mask][peak_idx]) * 60.0
    if not cfg.min_rate_bpm <= rate_bpm <= cfg.max_rate_bpm:
        return None

    return RespiratoryResult(
        rate_bpm=round(rate_bpm, 1),
        confidence=round(min(float(band_power[peak_idx]) / total, 1.0), 2),
    )


def estimate_respiratory_rate_zero_crossing(
    rr_intervals_ms: Sequence[float],
    config: RespiratoryConfig | None = None,
) -> float | None:
    """Breathing rate from zero crossings of the band-passed RR signal.

    Works on shorter segments than the spectral estimate.  Each breath
    contributes two crossings.
    """
    cfg = config or RespiratoryConfig()
    if len(rr_intervals_ms) < cfg.min_zero_crossing_intervals:
        return None
    fs = cfg.resample_hz
    _, rr_uniform = _interpolate_rr(rr_intervals_ms, fs)
    if len(rr_uniform) < cfg.min_samples:
        return None
    filtered = _bandpass_filter(
        rr_uniform - np.mean(rr_uniform),
        fs,
        cfg.zero_crossing_low_hz,
        cfg.band_hz[1],
        cfg.filter_order,
    )
    if not np.any(filtered):
        return None

    signs = np.signbit(filtered)
    crossings = int(np.count_nonzero(signs[1:] != signs[:-1]))
    duration_min = float(np.sum(rr_intervals_ms)) / 60000.0
    if duration_min <= 0:
        return None
    rate = crossings / 2.0 / duration_min
    if not cfg.min_rate_bpm <= rate <= cfg.max_rate_bpm:
        return None
    return round(rate, 1)


def respiratory_rate(
    rr_intervals_ms: Sequence[float],
    config: RespiratoryConfig | None = None,
) -> float | None:
    """Breaths per minute: the spectral peak, else the zero-crossing count."""
    result = estimate_respiratory_rate(rr_intervals_ms, config)
    if result is not None:
        return result.rate_bpm
    return estimate_respiratory_rate_zero_crossing(rr_intervals_ms, config)
