"""Recovery window selection.

Searches an overnight recording for the window that best represents
consolidated parasympathetic recovery.

Algorithm (consolidated recovery):
1. Band: restrict the search to 30%-70% of actual sleep (from external
   sleep/wake anchors, else the recording bounds), clamped to the data.
2. Adaptive sizing: 400-beat windows, shrunk for short bands (floor 60
   beats); slide step is a tenth of the window.
3. Candidates: every window position is ectopic-filtered against a local
   median, must meet the artifact-rate and clean-beat minimums, and gets
   RMSSD / SDNN / HR CV / relative position and DFA alpha1.
4. Isolated spikes: a candidate whose RMSSD is >= 150% of BOTH neighbours
   is a temporal discontinuity and is dropped.  Plateaus survive however
   high they are; the first and last candidates are never spikes.
5. Classification: only organized-recovery candidates may win.
6. Winner: highest RMSSD (later position breaks ties).  No organized
   candidate means "no consolidated recovery", a valid answer.

Peak capacity runs the same scan over the whole recording with no
organization requirement.  Alternate methods rank band candidates by
another metric; manual selection centers a window on a chosen time.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from enum import Enum
from typing import Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from sleephrv.analytics.artifacts import ArtifactFlag
from sleephrv.analytics.classifier import WindowClassification, WindowLabel, classify_window
from sleephrv.analytics.dfa import dfa
from sleephrv.analytics.spectral import PlanCache, frequency_domain
from sleephrv.config import EngineConfig, SelectionConfig
from sleephrv.events import EventSink, LoggingSink
from sleephrv.outcome import Found, Insufficient, Outcome, unwrap
from sleephrv.series import RRSeries


class SelectionMethod(str, Enum):
    CONSOLIDATED_RECOVERY = "consolidated_recovery"
    PEAK_RMSSD = "peak_rmssd"
    PEAK_SDNN = "peak_sdnn"
    PEAK_TOTAL_POWER = "peak_total_power"
    CUSTOM = "custom"


# ---------------------------------------------------------------------------
# Result records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CandidateWindow:
    """A scored window position; only lives for the duration of a scan."""

    start_index: int
    end_index: int  # exclusive
    start_ms: int
    end_ms: int
    clean_beat_count: int
    artifact_rate: float  # 0-1
    mean_hr: float
    hr_cv: float
    rmssd: float
    sdnn: float
    relative_position: float  # 0-1 within sleep (or recording)
    dfa_alpha1: float | None = None
    lf_hf_ratio: float | None = None

    @property
    def duration_minutes(self) -> float:
        return (self.end_ms - self.start_ms) / 60000.0


@dataclass(frozen=True)
class RecoveryWindow(CandidateWindow):
    """The selected analysis window."""

    is_consolidated: bool = False
    classification: WindowLabel = WindowLabel.INSUFFICIENT
    selection_reason: str = ""
    recovery_score: float = 0.0  # RMSSD penalized by HR instability
    method: SelectionMethod = SelectionMethod.CONSOLIDATED_RECOVERY

    @classmethod
    def from_candidate(cls, candidate: CandidateWindow, **extra) -> RecoveryWindow:
        base = {f.name: getattr(candidate, f.name) for f in fields(CandidateWindow)}
        base.update(extra)
        return cls(**base)

    def __repr__(self) -> str:
        return (
            f"RecoveryWindow([{self.start_index}:{self.end_index}], "
            f"rmssd={self.rmssd:.1f}ms, pos={self.relative_position:.0%}, "
            f"{self.classification.value})"
        )


@dataclass(frozen=True)
class PeakCapacity:
    """Highest sustained HRV anywhere in the recording."""

    peak_rmssd: float
    peak_sdnn: float
    window_duration_minutes: float
    window_relative_position: float
    window_mean_hr: float
    start_index: int
    end_index: int
    peak_total_power: float | None = None

    def __repr__(self) -> str:
        return (
            f"PeakCapacity(rmssd={self.peak_rmssd:.1f}ms, "
            f"pos={self.window_relative_position:.0%})"
        )


@dataclass(frozen=True)
class SearchBand:
    """Index range eligible for automatic selection, and the sleep bounds
    (absolute timestamps) that relative positions are measured against."""

    start_index: int
    end_index: int  # exclusive
    sleep_start_ms: int
    sleep_end_ms: int


@dataclass
class SelectionResult:
    """Recovery window and peak capacity, each possibly absent."""

    window: RecoveryWindow | None
    peak_capacity: PeakCapacity | None
    window_reason: str | None = None  # why no window was selected


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _share(n: int, fraction: float) -> int:
    # rounding first keeps 400 * 0.6 at 240
    return int(round(n * fraction, 6))


def adaptive_window_size(available: int, config: SelectionConfig) -> int:
    """Window size in beats for a band of *available* beats.

    A full window when it fits; half the band when the band holds at least
    ``shrink_fraction`` of a full window; otherwise that fraction of the band,
    floored at ``min_window_beats``.
    """
    target = config.beats_per_window
    if available >= target:
        return target
    if available >= _share(target, config.shrink_fraction):
        return available // 2
    return max(config.min_window_beats, _share(available, config.shrink_fraction))


def slide_step(window_size: int, config: SelectionConfig | None = None) -> int:
    cfg = config or SelectionConfig()
    return max(cfg.min_slide_step, window_size // cfg.slide_divisor)


def filter_ectopic_beats(
    values: np.ndarray,
    threshold: float = 0.20,
    local_window: int = 10,
) -> np.ndarray:
    """Drop beats deviating more than *threshold* from their local median.

    The median is taken over ``local_window`` neighbours, excluding the beat
    itself.  Sequences no longer than the neighbourhood are returned as is.
    """
    arr = np.asarray(values, dtype=np.float64)
    n = len(arr)
    if n <= local_window:
        return arr
    half = local_window // 2
    medians = np.empty(n)

    width = 2 * half + 1
    if n >= width:
        neighbourhoods = np.delete(sliding_window_view(arr, width), half, axis=1)
        medians[half:n - half] = np.median(neighbourhoods, axis=1)
    edges = list(range(min(half, n))) + list(range(max(half, n - half), n))
    for i in edges:
        lo = max(0, i - half)
        hi = min(n, i + half + 1)
        medians[i] = np.median(np.concatenate((arr[lo:i], arr[i + 1:hi])))

    with np.errstate(divide="ignore", invalid="ignore"):
        deviation = np.abs(arr - medians) / medians
    keep = (medians > 0) & (deviation <= threshold)
    return arr[keep]


def _spike_ratio(value: float, neighbour: float) -> float:
    if neighbour > 0:
        return value / neighbour
    return math.inf if value > 0 else 1.0


def isolated_spike_mask(rmssd_values: Sequence[float], ratio: float = 1.5) -> list[bool]:
    """True where a value is >= *ratio* times BOTH of its neighbours.

    The first and last entries are never spikes.
    """
    n = len(rmssd_values)
    mask = [False] * n
    for i in range(1, n - 1):
        left = _spike_ratio(rmssd_values[i], rmssd_values[i - 1])
        right = _spike_ratio(rmssd_values[i], rmssd_values[i + 1])
        mask[i] = left >= ratio and right >= ratio
    return mask


def _relative_position(mid_ms: float, lo_ms: int, hi_ms: int) -> float:
    span = hi_ms - lo_ms
    if span <= 0:
        return 0.5
    return min(1.0, max(0.0, (mid_ms - lo_ms) / span))


class _SeriesArrays:
    """Column view of a series and its flags, built once per scan."""

    def __init__(self, series: RRSeries, flags: Sequence[ArtifactFlag]) -> None:
        if len(flags) != len(series):
            raise ValueError("flags must be index aligned with the series")
        self.t = series.timestamps
        self.rr = series.rr_values
        self.artifact = np.fromiter((f.is_artifact for f in flags), dtype=bool, count=len(flags))
        self.hr = np.array(
            [np.nan if p.hr is None else float(p.hr) for p in series.points], dtype=np.float64
        )


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------


class WindowSelector:
    """Scan a recording for recovery and peak-capacity windows.

    Args:
        config: Engine configuration (selection, classifier, DFA and
            spectral sections are used).
        cache: Plan cache for the final LF/HF computation.
        sink: Diagnostic event sink.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        cache: PlanCache | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.cache = cache or PlanCache(self.config.spectral.plan_cache_size)
        self.sink = sink or LoggingSink(__name__)

    @property
    def selection(self) -> SelectionConfig:
        return self.config.selection

    # -- band ---------------------------------------------------------------

    def search_band(
        self,
        series: RRSeries,
        sleep_start_ms: int | None = None,
        wake_ms: int | None = None,
    ) -> Outcome[SearchBand]:
        """Locate the 30%-70% sleep band.

        Anchors are offsets in ms from the first beat.  Without a valid
        anchor the recording bounds are used.
        """
        cfg = self.selection
        if len(series) == 0:
            return Insufficient("empty series")
        rec_start = series.start_ms
        rec_last = series.points[-1].t_ms
        rec_duration = rec_last - rec_start

        start_offset = sleep_start_ms if sleep_start_ms is not None and sleep_start_ms >= 0 else 0
        if wake_ms is not None and wake_ms > start_offset:
            end_offset = min(wake_ms, rec_duration)
        else:
            end_offset = rec_duration
        sleep_start = rec_start + start_offset
        sleep_end = rec_start + end_offset
        if sleep_end <= sleep_start:
            sleep_start, sleep_end = rec_start, rec_last

        if not cfg.enforce_temporal_constraints:
            return Found(SearchBand(0, len(series), sleep_start, sleep_end))

        duration = sleep_end - sleep_start
        early = max(rec_start, sleep_start + math.ceil(duration * cfg.min_relative_position))
        late = min(rec_last, sleep_start + math.floor(duration * cfg.max_relative_position))

        t = series.timestamps
        start_idx = int(np.searchsorted(t, early, side="left"))
        end_idx = int(np.searchsorted(t, late, side="right"))
        if end_idx <= start_idx:
            return Insufficient("empty search band")
        return Found(SearchBand(start_idx, end_idx, sleep_start, sleep_end))

    # -- candidates ---------------------------------------------------------

    def evaluate_window(
        self,
        arrays: _SeriesArrays,
        start: int,
        end: int,
        bounds: tuple[int, int],
    ) -> CandidateWindow | None:
        """Score ``[start, end)``; None if it fails the quality gates."""
        cfg = self.selection
        rr = arrays.rr[start:end]
        valid = (~arrays.artifact[start:end]) & (rr > cfg.candidate_min_rr_ms) & (rr < cfg.candidate_max_rr_ms)
        total = end - start
        artifact_rate = 1.0 - int(np.count_nonzero(valid)) / total
        if artifact_rate > cfg.max_artifact_rate:
            return None
        values = rr[valid].astype(np.float64)
        if len(values) < cfg.min_clean_floor:
            return None

        clean = filter_ectopic_beats(values, cfg.ectopic_threshold, cfg.local_median_window)
        if len(clean) < cfg.required_clean_beats(total):
            return None

        mean_rr = float(np.mean(clean))
        hr = arrays.hr[start:end][valid]
        hr = hr[~np.isnan(hr)]
        mean_hr = float(np.mean(hr)) if len(hr) else 60000.0 / mean_rr
        sd = float(np.std(clean))
        cv = sd / mean_rr if mean_rr > 0 else 0.0
        rmssd = float(np.sqrt(np.mean(np.diff(clean) ** 2)))

        alpha1 = None
        if len(clean) >= self.config.nonlinear.dfa_min_beats:
            fractal = unwrap(dfa(clean, self.config.nonlinear))
            alpha1 = None if fractal is None else fractal.alpha1

        first_t = int(arrays.t[start])
        last_t = int(arrays.t[end - 1])
        return CandidateWindow(
            start_index=start,
            end_index=end,
            start_ms=first_t,
            end_ms=last_t + int(arrays.rr[end - 1]),
            clean_beat_count=len(clean),
            artifact_rate=round(artifact_rate, 4),
            mean_hr=round(mean_hr, 1),
            hr_cv=round(cv, 4),
            rmssd=round(rmssd, 2),
            sdnn=round(sd, 2),
            relative_position=round(_relative_position((first_t + last_t) / 2.0, *bounds), 4),
            dfa_alpha1=alpha1,
        )

    def scan(
        self,
        arrays: _SeriesArrays,
        band_start: int,
        band_end: int,
        bounds: tuple[int, int],
    ) -> list[CandidateWindow]:
        """Evaluate every window position inside ``[band_start, band_end)``."""
        size = adaptive_window_size(band_end - band_start, self.selection)
        step = slide_step(size, self.selection)
        candidates: list[CandidateWindow] = []
        positions = 0
        start = band_start
        while start + size <= band_end:
            positions += 1
            candidate = self.evaluate_window(arrays, start, start + size, bounds)
            if candidate is not None:
                candidates.append(candidate)
            start += step
        self.sink.emit(
            "candidates",
            window_size=size,
            step=step,
            positions=positions,
            valid=len(candidates),
        )
        return candidates

    def _drop_spikes(self, candidates: list[CandidateWindow]) -> list[CandidateWindow]:
        mask = isolated_spike_mask([c.rmssd for c in candidates], self.selection.spike_ratio)
        survivors = [c for c, spike in zip(candidates, mask) if not spike]
        self.sink.emit("spikes_filtered", rejected=sum(mask), remaining=len(survivors))
        return survivors

    def _classify(self, candidate: CandidateWindow) -> WindowClassification:
        return classify_window(
            candidate.clean_beat_count,
            candidate.dfa_alpha1,
            candidate.lf_hf_ratio,
            candidate.hr_cv,
            self.config.classifier,
        )

    def _lf_hf(self, series: RRSeries, flags: Sequence[ArtifactFlag], c: CandidateWindow) -> float | None:
        freq = unwrap(
            frequency_domain(series, flags, self.cache, c.start_index, c.end_index, self.config.spectral)
        )
        return None if freq is None else freq.lf_hf_ratio

    def _recovery_score(self, candidate: CandidateWindow) -> float:
        return round(candidate.rmssd / (1.0 + self.selection.stability_weight * candidate.hr_cv), 2)

    # -- public API ---------------------------------------------------------

    def find_best_window(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag],
        sleep_start_ms: int | None = None,
        wake_ms: int | None = None,
    ) -> Outcome[RecoveryWindow]:
        """Select the consolidated recovery window.

        Returns Insufficient when the series is too short, the band is
        empty, no candidate passes, or no candidate is organized.
        """
        cfg = self.selection
        if len(series) < cfg.min_series_beats:
            return Insufficient(f"{len(series)} beats, need {cfg.min_series_beats}")
        band = self.search_band(series, sleep_start_ms, wake_ms)
        if not band:
            return band
        band = band.value
        self.sink.emit("band", start_index=band.start_index, end_index=band.end_index)

        arrays = _SeriesArrays(series, flags)
        bounds = (band.sleep_start_ms, band.sleep_end_ms)
        candidates = self.scan(arrays, band.start_index, band.end_index, bounds)
        if not candidates:
            return Insufficient("no valid candidate windows")

        organized = []
        for candidate in self._drop_spikes(candidates):
            classification = self._classify(candidate)
            if classification.is_organized:
                organized.append((candidate, classification))
        if not organized:
            self.sink.emit("no_organized_window", candidates=len(candidates))
            return Insufficient("no consolidated recovery")

        winner, classification = max(
            organized, key=lambda pair: (pair[0].rmssd, pair[0].relative_position)
        )
        a1 = "n/a" if winner.dfa_alpha1 is None else f"{winner.dfa_alpha1:.2f}"
        reason = (
            f"Organized Recovery (RMSSD {winner.rmssd:.1f} ms, α1={a1}, "
            f"CV {winner.hr_cv * 100:.1f}%) at {winner.relative_position * 100:.0f}% of sleep"
        )
        window = RecoveryWindow.from_candidate(
            winner,
            lf_hf_ratio=self._lf_hf(series, flags, winner),
            is_consolidated=classification.is_stable,
            classification=classification.label,
            selection_reason=reason,
            recovery_score=self._recovery_score(winner),
            method=SelectionMethod.CONSOLIDATED_RECOVERY,
        )
        self.sink.emit(
            "selected",
            start_index=window.start_index,
            end_index=window.end_index,
            rmssd=window.rmssd,
            position=window.relative_position,
        )
        return Found(window)

    def find_peak_capacity(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag],
    ) -> Outcome[PeakCapacity]:
        """Highest-RMSSD sustained window anywhere in the recording."""
        cfg = self.selection
        if len(series) < cfg.min_series_beats:
            return Insufficient(f"{len(series)} beats, need {cfg.min_series_beats}")

        arrays = _SeriesArrays(series, flags)
        bounds = (series.start_ms, series.points[-1].t_ms)
        survivors = self._drop_spikes(self.scan(arrays, 0, len(series), bounds))
        if not survivors:
            return Insufficient("no sustained window")

        best = max(survivors, key=lambda c: (c.rmssd, c.relative_position))
        peak = PeakCapacity(
            peak_rmssd=best.rmssd,
            peak_sdnn=best.sdnn,
            window_duration_minutes=round(best.duration_minutes, 2),
            window_relative_position=best.relative_position,
            window_mean_hr=best.mean_hr,
            start_index=best.start_index,
            end_index=best.end_index,
        )
        self.sink.emit("peak_capacity", rmssd=peak.peak_rmssd, position=peak.window_relative_position)
        return Found(peak)

    def select_by_method(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag],
        method: SelectionMethod | str,
        sleep_start_ms: int | None = None,
        wake_ms: int | None = None,
    ) -> Outcome[RecoveryWindow]:
        """Select a window with one of the :class:`SelectionMethod` strategies.

        Peak strategies search the same band with the spike filter but no
        organization requirement.  ``custom`` needs a position; use
        :meth:`analyze_at_position`.
        """
        method = SelectionMethod(method)
        if method is SelectionMethod.CONSOLIDATED_RECOVERY:
            return self.find_best_window(series, flags, sleep_start_ms, wake_ms)
        if method is SelectionMethod.CUSTOM:
            return Insufficient("custom selection requires a target position")

        cfg = self.selection
        if len(series) < cfg.min_series_beats:
            return Insufficient(f"{len(series)} beats, need {cfg.min_series_beats}")
        band = self.search_band(series, sleep_start_ms, wake_ms)
        if not band:
            return band
        band = band.value
        arrays = _SeriesArrays(series, flags)
        survivors = self._drop_spikes(
            self.scan(arrays, band.start_index, band.end_index, (band.sleep_start_ms, band.sleep_end_ms))
        )
        if not survivors:
            return Insufficient("no valid candidate windows")

        if method is SelectionMethod.PEAK_RMSSD:
            key, label = (lambda c: c.rmssd), "Peak RMSSD"
        elif method is SelectionMethod.PEAK_SDNN:
            key, label = (lambda c: c.sdnn), "Peak SDNN"
        else:
            # total power of the window equals its variance
            key, label = (lambda c: c.sdnn ** 2), "Peak total power"
        winner = max(survivors, key=lambda c: (key(c), c.relative_position))
        classification = self._classify(winner)
        return Found(
            RecoveryWindow.from_candidate(
                winner,
                lf_hf_ratio=self._lf_hf(series, flags, winner),
                is_consolidated=classification.is_organized and classification.is_stable,
                classification=classification.label,
                selection_reason=(
                    f"{label} window (RMSSD {winner.rmssd:.1f} ms, SDNN {winner.sdnn:.1f} ms) "
                    f"at {winner.relative_position * 100:.0f}% of sleep"
                ),
                recovery_score=self._recovery_score(winner),
                method=method,
            )
        )

    def find_best_window_with_capacity(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag],
        sleep_start_ms: int | None = None,
        wake_ms: int | None = None,
        method: SelectionMethod | str = SelectionMethod.CONSOLIDATED_RECOVERY,
    ) -> SelectionResult:
        """Run window selection and the independent peak-capacity scan."""
        window = self.select_by_method(series, flags, method, sleep_start_ms, wake_ms)
        peak = self.find_peak_capacity(series, flags)
        return SelectionResult(
            window=unwrap(window),
            peak_capacity=unwrap(peak),
            window_reason=None if window else window.reason,
        )

    def analyze_at_position(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag],
        target_ms: int,
    ) -> Outcome[RecoveryWindow]:
        """Center a full-size window on *target_ms* (offset from the first beat).

        The search band does not apply; positions are relative to the
        recording.
        """
        size = self.selection.beats_per_window
        n = len(series)
        if n < size:
            return Insufficient(f"{n} beats, need {size}")

        arrays = _SeriesArrays(series, flags)
        target_idx = min(int(np.searchsorted(arrays.t, series.start_ms + target_ms, side="left")), n - 1)
        start = max(0, target_idx - size // 2)
        end = start + size
        if end > n:
            end = n
            start = n - size

        bounds = (series.start_ms, series.points[-1].t_ms)
        candidate = self.evaluate_window(arrays, start, end, bounds)
        if candidate is None:
            return Insufficient("window at the requested position fails quality checks")
        classification = self._classify(candidate)
        return Found(
            RecoveryWindow.from_candidate(
                candidate,
                lf_hf_ratio=self._lf_hf(series, flags, candidate),
                is_consolidated=classification.is_organized and classification.is_stable,
                classification=classification.label,
                selection_reason=(
                    f"Manual selection at {candidate.relative_position * 100:.0f}% of recording"
                ),
                recovery_score=self._recovery_score(candidate),
                method=SelectionMethod.CUSTOM,
            )
        )
