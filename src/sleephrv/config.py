"""Engine configuration.

Every tunable threshold used by the analysis engine lives here as a field of
a frozen dataclass with its documented default.  Components receive the
relevant section explicitly; nothing reads module-level globals.

A TOML file can override any subset of the defaults::

    [selection]
    beats_per_window = 300
    min_relative_position = 0.25

    [verification]
    max_artifact_pct = 10.0
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class ArtifactConfig:
    """Rolling-median artifact detection thresholds."""

    window_size: int = 50  # beats in the centered median window
    ectopic_threshold: float = 0.20  # relative deviation from local median
    missed_threshold: float = 0.50  # long beat: value > median * (1 + t)
    extra_threshold: float = 0.30  # short beat: value < median * (1 - t)
    extra_fraction: float = 0.50  # below median * this -> double detection
    min_rr_ms: int = 200
    max_rr_ms: int = 2000

    def __post_init__(self) -> None:
        if self.window_size < 1:
            raise ValueError("window_size must be >= 1")
        if self.min_rr_ms >= self.max_rr_ms:
            raise ValueError("min_rr_ms must be below max_rr_ms")


@dataclass(frozen=True)
class CorrectionConfig:
    """Artifact correction parameters."""

    median_window: int = 11  # points in the local median window
    spline_min_points: int = 4  # clean points needed for a cubic spline
    clamp_min_ms: int = 300
    clamp_max_ms: int = 2000


@dataclass(frozen=True)
class TimeDomainConfig:
    """Time-domain metrics and heart-rate estimation."""

    min_beats: int = 10
    triangular_min_beats: int = 20
    triangular_bin_ms: float = 7.8125  # 1/128 s
    hr_window_ms: int = 10_000  # rolling window for RR-derived HR
    hr_window_min_beats: int = 5
    hr_window_step: int = 5  # beats, ~50% overlap
    hr_min_bpm: float = 30.0
    hr_max_bpm: float = 200.0
    hr_default_bpm: float = 60.0


@dataclass(frozen=True)
class SpectralConfig:
    """Welch PSD and band definitions."""

    resample_hz: float = 4.0
    segment_length: int = 256  # samples, ~64 s at 4 Hz
    min_window_points: int = 120
    min_clean_points: int = 60
    min_samples: int = 64
    vlf_band: tuple[float, float] = (0.003, 0.04)
    lf_band: tuple[float, float] = (0.04, 0.15)
    hf_band: tuple[float, float] = (0.15, 0.40)
    vlf_min_minutes: float = 10.0
    plan_cache_size: int = 10

    def __post_init__(self) -> None:
        if self.segment_length < 8 or self.segment_length & (self.segment_length - 1):
            raise ValueError("segment_length must be a power of two >= 8")


@dataclass(frozen=True)
class NonlinearConfig:
    """Poincare, entropy and DFA parameters."""

    min_beats: int = 10
    entropy_m: int = 2
    entropy_r: float = 0.2  # tolerance as a fraction of SD
    dfa_min_beats: int = 64
    alpha1_min_box: int = 4
    alpha1_max_box: int = 16
    alpha2_min_box: int = 16
    alpha2_max_box: int = 64
    alpha2_step: int = 2
    alpha2_min_beats: int = 256
    min_box_sizes: int = 3


@dataclass(frozen=True)
class StressConfig:
    """Baevsky stress index and PNS/SNS normative references.

    Each reference is ``(mean, sd)`` for healthy supine adults.
    """

    min_beats: int = 20
    bin_ms: float = 50.0
    pns_ref_mean_rr: tuple[float, float] = (926.0, 90.0)  # ms
    pns_ref_rmssd: tuple[float, float] = (42.0, 19.0)  # ms
    pns_ref_sd1: tuple[float, float] = (29.0, 13.0)  # ms
    sns_ref_mean_hr: tuple[float, float] = (66.0, 9.0)  # bpm
    sns_ref_si: tuple[float, float] = (100.0, 50.0)
    sns_ref_sd2: tuple[float, float] = (65.0, 20.0)  # ms, lower SD2 = more sympathetic


@dataclass(frozen=True)
class RespiratoryConfig:
    """RSA-based respiratory rate estimation."""

    band_hz: tuple[float, float] = (0.15, 0.50)  # 9-30 breaths/min
    zero_crossing_low_hz: float = 0.10
    resample_hz: float = 4.0
    filter_order: int = 4
    min_intervals: int = 60
    min_zero_crossing_intervals: int = 30
    min_samples: int = 32
    min_rate_bpm: float = 6.0
    max_rate_bpm: float = 40.0


@dataclass(frozen=True)
class ClassifierConfig:
    """Physiological organization thresholds."""

    min_beats: int = 60
    alpha1_organized_low: float = 0.75
    alpha1_organized_high: float = 1.00
    alpha1_flexible_low: float = 0.60
    max_organized_lf_hf: float = 1.5
    stable_cv: float = 0.08


@dataclass(frozen=True)
class SelectionConfig:
    """Sliding-window recovery search."""

    beats_per_window: int = 400
    min_window_beats: int = 60  # adaptive sizing floor
    shrink_fraction: float = 0.6  # small-band cutoff and shrink ratio
    slide_divisor: int = 10  # step = window / divisor
    min_slide_step: int = 10
    min_series_beats: int = 120
    max_artifact_rate: float = 0.15
    min_clean_beats: int = 300
    min_clean_floor: int = 50
    min_clean_ratio: float = 0.75  # of the window size when shrunk
    ectopic_threshold: float = 0.20
    local_median_window: int = 10
    min_relative_position: float = 0.30
    max_relative_position: float = 0.70
    enforce_temporal_constraints: bool = True
    spike_ratio: float = 1.5
    stability_weight: float = 10.0
    candidate_min_rr_ms: int = 300
    candidate_max_rr_ms: int = 2000

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_relative_position < self.max_relative_position <= 1.0:
            raise ValueError("relative position band must satisfy 0 <= min < max <= 1")

    def required_clean_beats(self, window_size: int) -> int:
        """Clean-beat minimum for a window, relaxed for shrunk windows."""
        if window_size >= self.beats_per_window:
            return self.min_clean_beats
        scaled = int(window_size * self.min_clean_ratio)
        return max(self.min_clean_floor, min(self.min_clean_beats, scaled))


@dataclass(frozen=True)
class VerificationConfig:
    """Whole-recording quality gate."""

    min_points: int = 300
    min_duration_hours: float = 0.083
    max_artifact_pct: float = 15.0
    warn_artifact_pct: float = 5.0
    max_ectopy_pct: float = 10.0
    warn_ectopy_count: int = 100
    max_gap_ms: int = 5000
    warn_drift_ms: float = 200.0
    max_drift_ms: float = 400.0
    max_out_of_bounds_pct: float = 5.0
    warn_out_of_bounds_count: int = 50
    min_rr_ms: int = 200
    max_rr_ms: int = 2000
    known_devices: tuple[str, ...] = ()
    streaming_min_points: int = 120
    streaming_min_duration_hours: float = 0.025

    @classmethod
    def streaming(cls) -> VerificationConfig:
        """Relaxed gate for short live sessions, otherwise defaults."""
        return cls().for_streaming()

    def for_streaming(self) -> VerificationConfig:
        """This gate with only the length minimums relaxed for live sessions."""
        return replace(
            self,
            min_points=self.streaming_min_points,
            min_duration_hours=self.streaming_min_duration_hours,
        )


@dataclass(frozen=True)
class ReadinessConfig:
    """1-10 readiness score thresholds."""

    base_score: float = 5.0
    vo2_reference: float = 40.0
    vo2_multiplier_min: float = 0.8
    vo2_multiplier_max: float = 1.3
    athlete_vo2: float = 50.0
    # RMSSD / baseline ratio bands
    ratio_optimal: tuple[float, float] = (0.85, 1.15)
    ratio_acceptable: tuple[float, float] = (0.70, 1.30)
    ratio_poor_low: float = 0.60
    ratio_poor_high: float = 1.50
    # absolute RMSSD tiers (high, mid, low) in ms, used without a baseline
    rmssd_tiers: tuple[float, float, float] = (50.0, 30.0, 20.0)
    rmssd_tiers_athlete: tuple[float, float, float] = (60.0, 40.0, 25.0)
    alpha1_optimal: tuple[float, float] = (0.75, 1.0)
    alpha1_acceptable: tuple[float, float] = (0.5, 1.25)
    # PNS - SNS balance cut points (strong, neutral, mild)
    balance_cuts: tuple[float, float, float] = (1.0, 0.0, -1.0)


@dataclass(frozen=True)
class EngineConfig:
    """All configuration sections for one analysis context."""

    artifacts: ArtifactConfig = field(default_factory=ArtifactConfig)
    correction: CorrectionConfig = field(default_factory=CorrectionConfig)
    time_domain: TimeDomainConfig = field(default_factory=TimeDomainConfig)
    spectral: SpectralConfig = field(default_factory=SpectralConfig)
    nonlinear: NonlinearConfig = field(default_factory=NonlinearConfig)
    stress: StressConfig = field(default_factory=StressConfig)
    respiratory: RespiratoryConfig = field(default_factory=RespiratoryConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)


# ---------------------------------------------------------------------------
# TOML loading
# ---------------------------------------------------------------------------


def _override(section: Any, values: dict[str, Any], name: str) -> Any:
    known = {f.name for f in fields(section)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"unknown keys in [{name}]: {', '.join(sorted(unknown))}")
    coerced = {
        k: tuple(v) if isinstance(v, list) else v for k, v in values.items()
    }
    return replace(section, **coerced)


def config_from_dict(data: dict[str, Any], base: EngineConfig | None = None) -> EngineConfig:
    """Apply a nested mapping of overrides on top of *base* (or defaults)."""
    cfg = base or EngineConfig()
    sections = {f.name for f in fields(cfg)}
    updates: dict[str, Any] = {}
    for name, values in data.items():
        if name not in sections:
            raise ValueError(f"unknown config section: [{name}]")
        if not isinstance(values, dict):
            raise ValueError(f"config section [{name}] must be a table")
        updates[name] = _override(getattr(cfg, name), values, name)
    return replace(cfg, **updates)


def load_config(path: str | Path) -> EngineConfig:
    """Load an :class:`EngineConfig` from a TOML file."""
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return config_from_dict(data)
