"""Whole-recording quality gate.

Runs before any window selection.  A recording either passes (possibly with
warnings) or is rejected with one or more explicit :class:`RejectionReason`
values, so it is always clear why a session was not analyzed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Sequence

import numpy as np

from sleephrv.analytics.artifacts import ArtifactFlag, ArtifactType
from sleephrv.config import VerificationConfig
from sleephrv.series import RRSeries


class RejectionReason(str, Enum):
    TOO_SHORT = "too_short"
    TOO_FEW_POINTS = "too_few_points"
    EXCESSIVE_ARTIFACTS = "excessive_artifacts"
    EXCESSIVE_ECTOPY = "excessive_ectopy"
    EXCESSIVE_DRIFT = "excessive_drift"
    SIGNAL_LOSS = "signal_loss"
    OUT_OF_BOUNDS = "out_of_bounds"
    CORRUPTED_DATA = "corrupted_data"
    UNKNOWN_DEVICE = "unknown_device"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def explanation(self) -> str:
        return _EXPLANATIONS[self]


_DISPLAY_NAMES = {
    RejectionReason.TOO_SHORT: "Recording Too Short",
    RejectionReason.TOO_FEW_POINTS: "Insufficient Data Points",
    RejectionReason.EXCESSIVE_ARTIFACTS: "Excessive Artifacts",
    RejectionReason.EXCESSIVE_ECTOPY: "Excessive Ectopic Beats",
    RejectionReason.EXCESSIVE_DRIFT: "Signal Drift Detected",
    RejectionReason.SIGNAL_LOSS: "Signal Loss Detected",
    RejectionReason.OUT_OF_BOUNDS: "Out-of-Range Intervals",
    RejectionReason.CORRUPTED_DATA: "Data Corrupted",
    RejectionReason.UNKNOWN_DEVICE: "Unknown Device",
}

_EXPLANATIONS = {
    RejectionReason.TOO_SHORT:
        "The recording duration is below the minimum required for reliable analysis.",
    RejectionReason.TOO_FEW_POINTS:
        "Not enough heartbeats were captured. Check chest strap contact.",
    RejectionReason.EXCESSIVE_ARTIFACTS:
        "Too many detected artifacts (noise, missed beats). May indicate poor sensor contact.",
    RejectionReason.EXCESSIVE_ECTOPY:
        "High number of ectopic beats detected. This may indicate arrhythmia or sensor issues.",
    RejectionReason.EXCESSIVE_DRIFT:
        "Heart rate drifted unrealistically. This often indicates electrode movement.",
    RejectionReason.SIGNAL_LOSS:
        "Gaps detected in the RR data. Check chest strap battery and contact.",
    RejectionReason.OUT_OF_BOUNDS:
        "RR intervals outside the physiological range were detected.",
    RejectionReason.CORRUPTED_DATA:
        "Data integrity check failed. Timestamps go backwards or intervals are not positive.",
    RejectionReason.UNKNOWN_DEVICE:
        "Data source could not be verified.",
}

_ECTOPY_TYPES = (ArtifactType.ECTOPIC, ArtifactType.EXTRA, ArtifactType.MISSED)


@dataclass
class VerificationMetrics:
    point_count: int
    nn_count: int = 0
    duration_hours: float = 0.0
    artifact_pct: float = 0.0
    ectopy_count: int = 0
    ectopy_pct: float = 0.0
    out_of_bounds_low: int = 0
    out_of_bounds_high: int = 0
    max_gap_ms: int | None = None
    rr_drift_ms: float | None = None
    mean_rr: float | None = None


@dataclass
class VerificationResult:
    """Outcome of the quality gate."""

    passed: bool
    rejection_reasons: set[RejectionReason] = field(default_factory=set)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metrics: VerificationMetrics | None = None

    def is_rejected_for(self, reason: RejectionReason) -> bool:
        return reason in self.rejection_reasons

    @property
    def summary(self) -> str:
        if self.passed:
            return "Passed with warnings" if self.warnings else "Passed verification"
        names = ", ".join(r.display_name for r in self.ordered_reasons())
        return f"Rejected: {names}"

    def ordered_reasons(self) -> list[RejectionReason]:
        return [r for r in RejectionReason if r in self.rejection_reasons]

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "rejection_reasons": [r.value for r in self.ordered_reasons()],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "metrics": None if self.metrics is None else asdict(self.metrics),
        }

    def __repr__(self) -> str:
        return f"VerificationResult({self.summary})"


def _is_corrupted(series: RRSeries) -> bool:
    t = series.timestamps
    if len(t) > 1 and np.any(np.diff(t) < 0):
        return True
    return bool(np.any(series.rr_values <= 0))


def verify(
    series: RRSeries,
    flags: Sequence[ArtifactFlag],
    config: VerificationConfig | None = None,
) -> VerificationResult:
    """Check a whole recording before analysis.

    Args:
        series: The recording.
        flags: Artifact flags aligned with *series*.
        config: Thresholds (``config.for_streaming()`` for live sessions).

    Returns:
        VerificationResult; ``passed`` is False when any rejection reason
        applies.  Too few points short-circuits the remaining checks.
    """
    cfg = config or VerificationConfig()
    if len(flags) != len(series):
        raise ValueError("flags must be index aligned with the series")

    n = len(series)
    reasons: set[RejectionReason] = set()
    errors: list[str] = []
    warnings: list[str] = []

    if n == 0 or n < cfg.min_points:
        return VerificationResult(
            passed=False,
            rejection_reasons={RejectionReason.TOO_FEW_POINTS},
            errors=[f"Only {n} RR intervals (minimum {cfg.min_points})"],
            metrics=VerificationMetrics(point_count=n),
        )

    rr = series.rr_values
    duration_hours = series.duration_ms / 3_600_000.0
    artifact_count = sum(1 for f in flags if f.is_artifact)
    artifact_pct = artifact_count / n * 100.0
    ectopy_count = sum(1 for f in flags if f.is_artifact and f.type in _ECTOPY_TYPES)
    ectopy_pct = ectopy_count / n * 100.0
    low = int(np.count_nonzero(rr < cfg.min_rr_ms))
    high = int(np.count_nonzero(rr > cfg.max_rr_ms))
    oob_pct = (low + high) / n * 100.0

    t = series.timestamps
    ends = t + rr
    max_gap = int(np.max(t[1:] - ends[:-1])) if n > 1 else 0

    chunk = max(10, n // 10)
    # signed: positive when the recording slows down
    drift = float(np.mean(rr[-chunk:])) - float(np.mean(rr[:chunk]))

    metrics = VerificationMetrics(
        point_count=n,
        nn_count=n - artifact_count,
        duration_hours=round(duration_hours, 4),
        artifact_pct=round(artifact_pct, 2),
        ectopy_count=ectopy_count,
        ectopy_pct=round(ectopy_pct, 2),
        out_of_bounds_low=low,
        out_of_bounds_high=high,
        max_gap_ms=max_gap,
        rr_drift_ms=round(drift, 1),
        mean_rr=round(float(np.mean(rr)), 1),
    )

    if duration_hours < cfg.min_duration_hours:
        reasons.add(RejectionReason.TOO_SHORT)
        errors.append(
            f"Recording is {duration_hours * 60:.1f} min (minimum {cfg.min_duration_hours * 60:.1f} min)"
        )

    if artifact_pct > cfg.max_artifact_pct:
        reasons.add(RejectionReason.EXCESSIVE_ARTIFACTS)
        errors.append(f"Artifact rate {artifact_pct:.1f}% exceeds {cfg.max_artifact_pct:.0f}%")
    elif artifact_pct > cfg.warn_artifact_pct:
        warnings.append(f"Elevated artifact rate {artifact_pct:.1f}%")

    if ectopy_pct > cfg.max_ectopy_pct:
        reasons.add(RejectionReason.EXCESSIVE_ECTOPY)
        errors.append(f"Ectopic beats {ectopy_pct:.1f}% exceed {cfg.max_ectopy_pct:.0f}%")
    elif ectopy_count > cfg.warn_ectopy_count:
        warnings.append(f"{ectopy_count} ectopic beats detected")

    if max_gap > cfg.max_gap_ms:
        reasons.add(RejectionReason.SIGNAL_LOSS)
        errors.append(f"Signal gap of {max_gap / 1000.0:.1f} s")

    drift_size = abs(drift)
    if drift_size > cfg.max_drift_ms:
        reasons.add(RejectionReason.EXCESSIVE_DRIFT)
        errors.append(f"RR drift of {drift_size:.0f} ms between start and end")
    elif drift_size > cfg.warn_drift_ms:
        warnings.append(f"RR drift of {drift_size:.0f} ms between start and end")

    if oob_pct > cfg.max_out_of_bounds_pct:
        reasons.add(RejectionReason.OUT_OF_BOUNDS)
        errors.append(
            f"{oob_pct:.1f}% of intervals outside {cfg.min_rr_ms}-{cfg.max_rr_ms} ms"
        )
    else:
        if low > cfg.warn_out_of_bounds_count:
            warnings.append(f"{low} intervals below {cfg.min_rr_ms} ms")
        if high > cfg.warn_out_of_bounds_count:
            warnings.append(f"{high} intervals above {cfg.max_rr_ms} ms")

    if _is_corrupted(series):
        reasons.add(RejectionReason.CORRUPTED_DATA)
        errors.append("Timestamps are not monotonic or intervals are not positive")

    if cfg.known_devices and series.device not in cfg.known_devices:
        reasons.add(RejectionReason.UNKNOWN_DEVICE)
        errors.append(f"Unrecognized data source: {series.device or 'unlabelled'}")

    return VerificationResult(
        passed=not reasons,
        rejection_reasons=reasons,
        errors=errors,
        warnings=warnings,
        metrics=metrics,
    )
