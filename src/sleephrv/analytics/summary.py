"""Analysis report aggregator.

Pulls the verification verdict, the selected windows and every metric set
into a single AnalysisReport that is JSON-serializable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any

from sleephrv.analytics.features import TimeDomainMetrics
from sleephrv.analytics.readiness import ReadinessResult
from sleephrv.analytics.selection import PeakCapacity, RecoveryWindow
from sleephrv.analytics.spectral import FrequencyDomainMetrics
from sleephrv.analytics.nonlinear import NonlinearMetrics
from sleephrv.analytics.stress import ANSMetrics
from sleephrv.analytics.verification import VerificationResult


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, VerificationResult):
        return value.to_dict()
    if is_dataclass(value):
        out = {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
        if isinstance(value, FrequencyDomainMetrics):
            out["lf_nu"] = value.lf_nu
            out["hf_nu"] = value.hf_nu
        if isinstance(value, ANSMetrics):
            out["balance"] = value.balance
        return out
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class WindowMetrics:
    """Every metric set computed over one analysis range."""

    start_index: int
    end_index: int
    time_domain: TimeDomainMetrics | None = None
    frequency_domain: FrequencyDomainMetrics | None = None
    nonlinear: NonlinearMetrics | None = None
    ans: ANSMetrics | None = None
    readiness: ReadinessResult | None = None


@dataclass
class AnalysisReport:
    """A single recording's analysis."""

    verification: VerificationResult
    beat_count: int
    duration_minutes: float
    artifact_pct: float = 0.0
    artifact_counts: dict[str, int] = field(default_factory=dict)
    correction_method: str = "none"

    selection_method: str = "consolidated_recovery"
    recovery_window: RecoveryWindow | None = None
    no_window_reason: str | None = None
    peak_capacity: PeakCapacity | None = None

    # which range the metrics below describe
    analysis_source: str | None = None  # recovery_window | peak_capacity | full_recording
    metrics: WindowMetrics | None = None

    @property
    def analyzed(self) -> bool:
        return self.metrics is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict (JSON-friendly)."""
        return _jsonable(self)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def __repr__(self) -> str:
        window = "none" if self.recovery_window is None else f"{self.recovery_window.rmssd:.1f}ms"
        peak = "none" if self.peak_capacity is None else f"{self.peak_capacity.peak_rmssd:.1f}ms"
        return (
            f"AnalysisReport(n={self.beat_count}, "
            f"verification={'pass' if self.verification.passed else 'fail'}, "
            f"window={window}, peak={peak})"
        )
