"""Analysis engine: run a recording through every stage.

    detect -> verify -> (correct) -> select window + peak capacity
           -> time / frequency / nonlinear / ANS / readiness

The engine owns the spectral plan cache for its lifetime; call
:meth:`AnalysisEngine.teardown` (or use it as a context manager) when done.
"""

from __future__ import annotations

from typing import Sequence

from sleephrv.analytics.artifacts import (
    ArtifactFlag,
    CorrectionMethod,
    artifact_percentage,
    corrected_series,
    count_by_type,
    detect_artifacts,
)
from sleephrv.analytics.features import time_domain
from sleephrv.analytics.nonlinear import nonlinear
from sleephrv.analytics.readiness import readiness_score
from sleephrv.analytics.respiratory import respiratory_rate
from sleephrv.analytics.selection import (
    RecoveryWindow,
    SelectionMethod,
    SelectionResult,
    WindowSelector,
)
from sleephrv.analytics.spectral import PlanCache, frequency_domain
from sleephrv.analytics.stress import ans_metrics
from sleephrv.analytics.summary import AnalysisReport, WindowMetrics
from sleephrv.analytics.verification import VerificationResult, verify
from sleephrv.config import EngineConfig
from sleephrv.events import EventSink, LoggingSink
from sleephrv.outcome import unwrap
from sleephrv.series import RRSeries


class AnalysisEngine:
    """One analysis context: configuration, plan cache and event sink.

    Args:
        config: Engine configuration (defaults if None).
        sink: Diagnostic event sink (logs through :mod:`logging` if None).
    """

    def __init__(self, config: EngineConfig | None = None, sink: EventSink | None = None) -> None:
        self.config = config or EngineConfig()
        self.sink = sink or LoggingSink(__name__)
        self.cache = PlanCache(self.config.spectral.plan_cache_size)
        self.selector = WindowSelector(self.config, self.cache, self.sink)

    def __enter__(self) -> AnalysisEngine:
        return self

    def __exit__(self, *exc) -> None:
        self.teardown()

    def teardown(self) -> None:
        """Release cached spectral plans."""
        self.cache.teardown()

    # -- stages -------------------------------------------------------------

    def detect(self, series: RRSeries) -> list[ArtifactFlag]:
        flags = detect_artifacts(series, self.config.artifacts)
        self.sink.emit(
            "artifacts",
            beats=len(series),
            pct=artifact_percentage(flags),
        )
        return flags

    def verify(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag] | None = None,
        streaming: bool = False,
    ) -> VerificationResult:
        """Run the quality gate; detects artifacts first when *flags* is None.

        *streaming* relaxes only the length minimums of the configured gate.
        """
        if flags is None:
            flags = self.detect(series)
        cfg = self.config.verification
        if streaming:
            cfg = cfg.for_streaming()
        result = verify(series, flags, cfg)
        self.sink.emit(
            "verification",
            passed=result.passed,
            reasons=",".join(sorted(r.value for r in result.rejection_reasons)) or "none",
        )
        return result

    def select(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag],
        sleep_start_ms: int | None = None,
        wake_ms: int | None = None,
        method: SelectionMethod | str = SelectionMethod.CONSOLIDATED_RECOVERY,
        position_ms: int | None = None,
    ) -> SelectionResult:
        """Window selection plus peak capacity.

        A *position_ms* (offset from the first beat) selects a manual window
        and overrides *method*.
        """
        if position_ms is None:
            return self.selector.find_best_window_with_capacity(
                series, flags, sleep_start_ms, wake_ms, method
            )
        window = self.selector.analyze_at_position(series, flags, position_ms)
        peak = self.selector.find_peak_capacity(series, flags)
        return SelectionResult(
            window=unwrap(window),
            peak_capacity=unwrap(peak),
            window_reason=None if window else window.reason,
        )

    def analyze_window(
        self,
        series: RRSeries,
        flags: Sequence[ArtifactFlag],
        start: int = 0,
        end: int | None = None,
        *,
        baseline_rmssd: float | None = None,
        vo2max: float | None = None,
        training_adjustment: float = 0.0,
        daytime_resting_hr: float | None = None,
    ) -> WindowMetrics:
        """Every metric set over ``series[start:end]``."""
        end = len(series) if end is None else end
        td = unwrap(time_domain(series, flags, start, end, self.config.time_domain))
        fd = unwrap(frequency_domain(series, flags, self.cache, start, end, self.config.spectral))
        nl = unwrap(nonlinear(series, flags, start, end, self.config.nonlinear))

        clean = [
            p.rr_ms for p, f in zip(series.points[start:end], flags[start:end]) if not f.is_artifact
        ]
        respiration = respiratory_rate(clean, self.config.respiratory)
        ans = ans_metrics(
            clean,
            mean_rr=None if td is None else td.mean_rr,
            rmssd=None if td is None else td.rmssd,
            mean_hr=None if td is None else td.mean_hr,
            sd1=None if nl is None else nl.sd1,
            sd2=None if nl is None else nl.sd2,
            respiration_rate=respiration,
            daytime_resting_hr=daytime_resting_hr,
            config=self.config.stress,
        )

        readiness = None
        if td is not None:
            readiness = readiness_score(
                td.rmssd,
                baseline_rmssd=baseline_rmssd,
                alpha1=None if nl is None else nl.dfa_alpha1,
                pns=ans.pns_index,
                sns=ans.sns_index,
                training_adjustment=training_adjustment,
                vo2max=vo2max,
                config=self.config.readiness,
            )
            ans.readiness_score = readiness.score

        return WindowMetrics(
            start_index=start,
            end_index=end,
            time_domain=td,
            frequency_domain=fd,
            nonlinear=nl,
            ans=ans,
            readiness=readiness,
        )

    # -- full run -----------------------------------------------------------

    def run(
        self,
        series: RRSeries,
        sleep_start_ms: int | None = None,
        wake_ms: int | None = None,
        method: SelectionMethod | str = SelectionMethod.CONSOLIDATED_RECOVERY,
        correction: CorrectionMethod | str = CorrectionMethod.NONE,
        position_ms: int | None = None,
        baseline_rmssd: float | None = None,
        vo2max: float | None = None,
        training_adjustment: float = 0.0,
        daytime_resting_hr: float | None = None,
        streaming: bool = False,
    ) -> AnalysisReport:
        """Analyze one recording.

        Args:
            series: The recording.
            sleep_start_ms: Sleep onset, ms after the first beat.
            wake_ms: Wake time, ms after the first beat.
            method: Window selection strategy.
            correction: Artifact correction applied before selection.
            position_ms: Manual window center, ms after the first beat.
            baseline_rmssd: Personal baseline for readiness.
            vo2max: VO2max for fitness-adjusted readiness.
            training_adjustment: Recent training load adjustment.
            daytime_resting_hr: For the nocturnal HR dip.
            streaming: Use the relaxed live-session quality gate.

        Returns:
            AnalysisReport.  A rejected recording carries only the
            verification result and artifact summary.
        """
        method = SelectionMethod(method)
        correction = CorrectionMethod(correction)
        flags = self.detect(series)
        verification = self.verify(series, flags, streaming=streaming)

        report = AnalysisReport(
            verification=verification,
            beat_count=len(series),
            duration_minutes=round(series.duration_ms / 60000.0, 2),
            artifact_pct=round(artifact_percentage(flags), 2),
            artifact_counts=count_by_type(flags),
            correction_method=correction.value,
            selection_method=SelectionMethod.CUSTOM.value if position_ms is not None else method.value,
        )
        if not verification.passed:
            self.sink.emit("rejected", summary=verification.summary)
            return report

        if correction is not CorrectionMethod.NONE:
            series, flags = corrected_series(series, flags, correction, self.config.correction)
            self.sink.emit("corrected", method=correction.value, beats=len(series))

        selection = self.select(series, flags, sleep_start_ms, wake_ms, method, position_ms)
        report.recovery_window = selection.window
        report.no_window_reason = selection.window_reason
        report.peak_capacity = selection.peak_capacity

        source, start, end = _analysis_range(selection, len(series))
        report.analysis_source = source
        report.metrics = self.analyze_window(
            series,
            flags,
            start,
            end,
            baseline_rmssd=baseline_rmssd,
            vo2max=vo2max,
            training_adjustment=training_adjustment,
            daytime_resting_hr=daytime_resting_hr,
        )
        self.sink.emit("analyzed", source=source, start_index=start, end_index=end)
        return report


def _analysis_range(selection: SelectionResult, n: int) -> tuple[str, int, int]:
    window: RecoveryWindow | None = selection.window
    if window is not None:
        return "recovery_window", window.start_index, window.end_index
    peak = selection.peak_capacity
    if peak is not None:
        return "peak_capacity", peak.start_index, peak.end_index
    return "full_recording", 0, n


def run_pipeline(
    series: RRSeries,
    config: EngineConfig | None = None,
    sink: EventSink | None = None,
    **kwargs,
) -> AnalysisReport:
    """Run the full analysis on *series* with a throwaway engine.

    Keyword arguments are passed to :meth:`AnalysisEngine.run`.
    """
    with AnalysisEngine(config, sink) as engine:
        return engine.run(series, **kwargs)
