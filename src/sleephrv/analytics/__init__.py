"""Analytics engine for overnight HRV from RR interval recordings.

Modules:
    artifacts    -- Rolling-median artifact detection and correction
    features     -- Time-domain HRV (RMSSD, SDNN, pNN50, HR statistics)
    spectral     -- Welch PSD band powers with a cached plan per size
    dfa          -- Detrended fluctuation analysis (alpha1, alpha2)
    nonlinear    -- Poincare SD1/SD2, sample and approximate entropy
    stress       -- Baevsky stress index, PNS/SNS indices
    readiness    -- 1-10 readiness score
    respiratory  -- Respiratory rate from RR interval FFT
    classifier   -- Physiological organization of a window
    selection    -- Recovery window and peak-capacity search
    verification -- Whole-recording quality gate
    summary      -- Analysis report aggregation
    pipeline     -- Analysis engine wiring every stage together
"""

from sleephrv.analytics.artifacts import (
    ArtifactFlag,
    ArtifactType,
    CorrectionMethod,
    detect_artifacts,
    correct_artifacts,
    corrected_series,
    artifact_percentage,
    count_by_type,
)
from sleephrv.analytics.features import (
    compute_rmssd,
    sdnn,
    pnn50,
    time_domain,
    TimeDomainMetrics,
)
from sleephrv.analytics.spectral import PlanCache, frequency_domain, FrequencyDomainMetrics
from sleephrv.analytics.dfa import dfa, DFAResult
from sleephrv.analytics.nonlinear import (
    poincare,
    sample_entropy,
    approximate_entropy,
    nonlinear,
    NonlinearMetrics,
)
from sleephrv.analytics.stress import stress_index, ans_metrics, ANSMetrics
from sleephrv.analytics.readiness import readiness_score, ReadinessResult
from sleephrv.analytics.respiratory import (
    estimate_respiratory_rate,
    estimate_respiratory_rate_zero_crossing,
    respiratory_rate,
    RespiratoryResult,
)
from sleephrv.analytics.classifier import classify_window, WindowClassification, WindowLabel
from sleephrv.analytics.selection import (
    WindowSelector,
    SelectionMethod,
    CandidateWindow,
    RecoveryWindow,
    PeakCapacity,
    SelectionResult,
)
from sleephrv.analytics.verification import verify, VerificationResult, RejectionReason
from sleephrv.analytics.summary import AnalysisReport, WindowMetrics
from sleephrv.analytics.pipeline import AnalysisEngine, run_pipeline

__all__ = [
    # artifacts
    "ArtifactFlag",
    "ArtifactType",
    "CorrectionMethod",
    "detect_artifacts",
    "correct_artifacts",
    "corrected_series",
    "artifact_percentage",
    "count_by_type",
    # features
    "compute_rmssd",
    "sdnn",
    "pnn50",
    "time_domain",
    "TimeDomainMetrics",
    # spectral
    "PlanCache",
    "frequency_domain",
    "FrequencyDomainMetrics",
    # dfa
    "dfa",
    "DFAResult",
    # nonlinear
    "poincare",
    "sample_entropy",
    "approximate_entropy",
    "nonlinear",
    "NonlinearMetrics",
    # stress / readiness
    "stress_index",
    "ans_metrics",
    "ANSMetrics",
    "readiness_score",
    "ReadinessResult",
    # respiratory
    "estimate_respiratory_rate",
    "estimate_respiratory_rate_zero_crossing",
    "respiratory_rate",
    "RespiratoryResult",
    # classifier
    "classify_window",
    "WindowClassification",
    "WindowLabel",
    # selection
    "WindowSelector",
    "SelectionMethod",
    "CandidateWindow",
    "RecoveryWindow",
    "PeakCapacity",
    "SelectionResult",
    # verification
    "verify",
    "VerificationResult",
    "RejectionReason",
    # summary / pipeline
    "AnalysisReport",
    "WindowMetrics",
    "AnalysisEngine",
    "run_pipeline",
]
