"""Tests for sleephrv.analytics.verification -- the recording quality gate."""

import numpy as np
import pytest

from sleephrv.analytics.artifacts import ArtifactFlag, ArtifactType, detect_artifacts
from sleephrv.analytics.verification import RejectionReason, verify
from sleephrv.config import VerificationConfig

from tests.conftest import clean_flags, make_series, series_from_points


def _flags_with(n: int, count: int, kind: ArtifactType) -> list[ArtifactFlag]:
    flags = clean_flags(n)
    for i in range(0, count * 5, 5):
        flags[i] = ArtifactFlag(True, kind)
    return flags


class TestPassing:
    def test_clean_recording(self, noise_series):
        result = verify(noise_series, detect_artifacts(noise_series))
        assert result.passed
        assert result.rejection_reasons == set()
        assert result.summary == "Passed verification"
        assert result.metrics.point_count == 1200
        assert result.metrics.duration_hours == pytest.approx(1 / 3, abs=0.01)

    def test_drift_warning_only(self):
        rr = [int(v) for v in np.linspace(800, 1100, 400)]
        result = verify(make_series(rr), clean_flags(400))
        assert result.passed
        assert result.summary == "Passed with warnings"
        assert any("drift" in w for w in result.warnings)

    def test_artifact_warning_only(self):
        series = make_series([1000] * 400)
        result = verify(series, _flags_with(400, 32, ArtifactType.TECHNICAL))
        assert result.passed
        assert any("artifact" in w for w in result.warnings)


class TestRejections:
    def test_too_few_points_short_circuits(self):
        # 100 beats of 150 ms would also be out of bounds and too short
        result = verify(make_series([150] * 100), clean_flags(100))
        assert not result.passed
        assert result.rejection_reasons == {RejectionReason.TOO_FEW_POINTS}
        assert result.metrics.point_count == 100

    def test_too_short(self):
        result = verify(make_series([500] * 300), clean_flags(300))
        assert result.rejection_reasons == {RejectionReason.TOO_SHORT}

    def test_signal_loss(self):
        pairs = [(i * 1000, 1000) for i in range(200)]
        pairs += [(i * 1000 + 10_000, 1000) for i in range(200, 400)]
        result = verify(series_from_points(pairs), clean_flags(400))
        assert result.rejection_reasons == {RejectionReason.SIGNAL_LOSS}
        assert result.metrics.max_gap_ms == 10_000

    def test_decreasing_timestamps(self):
        pairs = [(i * 1000, 1000) for i in range(400)]
        pairs[100], pairs[101] = (101_000, 1000), (100_000, 1000)
        result = verify(series_from_points(pairs), clean_flags(400))
        assert result.rejection_reasons == {RejectionReason.CORRUPTED_DATA}

    def test_non_positive_interval(self):
        rr = [1000] * 400
        rr[200] = 0
        result = verify(make_series(rr), clean_flags(400))
        assert RejectionReason.CORRUPTED_DATA in result.rejection_reasons

    def test_out_of_bounds(self):
        rr = [1000] * 185 + [150] * 30 + [1000] * 185
        result = verify(make_series(rr), clean_flags(400))
        assert result.rejection_reasons == {RejectionReason.OUT_OF_BOUNDS}
        assert result.metrics.out_of_bounds_low == 30

    def test_excessive_drift(self):
        rr = [int(v) for v in np.linspace(800, 1300, 400)]
        result = verify(make_series(rr), clean_flags(400))
        assert result.rejection_reasons == {RejectionReason.EXCESSIVE_DRIFT}
        assert result.metrics.rr_drift_ms > 400

    def test_downward_drift_keeps_sign(self):
        rr = [int(v) for v in np.linspace(1300, 800, 400)]
        result = verify(make_series(rr), clean_flags(400))
        assert result.rejection_reasons == {RejectionReason.EXCESSIVE_DRIFT}
        assert result.metrics.rr_drift_ms < -400
        assert any(e.startswith("RR drift of 4") for e in result.errors)

    def test_excessive_artifacts(self):
        series = make_series([1000] * 400)
        result = verify(series, _flags_with(400, 70, ArtifactType.TECHNICAL))
        assert result.rejection_reasons == {RejectionReason.EXCESSIVE_ARTIFACTS}

    def test_excessive_ectopy(self):
        series = make_series([1000] * 400)
        result = verify(series, _flags_with(400, 48, ArtifactType.ECTOPIC))
        assert result.rejection_reasons == {RejectionReason.EXCESSIVE_ECTOPY}

    def test_unknown_device(self):
        cfg = VerificationConfig(known_devices=("polar_h10",))
        anonymous = make_series([1000] * 400)
        labelled = make_series([1000] * 400, device="polar_h10")
        assert verify(anonymous, clean_flags(400), cfg).rejection_reasons == {
            RejectionReason.UNKNOWN_DEVICE
        }
        assert verify(labelled, clean_flags(400), cfg).passed

    def test_any_device_without_allow_list(self):
        series = make_series([1000] * 400, device="something")
        assert verify(series, clean_flags(400)).passed

    def test_multiple_reasons_ordered(self):
        rr = [500] * 150 + [150] * 150
        result = verify(make_series(rr), clean_flags(300))
        assert result.ordered_reasons() == [RejectionReason.TOO_SHORT, RejectionReason.OUT_OF_BOUNDS]
        assert result.summary == "Rejected: Recording Too Short, Out-of-Range Intervals"
        assert len(result.errors) == 2


class TestStreaming:
    def test_relaxed_thresholds(self):
        series = make_series([1000] * 200)
        assert not verify(series, clean_flags(200)).passed
        assert verify(series, clean_flags(200), VerificationConfig.streaming()).passed

    def test_streaming_keeps_other_overrides(self):
        cfg = VerificationConfig(max_artifact_pct=1.0, min_points=500).for_streaming()
        assert cfg.min_points == 120
        assert cfg.max_artifact_pct == 1.0
        series = make_series([1000] * 200)
        result = verify(series, _flags_with(200, 10, ArtifactType.TECHNICAL), cfg)
        assert result.rejection_reasons == {RejectionReason.EXCESSIVE_ARTIFACTS}


class TestResult:
    def test_flags_must_align(self, noise_series):
        with pytest.raises(ValueError):
            verify(noise_series, clean_flags(5))

    def test_empty_series_with_zero_minimum(self):
        result = verify(make_series([]), [], VerificationConfig(min_points=0))
        assert result.rejection_reasons == {RejectionReason.TOO_FEW_POINTS}
        assert result.metrics.point_count == 0

    def test_to_dict(self):
        result = verify(make_series([150] * 100), clean_flags(100))
        d = result.to_dict()
        assert d["passed"] is False
        assert d["rejection_reasons"] == ["too_few_points"]
        assert d["metrics"]["point_count"] == 100

    def test_display_names(self):
        assert RejectionReason.SIGNAL_LOSS.display_name == "Signal Loss Detected"
        assert "arrhythmia" in RejectionReason.EXCESSIVE_ECTOPY.explanation
        for reason in RejectionReason:
            assert reason.display_name
            assert reason.explanation

    def test_repr(self):
        result = verify(make_series([1000] * 400), clean_flags(400))
        assert repr(result) == "VerificationResult(Passed verification)"
