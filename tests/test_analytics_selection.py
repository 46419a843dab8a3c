"""Tests for sleephrv.analytics.selection -- recovery window and peak capacity."""

from dataclasses import replace

import numpy as np
import pytest

from sleephrv.analytics.artifacts import ArtifactFlag, ArtifactType
from sleephrv.analytics.classifier import WindowLabel
from sleephrv.analytics.selection import (
    SelectionMethod,
    WindowSelector,
    adaptive_window_size,
    filter_ectopic_beats,
    isolated_spike_mask,
    slide_step,
)
from sleephrv.config import EngineConfig, SelectionConfig
from sleephrv.events import CollectingSink, NullSink

from tests.conftest import (
    alternating_rr,
    clean_flags,
    make_series,
    permissive_config,
    white_noise_rr,
)


def _selector(config: EngineConfig | None = None, sink=None) -> WindowSelector:
    return WindowSelector(config, sink=sink or NullSink())


# ========================== Pure helpers ==========================


class TestAdaptiveWindowSize:
    cfg = SelectionConfig()

    def test_full_size(self):
        assert adaptive_window_size(1000, self.cfg) == 400
        assert adaptive_window_size(400, self.cfg) == 400

    def test_half_of_band(self):
        assert adaptive_window_size(300, self.cfg) == 150
        assert adaptive_window_size(240, self.cfg) == 120

    def test_three_fifths(self):
        assert adaptive_window_size(239, self.cfg) == 143

    def test_floor(self):
        assert adaptive_window_size(50, self.cfg) == 60

    def test_step(self):
        assert slide_step(400) == 40
        assert slide_step(60) == 10

    def test_shrink_fraction_configurable(self):
        cfg = SelectionConfig(shrink_fraction=0.5)
        assert adaptive_window_size(239, cfg) == 119
        assert adaptive_window_size(150, cfg) == 75
        assert adaptive_window_size(150, cfg) != adaptive_window_size(150, self.cfg)

    def test_step_configurable(self):
        cfg = SelectionConfig(slide_divisor=20, min_slide_step=5)
        assert slide_step(400, cfg) == 20
        assert slide_step(60, cfg) == 5


class TestFilterEctopicBeats:
    def test_removes_outlier(self):
        values = np.full(30, 1000.0)
        values[15] = 1500.0
        kept = filter_ectopic_beats(values)
        assert len(kept) == 29
        assert 1500.0 not in kept

    def test_edge_outlier(self):
        values = np.full(30, 1000.0)
        values[0] = 600.0
        assert len(filter_ectopic_beats(values)) == 29

    def test_within_threshold_kept(self):
        values = np.full(30, 1000.0)
        values[15] = 1150.0
        assert len(filter_ectopic_beats(values)) == 30

    def test_short_sequence_untouched(self):
        values = np.array([1000.0, 2000.0, 1000.0])
        assert list(filter_ectopic_beats(values)) == [1000.0, 2000.0, 1000.0]


class TestIsolatedSpikeMask:
    def test_isolated_spike(self):
        # 120 is 2.4x both neighbours
        assert isolated_spike_mask([50, 50, 120, 50, 50]) == [False, False, True, False, False]

    def test_plateau_survives(self):
        # 97 / 80 and 97 / 85 are both under 1.5
        assert isolated_spike_mask([50, 80, 97, 85, 50]) == [False] * 5

    def test_one_sided_jump_survives(self):
        assert isolated_spike_mask([50, 120, 120, 50]) == [False] * 4

    def test_edges_exempt(self):
        assert isolated_spike_mask([200, 50, 50, 200]) == [False] * 4

    def test_exact_ratio_is_spike(self):
        assert isolated_spike_mask([40, 60, 40]) == [False, True, False]

    def test_zero_neighbours(self):
        assert isolated_spike_mask([0, 10, 0]) == [False, True, False]
        assert isolated_spike_mask([0, 0, 0]) == [False, False, False]

    def test_custom_ratio(self):
        assert isolated_spike_mask([50, 90, 50], ratio=2.0) == [False] * 3


# ========================== Search band ==========================


class TestSearchBand:
    def test_recording_bounds(self):
        series = make_series([1000] * 1000)
        band = _selector().search_band(series).value
        assert band.start_index == 300
        assert band.end_index == 700
        assert band.sleep_start_ms == 0
        assert band.sleep_end_ms == 999_000

    def test_sleep_anchors(self):
        series = make_series([1000] * 1000)
        band = _selector().search_band(series, sleep_start_ms=100_000, wake_ms=600_000).value
        assert band.sleep_start_ms == 100_000
        assert band.sleep_end_ms == 600_000
        assert band.start_index == 250
        assert band.end_index == 451

    def test_invalid_wake_ignored(self):
        series = make_series([1000] * 1000)
        band = _selector().search_band(series, sleep_start_ms=100_000, wake_ms=50_000).value
        assert band.sleep_end_ms == 999_000

    def test_constraints_disabled(self):
        series = make_series([1000] * 1000)
        cfg = EngineConfig(selection=SelectionConfig(enforce_temporal_constraints=False))
        band = _selector(cfg).search_band(series).value
        assert (band.start_index, band.end_index) == (0, 1000)

    def test_empty_series(self):
        assert not _selector().search_band(make_series([]))


# ========================== Recovery window ==========================


class TestFindBestWindow:
    def test_too_short(self):
        series = make_series(white_noise_rr(100))
        result = _selector().find_best_window(series, clean_flags(100))
        assert not result
        assert "120" in result.reason

    def test_flags_must_align(self, noise_series):
        with pytest.raises(ValueError):
            _selector().find_best_window(noise_series, clean_flags(10))

    def test_selected_window_inside_band(self, noise_series):
        sink = CollectingSink()
        window = _selector(permissive_config(), sink).find_best_window(
            noise_series, clean_flags(len(noise_series))
        ).value
        assert 0.30 <= window.relative_position <= 0.70
        assert window.classification is WindowLabel.ORGANIZED_RECOVERY
        assert window.method is SelectionMethod.CONSOLIDATED_RECOVERY
        assert window.end_index - window.start_index == 400
        assert window.lf_hf_ratio is not None
        assert window.dfa_alpha1 is not None
        assert window.recovery_score > 0
        assert "Organized Recovery" in window.selection_reason
        assert sink.names() == ["band", "candidates", "spikes_filtered", "selected"]

    def test_custom_band(self, noise_series):
        cfg = permissive_config(min_relative_position=0.4, max_relative_position=0.6)
        window = _selector(cfg).find_best_window(noise_series, clean_flags(len(noise_series))).value
        assert 0.4 <= window.relative_position <= 0.6

    def test_sleep_anchors_shift_band(self, noise_series):
        window = _selector(permissive_config()).find_best_window(
            noise_series, clean_flags(len(noise_series)), sleep_start_ms=0, wake_ms=600_000
        ).value
        assert window.end_ms <= noise_series.start_ms + 600_000
        assert 0.30 <= window.relative_position <= 0.70

    def test_highest_rmssd_wins(self):
        rr = white_noise_rr(600, sd=20.0, seed=1) + white_noise_rr(600, sd=60.0, seed=2)
        series = make_series(rr)
        sink = CollectingSink()
        window = _selector(permissive_config(), sink).find_best_window(series, clean_flags(1200)).value
        band = sink.last("band")
        scan = sink.last("candidates")
        last_start = band["start_index"] + (scan["positions"] - 1) * scan["step"]
        assert window.start_index == last_start

    def test_stable_winner_is_consolidated(self, noise_series):
        window = _selector(permissive_config()).find_best_window(
            noise_series, clean_flags(len(noise_series))
        ).value
        assert window.classification is WindowLabel.ORGANIZED_RECOVERY
        assert window.is_consolidated is True

    def test_unstable_winner_not_consolidated(self, noise_series):
        base = permissive_config()
        cfg = replace(base, classifier=replace(base.classifier, stable_cv=0.01))
        window = _selector(cfg).find_best_window(
            noise_series, clean_flags(len(noise_series))
        ).value
        assert window.classification is WindowLabel.ORGANIZED_RECOVERY
        assert window.is_consolidated is False

    def test_no_organized_window(self):
        series = make_series(alternating_rr(1200))
        sink = CollectingSink()
        result = _selector(sink=sink).find_best_window(series, clean_flags(1200))
        assert not result
        assert result.reason == "no consolidated recovery"
        assert "no_organized_window" in sink.names()

    def test_all_artifacts(self, noise_series):
        flags = [ArtifactFlag(True, ArtifactType.TECHNICAL)] * len(noise_series)
        result = _selector(permissive_config()).find_best_window(noise_series, flags)
        assert not result
        assert result.reason == "no valid candidate windows"


# ========================== Peak capacity ==========================


class TestPeakCapacity:
    def test_too_short(self):
        series = make_series(white_noise_rr(100))
        assert not _selector().find_peak_capacity(series, clean_flags(100))

    def test_found_without_organization(self):
        series = make_series(alternating_rr(1200))
        peak = _selector().find_peak_capacity(series, clean_flags(1200)).value
        assert peak.peak_rmssd > 50.0
        assert peak.end_index - peak.start_index == 400
        assert peak.window_duration_minutes == pytest.approx(400 / 60.0, abs=0.2)

    def test_searches_whole_recording(self):
        rr = white_noise_rr(600, sd=20.0, seed=1) + white_noise_rr(600, sd=60.0, seed=2)
        peak = _selector().find_peak_capacity(make_series(rr), clean_flags(1200)).value
        # outside the 30-70% band
        assert peak.start_index >= 520
        assert peak.window_relative_position > 0.55

    def test_independent_of_recovery_window(self):
        series = make_series(alternating_rr(1200))
        result = _selector().find_best_window_with_capacity(series, clean_flags(1200))
        assert result.window is None
        assert result.window_reason == "no consolidated recovery"
        assert result.peak_capacity is not None


# ========================== Alternate methods ==========================


class TestSelectByMethod:
    @pytest.mark.parametrize(
        "method",
        [SelectionMethod.PEAK_RMSSD, SelectionMethod.PEAK_SDNN, SelectionMethod.PEAK_TOTAL_POWER],
    )
    def test_peak_methods_need_no_organization(self, method):
        series = make_series(alternating_rr(1200))
        window = _selector().select_by_method(series, clean_flags(1200), method).value
        assert window.method is method
        assert 0.30 <= window.relative_position <= 0.70
        assert window.classification is not WindowLabel.ORGANIZED_RECOVERY
        assert not window.is_consolidated

    def test_string_method(self, noise_series):
        window = _selector().select_by_method(
            noise_series, clean_flags(len(noise_series)), "peak_sdnn"
        ).value
        assert window.method is SelectionMethod.PEAK_SDNN

    def test_consolidated_delegates(self, noise_series):
        flags = clean_flags(len(noise_series))
        selector = _selector(permissive_config())
        a = selector.select_by_method(noise_series, flags, SelectionMethod.CONSOLIDATED_RECOVERY)
        b = selector.find_best_window(noise_series, flags)
        assert a.value == b.value

    def test_custom_needs_position(self, noise_series):
        result = _selector().select_by_method(
            noise_series, clean_flags(len(noise_series)), SelectionMethod.CUSTOM
        )
        assert not result


class TestAnalyzeAtPosition:
    def test_centered_on_target(self, noise_series):
        window = _selector().analyze_at_position(
            noise_series, clean_flags(len(noise_series)), target_ms=600_000
        ).value
        assert window.method is SelectionMethod.CUSTOM
        assert window.end_index - window.start_index == 400
        assert window.start_ms <= 600_000 <= window.end_ms
        assert "Manual selection" in window.selection_reason

    def test_ignores_band(self, noise_series):
        window = _selector().analyze_at_position(
            noise_series, clean_flags(len(noise_series)), target_ms=0
        ).value
        assert window.start_index == 0
        assert window.relative_position < 0.30

    def test_clamped_to_end(self, noise_series):
        n = len(noise_series)
        window = _selector().analyze_at_position(
            noise_series, clean_flags(n), target_ms=10 ** 9
        ).value
        assert window.end_index == n

    def test_too_short(self):
        series = make_series(white_noise_rr(300))
        assert not _selector().analyze_at_position(series, clean_flags(300), 10_000)

    def test_fails_quality_gate(self, noise_series):
        flags = [ArtifactFlag(True, ArtifactType.TECHNICAL)] * len(noise_series)
        result = _selector().analyze_at_position(noise_series, flags, 600_000)
        assert not result
