"""Tests for sleephrv.analytics.spectral -- plan cache, Welch PSD, band powers."""

import threading

import numpy as np
import pytest

from sleephrv.analytics.spectral import (
    PlanCache,
    band_power,
    frequency_domain,
    welch_psd,
)
from sleephrv.config import SpectralConfig

from tests.conftest import clean_flags, make_series, sinus_rr, white_noise_rr


class TestPlanCache:
    def test_reuses_plan(self):
        cache = PlanCache()
        assert cache.get(256) is cache.get(256)
        assert 256 in cache
        assert len(cache) == 1

    def test_window_is_read_only(self):
        plan = PlanCache().get(64)
        with pytest.raises(ValueError):
            plan.window[0] = 1.0

    def test_bounded(self):
        cache = PlanCache(max_entries=2)
        for size in (8, 16, 32):
            cache.get(size)
        assert len(cache) == 2
        assert 32 in cache

    def test_teardown(self):
        cache = PlanCache()
        cache.get(128)
        cache.teardown()
        assert len(cache) == 0

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            PlanCache(max_entries=0)

    def test_concurrent_access(self):
        cache = PlanCache(max_entries=4)
        errors = []

        def worker(size):
            try:
                for _ in range(50):
                    assert cache.get(size).size == size
            except AssertionError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(2 ** k,)) for k in range(3, 9)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
        assert len(cache) <= 4


class TestWelchPSD:
    def test_peak_at_signal_frequency(self):
        fs = 4.0
        t = np.arange(1024) / fs
        x = np.sin(2 * np.pi * 0.25 * t)
        freqs, psd = welch_psd(x, fs, PlanCache())
        assert freqs[int(np.argmax(psd))] == pytest.approx(0.25, abs=0.02)

    def test_short_signal_zero_padded(self):
        cache = PlanCache()
        freqs, psd = welch_psd(np.ones(100) - 1.0, 4.0, cache)
        assert 128 in cache
        assert len(freqs) == 65
        assert not np.any(psd)


class TestBandPower:
    def test_half_open(self):
        freqs = np.array([0.0, 0.1, 0.2, 0.3])
        psd = np.ones(4)
        assert band_power(freqs, psd, 0.1, 0.3) == pytest.approx(0.2)
        assert band_power(freqs, psd, 0.1, 0.3, include_hi=True) == pytest.approx(0.3)

    def test_single_bin(self):
        assert band_power(np.array([0.0]), np.array([1.0]), 0.0, 1.0) == 0.0


class TestFrequencyDomain:
    def test_too_few_points(self):
        series = make_series(white_noise_rr(100))
        result = frequency_domain(series, clean_flags(100), PlanCache())
        assert not result

    def test_hf_dominant_for_respiratory_modulation(self):
        series = make_series(sinus_rr(600, freq_hz=0.25))
        fd = frequency_domain(series, clean_flags(600), PlanCache()).value
        assert fd.hf > fd.lf
        assert fd.lf_hf_ratio < 1.0
        assert fd.hf_peak_hz == pytest.approx(0.25, abs=0.02)
        assert fd.hf_nu > 50.0

    def test_lf_dominant_for_slow_modulation(self):
        series = make_series(sinus_rr(600, freq_hz=0.1))
        fd = frequency_domain(series, clean_flags(600), PlanCache()).value
        assert fd.lf > fd.hf
        assert fd.lf_hf_ratio > 1.0

    def test_vlf_null_under_ten_minutes(self):
        series = make_series(white_noise_rr(400))
        fd = frequency_domain(series, clean_flags(400), PlanCache()).value
        assert fd.vlf is None
        assert fd.total_power == pytest.approx(fd.lf + fd.hf, abs=0.02)

    def test_vlf_present_over_ten_minutes(self):
        series = make_series(white_noise_rr(800))
        fd = frequency_domain(series, clean_flags(800), PlanCache()).value
        assert fd.vlf is not None

    def test_vlf_threshold_configurable(self):
        series = make_series(white_noise_rr(400))
        cfg = SpectralConfig(vlf_min_minutes=5.0)
        fd = frequency_domain(series, clean_flags(400), PlanCache(), config=cfg).value
        assert fd.vlf is not None

    def test_regular_series_has_no_ratio(self, regular_series):
        fd = frequency_domain(regular_series, clean_flags(len(regular_series)), PlanCache()).value
        assert fd.hf == 0.0
        assert fd.lf_hf_ratio is None
        assert fd.lf_nu is None

    def test_uses_engine_cache(self):
        cache = PlanCache()
        series = make_series(white_noise_rr(600))
        frequency_domain(series, clean_flags(600), cache)
        assert 256 in cache
