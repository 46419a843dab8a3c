"""Tests for sleephrv.analytics.nonlinear -- Poincare and entropy."""

import math

import numpy as np
import pytest

from sleephrv.analytics.nonlinear import (
    approximate_entropy,
    nonlinear,
    poincare,
    sample_entropy,
)

from tests.conftest import clean_flags, make_series, sinus_rr, white_noise_rr


class TestPoincare:
    def test_too_short(self):
        assert poincare([800.0, 810.0]) is None

    def test_constant(self):
        assert poincare([800.0] * 10) == (0.0, 0.0)

    def test_alternating_is_all_short_term(self):
        sd1, sd2 = poincare([800.0, 900.0] * 50)
        assert sd1 > sd2

    def test_white_noise_axes_equal(self):
        sd1, sd2 = poincare(white_noise_rr(2000, sd=40.0))
        # uncorrelated: SD1 ~ SD2 ~ SD
        assert sd1 == pytest.approx(40.0, rel=0.1)
        assert sd2 == pytest.approx(40.0, rel=0.1)


class TestSampleEntropy:
    def test_too_short(self):
        assert sample_entropy([800.0, 810.0, 820.0]) is None

    def test_constant_is_zero(self):
        assert sample_entropy([800.0] * 50) == 0.0

    def test_regular_below_random(self):
        regular = sample_entropy(sinus_rr(300))
        random = sample_entropy(white_noise_rr(300))
        assert regular is not None and random is not None
        assert regular < random

    def test_no_matches(self):
        # strictly increasing with tiny tolerance: no m-length matches
        assert sample_entropy([float(2 ** i) for i in range(12)], r=1e-6) is None


class TestApproximateEntropy:
    def test_constant_is_zero(self):
        assert approximate_entropy([800.0] * 50) == pytest.approx(0.0)

    def test_non_negative_for_noise(self):
        assert approximate_entropy(white_noise_rr(200)) > 0.0

    def test_regular_below_random(self):
        assert approximate_entropy(sinus_rr(300)) < approximate_entropy(white_noise_rr(300))


class TestNonlinear:
    def test_insufficient(self):
        series = make_series([1000] * 9)
        assert not nonlinear(series, clean_flags(9))

    def test_short_window_has_no_dfa(self):
        series = make_series(white_noise_rr(40))
        nl = nonlinear(series, clean_flags(40)).value
        assert nl.dfa_alpha1 is None
        assert nl.approximate_entropy is not None

    def test_regular_series_is_degenerate(self, regular_series):
        nl = nonlinear(regular_series, clean_flags(len(regular_series))).value
        assert nl.sd1 == 0.0
        assert nl.sd2 == 0.0
        assert nl.sd1_sd2_ratio == 0.0
        assert nl.sample_entropy == 0.0
        assert nl.approximate_entropy == pytest.approx(0.0)
        assert nl.dfa_alpha1 == pytest.approx(0.0, abs=1e-9)
        assert nl.dfa_alpha1_r2 == 0.0
        for value in (nl.sd1, nl.sd2, nl.dfa_alpha1, nl.dfa_alpha1_r2):
            assert not math.isnan(value)

    def test_full_set(self):
        series = make_series(white_noise_rr(300))
        nl = nonlinear(series, clean_flags(300)).value
        assert nl.dfa_alpha1 is not None
        assert nl.dfa_alpha2 is not None
        assert nl.sd1_sd2_ratio > 0
