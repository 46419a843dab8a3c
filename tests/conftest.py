"""Shared fixtures and helpers for the sleephrv test suite."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from sleephrv.analytics.artifacts import ArtifactFlag
from sleephrv.config import ClassifierConfig, EngineConfig
from sleephrv.series import RRPoint, RRSeries


# ---------------------------------------------------------------------------
# Synthetic RR sequences
# ---------------------------------------------------------------------------


def white_noise_rr(
    n: int,
    mean: float = 1000.0,
    sd: float = 40.0,
    seed: int = 0,
) -> list[int]:
    """Uncorrelated Gaussian RR intervals (DFA alpha1 ~ 0.5)."""
    rng = np.random.default_rng(seed)
    return [int(round(v)) for v in rng.normal(mean, sd, n)]


def alternating_rr(
    n: int,
    mean: float = 1000.0,
    amplitude: float = 40.0,
    jitter: float = 5.0,
    seed: int = 0,
) -> list[int]:
    """Beat-to-beat alternation: high RMSSD, strongly anti-correlated."""
    rng = np.random.default_rng(seed)
    signs = np.where(np.arange(n) % 2 == 0, 1.0, -1.0)
    values = mean + amplitude * signs + rng.normal(0.0, jitter, n)
    return [int(round(v)) for v in values]


def sinus_rr(
    n: int,
    freq_hz: float = 0.25,
    mean: float = 1000.0,
    amplitude: float = 50.0,
) -> list[int]:
    """RR intervals modulated by a sinusoid at *freq_hz* (respiration-like)."""
    rr: list[int] = []
    t_ms = 0.0
    for _ in range(n):
        value = mean + amplitude * np.sin(2.0 * np.pi * freq_hz * t_ms / 1000.0)
        rr.append(int(round(value)))
        t_ms += value
    return rr


def make_series(rr: list[int], hr: list[int | None] | None = None, device: str | None = None) -> RRSeries:
    return RRSeries.from_intervals(rr, hr=hr, device=device)


def series_from_points(pairs: list[tuple[int, int]], device: str | None = None) -> RRSeries:
    """Series with explicit ``(t_ms, rr_ms)`` points."""
    return RRSeries(tuple(RRPoint(t, rr) for t, rr in pairs), device=device)


def clean_flags(n: int) -> list[ArtifactFlag]:
    return [ArtifactFlag.clean() for _ in range(n)]


def permissive_config(**selection) -> EngineConfig:
    """Defaults, except every computable alpha1 counts as organized."""
    cfg = EngineConfig(
        classifier=ClassifierConfig(alpha1_organized_low=0.0, alpha1_organized_high=5.0),
    )
    if selection:
        from dataclasses import replace

        cfg = replace(cfg, selection=replace(cfg.selection, **selection))
    return cfg


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def noise_series() -> RRSeries:
    """20 minutes of clean white-noise RR around 1000 ms."""
    return make_series(white_noise_rr(1200))


@pytest.fixture
def regular_series() -> RRSeries:
    """600 identical 1000 ms intervals."""
    return make_series([1000] * 600)


def write_text(path: Path, text: str) -> Path:
    path.write_text(text)
    return path
