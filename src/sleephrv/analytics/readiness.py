"""Readiness score (1-10) from overnight HRV.

The score starts neutral at 5 and is adjusted by:
- RMSSD relative to the personal baseline (fitness-adjusted by VO2max), or
  absolute RMSSD tiers when no baseline is known
- DFA alpha1 organization band
- PNS - SNS balance
- recent hard training (negative adjustment raises the score, since low
  HRV is expected after load)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sleephrv.config import ReadinessConfig


@dataclass
class ReadinessResult:
    """Readiness score and its components."""

    score: float  # 1-10
    breakdown: dict = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"ReadinessResult(score={self.score:.1f}/10)"


# ---------------------------------------------------------------------------
# Component scoring
# ---------------------------------------------------------------------------


def _fitness_multiplier(vo2max: float, cfg: ReadinessConfig) -> float:
    raw = 1.0 + (vo2max - cfg.vo2_reference) / 100.0
    return max(cfg.vo2_multiplier_min, min(cfg.vo2_multiplier_max, raw))


def _rmssd_component(
    rmssd: float,
    baseline: float | None,
    vo2max: float | None,
    cfg: ReadinessConfig,
) -> float:
    if baseline is not None and vo2max is not None:
        baseline = baseline * _fitness_multiplier(vo2max, cfg)

    if baseline is not None and baseline > 0:
        ratio = rmssd / baseline
        if cfg.ratio_optimal[0] <= ratio <= cfg.ratio_optimal[1]:
            return 2.0
        if cfg.ratio_acceptable[0] <= ratio <= cfg.ratio_acceptable[1]:
            return 1.0
        if ratio < cfg.ratio_poor_low or ratio > cfg.ratio_poor_high:
            return -2.0
        return 0.0

    athlete = vo2max is not None and vo2max > cfg.athlete_vo2
    high, mid, low = cfg.rmssd_tiers_athlete if athlete else cfg.rmssd_tiers
    if rmssd > high:
        return 1.5
    if rmssd > mid:
        return 0.5
    if rmssd < low:
        return -1.5
    return 0.0


def _alpha1_component(alpha1: float | None, cfg: ReadinessConfig) -> float:
    if alpha1 is None:
        return 0.0
    if cfg.alpha1_optimal[0] <= alpha1 <= cfg.alpha1_optimal[1]:
        return 2.0
    if cfg.alpha1_acceptable[0] <= alpha1 <= cfg.alpha1_acceptable[1]:
        return 0.5
    return -1.0


def _balance_component(pns: float | None, sns: float | None, cfg: ReadinessConfig) -> float:
    if pns is None or sns is None:
        return 0.0
    balance = pns - sns
    strong, neutral, mild = cfg.balance_cuts
    if balance >= strong:
        return 1.5
    if balance >= neutral:
        return 0.5
    if balance >= mild:
        return -0.5
    return -1.5


# ---------------------------------------------------------------------------
# Composite scoring
# ---------------------------------------------------------------------------


def readiness_score(
    rmssd: float,
    baseline_rmssd: float | None = None,
    alpha1: float | None = None,
    pns: float | None = None,
    sns: float | None = None,
    training_adjustment: float = 0.0,
    vo2max: float | None = None,
    config: ReadinessConfig | None = None,
) -> ReadinessResult:
    """Compute the 1-10 readiness score.

    Args:
        rmssd: RMSSD of the analysis window (ms).
        baseline_rmssd: Personal baseline RMSSD (ms), if known.
        alpha1: DFA alpha1 of the window.
        pns: PNS index.
        sns: SNS index.
        training_adjustment: Recent training load adjustment (-2 to +1);
            only negative values are applied.
        vo2max: VO2max (ml/kg/min) for fitness-adjusted thresholds.
        config: Score constants and component thresholds.

    Returns:
        ReadinessResult with the clamped score and a component breakdown.
    """
    cfg = config or ReadinessConfig()
    rmssd_c = _rmssd_component(rmssd, baseline_rmssd, vo2max, cfg)
    alpha1_c = _alpha1_component(alpha1, cfg)
    balance_c = _balance_component(pns, sns, cfg)
    training_c = -training_adjustment if training_adjustment < 0 else 0.0

    raw = cfg.base_score + rmssd_c + alpha1_c + balance_c + training_c
    score = max(1.0, min(10.0, raw))

    return ReadinessResult(
        score=round(score, 1),
        breakdown={
            "rmssd_component": rmssd_c,
            "alpha1_component": alpha1_c,
            "balance_component": balance_c,
            "training_adjustment": training_c,
        },
    )
