"""Physiological organization of an HRV window.

Distinguishes coherent parasympathetic control from high but disorganized
variability:

    organized_recovery       DFA alpha1 0.75-1.0, plus LF/HF <= 1.5 or
                             stable HR (CV < 0.08)
    flexible_unconsolidated  alpha1 0.60-0.75
    high_variability         anything else (high RMSSD without fractal
                             organization, sympathetic LF/HF, unstable HR)
    insufficient             fewer than 60 clean beats
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sleephrv.config import ClassifierConfig


class WindowLabel(str, Enum):
    ORGANIZED_RECOVERY = "organized_recovery"
    FLEXIBLE_UNCONSOLIDATED = "flexible_unconsolidated"
    HIGH_VARIABILITY = "high_variability"
    INSUFFICIENT = "insufficient"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass(frozen=True)
class WindowClassification:
    label: WindowLabel
    is_stable: bool  # HR CV below the stability threshold
    explanation: str

    @property
    def is_organized(self) -> bool:
        return self.label is WindowLabel.ORGANIZED_RECOVERY


def classify_window(
    clean_beat_count: int,
    alpha1: float | None,
    lf_hf: float | None,
    hr_cv: float,
    config: ClassifierConfig | None = None,
) -> WindowClassification:
    """Classify a window from its DFA alpha1, LF/HF ratio and HR stability.

    Args:
        clean_beat_count: Clean beats in the window.
        alpha1: DFA alpha1, or None if it could not be computed.
        lf_hf: LF/HF ratio, or None if not computed.
        hr_cv: Coefficient of variation of the window's intervals.
        config: Classification thresholds.
    """
    cfg = config or ClassifierConfig()
    stable = hr_cv < cfg.stable_cv

    if clean_beat_count < cfg.min_beats:
        return WindowClassification(
            WindowLabel.INSUFFICIENT,
            stable,
            f"Only {clean_beat_count} clean beats ({cfg.min_beats} needed)",
        )

    if alpha1 is None:
        if stable:
            return WindowClassification(
                WindowLabel.ORGANIZED_RECOVERY,
                stable,
                f"Stable heart rate (CV {hr_cv:.1%}); DFA unavailable",
            )
        return WindowClassification(
            WindowLabel.HIGH_VARIABILITY,
            stable,
            f"Unstable heart rate (CV {hr_cv:.1%}); DFA unavailable",
        )

    if cfg.alpha1_organized_low <= alpha1 <= cfg.alpha1_organized_high:
        lf_hf_ok = lf_hf is None or lf_hf <= cfg.max_organized_lf_hf
        if lf_hf_ok or stable:
            if stable:
                support = f"stable heart rate (CV {hr_cv:.1%})"
            elif lf_hf is not None:
                support = f"LF/HF {lf_hf:.2f}"
            else:
                support = "no sympathetic dominance"
            return WindowClassification(
                WindowLabel.ORGANIZED_RECOVERY,
                stable,
                f"Fractal organization (α1={alpha1:.2f}) with {support}",
            )
        return WindowClassification(
            WindowLabel.HIGH_VARIABILITY,
            stable,
            f"α1={alpha1:.2f} in range but LF/HF {lf_hf:.2f} with unstable heart rate",
        )

    if cfg.alpha1_flexible_low <= alpha1 < cfg.alpha1_organized_low:
        return WindowClassification(
            WindowLabel.FLEXIBLE_UNCONSOLIDATED,
            stable,
            f"Flexible but not consolidated (α1={alpha1:.2f})",
        )

    direction = "random-like" if alpha1 < cfg.alpha1_flexible_low else "over-correlated"
    return WindowClassification(
        WindowLabel.HIGH_VARIABILITY,
        stable,
        f"High variability without organization (α1={alpha1:.2f}, {direction})",
    )
