"""RR interval data model.

An :class:`RRSeries` is the immutable record of one recording session: beat
timestamps, the interval ending at each beat's successor, and the heart rate
the sensor reported alongside it (if any).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np


@dataclass(frozen=True)
class RRPoint:
    """A single beat-to-beat interval."""

    t_ms: int  # sequence timestamp of the beat
    rr_ms: int  # interval to the next beat
    hr: int | None = None  # sensor-reported heart rate (bpm)

    @property
    def end_ms(self) -> int:
        return self.t_ms + self.rr_ms

    @property
    def midpoint_ms(self) -> float:
        return self.t_ms + self.rr_ms / 2.0


@dataclass(frozen=True)
class RRSeries:
    """Ordered, immutable sequence of RR points from one session."""

    points: tuple[RRPoint, ...]
    device: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.points, tuple):
            object.__setattr__(self, "points", tuple(self.points))

    @classmethod
    def from_intervals(
        cls,
        rr_ms: Sequence[float],
        start_ms: int = 0,
        hr: Sequence[int | None] | None = None,
        device: str | None = None,
    ) -> RRSeries:
        """Build a series whose timestamps are the running sum of intervals.

        Args:
            rr_ms: Successive RR intervals in milliseconds.
            start_ms: Timestamp of the first beat.
            hr: Optional per-beat sensor heart rate, same length as *rr_ms*.
            device: Optional data source label.
        """
        if hr is not None and len(hr) != len(rr_ms):
            raise ValueError("hr and rr_ms must have the same length")
        points = []
        t = int(start_ms)
        for i, rr in enumerate(rr_ms):
            rr_int = int(round(rr))
            points.append(RRPoint(t, rr_int, None if hr is None else hr[i]))
            t += rr_int
        return cls(tuple(points), device=device)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[RRPoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> RRPoint:
        return self.points[index]

    @property
    def rr_values(self) -> np.ndarray:
        return np.fromiter((p.rr_ms for p in self.points), dtype=np.int64, count=len(self.points))

    @property
    def timestamps(self) -> np.ndarray:
        return np.fromiter((p.t_ms for p in self.points), dtype=np.int64, count=len(self.points))

    @property
    def start_ms(self) -> int:
        return self.points[0].t_ms if self.points else 0

    @property
    def end_ms(self) -> int:
        return self.points[-1].end_ms if self.points else 0

    @property
    def duration_ms(self) -> int:
        if not self.points:
            return 0
        return self.points[-1].end_ms - self.points[0].t_ms

    def __repr__(self) -> str:
        return (
            f"RRSeries(n={len(self.points)}, "
            f"duration={self.duration_ms / 60000.0:.1f}min)"
        )
