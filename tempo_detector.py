"""
tempo_detector.py

Timing analysis of the operator's own actions. Human clicking is irregular;
near-constant spacing, oscillating fast/slow bursts, or sub-200ms gaps
suggest the action stream is being driven or replayed.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import time
from typing import Any

import numpy as np


@dataclass
class TempoCheck:
    score: float = 0.0
    is_suspicious: bool = False
    robotic: bool = False
    erratic: bool = False
    too_fast: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "score": round(float(self.score), 6),
            "is_suspicious": bool(self.is_suspicious),
            "robotic": bool(self.robotic),
            "erratic": bool(self.erratic),
            "too_fast": bool(self.too_fast),
            "details": dict(self.details),
        }


class TempoDetector:
    """
    Rolling inter-action interval statistics (all times in seconds).
    """

    def __init__(
        self,
        *,
        max_timestamps: int = 30,
        max_intervals: int = 20,
        min_intervals: int = 5,
        lookback: int = 10,
        robotic_cv: float = 0.15,
        robotic_min_mean_sec: float = 0.5,
        erratic_ratio: float = 0.60,
        too_fast_sec: float = 0.2,
    ) -> None:
        self.timestamps: deque[float] = deque(maxlen=max(2, int(max_timestamps)))
        self.intervals: deque[float] = deque(maxlen=max(1, int(max_intervals)))
        self.min_intervals = max(2, int(min_intervals))
        self.lookback = max(3, int(lookback))
        self.robotic_cv = float(robotic_cv)
        self.robotic_min_mean_sec = float(robotic_min_mean_sec)
        self.erratic_ratio = float(erratic_ratio)
        self.too_fast_sec = float(too_fast_sec)

    def record_action(self, timestamp: float | None = None) -> None:
        ts = float(timestamp if timestamp is not None else time.time())
        if self.timestamps:
            self.intervals.append(max(0.0, ts - self.timestamps[-1]))
        self.timestamps.append(ts)

    def check(self) -> TempoCheck:
        if len(self.intervals) < self.min_intervals:
            return TempoCheck()

        recent = np.asarray(list(self.intervals)[-self.lookback:], dtype=float)
        mean = float(recent.mean())
        cv = float(recent.std()) / mean if mean > 0 else 0.0

        robotic = cv < self.robotic_cv and mean > self.robotic_min_mean_sec

        # Sign flips between successive interval changes (fast/slow/fast).
        changes = np.sign(np.diff(recent))
        pairs = max(0, changes.size - 1)
        reversals = int(np.count_nonzero(changes[1:] != changes[:-1])) if pairs else 0
        erratic = pairs > 0 and reversals > pairs * self.erratic_ratio

        too_fast = bool(np.any(recent < self.too_fast_sec))

        score = 0.0
        if robotic:
            score += 0.5
        if erratic:
            score += 0.3
        if too_fast:
            score += 0.2
        score = min(1.0, score)

        return TempoCheck(
            score=score,
            is_suspicious=score > 0.5,
            robotic=robotic,
            erratic=erratic,
            too_fast=too_fast,
            details={
                "avg_interval_sec": round(mean, 4),
                "cv": round(cv, 4),
                "reversals": reversals,
                "pairs": pairs,
                "min_interval_sec": round(float(recent.min()), 4),
            },
        )

    def reset(self) -> None:
        self.timestamps.clear()
        self.intervals.clear()
