"""
anomaly_labeler.py

Contextual labelling of short outcome windows.

Each window is reduced to a handful of features and compared against what
a fair coin would produce. Resolved windows are filed into a trap set or a
normal set so later analysis can compare the two populations.
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
import math
import time
from typing import Any, Iterable

import numpy as np

from outcome_feed import as_values


@dataclass
class WindowFeatures:
    n: int
    freq_a: float
    max_streak: int
    reversals: int
    volatility: float
    trend: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AnomalyLabeler:
    """
    Reference model: independent fair A/B draws.
      freq_a      ~ 0.5, one std ~0.11 (binomial, n ~ 20)
      max_streak  ~ ceil(log2(n) + 1)
      volatility  ~ 0.5 (mean |first difference|)
    """

    def __init__(
        self,
        *,
        anomaly_z: float = 2.0,
        freq_std: float = 0.11,
        streak_scale: float = 2.0,
        volatility_expected: float = 0.5,
        volatility_std: float = 0.2,
        max_traps: int = 200,
        max_normals: int = 500,
    ) -> None:
        self.anomaly_z = float(anomaly_z)
        self.freq_std = float(freq_std)
        self.streak_scale = float(streak_scale)
        self.volatility_expected = float(volatility_expected)
        self.volatility_std = float(volatility_std)
        self.trap_samples: deque[dict] = deque(maxlen=max(1, int(max_traps)))
        self.normal_samples: deque[dict] = deque(maxlen=max(1, int(max_normals)))

    def extract_features(self, window: Iterable[Any]) -> WindowFeatures | None:
        values = as_values(window)
        n = len(values)
        if n < 2:
            return None
        binary = np.asarray([1.0 if v == "A" else 0.0 for v in values], dtype=float)
        diffs = np.abs(np.diff(binary))

        streak = longest = 1
        for prev, cur in zip(values, values[1:]):
            streak = streak + 1 if cur == prev else 1
            longest = max(longest, streak)

        half = n // 2
        trend = float(binary[half:].mean() - binary[:half].mean())

        return WindowFeatures(
            n=n,
            freq_a=float(binary.mean()),
            max_streak=longest,
            reversals=int(diffs.sum()),
            volatility=float(diffs.mean()),
            trend=trend,
        )

    def z_scores(self, features: WindowFeatures) -> dict[str, float]:
        expected_streak = math.ceil(math.log2(max(features.n, 1)) + 1)
        return {
            "freq_a": abs(features.freq_a - 0.5) / self.freq_std,
            "max_streak": max(0.0, features.max_streak - expected_streak) / self.streak_scale,
            "volatility": abs(features.volatility - self.volatility_expected) / self.volatility_std,
        }

    def is_anomaly(self, features: WindowFeatures | None) -> bool:
        if features is None:
            return False
        return max(self.z_scores(features).values()) > self.anomaly_z

    def label(self, window: Iterable[Any], was_loss: bool) -> tuple[bool, WindowFeatures | None]:
        features = self.extract_features(window)
        if features is None:
            return False, None
        is_trap = bool(was_loss) and self.is_anomaly(features)
        sample = {"features": features.to_dict(), "timestamp": time.time()}
        if is_trap:
            self.trap_samples.append(sample)
        else:
            self.normal_samples.append(sample)
        return is_trap, features

    def reset(self) -> None:
        self.trap_samples.clear()
        self.normal_samples.clear()
