"""
regime_classifier.py -- Coarse volatility/trend regime for the shield.

Labels the current market condition so downstream consumers can weigh the
shield's confidence (a CRISIS tape produces "anomalies" on its own).

Lifecycle:
    1. On each tick:  classifier.classify(volatility, trend_bias, trend_strength)
    2. Persist:       classifier.snapshot_state()
    3. Restore:       classifier.restore_state(payload)
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
from enum import IntEnum
import logging
import time

import numpy as np

logger = logging.getLogger(__name__)


class MarketRegime(IntEnum):
    RANGE = 0
    TREND = 1
    HIGH_VOL = 2
    CRISIS = 3


@dataclass
class RegimeReading:
    regime: str = MarketRegime.RANGE.name
    confidence: float = 0.5
    volatility: float = 0.0
    volatility_percentile: float = 0.0
    trend_strength: float = 0.0
    trend_bias: float = 0.0
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class RegimeClassifier:
    DEFAULT_CONFIG = {
        "history": 100,
        "crisis_percentile": 0.9,
        "high_vol_percentile": 0.7,
        "crisis_vol_threshold": 40.0,
        "trend_strength_min": 30.0,   # ADX-like
        "trend_bias_min": 0.5,
        "confidence_window": 20,
        "confidence_scale": 10.0,
    }

    def __init__(self, config: dict | None = None):
        self.cfg = {**self.DEFAULT_CONFIG, **(config or {})}
        maxlen = max(1, int(self.cfg["history"]))
        self.volatility_history: deque[float] = deque(maxlen=maxlen)
        self.trend_history: deque[float] = deque(maxlen=maxlen)
        self.current = RegimeReading()

    @staticmethod
    def percentile(history, value: float) -> float:
        """Share of history strictly below *value*."""
        data = np.asarray(list(history), dtype=float)
        if data.size == 0:
            return 0.0
        return float(np.count_nonzero(data < float(value))) / float(data.size)

    def _confidence(self) -> float:
        window = int(self.cfg["confidence_window"])
        if len(self.volatility_history) < window:
            return 0.5
        recent = np.asarray(list(self.volatility_history)[-window:], dtype=float)
        spread = float(recent.std())
        return max(0.0, min(1.0, 1.0 - spread / float(self.cfg["confidence_scale"])))

    def classify(
        self,
        volatility: float,
        trend_bias: float = 0.0,
        trend_strength: float = 0.0,
        now_ts: float | None = None,
    ) -> RegimeReading:
        vol = float(volatility)
        self.volatility_history.append(vol)
        self.trend_history.append(float(trend_bias))

        pct = self.percentile(self.volatility_history, vol)
        if pct > self.cfg["crisis_percentile"] or vol > self.cfg["crisis_vol_threshold"]:
            regime = MarketRegime.CRISIS
        elif pct > self.cfg["high_vol_percentile"]:
            regime = MarketRegime.HIGH_VOL
        elif (float(trend_strength) > self.cfg["trend_strength_min"]
              and abs(float(trend_bias)) > self.cfg["trend_bias_min"]):
            regime = MarketRegime.TREND
        else:
            regime = MarketRegime.RANGE

        if regime.name != self.current.regime:
            logger.info("Regime change: %s -> %s", self.current.regime, regime.name)

        self.current = RegimeReading(
            regime=regime.name,
            confidence=self._confidence(),
            volatility=float(np.mean(list(self.volatility_history))),
            volatility_percentile=pct,
            trend_strength=float(trend_strength),
            trend_bias=float(trend_bias),
            timestamp=float(now_ts if now_ts is not None else time.time()),
        )
        return self.current

    def snapshot_state(self) -> dict:
        return {
            "volatility_history": [float(x) for x in self.volatility_history],
            "trend_history": [float(x) for x in self.trend_history],
            "current": self.current.to_dict(),
        }

    def restore_state(self, payload: dict) -> None:
        if not isinstance(payload, dict):
            return
        for name, target in (("volatility_history", self.volatility_history),
                             ("trend_history", self.trend_history)):
            raw = payload.get(name)
            if not isinstance(raw, list):
                continue
            try:
                values = [float(x) for x in raw]
            except (TypeError, ValueError):
                continue
            target.clear()
            target.extend(values)
        current = payload.get("current")
        if isinstance(current, dict):
            self.current = RegimeReading(
                **{k: v for k, v in current.items() if k in RegimeReading.__dataclass_fields__}
            )
