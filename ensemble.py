"""
ensemble.py

Precision-weighted ensemble of opaque predictive models.

A model is anything with predict(window) -> probability that the next
outcome is A. Outputs are coerced defensively, weighted by track record
over uncertainty, and temperature-calibrated. All utilities are pure-Python
+ numpy and safe to call even when models misbehave.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import logging
import math
import time
from typing import Any, Protocol, Sequence

import numpy as np

from outcome_feed import as_values
from stats_engine import binary_entropy

logger = logging.getLogger(__name__)

_EPS = 0.01


def _clamp(value: float, lo: float, hi: float) -> float:
    low = min(float(lo), float(hi))
    high = max(float(lo), float(hi))
    return max(low, min(float(value), high))


def _coerce_probability(raw: Any) -> float:
    """
    Accept scalar, sequence or array outputs. Sequences use their first
    element; anything unusable becomes 0.5.
    """
    if isinstance(raw, bool) or raw is None:
        return 0.5
    try:
        arr = np.asarray(raw, dtype=float).reshape(-1)
    except (TypeError, ValueError):
        return 0.5
    if arr.size == 0 or not math.isfinite(float(arr[0])):
        return 0.5
    return _clamp(float(arr[0]), 0.0, 1.0)


class PredictiveModel(Protocol):
    def predict(self, window: Sequence[Any]) -> Any:
        ...


class ConstantModel:
    """Always answers the same probability (0.5 = no opinion)."""

    def __init__(self, probability: float = 0.5) -> None:
        self.probability = _clamp(probability, 0.0, 1.0)

    def predict(self, window: Sequence[Any]) -> float:
        return self.probability


class MajorityModel:
    """Share of A among the last *lookback* outcomes."""

    def __init__(self, lookback: int = 10) -> None:
        self.lookback = max(1, int(lookback))

    def predict(self, window: Sequence[Any]) -> float:
        values = as_values(window)[-self.lookback:]
        if not values:
            return 0.5
        return sum(1 for v in values if v == "A") / len(values)


@dataclass
class ModelSlot:
    name: str
    model: Any
    prior: float = 1.0
    hits: int = 0
    total: int = 0
    uncertainty: float = 1.0
    recent_errors: deque = field(default_factory=lambda: deque(maxlen=50))

    @property
    def accuracy(self) -> float:
        return self.hits / self.total if self.total > 0 else 0.5


@dataclass
class EnsemblePrediction:
    probability: float = 0.5
    raw_probability: float = 0.5
    direction: str = "NEUTRAL"
    confidence: float = 1.0
    uncertainty: float = 0.0
    weights: dict[str, float] = field(default_factory=dict)
    predictions: dict[str, float] = field(default_factory=dict)
    timestamp: float = 0.0

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "probability": round(float(self.probability), 6),
            "raw_probability": round(float(self.raw_probability), 6),
            "direction": str(self.direction),
            "confidence": round(float(self.confidence), 6),
            "uncertainty": round(float(self.uncertainty), 6),
            "weights": {k: round(float(v), 6) for k, v in self.weights.items()},
            "predictions": {k: round(float(v), 6) for k, v in self.predictions.items()},
            "timestamp": float(self.timestamp),
        }


def temperature_scale(probability: float, temperature: float) -> float:
    p = _clamp(probability, 1e-6, 1.0 - 1e-6)
    logit = math.log(p / (1.0 - p)) / max(1e-6, float(temperature))
    return 1.0 / (1.0 + math.exp(-logit))


class PredictionEnsemble:
    def __init__(
        self,
        *,
        temperature: float = 1.5,
        buy_above: float = 0.68,
        sell_below: float = 0.32,
        min_errors_for_uncertainty: int = 10,
    ) -> None:
        self.temperature = max(1e-6, float(temperature))
        self.buy_above = float(buy_above)
        self.sell_below = float(sell_below)
        self.min_errors_for_uncertainty = max(1, int(min_errors_for_uncertainty))
        self.models: dict[str, ModelSlot] = {}
        self.last_prediction: EnsemblePrediction | None = None

    def add_model(self, name: str, model: Any, prior: float = 1.0) -> None:
        self.models[str(name)] = ModelSlot(name=str(name), model=model, prior=max(0.0, float(prior)))

    def remove_model(self, name: str) -> bool:
        return self.models.pop(str(name), None) is not None

    def get_weights(self) -> dict[str, float]:
        """(accuracy + eps) / (uncertainty + eps) * prior, normalized."""
        raw = {
            name: (slot.accuracy + _EPS) / (slot.uncertainty + _EPS) * slot.prior
            for name, slot in self.models.items()
        }
        total = sum(raw.values())
        if total <= 1e-12:
            n = max(1, len(raw))
            return {name: 1.0 / n for name in raw}
        return {name: w / total for name, w in raw.items()}

    def predict(self, window: Sequence[Any]) -> EnsemblePrediction:
        now = time.time()
        if not self.models:
            self.last_prediction = EnsemblePrediction(timestamp=now)
            return self.last_prediction

        probs: dict[str, float] = {}
        for name, slot in self.models.items():
            try:
                prob = _coerce_probability(slot.model.predict(window))
                slot.uncertainty = binary_entropy(prob)
            except Exception as e:
                logger.warning("Ensemble model %s failed: %s", name, e)
                prob = 0.5
                slot.uncertainty = 1.0
            probs[name] = prob

        weights = self.get_weights()
        mean = sum(weights[name] * p for name, p in probs.items())
        variance = sum(weights[name] * (p - mean) ** 2 for name, p in probs.items())
        calibrated = temperature_scale(mean, self.temperature)

        if calibrated > self.buy_above:
            direction = "BUY"
        elif calibrated < self.sell_below:
            direction = "SELL"
        else:
            direction = "NEUTRAL"

        spread = math.sqrt(max(0.0, variance))
        self.last_prediction = EnsemblePrediction(
            probability=calibrated,
            raw_probability=mean,
            direction=direction,
            confidence=_clamp(1.0 - spread, 0.0, 1.0),
            uncertainty=spread,
            weights=weights,
            predictions=probs,
            timestamp=now,
        )
        logger.debug("Ensemble: p=%.3f (raw %.3f) -> %s", calibrated, mean, direction)
        return self.last_prediction

    def update(self, name: str, predicted: str, actual: str) -> bool:
        slot = self.models.get(str(name))
        if slot is None:
            return False
        hit = (predicted == "BUY" and actual == "A") or (predicted == "SELL" and actual == "B")
        slot.total += 1
        if hit:
            slot.hits += 1
        slot.recent_errors.append(0.0 if hit else 1.0)
        if len(slot.recent_errors) > self.min_errors_for_uncertainty:
            slot.uncertainty = float(np.std(np.asarray(slot.recent_errors, dtype=float))) + 0.1
        return True

    def observe(self, actual: str) -> int:
        """Score every model's part of the last prediction against *actual*."""
        last = self.last_prediction
        if last is None or not last.predictions:
            return 0
        updated = 0
        for name, prob in last.predictions.items():
            if prob > self.buy_above:
                label = "BUY"
            elif prob < self.sell_below:
                label = "SELL"
            else:
                label = "NEUTRAL"
            if self.update(name, label, actual):
                updated += 1
        self.last_prediction = None
        return updated
