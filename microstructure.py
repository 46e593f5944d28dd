"""
microstructure.py -- Behavioural microstructure of the operator's own trades.

Treats the operator's stakes as a tiny order book: A stakes are buys, B
stakes are sells. A feed that baits the operator shows up here as a high
loss rate concentrated on large stakes, long losing streaks, and losses
that are systematically bigger than wins.

Design:
  - TradeRecord is mutated exactly once, when its result arrives
  - Bounded history (50 trades) with oldest-first eviction
  - detect_spoofing() is a pure read of that history
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import logging
import time
from typing import Any, Optional

import numpy as np

from outcome_feed import parse_direction, parse_stake

log = logging.getLogger(__name__)

TIER_AGGRESSIVE_BAIT = "CEBO_AGRESIVO"
TIER_MANIPULATION = "MANIPULACION"
TIER_NORMAL = "NORMAL"


@dataclass
class TradeRecord:
    direction: str
    stake: float
    timestamp: float
    result: Optional[str] = None
    was_inverted: bool = False

    @property
    def completed(self) -> bool:
        return self.result is not None

    @property
    def lost(self) -> bool:
        return self.result is not None and self.direction != self.result

    def to_dict(self) -> dict:
        return {
            "direction": self.direction,
            "stake": float(self.stake),
            "timestamp": float(self.timestamp),
            "result": self.result,
            "was_inverted": bool(self.was_inverted),
        }


@dataclass
class SpoofingCheck:
    detected: bool = False
    confidence: float = 0.0
    tier: str = TIER_NORMAL
    trap_rate: float = 0.0
    big_trap_rate: float = 0.0
    consistent_trap: bool = False
    bait_pattern: bool = False
    consecutive_losses: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "detected": bool(self.detected),
            "confidence": round(float(self.confidence), 6),
            "tier": str(self.tier),
            "trap_rate": round(float(self.trap_rate), 6),
            "big_trap_rate": round(float(self.big_trap_rate), 6),
            "consistent_trap": bool(self.consistent_trap),
            "bait_pattern": bool(self.bait_pattern),
            "consecutive_losses": int(self.consecutive_losses),
            "details": dict(self.details),
        }


def spoofing_tier(score: float) -> str:
    if score > 0.80:
        return TIER_AGGRESSIVE_BAIT
    if score > 0.60:
        return TIER_MANIPULATION
    return TIER_NORMAL


class MicrostructureAnalyzer:
    """Rolling record of the operator's trades and their results."""

    def __init__(
        self,
        *,
        max_trades: int = 50,
        max_trap_patterns: int = 20,
        lookback: int = 10,
        min_completed: int = 5,
        big_stake: float = 20.0,
    ) -> None:
        self.trades: deque[TradeRecord] = deque(maxlen=max(1, int(max_trades)))
        self.trap_patterns: deque[dict] = deque(maxlen=max(1, int(max_trap_patterns)))
        self.lookback = max(1, int(lookback))
        self.min_completed = max(1, int(min_completed))
        self.big_stake = float(big_stake)
        self.imbalance = 0.0

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_trade(self, direction: str, stake: float, timestamp: float | None = None) -> TradeRecord:
        record = TradeRecord(
            direction=parse_direction(direction),
            stake=parse_stake(stake),
            timestamp=float(timestamp if timestamp is not None else time.time()),
        )
        self.trades.append(record)
        self._update_imbalance()
        return record

    def record_result(
        self,
        outcome: str,
        was_inverted: bool = False,
        recent_sequence: str = "",
    ) -> TradeRecord | None:
        """Resolve the most recent pending trade; returns it, or None."""
        result = parse_direction(outcome)
        pending = next((t for t in reversed(self.trades) if not t.completed), None)
        if pending is None:
            log.debug("Result %s arrived with no pending trade", result)
            return None
        pending.result = result
        pending.was_inverted = bool(was_inverted)
        if pending.lost:
            self.trap_patterns.append({
                "direction": pending.direction,
                "stake": pending.stake,
                "time": pending.timestamp,
                "recent_sequence": str(recent_sequence or ""),
            })
        return pending

    def _stakes(self, trades) -> tuple[float, float]:
        buy = sum(t.stake for t in trades if t.direction == "A")
        sell = sum(t.stake for t in trades if t.direction == "B")
        return buy, sell

    def _update_imbalance(self) -> None:
        recent = list(self.trades)[-self.lookback:]
        buy, sell = self._stakes(recent)
        total = buy + sell
        raw = (buy - sell) / total if total > 0 else 0.0
        self.imbalance = float(np.clip(raw, -1.0, 1.0))

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def order_flow_imbalance(self) -> dict[str, Any]:
        recent = list(self.trades)[-self.lookback:]
        buy, sell = self._stakes(recent)
        if self.imbalance > 0.3:
            signal = "BUY_BIAS"
        elif self.imbalance < -0.3:
            signal = "SELL_BIAS"
        else:
            signal = "BALANCED"
        return {
            "imbalance": round(self.imbalance, 3),
            "buy_stake": buy,
            "sell_stake": sell,
            "ratio": round(buy / sell, 2) if sell > 0 else None,
            "signal": signal,
        }

    def detect_spoofing(self) -> SpoofingCheck:
        completed = [t for t in self.trades if t.completed]
        if len(completed) < self.min_completed:
            return SpoofingCheck()

        recent = completed[-self.lookback:]
        losses = [t for t in recent if t.lost]
        wins = [t for t in recent if not t.lost]
        trap_rate = len(losses) / len(recent)

        big = [t for t in recent if t.stake >= self.big_stake]
        big_trap_rate = sum(1 for t in big if t.lost) / len(big) if big else 0.0

        last5 = recent[-5:]
        consistent_trap = sum(1 for t in last5 if t.lost) >= 4

        avg_win = float(np.mean([t.stake for t in wins])) if wins else 0.0
        avg_loss = float(np.mean([t.stake for t in losses])) if losses else 0.0
        bait_pattern = bool(wins) and avg_loss > avg_win * 1.5

        consecutive = 0
        for t in reversed(recent):
            if not t.lost:
                break
            consecutive += 1

        score = 0.0
        if trap_rate > 0.60:
            score += 0.30
        if big_trap_rate > 0.70:
            score += 0.25
        if consistent_trap:
            score += 0.25
        if bait_pattern:
            score += 0.15
        if consecutive >= 3:
            score += 0.15
        score = min(1.0, score)

        if self.imbalance > 0.2:
            bias = "BUYER"
        elif self.imbalance < -0.2:
            bias = "SELLER"
        else:
            bias = "NEUTRAL"

        return SpoofingCheck(
            detected=score > 0.60,
            confidence=score,
            tier=spoofing_tier(score),
            trap_rate=trap_rate,
            big_trap_rate=big_trap_rate,
            consistent_trap=consistent_trap,
            bait_pattern=bait_pattern,
            consecutive_losses=consecutive,
            details={
                "completed": len(recent),
                "avg_win_stake": round(avg_win, 4),
                "avg_loss_stake": round(avg_loss, 4),
                "bias": bias,
            },
        )

    def imbalance_trend(self) -> str:
        trades = list(self.trades)
        if len(trades) < 6:
            return "INSUFFICIENT"
        half = len(trades) // 2
        buys_first = sum(1 for t in trades[:half] if t.direction == "A")
        buys_second = sum(1 for t in trades[half:] if t.direction == "A")
        if buys_second > buys_first * 1.5:
            return "INCREASING_BUY"
        if buys_second < buys_first * 0.5:
            return "INCREASING_SELL"
        return "STABLE"

    def reset(self) -> None:
        self.trades.clear()
        self.trap_patterns.clear()
        self.imbalance = 0.0
