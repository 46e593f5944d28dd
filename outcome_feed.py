"""
outcome_feed.py

Outcome stream and trade-intent boundary for the shield.

Design goals:
- Outcomes are immutable A/B observations kept in a bounded, ordered window
- Malformed directions/stakes are rejected here and never reach the shield
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import math
import time
from typing import Any, Iterable, Literal


Direction = Literal["A", "B"]
DIRECTIONS: tuple[str, ...] = ("A", "B")


class InvalidTradeIntent(ValueError):
    """Raised for a trade intent with a bad direction or stake."""


def parse_direction(raw: Any) -> Direction:
    """Normalize 'a'/'B '/... to 'A'/'B'; anything else is rejected."""
    if not isinstance(raw, str):
        raise InvalidTradeIntent(f"direction must be 'A' or 'B', got {raw!r}")
    value = raw.strip().upper()
    if value not in DIRECTIONS:
        raise InvalidTradeIntent(f"direction must be 'A' or 'B', got {raw!r}")
    return value  # type: ignore[return-value]


def parse_stake(raw: Any) -> float:
    if isinstance(raw, bool):
        raise InvalidTradeIntent(f"stake must be a positive number, got {raw!r}")
    try:
        stake = float(raw)
    except (TypeError, ValueError):
        raise InvalidTradeIntent(f"stake must be a positive number, got {raw!r}") from None
    if not math.isfinite(stake) or stake <= 0.0:
        raise InvalidTradeIntent(f"stake must be a positive number, got {raw!r}")
    return stake


def parse_trade_intent(direction: Any, stake: Any) -> tuple[Direction, float]:
    return parse_direction(direction), parse_stake(stake)


def opposite(direction: Direction) -> Direction:
    return "B" if direction == "A" else "A"


@dataclass(frozen=True)
class Outcome:
    value: Direction
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {"value": self.value, "timestamp": float(self.timestamp)}


class OutcomeFeed:
    """
    Append-only window of the most recent outcomes, oldest evicted first.
    """

    def __init__(self, maxlen: int = 50, outcomes: Iterable[Any] = ()) -> None:
        self.maxlen = max(1, int(maxlen))
        self._outcomes: deque[Outcome] = deque(maxlen=self.maxlen)
        for item in outcomes:
            self.append(item)

    def append(self, value: Any, timestamp: float | None = None) -> Outcome:
        if isinstance(value, Outcome):
            outcome = value
        else:
            ts = float(timestamp if timestamp is not None else time.time())
            outcome = Outcome(value=parse_direction(value), timestamp=ts)
        self._outcomes.append(outcome)
        return outcome

    def extend(self, values: Iterable[Any]) -> None:
        for value in values:
            self.append(value)

    def window(self, n: int | None = None) -> list[Outcome]:
        """Most recent *n* outcomes (all when n is None), oldest first."""
        items = list(self._outcomes)
        if n is None:
            return items
        if n <= 0:
            return []
        return items[-int(n):]

    def values(self, n: int | None = None) -> list[str]:
        return [o.value for o in self.window(n)]

    def clear(self) -> None:
        self._outcomes.clear()

    def __len__(self) -> int:
        return len(self._outcomes)

    def __iter__(self):
        return iter(list(self._outcomes))


def as_values(sequence: Iterable[Any]) -> list[str]:
    """Accept outcomes, 'A'/'B' strings or a joined 'ABBA' string."""
    if isinstance(sequence, str):
        return [parse_direction(ch) for ch in sequence]
    out: list[str] = []
    for item in sequence:
        if isinstance(item, Outcome):
            out.append(item.value)
        elif isinstance(item, dict):
            out.append(parse_direction(item.get("value", item.get("val"))))
        else:
            out.append(parse_direction(item))
    return out
