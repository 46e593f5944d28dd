"""
sequence_detector.py

Seed/steering detector for the raw A/B outcome sequence.

Runs the stats_engine analyzers over the whole window and folds their
binary verdicts into one weighted manipulation score. Also keeps a bounded
table of learned 10-outcome patterns with how often each preceded a trap.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import logging
from typing import Any, Iterable

from outcome_feed import as_values
import stats_engine

logger = logging.getLogger(__name__)

MIN_SEQUENCE = 15
PATTERN_LENGTH = 10

WEIGHTS = {
    "frequency": 0.20,
    "runs": 0.25,
    "cycles": 0.25,
    "entropy": 0.15,
    "pattern_repeat": 0.15,
}


@dataclass
class PatternStats:
    key: str
    count: int = 0
    traps: int = 0

    @property
    def trap_rate(self) -> float:
        return self.traps / self.count if self.count > 0 else 0.0


class PatternTable:
    """
    Exact-sequence counters stored in an index arena.

    Keys map to slot indices; when the table is full the oldest inserted
    key is evicted and its slot reused.
    """

    def __init__(self, max_patterns: int = 512) -> None:
        self.max_patterns = max(1, int(max_patterns))
        self._slots: list[PatternStats | None] = []
        self._index: dict[str, int] = {}
        self._order: deque[int] = deque()
        self._free: list[int] = []

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def get(self, key: str) -> PatternStats | None:
        idx = self._index.get(key)
        return self._slots[idx] if idx is not None else None

    def record(self, key: str, was_trap: bool) -> PatternStats:
        stats = self.get(key)
        if stats is None:
            stats = self._insert(key)
        stats.count += 1
        if was_trap:
            stats.traps += 1
        return stats

    def _insert(self, key: str, count: int = 0, traps: int = 0) -> PatternStats:
        if len(self._index) >= self.max_patterns:
            oldest = self._order.popleft()
            evicted = self._slots[oldest]
            if evicted is not None:
                self._index.pop(evicted.key, None)
            self._slots[oldest] = None
            self._free.append(oldest)
        stats = PatternStats(key=key, count=count, traps=traps)
        if self._free:
            idx = self._free.pop()
            self._slots[idx] = stats
        else:
            idx = len(self._slots)
            self._slots.append(stats)
        self._index[key] = idx
        self._order.append(idx)
        return stats

    def items(self) -> list[PatternStats]:
        """Entries in insertion order."""
        return [s for s in (self._slots[i] for i in self._order) if s is not None]

    def clear(self) -> None:
        self._slots = []
        self._index = {}
        self._order = deque()
        self._free = []

    def snapshot(self) -> list[list[Any]]:
        return [[s.key, {"count": int(s.count), "traps": int(s.traps)}] for s in self.items()]

    def restore(self, payload: Any) -> int:
        """Load [[key, {count, traps}], ...]; malformed rows are skipped."""
        self.clear()
        if not isinstance(payload, list):
            return 0
        for row in payload:
            try:
                key, data = row
                key = str(key)
                count = max(0, int(data.get("count", 0)))
                traps = max(0, min(count, int(data.get("traps", 0))))
            except (TypeError, ValueError, AttributeError):
                continue
            if key in self._index:
                continue
            self._insert(key, count=count, traps=traps)
        return len(self)


@dataclass
class SequenceCheck:
    score: float = 0.0
    is_manipulated: bool = False
    flags: dict[str, bool] = field(default_factory=dict)
    details: dict[str, Any] = field(default_factory=dict)

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "score": round(float(self.score), 6),
            "is_manipulated": bool(self.is_manipulated),
            "flags": {k: bool(v) for k, v in self.flags.items()},
            "details": dict(self.details),
        }


class SequenceManipulationDetector:
    """
    Flags sequences whose combined statistical evidence exceeds *threshold*.
    """

    def __init__(
        self,
        *,
        min_sequence: int = MIN_SEQUENCE,
        threshold: float = 0.60,
        max_patterns: int = 512,
    ) -> None:
        self.min_sequence = max(2, int(min_sequence))
        self.threshold = float(threshold)
        self.patterns = PatternTable(max_patterns=max_patterns)
        self.last_score = 0.0

    def detect(self, sequence: Iterable[Any]) -> SequenceCheck:
        values = as_values(sequence)
        if len(values) < self.min_sequence:
            self.last_score = 0.0
            return SequenceCheck()

        results = stats_engine.run_all(values)
        flags = {name: bool(results[name]["flagged"]) for name in WEIGHTS}
        score = min(1.0, sum(w for name, w in WEIGHTS.items() if flags[name]))
        self.last_score = score

        runs = results["runs"]["detail"]
        details = {
            "chi_square": results["frequency"]["detail"]["chi2"],
            "chi_square_p": results["frequency"]["detail"]["p_value"],
            "runs": runs["runs"],
            "runs_z_score": runs["z_score"],
            "max_consecutive": runs["max_consecutive"],
            "cycles": results["cycles"]["detail"]["periods"],
            "entropy": results["entropy"]["detail"]["entropy"],
            "pattern_repeat": results["pattern_repeat"]["detail"]["repetition_rate"],
        }
        learned = self.patterns.get("".join(values[-PATTERN_LENGTH:]))
        if learned is not None:
            details["learned_trap_rate"] = round(learned.trap_rate, 4)
            details["learned_count"] = learned.count

        return SequenceCheck(
            score=score,
            is_manipulated=score > self.threshold,
            flags=flags,
            details=details,
        )

    def learn(self, sequence: Iterable[Any], was_trap: bool) -> PatternStats | None:
        values = as_values(sequence)
        if len(values) < PATTERN_LENGTH:
            return None
        key = "".join(values[-PATTERN_LENGTH:])
        stats = self.patterns.record(key, bool(was_trap))
        logger.debug("Pattern %s: count=%d traps=%d", key, stats.count, stats.traps)
        return stats

    def pattern_trap_rate(self, sequence: Iterable[Any]) -> float | None:
        values = as_values(sequence)
        if len(values) < PATTERN_LENGTH:
            return None
        stats = self.patterns.get("".join(values[-PATTERN_LENGTH:]))
        return stats.trap_rate if stats is not None else None
