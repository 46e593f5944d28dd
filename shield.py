"""
shield.py

Adversarial shield: the decision core between the outcome feed and the
operator's trades.

Every proposed action is checked by four detectors (sequence statistics,
action tempo, trade microstructure, contextual window anomaly). Their votes
become a confidence score which, against an adaptive threshold, yields one
of PROCEED / INVERT / BLOCK / STANDBY.

States:
    ACTIVE   -- normal operation
    STANDBY  -- every check answers STANDBY until a confirmed manual reset

Persistence:
    ShieldState is written through to the store after every mutating call
    and restored by ShieldOrchestrator.load_or_default(). Snapshots older
    than SHIELD_STATE_MAX_AGE_SEC are discarded.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
import math
import time
from typing import Any, Callable, Literal

import config
from anomaly_labeler import AnomalyLabeler
from microstructure import MicrostructureAnalyzer
from ensemble import MajorityModel, PredictionEnsemble
from outcome_feed import OutcomeFeed, opposite, parse_direction, parse_trade_intent
from regime_classifier import RegimeClassifier, RegimeReading
from sequence_detector import SequenceManipulationDetector
from shield_store import MemoryStore, StateStore, build_store
from tempo_detector import TempoDetector

logger = logging.getLogger(__name__)

Recommendation = Literal["PROCEED", "INVERT", "BLOCK", "STANDBY"]

STATE_VERSION = 1
DETECTORS = ("anomaly", "sequence", "tempo", "microstructure")


def _clamp(value: float, lo: float, hi: float) -> float:
    low = min(float(lo), float(hi))
    high = max(float(lo), float(hi))
    return max(low, min(float(value), high))


def _safe_float(value: Any, default: float = 0.0) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return float(default)
    if not math.isfinite(out):
        return float(default)
    return out


def _safe_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _jsonable(value: Any) -> Any:
    """Round-trip through JSON so persisted trigger details never break a save."""
    return json.loads(json.dumps(value, default=str))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ShieldConfig:
    state_key: str = "adversarial_shield_state"
    state_max_age_sec: float = 7 * 24 * 3600.0
    initial_threshold: float = 0.60
    threshold_min: float = 0.45
    threshold_max: float = 0.75
    standby_confidence: float = 0.80
    standby_min_traps: int = 2
    inversion_success_min: float = 0.55
    inversion_min_samples: int = 5
    inversion_window: int = 10
    inversion_history_max: int = 20
    standby_history_max: int = 10
    reset_threshold_bump: float = 0.05
    labeler_window: int = 10
    recent_decisions_max: int = 30
    feed_window: int = 50
    big_stake: float = 20.0
    ensemble_temperature: float = 1.5
    crisis_vol_threshold: float = 40.0


def build_config() -> ShieldConfig:
    """ShieldConfig from the environment-driven values in config.py."""
    return ShieldConfig(
        state_key=config.SHIELD_STATE_KEY,
        state_max_age_sec=config.SHIELD_STATE_MAX_AGE_SEC,
        initial_threshold=config.SHIELD_INITIAL_THRESHOLD,
        threshold_min=config.SHIELD_THRESHOLD_MIN,
        threshold_max=config.SHIELD_THRESHOLD_MAX,
        standby_confidence=config.SHIELD_STANDBY_CONFIDENCE,
        inversion_success_min=config.SHIELD_INVERSION_SUCCESS_MIN,
        reset_threshold_bump=config.SHIELD_RESET_THRESHOLD_BUMP,
        feed_window=config.SHIELD_FEED_WINDOW,
        big_stake=config.SHIELD_BIG_STAKE,
        ensemble_temperature=config.SHIELD_ENSEMBLE_TEMPERATURE,
        crisis_vol_threshold=config.SHIELD_CRISIS_VOL_THRESHOLD,
    )


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

@dataclass
class ShieldState:
    """Serializable shield state (everything that survives a restart)."""
    adaptive_threshold: float = 0.60
    inversion_history: deque = field(default_factory=lambda: deque(maxlen=20))
    consecutive_traps: int = 0
    total_checks: int = 0
    total_traps_detected: int = 0
    total_inversions: int = 0
    successful_inversions: int = 0
    is_standby: bool = False
    requires_manual_reset: bool = False
    last_trigger: dict | None = None
    standby_history: deque = field(default_factory=lambda: deque(maxlen=10))
    learned_patterns: list = field(default_factory=list)
    regime: dict = field(default_factory=dict)
    saved_at: float = 0.0

    @classmethod
    def defaults(cls, cfg: ShieldConfig) -> "ShieldState":
        return cls(
            adaptive_threshold=_clamp(cfg.initial_threshold, cfg.threshold_min, cfg.threshold_max),
            inversion_history=deque(maxlen=cfg.inversion_history_max),
            standby_history=deque(maxlen=cfg.standby_history_max),
        )

    def to_snapshot(self) -> dict:
        return {
            "version": STATE_VERSION,
            "saved_at": float(self.saved_at),
            "adaptive_threshold": float(self.adaptive_threshold),
            "inversion_history": [bool(x) for x in self.inversion_history],
            "consecutive_traps": int(self.consecutive_traps),
            "total_checks": int(self.total_checks),
            "total_traps_detected": int(self.total_traps_detected),
            "total_inversions": int(self.total_inversions),
            "successful_inversions": int(self.successful_inversions),
            "is_standby": bool(self.is_standby),
            "requires_manual_reset": bool(self.requires_manual_reset),
            "last_trigger": self.last_trigger,
            "standby_history": list(self.standby_history),
            "learned_patterns": list(self.learned_patterns),
            "regime": dict(self.regime),
        }

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Any,
        cfg: ShieldConfig,
        now: float,
    ) -> "ShieldState | None":
        """
        Rebuild state from a stored snapshot.
        Returns None for a snapshot that is malformed, from another version,
        or older than cfg.state_max_age_sec.
        """
        if not isinstance(snapshot, dict):
            return None
        if snapshot.get("version") != STATE_VERSION:
            logger.warning("Shield state version %r != %d -- ignoring",
                           snapshot.get("version"), STATE_VERSION)
            return None
        saved_at = _safe_float(snapshot.get("saved_at"), 0.0)
        age = float(now) - saved_at
        if saved_at <= 0.0 or age > cfg.state_max_age_sec:
            logger.info("Shield state is %.0fh old -- ignoring", max(0.0, age) / 3600.0)
            return None

        history_raw = snapshot.get("inversion_history")
        standby_raw = snapshot.get("standby_history")
        if not isinstance(history_raw, list):
            history_raw = []
        if not isinstance(standby_raw, list):
            standby_raw = []
        trigger = snapshot.get("last_trigger")
        patterns = snapshot.get("learned_patterns")
        regime = snapshot.get("regime")
        return cls(
            adaptive_threshold=_clamp(
                _safe_float(snapshot.get("adaptive_threshold"), cfg.initial_threshold),
                cfg.threshold_min, cfg.threshold_max,
            ),
            inversion_history=deque(
                (bool(x) for x in history_raw),
                maxlen=cfg.inversion_history_max,
            ),
            consecutive_traps=_safe_count(snapshot.get("consecutive_traps")),
            total_checks=_safe_count(snapshot.get("total_checks")),
            total_traps_detected=_safe_count(snapshot.get("total_traps_detected")),
            total_inversions=_safe_count(snapshot.get("total_inversions")),
            successful_inversions=_safe_count(snapshot.get("successful_inversions")),
            is_standby=bool(snapshot.get("is_standby", False)),
            requires_manual_reset=bool(snapshot.get("requires_manual_reset", False)),
            last_trigger=trigger if isinstance(trigger, dict) else None,
            standby_history=deque(
                (x for x in standby_raw if isinstance(x, dict)),
                maxlen=cfg.standby_history_max,
            ),
            learned_patterns=patterns if isinstance(patterns, list) else [],
            regime=regime if isinstance(regime, dict) else {},
            saved_at=saved_at,
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ShieldDecision:
    recommendation: Recommendation
    final_direction: str | None
    original_direction: str
    confidence: float
    votes: dict[str, int]
    consecutive_traps: int
    adaptive_threshold: float
    reason: str
    can_proceed: bool
    was_inverted: bool = False
    is_standby: bool = False
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    @property
    def is_adversarial(self) -> bool:
        return self.is_standby or self.confidence >= self.adaptive_threshold

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "recommendation": self.recommendation,
            "final_direction": self.final_direction,
            "original_direction": self.original_direction,
            "confidence": round(float(self.confidence), 6),
            "votes": dict(self.votes),
            "consecutive_traps": int(self.consecutive_traps),
            "adaptive_threshold": round(float(self.adaptive_threshold), 6),
            "reason": self.reason,
            "can_proceed": bool(self.can_proceed),
            "was_inverted": bool(self.was_inverted),
            "is_standby": bool(self.is_standby),
            "is_adversarial": bool(self.is_adversarial),
            "details": self.details,
            "timestamp": float(self.timestamp),
        }


@dataclass
class ResetResult:
    success: bool
    message: str
    already_active: bool = False
    needs_confirmation: bool = False
    previous_trigger: dict | None = None
    new_threshold: float | None = None
    timestamp: float = 0.0

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "success": bool(self.success),
            "message": self.message,
            "already_active": bool(self.already_active),
            "needs_confirmation": bool(self.needs_confirmation),
            "previous_trigger": self.previous_trigger,
            "new_threshold": self.new_threshold,
            "timestamp": float(self.timestamp),
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ShieldOrchestrator:
    """
    Usage:
        shield = ShieldOrchestrator.load_or_default(feed=feed)
        decision = shield.check("A")
        ... execute decision.final_direction, observe outcome ...
        feed.append(outcome)
        shield.learn_result("A", outcome, decision.was_inverted)
    """

    def __init__(
        self,
        *,
        cfg: ShieldConfig | None = None,
        store: StateStore | None = None,
        feed: OutcomeFeed | None = None,
        state: ShieldState | None = None,
        sequence_detector: SequenceManipulationDetector | None = None,
        tempo_detector: TempoDetector | None = None,
        microstructure: MicrostructureAnalyzer | None = None,
        labeler: AnomalyLabeler | None = None,
        ensemble: PredictionEnsemble | None = None,
        regime: RegimeClassifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cfg = cfg or ShieldConfig()
        self.store = store if store is not None else MemoryStore()
        self.feed = feed if feed is not None else OutcomeFeed(maxlen=self.cfg.feed_window)
        self.sequence = sequence_detector or SequenceManipulationDetector()
        self.tempo = tempo_detector or TempoDetector()
        self.microstructure = microstructure or MicrostructureAnalyzer(big_stake=self.cfg.big_stake)
        self.labeler = labeler or AnomalyLabeler()
        self.ensemble = ensemble
        self.regime = regime
        self.clock = clock
        self.state = state or ShieldState.defaults(self.cfg)
        if self.state.learned_patterns:
            restored = self.sequence.patterns.restore(self.state.learned_patterns)
            logger.info("Shield: %d learned patterns restored", restored)
        if self.regime is not None and self.state.regime:
            self.regime.restore_state(self.state.regime)
        self._recent: deque[dict] = deque(maxlen=self.cfg.recent_decisions_max)

    @classmethod
    def load_or_default(
        cls,
        store: StateStore | None = None,
        *,
        cfg: ShieldConfig | None = None,
        **kwargs: Any,
    ) -> "ShieldOrchestrator":
        """
        Restore the persisted state when fresh enough, else start clean.

        Unless given, the advisory ensemble (one majority model) and the
        regime classifier are built from *cfg*.
        """
        cfg = cfg or build_config()
        if "ensemble" not in kwargs:
            ensemble = PredictionEnsemble(temperature=cfg.ensemble_temperature)
            ensemble.add_model("majority", MajorityModel())
            kwargs["ensemble"] = ensemble
        kwargs.setdefault("regime", RegimeClassifier({"crisis_vol_threshold": cfg.crisis_vol_threshold}))
        store = store if store is not None else build_store()
        clock = kwargs.get("clock", time.time)
        state = ShieldState.from_snapshot(store.load(cfg.state_key), cfg, clock())
        if state is None:
            logger.info("Shield: no usable saved state, starting fresh")
        else:
            logger.info(
                "Shield: state restored -- inversions=%d threshold=%.3f standby=%s",
                len(state.inversion_history), state.adaptive_threshold,
                "YES" if state.is_standby else "no",
            )
            if state.is_standby:
                logger.warning("Shield: restored in STANDBY -- manual reset required")
        return cls(cfg=cfg, store=store, state=state, **kwargs)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _now(self, now_ts: float | None = None) -> float:
        return float(now_ts if now_ts is not None else self.clock())

    def _save_state(self, now: float | None = None) -> bool:
        st = self.state
        st.saved_at = self._now(now)
        st.learned_patterns = self.sequence.patterns.snapshot()
        st.regime = self.regime.snapshot_state() if self.regime is not None else {}
        try:
            ok = self.store.save(self.cfg.state_key, st.to_snapshot())
        except Exception as e:
            logger.error("Shield: error saving state: %s", e)
            return False
        if not ok:
            logger.error("Shield: state save failed (continuing in memory)")
        else:
            logger.debug(
                "Shield: state saved -- inversions=%d traps=%d threshold=%.3f standby=%s",
                len(st.inversion_history), st.consecutive_traps,
                st.adaptive_threshold, st.is_standby,
            )
        return ok

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def inversion_success_rate(self) -> float:
        history = list(self.state.inversion_history)
        if len(history) < self.cfg.inversion_min_samples:
            return 0.5
        recent = history[-self.cfg.inversion_window:]
        return sum(1 for x in recent if x) / len(recent)

    def _update_adaptive_threshold(self) -> None:
        old = self.state.adaptive_threshold
        success = self.inversion_success_rate()
        self.state.adaptive_threshold = _clamp(
            0.50 + 0.20 * (1.0 - success), self.cfg.threshold_min, self.cfg.threshold_max,
        )
        logger.info("Shield: adaptive threshold %.3f -> %.3f", old, self.state.adaptive_threshold)

    def _collect_votes(self) -> tuple[dict[str, int], dict[str, Any]]:
        votes = {name: 0 for name in DETECTORS}
        details: dict[str, Any] = {}

        window = self.feed.window(self.cfg.labeler_window)
        if len(window) >= self.cfg.labeler_window:
            features = self.labeler.extract_features(window)
            if self.labeler.is_anomaly(features):
                votes["anomaly"] = 1
                details["anomaly"] = features.to_dict()

        seq = self.sequence.detect(self.feed.window())
        if seq.is_manipulated:
            votes["sequence"] = 1
            details["sequence"] = seq.to_status_dict()

        tempo = self.tempo.check()
        if tempo.is_suspicious:
            votes["tempo"] = 1
            details["tempo"] = tempo.to_status_dict()

        spoof = self.microstructure.detect_spoofing()
        if spoof.detected:
            votes["microstructure"] = 1
            details["microstructure"] = spoof.to_status_dict()

        return votes, details

    def _advisory_context(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.ensemble is not None and self.ensemble.models:
            out["ensemble"] = self.ensemble.predict(self.feed.window()).to_status_dict()
        if self.regime is not None and self.regime.volatility_history:
            out["regime"] = self.regime.current.to_dict()
        return out

    def _should_enter_standby(self, confidence: float) -> bool:
        # Uses the trap counter as it stood before this check.
        traps = self.state.consecutive_traps
        threshold = self.state.adaptive_threshold
        return (
            (confidence >= threshold and traps >= self.cfg.standby_min_traps)
            or (confidence >= self.cfg.standby_confidence and traps >= 1)
        )

    def _remember(self, decision: ShieldDecision) -> None:
        self._recent.append({
            "original_direction": decision.original_direction,
            "final_direction": decision.final_direction,
            "recommendation": decision.recommendation,
            "confidence": decision.confidence,
            "votes": dict(decision.votes),
            "timestamp": decision.timestamp,
        })

    # ------------------------------------------------------------------
    # Standby
    # ------------------------------------------------------------------

    def _enter_standby(self, reason: str, details: dict, now: float) -> dict:
        st = self.state
        st.is_standby = True
        st.requires_manual_reset = True
        trigger = _jsonable({
            "reason": reason,
            "details": details,
            "timestamp": now,
            "consecutive_traps_at_trigger": st.consecutive_traps,
            "confidence_at_trigger": details.get("confidence", 0.0),
            "threshold_at_trigger": st.adaptive_threshold,
        })
        st.last_trigger = trigger
        st.standby_history.append(trigger)
        logger.warning(
            "Shield: STANDBY ACTIVATED -- %s (confidence %.0f%%, %d consecutive traps)",
            reason, 100.0 * float(details.get("confidence", 0.0)), st.consecutive_traps,
        )
        self._save_state(now)
        return trigger

    def needs_manual_reset(self) -> bool:
        return self.state.requires_manual_reset or self.state.is_standby

    def get_standby_status(self, now_ts: float | None = None) -> dict[str, Any]:
        st = self.state
        if not st.is_standby:
            return {"is_standby": False, "can_operate": True}
        trigger = st.last_trigger or {}
        triggered_at = _safe_float(trigger.get("timestamp"), 0.0)
        now = self._now(now_ts)
        return {
            "is_standby": True,
            "can_operate": False,
            "requires_manual_reset": st.requires_manual_reset,
            "reason": trigger.get("reason", "unknown"),
            "details": trigger.get("details", {}),
            "triggered_at": triggered_at or None,
            "time_in_standby_sec": max(0.0, now - triggered_at) if triggered_at else 0.0,
            "standby_count": len(st.standby_history),
            "history": list(st.standby_history)[-5:],
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(
        self,
        proposed_direction: str,
        context: dict | None = None,
        now_ts: float | None = None,
    ) -> ShieldDecision:
        direction = parse_direction(proposed_direction)
        now = self._now(now_ts)
        st = self.state
        st.total_checks += 1

        if st.is_standby:
            reason = (st.last_trigger or {}).get("reason", "waiting for manual reset")
            logger.info("Shield: check #%d -- STANDBY active, action blocked", st.total_checks)
            decision = ShieldDecision(
                recommendation="STANDBY",
                final_direction=None,
                original_direction=direction,
                confidence=1.0,
                votes={"standby": 1},
                consecutive_traps=st.consecutive_traps,
                adaptive_threshold=st.adaptive_threshold,
                reason=f"STANDBY: {reason}",
                can_proceed=False,
                is_standby=True,
                details={
                    "standby": True,
                    "reason": reason,
                    "triggered_at": (st.last_trigger or {}).get("timestamp"),
                    "standby_status": self.get_standby_status(now),
                },
                timestamp=now,
            )
            self._save_state(now)
            return decision

        self.tempo.record_action(now)
        votes, details = self._collect_votes()
        confidence = sum(votes.values()) / float(len(votes))
        details.update(self._advisory_context())
        logger.info(
            "Shield: check #%d %s -- votes A=%d S=%d T=%d M=%d confidence=%.0f%%",
            st.total_checks, direction, votes["anomaly"], votes["sequence"],
            votes["tempo"], votes["microstructure"], 100.0 * confidence,
        )

        if self._should_enter_standby(confidence):
            st.total_traps_detected += 1
            st.consecutive_traps += 1
            reason = (f"critical trap ({100.0 * confidence:.0f}% confidence, "
                      f"{st.consecutive_traps} consecutive)")
            trigger = self._enter_standby(reason, {
                "confidence": confidence,
                "votes": votes,
                "consecutive_traps": st.consecutive_traps,
                "context": context or {},
            }, now)
            decision = ShieldDecision(
                recommendation="STANDBY",
                final_direction=None,
                original_direction=direction,
                confidence=confidence,
                votes=votes,
                consecutive_traps=st.consecutive_traps,
                adaptive_threshold=st.adaptive_threshold,
                reason=f"STANDBY: {reason}",
                can_proceed=False,
                is_standby=True,
                details={**details, "trigger": trigger},
                timestamp=now,
            )
            self._remember(decision)
            return decision

        recommendation: Recommendation = "PROCEED"
        final_direction: str | None = direction
        was_inverted = False
        reason = "no sign of a trap"

        if confidence >= st.adaptive_threshold:
            st.total_traps_detected += 1
            st.consecutive_traps += 1
            success = self.inversion_success_rate()
            logger.info(
                "Shield: TRAP detected -- inversion success %.0f%%, consecutive traps %d",
                100.0 * success, st.consecutive_traps,
            )
            if success > self.cfg.inversion_success_min and st.consecutive_traps < self.cfg.standby_min_traps:
                recommendation = "INVERT"
                final_direction = opposite(direction)
                was_inverted = True
                st.total_inversions += 1
                reason = f"trap {100.0 * confidence:.0f}% -- inverting to {final_direction}"
            else:
                recommendation = "BLOCK"
                final_direction = None
                reason = f"trap {100.0 * confidence:.0f}% -- blocked"
        else:
            st.consecutive_traps = max(0, st.consecutive_traps - 1)

        logger.info("Shield: decision %s (%s)", recommendation, reason)
        decision = ShieldDecision(
            recommendation=recommendation,
            final_direction=final_direction,
            original_direction=direction,
            confidence=confidence,
            votes=votes,
            consecutive_traps=st.consecutive_traps,
            adaptive_threshold=st.adaptive_threshold,
            reason=reason,
            can_proceed=recommendation in ("PROCEED", "INVERT"),
            was_inverted=was_inverted,
            details=details,
            timestamp=now,
        )
        self._remember(decision)
        self._save_state(now)
        return decision

    def learn_result(
        self,
        original_direction: str,
        actual_outcome: str,
        was_inverted: bool,
        now_ts: float | None = None,
    ) -> bool:
        """
        Feed a resolved outcome back. Returns False (and learns nothing)
        while in STANDBY.
        """
        original = parse_direction(original_direction)
        actual = parse_direction(actual_outcome)
        st = self.state
        if st.is_standby:
            logger.info("Shield: in STANDBY -- learning postponed until reset")
            return False

        was_trap = original != actual
        self.sequence.learn(self.feed.window(), was_trap)
        self.microstructure.record_result(
            actual, was_inverted=was_inverted, recent_sequence="".join(self.feed.values(5)),
        )

        if was_inverted:
            success = original != actual
            st.inversion_history.append(success)
            if success:
                st.successful_inversions += 1
            logger.info(
                "Shield: inversion %s -- recent success %.2f",
                "SUCCEEDED" if success else "FAILED", self.inversion_success_rate(),
            )
            self._update_adaptive_threshold()

        window = self.feed.window(self.cfg.labeler_window)
        if len(window) >= self.cfg.labeler_window:
            self.labeler.label(window, was_trap)

        if self.ensemble is not None:
            self.ensemble.observe(actual)

        self._save_state(now_ts)
        return True

    def record_trade(self, direction: str, stake: float, now_ts: float | None = None) -> bool:
        """Register a trade intent. Raises InvalidTradeIntent on bad input."""
        direction, stake = parse_trade_intent(direction, stake)
        if self.state.is_standby:
            logger.warning("Shield: trade attempted during STANDBY -- ignored")
            return False
        self.microstructure.record_trade(direction, stake, timestamp=self._now(now_ts))
        return True

    def record_market(
        self,
        volatility: float,
        trend_bias: float = 0.0,
        trend_strength: float = 0.0,
        now_ts: float | None = None,
    ) -> RegimeReading | None:
        """Feed a market tick to the regime classifier (advisory only)."""
        if self.regime is None:
            return None
        now = self._now(now_ts)
        reading = self.regime.classify(volatility, trend_bias, trend_strength, now_ts=now)
        self._save_state(now)
        return reading

    def manual_reset(self, confirmed: bool = False, now_ts: float | None = None) -> ResetResult:
        now = self._now(now_ts)
        st = self.state
        if not self.needs_manual_reset():
            logger.info("Shield: manual reset not needed -- shield active")
            return ResetResult(success=False, message="no active standby",
                               already_active=True, timestamp=now)

        if confirmed is not True:
            logger.warning("Shield: reset requires explicit confirmation")
            return ResetResult(success=False, message="explicit confirmation required",
                               needs_confirmation=True, previous_trigger=st.last_trigger,
                               timestamp=now)

        previous = st.last_trigger
        old_threshold = st.adaptive_threshold
        st.is_standby = False
        st.requires_manual_reset = False
        st.consecutive_traps = 0
        st.adaptive_threshold = min(self.cfg.threshold_max, st.adaptive_threshold + self.cfg.reset_threshold_bump)
        logger.warning(
            "Shield: MANUAL RESET -- reactivated, threshold %.3f -> %.3f",
            old_threshold, st.adaptive_threshold,
        )
        self._save_state(now)
        return ResetResult(success=True, message="shield reactivated",
                           previous_trigger=previous, new_threshold=st.adaptive_threshold,
                           timestamp=now)

    def reset(self) -> None:
        """
        Full wipe: state, detectors and the persisted snapshot.

        The stored record is deleted, not rewritten. The next mutating call
        saves a fresh one; a restart before that starts from defaults.
        """
        logger.warning("Shield: FULL RESET -- clearing all history including standby")
        self.store.delete(self.cfg.state_key)
        self.state = ShieldState.defaults(self.cfg)
        self._recent.clear()
        self.sequence.patterns.clear()
        self.tempo.reset()
        self.microstructure.reset()
        self.labeler.reset()
        if self.regime is not None:
            self.regime = RegimeClassifier(self.regime.cfg)

    def recent_decisions(self) -> list[dict]:
        return list(self._recent)

    def get_stats(self) -> dict[str, Any]:
        st = self.state
        history = list(st.inversion_history)
        flow = self.microstructure.order_flow_imbalance()
        last_save = (
            datetime.fromtimestamp(st.saved_at, tz=timezone.utc).isoformat()
            if st.saved_at > 0 else None
        )
        return {
            "total_checks": st.total_checks,
            "total_traps_detected": st.total_traps_detected,
            "total_inversions": st.total_inversions,
            "successful_inversions": st.successful_inversions,
            "inversion_success_rate": (sum(1 for x in history if x) / len(history)) if history else 0.0,
            "current_threshold": st.adaptive_threshold,
            "consecutive_traps": st.consecutive_traps,
            "inversion_history_length": len(history),
            "operator_bias": flow["signal"],
            "operator_imbalance": flow["imbalance"],
            "imbalance_trend": self.microstructure.imbalance_trend(),
            "tempo_status": "SUSPICIOUS" if self.tempo.check().is_suspicious else "NORMAL",
            "learned_patterns": len(self.sequence.patterns),
            "market_regime": self.regime.current.regime if self.regime is not None else None,
            "is_standby": st.is_standby,
            "requires_manual_reset": st.requires_manual_reset,
            "standby_count": len(st.standby_history),
            "last_standby_reason": (st.last_trigger or {}).get("reason"),
            "last_save": last_save,
        }
