"""
shield_cli.py -- Operator commands for the adversarial shield.

  python shield_cli.py status
  python shield_cli.py reset --confirm
  python shield_cli.py wipe
  python shield_cli.py replay events.jsonl

Replay reads one JSON event per line:
  {"type": "outcome", "value": "A"}
  {"type": "trade", "direction": "A", "stake": 10}
  {"type": "check", "direction": "A"}
  {"type": "result", "outcome": "B"}
  {"type": "market", "volatility": 12.5, "trend_bias": 0.2, "trend_strength": 18}
An optional "ts" (unix seconds) on any event is used as its timestamp.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, TextIO

import config
from outcome_feed import InvalidTradeIntent
from shield import ShieldOrchestrator
from shield_store import MemoryStore, build_store

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Adversarial shield operator commands")
    p.add_argument("--state-dir", default=config.SHIELD_STATE_DIR,
                   help="Directory holding the JSON state file")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Print counters and standby status")

    reset = sub.add_parser("reset", help="Leave STANDBY (manual reset)")
    reset.add_argument("--confirm", action="store_true", default=False,
                       help="Required: confirm the reset")

    sub.add_parser("wipe", help="Delete all shield state and learned patterns")

    replay = sub.add_parser("replay", help="Feed a JSONL event file through the shield")
    replay.add_argument("events", help="Path to the JSONL event file")
    replay.add_argument("--ephemeral", action="store_true", default=False,
                        help="Keep state in memory only (do not touch the state file)")
    return p.parse_args(argv)


def _emit(payload: Any, out: TextIO) -> None:
    out.write(json.dumps(payload, indent=2, default=str) + "\n")


def _load_shield(args: argparse.Namespace, ephemeral: bool = False) -> ShieldOrchestrator:
    store = MemoryStore() if ephemeral else build_store(args.state_dir)
    return ShieldOrchestrator.load_or_default(store)


def cmd_status(args: argparse.Namespace, out: TextIO) -> int:
    shield = _load_shield(args)
    _emit({"stats": shield.get_stats(), "standby": shield.get_standby_status()}, out)
    return 0


def cmd_reset(args: argparse.Namespace, out: TextIO) -> int:
    shield = _load_shield(args)
    result = shield.manual_reset(confirmed=bool(args.confirm))
    _emit(result.to_status_dict(), out)
    if result.needs_confirmation:
        print("reset not applied: pass --confirm", file=sys.stderr)
        return 2
    return 0


def cmd_wipe(args: argparse.Namespace, out: TextIO) -> int:
    shield = _load_shield(args)
    shield.reset()
    _emit({"wiped": True, "state_key": shield.cfg.state_key}, out)
    return 0


def replay_events(shield: ShieldOrchestrator, lines, out: TextIO) -> list[dict]:
    """
    Apply events in order; returns the decisions made by "check" events.
    Raises ValueError (InvalidTradeIntent included) naming the bad line.
    """
    decisions: list[dict] = []
    pending = None
    for lineno, raw in enumerate(lines, start=1):
        raw = raw.strip()
        if not raw or raw.startswith("#"):
            continue
        try:
            event = json.loads(raw)
        except ValueError as e:
            raise ValueError(f"line {lineno}: invalid JSON ({e})") from None
        if not isinstance(event, dict):
            raise ValueError(f"line {lineno}: event must be an object")

        kind = str(event.get("type", "")).lower()
        ts = event.get("ts")
        try:
            if kind == "outcome":
                shield.feed.append(event.get("value"), timestamp=ts)
            elif kind == "trade":
                shield.record_trade(event.get("direction"), event.get("stake"), now_ts=ts)
            elif kind == "check":
                decision = shield.check(event.get("direction"), context=event.get("context"), now_ts=ts)
                pending = decision
                status = decision.to_status_dict()
                decisions.append(status)
                _emit({"line": lineno, "recommendation": status["recommendation"],
                       "final_direction": status["final_direction"],
                       "confidence": status["confidence"], "reason": status["reason"]}, out)
            elif kind == "result":
                outcome = shield.feed.append(event.get("outcome"), timestamp=ts)
                if pending is None:
                    logger.warning("line %d: result with no preceding check", lineno)
                    continue
                shield.learn_result(pending.original_direction, outcome.value,
                                    pending.was_inverted, now_ts=ts)
                pending = None
            elif kind == "market":
                try:
                    shield.record_market(
                        float(event["volatility"]),
                        float(event.get("trend_bias", 0.0)),
                        float(event.get("trend_strength", 0.0)),
                        now_ts=ts,
                    )
                except (KeyError, TypeError) as e:
                    raise ValueError(f"bad market event ({e!r})") from None
            else:
                raise ValueError(f"unknown event type {event.get('type')!r}")
        except InvalidTradeIntent as e:
            raise InvalidTradeIntent(f"line {lineno}: {e}") from e
        except ValueError as e:
            raise ValueError(f"line {lineno}: {e}") from e
    return decisions


def cmd_replay(args: argparse.Namespace, out: TextIO) -> int:
    shield = _load_shield(args, ephemeral=bool(args.ephemeral))
    try:
        with open(args.events, "r", encoding="utf-8") as f:
            decisions = replay_events(shield, f, out)
    except OSError as e:
        raise SystemExit(f"cannot read {args.events}: {e}") from e
    except ValueError as e:
        raise SystemExit(f"replay failed: {e}") from e
    _emit({"decisions": len(decisions), "stats": shield.get_stats()}, out)
    return 0


COMMANDS = {
    "status": cmd_status,
    "reset": cmd_reset,
    "wipe": cmd_wipe,
    "replay": cmd_replay,
}


def main(argv: list[str] | None = None, out: TextIO | None = None) -> int:
    args = parse_args(argv)
    setup_logging()
    config.print_banner()
    return COMMANDS[args.command](args, out or sys.stdout)


if __name__ == "__main__":
    sys.exit(main())
