import io
import json
import os
import tempfile
import time
import unittest

import shield_cli
from outcome_feed import InvalidTradeIntent
from shield import STATE_VERSION, ShieldConfig, ShieldOrchestrator
from regime_classifier import RegimeClassifier
from shield_store import JsonFileStore, MemoryStore


def _run(*argv):
    out = io.StringIO()
    code = shield_cli.main(list(argv), out=out)
    return code, out.getvalue()


class ShieldCliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = self._tmp.name
        self.key = ShieldConfig().state_key

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _seed_standby(self):
        JsonFileStore(self.dir).save(self.key, {
            "version": STATE_VERSION,
            "saved_at": time.time(),
            "adaptive_threshold": 0.6,
            "consecutive_traps": 2,
            "total_checks": 7,
            "is_standby": True,
            "requires_manual_reset": True,
            "last_trigger": {"reason": "critical trap", "timestamp": time.time()},
        })

    def test_status_prints_stats(self):
        code, text = _run("--state-dir", self.dir, "status")
        self.assertEqual(code, 0)
        payload = json.loads(text)
        self.assertEqual(payload["stats"]["total_checks"], 0)
        self.assertFalse(payload["standby"]["is_standby"])

    def test_reset_requires_confirmation(self):
        self._seed_standby()
        code, text = _run("--state-dir", self.dir, "reset")
        self.assertEqual(code, 2)
        self.assertTrue(json.loads(text)["needs_confirmation"])

        code, text = _run("--state-dir", self.dir, "reset", "--confirm")
        self.assertEqual(code, 0)
        result = json.loads(text)
        self.assertTrue(result["success"])
        self.assertAlmostEqual(result["new_threshold"], 0.65)

        code, text = _run("--state-dir", self.dir, "status")
        self.assertFalse(json.loads(text)["stats"]["is_standby"])

    def test_wipe_removes_state_file(self):
        self._seed_standby()
        path = JsonFileStore(self.dir).path_for(self.key)
        self.assertTrue(os.path.exists(path))
        code, text = _run("--state-dir", self.dir, "wipe")
        self.assertEqual(code, 0)
        self.assertTrue(json.loads(text)["wiped"])
        self.assertFalse(os.path.exists(path))

    def test_replay_file_ephemeral(self):
        events = os.path.join(self.dir, "events.jsonl")
        with open(events, "w", encoding="utf-8") as f:
            f.write('{"type": "outcome", "value": "A"}\n')
            f.write("\n")
            f.write('{"type": "check", "direction": "A"}\n')
            f.write('{"type": "result", "outcome": "B"}\n')
        code, _ = _run("--state-dir", self.dir, "replay", "--ephemeral", events)
        self.assertEqual(code, 0)
        self.assertFalse(os.path.exists(JsonFileStore(self.dir).path_for(self.key)))

    def test_replay_bad_file_exits(self):
        with self.assertRaises(SystemExit):
            _run("--state-dir", self.dir, "replay", os.path.join(self.dir, "missing.jsonl"))


class ReplayEventsTests(unittest.TestCase):
    def _shield(self):
        return ShieldOrchestrator(cfg=ShieldConfig(), store=MemoryStore())

    def test_check_and_result_resolve_a_trade(self):
        shield = self._shield()
        lines = [
            '{"type": "outcome", "value": "A", "ts": 10}',
            '{"type": "outcome", "value": "B", "ts": 11}',
            '{"type": "trade", "direction": "A", "stake": 25, "ts": 12}',
            '{"type": "check", "direction": "A", "ts": 12}',
            '{"type": "result", "outcome": "B", "ts": 13}',
        ]
        decisions = shield_cli.replay_events(shield, lines, io.StringIO())
        self.assertEqual(len(decisions), 1)
        self.assertEqual(decisions[0]["recommendation"], "PROCEED")
        self.assertEqual(shield.feed.values(), ["A", "B", "B"])
        self.assertEqual(shield.microstructure.trades[-1].result, "B")
        self.assertEqual(shield.get_stats()["total_checks"], 1)

    def test_market_events_drive_the_regime(self):
        shield = ShieldOrchestrator(cfg=ShieldConfig(), store=MemoryStore(), regime=RegimeClassifier())
        lines = [
            '{"type": "market", "volatility": 12.0, "ts": 10}',
            '{"type": "market", "volatility": 55.0, "trend_bias": 0.1, "ts": 11}',
        ]
        shield_cli.replay_events(shield, lines, io.StringIO())
        self.assertEqual(list(shield.regime.volatility_history), [12.0, 55.0])
        self.assertEqual(shield.get_stats()["market_regime"], "CRISIS")
        with self.assertRaisesRegex(ValueError, "line 1: bad market event"):
            shield_cli.replay_events(shield, ['{"type": "market"}'], io.StringIO())

    def test_bad_lines_name_their_position(self):
        shield = self._shield()
        with self.assertRaisesRegex(ValueError, "line 2"):
            shield_cli.replay_events(shield, ['{"type": "outcome", "value": "A"}', "{oops"], io.StringIO())
        with self.assertRaisesRegex(ValueError, "unknown event type"):
            shield_cli.replay_events(shield, ['{"type": "dance"}'], io.StringIO())
        with self.assertRaises(InvalidTradeIntent):
            shield_cli.replay_events(shield, ['{"type": "trade", "direction": "A", "stake": -1}'], io.StringIO())


if __name__ == "__main__":
    unittest.main()
