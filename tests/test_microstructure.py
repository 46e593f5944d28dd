import unittest

from microstructure import (
    TIER_AGGRESSIVE_BAIT,
    TIER_MANIPULATION,
    TIER_NORMAL,
    MicrostructureAnalyzer,
    spoofing_tier,
)
from outcome_feed import InvalidTradeIntent


def _play(analyzer, trades):
    for direction, stake, result in trades:
        analyzer.record_trade(direction, stake, timestamp=1.0)
        analyzer.record_result(result, recent_sequence="ABAB")


class MicrostructureTests(unittest.TestCase):
    def test_big_losing_stakes_are_aggressive_bait(self):
        analyzer = MicrostructureAnalyzer()
        _play(analyzer, [("A", 10, "A")] * 3 + [("A", 30, "B")] * 7)

        out = analyzer.detect_spoofing()
        self.assertTrue(out.detected)
        self.assertEqual(out.tier, TIER_AGGRESSIVE_BAIT)
        self.assertEqual(out.confidence, 1.0)
        self.assertAlmostEqual(out.trap_rate, 0.7)
        self.assertEqual(out.big_trap_rate, 1.0)
        self.assertTrue(out.consistent_trap)
        self.assertTrue(out.bait_pattern)
        self.assertEqual(out.consecutive_losses, 7)
        self.assertEqual(len(analyzer.trap_patterns), 7)
        self.assertEqual(analyzer.trap_patterns[-1]["recent_sequence"], "ABAB")

    def test_needs_five_completed_trades(self):
        analyzer = MicrostructureAnalyzer()
        _play(analyzer, [("A", 30, "B")] * 4)
        analyzer.record_trade("A", 30)
        out = analyzer.detect_spoofing()
        self.assertFalse(out.detected)
        self.assertEqual(out.confidence, 0.0)

    def test_mostly_winning_trades_are_normal(self):
        analyzer = MicrostructureAnalyzer()
        _play(analyzer, [("B", 10, "B")] * 8 + [("B", 10, "A")] * 2)
        out = analyzer.detect_spoofing()
        self.assertFalse(out.detected)
        self.assertEqual(out.tier, TIER_NORMAL)

    def test_result_without_pending_trade_is_ignored(self):
        analyzer = MicrostructureAnalyzer()
        self.assertIsNone(analyzer.record_result("A"))
        analyzer.record_trade("A", 5)
        self.assertEqual(analyzer.record_result("A").result, "A")
        self.assertIsNone(analyzer.record_result("B"))

    def test_invalid_trades_are_rejected(self):
        analyzer = MicrostructureAnalyzer()
        with self.assertRaises(InvalidTradeIntent):
            analyzer.record_trade("A", -5)
        with self.assertRaises(InvalidTradeIntent):
            analyzer.record_trade("up", 5)
        self.assertEqual(len(analyzer.trades), 0)

    def test_order_flow_imbalance(self):
        analyzer = MicrostructureAnalyzer()
        analyzer.record_trade("A", 30)
        analyzer.record_trade("B", 10)
        flow = analyzer.order_flow_imbalance()
        self.assertAlmostEqual(flow["imbalance"], 0.5)
        self.assertEqual(flow["signal"], "BUY_BIAS")
        self.assertEqual(flow["ratio"], 3.0)

    def test_imbalance_trend(self):
        analyzer = MicrostructureAnalyzer()
        self.assertEqual(analyzer.imbalance_trend(), "INSUFFICIENT")
        for direction in "BBBAAA":
            analyzer.record_trade(direction, 1)
        self.assertEqual(analyzer.imbalance_trend(), "INCREASING_BUY")
        analyzer.reset()
        self.assertEqual(len(analyzer.trades), 0)
        self.assertEqual(analyzer.imbalance, 0.0)

    def test_tiers(self):
        self.assertEqual(spoofing_tier(0.85), TIER_AGGRESSIVE_BAIT)
        self.assertEqual(spoofing_tier(0.70), TIER_MANIPULATION)
        self.assertEqual(spoofing_tier(0.60), TIER_NORMAL)


if __name__ == "__main__":
    unittest.main()
