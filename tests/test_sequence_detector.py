import unittest

from sequence_detector import PatternTable, SequenceManipulationDetector


class SequenceDetectorTests(unittest.TestCase):
    def test_long_streak_is_manipulation(self):
        detector = SequenceManipulationDetector()
        out = detector.detect("AAAAAAAAAAABABA")

        self.assertTrue(out.flags["runs"])
        self.assertTrue(out.flags["frequency"])
        self.assertTrue(out.flags["cycles"])
        self.assertTrue(out.flags["entropy"])
        self.assertFalse(out.flags["pattern_repeat"])
        self.assertAlmostEqual(out.score, 0.85, places=9)
        self.assertTrue(out.is_manipulated)
        self.assertEqual(out.details["max_consecutive"], 11)

    def test_alternating_feed_fires_some_detectors(self):
        detector = SequenceManipulationDetector()
        out = detector.detect("AB" * 10)

        self.assertFalse(out.flags["frequency"])
        self.assertTrue(out.flags["runs"])
        self.assertTrue(out.flags["cycles"])
        self.assertFalse(out.flags["entropy"])
        self.assertTrue(out.flags["pattern_repeat"])
        self.assertEqual(out.details["cycles"][0], {"period": 2, "strength": 1.0})
        self.assertAlmostEqual(out.details["entropy"], 1.0, places=6)
        self.assertAlmostEqual(out.score, 0.65, places=9)

    def test_short_sequences_are_neutral(self):
        detector = SequenceManipulationDetector()
        for n in range(15):
            out = detector.detect("A" * n)
            self.assertEqual(out.score, 0.0)
            self.assertFalse(out.is_manipulated)
            self.assertEqual(out.flags, {})

    def test_learn_needs_ten_outcomes(self):
        detector = SequenceManipulationDetector()
        self.assertIsNone(detector.learn("ABABABABA", True))
        self.assertIsNone(detector.pattern_trap_rate("ABABABABA"))

        detector.learn("BABABABABA", True)
        detector.learn("ABABABABABA", False)
        self.assertAlmostEqual(detector.pattern_trap_rate("ABABABABABA"), 0.5)

    def test_learned_rate_is_reported_not_scored(self):
        detector = SequenceManipulationDetector()
        seq = "ABBABAABBABAABBAB"
        before = detector.detect(seq).score
        for _ in range(5):
            detector.learn(seq, True)
        out = detector.detect(seq)
        self.assertEqual(out.score, before)
        self.assertEqual(out.details["learned_trap_rate"], 1.0)
        self.assertEqual(out.details["learned_count"], 5)


class PatternTableTests(unittest.TestCase):
    def test_oldest_pattern_is_evicted(self):
        table = PatternTable(max_patterns=2)
        table.record("a", True)
        table.record("b", False)
        table.record("a", False)
        table.record("c", True)

        self.assertEqual(len(table), 2)
        self.assertNotIn("a", table)
        self.assertEqual([s.key for s in table.items()], ["b", "c"])

        table.record("d", False)
        self.assertEqual([s.key for s in table.items()], ["c", "d"])

    def test_snapshot_restore_skips_malformed_rows(self):
        table = PatternTable()
        table.record("AB", True)
        table.record("AB", False)
        snap = table.snapshot()
        self.assertEqual(snap, [["AB", {"count": 2, "traps": 1}]])

        other = PatternTable()
        restored = other.restore(snap + [["BB", {"count": 1, "traps": 9}], "junk", [1]])
        self.assertEqual(restored, 2)
        self.assertAlmostEqual(other.get("AB").trap_rate, 0.5)
        self.assertEqual(other.get("BB").traps, 1)
        self.assertEqual(other.restore({"not": "a list"}), 0)


if __name__ == "__main__":
    unittest.main()
