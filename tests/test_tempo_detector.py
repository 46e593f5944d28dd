import unittest

from tempo_detector import TempoDetector


def _feed(detector, intervals, start=1000.0):
    ts = start
    detector.record_action(ts)
    for gap in intervals:
        ts += gap
        detector.record_action(ts)


class TempoDetectorTests(unittest.TestCase):
    def test_needs_five_intervals(self):
        detector = TempoDetector()
        _feed(detector, [1.0] * 4)
        out = detector.check()
        self.assertEqual(out.score, 0.0)
        self.assertFalse(out.is_suspicious)

    def test_metronome_spacing_alone_is_not_suspicious(self):
        detector = TempoDetector()
        _feed(detector, [1.0] * 8)
        out = detector.check()
        self.assertTrue(out.robotic)
        self.assertFalse(out.erratic)
        self.assertFalse(out.too_fast)
        self.assertAlmostEqual(out.score, 0.5)
        self.assertFalse(out.is_suspicious)

    def test_robotic_and_oscillating_is_suspicious(self):
        detector = TempoDetector()
        _feed(detector, [1.0, 1.1] * 5)
        out = detector.check()
        self.assertTrue(out.robotic)
        self.assertTrue(out.erratic)
        self.assertAlmostEqual(out.score, 0.8)
        self.assertTrue(out.is_suspicious)
        self.assertEqual(out.details["pairs"], 8)

    def test_sub_200ms_gap_is_too_fast(self):
        detector = TempoDetector()
        _feed(detector, [0.1, 1.0] * 3)
        out = detector.check()
        self.assertTrue(out.too_fast)
        self.assertFalse(out.robotic)
        self.assertTrue(out.erratic)
        self.assertAlmostEqual(out.score, 0.5)

    def test_history_is_bounded_and_resettable(self):
        detector = TempoDetector()
        _feed(detector, [2.0] * 40)
        self.assertEqual(len(detector.timestamps), 30)
        self.assertEqual(len(detector.intervals), 20)
        detector.reset()
        self.assertEqual(len(detector.timestamps), 0)
        self.assertFalse(detector.check().is_suspicious)


if __name__ == "__main__":
    unittest.main()
