import unittest

from anomaly_labeler import AnomalyLabeler


class AnomalyLabelerTests(unittest.TestCase):
    def test_features_of_a_mixed_window(self):
        labeler = AnomalyLabeler()
        f = labeler.extract_features("ABBABAABBA")
        self.assertEqual(f.n, 10)
        self.assertAlmostEqual(f.freq_a, 0.5)
        self.assertEqual(f.max_streak, 2)
        self.assertEqual(f.reversals, 6)
        self.assertAlmostEqual(f.volatility, 6 / 9)
        self.assertFalse(labeler.is_anomaly(f))

    def test_one_sided_window_is_anomalous(self):
        labeler = AnomalyLabeler()
        f = labeler.extract_features("A" * 10)
        z = labeler.z_scores(f)
        self.assertAlmostEqual(z["freq_a"], 0.5 / 0.11)
        self.assertTrue(labeler.is_anomaly(f))

    def test_trend_compares_halves(self):
        labeler = AnomalyLabeler()
        f = labeler.extract_features("BBBBBAAAAA")
        self.assertAlmostEqual(f.trend, 1.0)
        self.assertFalse(labeler.is_anomaly(f))

    def test_alternation_is_anomalous_volatility(self):
        labeler = AnomalyLabeler()
        f = labeler.extract_features("AB" * 5)
        self.assertEqual(f.volatility, 1.0)
        self.assertTrue(labeler.is_anomaly(f))

    def test_short_windows_are_neutral(self):
        labeler = AnomalyLabeler()
        self.assertIsNone(labeler.extract_features("A"))
        self.assertFalse(labeler.is_anomaly(None))
        self.assertEqual(labeler.label("A", True), (False, None))
        self.assertEqual(len(labeler.normal_samples), 0)

    def test_label_files_traps_and_normals(self):
        labeler = AnomalyLabeler(max_traps=2)
        for _ in range(3):
            is_trap, _ = labeler.label("A" * 10, True)
            self.assertTrue(is_trap)
        self.assertEqual(len(labeler.trap_samples), 2)

        is_trap, features = labeler.label("A" * 10, False)
        self.assertFalse(is_trap)
        self.assertEqual(features.freq_a, 1.0)
        labeler.label("ABBABAABBA", True)
        self.assertEqual(len(labeler.normal_samples), 2)

        labeler.reset()
        self.assertEqual(len(labeler.trap_samples), 0)
        self.assertEqual(len(labeler.normal_samples), 0)


if __name__ == "__main__":
    unittest.main()
