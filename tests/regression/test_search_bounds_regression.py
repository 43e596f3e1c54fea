"""
Search Bounds Regression Tests

These tests prevent interpolation search regressions that would cause:
- Encodes at CRF values outside the configured range
- The same CRF being encoded twice in one search
- Endless searches on noisy, non-monotonic quality curves

Each trial encode costs a full sample encode plus a VMAF pass, so every
wasted probe is expensive.
"""

import random
import unittest
from pathlib import Path

from crf_tuner.core.models import SearchOutcome
from crf_tuner.core.modules.optimization.crf_search import CrfSearch
from tests.fakes import FakeToolkit, linear_scores


class TestSearchBoundsRegression(unittest.TestCase):
    """
    CRITICAL TESTS: Probes stay inside the range and are never repeated.
    """

    def _run(self, scores, target, **kwargs):
        toolkit = FakeToolkit(scores=scores, duration_sec=30.0)
        result = CrfSearch(Path("source.mp4"), toolkit, target_vmaf=target, **kwargs).run()
        return toolkit, result

    def test_targets_across_the_range(self):
        scores = linear_scores(best=99.0, step=1.7)
        for target in (70.0, 75.3, 80.1, 84.9, 90.0, 93.33, 97.2, 99.5):
            with self.subTest(target=target):
                toolkit, result = self._run(scores, target)

                crfs = toolkit.encoded_crfs
                self.assertTrue(all(15 <= crf <= 30 for crf in crfs), crfs)
                self.assertEqual(len(crfs), len(set(crfs)), crfs)
                self.assertIn(result.crf, crfs)

    def test_noisy_curve_terminates(self):
        rng = random.Random(1234)
        for _ in range(25):
            scores = {crf: rng.uniform(60.0, 100.0) for crf in range(15, 31)}
            target = rng.uniform(70.0, 98.0)
            with self.subTest(target=target):
                toolkit, result = self._run(scores, target, tolerance=0.1)

                crfs = toolkit.encoded_crfs
                self.assertLessEqual(len(crfs), 16 + 1)
                self.assertEqual(len(crfs), len(set(crfs)))
                self.assertIn(result.outcome, list(SearchOutcome))

    def test_out_of_range_does_not_interpolate(self):
        toolkit, result = self._run({30: 70.0, 15: 98.0, 20: 85.0}, 99.0)

        self.assertEqual(toolkit.encoded_crfs, [20, 15])
        self.assertEqual((result.crf, result.vmaf), (15, 98.0))

    def test_initial_at_range_edge(self):
        toolkit, result = self._run(linear_scores(), 91.0, crf_initial=15)

        self.assertEqual(toolkit.encoded_crfs[0], 15)
        self.assertEqual(result.crf, 19)

    def test_single_crf_range(self):
        toolkit, result = self._run({22: 80.0}, 90.0, crf_initial=22, crf_min=22, crf_max=22)

        self.assertEqual(toolkit.encoded_crfs, [22])
        self.assertEqual(result.outcome, SearchOutcome.OUT_OF_RANGE)


if __name__ == '__main__':
    unittest.main(verbosity=2)
