from __future__ import annotations

import math
import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from flowscope.geometry import (
    arrow_head,
    box_contains,
    dash_segments,
    identity_affine,
    invert_affine,
    layer_curve,
    mul_affine,
    ray_box_exit,
    viewport_affine,
)


class AffineTests(unittest.TestCase):
    def test_viewport_inverse_composes_to_identity(self) -> None:
        m = viewport_affine(2.5, (10.0, -4.0))
        inv = invert_affine(m)
        for got, want in zip(mul_affine(m, inv), identity_affine()):
            self.assertAlmostEqual(got, want)

    def test_degenerate_scale_has_no_inverse(self) -> None:
        self.assertIsNone(invert_affine(viewport_affine(0.0, (1.0, 1.0))))


class CurveTests(unittest.TestCase):
    def test_layer_curve_passes_through_midpoint(self) -> None:
        points = layer_curve((0.0, 0.0), (100.0, 200.0), steps=4)
        self.assertEqual(points[0], (0.0, 0.0))
        self.assertEqual(points[-1], (100.0, 200.0))
        self.assertIn((50.0, 100.0), points)
        self.assertEqual(len(points), 9)

    def test_dash_segments_alternate(self) -> None:
        runs = dash_segments([(0.0, 0.0), (20.0, 0.0)], dash=5.0, gap=5.0)
        self.assertEqual(len(runs), 2)
        self.assertAlmostEqual(runs[0][-1][0], 5.0)
        self.assertAlmostEqual(runs[1][0][0], 10.0)

    def test_arrow_head_points_back_along_the_edge(self) -> None:
        tip, left, right = arrow_head((10.0, 10.0), (10.0, 0.0), length=10.0)
        self.assertEqual(tip, (10.0, 10.0))
        self.assertLess(left[1], 10.0)
        self.assertLess(right[1], 10.0)
        self.assertAlmostEqual(math.hypot(left[0] - 10.0, left[1] - 10.0), 10.0)

    def test_ray_box_exit(self) -> None:
        box = (-70.0, -30.0, 70.0, 30.0)
        cases = [
            ((200.0, 0.0), (70.0, 0.0)),
            ((0.0, -100.0), (0.0, -30.0)),
            ((140.0, 140.0), (30.0, 30.0)),
            ((10.0, 5.0), (10.0, 5.0)),
        ]
        for toward, want in cases:
            with self.subTest(toward=toward):
                got = ray_box_exit((0.0, 0.0), toward, box)
                self.assertAlmostEqual(got[0], want[0])
                self.assertAlmostEqual(got[1], want[1])
        self.assertTrue(box_contains(box, (10.0, 5.0)))


if __name__ == "__main__":
    unittest.main()
