#!/usr/bin/env python3

""" Testing arc angle and length calculations. """

from math import pi, sqrt
import unittest
import loader  # pylint: disable=E0401,W0611
from core.arc_geometry import (arc_angle, arc_length, circumference,
                               dot_product_2d, cross_product_2d)


class TestVectorHelpers(unittest.TestCase):
    """ Small vector helpers. """

    def test_dot_product(self):
        self.assertEqual(dot_product_2d((1, 2), (3, 4)), 11)
        self.assertEqual(dot_product_2d((1, 0), (0, 1)), 0)

    def test_cross_product(self):
        self.assertEqual(cross_product_2d((1, 0), (0, 1)), 1)
        self.assertEqual(cross_product_2d((0, 1), (1, 0)), -1)

    def test_circumference(self):
        self.assertAlmostEqual(circumference(1), 2 * pi)


class TestArcAngle(unittest.TestCase):
    """ Clockwise sweep from start to end around center. """

    def test_semicircle(self):
        self.assertEqual(arc_angle((0, 0), (10, 0), (5, 0)), pi)

    def test_quarter_clockwise(self):
        """ Top of a circle to its right hand side is a quarter turn clockwise. """
        self.assertAlmostEqual(arc_angle((0, 1), (1, 0), (0, 0)), pi / 2)

    def test_three_quarters(self):
        """ Right hand side to top is three quarters of a turn clockwise. """
        self.assertAlmostEqual(arc_angle((1, 0), (0, 1), (0, 0)), 3 * pi / 2)

    def test_full_circle(self):
        self.assertEqual(arc_angle((1, 0), (1, 0), (0, 0)), 2 * pi)

    def test_small_clockwise(self):
        angle = arc_angle((0, 1), (sqrt(0.5), sqrt(0.5)), (0, 0))
        self.assertAlmostEqual(angle, pi / 4)

    def test_range(self):
        """ Always in (0, 2pi]. """
        points = [(1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1)]
        for start in points:
            for end in points:
                angle = arc_angle(start, end, (0, 0))
                self.assertGreater(angle, 0)
                self.assertLessEqual(angle, 2 * pi)


class TestArcLength(unittest.TestCase):
    """ Distance travelled around an arc. """

    def test_semicircle(self):
        self.assertAlmostEqual(arc_length((0, 0), (10, 0), (5, 0)), 5 * pi)
        self.assertAlmostEqual(arc_length((0, 0), (10, 0), (5, 0), clockwise=False), 5 * pi)

    def test_quarter(self):
        self.assertAlmostEqual(arc_length((0, 2), (2, 0), (0, 0)), pi)
        self.assertAlmostEqual(arc_length((0, 2), (2, 0), (0, 0), clockwise=False), 3 * pi)

    def test_full_circle(self):
        self.assertAlmostEqual(arc_length((1, 0), (1, 0), (0, 0)), 2 * pi)
        self.assertAlmostEqual(arc_length((1, 0), (1, 0), (0, 0), clockwise=False), 2 * pi)

    def test_explicit_radius(self):
        self.assertAlmostEqual(arc_length((0, 2), (2, 0), (0, 0), radius=4), 2 * pi)


if __name__ == "__main__":
    unittest.main()
