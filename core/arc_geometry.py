""" Plane geometry for circular arcs in the XY plane.
All angles are in radians. Points are (x, y) pairs. """

from typing import Optional, Sequence
from math import acos, pi, hypot

Point = Sequence[float]


def circumference(radius: float) -> float:
    """ Length of a full circle. """
    return 2 * pi * radius


def dot_product_2d(vec_a: Point, vec_b: Point) -> float:
    """ Dot product of 2 vectors. """
    return vec_a[0] * vec_b[0] + vec_a[1] * vec_b[1]


def cross_product_2d(vec_a: Point, vec_b: Point) -> float:
    """ Z component of the cross product of 2 vectors in the XY plane. """
    return vec_a[0] * vec_b[1] - vec_a[1] * vec_b[0]


def arc_angle(start: Point, end: Point, center: Point) -> float:
    """ Angle swept travelling clockwise around center from start to end.
    Returns:
        A value in (0, 2pi]. Coincident start and end describe a full circle.
    """
    start_vec = (start[0] - center[0], start[1] - center[1])
    end_vec = (end[0] - center[0], end[1] - center[1])

    cross = cross_product_2d(start_vec, end_vec)
    if cross == 0:
        if start_vec[0] == end_vec[0] and start_vec[1] == end_vec[1]:
            return 2 * pi
        if dot_product_2d(start_vec, end_vec) > 0:
            # Same direction but different distance from center.
            return 2 * pi
        return pi

    magnitudes = hypot(*start_vec) * hypot(*end_vec)
    # Clamp rounding error outside acos()'s domain.
    cosine = max(-1.0, min(1.0, dot_product_2d(start_vec, end_vec) / magnitudes))
    between = acos(cosine)
    if cross < 0:
        # End lies clockwise of start.
        return between
    return 2 * pi - between


def arc_length(start: Point,
               end: Point,
               center: Point,
               clockwise: bool = True,
               radius: Optional[float] = None) -> float:
    """ Distance travelled around center from start to end.
    Args:
        clockwise: Direction of travel. False for counter clockwise.
        radius: Radius of the arc. Defaults to the distance from center to start.
    """
    if radius is None:
        radius = hypot(start[0] - center[0], start[1] - center[1])
    full_circle = circumference(radius)
    if start[0] == end[0] and start[1] == end[1]:
        return full_circle

    clockwise_length = arc_angle(start, end, center) / (2 * pi) * full_circle
    if clockwise:
        return clockwise_length
    return full_circle - clockwise_length
