"""
Geometry primitives and distance metrics for pymapmatcher.

This module defines the immutable Point value type shared by every component
and the pluggable distance calculators consumed by the trajectory simplifier
and by path summaries:

- EuclideanCalculator: planar coordinates (projected metres or any Cartesian unit)
- GeodeticCalculator: WGS84 longitude/latitude, distances in metres

Both calculators can be called directly as a cross-track metric
``calculator(segment_start, segment_end, point)``, which is the signature the
simplifier expects.
"""

import math
from typing import NamedTuple, Optional, Any

from pyproj import Geod
from shapely.geometry import LineString, Point as ShapelyPoint


class Point(NamedTuple):
    """
    Immutable 2D coordinate, optionally carrying a timestamp.

    For geodetic data ``x`` is the longitude and ``y`` the latitude, both in
    WGS84 decimal degrees.
    """

    x: float
    y: float
    timestamp: Optional[Any] = None


class EuclideanCalculator:
    """
    Planar distance metric.

    Distances are returned in the unit of the coordinates, so projected
    trajectories (e.g. AEQD metres) give metric tolerances.
    """

    def distance(self, start: Point, end: Point) -> float:
        return math.hypot(start.x - end.x, start.y - end.y)

    def segment_distance(self, segment_start: Point, segment_end: Point, point: Point) -> float:
        """
        Shortest distance from ``point`` to the segment ``segment_start``-``segment_end``.

        A degenerate segment (both ends equal) collapses to the point-to-point distance.
        """
        if segment_start.x == segment_end.x and segment_start.y == segment_end.y:
            return self.distance(segment_start, point)

        segment = LineString([(segment_start.x, segment_start.y), (segment_end.x, segment_end.y)])
        return float(segment.distance(ShapelyPoint(point.x, point.y)))

    def __call__(self, segment_start: Point, segment_end: Point, point: Point) -> float:
        return self.segment_distance(segment_start, segment_end, point)


# Mean Earth radius (IUGG), used for the along/cross-track angles
_EARTH_RADIUS_M = 6_371_008.8


class GeodeticCalculator:
    """
    WGS84 distance metric for longitude/latitude points.

    Point-to-point distances are geodesic (pyproj ``Geod.inv``). The cross-track
    distance to a segment takes the geodesic azimuths and distance from the
    segment start, then resolves the along-track and cross-track components on
    a sphere of mean Earth radius. When the foot of the perpendicular falls
    outside the segment the distance to the nearer endpoint is used.

    Parameters
    ----------
    ellps : str, default="WGS84"
        Ellipsoid used for geodesic distances.
    """

    def __init__(self, ellps: str = "WGS84"):
        self._geod = Geod(ellps=ellps)

    def distance(self, start: Point, end: Point) -> float:
        # Geod.inv returns (forward azimuth, back azimuth, distance in metres)
        _, _, dist = self._geod.inv(start.x, start.y, end.x, end.y)
        return float(dist)

    def segment_distance(self, segment_start: Point, segment_end: Point, point: Point) -> float:
        if segment_start.x == segment_end.x and segment_start.y == segment_end.y:
            return self.distance(segment_start, point)

        az12, _, d12 = self._geod.inv(segment_start.x, segment_start.y, segment_end.x, segment_end.y)
        az13, _, d13 = self._geod.inv(segment_start.x, segment_start.y, point.x, point.y)

        theta = math.radians(az13 - az12)
        if math.cos(theta) <= 0.0:
            # behind the segment start
            return float(d13)

        delta13 = d13 / _EARTH_RADIUS_M
        cross = math.asin(max(-1.0, min(1.0, math.sin(delta13) * math.sin(theta))))
        along = math.acos(max(-1.0, min(1.0, math.cos(delta13) / math.cos(cross))))

        if along * _EARTH_RADIUS_M > d12:
            return self.distance(segment_end, point)
        return abs(cross) * _EARTH_RADIUS_M

    def __call__(self, segment_start: Point, segment_end: Point, point: Point) -> float:
        return self.segment_distance(segment_start, segment_end, point)
