"""
Trajectory compression module for pymapmatcher.

This module reduces the number of points in a trajectory while preserving its
shape, using the Ramer-Douglas-Peucker algorithm: every discarded point lies
within a distance tolerance of the simplified curve, measured as cross-track
distance to the segment joining its retained neighbours.

The divide-and-conquer step runs on an explicit work stack rather than
recursion, so long trajectories cannot exhaust the interpreter stack.
"""

from typing import Callable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
import polars as pl

from pymapmatcher.utilities.dataframes import to_pandas_preserve, from_pandas_preserve, require_columns
from pymapmatcher.utilities.geometry import Point, EuclideanCalculator
from pymapmatcher.utilities.projection import project_trajectory

DistanceMetric = Callable[[Point, Point, Point], float]


class RamerDouglasPeuckerSimplifier:
    """
    Ramer-Douglas-Peucker curve simplifier.

    Best/average case: Θ(n log n). Worst case: Θ(n²), for degenerate curves
    where every split isolates a single point.

    Parameters
    ----------
    distance_tolerance : float
        Maximum allowed distance between a discarded point and the simplified
        curve, in the unit of ``distance_calculator``. Must be > 0.
    distance_calculator : callable, optional
        Cross-track metric ``(segment_start, segment_end, point) -> float``.
        Defaults to ``EuclideanCalculator()``; use ``GeodeticCalculator()``
        for raw lon/lat points and a tolerance in metres.

    Raises
    ------
    ValueError
        If ``distance_tolerance`` is not strictly positive.

    Examples
    --------
    >>> simplifier = RamerDouglasPeuckerSimplifier(distance_tolerance=0.5)
    >>> simplifier.simplify([Point(0, 0), Point(1, 0.1), Point(2, 0)])
    [Point(x=0, y=0, timestamp=None), Point(x=2, y=0, timestamp=None)]
    """

    def __init__(self, distance_tolerance: float, distance_calculator: Optional[DistanceMetric] = None):
        self.distance_tolerance = distance_tolerance
        self.distance_calculator = distance_calculator if distance_calculator is not None else EuclideanCalculator()

    @property
    def distance_tolerance(self) -> float:
        return self._distance_tolerance

    @distance_tolerance.setter
    def distance_tolerance(self, value: float) -> None:
        if not value > 0.0:
            raise ValueError("Distance tolerance must be greater than zero")
        self._distance_tolerance = float(value)

    def simplify_indices(self, points: Sequence[Point], preserve: Optional[Sequence[bool]] = None) -> List[int]:
        """
        Indices of the points kept by the simplification, in ascending order.

        Parameters
        ----------
        points : sequence of Point
            Ordered trajectory.
        preserve : sequence of bool, optional
            Mask of indices that must never be discarded. Its length must be
            at least ``len(points)``; it is copied, never modified.

        Raises
        ------
        ValueError
            If ``preserve`` is shorter than ``points``.
        """
        n = len(points)
        if preserve is not None and len(preserve) < n:
            raise ValueError("Preserve mask length is less than the number of points")

        if n < 3:
            return list(range(n))

        keep = np.zeros(n, dtype=bool)
        if preserve is not None:
            keep[:] = np.asarray(preserve, dtype=bool)[:n]

        # caller-preserved interior points, needed to split ranges around them
        caller_kept = keep.copy()

        keep[0] = True
        keep[n - 1] = True

        tolerance = self._distance_tolerance
        metric = self.distance_calculator

        stack = [(0, n - 1)]
        while stack:
            start, end = stack.pop()

            # a range holding a caller-preserved point is split there first, so
            # discarded points are measured against the segments actually emitted
            pinned = np.flatnonzero(caller_kept[start + 1:end])
            if pinned.size > 0:
                split = start + 1 + int(pinned[0])
                stack.append((start, split))
                stack.append((split, end))
                continue

            # find the point farthest from the segment (start, end)
            max_distance = tolerance
            max_index = start
            for k in range(start + 1, end):
                if keep[k]:
                    continue
                distance = metric(points[start], points[end], points[k])
                if distance > max_distance:
                    max_index = k
                    max_distance = distance

            if max_distance > tolerance:
                stack.append((start, max_index))
                stack.append((max_index, end))
            else:
                keep[start] = True
                keep[end] = True

        return np.flatnonzero(keep).tolist()

    def simplify(self, points: Sequence[Point], preserve: Optional[Sequence[bool]] = None) -> List[Point]:
        """
        Simplify ``points``, returning an order-preserving subsequence.

        The first and last points, and every index marked in ``preserve``,
        are always kept. Trajectories of fewer than three points are returned
        unchanged.
        """
        if preserve is None and len(points) < 3:
            return list(points)
        return [points[i] for i in self.simplify_indices(points, preserve)]


# ======================== DataFrame API ========================


def douglas_peucker_compress(
    df: Union[pd.DataFrame, pl.DataFrame],
    tolerance_m: float = 10.0,
    lat_col: str = "lat",
    lon_col: str = "lon",
    preserve_col: Optional[str] = None,
    use_aeqd: bool = True,
) -> Union[pd.DataFrame, pl.DataFrame]:
    """
    Compress a GPS trajectory with Ramer-Douglas-Peucker simplification.

    Coordinates are projected to a local Azimuthal Equidistant (AEQD) plane
    centred on the trajectory centroid, so ``tolerance_m`` is a true distance
    in metres. Retained rows are returned untouched and in their original order.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Input trajectory with latitude and longitude columns.
    tolerance_m : float, default=10.0
        Maximum cross-track deviation, in metres, of any dropped point from
        the compressed trajectory. Must be > 0.
    lat_col : str, default="lat"
        Name of the latitude column (WGS84 decimal degrees).
    lon_col : str, default="lon"
        Name of the longitude column (WGS84 decimal degrees).
    preserve_col : str or None, default=None
        Optional boolean column marking rows that must be kept (e.g. stops).
    use_aeqd : bool, default=True
        Use an AEQD projection; if False, Web Mercator (EPSG:3857) is used,
        which distorts distances away from the equator.

    Returns
    -------
    pd.DataFrame or pl.DataFrame
        Compressed trajectory of the same type as the input.

    Raises
    ------
    ValueError
        If ``tolerance_m`` <= 0 or a required column is missing.

    Examples
    --------
    >>> compressed = pmm.preprocessing.douglas_peucker_compress(df, tolerance_m=5.0)
    >>> len(compressed) <= len(df)
    True
    """
    # fail fast on configuration before touching the data
    simplifier = RamerDouglasPeuckerSimplifier(tolerance_m)

    pdf, was_polars = to_pandas_preserve(df)
    required = [lat_col, lon_col] + ([preserve_col] if preserve_col is not None else [])
    require_columns(pdf, required)

    if len(pdf) < 3:
        return from_pandas_preserve(pdf.reset_index(drop=True), was_polars)

    lats = pdf[lat_col].to_numpy(dtype=float)
    lons = pdf[lon_col].to_numpy(dtype=float)
    xs, ys, _ = project_trajectory(lats, lons, use_aeqd=use_aeqd)

    points = [Point(float(x), float(y)) for x, y in zip(xs, ys)]
    preserve = None
    if preserve_col is not None:
        preserve = pdf[preserve_col].fillna(False).to_numpy(dtype=bool)

    kept = simplifier.simplify_indices(points, preserve)
    result_pdf = pdf.iloc[kept].reset_index(drop=True)
    return from_pandas_preserve(result_pdf, was_polars)
