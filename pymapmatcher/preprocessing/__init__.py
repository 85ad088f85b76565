"""
Trajectory preprocessing module for pymapmatcher.

This module provides algorithms for preparing GPS trajectories for map-matching:
- Filtering: Denoise observation streams with a recursive Kalman filter
- Compression: Reduce trajectory point count while preserving shape (Ramer-Douglas-Peucker)
"""

# Filtering
from pymapmatcher.preprocessing.filtration import (
    KalmanFilter,
    GPSPositionFilter,
    GPSPositionSpeedFilter,
    SingularInnovationError,
    kalman_filter,
)

# Compression
from pymapmatcher.preprocessing.compression import RamerDouglasPeuckerSimplifier, douglas_peucker_compress

__all__ = [
    # Filtering
    'KalmanFilter',
    'GPSPositionFilter',
    'GPSPositionSpeedFilter',
    'SingularInnovationError',
    'kalman_filter',
    # Compression
    'RamerDouglasPeuckerSimplifier',
    'douglas_peucker_compress',
]
