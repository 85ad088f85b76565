"""
pymapmatcher - Trajectory preparation and path extraction for map-matching.

pymapmatcher provides the numerical core of a map-matching pipeline: it
denoises GPS observation streams, compresses trajectories to shape-preserving
points, and reconstructs routes from the predecessor trees of shortest-path
searches.

Components
----------
- **preprocessing**: Kalman filtering and Ramer-Douglas-Peucker compression
- **reconstructing**: Path reconstruction from one or two predecessor trees
- **utilities**: Geometry, distance metrics, projections and igraph adapters

Quick Start
-----------
```python
import pymapmatcher as pmm

# Denoise and compress a trajectory
smoothed = pmm.preprocessing.kalman_filter(df, measurement_noise_std_m=8.0)
compressed = pmm.preprocessing.douglas_peucker_compress(smoothed, tolerance_m=5.0)

# Route between two vertices of an igraph road network
summary = pmm.utilities.shortest_path_summary(road_network, start=0, end=42)
if summary.is_found():
    print(summary.simple_path())
```
"""

from pymapmatcher._version import __version__, __version_info__
from pymapmatcher import utilities, preprocessing, reconstructing

__all__ = [
    '__version__',
    '__version_info__',
    'preprocessing',
    'reconstructing',
    'utilities',
]
