"""
Projection helpers for pymapmatcher.

Filtering and simplification both need metric coordinates. Trajectories come
in as WGS84 latitude/longitude, so they are projected to a local Azimuthal
Equidistant (AEQD) plane centred on the trajectory centroid, processed in
metres, and projected back.
"""

import warnings
from typing import Tuple

import numpy as np
from pyproj import Transformer

# ========== AEQD Projection Transformer Cache ==========
# Key: (rounded_lat, rounded_lon, precision) -> (forward_transformer, inverse_transformer)
# Rounding reduces cache size while maintaining projection accuracy
_transformer_cache = {}


def get_cached_aeqd_transformer(cen_lat: float, cen_lon: float, precision: int = 6):
    """
    Return cached AEQD Transformer pair for centroid rounded at given precision.

    AEQD preserves true distances and directions from the centre point, which
    makes it the natural plane for metric work on a local trajectory.
    Creating transformers is expensive, so pairs are cached by rounded centre.

    Parameters
    ----------
    cen_lat : float
        Latitude of the projection centre (WGS84 degrees).
    cen_lon : float
        Longitude of the projection centre (WGS84 degrees).
    precision : int, default=6
        Decimal places used to round the centre for the cache key.

    Returns
    -------
    tuple of pyproj.Transformer
        ``(forward, inverse)``: forward maps (lon, lat) to (x, y) metres,
        inverse maps (x, y) back to (lon, lat).
    """
    key = (round(cen_lat, precision), round(cen_lon, precision), precision)

    t = _transformer_cache.get(key)
    if t is not None:
        return t

    # +lat_0, +lon_0: projection centre (true distances from this point)
    # +units=m: output in metres
    proj = f"+proj=aeqd +lat_0={cen_lat:.9f} +lon_0={cen_lon:.9f} +datum=WGS84 +units=m +no_defs"

    # always_xy=True keeps (lon, lat) order for transform()
    fwd = Transformer.from_crs("EPSG:4326", proj, always_xy=True)
    inv = Transformer.from_crs(proj, "EPSG:4326", always_xy=True)

    _transformer_cache[key] = (fwd, inv)
    return fwd, inv


def project_trajectory(
    lats: np.ndarray,
    lons: np.ndarray,
    use_aeqd: bool = True,
    precision: int = 6,
) -> Tuple[np.ndarray, np.ndarray, Transformer]:
    """
    Project a WGS84 trajectory to a local metric plane.

    Parameters
    ----------
    lats, lons : np.ndarray
        Latitudes and longitudes in WGS84 degrees.
    use_aeqd : bool, default=True
        Use an AEQD projection centred on the trajectory centroid. If False,
        or if the AEQD projection cannot be built, Web Mercator (EPSG:3857)
        is used instead.
    precision : int, default=6
        Rounding precision of the transformer cache key.

    Returns
    -------
    xs, ys : np.ndarray
        Projected coordinates.
    inverse : pyproj.Transformer
        Transformer mapping projected (x, y) back to (lon, lat).
    """
    lats = np.asarray(lats, dtype=float)
    lons = np.asarray(lons, dtype=float)

    if use_aeqd:
        try:
            cen_lat = float(np.mean(lats))
            cen_lon = float(np.mean(lons))
            fwd, inv = get_cached_aeqd_transformer(cen_lat, cen_lon, precision=precision)
            xs, ys = fwd.transform(lons, lats)
            return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float), inv
        except Exception:
            # AEQD failed (rare), fall back to Web Mercator
            warnings.warn("AEQD projection failed; falling back to EPSG:3857 projection.")

    fwd = Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)
    inv = Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)
    xs, ys = fwd.transform(lons, lats)
    return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float), inv
