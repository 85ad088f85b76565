"""
Kalman filtering module for pymapmatcher.

This module provides the recursive linear state estimator used to denoise GPS
observation streams before simplification and map-matching:

- KalmanFilter: generic linear Gauss-Markov estimator with a predict/update cycle
- GPSPositionFilter: 2-state random-walk model over (x, y)
- GPSPositionSpeedFilter: 4-state constant-velocity model over (x, y, vx, vy)
- kalman_filter: DataFrame-level smoothing of a lat/lon trajectory in an AEQD plane

State Vector (position-speed model): [x, y, vx, vy]
Observation: [x, y]
"""

import warnings
from typing import Optional, Union, Literal

import numpy as np
import pandas as pd
import polars as pl
import scipy.linalg as sla
import scipy.stats as sps
from tqdm import tqdm

from pymapmatcher.utilities.dataframes import (
    to_pandas_preserve,
    from_pandas_preserve,
    require_columns,
    elapsed_seconds,
)
from pymapmatcher.utilities.projection import project_trajectory

# Initial variance for a totally unknown starting state
_UNKNOWN_STATE_VARIANCE = 1_000. * 1_000. * 1_000. * 1_000.


class SingularInnovationError(np.linalg.LinAlgError):
    """
    Raised when the innovation covariance of an update cannot be inverted.

    The filter keeps the predicted state and covariance of the failed step,
    so callers may catch this error and continue with the prediction only.
    """

    def __init__(self, step: int, message: str = "innovation covariance is singular"):
        super().__init__(f"{message} (step {step})")
        self.step = step


def _invert_innovation_covariance(S: np.ndarray, step: int) -> np.ndarray:
    """
    Invert S, surfacing singular or ill-conditioned input as SingularInnovationError.
    """
    try:
        S_inv = sla.inv(S)
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise SingularInnovationError(step) from exc

    # scipy happily inverts nearly singular matrices; reject results that
    # carry no significant digits
    if not np.all(np.isfinite(S_inv)) or 1.0 / np.linalg.cond(S) < np.finfo(float).eps:
        raise SingularInnovationError(step, "innovation covariance is ill-conditioned")
    return S_inv


class KalmanFilter:
    """
    Recursive linear estimator (Kalman filter).

    The model matrices are zero-initialised and must be populated before the
    first step:

    - ``state_transition`` (F, n x n)
    - ``observation_model`` (H, m x n)
    - ``process_noise_covariance`` (Q, n x n)
    - ``observation_noise_covariance`` (R, m x m)

    Their dimensions are a precondition and are not validated; inconsistent
    shapes surface as numpy broadcasting errors or meaningless estimates. The
    state estimate defaults to zeros and the estimate covariance to the identity.

    Instances are not thread-safe: use one filter per trajectory.

    Parameters
    ----------
    state_dimension : int
        Dimension n of the hidden state, >= 1.
    observation_dimension : int
        Dimension m of each observation, >= 1.

    Examples
    --------
    >>> kf = KalmanFilter(2, 2)
    >>> kf.state_transition = np.eye(2)
    >>> kf.observation_model = np.eye(2)
    >>> kf.process_noise_covariance = np.eye(2) * 1e-3
    >>> kf.observation_noise_covariance = np.eye(2)
    >>> kf.step([1.0, 2.0])
    """

    def __init__(self, state_dimension: int, observation_dimension: int):
        if int(state_dimension) < 1 or int(observation_dimension) < 1:
            raise ValueError("State and observation dimensions must be at least 1")

        self.state_dimension = int(state_dimension)
        self.observation_dimension = int(observation_dimension)

        n, m = self.state_dimension, self.observation_dimension
        self._F = np.zeros((n, n))
        self._H = np.zeros((m, n))
        self._Q = np.zeros((n, n))
        self._R = np.zeros((m, m))

        self._x = np.zeros((n, 1))
        self._P = np.eye(n)

        self._innovation = None
        self._innovation_covariance = None
        self._step_count = 0

    # ========== Model Matrices ==========

    @property
    def state_transition(self) -> np.ndarray:
        return self._F.copy()

    @state_transition.setter
    def state_transition(self, value):
        self._F = np.array(value, dtype=float)

    def set_state_transition(self, row: int, column: int, value: float) -> None:
        """Set a single entry of F, e.g. the Δt terms of a motion model."""
        self._F[row, column] = value

    @property
    def observation_model(self) -> np.ndarray:
        return self._H.copy()

    @observation_model.setter
    def observation_model(self, value):
        self._H = np.array(value, dtype=float)

    @property
    def process_noise_covariance(self) -> np.ndarray:
        return self._Q.copy()

    @process_noise_covariance.setter
    def process_noise_covariance(self, value):
        self._Q = np.array(value, dtype=float)

    @property
    def observation_noise_covariance(self) -> np.ndarray:
        return self._R.copy()

    @observation_noise_covariance.setter
    def observation_noise_covariance(self, value):
        self._R = np.array(value, dtype=float)

    # ========== Estimate ==========

    @property
    def state_estimate(self) -> np.ndarray:
        """Current state estimate as an (n, 1) column vector."""
        return self._x.copy()

    @state_estimate.setter
    def state_estimate(self, value):
        self._x = np.array(value, dtype=float).reshape(self.state_dimension, 1)

    @property
    def estimate_covariance(self) -> np.ndarray:
        return self._P.copy()

    @estimate_covariance.setter
    def estimate_covariance(self, value):
        self._P = np.array(value, dtype=float)

    @property
    def step_count(self) -> int:
        """Number of predict phases run so far (informational only)."""
        return self._step_count

    @property
    def innovation(self) -> Optional[np.ndarray]:
        """Innovation (measurement residual) of the last update, if any."""
        return None if self._innovation is None else self._innovation.copy()

    @property
    def innovation_covariance(self) -> Optional[np.ndarray]:
        return None if self._innovation_covariance is None else self._innovation_covariance.copy()

    # ========== Predict / Update Cycle ==========

    def predict(self) -> None:
        """
        Propagate the estimate through the transition model.

        x' = F x
        P' = F P F^T + Q
        """
        self._x = self._F @ self._x
        self._P = self._F @ self._P @ self._F.T + self._Q
        self._step_count += 1

    def update(self, observation) -> None:
        """
        Refine the predicted estimate with an observation.

        Raises
        ------
        SingularInnovationError
            If the innovation covariance S cannot be inverted. The predicted
            state and covariance are left untouched.
        """
        z = np.array(observation, dtype=float).reshape(self.observation_dimension, 1)

        # Innovation (pre-fit residual): y = z - H x'
        y = z - self._H @ self._x

        # Innovation covariance: S = H P' H^T + R
        PHt = self._P @ self._H.T
        S = self._H @ PHt + self._R

        S_inv = _invert_innovation_covariance(S, self._step_count)
        self._innovation = y
        self._innovation_covariance = S

        # Optimal gain: K = P' H^T S^-1
        K = PHt @ S_inv

        self._x = self._x + K @ y
        self._P = (np.eye(self.state_dimension) - K @ self._H) @ self._P

    def step(self, observation) -> None:
        """
        Run exactly one predict + update cycle.

        The observation is copied; the caller may reuse its buffer afterwards.
        """
        self.predict()
        self.update(observation)

    def mahalanobis_distance(self) -> float:
        """
        Squared Mahalanobis distance of the last innovation.

        Under a consistent model it follows a chi-squared distribution with
        ``observation_dimension`` degrees of freedom.
        """
        if self._innovation is None:
            raise ValueError("No update has been run yet")
        S_inv = _invert_innovation_covariance(self._innovation_covariance, self._step_count)
        y = self._innovation
        return float((y.T @ S_inv @ y)[0, 0])


class GPSPositionFilter:
    """
    Random-walk GPS filter tracking two position dimensions.

    The higher ``noise`` is, the more a path will be smoothed: it scales the
    observation noise relative to the process noise.
    """

    def __init__(self, noise: float = 1.0):
        self.filter = KalmanFilter(2, 2)
        n = self.filter.state_dimension

        self.filter.state_transition = np.eye(n)
        self.filter.observation_model = np.eye(2)

        pos = 0.000_001
        self.filter.process_noise_covariance = np.eye(n) * pos
        self.filter.observation_noise_covariance = np.eye(2) * (pos * noise)

        # the start position is totally unknown
        self.filter.state_estimate = np.zeros(n)
        self.filter.estimate_covariance = np.eye(n) * _UNKNOWN_STATE_VARIANCE

    def update_position(self, x: float, y: float) -> None:
        self.filter.step([x, y])

    @property
    def position(self):
        state = self.filter.state_estimate
        return float(state[0, 0]), float(state[1, 0])


class GPSPositionSpeedFilter:
    """
    Constant-velocity GPS filter tracking position and velocity.

    State is [x, y, vx, vy]; only position is observed. Velocity changes are
    assumed to be randomly distributed around zero. The higher
    ``observation_noise`` is relative to ``process_noise``, the more a path
    will be smoothed.

    Parameters
    ----------
    process_noise : float
        Position variance added per step.
    observation_noise : float
        Variance of each observed coordinate.
    velocity_noise : float, default=1.0
        Velocity variance added per step.
    """

    def __init__(self, process_noise: float, observation_noise: float, velocity_noise: float = 1.0):
        self.filter = KalmanFilter(4, 2)
        n = self.filter.state_dimension

        self.filter.state_transition = np.eye(n)
        self._set_seconds_per_time_step(1.0)

        # observe (x, y) in each time step
        self.filter.observation_model = np.array([[1.0, 0.0, 0.0, 0.0],
                                                  [0.0, 1.0, 0.0, 0.0]])

        self.filter.process_noise_covariance = np.diag(
            [process_noise, process_noise, velocity_noise, velocity_noise]
        )
        self.filter.observation_noise_covariance = np.eye(2) * observation_noise

        self.filter.state_estimate = np.zeros(n)
        self.filter.estimate_covariance = np.eye(n) * _UNKNOWN_STATE_VARIANCE

    def _set_seconds_per_time_step(self, time_lapse: float) -> None:
        # x = x + vx*dt, y = y + vy*dt
        self.filter.set_state_transition(0, 2, time_lapse)
        self.filter.set_state_transition(1, 3, time_lapse)

    def update_position(self, x: float, y: float, elapsed_time: float = 1.0) -> None:
        self._set_seconds_per_time_step(elapsed_time)
        self.filter.step([x, y])

    @property
    def position(self):
        state = self.filter.state_estimate
        return float(state[0, 0]), float(state[1, 0])

    @property
    def speed(self):
        """Velocity in coordinate units per second."""
        state = self.filter.state_estimate
        return float(state[2, 0]), float(state[3, 0])


# ----------------- public API -----------------

def _build_motion_filter(model: str, process_noise_std_m: float, measurement_noise_std_m: float,
                         velocity_noise_std_mps: float) -> KalmanFilter:
    """Create a KalmanFilter for the requested motion model in projected metres."""
    q = process_noise_std_m ** 2
    r = measurement_noise_std_m ** 2

    if model == "position_speed":
        kf = KalmanFilter(4, 2)
        kf.state_transition = np.eye(4)
        kf.observation_model = np.array([[1.0, 0.0, 0.0, 0.0],
                                         [0.0, 1.0, 0.0, 0.0]])
        kf.process_noise_covariance = np.diag([q, q, velocity_noise_std_mps ** 2, velocity_noise_std_mps ** 2])
    else:
        kf = KalmanFilter(2, 2)
        kf.state_transition = np.eye(2)
        kf.observation_model = np.eye(2)
        kf.process_noise_covariance = np.eye(2) * q

    kf.observation_noise_covariance = np.eye(2) * r
    return kf


def kalman_filter(
    df: Union[pd.DataFrame, pl.DataFrame],
    lat_col: str = "lat",
    lon_col: str = "lon",
    time_col: Optional[str] = "time",
    model: Literal["position_speed", "position"] = "position_speed",
    process_noise_std_m: float = 1.0,
    measurement_noise_std_m: float = 10.0,
    velocity_noise_std_mps: float = 1.0,
    outlier_alpha: Optional[float] = None,
    use_aeqd: bool = True,
    return_states: bool = False,
    verbose: bool = False,
):
    """
    Smooth a GPS trajectory with a recursive Kalman filter.

    Coordinates are projected to a local Azimuthal Equidistant (AEQD) plane so
    noise parameters can be expressed in metres. Each point after the first
    runs one predict/update cycle with the time elapsed since the previous
    point; the first point initialises the state.

    Parameters
    ----------
    df : pd.DataFrame or pl.DataFrame
        Input trajectory with latitude, longitude, and optionally time columns.
    lat_col : str, default="lat"
        Name of the latitude column.
    lon_col : str, default="lon"
        Name of the longitude column.
    time_col : str or None, default="time"
        Name of the time column. If None or missing, 1-second spacing is assumed.
    model : {"position_speed", "position"}, default="position_speed"
        Motion model:
        - "position_speed": constant velocity, state [x, y, vx, vy]
        - "position": random walk, state [x, y]
    process_noise_std_m : float, default=1.0
        Process noise standard deviation on position, in metres.
    measurement_noise_std_m : float, default=10.0
        GPS measurement noise standard deviation, in metres.
    velocity_noise_std_mps : float, default=1.0
        Process noise standard deviation on velocity, in m/s (position_speed only).
    outlier_alpha : float or None, default=None
        Significance level for innovation gating. Points whose squared
        Mahalanobis innovation exceeds the chi-squared(2) quantile at
        1 - outlier_alpha are flagged in ``_kept`` and do not update the
        estimate (the prediction is kept for them).
    use_aeqd : bool, default=True
        Use an AEQD projection; if False, Web Mercator is used.
    return_states : bool, default=False
        If True, also return the filtered state vectors in projected units.
    verbose : bool, default=False
        Show a progress bar.

    Returns
    -------
    pd.DataFrame or pl.DataFrame
        Trajectory of the same type as the input with filtered lat/lon and a
        boolean ``_kept`` column.
    np.ndarray (optional)
        If return_states=True, the (n x 4) or (n x 2) filtered states.

    Raises
    ------
    ValueError
        If a coordinate column is missing or the model is unknown.

    Notes
    -----
    A step whose innovation covariance is singular keeps its prediction and
    emits a warning rather than aborting the whole trajectory.
    """
    if model not in ("position_speed", "position"):
        raise ValueError(f"Unknown motion model '{model}'")

    pdf, was_polars = to_pandas_preserve(df)
    require_columns(pdf, [lat_col, lon_col])
    n = len(pdf)
    state_dim = 4 if model == "position_speed" else 2

    if n == 0:
        out = from_pandas_preserve(pdf.assign(_kept=pd.Series([], dtype=bool)), was_polars)
        return (out, np.zeros((0, state_dim))) if return_states else out

    lats = pdf[lat_col].to_numpy(dtype=float)
    lons = pdf[lon_col].to_numpy(dtype=float)
    dt_s = elapsed_seconds(pdf, time_col)

    # ========== Projection ==========
    xs, ys, inv = project_trajectory(lats, lons, use_aeqd=use_aeqd)

    # ========== Filter Setup ==========
    kf = _build_motion_filter(model, process_noise_std_m, measurement_noise_std_m, velocity_noise_std_mps)

    # Initial state: position from first observation, velocity = 0
    x0 = np.zeros(state_dim)
    x0[0], x0[1] = xs[0], ys[0]
    kf.state_estimate = x0
    P0 = np.eye(state_dim)
    P0[0, 0] = P0[1, 1] = measurement_noise_std_m ** 2
    kf.estimate_covariance = P0

    chi2_thresh = None
    if outlier_alpha is not None:
        chi2_thresh = float(sps.chi2.ppf(1.0 - outlier_alpha, df=2))

    states = np.zeros((n, state_dim))
    states[0] = x0
    kept = np.ones(n, dtype=bool)

    steps = range(1, n)
    if verbose:
        steps = tqdm(steps, desc="kalman filter")

    # ========== Forward Pass ==========
    for k in steps:
        if model == "position_speed":
            kf.set_state_transition(0, 2, dt_s[k - 1])
            kf.set_state_transition(1, 3, dt_s[k - 1])

        kf.predict()
        predicted_x = kf.state_estimate
        predicted_P = kf.estimate_covariance

        try:
            kf.update([xs[k], ys[k]])
        except SingularInnovationError as exc:
            warnings.warn(f"Skipping update at point {k}: {exc}")
            states[k] = kf.state_estimate.ravel()
            continue

        if chi2_thresh is not None and kf.mahalanobis_distance() > chi2_thresh:
            # Outlier: discard the update, keep the prediction
            kept[k] = False
            kf.state_estimate = predicted_x
            kf.estimate_covariance = predicted_P

        states[k] = kf.state_estimate.ravel()

    # ========== Back to WGS84 ==========
    lon_f, lat_f = inv.transform(states[:, 0], states[:, 1])

    out_pdf = pdf.copy()
    out_pdf[lat_col] = np.asarray(lat_f, dtype=float)
    out_pdf[lon_col] = np.asarray(lon_f, dtype=float)
    out_pdf["_kept"] = kept

    out = from_pandas_preserve(out_pdf, was_polars)
    if return_states:
        return out, states
    return out
