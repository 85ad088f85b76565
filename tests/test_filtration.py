"""Tests for the Kalman filtering module."""
import numpy as np
import pandas as pd
import polars as pl
import pytest

from pymapmatcher.preprocessing.filtration import (
    KalmanFilter,
    GPSPositionFilter,
    GPSPositionSpeedFilter,
    SingularInnovationError,
    kalman_filter,
)


def _constant_position_filter(q=1e-4, r=1.0):
    kf = KalmanFilter(2, 2)
    kf.state_transition = np.eye(2)
    kf.observation_model = np.eye(2)
    kf.process_noise_covariance = np.eye(2) * q
    kf.observation_noise_covariance = np.eye(2) * r
    kf.estimate_covariance = np.eye(2) * 100.0
    return kf


class TestKalmanFilter:

    def test_rejects_non_positive_dimensions(self):
        with pytest.raises(ValueError):
            KalmanFilter(0, 2)
        with pytest.raises(ValueError):
            KalmanFilter(2, 0)

    def test_model_matrices_start_at_zero(self):
        kf = KalmanFilter(4, 2)
        assert kf.state_transition.shape == (4, 4)
        assert kf.observation_model.shape == (2, 4)
        assert not kf.process_noise_covariance.any()
        assert not kf.observation_noise_covariance.any()
        assert kf.state_estimate.shape == (4, 1)
        assert kf.step_count == 0

    def test_single_step_matches_closed_form(self):
        kf = _constant_position_filter(q=0.0, r=1.0)
        kf.estimate_covariance = np.eye(2)
        kf.step([2.0, -4.0])

        # P' = I, S = 2I, K = 0.5I
        np.testing.assert_allclose(kf.state_estimate.ravel(), [1.0, -2.0])
        np.testing.assert_allclose(kf.estimate_covariance, 0.5 * np.eye(2))
        np.testing.assert_allclose(kf.innovation.ravel(), [2.0, -4.0])
        assert kf.step_count == 1

    def test_step_copies_observation(self):
        kf = _constant_position_filter()
        z = np.array([1.0, 1.0])
        kf.step(z)
        before = kf.state_estimate
        z[:] = 1000.0
        np.testing.assert_array_equal(kf.state_estimate, before)

    def test_setters_copy_caller_arrays(self):
        kf = KalmanFilter(2, 2)
        F = np.eye(2)
        kf.state_transition = F
        F[0, 0] = 5.0
        assert kf.state_transition[0, 0] == 1.0

    def test_set_state_transition_entry(self):
        kf = KalmanFilter(4, 2)
        kf.state_transition = np.eye(4)
        kf.set_state_transition(0, 2, 0.5)
        assert kf.state_transition[0, 2] == 0.5

    def test_covariance_trace_decreases_with_consistent_observations(self):
        kf = _constant_position_filter(q=1e-4, r=1.0)
        traces = []
        for _ in range(30):
            kf.step([3.0, 4.0])
            traces.append(np.trace(kf.estimate_covariance))

        assert all(b <= a + 1e-12 for a, b in zip(traces, traces[1:]))
        np.testing.assert_allclose(kf.state_estimate.ravel(), [3.0, 4.0], atol=1e-2)

    def test_deterministic(self):
        rng = np.random.default_rng(7)
        observations = rng.normal(size=(50, 2))

        def run():
            kf = _constant_position_filter()
            out = []
            for z in observations:
                kf.step(z)
                out.append(kf.state_estimate.ravel())
            return np.array(out)

        np.testing.assert_array_equal(run(), run())

    def test_singular_innovation_keeps_prediction(self):
        kf = KalmanFilter(2, 2)
        kf.state_transition = np.array([[1.0, 1.0], [0.0, 1.0]])
        kf.state_estimate = [1.0, 2.0]
        kf.estimate_covariance = np.zeros((2, 2))
        # H, Q and R all zero: S = 0

        with pytest.raises(SingularInnovationError) as excinfo:
            kf.step([0.0, 0.0])

        assert isinstance(excinfo.value, np.linalg.LinAlgError)
        assert excinfo.value.step == 1
        np.testing.assert_allclose(kf.state_estimate.ravel(), [3.0, 2.0])
        assert kf.step_count == 1

    def test_failed_update_keeps_last_innovation(self):
        kf = _constant_position_filter(q=0.0, r=1.0)
        kf.estimate_covariance = np.eye(2)
        kf.step([2.0, 0.0])

        kf.observation_noise_covariance = np.zeros((2, 2))
        kf.estimate_covariance = np.zeros((2, 2))
        with pytest.raises(SingularInnovationError):
            kf.step([5.0, 5.0])

        np.testing.assert_allclose(kf.innovation.ravel(), [2.0, 0.0])
        np.testing.assert_allclose(kf.innovation_covariance, 2.0 * np.eye(2))
        assert kf.mahalanobis_distance() == pytest.approx(2.0)

    def test_mahalanobis_distance(self):
        kf = _constant_position_filter(q=0.0, r=1.0)
        kf.estimate_covariance = np.eye(2)
        kf.step([2.0, 0.0])
        # y = [2, 0], S = 2I -> y' S^-1 y = 2
        assert kf.mahalanobis_distance() == pytest.approx(2.0)

    def test_mahalanobis_without_update(self):
        with pytest.raises(ValueError):
            KalmanFilter(2, 2).mahalanobis_distance()


class TestGPSFilters:

    def test_position_filter_converges(self):
        f = GPSPositionFilter(noise=1.0)
        for _ in range(20):
            f.update_position(12.24, 45.64)
        x, y = f.position
        assert x == pytest.approx(12.24, abs=1e-6)
        assert y == pytest.approx(45.64, abs=1e-6)

    def test_position_speed_filter_tracks_velocity(self):
        f = GPSPositionSpeedFilter(process_noise=1e-3, observation_noise=1e-2)
        for t in range(40):
            f.update_position(2.0 * t, -1.0 * t, elapsed_time=1.0)
        vx, vy = f.speed
        assert vx == pytest.approx(2.0, abs=0.05)
        assert vy == pytest.approx(-1.0, abs=0.05)
        x, y = f.position
        assert x == pytest.approx(78.0, abs=0.5)

    def test_elapsed_time_sets_transition(self):
        f = GPSPositionSpeedFilter(process_noise=1.0, observation_noise=1.0)
        f.update_position(0.0, 0.0, elapsed_time=5.0)
        F = f.filter.state_transition
        assert F[0, 2] == 5.0
        assert F[1, 3] == 5.0


class TestKalmanFilterDataFrame:

    @staticmethod
    def _noisy_track(n=60, seed=3):
        rng = np.random.default_rng(seed)
        lats = np.linspace(56.950, 56.960, n)
        lons = np.linspace(24.100, 24.110, n)
        noise = rng.normal(scale=5e-5, size=(n, 2))
        return pd.DataFrame({
            'time': pd.date_range('2023-01-01', periods=n, freq='5s'),
            'lat': lats + noise[:, 0],
            'lon': lons + noise[:, 1],
            'speed': np.arange(n, dtype=float),
        }), lats, lons

    def test_reduces_noise(self):
        df, lats, lons = self._noisy_track()
        out = kalman_filter(df, measurement_noise_std_m=5.0)

        raw_err = np.hypot(df['lat'] - lats, df['lon'] - lons)[10:].mean()
        filt_err = np.hypot(out['lat'] - lats, out['lon'] - lons)[10:].mean()
        assert filt_err < raw_err
        assert list(out.columns) == ['time', 'lat', 'lon', 'speed', '_kept']
        assert out['_kept'].all()
        np.testing.assert_array_equal(out['speed'], df['speed'])

    def test_position_model_and_states(self):
        df, _, _ = self._noisy_track(n=10)
        out, states = kalman_filter(df, model="position", return_states=True)
        assert states.shape == (10, 2)
        assert len(out) == 10

    def test_preserves_polars(self):
        df, _, _ = self._noisy_track(n=15)
        out = kalman_filter(pl.from_pandas(df))
        assert isinstance(out, pl.DataFrame)
        assert out.height == 15

    def test_flags_outlier(self):
        df, _, _ = self._noisy_track()
        df.loc[30, 'lat'] += 0.05  # ~5 km jump
        out = kalman_filter(df, measurement_noise_std_m=5.0, outlier_alpha=0.01)
        assert not out['_kept'].iloc[30]
        assert abs(out['lat'].iloc[30] - 56.955) < 0.01

    def test_without_time_column(self):
        df, _, _ = self._noisy_track(n=8)
        out = kalman_filter(df.drop(columns=['time']), time_col=None)
        assert len(out) == 8

    def test_empty(self):
        df = pd.DataFrame({'lat': [], 'lon': []})
        out = kalman_filter(df)
        assert len(out) == 0
        assert '_kept' in out.columns

    def test_missing_column(self):
        with pytest.raises(ValueError):
            kalman_filter(pd.DataFrame({'lat': [1.0]}))

    def test_unknown_model(self):
        df, _, _ = self._noisy_track(n=5)
        with pytest.raises(ValueError):
            kalman_filter(df, model="jerk")
