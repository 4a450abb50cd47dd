"""Unit tests for the motion model presets."""

import numpy as np
import pytest

from arucotrack.tracking.models import (
    build_model,
    constant_velocity_model,
    model_from_matrices,
    static_model,
    white_noise_acceleration,
)


class TestPresets:
    """Tests for the named model builders."""

    def test_static_defaults_are_degenerate(self):
        """Zero process noise and zero initial covariance."""
        model = static_model(dt=1.0 / 30)

        np.testing.assert_array_equal(model.A, np.eye(4))
        np.testing.assert_array_equal(model.Q, np.zeros((4, 4)))
        np.testing.assert_array_equal(model.P0, np.zeros((4, 4)))
        np.testing.assert_array_equal(model.R, np.eye(2))
        assert (model.n, model.m) == (4, 2)

    def test_static_defaults_never_leave_initial_state(self):
        kf = static_model().build_filter()
        kf.init(0.0, np.zeros(4))

        for y in ([10.0, 20.0], [11.0, 19.0], [300.0, 1.0]):
            kf.predict()
            kf.update(y)

        np.testing.assert_array_equal(kf.state(), np.zeros(4))

    def test_static_with_initial_variance_follows_measurements(self):
        kf = static_model(initial_variance=100.0).build_filter()
        kf.init(0.0, np.zeros(4))

        kf.predict()
        x = kf.update([10.0, 20.0])

        assert x[0] > 9.0 and x[1] > 18.0

    def test_constant_velocity_integrates_velocity(self):
        dt = 0.5
        kf = constant_velocity_model(dt=dt).build_filter()
        kf.init(0.0, [10.0, 20.0, 4.0, -2.0])

        x = kf.predict()

        np.testing.assert_allclose(x, [12.0, 19.0, 4.0, -2.0])

    def test_process_noise_symmetric_psd(self):
        Q = white_noise_acceleration(1.0 / 30)

        np.testing.assert_array_equal(Q, Q.T)
        assert np.all(np.linalg.eigvalsh(Q) >= -1e-15)

    def test_build_model_by_name(self):
        model = build_model('constant_velocity', dt=0.1, measurement_variance=9.0)

        np.testing.assert_array_equal(model.R, 9.0 * np.eye(2))
        assert model.dt == 0.1

    def test_build_model_unknown(self):
        with pytest.raises(ValueError, match="Unknown model"):
            build_model('ballistic', dt=0.1)


class TestExplicitMatrices:
    """Tests for models given as plain matrices."""

    def test_scalar_output_model(self):
        model = model_from_matrices(1.0, {
            'A': [[1, 1], [0, 1]],
            'C': [1, 0],
            'Q': [[0, 0], [0, 0]],
            'R': [1],
            'P0': [[1, 0], [0, 1]],
        })
        kf = model.build_filter()
        kf.init(0.0, [0.0, 0.0])
        kf.predict()

        np.testing.assert_allclose(kf.update([1.0]), [2.0 / 3.0, 1.0 / 3.0], atol=1e-9)

    def test_missing_matrix(self):
        with pytest.raises(ValueError, match="P0"):
            model_from_matrices(1.0, {'A': [[1]], 'C': [[1]], 'Q': [[0]], 'R': [[1]]})
