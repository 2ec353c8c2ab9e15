import numpy as np
import pytest

from wave_amr.core.functions import boundary_values_u, boundary_values_v, make_default_problems


def test_pulse_is_off_after_half_time():
    x = np.linspace(-1.0, 1.0, 21)
    X, Y = np.meshgrid(x, x, indexing="ij")
    for t in (0.5001, 0.75, 3.0):
        assert np.all(boundary_values_u(X, Y, t) == 0.0)
        assert np.all(boundary_values_v(X, Y, t) == 0.0)


@pytest.mark.parametrize("t", [0.0, 0.05, 0.125, 0.3, 0.5])
def test_pulse_inside_window(t):
    y = np.array([-0.3, 0.0, 0.3])
    x = np.full_like(y, -1.0)
    assert np.allclose(boundary_values_u(x, y, t), np.sin(4 * np.pi * t))
    # outside the window: right half or |y| >= 1/3
    assert np.all(boundary_values_u(np.array([0.5, -1.0]), np.array([0.0, 0.5]), t) == 0.0)


def test_velocity_is_time_derivative_of_displacement():
    x = np.array([-1.0])
    y = np.array([0.1])
    eps = 1e-6
    for t in np.linspace(0.01, 0.49, 25):
        fd = (boundary_values_u(x, y, t + eps) - boundary_values_u(x, y, t - eps)) / (2 * eps)
        assert np.allclose(boundary_values_v(x, y, t), fd, rtol=1e-5, atol=1e-5)


def test_default_problem_set():
    problems = make_default_problems()
    assert set(problems) == {"boundary_pulse", "quiet"}
    quiet = problems["quiet"]
    assert np.all(quiet.boundary_u(np.zeros(3), np.zeros(3), 0.1) == 0.0)
