# core/functions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np

# f(x, y, t) -> array shaped like x; x, y are numpy arrays of coordinates.
SpaceTimeFunc = Callable[[np.ndarray, np.ndarray, float], np.ndarray]

PULSE_END = 0.5
PULSE_FREQ = 4.0 * np.pi


def zero_function(x: np.ndarray, y: np.ndarray, t: float) -> np.ndarray:
    return np.zeros(np.broadcast(np.asarray(x), np.asarray(y)).shape, dtype=float)


def _pulse_window(x: np.ndarray, y: np.ndarray, t: float) -> np.ndarray:
    """Boolean mask of the driven boundary segment: t <= 0.5, x < 0, |y| < 1/3."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    active = float(t) <= PULSE_END
    return active & (x < 0.0) & (y < 1.0 / 3.0) & (y > -1.0 / 3.0)


def boundary_values_u(x: np.ndarray, y: np.ndarray, t: float) -> np.ndarray:
    """Displacement on the boundary: sin(4 pi t) inside the pulse window, 0 elsewhere."""
    mask = _pulse_window(x, y, t)
    return np.where(mask, np.sin(PULSE_FREQ * float(t)), 0.0)


def boundary_values_v(x: np.ndarray, y: np.ndarray, t: float) -> np.ndarray:
    """Velocity on the boundary: time derivative of boundary_values_u."""
    mask = _pulse_window(x, y, t)
    return np.where(mask, PULSE_FREQ * np.cos(PULSE_FREQ * float(t)), 0.0)


@dataclass(frozen=True)
class WaveProblem:
    """
    Data of u_tt - Laplace(u) = f on the square with Dirichlet data on boundary id 0.
    """
    name: str
    rhs_func: SpaceTimeFunc = zero_function
    boundary_u: SpaceTimeFunc = boundary_values_u
    boundary_v: SpaceTimeFunc = boundary_values_v
    initial_u: SpaceTimeFunc = zero_function
    initial_v: SpaceTimeFunc = zero_function
    boundary_id: int = 0


def make_default_problem() -> WaveProblem:
    return WaveProblem(name="boundary_pulse")


def make_default_problems() -> dict[str, WaveProblem]:
    """
    Named problem set:
      - boundary_pulse: quiescent start, wave injected through the left boundary
      - quiet: homogeneous data everywhere (solution stays zero)
    """
    return {
        "boundary_pulse": make_default_problem(),
        "quiet": WaveProblem(
            name="quiet",
            boundary_u=zero_function,
            boundary_v=zero_function,
        ),
    }
