# algorithm/theta_scheme.py
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..core.config import SolverConfig
from ..core.discretization import Discretization
from ..core.exceptions import DimensionMismatchError
from ..core.functions import WaveProblem
from ..operators.assemble import Operators, assemble_source, interpolate_boundary_values
from ..operators.solve import solve_constrained


@dataclass(frozen=True, eq=False)
class StepResult:
    u: np.ndarray
    v: np.ndarray
    iterations_u: int
    iterations_v: int
    energy: float


def discrete_energy(ops: Operators, u: np.ndarray, v: np.ndarray) -> float:
    """(<V, M V> + <U, A U>) / 2"""
    return 0.5 * float(v @ (ops.mass @ v) + u @ (ops.laplace @ u))


def forcing_terms(
    disc: Discretization,
    problem: WaveProblem,
    t: float,
    dt: float,
    theta: float,
) -> np.ndarray:
    """theta*dt*F(t) + (1-theta)*dt*F(t-dt)"""
    f_now = assemble_source(disc, problem.rhs_func, t)
    f_old = assemble_source(disc, problem.rhs_func, t - dt)
    return theta * dt * f_now + (1.0 - theta) * dt * f_old


def _check_sizes(disc: Discretization, ops: Operators, **fields: np.ndarray) -> None:
    n = disc.n_dofs
    if ops.n_dofs != n:
        raise DimensionMismatchError("operators", ops.n_dofs, n)
    for name, f in fields.items():
        if f.shape[0] != n:
            raise DimensionMismatchError(name, f.shape[0], n)


def theta_step(
    disc: Discretization,
    ops: Operators,
    problem: WaveProblem,
    u_prev: np.ndarray,
    v_prev: np.ndarray,
    t: float,
    dt: float,
    theta: float,
    solver: SolverConfig = SolverConfig(),
) -> StepResult:
    """
    Advance (U, V) from t-dt to t with the theta-scheme for u_tt = Laplace(u) + f:

      (M + theta^2 dt^2 A) U = M U' + dt M V' - theta(1-theta) dt^2 A U' + theta dt G
      M V = -theta dt A U + M V' - (1-theta) dt A U' + G

    with G = theta dt F(t) + (1-theta) dt F(t-dt) and Dirichlet data evaluated at t.
    M and A are not modified; both solve operators are derived here.
    """
    _check_sizes(disc, ops, u_prev=u_prev, v_prev=v_prev)
    M, A = ops.mass, ops.laplace
    constraints = disc.constraints

    forcing = forcing_terms(disc, problem, t, dt, theta)

    rhs_u = (
        M @ u_prev
        + dt * (M @ v_prev)
        - theta * (1.0 - theta) * dt * dt * (A @ u_prev)
        + theta * dt * forcing
    )
    matrix_u = (M + (theta * theta * dt * dt) * A).tocsr()
    bv_u = interpolate_boundary_values(disc, problem.boundary_id, problem.boundary_u, t)
    res_u = solve_constrained(matrix_u, rhs_u, bv_u, constraints, solver, label="u-equation")
    u = res_u.x

    rhs_v = -theta * dt * (A @ u) + M @ v_prev - (1.0 - theta) * dt * (A @ u_prev) + forcing
    bv_v = interpolate_boundary_values(disc, problem.boundary_id, problem.boundary_v, t)
    res_v = solve_constrained(M, rhs_v, bv_v, constraints, solver, label="v-equation")
    v = res_v.x

    return StepResult(
        u=u,
        v=v,
        iterations_u=res_u.iterations,
        iterations_v=res_v.iterations,
        energy=discrete_energy(ops, u, v),
    )
