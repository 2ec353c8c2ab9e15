import numpy as np
import pytest
import scipy.sparse as sp

from wave_amr.core.config import SolverConfig
from wave_amr.core.exceptions import SolverConvergenceError
from wave_amr.operators.assemble import assemble_stiffness, interpolate_boundary_values
from wave_amr.operators.solve import (
    apply_boundary_values,
    residual_norms,
    solve_constrained,
    solve_linear_system,
)


def _laplace_1d(n: int) -> sp.csr_matrix:
    return sp.diags([-np.ones(n - 1), 2.0 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1]).tocsr()


def test_apply_boundary_values_is_symmetric_and_exact():
    A = _laplace_1d(8)
    b = np.ones(8)
    A2, b2 = apply_boundary_values({0: 1.0, 7: -2.0}, A, b)
    assert abs(A2 - A2.T).max() == 0.0
    # inputs untouched
    assert A[0, 1] == -1.0 and b[0] == 1.0
    x = solve_linear_system(A2, b2).x
    assert np.isclose(x[0], 1.0) and np.isclose(x[7], -2.0)


def test_solve_converges_and_reports_iterations():
    A = _laplace_1d(20) + sp.identity(20)
    f = np.linspace(0.0, 1.0, 20)
    res = solve_linear_system(A, f, SolverConfig(max_iterations=100, rtol=1e-10))
    assert res.iterations > 0
    norms = residual_norms(A, res.x, f)
    assert norms["||r||2/||f||2"] < 1e-9


def test_zero_rhs_short_circuits():
    res = solve_linear_system(_laplace_1d(5), np.zeros(5))
    assert res.iterations == 0
    assert np.all(res.x == 0.0)


def test_non_convergence_is_fatal():
    A = _laplace_1d(50)
    f = np.sin(np.arange(50.0))
    with pytest.raises(SolverConvergenceError) as info:
        solve_linear_system(A, f, SolverConfig(max_iterations=2, rtol=1e-12), label="u-equation")
    assert info.value.label == "u-equation"
    assert info.value.iterations <= 2


def test_constrained_solve_reproduces_linear_harmonic(hanging_disc):
    disc = hanging_disc
    A = assemble_stiffness(disc)
    g = lambda x, y, t: 0.5 + x - 2.0 * y
    bv = interpolate_boundary_values(disc, 0, g, 0.0)
    res = solve_constrained(A, np.zeros(disc.n_dofs), bv, disc.constraints)
    exact = g(disc.vertices[:, 0], disc.vertices[:, 1], 0.0)
    assert np.allclose(res.x, exact, atol=1e-6)
    for dof, entries in disc.constraints.lines.items():
        assert np.isclose(res.x[dof], sum(w * res.x[m] for m, w in entries))
