import numpy as np

from wave_amr.algorithm.theta_scheme import discrete_energy, forcing_terms, theta_step
from wave_amr.core.discretization import distribute
from wave_amr.core.functions import WaveProblem, make_default_problem, make_default_problems
from wave_amr.core.mesh import QuadMesh
from wave_amr.operators.assemble import assemble_operators

DT = 1.0 / 64
THETA = 0.5 + 50.0 * DT


def _setup(level: int = 3):
    disc = distribute(QuadMesh.hyper_cube().refine_global(level))
    return disc, assemble_operators(disc)


def test_quiet_problem_stays_at_rest():
    disc, ops = _setup(2)
    z = np.zeros(disc.n_dofs)
    res = theta_step(disc, ops, make_default_problems()["quiet"], z, z, DT, DT, THETA)
    assert np.all(res.u == 0.0) and np.all(res.v == 0.0)
    assert res.iterations_u == 0 and res.iterations_v == 0
    assert res.energy == 0.0


def test_first_step_imposes_current_boundary_values():
    disc, ops = _setup(3)
    z = np.zeros(disc.n_dofs)
    res = theta_step(disc, ops, make_default_problem(), z, z, DT, DT, THETA)
    pts = disc.vertices
    for d in disc.boundary_dofs:
        x, y = pts[d]
        if x < 0 and abs(y) < 1.0 / 3.0:
            assert np.isclose(res.u[d], np.sin(4 * np.pi * DT))
            assert np.isclose(res.v[d], 4 * np.pi * np.cos(4 * np.pi * DT))
        else:
            assert abs(res.u[d]) < 1e-12
    assert res.iterations_u > 0 and res.iterations_v > 0
    assert res.energy > 0.0


def test_operators_are_not_modified():
    disc, ops = _setup(2)
    M0, A0 = ops.mass.copy(), ops.laplace.copy()
    z = np.zeros(disc.n_dofs)
    theta_step(disc, ops, make_default_problem(), z, z, DT, DT, THETA)
    assert abs(ops.mass - M0).max() == 0.0
    assert abs(ops.laplace - A0).max() == 0.0


def test_forcing_terms_blend_two_times():
    disc, _ = _setup(2)
    problem = WaveProblem(name="ramp", rhs_func=lambda x, y, t: np.full_like(x, t))
    g = forcing_terms(disc, problem, 1.0, 0.5, 0.75)
    # theta*dt*F(1) + (1-theta)*dt*F(0.5), F(t) sums to 4t
    assert np.isclose(g.sum(), 0.75 * 0.5 * 4.0 + 0.25 * 0.5 * 2.0)


def test_energy_does_not_grow_after_pulse():
    disc, ops = _setup(3)
    problem = make_default_problem()
    u = np.zeros(disc.n_dofs)
    v = np.zeros(disc.n_dofs)
    t = 0.0
    energies = []
    while t <= 1.5:
        t += DT
        res = theta_step(disc, ops, problem, u, v, t, DT, THETA)
        u, v = res.u, res.v
        energies.append((t, res.energy))
    after = [e for (t, e) in energies if t > 0.5 + 2 * DT]
    assert all(np.isfinite(e) for _, e in energies)
    assert max(e for _, e in energies) > 0.0
    for a, b in zip(after, after[1:]):
        assert b <= a * (1.0 + 1e-6) + 1e-14
    assert np.isclose(discrete_energy(ops, u, v), energies[-1][1])
