import numpy as np

from wave_amr.core.discretization import distribute
from wave_amr.core.mesh import QuadMesh
from wave_amr.operators.assemble import interpolate_function


def test_uniform_dofs_have_no_constraints():
    disc = distribute(QuadMesh.hyper_cube().refine_global(2))
    assert disc.n_dofs == 25
    assert disc.constraints.n_constraints == 0
    assert disc.boundary_dofs.size == 16
    assert disc.cell_dofs.shape == (16, 4)


def test_hanging_nodes_detected(hanging_disc):
    disc = hanging_disc
    assert disc.n_active_cells == 19
    assert disc.n_dofs == 25 + 5
    # the refined cell has four coarse neighbours: one hanging node per edge
    assert disc.constraints.n_constraints == 4
    for dof, entries in disc.constraints.lines.items():
        assert [w for _, w in entries] == [0.5, 0.5]
        assert dof not in set(disc.boundary_dofs)


def test_hanging_value_is_edge_average(hanging_disc):
    u = interpolate_function(hanging_disc, lambda x, y, t: x * x + y)
    for dof, entries in hanging_disc.constraints.lines.items():
        assert np.isclose(u[dof], sum(w * u[m] for m, w in entries))


def test_linear_function_is_continuous(hanging_disc):
    disc = hanging_disc
    exact = 1.0 + 2.0 * disc.vertices[:, 0] - disc.vertices[:, 1]
    u = interpolate_function(disc, lambda x, y, t: 1.0 + 2.0 * x - y)
    assert np.allclose(u, exact)


def test_projection_shape(hanging_disc):
    c = hanging_disc.constraints
    P = c.projection
    assert P.shape == (hanging_disc.n_dofs, hanging_disc.n_dofs - c.n_constraints)
    y = np.arange(P.shape[1], dtype=float)
    x = c.expand(y)
    assert np.allclose(x, c.distribute(x.copy()))


def test_constraint_masters_are_unconstrained():
    mesh = QuadMesh.hyper_cube().refine_global(1)
    mesh = mesh.refine_and_coarsen({(1, 0, 0)}, set())
    mesh = mesh.refine_and_coarsen({(2, 1, 1)}, set())
    disc = distribute(mesh)
    assert mesh.is_balanced()
    for entries in disc.constraints.lines.values():
        for m, _ in entries:
            assert not disc.constraints.is_constrained(m)


def test_close_resolves_chains():
    from wave_amr.core.discretization import HangingNodeConstraints

    c = HangingNodeConstraints(5)
    c.add_line(2, [(0, 0.5), (1, 0.5)])
    c.add_line(3, [(2, 0.5), (4, 0.5)])
    c.close()
    assert dict(c.lines[3]) == {0: 0.25, 1: 0.25, 4: 0.5}
    assert list(c.free_dofs) == [0, 1, 4]
