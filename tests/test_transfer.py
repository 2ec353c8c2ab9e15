import numpy as np
import pytest

from wave_amr.algorithm.transfer import SolutionTransfer, TransferPhase
from wave_amr.core.discretization import distribute
from wave_amr.core.exceptions import DimensionMismatchError, TransferProtocolError
from wave_amr.core.mesh import QuadMesh, children
from wave_amr.operators.assemble import interpolate_function


def _bilinear(x, y, t):
    return 1.0 + x - 2.0 * y + 3.0 * x * y


def test_refinement_transfer_is_exact_for_bilinear():
    old = distribute(QuadMesh.hyper_cube().refine_global(2))
    u = interpolate_function(old, _bilinear)
    v = -u
    transfer = SolutionTransfer()
    transfer.prepare(old, [u, v])
    new = distribute(old.mesh.refine_and_coarsen({(2, 1, 1), (2, 3, 3)}, set()))
    u_new, v_new = transfer.interpolate(new)
    new.constraints.distribute(u_new)
    new.constraints.distribute(v_new)
    exact = _bilinear(new.vertices[:, 0], new.vertices[:, 1], 0.0)
    assert u_new.shape == (new.n_dofs,)
    assert np.allclose(u_new, exact)
    assert np.allclose(v_new, -exact)
    assert transfer.phase is TransferPhase.DONE


def test_coarsening_transfer_keeps_vertex_values():
    old = distribute(QuadMesh.hyper_cube().refine_global(2))
    u = interpolate_function(old, _bilinear)
    transfer = SolutionTransfer()
    transfer.prepare(old, [u])
    new = distribute(old.mesh.refine_and_coarsen(set(), set(children((1, 1, 1)))))
    assert new.n_dofs < old.n_dofs
    (u_new,) = transfer.interpolate(new)
    assert np.allclose(u_new, _bilinear(new.vertices[:, 0], new.vertices[:, 1], 0.0))


def test_prepare_snapshots_fields():
    old = distribute(QuadMesh.hyper_cube().refine_global(1))
    u = np.ones(old.n_dofs)
    transfer = SolutionTransfer()
    transfer.prepare(old, [u])
    u[:] = 7.0
    (u_new,) = transfer.interpolate(distribute(old.mesh.refine_global(1)))
    assert np.allclose(u_new, 1.0)


def test_out_of_order_use_is_rejected():
    disc = distribute(QuadMesh.hyper_cube().refine_global(1))
    transfer = SolutionTransfer()
    with pytest.raises(TransferProtocolError):
        transfer.interpolate(disc)
    transfer.prepare(disc, [np.zeros(disc.n_dofs)])
    with pytest.raises(TransferProtocolError):
        transfer.prepare(disc, [np.zeros(disc.n_dofs)])
    transfer.interpolate(disc)
    with pytest.raises(TransferProtocolError):
        transfer.interpolate(disc)


def test_prepare_rejects_wrong_size():
    disc = distribute(QuadMesh.hyper_cube().refine_global(1))
    with pytest.raises(DimensionMismatchError):
        SolutionTransfer().prepare(disc, [np.zeros(disc.n_dofs + 1)])
