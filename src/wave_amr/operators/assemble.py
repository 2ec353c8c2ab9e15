# operators/assemble.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np
import scipy.sparse as sp

from ..core.discretization import Discretization
from ..core.functions import SpaceTimeFunc


# Reference Q1 element matrices on a square of side h, local vertex order
# (0,0), (1,0), (0,1), (1,1). Mass scales with h^2; the 2D Laplace matrix does not.
_MASS_REF = np.array(
    [
        [4.0, 2.0, 2.0, 1.0],
        [2.0, 4.0, 1.0, 2.0],
        [2.0, 1.0, 4.0, 2.0],
        [1.0, 2.0, 2.0, 4.0],
    ]
) / 36.0

_LAPLACE_REF = np.array(
    [
        [4.0, -1.0, -1.0, -2.0],
        [-1.0, 4.0, -2.0, -1.0],
        [-1.0, -2.0, 4.0, -1.0],
        [-2.0, -1.0, -1.0, 4.0],
    ]
) / 6.0

# 2x2 Gauss rule on [0,1]^2 (exact for the bilinear mass matrix)
_G = 0.5 / np.sqrt(3.0)
_QPTS = np.array(
    [
        [0.5 - _G, 0.5 - _G],
        [0.5 + _G, 0.5 - _G],
        [0.5 - _G, 0.5 + _G],
        [0.5 + _G, 0.5 + _G],
    ]
)
_QWTS = np.full(4, 0.25)


def shape_values(xi: np.ndarray, eta: np.ndarray) -> np.ndarray:
    """Q1 shape functions at reference points, shape (..., 4)."""
    xi = np.asarray(xi, dtype=float)
    eta = np.asarray(eta, dtype=float)
    return np.stack(
        [(1.0 - xi) * (1.0 - eta), xi * (1.0 - eta), (1.0 - xi) * eta, xi * eta],
        axis=-1,
    )


@dataclass(frozen=True, eq=False)
class Operators:
    """Mass and Laplace matrices of one discretization. Never modified after assembly."""
    mass: sp.csr_matrix
    laplace: sp.csr_matrix

    @property
    def n_dofs(self) -> int:
        return int(self.mass.shape[0])


def _assemble_cellwise(disc: Discretization, local: np.ndarray, scale: np.ndarray) -> sp.csr_matrix:
    """
    Sum scale[k] * local over all cells into an (n_dofs, n_dofs) CSR matrix.
    """
    cd = disc.cell_dofs
    n_cells = cd.shape[0]
    rows = np.repeat(cd, 4, axis=1).reshape(-1)
    cols = np.tile(cd, (1, 4)).reshape(-1)
    data = (scale[:, None] * local.reshape(1, 16)).reshape(-1)
    if data.size != 16 * n_cells:
        raise ValueError("cell_dofs must have shape (n_cells, 4)")
    N = disc.n_dofs
    return sp.coo_matrix((data, (rows, cols)), shape=(N, N)).tocsr()


def assemble_mass(disc: Discretization) -> sp.csr_matrix:
    """M_ij = integral of phi_i phi_j over the domain."""
    _, _, h = disc.mesh.cell_geometry()
    return _assemble_cellwise(disc, _MASS_REF, h * h)


def assemble_stiffness(disc: Discretization) -> sp.csr_matrix:
    """A_ij = integral of grad(phi_i) . grad(phi_j) over the domain."""
    return _assemble_cellwise(disc, _LAPLACE_REF, np.ones(disc.n_active_cells))


def assemble_operators(disc: Discretization) -> Operators:
    return Operators(mass=assemble_mass(disc), laplace=assemble_stiffness(disc))


def assemble_source(disc: Discretization, f: SpaceTimeFunc, t: float) -> np.ndarray:
    """
    Load vector F_i = integral of f(., t) phi_i, by 2x2 Gauss quadrature per cell.
    """
    x0, y0, h = disc.mesh.cell_geometry()
    xq = x0[:, None] + h[:, None] * _QPTS[None, :, 0]
    yq = y0[:, None] + h[:, None] * _QPTS[None, :, 1]
    fq = np.asarray(f(xq, yq, float(t)), dtype=float)
    if fq.shape != xq.shape:
        fq = np.broadcast_to(fq, xq.shape)

    N_q = shape_values(_QPTS[:, 0], _QPTS[:, 1])            # (4 qpts, 4 shape)
    local = (fq * _QWTS[None, :]) @ N_q * (h * h)[:, None]    # (n_cells, 4)
    return np.bincount(
        disc.cell_dofs.reshape(-1),
        weights=local.reshape(-1),
        minlength=disc.n_dofs,
    )


def interpolate_boundary_values(
    disc: Discretization,
    boundary_id: int,
    g: SpaceTimeFunc,
    t: float,
) -> Dict[int, float]:
    """
    Nodal values of g(., t) on the boundary DoFs with the given id.

    The square carries a single boundary id 0; any other id selects nothing.
    """
    if int(boundary_id) != 0:
        return {}
    dofs = disc.boundary_dofs
    pts = disc.vertices[dofs]
    vals = np.asarray(g(pts[:, 0], pts[:, 1], float(t)), dtype=float)
    vals = np.broadcast_to(vals, dofs.shape)
    return {int(d): float(v) for d, v in zip(dofs, vals)}


def interpolate_function(disc: Discretization, f: SpaceTimeFunc, t: float = 0.0) -> np.ndarray:
    """Nodal interpolant of f(., t), made continuous at hanging nodes."""
    x = disc.vertices[:, 0]
    y = disc.vertices[:, 1]
    u = np.array(np.broadcast_to(np.asarray(f(x, y, float(t)), dtype=float), x.shape))
    return disc.constraints.distribute(u)
