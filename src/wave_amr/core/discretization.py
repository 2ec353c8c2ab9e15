# core/discretization.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
import scipy.sparse as sp

from .mesh import QuadMesh, VertexKey, cell_vertex_keys

logger = logging.getLogger(__name__)


class HangingNodeConstraints:
    """
    Affine-free constraint set x[c] = sum_k w_k * x[m_k] for hanging vertices.

    After close(), every constrained DoF is expressed through unconstrained DoFs only
    (chains created by consecutive level jumps are resolved).
    """

    def __init__(self, n_dofs: int) -> None:
        self.n_dofs = int(n_dofs)
        self.lines: Dict[int, List[Tuple[int, float]]] = {}
        self._closed = False
        self._P: sp.csr_matrix | None = None
        self._free: np.ndarray | None = None

    def add_line(self, dof: int, entries: List[Tuple[int, float]]) -> None:
        if self._closed:
            raise RuntimeError("Cannot add constraints after close().")
        self.lines[int(dof)] = [(int(m), float(w)) for m, w in entries]

    def is_constrained(self, dof: int) -> bool:
        return int(dof) in self.lines

    @property
    def n_constraints(self) -> int:
        return len(self.lines)

    def close(self) -> None:
        resolved: Dict[int, List[Tuple[int, float]]] = {}

        def resolve(dof: int, depth: int = 0) -> Dict[int, float]:
            if depth > 64:
                raise RuntimeError(f"Cyclic hanging-node constraint at DoF {dof}.")
            if dof in resolved:
                return dict(resolved[dof])
            out: Dict[int, float] = {}
            for m, w in self.lines[dof]:
                if m in self.lines:
                    for mm, ww in resolve(m, depth + 1).items():
                        out[mm] = out.get(mm, 0.0) + w * ww
                else:
                    out[m] = out.get(m, 0.0) + w
            resolved[dof] = sorted(out.items())
            return out

        for dof in list(self.lines):
            resolve(dof)
        self.lines = resolved
        self._closed = True
        self._build_projection()

    def _build_projection(self) -> None:
        constrained = np.zeros(self.n_dofs, dtype=bool)
        constrained[list(self.lines)] = True
        free = np.flatnonzero(~constrained)
        reduced = -np.ones(self.n_dofs, dtype=int)
        reduced[free] = np.arange(free.size)

        rows: list[int] = list(free)
        cols: list[int] = list(range(free.size))
        data: list[float] = [1.0] * free.size
        for dof, entries in self.lines.items():
            for m, w in entries:
                rows.append(dof)
                cols.append(int(reduced[m]))
                data.append(w)

        self._free = free
        self._P = sp.coo_matrix((data, (rows, cols)), shape=(self.n_dofs, free.size)).tocsr()

    @property
    def projection(self) -> sp.csr_matrix:
        """P with x = P y, mapping unconstrained DoFs y to all DoFs x."""
        if self._P is None:
            raise RuntimeError("HangingNodeConstraints.close() has not been called.")
        return self._P

    @property
    def free_dofs(self) -> np.ndarray:
        if self._free is None:
            raise RuntimeError("HangingNodeConstraints.close() has not been called.")
        return self._free

    def reduced_index(self) -> np.ndarray:
        """Map full DoF index -> index in the unconstrained space (-1 if constrained)."""
        out = -np.ones(self.n_dofs, dtype=int)
        out[self.free_dofs] = np.arange(self.free_dofs.size)
        return out

    def distribute(self, x: np.ndarray) -> np.ndarray:
        """Overwrite constrained entries of x in place so that x is continuous; returns x."""
        if x.shape[0] != self.n_dofs:
            raise ValueError(f"x has size {x.shape[0]}, expected {self.n_dofs}")
        for dof, entries in self.lines.items():
            x[dof] = sum(w * x[m] for m, w in entries)
        return x

    def condense(self, matrix: sp.spmatrix, rhs: np.ndarray) -> Tuple[sp.csr_matrix, np.ndarray]:
        """Galerkin restriction to the unconstrained space: (P^T S P, P^T b)."""
        P = self.projection
        return (P.T @ matrix @ P).tocsr(), P.T @ rhs

    def expand(self, y: np.ndarray) -> np.ndarray:
        return self.projection @ y


@dataclass(frozen=True, eq=False)
class Discretization:
    """
    Mesh + bilinear (Q1) DoF numbering + hanging-node constraints.

    DoFs live on mesh vertices, numbered in lexicographic order of their lattice
    keys. cell_dofs[k] lists the DoFs of mesh.cells[k] in the order
    (x0,y0), (x1,y0), (x0,y1), (x1,y1).
    """
    mesh: QuadMesh
    degree: int
    vertex_keys: np.ndarray        # (n_dofs, 2) int64 lattice keys
    vertices: np.ndarray           # (n_dofs, 2) float coordinates
    cell_dofs: np.ndarray          # (n_cells, 4) int
    constraints: HangingNodeConstraints
    boundary_dofs: np.ndarray      # unconstrained DoFs on the domain boundary

    @property
    def n_dofs(self) -> int:
        return int(self.vertex_keys.shape[0])

    @property
    def n_active_cells(self) -> int:
        return self.mesh.n_active_cells

    def dof_of(self) -> Dict[VertexKey, int]:
        return {(int(X), int(Y)): k for k, (X, Y) in enumerate(self.vertex_keys)}


def distribute(mesh: QuadMesh, degree: int = 1) -> Discretization:
    """
    Distribute Q1 DoFs on `mesh` and build its hanging-node constraints.

    Deterministic in the mesh: the same mesh always yields the same numbering.
    """
    if int(degree) != 1:
        raise ValueError("Only bilinear (degree=1) elements are supported.")

    per_cell = [cell_vertex_keys(c) for c in mesh.cells]
    keys = sorted({k for quad in per_cell for k in quad})
    dof_of: Dict[VertexKey, int] = {k: n for n, k in enumerate(keys)}
    n_dofs = len(keys)

    cell_dofs = np.array([[dof_of[k] for k in quad] for quad in per_cell], dtype=int)
    vertex_keys = np.array(keys, dtype=np.int64).reshape(n_dofs, 2)
    vertices = mesh.lattice_to_coords(vertex_keys)

    # A vertex at the midpoint of an active cell's edge hangs on that edge.
    constraints = HangingNodeConstraints(n_dofs)
    edges = ((0, 1), (2, 3), (0, 2), (1, 3))
    for quad in per_cell:
        for a, b in edges:
            ka, kb = quad[a], quad[b]
            mid = ((ka[0] + kb[0]) // 2, (ka[1] + kb[1]) // 2)
            m = dof_of.get(mid)
            if m is not None and not constraints.is_constrained(m):
                constraints.add_line(m, [(dof_of[ka], 0.5), (dof_of[kb], 0.5)])
    constraints.close()

    boundary = [
        n for n, k in enumerate(keys)
        if mesh.on_boundary(k) and not constraints.is_constrained(n)
    ]

    logger.debug(
        "Distributed %d DoFs on %d active cells (%d hanging nodes).",
        n_dofs, mesh.n_active_cells, constraints.n_constraints,
    )
    return Discretization(
        mesh=mesh,
        degree=int(degree),
        vertex_keys=vertex_keys,
        vertices=vertices,
        cell_dofs=cell_dofs,
        constraints=constraints,
        boundary_dofs=np.array(boundary, dtype=int),
    )
