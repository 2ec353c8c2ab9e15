# algorithm/transfer.py
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

from ..core.discretization import Discretization
from ..core.exceptions import DimensionMismatchError, TransferProtocolError
from ..core.mesh import LATTICE_LEVEL


class TransferPhase(Enum):
    IDLE = "idle"
    PREPARED = "prepared"
    DONE = "done"


class SolutionTransfer:
    """
    Two-phase transfer of Q1 fields across a mesh change.

        transfer = SolutionTransfer()
        transfer.prepare(old_disc, [u, v])     # before the mesh is edited
        ... refine / coarsen, distribute new DoFs ...
        u_new, v_new = transfer.interpolate(new_disc)

    prepare() snapshots copies, so later changes to the caller's vectors do not leak
    into the transfer. Each handle is single use; calling the phases out of order
    raises TransferProtocolError.

    New vertices that existed on the old mesh keep their old value (this covers
    coarsening); new vertices inside an old cell take the old bilinear interpolant.
    Hanging-node constraints of the new discretization are not applied here.
    """

    def __init__(self) -> None:
        self.phase = TransferPhase.IDLE
        self._disc: Optional[Discretization] = None
        self._fields: List[np.ndarray] = []

    def prepare(self, disc: Discretization, fields: Sequence[np.ndarray]) -> None:
        if self.phase is not TransferPhase.IDLE:
            raise TransferProtocolError(f"prepare() called in phase '{self.phase.value}'")
        snap = []
        for k, f in enumerate(fields):
            f = np.asarray(f, dtype=float)
            if f.shape != (disc.n_dofs,):
                raise DimensionMismatchError(f"field[{k}]", f.shape[0], disc.n_dofs)
            snap.append(f.copy())
        self._disc = disc
        self._fields = snap
        self.phase = TransferPhase.PREPARED

    def interpolate(self, new_disc: Discretization) -> List[np.ndarray]:
        if self.phase is not TransferPhase.PREPARED:
            raise TransferProtocolError(f"interpolate() called in phase '{self.phase.value}'")
        old = self._disc
        assert old is not None

        old_dof = old.dof_of()
        old_mesh = old.mesh
        n_new = new_disc.n_dofs
        out = [np.zeros(n_new) for _ in self._fields]

        for n, (X, Y) in enumerate(new_disc.vertex_keys):
            key = (int(X), int(Y))
            d = old_dof.get(key)
            if d is not None:
                for f_new, f_old in zip(out, self._fields):
                    f_new[n] = f_old[d]
                continue
            cell = old_mesh.locate(key)
            level, i, j = cell
            s = 1 << (LATTICE_LEVEL - level)
            xi = (key[0] - i * s) / float(s)
            eta = (key[1] - j * s) / float(s)
            w = np.array([(1.0 - xi) * (1.0 - eta), xi * (1.0 - eta), (1.0 - xi) * eta, xi * eta])
            dofs = old.cell_dofs[old_mesh.index(cell)]
            for f_new, f_old in zip(out, self._fields):
                f_new[n] = float(w @ f_old[dofs])

        self._fields = []
        self._disc = None
        self.phase = TransferPhase.DONE
        return out
