# core/mesh.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np


# Vertices are addressed on an integer lattice of 2**LATTICE_LEVEL intervals per
# axis, so vertex identity is exact for every cell coarser than that level.
LATTICE_LEVEL = 30
LATTICE_SIZE = 1 << LATTICE_LEVEL

Cell = Tuple[int, int, int]        # (level, i, j)
VertexKey = Tuple[int, int]        # lattice coordinates (X, Y)

# side index -> (di, dj)
SIDES: Tuple[Tuple[int, int], ...] = ((-1, 0), (1, 0), (0, -1), (0, 1))


def parent(cell: Cell) -> Cell:
    level, i, j = cell
    if level == 0:
        raise ValueError("The root cell has no parent.")
    return (level - 1, i >> 1, j >> 1)


def children(cell: Cell) -> Tuple[Cell, Cell, Cell, Cell]:
    """Children in lexicographic order (0,0), (1,0), (0,1), (1,1)."""
    level, i, j = cell
    return (
        (level + 1, 2 * i, 2 * j),
        (level + 1, 2 * i + 1, 2 * j),
        (level + 1, 2 * i, 2 * j + 1),
        (level + 1, 2 * i + 1, 2 * j + 1),
    )


def cell_vertex_keys(cell: Cell) -> Tuple[VertexKey, VertexKey, VertexKey, VertexKey]:
    """Lattice keys of the four vertices, ordered like children()."""
    level, i, j = cell
    s = 1 << (LATTICE_LEVEL - level)
    return (
        (i * s, j * s),
        ((i + 1) * s, j * s),
        (i * s, (j + 1) * s),
        ((i + 1) * s, (j + 1) * s),
    )


class QuadMesh:
    """
    A 2D quadtree mesh of square cells on [x_min, x_max]^2.

    The coarse mesh is a single root cell (level 0). A cell (level, i, j) covers
      x in [x_min + i*h, x_min + (i+1)*h],  y in [x_min + j*h, x_min + (j+1)*h]
    with h = (x_max - x_min) / 2**level.

    Instances are immutable: refinement and coarsening return a new mesh.
    Neighbouring active cells differ by at most one level across a face.
    """

    def __init__(self, cells: Iterable[Cell], x_min: float = -1.0, x_max: float = 1.0) -> None:
        if float(x_max) <= float(x_min):
            raise ValueError("QuadMesh requires x_max > x_min.")
        self.x_min = float(x_min)
        self.x_max = float(x_max)
        self.cells: Tuple[Cell, ...] = tuple(sorted(set(cells)))
        if not self.cells:
            raise ValueError("QuadMesh requires at least one active cell.")
        self._index: Dict[Cell, int] = {c: k for k, c in enumerate(self.cells)}

    # -----------------------------
    # Construction
    # -----------------------------

    @classmethod
    def hyper_cube(cls, x_min: float = -1.0, x_max: float = 1.0) -> "QuadMesh":
        return cls([(0, 0, 0)], x_min=x_min, x_max=x_max)

    def refine_global(self, times: int = 1) -> "QuadMesh":
        mesh = self
        for _ in range(int(times)):
            mesh = mesh.execute_coarsening_and_refinement(set(mesh.cells), set())
        return mesh

    # -----------------------------
    # Queries
    # -----------------------------

    @property
    def n_active_cells(self) -> int:
        return len(self.cells)

    @property
    def n_levels(self) -> int:
        return max(c[0] for c in self.cells) + 1

    @property
    def levels(self) -> np.ndarray:
        return np.array([c[0] for c in self.cells], dtype=int)

    def index(self, cell: Cell) -> int:
        return self._index[cell]

    def is_active(self, cell: Cell) -> bool:
        return cell in self._index

    def cell_size(self, level: int) -> float:
        return (self.x_max - self.x_min) / float(1 << int(level))

    def cell_bounds(self, cell: Cell) -> Tuple[float, float, float]:
        """Return (x0, y0, h): lower-left corner and side length."""
        level, i, j = cell
        h = self.cell_size(level)
        return self.x_min + i * h, self.x_min + j * h, h

    def cell_geometry(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vectorized cell_bounds over all active cells (mesh order)."""
        arr = np.array(self.cells, dtype=np.int64)
        h = (self.x_max - self.x_min) / np.power(2.0, arr[:, 0])
        return self.x_min + arr[:, 1] * h, self.x_min + arr[:, 2] * h, h

    def lattice_to_coords(self, keys: np.ndarray) -> np.ndarray:
        keys = np.asarray(keys, dtype=np.float64)
        return self.x_min + (self.x_max - self.x_min) * keys / float(LATTICE_SIZE)

    def on_boundary(self, key: VertexKey) -> bool:
        X, Y = key
        return X == 0 or Y == 0 or X == LATTICE_SIZE or Y == LATTICE_SIZE

    def covering_cell(self, cell: Cell) -> Optional[Cell]:
        """
        Active cell equal to or containing the region of `cell`, or None when the
        region is covered by finer active cells.
        """
        level, i, j = cell
        for up in range(level + 1):
            candidate = (level - up, i >> up, j >> up)
            if candidate in self._index:
                return candidate
        return None

    def face_neighbors(self, cell: Cell, side: int) -> List[Cell]:
        """
        Active cells sharing (part of) the face `side` of `cell`.

        side: 0 = -x, 1 = +x, 2 = -y, 3 = +y. Boundary faces have no neighbours.
        `cell` itself need not be active.
        """
        level, i, j = cell
        di, dj = SIDES[side]
        ni, nj = i + di, j + dj
        n = 1 << level
        if not (0 <= ni < n and 0 <= nj < n):
            return []
        nb = (level, ni, nj)
        cover = self.covering_cell(nb)
        if cover is not None:
            return [cover]
        return self._descendants_on_face(nb, side)

    def _descendants_on_face(self, cell: Cell, side: int) -> List[Cell]:
        # children of `cell` touching the face opposite to `side`
        if side == 0:
            picks = (1, 3)
        elif side == 1:
            picks = (0, 2)
        elif side == 2:
            picks = (2, 3)
        else:
            picks = (0, 1)
        out: List[Cell] = []
        kids = children(cell)
        for k in picks:
            child = kids[k]
            if child in self._index:
                out.append(child)
            else:
                out.extend(self._descendants_on_face(child, side))
        return out

    def locate(self, key: VertexKey) -> Cell:
        """Return an active cell whose closure contains the lattice point `key`."""
        X, Y = int(key[0]), int(key[1])
        for level in range(self.n_levels):
            shift = LATTICE_LEVEL - level
            n = 1 << level
            cell = (level, min(X >> shift, n - 1), min(Y >> shift, n - 1))
            if cell in self._index:
                return cell
        raise ValueError(f"No active cell contains lattice point {key}.")

    # -----------------------------
    # Refinement / coarsening
    # -----------------------------

    def prepare_coarsening_and_refinement(
        self,
        refine: Iterable[Cell],
        coarsen: Iterable[Cell],
    ) -> Tuple[Set[Cell], Set[Cell]]:
        """
        Adjust flags so that executing them keeps the mesh 2:1 balanced.

        - Refinement flags propagate to coarser face neighbours until closed.
        - A sibling group is coarsened only if all four siblings are active, all
          flagged for coarsening, none flagged for refinement, and no face neighbour
          of the parent ends up more than one level finer than the parent.

        Returns (refine, coarsen) where coarsen lists the parents to be restored.
        """
        refine_set = {c for c in refine if c in self._index}
        queue = list(refine_set)
        while queue:
            cell = queue.pop()
            for side in range(4):
                for nb in self.face_neighbors(cell, side):
                    if nb[0] < cell[0] and nb not in refine_set:
                        refine_set.add(nb)
                        queue.append(nb)

        candidates = {c for c in coarsen if c in self._index and c[0] > 0} - refine_set
        parents: Set[Cell] = set()
        for cell in sorted(candidates):
            p = parent(cell)
            if p in parents:
                continue
            if not all(k in candidates for k in children(p)):
                continue
            balanced = True
            for side in range(4):
                for nb in self.face_neighbors(p, side):
                    post_level = nb[0] + (1 if nb in refine_set else 0)
                    if post_level > p[0] + 1:
                        balanced = False
                        break
                if not balanced:
                    break
            if balanced:
                parents.add(p)
        return refine_set, parents

    def execute_coarsening_and_refinement(
        self,
        refine: Set[Cell],
        coarsen_parents: Set[Cell],
    ) -> "QuadMesh":
        """
        Apply prepared flags and return the new mesh.

        `refine` are active cells to split; `coarsen_parents` are parents whose four
        active children are merged (as returned by prepare_coarsening_and_refinement).
        """
        active = set(self.cells)
        for cell in refine:
            if cell not in active:
                raise ValueError(f"Cannot refine inactive cell {cell}.")
        new_cells = active - set(refine)
        for cell in refine:
            new_cells.update(children(cell))
        for p in coarsen_parents:
            kids = children(p)
            if not all(k in active and k not in refine for k in kids):
                raise ValueError(f"Cannot coarsen {p}: children are not all active leaves.")
            new_cells.difference_update(kids)
            new_cells.add(p)
        return QuadMesh(new_cells, x_min=self.x_min, x_max=self.x_max)

    def refine_and_coarsen(self, refine: Iterable[Cell], coarsen: Iterable[Cell]) -> "QuadMesh":
        refine_set, parents = self.prepare_coarsening_and_refinement(refine, coarsen)
        return self.execute_coarsening_and_refinement(refine_set, parents)

    def is_balanced(self) -> bool:
        for cell in self.cells:
            for side in range(4):
                for nb in self.face_neighbors(cell, side):
                    if abs(nb[0] - cell[0]) > 1:
                        return False
        return True

    def __repr__(self) -> str:
        return f"QuadMesh(n_active_cells={self.n_active_cells}, n_levels={self.n_levels})"
