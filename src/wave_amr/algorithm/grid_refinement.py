# algorithm/grid_refinement.py
from __future__ import annotations

import logging
from typing import Optional, Set, Tuple

import numpy as np

from ..core.mesh import Cell, QuadMesh

logger = logging.getLogger(__name__)


def mark_fixed_fraction(
    errors: np.ndarray,
    refine_fraction: float = 0.6,
    coarsen_fraction: float = 0.4,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Fixed-fraction marking on per-cell indicators.

    - refine: the fewest cells with the largest indicators whose sum reaches
      refine_fraction of the total
    - coarsen: the cells with the smallest indicators whose sum stays within
      coarsen_fraction of the total

    Returns boolean masks (refine, coarsen); a cell is never in both.
    """
    err = np.asarray(errors, dtype=float)
    if err.ndim != 1:
        raise ValueError("errors must be 1D (one value per active cell)")
    if np.any(err < 0.0) or not np.all(np.isfinite(err)):
        raise ValueError("errors must be finite and non-negative")

    n = err.size
    refine = np.zeros(n, dtype=bool)
    coarsen = np.zeros(n, dtype=bool)
    total = float(err.sum())
    if n == 0 or total == 0.0:
        return refine, coarsen

    if refine_fraction > 0.0:
        order = np.argsort(-err, kind="stable")
        cum = np.cumsum(err[order])
        n_ref = int(np.searchsorted(cum, refine_fraction * total, side="left")) + 1
        refine[order[: min(n_ref, n)]] = True

    if coarsen_fraction > 0.0:
        order = np.argsort(err, kind="stable")
        cum = np.cumsum(err[order])
        n_coa = int(np.searchsorted(cum, coarsen_fraction * total, side="right"))
        coarsen[order[:n_coa]] = True

    coarsen &= ~refine
    return refine, coarsen


def clamp_to_levels(
    mesh: QuadMesh,
    refine: np.ndarray,
    coarsen: np.ndarray,
    min_level: Optional[int] = None,
    max_level: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Clear refine flags on cells at or beyond max_level and coarsen flags on cells at
    or below min_level. Returns new masks.
    """
    levels = mesh.levels
    refine = np.array(refine, dtype=bool, copy=True)
    coarsen = np.array(coarsen, dtype=bool, copy=True)
    if refine.shape != levels.shape or coarsen.shape != levels.shape:
        raise ValueError("flag arrays must have one entry per active cell")
    if max_level is not None:
        refine &= levels < int(max_level)
    if min_level is not None:
        coarsen &= levels > int(min_level)
    return refine, coarsen


def flags_to_cells(mesh: QuadMesh, mask: np.ndarray) -> Set[Cell]:
    return {mesh.cells[k] for k in np.flatnonzero(mask)}


def mark_and_refine(
    mesh: QuadMesh,
    errors: np.ndarray,
    refine_fraction: float = 0.6,
    coarsen_fraction: float = 0.4,
    level_bounds: Optional[Tuple[int, int]] = None,
) -> QuadMesh:
    """
    Fixed-fraction marking, level clamping, 2:1 closure and execution in one call.
    """
    errors = np.asarray(errors, dtype=float)
    if errors.shape[0] != mesh.n_active_cells:
        raise ValueError(f"errors has size {errors.shape[0]}, mesh has {mesh.n_active_cells} cells")

    refine, coarsen = mark_fixed_fraction(errors, refine_fraction, coarsen_fraction)
    if level_bounds is not None:
        refine, coarsen = clamp_to_levels(mesh, refine, coarsen, *level_bounds)

    refine_set, parents = mesh.prepare_coarsening_and_refinement(
        flags_to_cells(mesh, refine), flags_to_cells(mesh, coarsen)
    )
    logger.debug(
        "Marked %d cells for refinement (%d after closure), %d sibling groups for coarsening.",
        int(refine.sum()), len(refine_set), len(parents),
    )
    return mesh.execute_coarsening_and_refinement(refine_set, parents)
