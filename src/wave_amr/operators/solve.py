# operators/solve.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from ..core.config import SolverConfig
from ..core.discretization import HangingNodeConstraints
from ..core.exceptions import SolverConvergenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SolveResult:
    x: np.ndarray
    iterations: int
    residual: float


# ============================
# Low-level linear algebra
# ============================

def compute_residual(A: sp.spmatrix, u: np.ndarray, f: np.ndarray) -> np.ndarray:
    """
    r = f - A u
    """
    return f - A @ u


def residual_norms(A: sp.spmatrix, u: np.ndarray, f: np.ndarray) -> Dict[str, float]:
    """
    Common residual diagnostics.
    """
    r = compute_residual(A, u, f)
    fn = float(np.linalg.norm(f))
    rn = float(np.linalg.norm(r))
    return {
        "||r||2": rn,
        "||f||2": fn,
        "||r||2/||f||2": rn / fn if fn > 0 else np.nan,
        "||u||2": float(np.linalg.norm(u)),
        "||r||inf": float(np.max(np.abs(r))) if r.size else 0.0,
    }


def apply_boundary_values(
    boundary_values: Mapping[int, float],
    matrix: sp.spmatrix,
    rhs: np.ndarray,
) -> Tuple[sp.csr_matrix, np.ndarray]:
    """
    Impose Dirichlet values by symmetric elimination, on copies of matrix and rhs.

    For every constrained DoF i with value g_i:
      - rhs <- rhs - A[:, i] g_i
      - row i and column i are cleared, A_ii keeps its value (1 if it was 0)
      - rhs_i = A_ii g_i
    so the solution takes the value g_i exactly and the matrix stays symmetric.
    """
    A = sp.csr_matrix(matrix, copy=True)
    b = np.array(rhs, dtype=float, copy=True)
    if not boundary_values:
        return A, b

    n = A.shape[0]
    dofs = np.fromiter(boundary_values.keys(), dtype=int, count=len(boundary_values))
    g = np.fromiter(boundary_values.values(), dtype=float, count=len(boundary_values))
    if dofs.min() < 0 or dofs.max() >= n:
        raise ValueError("boundary DoF index out of range")

    diag = A.diagonal()
    d = diag[dofs]
    d[d == 0.0] = 1.0

    g_full = np.zeros(n)
    g_full[dofs] = g
    b -= A @ g_full
    b[dofs] = d * g

    keep = np.ones(n)
    keep[dofs] = 0.0
    K = sp.diags(keep)
    new_diag = np.zeros(n)
    new_diag[dofs] = d
    A = (K @ A @ K + sp.diags(new_diag)).tocsr()
    A.eliminate_zeros()
    return A, b


def solve_linear_system(
    A: sp.spmatrix,
    f: np.ndarray,
    config: SolverConfig = SolverConfig(),
    *,
    label: str = "system",
) -> SolveResult:
    """
    Unpreconditioned CG on a symmetric positive definite system.

    Converged when ||f - A x|| <= rtol * ||f|| within max_iterations;
    otherwise SolverConvergenceError.
    """
    f = np.asarray(f, dtype=float)
    f_norm = float(np.linalg.norm(f))
    if f_norm == 0.0:
        return SolveResult(x=np.zeros_like(f), iterations=0, residual=0.0)

    count = [0]

    def _count(_xk: np.ndarray) -> None:
        count[0] += 1

    x, info = spla.cg(
        A,
        f,
        rtol=float(config.rtol),
        atol=0.0,
        maxiter=int(config.max_iterations),
        callback=_count,
    )
    residual = float(np.linalg.norm(compute_residual(A, x, f)))
    if info != 0:
        raise SolverConvergenceError(label, count[0], residual, float(config.rtol) * f_norm)

    logger.debug("%s: CG converged in %d iterations (residual %.3e).", label, count[0], residual)
    return SolveResult(x=x, iterations=count[0], residual=residual)


# ============================
# Mid-level: constrained solve on a discretization
# ============================

def solve_constrained(
    matrix: sp.spmatrix,
    rhs: np.ndarray,
    boundary_values: Mapping[int, float],
    constraints: HangingNodeConstraints,
    config: SolverConfig = SolverConfig(),
    *,
    label: str = "system",
) -> SolveResult:
    """
    Solve matrix x = rhs subject to hanging-node constraints and Dirichlet values.

    Steps: condense to unconstrained DoFs -> eliminate boundary values -> CG -> expand.
    Boundary DoFs must be unconstrained.
    """
    n = matrix.shape[0]
    if rhs.shape[0] != n or constraints.n_dofs != n:
        raise ValueError(
            f"size mismatch: matrix {matrix.shape}, rhs {rhs.shape}, constraints {constraints.n_dofs}"
        )

    K, r = constraints.condense(matrix, rhs)
    reduced = constraints.reduced_index()
    reduced_values: Dict[int, float] = {}
    for dof, val in boundary_values.items():
        k = int(reduced[int(dof)])
        if k < 0:
            raise ValueError(f"boundary DoF {dof} is constrained by a hanging node")
        reduced_values[k] = float(val)

    K, r = apply_boundary_values(reduced_values, K, r)
    res = solve_linear_system(K, r, config, label=label)
    return SolveResult(x=constraints.expand(res.x), iterations=res.iterations, residual=res.residual)
