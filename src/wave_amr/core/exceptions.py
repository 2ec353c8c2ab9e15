# core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Optional


class WaveSimError(Exception):
    """Base class for all errors raised by the wave solver."""


class SolverConvergenceError(WaveSimError):
    """
    The iterative linear solve did not reach its tolerance within the iteration budget.

    There is no usable partial result for an implicit (U, V) pair, so this
    terminates the run.
    """

    def __init__(self, label: str, iterations: int, residual: float, tolerance: float) -> None:
        self.label = label
        self.iterations = int(iterations)
        self.residual = float(residual)
        self.tolerance = float(tolerance)
        super().__init__(
            f"{label}: CG did not converge after {self.iterations} iterations "
            f"(residual={self.residual:.3e}, tolerance={self.tolerance:.3e})"
        )


class DimensionMismatchError(WaveSimError):
    """A field or operator does not live on the current discretization."""

    def __init__(self, name: str, size: int, n_dofs: int) -> None:
        self.name = name
        self.size = int(size)
        self.n_dofs = int(n_dofs)
        super().__init__(f"{name} has size {self.size}, discretization has {self.n_dofs} DoFs")


class TransferProtocolError(WaveSimError):
    """SolutionTransfer was driven out of order (prepare -> mesh edit -> interpolate)."""


def format_failure_report(exc: BaseException, context: Optional[Dict[str, Any]] = None) -> str:
    """
    Format the top-level abort message for a failed run.

    context may carry 'step', 'time', 'n_dofs' and 'phase'; missing keys are skipped.
    """
    context = context or {}
    lines = [
        "",
        "----------------------------------------------------",
        f"Exception on processing: {type(exc).__name__}",
    ]
    for key in ("phase", "step", "time", "n_active_cells", "n_dofs"):
        if key in context and context[key] is not None:
            lines.append(f"  {key:<15} {context[key]}")
    lines.append("")
    for line in str(exc).splitlines() or [""]:
        lines.append(f"  {line}")
    lines.append("Aborting!")
    lines.append("----------------------------------------------------")
    return "\n".join(lines)
