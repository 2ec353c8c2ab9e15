"""
Operators: assembly + boundary data + linear solves.

Public API:
- assemble_mass, assemble_stiffness, assemble_operators, assemble_source
- interpolate_boundary_values, interpolate_function
- apply_boundary_values, solve_linear_system, solve_constrained, compute_residual
"""

# Assembly
from .assemble import (
    Operators,
    assemble_mass,
    assemble_stiffness,
    assemble_operators,
    assemble_source,
    interpolate_boundary_values,
    interpolate_function,
)

# Linear solves
from .solve import (
    SolveResult,
    apply_boundary_values,
    solve_linear_system,
    solve_constrained,
    compute_residual,
    residual_norms,
)

__all__ = [
    # Assembly
    "Operators",
    "assemble_mass",
    "assemble_stiffness",
    "assemble_operators",
    "assemble_source",
    "interpolate_boundary_values",
    "interpolate_function",

    # Solves
    "SolveResult",
    "apply_boundary_values",
    "solve_linear_system",
    "solve_constrained",
    "compute_residual",
    "residual_norms",
]
