"""
Top-level package for the project.

We keep three sibling subpackages:
- core: problem definition + quadtree mesh + discretization/constraints + configs
- operators: assembly (mass, Laplace, source, boundary data) + solvers
- algorithm: error estimation, refinement, state transfer, theta-scheme time stepping
"""

__all__ = ["core", "operators", "algorithm", "diagnostics"]
