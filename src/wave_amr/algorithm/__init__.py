"""
Algorithms: error estimation, mesh refinement, state transfer, time integration.
"""

from .estimator import kelly_error_estimate

from .grid_refinement import (
    mark_fixed_fraction,
    clamp_to_levels,
    mark_and_refine,
)

from .transfer import SolutionTransfer, TransferPhase

from .theta_scheme import StepResult, theta_step, discrete_energy, forcing_terms

from .time_integrator import TimeState, StepRecord, RefinementRecord, WaveEquation

__all__ = [
    # estimator.py
    "kelly_error_estimate",
    # grid_refinement.py
    "mark_fixed_fraction",
    "clamp_to_levels",
    "mark_and_refine",
    # transfer.py
    "SolutionTransfer",
    "TransferPhase",
    # theta_scheme.py
    "StepResult",
    "theta_step",
    "discrete_energy",
    "forcing_terms",
    # time_integrator.py
    "TimeState",
    "StepRecord",
    "RefinementRecord",
    "WaveEquation",
]
