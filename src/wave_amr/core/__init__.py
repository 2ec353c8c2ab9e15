"""
Core: problem definition (configs, mesh, discretization, boundary/initial data).
"""

from .config import (
    TimeConfig,
    MeshConfig,
    RefinementConfig,
    SolverConfig,
    OutputConfig,
    SimulationConfig,
)
from .mesh import QuadMesh
from .discretization import Discretization, HangingNodeConstraints, distribute
from .functions import (
    WaveProblem,
    boundary_values_u,
    boundary_values_v,
    make_default_problem,
    make_default_problems,
)
from .exceptions import (
    WaveSimError,
    SolverConvergenceError,
    DimensionMismatchError,
    TransferProtocolError,
)

__all__ = [
    "TimeConfig",
    "MeshConfig",
    "RefinementConfig",
    "SolverConfig",
    "OutputConfig",
    "SimulationConfig",
    "QuadMesh",
    "Discretization",
    "HangingNodeConstraints",
    "distribute",
    "WaveProblem",
    "boundary_values_u",
    "boundary_values_v",
    "make_default_problem",
    "make_default_problems",
    "WaveSimError",
    "SolverConvergenceError",
    "DimensionMismatchError",
    "TransferProtocolError",
]
