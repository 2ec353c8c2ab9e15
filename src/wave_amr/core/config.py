from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


@dataclass(frozen=True)
class TimeConfig:
    dt: float = 1.0 / 64
    damping: float = 50.0       # theta = 0.5 + damping * dt
    end_time: float = 5.0

    def __post_init__(self) -> None:
        if float(self.dt) <= 0.0:
            raise ValueError("TimeConfig requires dt > 0.")
        if float(self.damping) <= 0.0:
            raise ValueError("TimeConfig requires damping > 0.")
        if float(self.end_time) <= 0.0:
            raise ValueError("TimeConfig requires end_time > 0.")

    @property
    def theta(self) -> float:
        # > 0.5 for any damping > 0; may exceed 1 (1.28125 for the defaults)
        return 0.5 + float(self.damping) * float(self.dt)


@dataclass(frozen=True)
class MeshConfig:
    x_min: float = -1.0
    x_max: float = 1.0
    initial_global_refinement: int = 4
    n_adaptive_pre_refinement_steps: int = 4
    degree: int = 1

    def __post_init__(self) -> None:
        if float(self.x_max) <= float(self.x_min):
            raise ValueError("MeshConfig requires x_max > x_min.")
        if int(self.initial_global_refinement) < 0:
            raise ValueError("initial_global_refinement must be >= 0")
        if int(self.n_adaptive_pre_refinement_steps) < 0:
            raise ValueError("n_adaptive_pre_refinement_steps must be >= 0")
        if int(self.degree) != 1:
            raise ValueError("Only bilinear (degree=1) elements are supported.")


@dataclass(frozen=True)
class RefinementConfig:
    """
    Fixed-fraction marking policy.

    min_level/max_level default to
      [initial_global_refinement, initial_global_refinement + n_adaptive_pre_refinement_steps]
    when left as None (see SimulationConfig.level_bounds).
    """
    refine_fraction: float = 0.6
    coarsen_fraction: float = 0.4
    refine_every: int = 5
    min_level: Optional[int] = None
    max_level: Optional[int] = None

    def __post_init__(self) -> None:
        rf, cf = float(self.refine_fraction), float(self.coarsen_fraction)
        if not (0.0 <= rf <= 1.0) or not (0.0 <= cf <= 1.0):
            raise ValueError("refine_fraction and coarsen_fraction must lie in [0, 1].")
        if rf + cf > 1.0:
            raise ValueError("refine_fraction + coarsen_fraction must be <= 1.")
        if int(self.refine_every) < 0:
            raise ValueError("refine_every must be >= 0 (0 disables periodic refinement).")
        if self.min_level is not None and self.max_level is not None:
            if int(self.max_level) < int(self.min_level):
                raise ValueError("max_level must be >= min_level.")


@dataclass(frozen=True)
class SolverConfig:
    max_iterations: int = 1000
    rtol: float = 1e-8

    def __post_init__(self) -> None:
        if int(self.max_iterations) < 1:
            raise ValueError("max_iterations must be >= 1")
        if float(self.rtol) <= 0.0:
            raise ValueError("rtol must be > 0")


@dataclass(frozen=True)
class OutputConfig:
    directory: Optional[Path] = None   # None disables per-step output
    every: int = 1
    plots: bool = False


@dataclass(frozen=True)
class SimulationConfig:
    time: TimeConfig = field(default_factory=TimeConfig)
    mesh: MeshConfig = field(default_factory=MeshConfig)
    refinement: RefinementConfig = field(default_factory=RefinementConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @property
    def level_bounds(self) -> Tuple[int, int]:
        lo = self.refinement.min_level
        hi = self.refinement.max_level
        if lo is None:
            lo = self.mesh.initial_global_refinement
        if hi is None:
            hi = self.mesh.initial_global_refinement + self.mesh.n_adaptive_pre_refinement_steps
        return int(lo), int(max(hi, lo))
