# algorithm/time_integrator.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from ..core.config import SimulationConfig, TimeConfig
from ..core.discretization import Discretization, distribute
from ..core.exceptions import DimensionMismatchError
from ..core.functions import WaveProblem, make_default_problem
from ..core.mesh import QuadMesh
from ..diagnostics import SolutionWriter
from ..operators.assemble import Operators, assemble_operators, interpolate_function
from .estimator import kelly_error_estimate
from .grid_refinement import clamp_to_levels, flags_to_cells, mark_fixed_fraction
from .theta_scheme import theta_step
from .transfer import SolutionTransfer

logger = logging.getLogger(__name__)

PRE_REFINEMENT = "pre-refinement"
STEADY = "steady"


@dataclass
class TimeState:
    """Time bookkeeping; theta = 0.5 + damping*dt is fixed for the whole run."""
    time: float
    dt: float
    step: int
    theta: float

    @classmethod
    def initial(cls, config: TimeConfig) -> "TimeState":
        return cls(time=0.0, dt=float(config.dt), step=0, theta=float(config.theta))

    def advance(self) -> None:
        self.time += self.dt
        self.step += 1


@dataclass(frozen=True)
class StepRecord:
    phase: str
    pre_refinement_step: int
    step: int
    time: float
    energy: float
    iterations_u: int
    iterations_v: int
    n_active_cells: int
    n_dofs: int


@dataclass(frozen=True)
class RefinementRecord:
    phase: str
    step: int
    time: float
    n_cells_before: int
    n_cells_after: int
    n_dofs_after: int
    max_level: int


class WaveEquation:
    """
    Theta-scheme integrator for u_tt = Laplace(u) + f on an adaptive quadtree mesh.

    run() performs
      1. the pre-refinement phase: n_adaptive_pre_refinement_steps times, restart at
         t=0 with fresh initial values, take one step, refine on that step's U;
      2. the steady phase: restart at t=0 once more and step while time <= end_time,
         refining after every refine_every-th step and carrying (U, V) across.

    The solver owns the mesh, discretization, operators and the four solution
    vectors; all of them are replaced together whenever the mesh changes.
    """

    def __init__(
        self,
        config: SimulationConfig = SimulationConfig(),
        problem: Optional[WaveProblem] = None,
        writer: Optional[SolutionWriter] = None,
    ) -> None:
        self.config = config
        self.problem = problem if problem is not None else make_default_problem()
        if writer is None and config.output.directory is not None:
            writer = SolutionWriter(
                config.output.directory,
                every=config.output.every,
                plots=config.output.plots,
            )
        self.writer = writer
        if config.time.theta > 1.0:
            logger.warning(
                "theta = %.5f exceeds 1: the scheme stays stable but damps more than backward Euler.",
                config.time.theta,
            )

        self.disc: Optional[Discretization] = None
        self.ops: Optional[Operators] = None
        self.u = np.zeros(0)
        self.v = np.zeros(0)
        self.u_prev = np.zeros(0)
        self.v_prev = np.zeros(0)

        self.state = TimeState.initial(config.time)
        self.phase = PRE_REFINEMENT
        self.pre_refinement_step = 0
        self.history: List[StepRecord] = []
        self.refinements: List[RefinementRecord] = []

    # -----------------------------
    # Setup
    # -----------------------------

    @property
    def mesh(self) -> QuadMesh:
        if self.disc is None:
            raise RuntimeError("setup_mesh() has not been called.")
        return self.disc.mesh

    def setup_mesh(self) -> None:
        mc = self.config.mesh
        mesh = QuadMesh.hyper_cube(mc.x_min, mc.x_max).refine_global(mc.initial_global_refinement)
        logger.info("Initial mesh: %d active cells, %d levels.", mesh.n_active_cells, mesh.n_levels)
        self.setup_system(mesh)

    def setup_system(self, mesh: QuadMesh) -> None:
        """Rebuild DoFs, constraints and operators for mesh; all vectors are zeroed."""
        disc = distribute(mesh, self.config.mesh.degree)
        self.disc = disc
        self.ops = assemble_operators(disc)
        n = disc.n_dofs
        self.u = np.zeros(n)
        self.v = np.zeros(n)
        self.u_prev = np.zeros(n)
        self.v_prev = np.zeros(n)
        logger.info(
            "Number of active cells: %d, degrees of freedom: %d (%d hanging).",
            mesh.n_active_cells, n, disc.constraints.n_constraints,
        )

    def reset_initial_conditions(self) -> None:
        """Start the time loop over at t = 0 on the current mesh."""
        disc = self._require_disc()
        self.state = TimeState.initial(self.config.time)
        self.u_prev = interpolate_function(disc, self.problem.initial_u, 0.0)
        self.v_prev = interpolate_function(disc, self.problem.initial_v, 0.0)
        self.u = self.u_prev.copy()
        self.v = self.v_prev.copy()
        self.output_results()

    def _require_disc(self) -> Discretization:
        if self.disc is None or self.ops is None:
            raise RuntimeError("setup_mesh() has not been called.")
        return self.disc

    # -----------------------------
    # Stepping
    # -----------------------------

    def advance(self) -> StepRecord:
        """Take one theta-scheme step from (u_prev, v_prev) and record diagnostics."""
        disc = self._require_disc()
        assert self.ops is not None
        self.state.advance()
        st = self.state
        logger.info("Time step %d at t=%.6f", st.step, st.time)

        result = theta_step(
            disc,
            self.ops,
            self.problem,
            self.u_prev,
            self.v_prev,
            st.time,
            st.dt,
            st.theta,
            self.config.solver,
        )
        self.u, self.v = result.u, result.v
        logger.info("   u-equation: %d CG iterations.", result.iterations_u)
        logger.info("   v-equation: %d CG iterations.", result.iterations_v)

        self.output_results()
        logger.info("   Total energy: %.10g", result.energy)

        record = StepRecord(
            phase=self.phase,
            pre_refinement_step=self.pre_refinement_step,
            step=st.step,
            time=st.time,
            energy=result.energy,
            iterations_u=result.iterations_u,
            iterations_v=result.iterations_v,
            n_active_cells=disc.n_active_cells,
            n_dofs=disc.n_dofs,
        )
        self.history.append(record)
        return record

    def commit_step(self) -> None:
        self.u_prev = self.u.copy()
        self.v_prev = self.v.copy()

    def output_results(self) -> None:
        if self.writer is None or self.disc is None:
            return
        self.writer.write(self.state.step, self.disc, {"U": self.u, "V": self.v}, time=self.state.time)

    # -----------------------------
    # Refinement
    # -----------------------------

    def refine_mesh(self, min_level: int, max_level: int) -> None:
        """
        Adapt the mesh to the current U and carry U and V over to it.

        Order matters: indicators are computed and (U, V) snapshotted on the old
        discretization before the mesh is edited; constraints of the new
        discretization are distributed after interpolation.
        """
        disc = self._require_disc()
        mesh = disc.mesh
        rc = self.config.refinement
        logger.info(
            "Refining mesh (levels [%d, %d], current levels %d).", min_level, max_level, mesh.n_levels
        )

        errors = kelly_error_estimate(disc, self.u)
        refine, coarsen = mark_fixed_fraction(errors, rc.refine_fraction, rc.coarsen_fraction)
        refine, coarsen = clamp_to_levels(mesh, refine, coarsen, min_level, max_level)

        transfer = SolutionTransfer()
        transfer.prepare(disc, [self.u, self.v])

        refine_set, parents = mesh.prepare_coarsening_and_refinement(
            flags_to_cells(mesh, refine), flags_to_cells(mesh, coarsen)
        )
        new_mesh = mesh.execute_coarsening_and_refinement(refine_set, parents)
        self.setup_system(new_mesh)
        new_disc = self._require_disc()

        u_new, v_new = transfer.interpolate(new_disc)
        new_disc.constraints.distribute(u_new)
        new_disc.constraints.distribute(v_new)
        self.u, self.v = u_new, v_new
        self.u_prev = u_new.copy()
        self.v_prev = v_new.copy()

        self.check_dimensions()
        self.refinements.append(
            RefinementRecord(
                phase=self.phase,
                step=self.state.step,
                time=self.state.time,
                n_cells_before=mesh.n_active_cells,
                n_cells_after=new_mesh.n_active_cells,
                n_dofs_after=new_disc.n_dofs,
                max_level=new_mesh.n_levels - 1,
            )
        )

    def check_dimensions(self) -> None:
        disc = self._require_disc()
        assert self.ops is not None
        n = disc.n_dofs
        for name in ("u", "v", "u_prev", "v_prev"):
            size = getattr(self, name).shape[0]
            if size != n:
                raise DimensionMismatchError(name, size, n)
        for name, op in (("mass", self.ops.mass), ("laplace", self.ops.laplace)):
            if op.shape != (n, n):
                raise DimensionMismatchError(name, op.shape[0], n)

    # -----------------------------
    # Driver
    # -----------------------------

    def run_pre_refinement(self) -> None:
        n_pre = self.config.mesh.n_adaptive_pre_refinement_steps
        min_level, max_level = self.config.level_bounds
        self.phase = PRE_REFINEMENT
        while self.pre_refinement_step < n_pre:
            self.reset_initial_conditions()
            self.advance()
            self.refine_mesh(min_level, max_level)
            self.pre_refinement_step += 1
            logger.info(
                "pre_refinement_step = %d of %d; restarting at t=0.", self.pre_refinement_step, n_pre
            )

    def run_time_loop(self) -> None:
        min_level, max_level = self.config.level_bounds
        every = self.config.refinement.refine_every
        end_time = self.config.time.end_time
        self.phase = STEADY
        self.reset_initial_conditions()
        while self.state.time <= end_time:
            self.advance()
            if every > 0 and self.state.step % every == 0:
                self.refine_mesh(min_level, max_level)
            self.commit_step()

    def run(self) -> List[StepRecord]:
        if self.disc is None:
            self.setup_mesh()
        self.run_pre_refinement()
        self.run_time_loop()
        return self.history

    def failure_context(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "step": self.state.step,
            "time": self.state.time,
            "n_active_cells": None if self.disc is None else self.disc.n_active_cells,
            "n_dofs": None if self.disc is None else self.disc.n_dofs,
        }
