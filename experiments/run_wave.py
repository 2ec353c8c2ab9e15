from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import numpy as np

from wave_amr.core.config import (
    MeshConfig,
    OutputConfig,
    RefinementConfig,
    SimulationConfig,
    SolverConfig,
    TimeConfig,
)
from wave_amr.core.exceptions import format_failure_report
from wave_amr.algorithm.time_integrator import WaveEquation
from wave_amr.diagnostics import plot_energy_trace, save_history
from wave_amr.log_config import setup_logging

logger = logging.getLogger("run_wave")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Adaptive theta-scheme wave equation on [-1,1]^2.")
    p.add_argument("--dt", type=float, default=1.0 / 64)
    p.add_argument("--damping", type=float, default=50.0, help="theta = 0.5 + damping*dt")
    p.add_argument("--end-time", type=float, default=5.0)
    p.add_argument("--global-refinements", type=int, default=4)
    p.add_argument("--pre-refinements", type=int, default=4)
    p.add_argument("--refine-every", type=int, default=5)
    p.add_argument("--refine-fraction", type=float, default=0.6)
    p.add_argument("--coarsen-fraction", type=float, default=0.4)
    p.add_argument("--outdir", type=Path, default=Path("outputs") / "wave_amr")
    p.add_argument("--output-every", type=int, default=1)
    p.add_argument("--no-output", action="store_true")
    p.add_argument("--plots", action="store_true")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        time=TimeConfig(dt=args.dt, damping=args.damping, end_time=args.end_time),
        mesh=MeshConfig(
            initial_global_refinement=args.global_refinements,
            n_adaptive_pre_refinement_steps=args.pre_refinements,
        ),
        refinement=RefinementConfig(
            refine_fraction=args.refine_fraction,
            coarsen_fraction=args.coarsen_fraction,
            refine_every=args.refine_every,
        ),
        solver=SolverConfig(max_iterations=1000, rtol=1e-8),
        output=OutputConfig(
            directory=None if args.no_output else args.outdir,
            every=args.output_every,
            plots=args.plots,
        ),
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    cfg = build_config(args)
    logger.info("theta = %.6f, dt = %.6f, end_time = %.3f", cfg.time.theta, cfg.time.dt, cfg.time.end_time)

    solver = WaveEquation(cfg)
    t0 = time.perf_counter()
    try:
        history = solver.run()
    except Exception as exc:
        logger.error(format_failure_report(exc, solver.failure_context()))
        return 1
    elapsed_ms = 1000.0 * (time.perf_counter() - t0)

    logger.info("Finished %d steps in %.0f ms.", len(history), elapsed_ms)
    if not args.no_output:
        save_history(args.outdir / "history.npz", history)
        steady = [r for r in history if r.phase == "steady"]
        plot_energy_trace(
            np.array([r.time for r in steady]),
            np.array([r.energy for r in steady]),
            path=args.outdir / "energy.png",
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
