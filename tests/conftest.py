import matplotlib

matplotlib.use("Agg")

import pytest

from wave_amr.core.config import MeshConfig, OutputConfig, RefinementConfig, SimulationConfig, TimeConfig
from wave_amr.core.discretization import distribute
from wave_amr.core.mesh import QuadMesh


def small_config(
    *,
    global_refinements: int = 2,
    pre_refinements: int = 0,
    end_time: float = 0.1,
    refine_every: int = 5,
    dt: float = 1.0 / 64,
    output_dir=None,
) -> SimulationConfig:
    return SimulationConfig(
        time=TimeConfig(dt=dt, damping=50.0, end_time=end_time),
        mesh=MeshConfig(
            initial_global_refinement=global_refinements,
            n_adaptive_pre_refinement_steps=pre_refinements,
        ),
        refinement=RefinementConfig(refine_every=refine_every),
        output=OutputConfig(directory=output_dir),
    )


@pytest.fixture
def hanging_mesh() -> QuadMesh:
    # level-2 uniform mesh with one interior cell refined: a hanging node on each of its edges
    mesh = QuadMesh.hyper_cube().refine_global(2)
    return mesh.refine_and_coarsen({(2, 1, 1)}, set())


@pytest.fixture
def hanging_disc(hanging_mesh):
    return distribute(hanging_mesh)
