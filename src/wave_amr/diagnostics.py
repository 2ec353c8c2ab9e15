# diagnostics.py
from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import numpy as np
import matplotlib.pyplot as plt

from .core.discretization import Discretization

logger = logging.getLogger(__name__)


# -----------------------------
# I/O helpers
# -----------------------------

def save_npz(path: Path, **arrays: np.ndarray) -> None:
    """Save compressed .npz (creates parent dirs)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(path, **arrays)


def solution_filename(step: int, stem: str = "solution") -> str:
    """solution-003.npz style name; the step index is zero-padded to three digits."""
    return f"{stem}-{int(step):03d}.npz"


def load_solution(path: Path) -> Dict[str, Any]:
    with np.load(path) as data:
        out: Dict[str, Any] = {k: data[k] for k in data.files if k != "meta_json"}
        if "meta_json" in data.files:
            out["meta"] = json.loads(str(data["meta_json"][0]))
    return out


# -----------------------------
# Plotting
# -----------------------------

def _triangulate(disc: Discretization) -> np.ndarray:
    """Split every quad (0,1,2,3 lexicographic) into triangles (0,1,3), (0,3,2)."""
    cd = disc.cell_dofs
    return np.concatenate([cd[:, [0, 1, 3]], cd[:, [0, 3, 2]]], axis=0)


def plot_field(
    disc: Discretization,
    u: np.ndarray,
    *,
    title: str = "",
    path: Optional[Path] = None,
    show_mesh: bool = False,
    vmin: float | None = None,
    vmax: float | None = None,
    cmap: str | None = None,
    show: bool = True,
    close: bool = True,
) -> None:
    """
    Plot a nodal field u on the (adaptive) mesh of disc.

    Parameters
    ----------
    path:
        If provided, saves the figure to this path (parent dirs created).
    show_mesh:
        Overlay active cell outlines.
    show:
        If True, calls plt.show() so notebooks display inline.
    close:
        If True, closes figure (avoid piling up in long runs).
    """
    u = np.asarray(u, dtype=float)
    if u.shape[0] != disc.n_dofs:
        raise ValueError(f"u has size {u.shape[0]}, expected {disc.n_dofs}")

    x = disc.vertices[:, 0]
    y = disc.vertices[:, 1]

    fig, ax = plt.subplots()
    tpc = ax.tripcolor(x, y, _triangulate(disc), u, shading="gouraud", vmin=vmin, vmax=vmax, cmap=cmap)
    fig.colorbar(tpc, ax=ax)

    if show_mesh:
        x0, y0, h = disc.mesh.cell_geometry()
        for a, b, s in zip(x0, y0, h):
            ax.plot([a, a + s, a + s, a, a], [b, b, b + s, b + s, b], color="k", lw=0.2)

    ax.set_aspect("equal")
    ax.set_title(title)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    fig.tight_layout()

    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=150)

    if show:
        plt.show()

    if close:
        plt.close(fig)


def plot_energy_trace(
    times: np.ndarray,
    energies: np.ndarray,
    *,
    path: Optional[Path] = None,
    show: bool = False,
) -> None:
    fig, ax = plt.subplots()
    ax.plot(times, energies, lw=1.0)
    ax.set_xlabel("t")
    ax.set_ylabel("energy")
    ax.set_title("(<V,MV> + <U,AU>) / 2")
    fig.tight_layout()
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=150)
    if show:
        plt.show()
    plt.close(fig)


# -----------------------------
# Output sink
# -----------------------------

class SolutionWriter:
    """
    Writes solution-XXX.npz (vertices, cells, fields) per step, optionally with a PNG
    of each field. Write failures are logged and swallowed: output never stops a run.
    """

    def __init__(self, directory: Path, *, every: int = 1, plots: bool = False) -> None:
        self.directory = Path(directory)
        self.every = max(int(every), 1)
        self.plots = bool(plots)

    def write(
        self,
        step: int,
        disc: Discretization,
        fields: Mapping[str, np.ndarray],
        *,
        time: float | None = None,
    ) -> Optional[Path]:
        if int(step) % self.every != 0:
            return None

        path = self.directory / solution_filename(step)
        meta = {
            "step": int(step),
            "time": None if time is None else float(time),
            "n_dofs": disc.n_dofs,
            "n_active_cells": disc.n_active_cells,
            "fields": sorted(fields),
        }
        try:
            save_npz(
                path,
                vertices=disc.vertices,
                cells=disc.cell_dofs,
                levels=disc.mesh.levels,
                meta_json=np.array([json.dumps(meta)]),
                **{name: np.asarray(v, dtype=float) for name, v in fields.items()},
            )
            if self.plots:
                for name, v in fields.items():
                    plot_field(
                        disc,
                        v,
                        title=f"{name}  step {int(step)}" + ("" if time is None else f"  t={time:.4f}"),
                        path=path.with_name(f"{path.stem}-{name}.png"),
                        show=False,
                    )
        except (OSError, ValueError) as exc:
            logger.warning("Output for step %d failed (%s); continuing.", int(step), exc)
            return None
        return path


def save_history(path: Path, records: Sequence[Any]) -> None:
    """Store a run history (sequence of dataclass records) as column arrays."""
    rows = [dataclasses.asdict(r) if dataclasses.is_dataclass(r) else dict(r) for r in records]
    if not rows:
        save_npz(path)
        return
    columns = {key: np.array([row[key] for row in rows]) for key in rows[0]}
    save_npz(path, **columns)
