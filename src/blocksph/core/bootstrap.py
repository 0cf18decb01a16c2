"""
Bootstrap / CLI entry point for the block-grid SPH solver.

What this file does:
- Loads a JSON scene configuration.
- Builds the initial particle block.
- Selects the neighbor backend once at start-up:
  - "bf" / "brute_force": all-pairs search over one flat list
  - "grid" / "block_grid": sparse block grid with per-step migration
- Runs the frame loop, logging per-frame diagnostics.
- Optionally writes CSV and VTK frame snapshots.

Important constraint:
- This file must not change any solver math. It only wires together existing
  components and adds observability/export around them.
"""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import numpy as np

from blocksph.core.diagnostics import FrameDiagnostics
from blocksph.core.driver import Simulation
from blocksph.core.simulator import BoundaryBox, SmoothingParameters, make_backend
from blocksph.core.state import ParticleState
from blocksph.core.state_builder import build_fluid_block
from blocksph.io.csv_export import CsvFrameWriter
from blocksph.io.vtk_export import VtkFrameWriter
from blocksph.neighbors.block_backend import GridConfig


@dataclass(frozen=True)
class RunConfig:
    """Everything read from a scene file, fixed for the run."""

    backend: str
    params: SmoothingParameters
    box: BoundaryBox
    grid: Optional[GridConfig]

    frame_dt: float
    frames: int
    log_every: int

    output_scale: float
    output_radius: float
    csv_dir: Optional[Path]
    vtk_dir: Optional[Path]


def build_run_config(scene: dict) -> RunConfig:
    dim = int(scene["meta"]["dimensions"])
    if dim not in (2, 3):
        raise ValueError("meta.dimensions must be 2 or 3")

    neighbors = scene.get("neighbors", {})
    backend = str(neighbors.get("backend", "bf")).lower()

    smoothing = scene["smoothing"]
    h = float(smoothing["h"])

    time_cfg = scene.get("time", {})

    # Gravity from scene (fallback: -9.81 along y)
    default_g = [0.0, -9.81, 0.0][:dim]
    g = np.array(scene.get("forces", {}).get("gravity", default_g), dtype=np.float64)
    if g.shape != (dim,):
        raise ValueError("forces.gravity must match dimensions")

    params = SmoothingParameters(
        h=h,
        rho0=float(smoothing.get("rho0", 1.0)),
        k=float(smoothing["k"]),
        dt=float(time_cfg["dt"]),
        gravity=g,
        normalize_density=bool(smoothing.get("normalize_density", False)),
    )

    # Domain clamp box; null upper entries leave the axis open
    domain_cfg = scene.get("domain", {})
    if "lower" in domain_cfg:
        box = BoundaryBox(lower=np.array(domain_cfg["lower"], dtype=np.float64), upper=domain_cfg.get("upper"))
    elif dim == 3:
        box = BoundaryBox.unit_3d(h)
    else:
        box = BoundaryBox.unit_2d(h)
    if box.lower.shape != (dim,):
        raise ValueError("domain.lower/upper must match dimensions")

    grid = None
    if backend in ("grid", "block_grid"):
        resolution = int(neighbors.get("grid_resolution", 20))
        grid = GridConfig(
            dx=float(neighbors.get("dx", 1.0 / resolution)),
            resolution=resolution,
            block_size=int(neighbors.get("block_size", 8)),
            max_particles_per_block=int(neighbors.get("max_particles_per_block", 4096)),
            num_threads=int(neighbors.get("num_threads", 1)),
        )

    export_cfg = scene.get("export", {})
    csv_cfg = export_cfg.get("csv", {})
    vtk_cfg = export_cfg.get("vtk", {})

    return RunConfig(
        backend=backend,
        params=params,
        box=box,
        grid=grid,
        frame_dt=float(time_cfg.get("frame_dt", 0.1)),
        frames=int(time_cfg.get("frames", 128)),
        log_every=int(time_cfg.get("log_every", 1)),
        output_scale=float(export_cfg.get("scale", 1.0)),
        output_radius=float(export_cfg.get("radius", h)),
        csv_dir=Path(csv_cfg.get("dir", "out/csv")) if csv_cfg.get("enable", False) else None,
        vtk_dir=Path(vtk_cfg.get("dir", "out/vtk")) if vtk_cfg.get("enable", False) else None,
    )


def build_simulation(
    scene: dict,
    state: Optional[ParticleState] = None,
    cfg: Optional[RunConfig] = None,
) -> Simulation:
    if cfg is None:
        cfg = build_run_config(scene)
    if state is None:
        state = build_fluid_block(scene)

    backend = make_backend(cfg.backend, state=state, params=cfg.params, box=cfg.box, grid_cfg=cfg.grid)

    writers = []
    if cfg.csv_dir is not None:
        writers.append(CsvFrameWriter(cfg.csv_dir, dim=state.dim))
    if cfg.vtk_dir is not None:
        writers.append(VtkFrameWriter(cfg.vtk_dir))

    def output(frame, particles):
        for w in writers:
            w(frame, particles)

    return Simulation(
        backend=backend,
        dt=cfg.params.dt,
        frame_dt=cfg.frame_dt,
        total_frames=cfg.frames,
        output=output if writers else None,
        output_scale=cfg.output_scale,
        output_radius=cfg.output_radius,
    )


def format_diagnostics(diag: FrameDiagnostics) -> str:
    line = (
        f"[FRAME {diag.frame:04d}] t={diag.time:.4f} "
        f"n={diag.n_particles} "
        f"|v|max={diag.v_max:.3e} "
        f"rho(min/avg/max)={diag.rho_min:.3e}/{diag.rho_mean:.3e}/{diag.rho_max:.3e} "
        f"p(min/avg/max)={diag.p_min:.3e}/{diag.p_mean:.3e}/{diag.p_max:.3e}"
    )
    if diag.n_blocks:
        line += f" blocks={diag.n_blocks} lost={diag.lost_particles}"
    return line


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    if len(argv) < 1:
        print("Usage: python -m blocksph.core.bootstrap <scene.json> [bf|grid]")
        return 2

    scene_path = Path(argv[0]).resolve()
    if not scene_path.exists():
        print("[ERROR] scene file not found")
        return 1

    with scene_path.open("r", encoding="utf-8") as f:
        scene = json.load(f)

    # Optional backend override, like the original "sph bf" task argument
    if len(argv) > 1:
        scene.setdefault("neighbors", {})["backend"] = argv[1]

    cfg = build_run_config(scene)
    sim = build_simulation(scene, cfg=cfg)
    print(
        f"[BOOT] backend={cfg.backend} particles={sim.backend.num_particles} "
        f"dt={cfg.params.dt:.3e} substeps/frame={sim.substeps_per_frame} frames={cfg.frames}"
    )
    if cfg.grid is not None:
        print(f"[GRID] blocks={sim.backend.num_blocks} block_size={cfg.grid.block_size} threads={cfg.grid.num_threads}")

    lost_seen = 0
    for _ in range(cfg.frames):
        diag = sim.advance()

        if diag.frame == 1 or diag.frame % max(1, cfg.log_every) == 0:
            print(format_diagnostics(diag))

        if diag.lost_particles > lost_seen:
            print(f"[GRID] lost {diag.lost_particles - lost_seen} particles outside every block range")
            lost_seen = diag.lost_particles

    print("[BOOT] done")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
