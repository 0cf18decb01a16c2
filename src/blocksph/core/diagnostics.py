from __future__ import annotations

"""
Observability: per-frame diagnostics ("vital signs") for SPH runs.

What this module does:
- Defines a structured `FrameDiagnostics` snapshot for one output frame.
- Computes statistics for velocity, density and pressure, plus block-grid
  bookkeeping (active blocks, particles lost to migration).

Constraints:
- Strictly read-only: it must not modify the particle state.
- Density and pressure are the values left by the last substep; they are
  reported, not recomputed.
"""

from dataclasses import dataclass

import numpy as np

from blocksph.core.state import ParticleState


@dataclass(frozen=True)
class FrameDiagnostics:
    frame: int
    time: float
    n_particles: int

    v_max: float

    rho_min: float
    rho_mean: float
    rho_max: float

    p_min: float
    p_mean: float
    p_max: float

    n_blocks: int
    lost_particles: int


def compute_frame_diagnostics(
    frame: int,
    time: float,
    state: ParticleState,
    n_blocks: int = 0,
    lost_particles: int = 0,
) -> FrameDiagnostics:
    """
    Compute diagnostics for a frame without mutating the simulation state.

    Args:
        frame: 1-based frame index.
        time: simulated time at the end of the frame.
        state: all live particles (flat list or gathered from the block grid).
        n_blocks: active blocks (0 for the brute-force backend).
        lost_particles: cumulative particles that left every block's range.
    """
    n = state.n
    if n == 0:
        # Degenerate scene: avoid reductions on empty arrays.
        return FrameDiagnostics(
            frame=int(frame),
            time=float(time),
            n_particles=0,
            v_max=0.0,
            rho_min=0.0,
            rho_mean=0.0,
            rho_max=0.0,
            p_min=0.0,
            p_mean=0.0,
            p_max=0.0,
            n_blocks=int(n_blocks),
            lost_particles=int(lost_particles),
        )

    vnorm = np.linalg.norm(state.vel, axis=1)
    rho = state.density
    p = state.pressure

    return FrameDiagnostics(
        frame=int(frame),
        time=float(time),
        n_particles=n,
        v_max=float(np.max(vnorm)),
        rho_min=float(np.min(rho)),
        rho_mean=float(np.mean(rho)),
        rho_max=float(np.max(rho)),
        p_min=float(np.min(p)),
        p_mean=float(np.mean(p)),
        p_max=float(np.max(p)),
        n_blocks=int(n_blocks),
        lost_particles=int(lost_particles),
    )
