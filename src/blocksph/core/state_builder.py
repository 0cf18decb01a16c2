from __future__ import annotations

import numpy as np

from blocksph.core.state import ParticleState


def lattice_positions(pmin: np.ndarray, pmax: np.ndarray, spacing: float) -> np.ndarray:
    """
    Regular lattice points in [pmin, pmax] (inclusive-ish), x varying fastest.
    """
    pmin = np.asarray(pmin, dtype=np.float64)
    pmax = np.asarray(pmax, dtype=np.float64)
    dim = pmin.shape[0]

    # +1e-12 to avoid floating issues at the upper end
    axes = [np.arange(pmin[d], pmax[d] + 1e-12, spacing, dtype=np.float64) for d in range(dim)]
    grids = np.meshgrid(*axes, indexing="ij")
    return np.stack([g.ravel(order="F") for g in grids], axis=1)


def build_fluid_block(scene: dict) -> ParticleState:
    """
    Initial particle placement: a block of particles on a regular lattice.

    Scene keys:
      meta.dimensions
      fluid: {"type": "block", "min", "max", "spacing", "initial_velocity"}
    """
    meta = scene["meta"]
    dim = int(meta["dimensions"])

    fluid = scene["fluid"]
    if fluid.get("type", "block") != "block":
        raise ValueError(f"unsupported fluid type: {fluid['type']}")

    pmin = np.array(fluid["min"], dtype=np.float64)
    pmax = np.array(fluid["max"], dtype=np.float64)
    spacing = float(fluid["spacing"])

    v0 = np.array(fluid.get("initial_velocity", [0.0] * dim), dtype=np.float64)

    if pmin.shape != (dim,) or pmax.shape != (dim,):
        raise ValueError("fluid.min/max must match dimensions")
    if v0.shape != (dim,):
        raise ValueError("fluid.initial_velocity must match dimensions")

    if spacing <= 0:
        raise ValueError("spacing must be > 0")

    pos = lattice_positions(pmin, pmax, spacing)
    vel = np.repeat(v0[None, :], pos.shape[0], axis=0)

    return ParticleState.from_positions(pos, vel)
