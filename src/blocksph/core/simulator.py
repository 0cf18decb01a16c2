from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from blocksph.core.state import ParticleState
from blocksph.sph.density import update_density_and_pressure
from blocksph.sph.kernels import poly6_normalization
from blocksph.sph.pressure import pressure_force


@dataclass(frozen=True)
class SmoothingParameters:
    """
    Physical and numerical constants of a run; fixed for its whole lifetime.

    The scheme is weakly compressible and explicit with a constant substep dt.
    """

    # Kernel support radius
    h: float

    # Reference density and EOS stiffness: p = k ((rho/rho0)^7 - 1)
    rho0: float
    k: float

    # Substep size
    dt: float

    # External acceleration, shape (dim,)
    gravity: np.ndarray

    # Multiply accumulated density by the poly6 constant c(h).
    # Only meaningful for the brute-force configuration.
    normalize_density: bool = False

    def __post_init__(self) -> None:
        if self.h <= 0.0:
            raise ValueError("h must be > 0")
        if self.dt <= 0.0:
            raise ValueError("dt must be > 0")
        if self.rho0 <= 0.0:
            raise ValueError("rho0 must be > 0")
        object.__setattr__(self, "gravity", np.asarray(self.gravity, dtype=np.float64))

    @property
    def inv_h(self) -> float:
        return 1.0 / float(self.h)

    @property
    def dim(self) -> int:
        return int(self.gravity.shape[0])

    @property
    def density_scale(self) -> float:
        if self.normalize_density:
            return poly6_normalization(self.h)
        return 1.0


@dataclass(frozen=True)
class BoundaryBox:
    """
    Axis-aligned clamp box. An upper entry of +inf leaves that axis open
    (the 3D box has no ceiling on y).
    """

    lower: np.ndarray
    upper: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        lower = np.asarray(self.lower, dtype=np.float64)
        if self.upper is None:
            upper = np.full(lower.shape, np.inf)
        else:
            upper = np.array([np.inf if u is None else u for u in np.atleast_1d(self.upper)], dtype=np.float64)
        if lower.shape != upper.shape:
            raise ValueError(f"lower shape {lower.shape} != upper shape {upper.shape}")
        object.__setattr__(self, "lower", lower)
        object.__setattr__(self, "upper", upper)

    @classmethod
    def unit_3d(cls, h: float) -> BoundaryBox:
        return cls(lower=np.array([0.0, h / 2, 0.0]), upper=np.array([1.0, np.inf, 1.0]))

    @classmethod
    def unit_2d(cls, dx: float) -> BoundaryBox:
        return cls(lower=np.array([0.0, 0.1]), upper=np.array([1.0 - dx, 1.0 - dx]))


def apply_boundary_clamp(state: ParticleState, box: BoundaryBox) -> None:
    """
    Clamp positions into the box and remove the velocity component that would
    push further through the wall: max(v, 0) at a lower bound, min(v, 0) at an
    upper bound. Applying it twice gives the same result as applying it once.
    """
    pos = state.pos
    vel = state.vel

    for d in range(state.dim):
        lo = pos[:, d] < box.lower[d]
        if np.any(lo):
            pos[lo, d] = box.lower[d]
            vel[lo, d] = np.maximum(vel[lo, d], 0.0)

        hi = pos[:, d] > box.upper[d]
        if np.any(hi):
            pos[hi, d] = box.upper[d]
            vel[hi, d] = np.minimum(vel[hi, d], 0.0)


def integrate_and_clamp(state: ParticleState, force: np.ndarray, dt: float, box: BoundaryBox) -> None:
    """Symplectic Euler: v += f dt, x += v dt, then the box clamp."""
    dt = float(dt)
    state.vel += force * dt
    state.pos += state.vel * dt
    apply_boundary_clamp(state, box)


def sph_substep(
    state: ParticleState,
    params: SmoothingParameters,
    box: BoundaryBox,
    density_scale: float = 1.0,
) -> None:
    """
    One explicit step over a single particle set, in place.

    Steps:
      1) density and pressure for every particle (neighbors = the whole set),
      2) pressure term over every ordered pair,
         force = (k * f_pressure + gravity) * dt,
      3) v += force * dt, x += v * dt, clamp.

    The force is scaled by dt and then applied as an impulse times dt again;
    the constants in the sample scenes are tuned to that dt^2 factor.

    All forces are evaluated from the positions at the start of the step,
    before any particle is moved.
    """
    if state.n == 0:
        return

    h = float(params.h)

    update_density_and_pressure(state, h=h, rho0=params.rho0, k=params.k, scale=density_scale)

    f_pressure = pressure_force(state, h=h)
    force = (float(params.k) * f_pressure + params.gravity[None, :]) * float(params.dt)

    integrate_and_clamp(state, force, dt=params.dt, box=box)


def make_backend(
    kind: str,
    state: ParticleState,
    params: SmoothingParameters,
    box: BoundaryBox,
    grid_cfg=None,
):
    """
    Build the neighbor backend selected by configuration.

    Supported kinds:
      "bf" / "brute_force"   all-pairs search over one flat list
      "grid" / "block_grid"  sparse block grid (requires grid_cfg)
    """
    kind = str(kind).lower()

    # Lazy imports keep the backends free to import this module.
    if kind in ("bf", "brute_force"):
        from blocksph.neighbors.brute_force import BruteForceBackend

        return BruteForceBackend(state=state, params=params, box=box)

    if kind in ("grid", "block_grid"):
        from blocksph.neighbors.block_backend import BlockGridBackend

        if grid_cfg is None:
            raise ValueError("block_grid backend requires a GridConfig")
        return BlockGridBackend(state=state, params=params, box=box, grid_cfg=grid_cfg)

    raise ValueError(f"Unknown backend: {kind!r}")
