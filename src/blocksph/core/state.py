from __future__ import annotations

from dataclasses import dataclass
import numpy as np


@dataclass(slots=True)
class ParticleState:
    """
    Particle store (struct of arrays) shared by both neighbor backends.

    pressure and inv_density are per-step transients: every density pass
    overwrites them before they are read, so values left over from a previous
    step are never used for forces.
    """

    dim: int

    pos: np.ndarray          # (N, dim)
    vel: np.ndarray          # (N, dim)

    pressure: np.ndarray     # (N,)
    inv_density: np.ndarray  # (N,)

    @classmethod
    def empty(cls, n: int, dim: int) -> ParticleState:
        return cls(
            dim=int(dim),
            pos=np.zeros((n, dim), dtype=np.float64),
            vel=np.zeros((n, dim), dtype=np.float64),
            pressure=np.zeros((n,), dtype=np.float64),
            inv_density=np.zeros((n,), dtype=np.float64),
        )

    @classmethod
    def from_positions(cls, pos: np.ndarray, vel: np.ndarray | None = None) -> ParticleState:
        pos = np.array(pos, dtype=np.float64, ndmin=2)
        n, dim = pos.shape
        if vel is None:
            vel = np.zeros_like(pos)
        state = cls(
            dim=int(dim),
            pos=pos,
            vel=np.array(vel, dtype=np.float64, ndmin=2),
            pressure=np.zeros((n,), dtype=np.float64),
            inv_density=np.zeros((n,), dtype=np.float64),
        )
        state.validate()
        return state

    @classmethod
    def concatenate(cls, states: list[ParticleState], dim: int) -> ParticleState:
        """Stack several stores in order into one freshly allocated store."""
        if not states:
            return cls.empty(0, dim)
        return cls(
            dim=int(dim),
            pos=np.concatenate([s.pos for s in states], axis=0),
            vel=np.concatenate([s.vel for s in states], axis=0),
            pressure=np.concatenate([s.pressure for s in states], axis=0),
            inv_density=np.concatenate([s.inv_density for s in states], axis=0),
        )

    @property
    def n(self) -> int:
        return int(self.pos.shape[0])

    @property
    def density(self) -> np.ndarray:
        """1 / inv_density where a density pass has run, 0 elsewhere."""
        rho = np.zeros_like(self.inv_density)
        np.divide(1.0, self.inv_density, out=rho, where=self.inv_density > 0.0)
        return rho

    def view(self, count: int) -> ParticleState:
        """First `count` particles; arrays are numpy views, writes go through."""
        return ParticleState(
            dim=self.dim,
            pos=self.pos[:count],
            vel=self.vel[:count],
            pressure=self.pressure[:count],
            inv_density=self.inv_density[:count],
        )

    def copy(self) -> ParticleState:
        return ParticleState(
            dim=self.dim,
            pos=self.pos.copy(),
            vel=self.vel.copy(),
            pressure=self.pressure.copy(),
            inv_density=self.inv_density.copy(),
        )

    def validate(self) -> None:
        n = self.n
        if self.dim not in (2, 3):
            raise ValueError(f"dim must be 2 or 3, got {self.dim}")
        if self.pos.shape != (n, self.dim):
            raise ValueError(f"pos shape {self.pos.shape} != (N, dim) = ({n},{self.dim})")

        for name, arr, shape in [
            ("vel", self.vel, (n, self.dim)),
            ("pressure", self.pressure, (n,)),
            ("inv_density", self.inv_density, (n,)),
        ]:
            if arr.shape != shape:
                raise ValueError(f"{name} shape {arr.shape} != {shape}")

        if not np.isfinite(self.pos).all():
            raise ValueError("pos contains NaN/Inf")
