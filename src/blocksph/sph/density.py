from __future__ import annotations

import numpy as np

from blocksph.core.state import ParticleState
from blocksph.sph.kernels import density_kernel
from blocksph.sph.pressure import equation_of_state


def compute_density_summation(
    state: ParticleState,
    h: float,
    scale: float = 1.0,
) -> np.ndarray:
    """
    Density reconstruction by summation over the particle set:

        rho_i = scale * sum_j W(|x_j - x_i|^2)

    Notes:
    - The self term (r2 = 0) always contributes h^6, so rho_i > 0 for any
      particle that belongs to the set.
    - `scale` is the poly6 normalization in the brute-force configuration and
      1.0 where the normalization is folded into rho0.
    """
    n = state.n
    h2 = float(h) * float(h)
    rho = np.zeros((n,), dtype=np.float64)

    for i in range(n):
        dpos = state.pos - state.pos[i]
        r2 = np.einsum("ij,ij->i", dpos, dpos)
        rho[i] = np.sum(density_kernel(r2[r2 < h2], h))

    return rho * float(scale)


def update_density_and_pressure(
    state: ParticleState,
    h: float,
    rho0: float,
    k: float,
    scale: float = 1.0,
) -> np.ndarray:
    """
    Density/pressure pass: stores 1/rho and p = EOS(rho) on every particle.

    Returns the density array for callers that want to inspect it.
    """
    rho = compute_density_summation(state, h=h, scale=scale)
    state.inv_density[:] = 1.0 / rho
    state.pressure[:] = equation_of_state(rho, rho0=rho0, k=k)
    return rho
