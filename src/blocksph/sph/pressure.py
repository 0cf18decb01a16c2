from __future__ import annotations

import numpy as np

from blocksph.core.state import ParticleState
from blocksph.sph.kernels import pressure_gradient_kernel


def equation_of_state(rho, rho0: float, k: float):
    """
    Weakly-compressible Tait-like state equation:

        p_i = k ((rho_i / rho0)^7 - 1)

    Densities below rho0 give negative (attractive) pressure.
    """
    rho0 = float(rho0)
    k = float(k)
    return k * ((np.asarray(rho, dtype=np.float64) / rho0) ** 7 - 1.0)


def pressure_force(state: ParticleState, h: float) -> np.ndarray:
    """
    Symmetric pressure term accumulated over every ordered pair (i, j) in the set:

        f_i = sum_j ( p_i / rho_i^2 + p_j / rho_j^2 ) gradW(x_j - x_i, r2_ij)

    The stiffness factor and gravity are applied by the caller. The self term
    vanishes because dpos = 0.

    Returns an array of shape (N, dim).
    """
    n = state.n
    dim = state.dim
    h2 = float(h) * float(h)

    force = np.zeros((n, dim), dtype=np.float64)
    # p / rho^2 with 1/rho stored per particle
    coef = state.pressure * state.inv_density * state.inv_density

    for i in range(n):
        dpos = state.pos - state.pos[i]
        r2 = np.einsum("ij,ij->i", dpos, dpos)
        near = r2 < h2

        grad = pressure_gradient_kernel(dpos[near], r2[near], h)
        force[i] = np.sum((coef[i] + coef[near])[:, None] * grad, axis=0)

    return force
