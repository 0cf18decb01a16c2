from __future__ import annotations

import numpy as np


def poly6_normalization(h: float) -> float:
    """
    Normalization constant of the poly6 density kernel:

        c = 315 / (64 pi h^9)

    Only the brute-force configuration multiplies the accumulated density by c;
    other configurations fold the normalization into rho0.
    """
    h = float(h)
    if h <= 0.0:
        raise ValueError("h must be > 0")
    return 315.0 / (64.0 * np.pi * h ** 9)


def density_kernel(r2, h: float):
    """
    Unnormalized density kernel on squared distance:

        W(r2) = max(0, (h^2 - r2)^3)   for r2 < h^2
              = 0                      otherwise

    Accepts a scalar or an array of squared distances.
    """
    h2 = float(h) * float(h)
    r2 = np.asarray(r2, dtype=np.float64)
    w = np.where(r2 < h2, np.maximum(0.0, (h2 - r2) ** 3), 0.0)
    if w.ndim == 0:
        return float(w)
    return w


def pressure_gradient_kernel(dpos: np.ndarray, r2, h: float) -> np.ndarray:
    """
    Simplified (non-normalized) gradient used for the pressure force:

        gradW = -6 (h^2 - r2) dpos   for r2 < h^2
              = 0                    otherwise

    This is not the spiky kernel gradient; the form is kept as is because the
    stiffness constants are tuned against it.

    dpos has shape (..., dim) and r2 the matching leading shape (...).
    """
    h2 = float(h) * float(h)
    dpos = np.asarray(dpos, dtype=np.float64)
    r2 = np.asarray(r2, dtype=np.float64)
    factor = np.where(r2 < h2, -6.0 * (h2 - r2), 0.0)
    return factor[..., None] * dpos
