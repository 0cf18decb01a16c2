from __future__ import annotations

"""
Frame output: CSV snapshot of the (position, radius) sequence of one frame.

What this module does:
- Writes one CSV file per frame containing every live particle.

How it works:
- Consumes the sequence produced by `Simulation.frame_particles` and writes it
  in a stable column order. Supports 2D and 3D (for 2D, z is omitted).

Constraints:
- Pure I/O: it never touches simulation state.
"""

from pathlib import Path
from typing import Sequence, Tuple

import numpy as np


def frame_filename(directory: str | Path, frame: int, suffix: str) -> Path:
    return Path(directory) / f"{int(frame):05d}{suffix}"


def export_frame_csv(path: str | Path, particles: Sequence[Tuple[np.ndarray, float]], dim: int) -> None:
    """
    Export one frame of particles to CSV.

    Columns:
      id, x, y, (z), radius
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    dim = int(dim)
    if dim not in (2, 3):
        raise ValueError("export_frame_csv supports only dim=2 or dim=3")

    n = len(particles)
    pos = np.zeros((n, dim), dtype=np.float64)
    radius = np.zeros((n,), dtype=np.float64)
    for i, (p, r) in enumerate(particles):
        pos[i] = p
        radius[i] = r

    ids = np.arange(n, dtype=np.int64)
    if dim == 2:
        header = "id,x,y,radius\n"
        fmt = "%d,%.17g,%.17g,%.17g"
    else:
        header = "id,x,y,z,radius\n"
        fmt = "%d,%.17g,%.17g,%.17g,%.17g"
    table = np.column_stack([ids, pos, radius])

    with path.open("w", encoding="utf-8", newline="\n") as f:
        f.write(header)
        if n:
            np.savetxt(f, table, delimiter=",", fmt=fmt)


class CsvFrameWriter:
    """Output callback writing `<dir>/<frame:05d>.csv`."""

    def __init__(self, directory: str | Path, dim: int):
        self.directory = Path(directory)
        self.dim = int(dim)

    def __call__(self, frame: int, particles: Sequence[Tuple[np.ndarray, float]]) -> None:
        export_frame_csv(frame_filename(self.directory, frame, ".csv"), particles, dim=self.dim)
