from __future__ import annotations

"""
Frame output: VTK legacy ASCII PolyData for particle visualization.

What this module does:
- Writes a VTK legacy (ASCII) PolyData file containing:
  - POINTS (particle positions)
  - VERTICES (one vertex per particle)
  - POINT_DATA radius scalars, usable as glyph scale in ParaView

How it works:
- This writer uses no external dependencies.
- For 2D, positions are padded with z=0 so ParaView can treat them as 3D.

Constraints:
- Pure I/O: it never touches simulation state.
"""

from pathlib import Path
from typing import Sequence, Tuple

import numpy as np

from blocksph.io.csv_export import frame_filename


def export_frame_vtk_legacy(path: str | Path, particles: Sequence[Tuple[np.ndarray, float]]) -> None:
    """Export one frame of (position, radius) pairs as VTK legacy ASCII PolyData."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    n = len(particles)

    # Pad to 3D for VTK points
    pos3 = np.zeros((n, 3), dtype=np.float64)
    radius = np.zeros((n,), dtype=np.float64)
    for i, (p, r) in enumerate(particles):
        p = np.asarray(p, dtype=np.float64)
        if p.shape[0] not in (2, 3):
            raise ValueError("export_frame_vtk_legacy supports only dim=2 or dim=3")
        pos3[i, : p.shape[0]] = p
        radius[i] = r

    with path.open("w", encoding="utf-8", newline="\n") as f:
        f.write("# vtk DataFile Version 3.0\n")
        f.write("SPH particles - legacy PolyData\n")
        f.write("ASCII\n")
        f.write("DATASET POLYDATA\n")

        # POINTS
        f.write(f"POINTS {n} float\n")
        for i in range(n):
            x, y, z = pos3[i]
            f.write(f"{x:.17g} {y:.17g} {z:.17g}\n")

        # VERTICES (n cells, 2*n indices)
        f.write(f"VERTICES {n} {2*n}\n")
        for i in range(n):
            f.write(f"1 {i}\n")

        # POINT_DATA
        f.write(f"POINT_DATA {n}\n")
        f.write("SCALARS radius float 1\n")
        f.write("LOOKUP_TABLE default\n")
        for i in range(n):
            f.write(f"{float(radius[i]):.17g}\n")


class VtkFrameWriter:
    """Output callback writing `<dir>/<frame:05d>.vtk`."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def __call__(self, frame: int, particles: Sequence[Tuple[np.ndarray, float]]) -> None:
        export_frame_vtk_legacy(frame_filename(self.directory, frame, ".vtk"), particles)
