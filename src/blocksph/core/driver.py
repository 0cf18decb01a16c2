from __future__ import annotations

import math
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from blocksph.core.diagnostics import FrameDiagnostics, compute_frame_diagnostics
from blocksph.core.state import ParticleState

FrameParticles = Sequence[Tuple[np.ndarray, float]]
FrameOutput = Callable[[int, FrameParticles], None]


class NeighborBackend(Protocol):
    def substep(self) -> None: ...

    def gather_particles(self) -> ParticleState: ...

    @property
    def num_blocks(self) -> int: ...

    @property
    def lost_particles(self) -> int: ...


class Simulation:
    """
    Frame loop around one neighbor backend.

    Each frame runs ceil(frame_dt / dt) substeps, advances the clock and hands
    the (position * output_scale, output_radius) sequence of all live particles
    to the output callback.
    """

    def __init__(
        self,
        backend: NeighborBackend,
        dt: float,
        frame_dt: float,
        total_frames: int,
        output: Optional[FrameOutput] = None,
        output_scale: float = 1.0,
        output_radius: float = 1.0,
    ):
        if dt <= 0.0 or frame_dt <= 0.0:
            raise ValueError("dt and frame_dt must be > 0")
        self.backend = backend
        self.dt = float(dt)
        self.frame_dt = float(frame_dt)
        self.total_frames = int(total_frames)
        self.output = output
        self.output_scale = float(output_scale)
        self.output_radius = float(output_radius)

        self.current_frame = 0
        self.time = 0.0

    @property
    def substeps_per_frame(self) -> int:
        return int(math.ceil(self.frame_dt / self.dt))

    def frame_particles(self) -> List[Tuple[np.ndarray, float]]:
        state = self.backend.gather_particles()
        return [(pos * self.output_scale, self.output_radius) for pos in state.pos]

    def diagnostics(self) -> FrameDiagnostics:
        return compute_frame_diagnostics(
            frame=self.current_frame,
            time=self.time,
            state=self.backend.gather_particles(),
            n_blocks=self.backend.num_blocks,
            lost_particles=self.backend.lost_particles,
        )

    def advance(self) -> FrameDiagnostics:
        for _ in range(self.substeps_per_frame):
            self.backend.substep()
            self.time += self.dt
        self.current_frame += 1

        if self.output is not None:
            self.output(self.current_frame, self.frame_particles())
        return self.diagnostics()

    def run(self, on_frame: Optional[Callable[[FrameDiagnostics], None]] = None) -> List[FrameDiagnostics]:
        history = []
        for _ in range(self.total_frames):
            diag = self.advance()
            history.append(diag)
            if on_frame is not None:
                on_frame(diag)
        return history
