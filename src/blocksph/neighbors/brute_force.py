from __future__ import annotations

from blocksph.core.simulator import BoundaryBox, SmoothingParameters, sph_substep
from blocksph.core.state import ParticleState


class BruteForceBackend:
    """
    All-pairs neighbor search over one flat particle list, O(N^2) per step.
    Suitable for small particle counts.
    """

    def __init__(self, state: ParticleState, params: SmoothingParameters, box: BoundaryBox):
        state.validate()
        if state.dim != params.dim:
            raise ValueError(f"state dim {state.dim} != gravity dim {params.dim}")
        self.state = state
        self.params = params
        self.box = box
        self.density_scale = params.density_scale
        self.lost_particles = 0

    @property
    def num_particles(self) -> int:
        return self.state.n

    @property
    def num_blocks(self) -> int:
        return 0

    def substep(self) -> None:
        sph_substep(self.state, self.params, self.box, density_scale=self.density_scale)

    def gather_particles(self) -> ParticleState:
        return self.state
