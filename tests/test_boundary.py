import numpy as np

from blocksph.core.simulator import BoundaryBox, SmoothingParameters, apply_boundary_clamp
from blocksph.core.state import ParticleState
from blocksph.neighbors.brute_force import BruteForceBackend


def test_boundary_clamp_is_idempotent():
    rng = np.random.default_rng(1)
    state = ParticleState.from_positions(
        rng.uniform(-0.5, 1.5, size=(200, 3)),
        rng.uniform(-2.0, 2.0, size=(200, 3)),
    )
    box = BoundaryBox.unit_3d(h=0.025)

    apply_boundary_clamp(state, box)
    once = state.copy()
    apply_boundary_clamp(state, box)

    assert np.array_equal(state.pos, once.pos)
    assert np.array_equal(state.vel, once.vel)


def test_boundary_clamp_removes_inward_velocity_only():
    box = BoundaryBox(lower=np.array([0.0, 0.0]), upper=np.array([1.0, 1.0]))
    state = ParticleState.from_positions(
        np.array([[-0.1, 0.5], [-0.1, 0.5], [1.2, 0.5]]),
        np.array([[-1.0, 0.3], [2.0, 0.3], [3.0, -0.4]]),
    )

    apply_boundary_clamp(state, box)

    assert np.allclose(state.pos[:, 0], [0.0, 0.0, 1.0])
    # lower bound: max(v, 0); upper bound: min(v, 0)
    assert np.allclose(state.vel[:, 0], [0.0, 2.0, 0.0])
    # tangential components untouched
    assert np.allclose(state.vel[:, 1], [0.3, 0.3, -0.4])


def test_unit_3d_box_has_no_ceiling():
    h = 0.025
    box = BoundaryBox.unit_3d(h)
    state = ParticleState.from_positions(np.array([[0.5, 5.0, 0.5]]), np.array([[0.0, 3.0, 0.0]]))

    apply_boundary_clamp(state, box)

    assert state.pos[0, 1] == 5.0
    assert state.vel[0, 1] == 3.0
    assert np.allclose(box.lower, [0.0, h / 2, 0.0])


def test_null_upper_entries_leave_axis_open():
    box = BoundaryBox(lower=[0.0, 0.0, 0.0], upper=[1.0, None, 1.0])
    assert box.upper[0] == 1.0
    assert np.isinf(box.upper[1])


def test_particle_below_floor_is_clamped_after_one_step():
    """
    A particle below the lower bound moving further down ends the step on the
    boundary with a non-negative normal velocity.
    """
    h = 0.025
    box = BoundaryBox.unit_3d(h)
    params = SmoothingParameters(h=h, rho0=1.0, k=1e-8, dt=3e-4, gravity=np.array([0.0, -100.0, 0.0]), normalize_density=True)
    state = ParticleState.from_positions(np.array([[0.5, -0.05, 0.5]]), np.array([[0.0, -1.0, 0.0]]))

    backend = BruteForceBackend(state, params, box)
    backend.substep()

    assert state.pos[0, 1] == h / 2
    assert state.vel[0, 1] >= 0.0
