from __future__ import annotations

"""
Sparse block grid: fixed-size spatial blocks that own the particles inside them.

What this module does:
- Stores active blocks in an arena (list) with a coordinate -> index map.
- Resolves the ancestor set of a block (itself plus every adjacent block) by
  coordinate lookup.
- Runs a per-block update over all active blocks with a phase barrier between
  the read of the previous step and the write of this one.

How it works:
- Coordinates are integer grid-node coordinates; a block's base coordinate is
  a multiple of `block_size` on every axis.
- `advance` freezes the current blocks (read buffer), creates one empty block
  per active coordinate (write buffer), runs the update on each
  (write block, ancestors-from-read-buffer) pair and then swaps buffers.
  A block therefore never observes its own or a sibling's in-progress writes.
"""

import itertools
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from blocksph.core.state import ParticleState

Coord = Tuple[int, ...]


class MissingAncestorError(RuntimeError):
    """A block update ran without its own previous-step block."""


class BlockCapacityError(RuntimeError):
    """More particles were routed to a block than it can hold."""


class Block:
    """
    One spatial block: block-local node field data plus a bounded particle buffer.
    """

    def __init__(self, base_coord: Coord, block_size: int, dim: int, capacity: int):
        self.base_coord: Coord = tuple(int(c) for c in base_coord)
        self.block_size = int(block_size)
        self.dim = int(dim)
        self.capacity = int(capacity)

        self.nodes = np.zeros((self.block_size,) * self.dim, dtype=np.float64)
        self._buffer = ParticleState.empty(self.capacity, self.dim)
        self.particle_count = 0

    @property
    def particles(self) -> ParticleState:
        return self._buffer.view(self.particle_count)

    def particle_range(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Half-open box [lo, hi) in grid units for which this block owns particles.
        Node i covers [i - 0.5, i + 0.5).
        """
        base = np.asarray(self.base_coord, dtype=np.float64)
        return base - 0.5, base + self.block_size - 0.5

    def add_particles(self, pos: np.ndarray, vel: np.ndarray) -> None:
        count = int(pos.shape[0])
        if count == 0:
            return
        end = self.particle_count + count
        if end > self.capacity:
            raise BlockCapacityError(
                f"block {self.base_coord} holds {self.particle_count}, "
                f"cannot add {count} (capacity {self.capacity})"
            )
        self._buffer.pos[self.particle_count:end] = pos
        self._buffer.vel[self.particle_count:end] = vel
        self._buffer.pressure[self.particle_count:end] = 0.0
        self._buffer.inv_density[self.particle_count:end] = 0.0
        self.particle_count = end

    def freeze(self) -> None:
        """Mark all block data read-only for the duration of a pass."""
        self.nodes.flags.writeable = False
        for arr in (self._buffer.pos, self._buffer.vel, self._buffer.pressure, self._buffer.inv_density):
            arr.flags.writeable = False

    def thaw(self) -> None:
        self.nodes.flags.writeable = True
        for arr in (self._buffer.pos, self._buffer.vel, self._buffer.pressure, self._buffer.inv_density):
            arr.flags.writeable = True


class Ancestors:
    """
    Read-only neighborhood of a block: itself plus the 3^dim - 1 adjacent blocks.
    Missing (inactive) blocks are None.
    """

    def __init__(self, offsets: List[Coord], blocks: List[Optional[Block]]):
        self.offsets = offsets
        self.data = blocks
        self._by_offset = dict(zip(offsets, blocks))

    def __getitem__(self, offset: Coord) -> Optional[Block]:
        return self._by_offset.get(tuple(offset))

    def __iter__(self):
        return iter(self.data)

    @property
    def self_block(self) -> Optional[Block]:
        return self[(0,) * len(self.offsets[0])]


UpdateFn = Callable[[Block, Ancestors], None]


class BlockGrid:
    """
    Sparse mapping from block coordinate to Block.
    Deterministic block order (activation order).
    """

    def __init__(self, dim: int, block_size: int = 8, capacity: int = 4096):
        if dim not in (2, 3):
            raise ValueError("dim must be 2 or 3")
        if block_size <= 0:
            raise ValueError("block_size must be > 0")
        self.dim = int(dim)
        self.block_size = int(block_size)
        self.capacity = int(capacity)

        self._blocks: List[Block] = []
        self._index: Dict[Coord, int] = {}
        self._offsets: List[Coord] = list(itertools.product((-1, 0, 1), repeat=self.dim))

    @property
    def num_blocks(self) -> int:
        return len(self._blocks)

    def block_base(self, coord) -> Coord:
        return tuple((int(c) // self.block_size) * self.block_size for c in coord)

    def touch(self, coord) -> Block:
        """Activate (if needed) the block containing grid node `coord`."""
        base = self.block_base(coord)
        idx = self._index.get(base)
        if idx is None:
            idx = len(self._blocks)
            self._blocks.append(Block(base, self.block_size, self.dim, self.capacity))
            self._index[base] = idx
        return self._blocks[idx]

    def block_at(self, base_coord) -> Optional[Block]:
        idx = self._index.get(tuple(base_coord))
        return None if idx is None else self._blocks[idx]

    def ancestors(self, base_coord: Coord) -> Ancestors:
        s = self.block_size
        blocks = []
        for off in self._offsets:
            key = tuple(b + o * s for b, o in zip(base_coord, off))
            blocks.append(self.block_at(key))
        return Ancestors(self._offsets, blocks)

    def insert_particles(self, pos: np.ndarray, vel: np.ndarray, inv_dx: float) -> None:
        """
        Route particles to the block whose range holds them.
        Raises ValueError for particles outside every active block.
        """
        pos = np.asarray(pos, dtype=np.float64)
        vel = np.asarray(vel, dtype=np.float64)
        grid_pos = pos * float(inv_dx)
        nodes = np.floor(grid_pos + 0.5).astype(np.int64)
        bases = (nodes // self.block_size) * self.block_size

        for base in sorted(set(map(tuple, bases.tolist()))):
            block = self.block_at(base)
            if block is None:
                raise ValueError(f"particles at block {base} lie outside every active block")
            mask = np.all(bases == np.asarray(base), axis=1)
            block.add_particles(pos[mask], vel[mask])

    def advance(self, update_fn: UpdateFn, parallel: bool = False, max_workers: int | None = None) -> int:
        """
        Run `update_fn(new_block, ancestors)` for every active block.

        Ancestors come from the previous step and are frozen; each new block is
        written only by its own update. Buffers are swapped once every update
        has finished.

        Returns the number of particles lost in this pass (particles that no
        block's range claimed).

        If an update raises, the grid keeps the previous-step blocks, writable
        again, and the exception propagates.
        """
        before = self.num_particles()

        for b in self._blocks:
            b.freeze()

        fresh = [Block(b.base_coord, self.block_size, self.dim, self.capacity) for b in self._blocks]
        jobs = [(nb, self.ancestors(nb.base_coord)) for nb in fresh]

        try:
            if parallel and len(jobs) > 1:
                with ThreadPoolExecutor(max_workers=max_workers) as pool:
                    # list() re-raises the first failing update
                    list(pool.map(lambda job: update_fn(*job), jobs))
            else:
                for block, an in jobs:
                    update_fn(block, an)
        except BaseException:
            for b in self._blocks:
                b.thaw()
            raise

        self._blocks = fresh
        return before - self.num_particles()

    def num_particles(self) -> int:
        return sum(b.particle_count for b in self._blocks)

    def gather_particles(self) -> ParticleState:
        """Copy of all resident particles, in block order."""
        return ParticleState.concatenate([b.particles for b in self._blocks], dim=self.dim)
