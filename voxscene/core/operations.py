"""
VoxelEditor - Runtime Voxel Modification
========================================

Edits a model's grid in place and remeshes only the chunks the edits
touched. Every edit goes through ``apply_edit``; the helpers below are
thin wrappers that supply the per-cell write function.
"""

import numpy as np
from typing import Tuple, Optional, List, Callable

from voxscene.core.voxel_grid import VoxelRegion, ChunkKey, Coord
from voxscene.core.voxel_model import VoxelModel, DirtyRegion
from voxscene.errors import OutOfBounds
from voxscene.log import get_logger

logger = get_logger(__name__)

WriteFn = Callable[[Coord, int], int]


class VoxelEditor:
    """
    Edit operations on one model.

    Args:
        model: Model whose grid is edited and whose mesh is kept up to date
    """

    def __init__(self, model: VoxelModel):
        self.model = model

    @property
    def dirty(self) -> DirtyRegion:
        """Cells changed since the last remesh, shared by every editor of the model."""
        return self.model.dirty

    def apply_edit(self, region: Optional[VoxelRegion], write_fn: WriteFn) -> int:
        """
        Rewrite the cells of a region.

        ``write_fn((x, y, z), current)`` is called once per cell and returns
        the new palette index. All calls see the grid as it was before the
        edit; the results are written afterwards.

        Args:
            region: Cells to visit, or None for the whole grid
            write_fn: Per-cell write function

        Returns:
            Number of cells whose value changed
        """
        grid = self.model.grid
        region = grid.region() if region is None else region
        if not region.within(grid.size):
            raise OutOfBounds(f"edit region {region} exceeds grid {grid.size}")
        if region.is_empty():
            return 0

        with self.model.lock:
            before = grid.read_region(region)
            after = before.copy()
            ox, oy, oz = region.origin
            for x, y, z in region.iter_coords():
                value = int(write_fn((x, y, z), int(before[x - ox, y - oy, z - oz])))
                if not 0 <= value <= 255:
                    raise ValueError(f"write function returned {value} for {(x, y, z)}; expected 0..255")
                after[x - ox, y - oy, z - oz] = value

            changed = np.argwhere(after != before)
            if len(changed) == 0:
                return 0
            grid.write_region(region, after)

            origin = np.array(region.origin)
            self.dirty.include(VoxelRegion.from_bounds(changed.min(axis=0) + origin,
                                                       changed.max(axis=0) + 1 + origin))
            return len(changed)

    def set_voxel(self, x: int, y: int, z: int, value: int) -> int:
        return self.apply_edit(VoxelRegion((x, y, z), (1, 1, 1)), lambda coord, current: value)

    def fill(self, region: VoxelRegion, value: int) -> int:
        """Set every cell of the region to ``value`` (0 clears)."""
        return self.apply_edit(region, lambda coord, current: value)

    def paint(self, region: VoxelRegion, value: int) -> int:
        """Recolor the solid cells of the region, leaving empty cells empty."""
        return self.apply_edit(region, lambda coord, current: value if current else current)

    def carve_sphere(self, center: Tuple[int, int, int], radius: int) -> int:
        """
        Clear every cell within ``radius`` of ``center``.

        Only the part of the sphere inside the grid is carved.
        """
        cx, cy, cz = center
        r2 = radius * radius
        bounds = VoxelRegion.from_corners((cx - radius, cy - radius, cz - radius),
                                          (cx + radius, cy + radius, cz + radius))
        region = bounds.clipped(self.model.grid.size)
        if region.is_empty():
            return 0

        def carve(coord: Coord, current: int) -> int:
            x, y, z = coord
            if (x - cx) ** 2 + (y - cy) ** 2 + (z - cz) ** 2 <= r2:
                return 0
            return current

        return self.apply_edit(region, carve)

    def remesh(self) -> List[ChunkKey]:
        """
        Rebuild the chunks affected by edits since the last remesh.

        Chunks intersecting the dirty region grown by one cell are rebuilt,
        since a change on a chunk boundary alters the faces of the
        neighbor chunk. With cavity culling on, chunks around cells whose
        sealed-cavity state changed are rebuilt as well.

        Returns:
            Keys of the remeshed chunks, in key order
        """
        model = self.model
        with model.lock:
            if self.dirty.is_empty():
                return []
            grid = model.grid
            keys = set(grid.chunks_in_region(self.dirty.region.expanded(1)))

            generator = model.generator()
            sealed = generator.sealed_cavities(grid)
            previous = model.mesh.sealed
            if sealed is not None:
                if previous is None:
                    keys.update(grid.iter_chunk_keys())
                else:
                    flipped = np.argwhere(sealed != previous)
                    if len(flipped):
                        cavity = VoxelRegion.from_bounds(flipped.min(axis=0), flipped.max(axis=0) + 1)
                        keys.update(grid.chunks_in_region(cavity.expanded(1)))

            keys = sorted(keys)
            model.mesh.replace(generator.mesh_chunks(grid, keys, sealed=sealed))
            model.mesh.sealed = sealed
            self.dirty.clear()

        logger.debug("Remeshed %d chunks of model %r", len(keys), model.name)
        return keys
