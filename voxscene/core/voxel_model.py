"""
VoxelModel - Meshed Voxel Model
===============================

Binds a voxel grid to its material table and its current mesh. Every
instance of a model in a scene refers to the same VoxelModel, so edits
and remeshes are visible through all of them.
"""

import threading
import numpy as np
from typing import Optional, Tuple, List, Sequence
from dataclasses import dataclass, field

from voxscene.config import MeshSettings
from voxscene.core.voxel_grid import VoxelGrid, VoxelRegion, Coord
from voxscene.core.materials import MaterialTable, MaterialDescriptor
from voxscene.core.mesher import MeshGenerator, MeshBuffer, ModelMesh


def default_pivot(size: Sequence[int], flipped_z: bool = False) -> Coord:
    """
    Cell offset of a model's origin.

    MagicaVoxel centers models on ``size // 2``. When the last axis has been
    mirrored (Z-up to Y-up conversion) the center is measured from the
    other end of that axis.
    """
    sx, sy, sz = (int(s) for s in size)
    pivot_z = sz - sz // 2 if flipped_z else sz // 2
    return (sx // 2, sy // 2, pivot_z)


class DirtyRegion:
    """Bounding box of all cells changed since the last remesh."""

    def __init__(self):
        self._region: Optional[VoxelRegion] = None

    @property
    def region(self) -> Optional[VoxelRegion]:
        return self._region

    def include(self, region: VoxelRegion):
        if region.is_empty():
            return
        self._region = region if self._region is None else self._region.union(region)

    def clear(self):
        self._region = None

    def is_empty(self) -> bool:
        return self._region is None


@dataclass
class VoxelModel:
    """
    A voxel grid together with its materials and mesh.

    Attributes:
        name: Model name (taken from the scene or generated)
        grid: Voxel storage
        materials: Material table shared by every model of a file
        settings: Meshing options used for full and incremental rebuilds
        pivot: Cell offset of the model origin; mesh positions are in grid
            space, so hosts translate them by ``-pivot``
        mesh: Current per-chunk mesh
        dirty: Cells edited since the last remesh
    """

    name: str
    grid: VoxelGrid
    materials: MaterialTable
    settings: MeshSettings = field(default_factory=MeshSettings)
    pivot: Coord = None
    mesh: ModelMesh = field(default=None, repr=False)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    dirty: DirtyRegion = field(default_factory=DirtyRegion, repr=False, compare=False)

    def __post_init__(self):
        if self.pivot is None:
            self.pivot = default_pivot(self.grid.size)
        if self.mesh is None:
            self.remesh_all()

    @property
    def size(self) -> Coord:
        return self.grid.size

    def generator(self) -> MeshGenerator:
        return MeshGenerator(self.materials, self.settings)

    def remesh_all(self) -> ModelMesh:
        """Rebuild every chunk of the mesh from the current grid."""
        with self.lock:
            self.mesh = self.generator().build(self.grid)
            self.dirty.clear()
            return self.mesh

    def get_voxel(self, x: int, y: int, z: int) -> int:
        return self.grid.get(x, y, z)

    def point_to_voxel(self, point: Sequence[float]) -> Coord:
        """Cell containing a model-local point (origin at the pivot)."""
        return tuple(int(np.floor(p + o)) for p, o in zip(point, self.pivot))

    def get_voxel_at_point(self, point: Sequence[float]) -> int:
        """Palette index at a model-local point; 0 outside the grid."""
        return self.grid.get(*self.point_to_voxel(point))

    def parts(self) -> List[Tuple[MaterialDescriptor, MeshBuffer]]:
        """(descriptor, buffer) pairs of the current mesh, in material order."""
        with self.lock:
            buffers = self.mesh.buffers()
        return [(self.materials.descriptor(material), buffer)
                for material, buffer in buffers.items()]
