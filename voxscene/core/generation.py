"""
Procedural Voxel Generation
===========================

Builds grids from a classifier function ``(x, y, z) -> palette index``
and meshes them through the regular mesher. Classifier factories for
simple shapes are provided.
"""

import numpy as np
from typing import Tuple, Optional, Callable, Sequence

from voxscene.config import MeshSettings
from voxscene.core.materials import MaterialTable
from voxscene.core.voxel_grid import VoxelGrid
from voxscene.core.voxel_model import VoxelModel

Classifier = Callable[[int, int, int], int]


class ProceduralGenerator:
    """
    Grid synthesis from classifier functions.

    Args:
        chunk_size: Power-of-two chunk edge for generated grids, or None
    """

    def __init__(self, chunk_size: Optional[int] = None):
        self.chunk_size = chunk_size

    def generate(self, dimensions: Sequence[int], classifier: Classifier) -> VoxelGrid:
        """
        Fill a grid by calling ``classifier`` once for every cell.

        Cells are visited in x-major order (x, then y, then z).

        Args:
            dimensions: Grid size (X, Y, Z)
            classifier: Returns the palette index of a cell (0 = empty)

        Returns:
            New VoxelGrid
        """
        grid = VoxelGrid(dimensions, chunk_size=self.chunk_size)
        values = np.zeros(grid.size, dtype=np.uint8)
        for x, y, z in grid.region().iter_coords():
            value = int(classifier(x, y, z))
            if not 0 <= value <= 255:
                raise ValueError(f"classifier returned {value} for {(x, y, z)}; expected 0..255")
            values[x, y, z] = value
        grid.write_region(grid.region(), values)
        return grid

    def generate_model(self, dimensions: Sequence[int], classifier: Classifier,
                       materials: MaterialTable, name: str = "generated",
                       settings: Optional[MeshSettings] = None) -> VoxelModel:
        """Generate a grid and mesh it into a VoxelModel."""
        grid = self.generate(dimensions, classifier)
        return VoxelModel(name=name, grid=grid, materials=materials,
                          settings=settings or MeshSettings())


def sphere(radius: float, value: int = 1,
           center: Optional[Tuple[float, float, float]] = None) -> Classifier:
    """Classifier for a solid sphere; the center defaults to (radius, radius, radius)."""
    if center is None:
        center = (radius, radius, radius)
    cx, cy, cz = center
    r2 = radius * radius

    def classify(x: int, y: int, z: int) -> int:
        return value if (x - cx) ** 2 + (y - cy) ** 2 + (z - cz) ** 2 <= r2 else 0

    return classify


def box(lo: Tuple[int, int, int], hi: Tuple[int, int, int], value: int = 1) -> Classifier:
    """Classifier for the box ``lo <= cell < hi``."""
    x1, y1, z1 = lo
    x2, y2, z2 = hi

    def classify(x: int, y: int, z: int) -> int:
        return value if x1 <= x < x2 and y1 <= y < y2 and z1 <= z < z2 else 0

    return classify
