"""
Scene Loader
============

End-to-end pipeline from .vox bytes to a VoxelScene: decode the file, map
the palette to materials, build and mesh one VoxelModel per SIZE/XYZI
pair, and assemble the scene graph.
"""

import numpy as np
from typing import Union, Optional
from pathlib import Path

from voxscene.config import LoaderSettings
from voxscene.core.materials import PaletteMaterialMapper, MaterialTable
from voxscene.core.voxel_grid import VoxelGrid
from voxscene.core.voxel_model import VoxelModel, default_pivot
from voxscene.formats.vox import VoxDecoder, RawModel
from voxscene.scene.builder import SceneGraphBuilder
from voxscene.scene.graph import VoxelScene
from voxscene.log import get_logger

logger = get_logger(__name__)


def z_up_to_y_up(voxels: np.ndarray) -> np.ndarray:
    """Re-index a Z-up (X, Y, Z) array as Y-up (X, Z, Y): cell (x, y, z) moves to (x, z, Y-1-y)."""
    return np.ascontiguousarray(np.transpose(voxels, (0, 2, 1))[:, :, ::-1])


class VoxSceneLoader:
    """
    Loads MagicaVoxel files into meshed scenes.

    Args:
        settings: Loader options; validated on construction
    """

    def __init__(self, settings: Optional[LoaderSettings] = None):
        self.settings = (settings or LoaderSettings()).validate()
        self.decoder = VoxDecoder()

    def load(self, path: Union[str, Path]) -> VoxelScene:
        """Load a .vox file from disk."""
        path = Path(path)
        logger.info("Loading %s", path)
        return self.load_bytes(path.read_bytes(), name=path.name)

    def load_bytes(self, data: bytes, name: str = "<memory>") -> VoxelScene:
        """
        Decode and mesh a .vox file held in memory.

        Args:
            data: File contents
            name: Label used in log messages

        Returns:
            VoxelScene with one meshed model per model in the file
        """
        vox = self.decoder.decode(data)
        materials = PaletteMaterialMapper(self.settings).map(vox.palette)

        names = SceneGraphBuilder.model_names(vox.scene, len(vox.models))
        models = [self._build_model(raw, model_name, materials)
                  for raw, model_name in zip(vox.models, names)]

        builder = SceneGraphBuilder(y_up=self.settings.y_up)
        graph = builder.build(vox.scene, len(models))

        logger.info("Loaded %s: version %d, %d models, %d materials, %d scene nodes",
                    name, vox.version, len(models), len(materials), len(graph))
        return VoxelScene(graph=graph, models=models, materials=materials, palette=vox.palette,
                          layers=builder.layers(vox.scene), settings=self.settings)

    def _build_model(self, raw: RawModel, name: str, materials: MaterialTable) -> VoxelModel:
        voxels = z_up_to_y_up(raw.voxels) if self.settings.y_up else raw.voxels
        grid = VoxelGrid.from_array(voxels, chunk_size=self.settings.chunk_size)
        model = VoxelModel(name=name, grid=grid, materials=materials, settings=self.settings.mesh,
                           pivot=default_pivot(grid.size, flipped_z=self.settings.y_up))
        logger.debug("Model %r: size %s, %d voxels, %d triangles",
                     name, grid.size, grid.voxel_count(), model.mesh.triangle_count())
        return model


def load_scene(source: Union[str, Path, bytes], settings: Optional[LoaderSettings] = None) -> VoxelScene:
    """Load a scene from a path or from raw .vox bytes."""
    loader = VoxSceneLoader(settings)
    if isinstance(source, (bytes, bytearray, memoryview)):
        return loader.load_bytes(bytes(source))
    return loader.load(source)
