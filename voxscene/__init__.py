"""
voxscene - MagicaVoxel Scene Loading and Meshing
================================================

Loads MagicaVoxel .vox files into meshed scene graphs:
- Chunk container decoding with palette and material support
- Dense chunked voxel grids
- Material-aware greedy meshing with chunk-seam handling
- Scene graphs with node transforms, layers and model instancing

Runtime editing (``voxscene.core.operations``) and procedural generation
(``voxscene.core.generation``) are opt-in modules and are not imported here.
"""

import logging

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from voxscene.config import LoaderSettings, MeshSettings
from voxscene.errors import VoxSceneError, FormatError, OutOfBounds, InvariantViolation
from voxscene.core.voxel_grid import VoxelGrid, VoxelRegion, ChunkKey
from voxscene.core.palette import VoxelPalette, PaletteColor
from voxscene.core.materials import MaterialDescriptor, MaterialTable, PaletteMaterialMapper
from voxscene.core.mesher import MeshBuffer, MeshGenerator
from voxscene.core.voxel_model import VoxelModel
from voxscene.scene.graph import VoxelScene, SceneGraph, GroupNode, InstanceNode
from voxscene.loader import VoxSceneLoader, load_scene

__all__ = [
    'LoaderSettings', 'MeshSettings',
    'VoxSceneError', 'FormatError', 'OutOfBounds', 'InvariantViolation',
    'VoxelGrid', 'VoxelRegion', 'ChunkKey',
    'VoxelPalette', 'PaletteColor',
    'MaterialDescriptor', 'MaterialTable', 'PaletteMaterialMapper',
    'MeshBuffer', 'MeshGenerator', 'VoxelModel',
    'VoxelScene', 'SceneGraph', 'GroupNode', 'InstanceNode',
    'VoxSceneLoader', 'load_scene',
    '__version__',
]
