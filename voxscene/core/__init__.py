"""
voxscene Core Module
====================

Voxel storage, palette, materials and meshing.
"""

from voxscene.core.voxel_grid import VoxelGrid, VoxelRegion, ChunkKey
from voxscene.core.palette import VoxelPalette, PaletteColor
from voxscene.core.materials import MaterialDescriptor, MaterialTable, PaletteMaterialMapper
from voxscene.core.mesher import MeshBuffer, MeshGenerator, ModelMesh
from voxscene.core.voxel_model import VoxelModel

__all__ = ['VoxelGrid', 'VoxelRegion', 'ChunkKey', 'VoxelPalette', 'PaletteColor',
           'MaterialDescriptor', 'MaterialTable', 'PaletteMaterialMapper',
           'MeshBuffer', 'MeshGenerator', 'ModelMesh', 'VoxelModel']
