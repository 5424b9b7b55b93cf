"""
voxscene Scene Module
=====================

Scene graph types and their construction from decoded files.
"""

from voxscene.scene.transform import Transform
from voxscene.scene.graph import SceneGraph, GroupNode, InstanceNode, LayerInfo, VoxelScene
from voxscene.scene.builder import SceneGraphBuilder

__all__ = ['Transform', 'SceneGraph', 'GroupNode', 'InstanceNode', 'LayerInfo',
           'VoxelScene', 'SceneGraphBuilder']
