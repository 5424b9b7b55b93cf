"""
voxscene Formats Module
=======================

File format decoders.
"""

from voxscene.formats.vox import VoxDecoder, VoxFile, RawModel, RawSceneDescription

__all__ = ['VoxDecoder', 'VoxFile', 'RawModel', 'RawSceneDescription']
