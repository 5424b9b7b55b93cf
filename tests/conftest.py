"""
Shared fixtures: the .vox writer and material tables.
"""

import pytest

from voxscene.core.materials import PaletteMaterialMapper
from voxscene.core.palette import VoxelPalette
from voxscene.log import setup_logging, get_logger

from vox_builder import VoxWriter, RED, GREEN, GLASS


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    setup_logging(level="DEBUG", format_style="simple")
    get_logger("tests").debug("test session started")
    yield


@pytest.fixture
def vox_writer():
    return VoxWriter


@pytest.fixture
def default_materials():
    return PaletteMaterialMapper().map(VoxelPalette.default())


@pytest.fixture
def palette_materials():
    """Index 1 red, 2 green, 3 translucent glass, 4 a second glass color."""
    palette = VoxelPalette.from_rgba_chunk([RED, GREEN, GLASS, (200, 200, 255, 255)])
    palette = palette.with_materials({
        3: {"_type": "_glass", "_trans": "0.5", "_ior": "0.5"},
        4: {"_type": "_glass", "_trans": "0.5"},
    })
    return PaletteMaterialMapper().map(palette)
