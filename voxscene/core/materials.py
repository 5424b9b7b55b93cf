"""
Palette Materials
=================

Maps the 255 usable palette entries onto renderer-neutral PBR material
descriptors. Entries that describe the same material share a single
material id, which is what the mesher groups faces by.
"""

import numpy as np
from typing import List, Tuple, Dict, Optional
from dataclasses import dataclass

from voxscene.config import LoaderSettings
from voxscene.core.palette import VoxelPalette, PaletteColor, PALETTE_SIZE
from voxscene.errors import InvariantViolation

NO_MATERIAL = -1


@dataclass(frozen=True)
class MaterialDescriptor:
    """PBR parameters for one distinct palette material."""
    base_color: Tuple[float, float, float, float]
    emissive: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    roughness: float = 0.8
    metallic: float = 0.0
    transmission: float = 0.0
    ior: float = 1.5
    transparent: bool = False
    srgb: bool = True

    @property
    def is_emissive(self) -> bool:
        return any(c > 0.0 for c in self.emissive)


class MaterialTable:
    """
    Deduplicated descriptors plus the palette-index to material-id map.

    ``index_map[i]`` is the material id of palette index ``i``; index 0
    (empty) maps to ``NO_MATERIAL``.
    """

    def __init__(self, descriptors: List[MaterialDescriptor], index_map: np.ndarray):
        if index_map.shape != (PALETTE_SIZE,):
            raise InvariantViolation(f"index map must have {PALETTE_SIZE} entries")
        self._descriptors = tuple(descriptors)
        self._index_map = index_map.astype(np.int16)
        self._index_map.flags.writeable = False
        self._transparent = np.array([d.transparent for d in self._descriptors], dtype=bool)

    @property
    def descriptors(self) -> Tuple[MaterialDescriptor, ...]:
        return self._descriptors

    @property
    def index_map(self) -> np.ndarray:
        return self._index_map

    def __len__(self) -> int:
        return len(self._descriptors)

    def material_for(self, palette_index: int) -> int:
        """Material id of a non-empty palette index."""
        if not 0 < palette_index < PALETTE_SIZE:
            raise InvariantViolation(f"no material for palette index {palette_index}")
        material_id = int(self._index_map[palette_index])
        if material_id == NO_MATERIAL:
            raise InvariantViolation(f"palette index {palette_index} is unmapped")
        return material_id

    def descriptor(self, material_id: int) -> MaterialDescriptor:
        if not 0 <= material_id < len(self._descriptors):
            raise InvariantViolation(f"unknown material id {material_id}")
        return self._descriptors[material_id]

    def lookup(self, cells: np.ndarray) -> np.ndarray:
        """Vectorised palette-index to material-id lookup (-1 for empty cells)."""
        return self._index_map[cells]

    def transparent_mask(self, cells: np.ndarray) -> np.ndarray:
        """Boolean mask of cells whose material is transparent."""
        ids = self.lookup(cells)
        mask = np.zeros(ids.shape, dtype=bool)
        solid = ids >= 0
        mask[solid] = self._transparent[ids[solid]]
        return mask


class PaletteMaterialMapper:
    """Builds a MaterialTable from a palette using the loader's material options."""

    def __init__(self, settings: Optional[LoaderSettings] = None):
        self.settings = settings or LoaderSettings()

    def describe(self, color: PaletteColor) -> MaterialDescriptor:
        """Translate a single palette entry into a descriptor."""
        s = self.settings
        r, g, b, a = color.to_float()

        strength = color.emission * (color.flux + 1.0) * s.emission_strength

        if color.material_type == 'diffuse':
            roughness = s.diffuse_roughness
        else:
            roughness = color.roughness

        ior = 1.0 + color.ior if color.material_type == 'glass' else 1.5
        transmission = color.translucency

        return MaterialDescriptor(
            base_color=(r, g, b, a),
            emissive=(r * strength, g * strength, b * strength),
            roughness=float(roughness),
            metallic=float(color.metalness),
            transmission=float(transmission),
            ior=float(ior),
            transparent=transmission > 0.0 or color.a < 255,
            srgb=s.uses_srgb,
        )

    def map(self, palette: VoxelPalette) -> MaterialTable:
        """
        Map every non-empty palette entry to a deduplicated material id.

        Args:
            palette: Palette of a decoded file

        Returns:
            MaterialTable in first-seen order of the distinct descriptors
        """
        descriptors: List[MaterialDescriptor] = []
        ids: Dict[MaterialDescriptor, int] = {}
        index_map = np.full(PALETTE_SIZE, NO_MATERIAL, dtype=np.int16)

        for index in range(1, PALETTE_SIZE):
            descriptor = self.describe(palette[index])
            material_id = ids.get(descriptor)
            if material_id is None:
                material_id = len(descriptors)
                ids[descriptor] = material_id
                descriptors.append(descriptor)
            index_map[index] = material_id

        return MaterialTable(descriptors, index_map)


def palette_textures(palette: VoxelPalette) -> Dict[str, "Image.Image"]:
    """
    Render a palette as 16x16 lookup textures, one pixel per palette index.

    Returns:
        Dict with an RGBA "color" image and float ("F" mode) "emission",
        "roughness", "metalness" and "transmission" maps.
    """
    from PIL import Image

    def float_map(values):
        img = Image.new('F', (16, 16))
        img.putdata([float(v) for v in values])
        return img

    colors = palette.colors
    return {
        'color': palette.to_image(),
        'emission': float_map(c.emission * (c.flux + 1.0) for c in colors),
        'roughness': float_map(c.roughness for c in colors),
        'metalness': float_map(c.metalness for c in colors),
        'transmission': float_map(c.translucency for c in colors),
    }
