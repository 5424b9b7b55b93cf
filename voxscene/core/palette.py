"""
VoxelPalette - Color and Material Palette
=========================================

The 256-entry palette of a MagicaVoxel file. Index 0 is reserved for
empty cells; entries 1-255 carry a color plus the material attributes
stored in MATL chunks. Palettes are immutable once built, so indices and
entries stay stable for the lifetime of a loaded file.
"""

from typing import List, Tuple, Optional, Dict, Any, Sequence
from dataclasses import dataclass, replace

from voxscene.errors import FormatError

PALETTE_SIZE = 256

MATERIAL_TYPES = ('diffuse', 'metal', 'glass', 'emit', 'blend', 'media')


def _default_colors() -> List[Tuple[int, int, int, int]]:
    """The stock MagicaVoxel palette: a 6x6x6 color cube followed by R, G, B and gray ramps."""
    levels = (255, 204, 153, 102, 51, 0)
    colors = [(r, g, b, 255) for r in levels for g in levels for b in levels]
    colors.pop()  # black is covered by the gray ramp

    ramp = (238, 221, 187, 170, 136, 119, 85, 68, 34, 17)
    colors.extend((v, 0, 0, 255) for v in ramp)
    colors.extend((0, v, 0, 255) for v in ramp)
    colors.extend((0, 0, v, 255) for v in ramp)
    colors.extend((v, v, v, 255) for v in ramp)
    return [(0, 0, 0, 0)] + colors


DEFAULT_PALETTE: Tuple[Tuple[int, int, int, int], ...] = tuple(_default_colors())


def _parse_float(properties: Dict[str, str], key: str, default: float) -> float:
    raw = properties.get(key)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise FormatError(f"material property {key}={raw!r} is not a number", tag='MATL') from None


@dataclass(frozen=True)
class PaletteColor:
    """A single palette entry: color plus MagicaVoxel material properties."""
    r: int = 255
    g: int = 255
    b: int = 255
    a: int = 255

    material_type: str = "diffuse"  # diffuse, metal, glass, emit, blend, media
    roughness: float = 0.0
    metalness: float = 0.0
    emission: float = 0.0
    flux: float = 0.0
    translucency: float = 0.0
    ior: float = 0.3  # stored the MagicaVoxel way: refractive index minus one

    def to_tuple(self) -> Tuple[int, int, int, int]:
        """Return color as RGBA tuple."""
        return (self.r, self.g, self.b, self.a)

    def to_float(self) -> Tuple[float, float, float, float]:
        """Return color as normalized float tuple (0-1 range)."""
        return (self.r / 255.0, self.g / 255.0, self.b / 255.0, self.a / 255.0)

    def with_material(self, properties: Dict[str, str]) -> 'PaletteColor':
        """
        Apply the properties of a MATL chunk to this entry.

        Args:
            properties: Raw MATL dictionary (``_type``, ``_rough``, ``_metal``, ...)

        Returns:
            New PaletteColor carrying the material attributes
        """
        material_type = properties.get('_type', '_diffuse').lstrip('_') or 'diffuse'
        if material_type not in MATERIAL_TYPES:
            material_type = 'diffuse'

        translucency = _parse_float(properties, '_trans', -1.0)
        if translucency < 0.0:
            translucency = _parse_float(properties, '_alpha', 0.0)

        return replace(
            self,
            material_type=material_type,
            roughness=_parse_float(properties, '_rough', 0.0),
            metalness=_parse_float(properties, '_metal', 0.0),
            emission=_parse_float(properties, '_emit', 0.0),
            flux=_parse_float(properties, '_flux', 0.0),
            translucency=translucency,
            ior=_parse_float(properties, '_ior', 0.3),
        )


class VoxelPalette:
    """
    Immutable 256-entry palette.

    Index 0 is always the empty entry. Construct from RGBA tuples or
    PaletteColor entries; shorter inputs are padded with white.
    """

    def __init__(self, colors: Optional[Sequence[Any]] = None):
        if colors is None:
            colors = DEFAULT_PALETTE
        entries = [c if isinstance(c, PaletteColor) else PaletteColor(*(int(v) for v in c))
                   for c in colors[:PALETTE_SIZE]]
        while len(entries) < PALETTE_SIZE:
            entries.append(PaletteColor())
        entries[0] = PaletteColor(r=0, g=0, b=0, a=0)
        self._colors: Tuple[PaletteColor, ...] = tuple(entries)

    @classmethod
    def default(cls) -> 'VoxelPalette':
        """The stock MagicaVoxel palette."""
        return cls(DEFAULT_PALETTE)

    @classmethod
    def from_rgba_chunk(cls, entries: Sequence[Tuple[int, int, int, int]]) -> 'VoxelPalette':
        """
        Build a palette from the 256 entries of an RGBA chunk.

        Chunk entry ``i`` describes palette index ``i + 1``; the final chunk
        entry has no palette slot and is dropped.
        """
        return cls([(0, 0, 0, 0)] + list(entries[:PALETTE_SIZE - 1]))

    def with_materials(self, materials: Dict[int, Dict[str, str]]) -> 'VoxelPalette':
        """Return a copy with MATL properties applied (keys are palette indices)."""
        entries = list(self._colors)
        for index, properties in materials.items():
            if 0 < index < PALETTE_SIZE:
                entries[index] = entries[index].with_material(properties)
        return VoxelPalette(entries)

    @property
    def colors(self) -> Tuple[PaletteColor, ...]:
        return self._colors

    def __len__(self) -> int:
        return PALETTE_SIZE

    def __getitem__(self, index: int) -> PaletteColor:
        if not 0 <= index < PALETTE_SIZE:
            raise IndexError(f"palette index {index} outside 0..{PALETTE_SIZE - 1}")
        return self._colors[index]

    def __eq__(self, other) -> bool:
        return isinstance(other, VoxelPalette) and self._colors == other._colors

    def __hash__(self) -> int:
        return hash(self._colors)

    def to_image(self):
        """Render the palette as a 16x16 RGBA image, one pixel per index."""
        from PIL import Image

        img = Image.new('RGBA', (16, 16))
        img.putdata([c.to_tuple() for c in self._colors])
        return img

