"""
Loader and Meshing Settings
===========================

Plain dataclasses holding every tunable of the pipeline. Both can be
round-tripped through dictionaries so hosts can keep them in their own
configuration files.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

DEFAULT_CHUNK_SIZE = 32


def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0


@dataclass
class MeshSettings:
    """
    Options consumed by the mesh generator.

    Attributes:
        mesh_outer_faces: Emit faces on the outer boundary of the grid. Turn
            off for tileset pieces whose outer faces are never seen.
        cull_sealed_cavities: Treat empty cells that cannot be reached from
            outside the grid as solid, so sealed cavities produce no faces.
        workers: Number of threads used to mesh independent chunks.
    """

    mesh_outer_faces: bool = True
    cull_sealed_cavities: bool = False
    workers: int = 1

    def validate(self) -> 'MeshSettings':
        if int(self.workers) < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MeshSettings':
        return cls(
            mesh_outer_faces=bool(data.get('mesh_outer_faces', True)),
            cull_sealed_cavities=bool(data.get('cull_sealed_cavities', False)),
            workers=int(data.get('workers', 1)),
        ).validate()


@dataclass
class LoaderSettings:
    """
    Options for turning a .vox file into a scene.

    Attributes:
        emission_strength: Multiplier applied to emissive materials.
        diffuse_roughness: Roughness used for "_diffuse" palette entries,
            which MagicaVoxel gives no roughness of their own.
        uses_srgb: Whether palette colors are to be interpreted as sRGB.
        chunk_size: Power-of-two edge length of meshing chunks, or None to
            mesh every model as a single region.
        y_up: Convert MagicaVoxel's Z-up space into Y-up space.
        mesh: Settings forwarded to the mesh generator.
    """

    emission_strength: float = 2.0
    diffuse_roughness: float = 0.8
    uses_srgb: bool = True
    chunk_size: Optional[int] = DEFAULT_CHUNK_SIZE
    y_up: bool = True
    mesh: MeshSettings = field(default_factory=MeshSettings)

    def validate(self) -> 'LoaderSettings':
        """Raise ValueError on inconsistent values; returns self for chaining."""
        if self.chunk_size is not None and not is_power_of_two(int(self.chunk_size)):
            raise ValueError(f"chunk_size must be a positive power of two, got {self.chunk_size}")
        if self.emission_strength < 0:
            raise ValueError("emission_strength must not be negative")
        if not 0.0 <= self.diffuse_roughness <= 1.0:
            raise ValueError("diffuse_roughness must be within [0, 1]")
        self.mesh.validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'emission_strength': self.emission_strength,
            'diffuse_roughness': self.diffuse_roughness,
            'uses_srgb': self.uses_srgb,
            'chunk_size': self.chunk_size,
            'y_up': self.y_up,
            'mesh': self.mesh.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoaderSettings':
        chunk_size = data.get('chunk_size', DEFAULT_CHUNK_SIZE)
        settings = cls(
            emission_strength=float(data.get('emission_strength', 2.0)),
            diffuse_roughness=float(data.get('diffuse_roughness', 0.8)),
            uses_srgb=bool(data.get('uses_srgb', True)),
            chunk_size=None if chunk_size is None else int(chunk_size),
            y_up=bool(data.get('y_up', True)),
            mesh=MeshSettings.from_dict(data.get('mesh', {})),
        )
        return settings.validate()
