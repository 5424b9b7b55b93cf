"""
VoxelGrid - Dense Chunked Voxel Storage
=======================================

A flat numpy buffer of palette indices with a C-ordered (X, Y, Z) view,
plus the chunk partitioning used to bound meshing and remeshing cost.
Reads outside the grid return empty; writes outside it are errors.
"""

import numpy as np
from typing import Optional, Tuple, List, Iterator, Sequence
from dataclasses import dataclass

from voxscene.errors import OutOfBounds

Coord = Tuple[int, int, int]

EMPTY = 0

FACE_DIRECTIONS: Tuple[Coord, ...] = (
    (1, 0, 0),
    (-1, 0, 0),
    (0, 1, 0),
    (0, -1, 0),
    (0, 0, 1),
    (0, 0, -1),
)


@dataclass(frozen=True, order=True)
class ChunkKey:
    x: int
    y: int
    z: int


@dataclass(frozen=True)
class VoxelRegion:
    """Axis-aligned box of cells: ``origin`` inclusive, ``origin + size`` exclusive."""

    origin: Coord
    size: Coord

    def __post_init__(self):
        if len(self.origin) != 3 or len(self.size) != 3:
            raise ValueError("origin and size must have three components")
        object.__setattr__(self, 'origin', tuple(int(v) for v in self.origin))
        object.__setattr__(self, 'size', tuple(int(v) for v in self.size))
        if any(s < 0 for s in self.size):
            raise ValueError(f"region size must not be negative: {self.size}")

    @classmethod
    def from_bounds(cls, lo: Sequence[int], hi: Sequence[int]) -> 'VoxelRegion':
        """Region from an inclusive lower and an exclusive upper corner."""
        return cls(tuple(lo), tuple(max(0, h - l) for l, h in zip(lo, hi)))

    @classmethod
    def from_corners(cls, a: Sequence[int], b: Sequence[int]) -> 'VoxelRegion':
        """Region spanning two inclusive corners given in any order."""
        lo = tuple(min(p, q) for p, q in zip(a, b))
        hi = tuple(max(p, q) + 1 for p, q in zip(a, b))
        return cls.from_bounds(lo, hi)

    @property
    def end(self) -> Coord:
        return tuple(o + s for o, s in zip(self.origin, self.size))

    @property
    def volume(self) -> int:
        return self.size[0] * self.size[1] * self.size[2]

    def is_empty(self) -> bool:
        return self.volume == 0

    def within(self, dimensions: Sequence[int]) -> bool:
        """True if the region lies entirely inside a grid of ``dimensions``."""
        return all(o >= 0 and e <= d for o, e, d in zip(self.origin, self.end, dimensions))

    def union(self, other: 'VoxelRegion') -> 'VoxelRegion':
        if self.is_empty():
            return other
        if other.is_empty():
            return self
        lo = tuple(min(a, b) for a, b in zip(self.origin, other.origin))
        hi = tuple(max(a, b) for a, b in zip(self.end, other.end))
        return VoxelRegion.from_bounds(lo, hi)

    def intersection(self, other: 'VoxelRegion') -> 'VoxelRegion':
        lo = tuple(max(a, b) for a, b in zip(self.origin, other.origin))
        hi = tuple(min(a, b) for a, b in zip(self.end, other.end))
        return VoxelRegion.from_bounds(lo, hi)

    def intersects(self, other: 'VoxelRegion') -> bool:
        return not self.intersection(other).is_empty()

    def expanded(self, margin: int) -> 'VoxelRegion':
        lo = tuple(o - margin for o in self.origin)
        hi = tuple(e + margin for e in self.end)
        return VoxelRegion.from_bounds(lo, hi)

    def clipped(self, dimensions: Sequence[int]) -> 'VoxelRegion':
        return self.intersection(VoxelRegion((0, 0, 0), tuple(dimensions)))

    def slices(self) -> Tuple[slice, slice, slice]:
        return tuple(slice(o, e) for o, e in zip(self.origin, self.end))

    def iter_coords(self) -> Iterator[Coord]:
        """Iterate cells in x-major, then y, then z order."""
        ox, oy, oz = self.origin
        ex, ey, ez = self.end
        for x in range(ox, ex):
            for y in range(oy, ey):
                for z in range(oz, ez):
                    yield x, y, z


class VoxelGrid:
    """
    Dense voxel storage for one model.

    Cells hold palette indices (0 = empty, 1-255 = palette entry). The
    buffer is a flat uint8 array addressed as ``(x * Y + y) * Z + z``; the
    ``voxels`` view exposes the same memory as an (X, Y, Z) array.
    """

    __slots__ = ("size_x", "size_y", "size_z", "chunk_size", "_data", "_view")

    def __init__(self, size: Sequence[int], chunk_size: Optional[int] = None,
                 data: Optional[np.ndarray] = None):
        if len(size) != 3:
            raise ValueError("size must contain three integers")
        sx, sy, sz = (int(axis) for axis in size)
        if sx <= 0 or sy <= 0 or sz <= 0:
            raise ValueError(f"grid dimensions must be positive, got {(sx, sy, sz)}")
        if chunk_size is not None:
            chunk_size = int(chunk_size)
            if chunk_size <= 0 or (chunk_size & (chunk_size - 1)) != 0:
                raise ValueError(f"chunk_size must be a positive power of two, got {chunk_size}")

        self.size_x = sx
        self.size_y = sy
        self.size_z = sz
        self.chunk_size = chunk_size

        if data is None:
            self._data = np.zeros(sx * sy * sz, dtype=np.uint8)
        else:
            flat = np.ascontiguousarray(data, dtype=np.uint8).reshape(-1)
            if flat.size != sx * sy * sz:
                raise ValueError(f"data has {flat.size} cells, expected {sx * sy * sz}")
            self._data = flat.copy()
        self._view = self._data.reshape((sx, sy, sz))

    @classmethod
    def from_array(cls, array: np.ndarray, chunk_size: Optional[int] = None) -> 'VoxelGrid':
        """
        Create a grid from an existing 3D array of palette indices.

        Args:
            array: 3D array indexed [x, y, z]
            chunk_size: Optional power-of-two chunk edge

        Returns:
            New VoxelGrid owning a copy of the data
        """
        array = np.asarray(array)
        if array.ndim != 3:
            raise ValueError(f"expected a 3D array, got shape {array.shape}")
        if array.size and (array.min() < 0 or array.max() > 255):
            raise ValueError("voxel values must be within 0..255")
        return cls(array.shape, chunk_size=chunk_size, data=array)

    def copy(self) -> 'VoxelGrid':
        return VoxelGrid(self.size, chunk_size=self.chunk_size, data=self._data)

    # Addressing ---------------------------------------------------------
    @property
    def size(self) -> Coord:
        return (self.size_x, self.size_y, self.size_z)

    def dimensions(self) -> Coord:
        return self.size

    @property
    def voxels(self) -> np.ndarray:
        """Read-only (X, Y, Z) view of the cells."""
        view = self._view.view()
        view.flags.writeable = False
        return view

    def region(self) -> VoxelRegion:
        return VoxelRegion((0, 0, 0), self.size)

    def contains(self, x: int, y: int, z: int) -> bool:
        return 0 <= x < self.size_x and 0 <= y < self.size_y and 0 <= z < self.size_z

    def index(self, x: int, y: int, z: int) -> int:
        if not self.contains(x, y, z):
            raise OutOfBounds(f"voxel {(x, y, z)} outside grid {self.size}")
        return (x * self.size_y + y) * self.size_z + z

    def coord_of(self, index: int) -> Coord:
        if not 0 <= index < self._data.size:
            raise OutOfBounds(f"linear index {index} outside grid of {self._data.size} cells")
        xy, z = divmod(int(index), self.size_z)
        x, y = divmod(xy, self.size_y)
        return x, y, z

    # Cell access --------------------------------------------------------
    def get(self, x: int, y: int, z: int) -> int:
        """Palette index at (x, y, z); cells outside the grid are empty."""
        if not self.contains(x, y, z):
            return EMPTY
        return int(self._data[(x * self.size_y + y) * self.size_z + z])

    def set(self, x: int, y: int, z: int, value: int):
        """Write a palette index; raises OutOfBounds outside the grid."""
        value = int(value)
        if not 0 <= value <= 255:
            raise ValueError(f"voxel value must be within 0..255, got {value}")
        self._data[self.index(x, y, z)] = value

    def read_region(self, region: VoxelRegion) -> np.ndarray:
        """Copy of the cells inside ``region`` (which must lie inside the grid)."""
        if not region.within(self.size):
            raise OutOfBounds(f"region {region} exceeds grid {self.size}")
        return self._view[region.slices()].copy()

    def write_region(self, region: VoxelRegion, values: np.ndarray):
        """Overwrite the cells inside ``region`` with an array of the same shape."""
        if not region.within(self.size):
            raise OutOfBounds(f"region {region} exceeds grid {self.size}")
        values = np.asarray(values)
        if values.shape != region.size:
            raise ValueError(f"values shape {values.shape} does not match region size {region.size}")
        if values.size and (values.min() < 0 or values.max() > 255):
            raise ValueError("voxel values must be within 0..255")
        self._view[region.slices()] = values.astype(np.uint8)

    def voxel_count(self) -> int:
        """Number of non-empty cells."""
        return int(np.count_nonzero(self._data))

    def get_bounds(self) -> Optional[VoxelRegion]:
        """Bounding region of the non-empty cells, or None for an empty grid."""
        non_empty = np.argwhere(self._view > 0)
        if len(non_empty) == 0:
            return None
        return VoxelRegion.from_bounds(non_empty.min(axis=0), non_empty.max(axis=0) + 1)

    # Chunking -----------------------------------------------------------
    @property
    def chunk_extent(self) -> Coord:
        """Edge length of a chunk along each axis."""
        if self.chunk_size is None:
            return self.size
        return (self.chunk_size,) * 3

    @property
    def chunk_counts(self) -> Coord:
        ext = self.chunk_extent
        return tuple((s + c - 1) // c for s, c in zip(self.size, ext))

    def chunk_at(self, x: int, y: int, z: int) -> ChunkKey:
        if not self.contains(x, y, z):
            raise OutOfBounds(f"voxel {(x, y, z)} outside grid {self.size}")
        cx, cy, cz = self.chunk_extent
        return ChunkKey(x // cx, y // cy, z // cz)

    def iter_chunk_keys(self) -> Iterator[ChunkKey]:
        max_x, max_y, max_z = self.chunk_counts
        for cx in range(max_x):
            for cy in range(max_y):
                for cz in range(max_z):
                    yield ChunkKey(cx, cy, cz)

    def chunk_bounds(self, key: ChunkKey) -> VoxelRegion:
        counts = self.chunk_counts
        if not (0 <= key.x < counts[0] and 0 <= key.y < counts[1] and 0 <= key.z < counts[2]):
            raise OutOfBounds(f"chunk {key} outside chunk grid {counts}")
        ext = self.chunk_extent
        lo = (key.x * ext[0], key.y * ext[1], key.z * ext[2])
        hi = tuple(min(l + e, s) for l, e, s in zip(lo, ext, self.size))
        return VoxelRegion.from_bounds(lo, hi)

    def chunks_in_region(self, region: VoxelRegion) -> List[ChunkKey]:
        """Chunk keys intersecting ``region`` (clipped to the grid), in key order."""
        region = region.clipped(self.size)
        if region.is_empty():
            return []
        ext = self.chunk_extent
        lo = [o // e for o, e in zip(region.origin, ext)]
        hi = [(end - 1) // e for end, e in zip(region.end, ext)]
        return [ChunkKey(cx, cy, cz)
                for cx in range(lo[0], hi[0] + 1)
                for cy in range(lo[1], hi[1] + 1)
                for cz in range(lo[2], hi[2] + 1)]

    def padded_block(self, region: VoxelRegion) -> Tuple[np.ndarray, np.ndarray]:
        """
        Cells of ``region`` surrounded by one layer of neighbor cells.

        Returns:
            (cells, outside) where ``cells`` has shape ``region.size + 2`` on
            every axis (neighbors beyond the grid read as empty) and
            ``outside`` is a boolean mask of padded cells lying outside the grid.
        """
        padded = region.expanded(1)
        cells = np.zeros(padded.size, dtype=np.uint8)
        outside = np.ones(padded.size, dtype=bool)
        inner = padded.clipped(self.size)
        if not inner.is_empty():
            dst = tuple(slice(i - p, i - p + s)
                        for i, p, s in zip(inner.origin, padded.origin, inner.size))
            cells[dst] = self._view[inner.slices()]
            outside[dst] = False
        return cells, outside

    def __repr__(self) -> str:
        return f"VoxelGrid(size={self.size}, chunk_size={self.chunk_size}, voxels={self.voxel_count()})"
