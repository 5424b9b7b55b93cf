"""
Greedy Voxel Mesher
===================

Turns voxel grids into per-material triangle buffers.

For each of the six face directions the region is scanned layer by layer.
A face is emitted where a solid cell borders a cell that does not hide it
(empty, outside the grid, or translucent with a different material), and
coplanar faces of the same material are merged into maximal rectangles.
Chunks are meshed independently: merges inside a chunk never cross its
boundary, and every chunk reads one layer of neighbor cells so its faces
agree with a whole-grid mesh. A model's combined buffers merge the chunk
faces again across the seams, giving the same quads as meshing the grid
in one piece.
"""

import numpy as np
from typing import List, Tuple, Dict, Optional, Iterable, Iterator, Set, Sequence
from dataclasses import dataclass
from concurrent.futures import ThreadPoolExecutor

from scipy import ndimage

from voxscene.config import MeshSettings
from voxscene.core.materials import MaterialTable
from voxscene.core.voxel_grid import VoxelGrid, VoxelRegion, ChunkKey, FACE_DIRECTIONS
from voxscene.log import get_logger

logger = get_logger(__name__)

UnitFace = Tuple[int, int, int, int]

# (axis, sign) for each entry of FACE_DIRECTIONS
_DIRECTIONS: Tuple[Tuple[int, int], ...] = tuple(
    (next(i for i, d in enumerate(direction) if d), sum(direction))
    for direction in FACE_DIRECTIONS
)

_QUAD_TRIANGLES = np.array([0, 1, 2, 0, 2, 3], dtype=np.uint32)


def _read_only(array: np.ndarray, dtype) -> np.ndarray:
    array = np.ascontiguousarray(array, dtype=dtype)
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class MeshBuffer:
    """
    Triangle geometry of one material.

    Vertices come in groups of four (one quad each) and every quad is split
    into the triangles (0, 1, 2) and (0, 2, 3). Arrays are read-only.
    """
    material: int
    positions: np.ndarray
    normals: np.ndarray
    uvs: np.ndarray
    indices: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'positions', _read_only(self.positions, np.float32).reshape(-1, 3))
        object.__setattr__(self, 'normals', _read_only(self.normals, np.float32).reshape(-1, 3))
        object.__setattr__(self, 'uvs', _read_only(self.uvs, np.float32).reshape(-1, 2))
        object.__setattr__(self, 'indices', _read_only(self.indices, np.uint32).reshape(-1))

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        return len(self.indices) // 3

    @property
    def quad_count(self) -> int:
        return len(self.positions) // 4

    def is_empty(self) -> bool:
        return len(self.indices) == 0

    @classmethod
    def concatenate(cls, buffers: List['MeshBuffer']) -> 'MeshBuffer':
        """Join buffers of the same material, in order."""
        if not buffers:
            raise ValueError("nothing to concatenate")
        if len(buffers) == 1:
            return buffers[0]
        material = buffers[0].material
        if any(b.material != material for b in buffers):
            raise ValueError("cannot concatenate buffers of different materials")

        offsets = np.cumsum([0] + [b.vertex_count for b in buffers[:-1]])
        return cls(
            material=material,
            positions=np.concatenate([b.positions for b in buffers]),
            normals=np.concatenate([b.normals for b in buffers]),
            uvs=np.concatenate([b.uvs for b in buffers]),
            indices=np.concatenate([b.indices + np.uint32(o) for b, o in zip(buffers, offsets)]),
        )

    def quad_cells(self) -> Iterator[Tuple[int, VoxelRegion]]:
        """
        Yield ``(direction_index, cells)`` for every quad, where ``cells`` is
        the region of solid cells whose faces the quad covers.
        """
        for quad in range(self.quad_count):
            corners = self.positions[quad * 4:quad * 4 + 4].astype(np.int64)
            normal = tuple(int(round(n)) for n in self.normals[quad * 4])
            direction = FACE_DIRECTIONS.index(normal)
            axis, sign = _DIRECTIONS[direction]

            lo = corners.min(axis=0).tolist()
            hi = corners.max(axis=0).tolist()
            if sign > 0:
                lo[axis] -= 1
            hi[axis] = lo[axis] + 1
            yield direction, VoxelRegion.from_bounds(lo, hi)

    def unit_faces(self) -> Set[UnitFace]:
        """
        Decompose the quads into unit cell faces.

        Returns:
            Set of (x, y, z, direction_index) where (x, y, z) is the solid
            cell owning the face and direction_index indexes FACE_DIRECTIONS.
        """
        faces: Set[UnitFace] = set()
        for direction, cells in self.quad_cells():
            faces.update((x, y, z, direction) for x, y, z in cells.iter_coords())
        return faces

    def to_bytes(self) -> bytes:
        """Raw concatenation of the arrays, for byte-level comparisons."""
        return (self.positions.tobytes() + self.normals.tobytes()
                + self.uvs.tobytes() + self.indices.tobytes())

    def __eq__(self, other) -> bool:
        if not isinstance(other, MeshBuffer):
            return NotImplemented
        return (self.material == other.material
                and np.array_equal(self.positions, other.positions)
                and np.array_equal(self.normals, other.normals)
                and np.array_equal(self.uvs, other.uvs)
                and np.array_equal(self.indices, other.indices))

    __hash__ = None


class _QuadCollector:
    """Accumulates quads per material before packing them into buffers."""

    def __init__(self):
        self.quads: Dict[int, List[Tuple[np.ndarray, Tuple[int, int, int], np.ndarray]]] = {}

    def add(self, material: int, corners: np.ndarray, normal: Tuple[int, int, int], uvs: np.ndarray):
        self.quads.setdefault(material, []).append((corners, normal, uvs))

    def buffers(self) -> Dict[int, MeshBuffer]:
        result = {}
        for material in sorted(self.quads):
            quads = self.quads[material]
            count = len(quads)
            result[material] = MeshBuffer(
                material=material,
                positions=np.concatenate([q[0] for q in quads]),
                normals=np.repeat(np.array([q[1] for q in quads], dtype=np.float32), 4, axis=0),
                uvs=np.concatenate([q[2] for q in quads]),
                indices=(np.arange(count, dtype=np.uint32)[:, None] * 4 + _QUAD_TRIANGLES).reshape(-1),
            )
        return result


class MeshGenerator:
    """
    Material-aware greedy mesher.

    Args:
        materials: Material table used to group faces and detect translucency
        settings: Meshing options
    """

    def __init__(self, materials: MaterialTable, settings: Optional[MeshSettings] = None):
        self.materials = materials
        self.settings = settings or MeshSettings()

    def sealed_cavities(self, grid: VoxelGrid) -> Optional[np.ndarray]:
        """Mask of empty cells unreachable from outside the grid, when cavity culling is on."""
        if not self.settings.cull_sealed_cavities:
            return None
        solid = grid.voxels > 0
        return ndimage.binary_fill_holes(solid) & ~solid

    def mesh_grid(self, grid: VoxelGrid) -> Dict[int, MeshBuffer]:
        """Mesh the whole grid as a single region."""
        return self.mesh_region(grid, grid.region())

    def mesh_region(self, grid: VoxelGrid, region: Optional[VoxelRegion] = None,
                    sealed: Optional[np.ndarray] = None) -> Dict[int, MeshBuffer]:
        """
        Mesh the cells of one region.

        Args:
            grid: Source grid
            region: Cells to mesh (defaults to the whole grid)
            sealed: Precomputed sealed-cavity mask for the whole grid

        Returns:
            Mapping of material id to MeshBuffer (empty for an empty region)
        """
        region = grid.region() if region is None else region.clipped(grid.size)
        if region.is_empty():
            return {}
        if sealed is None:
            sealed = self.sealed_cavities(grid)

        cells, outside = grid.padded_block(region)
        material = self.materials.lookup(cells).astype(np.int32)
        solid = material >= 0
        transparent = self.materials.transparent_mask(cells)
        opaque = solid & ~transparent

        hiding = opaque.copy()
        if not self.settings.mesh_outer_faces:
            hiding |= outside
        if sealed is not None:
            hiding |= self._padded_mask(grid, sealed, region)

        collector = _QuadCollector()
        center = (slice(1, -1),) * 3
        for direction, (axis, sign) in enumerate(_DIRECTIONS):
            neighbor = list(center)
            neighbor[axis] = slice(1 + sign, cells.shape[axis] - 1 + sign)
            neighbor = tuple(neighbor)

            same_translucent = transparent[neighbor] & (material[neighbor] == material[center])
            visible = solid[center] & ~(hiding[neighbor] | same_translucent)
            if not visible.any():
                continue
            face_material = np.where(visible, material[center], -1)
            self._merge_direction(face_material, direction, region.origin, collector)

        return collector.buffers()

    def mesh_chunks(self, grid: VoxelGrid, keys: Optional[Iterable[ChunkKey]] = None,
                    sealed: Optional[np.ndarray] = None) -> Dict[ChunkKey, Dict[int, MeshBuffer]]:
        """Mesh chunks independently; results are keyed and ordered by chunk key."""
        keys = sorted(grid.iter_chunk_keys() if keys is None else keys)
        if sealed is None:
            sealed = self.sealed_cavities(grid)

        def mesh_one(key: ChunkKey) -> Dict[int, MeshBuffer]:
            return self.mesh_region(grid, grid.chunk_bounds(key), sealed)

        workers = self.settings.workers
        if workers > 1 and len(keys) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(mesh_one, keys))
        else:
            results = [mesh_one(key) for key in keys]
        return dict(zip(keys, results))

    def build(self, grid: VoxelGrid) -> 'ModelMesh':
        """Mesh every chunk of a grid into a fresh ModelMesh."""
        sealed = self.sealed_cavities(grid)
        mesh = ModelMesh(self.mesh_chunks(grid, sealed=sealed), sealed=sealed, size=grid.size)
        logger.debug("Meshed grid %s: %d chunks, %d triangles",
                     grid.size, len(mesh.chunk_keys()), mesh.triangle_count())
        return mesh

    @staticmethod
    def _padded_mask(grid: VoxelGrid, mask: np.ndarray, region: VoxelRegion) -> np.ndarray:
        padded = region.expanded(1)
        result = np.zeros(padded.size, dtype=bool)
        inner = padded.clipped(grid.size)
        dst = tuple(slice(i - p, i - p + s)
                    for i, p, s in zip(inner.origin, padded.origin, inner.size))
        result[dst] = mask[inner.slices()]
        return result

    @staticmethod
    def _merge_direction(face_material: np.ndarray, direction: int,
                         origin: Tuple[int, int, int], collector: _QuadCollector):
        """Greedily merge the visible faces of one direction, layer by layer."""
        axis, sign = _DIRECTIONS[direction]
        u_axis = (axis + 1) % 3
        v_axis = (axis + 2) % 3
        normal = FACE_DIRECTIONS[direction]
        layers = np.transpose(face_material, (axis, u_axis, v_axis))

        for i, layer in enumerate(layers):
            if not (layer >= 0).any():
                continue
            used = np.zeros(layer.shape, dtype=bool)
            size_u, size_v = layer.shape
            plane = origin[axis] + i + (1 if sign > 0 else 0)

            for p, q in zip(*np.nonzero(layer >= 0)):
                if used[p, q]:
                    continue
                mat = layer[p, q]

                width = 1
                while q + width < size_v and layer[p, q + width] == mat and not used[p, q + width]:
                    width += 1

                height = 1
                while p + height < size_u:
                    row = slice(q, q + width)
                    if (layer[p + height, row] != mat).any() or used[p + height, row].any():
                        break
                    height += 1

                used[p:p + height, q:q + width] = True

                corners = np.zeros((4, 3), dtype=np.float32)
                corners[:, axis] = plane
                u0 = origin[u_axis] + p
                v0 = origin[v_axis] + q
                # 00, 10, 11, 01 in (u, v); reversed for faces pointing down the axis
                local = np.array([(0, 0), (height, 0), (height, width), (0, width)], dtype=np.float32)
                if sign < 0:
                    local = local[[0, 3, 2, 1]]
                corners[:, u_axis] = u0 + local[:, 0]
                corners[:, v_axis] = v0 + local[:, 1]
                collector.add(int(mat), corners, normal, local)


class ModelMesh:
    """
    Per-chunk mesh buffers of one model.

    Chunk results are swapped wholesale on remesh. ``buffers()`` gathers
    the visible faces of every chunk and merges them again across chunk
    seams, so the model-level buffers do not depend on the chunk size. The
    result is cached until the next replacement.

    Args:
        chunks: Initial per-chunk buffers
        sealed: Sealed-cavity mask the chunks were meshed with
        size: Dimensions of the meshed grid; without it ``buffers()`` only
            concatenates the chunk buffers
    """

    def __init__(self, chunks: Optional[Dict[ChunkKey, Dict[int, MeshBuffer]]] = None,
                 sealed: Optional[np.ndarray] = None, size: Optional[Sequence[int]] = None):
        self._chunks: Dict[ChunkKey, Dict[int, MeshBuffer]] = {}
        self._merged: Optional[Dict[int, MeshBuffer]] = None
        self.sealed = sealed
        self.size = None if size is None else tuple(int(s) for s in size)
        if chunks:
            self.replace(chunks)

    def replace(self, chunk_buffers: Dict[ChunkKey, Dict[int, MeshBuffer]]):
        for key, buffers in chunk_buffers.items():
            if buffers:
                self._chunks[key] = dict(buffers)
            else:
                self._chunks.pop(key, None)
        self._merged = None

    def chunk_keys(self) -> List[ChunkKey]:
        return sorted(self._chunks)

    def chunk_buffers(self, key: ChunkKey) -> Dict[int, MeshBuffer]:
        return dict(self._chunks.get(key, {}))

    def buffers(self) -> Dict[int, MeshBuffer]:
        """Mesh buffers of the whole model, one per material."""
        if self._merged is None:
            if self.size is None or len(self._chunks) <= 1:
                self._merged = self._concatenated()
            else:
                self._merged = self._merged_across_seams()
        return self._merged

    def _concatenated(self) -> Dict[int, MeshBuffer]:
        grouped: Dict[int, List[MeshBuffer]] = {}
        for key in self.chunk_keys():
            for material, buffer in self._chunks[key].items():
                grouped.setdefault(material, []).append(buffer)
        return {m: MeshBuffer.concatenate(grouped[m]) for m in sorted(grouped)}

    def _merged_across_seams(self) -> Dict[int, MeshBuffer]:
        by_direction: Dict[int, List[Tuple[Tuple[slice, slice, slice], int]]] = {}
        for key in self.chunk_keys():
            for material, buffer in self._chunks[key].items():
                for direction, cells in buffer.quad_cells():
                    by_direction.setdefault(direction, []).append((cells.slices(), material))

        collector = _QuadCollector()
        for direction in sorted(by_direction):
            faces = np.full(self.size, -1, dtype=np.int16)
            for cells, material in by_direction[direction]:
                faces[cells] = material
            MeshGenerator._merge_direction(faces, direction, (0, 0, 0), collector)
        return collector.buffers()

    def triangle_count(self) -> int:
        return sum(b.triangle_count for b in self.buffers().values())

    def unit_faces(self) -> Set[UnitFace]:
        faces: Set[UnitFace] = set()
        for chunk in self._chunks.values():
            for buffer in chunk.values():
                faces |= buffer.unit_faces()
        return faces
