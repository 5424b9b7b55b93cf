import numpy as np
import pytest

from voxscene.core.voxel_grid import VoxelGrid, VoxelRegion, ChunkKey
from voxscene.errors import OutOfBounds


def test_reads_outside_are_empty_and_writes_outside_fail():
    grid = VoxelGrid((2, 3, 4))
    grid.set(1, 2, 3, 7)
    assert grid.get(1, 2, 3) == 7
    assert grid.get(-1, 0, 0) == 0
    assert grid.get(2, 0, 0) == 0
    assert grid.contains(1, 2, 3) and not grid.contains(2, 0, 0)
    with pytest.raises(OutOfBounds):
        grid.set(2, 0, 0, 1)
    with pytest.raises(IndexError):
        grid.set(0, -1, 0, 1)
    with pytest.raises(ValueError):
        grid.set(0, 0, 0, 256)


def test_linear_index_matches_view():
    grid = VoxelGrid((4, 5, 6))
    assert grid.index(1, 2, 3) == 45
    assert grid.coord_of(45) == (1, 2, 3)
    grid.set(1, 2, 3, 9)
    assert grid.voxels[1, 2, 3] == 9
    assert grid.dimensions() == (4, 5, 6)
    with pytest.raises(ValueError):
        grid.voxels[0, 0, 0] = 1


def test_invalid_construction():
    with pytest.raises(ValueError):
        VoxelGrid((0, 1, 1))
    with pytest.raises(ValueError):
        VoxelGrid((4, 4, 4), chunk_size=3)
    with pytest.raises(ValueError):
        VoxelGrid.from_array(np.full((2, 2, 2), 300))


def test_chunk_partitioning():
    grid = VoxelGrid((40, 8, 8), chunk_size=32)
    assert grid.chunk_counts == (2, 1, 1)
    assert grid.chunk_at(33, 0, 7) == ChunkKey(1, 0, 0)
    assert list(grid.iter_chunk_keys()) == [ChunkKey(0, 0, 0), ChunkKey(1, 0, 0)]
    assert grid.chunk_bounds(ChunkKey(1, 0, 0)) == VoxelRegion((32, 0, 0), (8, 8, 8))
    with pytest.raises(OutOfBounds):
        grid.chunk_bounds(ChunkKey(2, 0, 0))
    with pytest.raises(OutOfBounds):
        grid.chunk_at(40, 0, 0)


def test_unchunked_grid_is_one_chunk():
    grid = VoxelGrid((5, 6, 7))
    assert list(grid.iter_chunk_keys()) == [ChunkKey(0, 0, 0)]
    assert grid.chunk_at(4, 5, 6) == ChunkKey(0, 0, 0)
    assert grid.chunk_bounds(ChunkKey(0, 0, 0)) == grid.region()


def test_chunks_in_region_are_clipped():
    grid = VoxelGrid((64, 8, 8), chunk_size=32)
    region = VoxelRegion.from_bounds((-5, 0, 0), (33, 1, 1))
    assert grid.chunks_in_region(region) == [ChunkKey(0, 0, 0), ChunkKey(1, 0, 0)]
    assert grid.chunks_in_region(VoxelRegion((100, 0, 0), (4, 4, 4))) == []


def test_padded_block_reads_neighbors():
    grid = VoxelGrid((4, 1, 1), chunk_size=2)
    grid.set(1, 0, 0, 7)
    cells, outside = grid.padded_block(grid.chunk_bounds(ChunkKey(1, 0, 0)))
    assert cells.shape == (4, 3, 3)
    assert cells[0, 1, 1] == 7
    assert not outside[0, 1, 1]
    assert outside[3, 1, 1]
    assert outside[1, 0, 1]


def test_region_helpers():
    a = VoxelRegion.from_corners((3, 3, 3), (1, 1, 1))
    assert a == VoxelRegion((1, 1, 1), (3, 3, 3))
    b = VoxelRegion((5, 5, 5), (1, 1, 1))
    assert a.union(b) == VoxelRegion((1, 1, 1), (5, 5, 5))
    assert a.union(VoxelRegion((0, 0, 0), (0, 0, 0))) == a
    assert not a.intersects(b)
    assert a.expanded(1).clipped((3, 3, 3)) == VoxelRegion((0, 0, 0), (3, 3, 3))
    assert list(VoxelRegion((0, 0, 0), (2, 1, 2)).iter_coords()) == [
        (0, 0, 0), (0, 0, 1), (1, 0, 0), (1, 0, 1)]


def test_bounds_and_counts():
    grid = VoxelGrid((8, 8, 8))
    assert grid.get_bounds() is None
    grid.set(2, 3, 4, 1)
    grid.set(5, 3, 6, 1)
    assert grid.voxel_count() == 2
    assert grid.get_bounds() == VoxelRegion.from_bounds((2, 3, 4), (6, 4, 7))

    copy = grid.copy()
    copy.set(0, 0, 0, 1)
    assert grid.get(0, 0, 0) == 0
