import numpy as np
import pytest

from voxscene.config import MeshSettings
from voxscene.core.operations import VoxelEditor, DirtyRegion
from voxscene.core.voxel_grid import VoxelGrid, VoxelRegion, ChunkKey
from voxscene.core.voxel_model import VoxelModel
from voxscene.errors import OutOfBounds


def make_model(materials, size=(8, 8, 8), chunk_size=4, fill=0, settings=None):
    grid = VoxelGrid.from_array(np.full(size, fill, dtype=np.uint8), chunk_size=chunk_size)
    return VoxelModel(name="test", grid=grid, materials=materials, settings=settings or MeshSettings())


def assert_matches_full_rebuild(model):
    fresh = model.generator().build(model.grid)
    keys = set(model.mesh.chunk_keys()) | set(fresh.chunk_keys())
    for key in keys:
        assert model.mesh.chunk_buffers(key) == fresh.chunk_buffers(key), key


def test_set_voxel_marks_dirty_and_remeshes_one_chunk(default_materials):
    model = make_model(default_materials)
    editor = VoxelEditor(model)
    assert editor.set_voxel(0, 0, 0, 1) == 1
    assert editor.dirty.region == VoxelRegion((0, 0, 0), (1, 1, 1))
    assert editor.remesh() == [ChunkKey(0, 0, 0)]
    assert editor.dirty.is_empty()
    assert model.mesh.triangle_count() == 12
    assert_matches_full_rebuild(model)


def test_edit_on_chunk_seam_remeshes_neighbor(default_materials):
    model = make_model(default_materials, fill=1)
    editor = VoxelEditor(model)
    editor.set_voxel(3, 0, 0, 0)
    assert editor.remesh() == [ChunkKey(0, 0, 0), ChunkKey(1, 0, 0)]
    assert_matches_full_rebuild(model)


def test_incremental_remesh_equals_full_rebuild(default_materials):
    model = make_model(default_materials, fill=2)
    editor = VoxelEditor(model)
    editor.carve_sphere((4, 4, 4), 2)
    editor.fill(VoxelRegion((0, 0, 0), (2, 8, 2)), 0)
    editor.paint(VoxelRegion((4, 0, 0), (4, 4, 4)), 3)
    editor.remesh()
    assert_matches_full_rebuild(model)

    editor.set_voxel(7, 7, 7, 0)
    editor.set_voxel(4, 4, 4, 5)
    editor.remesh()
    assert_matches_full_rebuild(model)


def test_region_outside_grid_is_rejected_before_writing(default_materials):
    model = make_model(default_materials)
    editor = VoxelEditor(model)
    with pytest.raises(OutOfBounds):
        editor.fill(VoxelRegion((6, 0, 0), (4, 1, 1)), 1)
    with pytest.raises(OutOfBounds):
        editor.set_voxel(-1, 0, 0, 1)
    assert model.grid.voxel_count() == 0
    assert editor.dirty.is_empty()


def test_write_function_reads_pre_edit_snapshot(default_materials):
    model = make_model(default_materials, size=(3, 1, 1), chunk_size=None)
    model.grid.set(0, 0, 0, 1)
    editor = VoxelEditor(model)

    def shift(coord, current):
        return model.grid.get(coord[0] - 1, 0, 0) or current

    assert editor.apply_edit(None, shift) == 1
    assert model.grid.voxels[:, 0, 0].tolist() == [1, 1, 0]


def test_write_function_values_are_checked(default_materials):
    editor = VoxelEditor(make_model(default_materials))
    with pytest.raises(ValueError):
        editor.set_voxel(0, 0, 0, 300)
    assert editor.model.grid.voxel_count() == 0


def test_dirty_region_bounds_changed_cells(default_materials):
    model = make_model(default_materials)
    editor = VoxelEditor(model)
    editor.set_voxel(2, 3, 4, 1)
    editor.set_voxel(5, 5, 5, 1)
    assert editor.dirty.region == VoxelRegion.from_bounds((2, 3, 4), (6, 6, 6))

    editor.remesh()
    assert editor.set_voxel(2, 3, 4, 1) == 0
    assert editor.dirty.is_empty()
    assert editor.remesh() == []


def test_fill_only_dirties_changed_cells(default_materials):
    model = make_model(default_materials)
    model.grid.write_region(VoxelRegion((0, 0, 0), (8, 8, 4)), np.ones((8, 8, 4), dtype=np.uint8))
    editor = VoxelEditor(model)
    assert editor.fill(VoxelRegion((0, 0, 0), (8, 8, 6)), 1) == 8 * 8 * 2
    assert editor.dirty.region == VoxelRegion((0, 0, 4), (8, 8, 2))


def test_paint_keeps_empty_cells_empty(default_materials):
    model = make_model(default_materials, size=(4, 1, 1), chunk_size=None)
    model.grid.set(1, 0, 0, 1)
    editor = VoxelEditor(model)
    assert editor.paint(model.grid.region(), 9) == 1
    assert model.grid.voxels[:, 0, 0].tolist() == [0, 9, 0, 0]


def test_carve_sphere_is_clipped_to_grid(default_materials):
    model = make_model(default_materials, fill=1)
    editor = VoxelEditor(model)
    assert editor.carve_sphere((0, 0, 0), 2) == 11
    assert model.grid.get(0, 0, 0) == 0
    assert model.grid.get(2, 1, 0) == 1
    assert editor.carve_sphere((40, 40, 40), 3) == 0


def test_cavity_changes_remesh_consistently(default_materials):
    settings = MeshSettings(cull_sealed_cavities=True)
    model = make_model(default_materials, size=(4, 4, 4), chunk_size=2, settings=settings)
    model.grid.write_region(VoxelRegion((0, 0, 0), (3, 3, 3)), np.ones((3, 3, 3), dtype=np.uint8))
    model.grid.set(1, 1, 1, 0)
    model.remesh_all()
    assert len(model.mesh.unit_faces()) == 54

    editor = VoxelEditor(model)
    editor.set_voxel(1, 1, 0, 0)
    editor.remesh()
    assert_matches_full_rebuild(model)

    editor.set_voxel(1, 1, 0, 1)
    editor.remesh()
    assert_matches_full_rebuild(model)
    assert len(model.mesh.unit_faces()) == 54


def test_dirty_region_union():
    dirty = DirtyRegion()
    assert dirty.is_empty()
    dirty.include(VoxelRegion((0, 0, 0), (0, 0, 0)))
    assert dirty.is_empty()
    dirty.include(VoxelRegion((1, 1, 1), (1, 1, 1)))
    dirty.include(VoxelRegion((3, 0, 2), (1, 1, 1)))
    assert dirty.region == VoxelRegion.from_bounds((1, 0, 1), (4, 2, 3))
    dirty.clear()
    assert dirty.region is None


def test_editors_of_one_model_share_dirty_cells(default_materials):
    model = make_model(default_materials)
    first, second = VoxelEditor(model), VoxelEditor(model)
    first.set_voxel(0, 0, 0, 1)
    second.set_voxel(1, 0, 0, 1)
    assert second.dirty is model.dirty
    assert second.dirty.region == VoxelRegion((0, 0, 0), (2, 1, 1))
    assert second.remesh() == [ChunkKey(0, 0, 0)]
    assert first.dirty.is_empty()
    assert first.remesh() == []
    assert model.mesh.triangle_count() == 12
    assert_matches_full_rebuild(model)


def test_full_rebuild_clears_dirty_cells(default_materials):
    model = make_model(default_materials)
    VoxelEditor(model).fill(VoxelRegion((0, 0, 0), (2, 2, 2)), 1)
    assert not model.dirty.is_empty()
    model.remesh_all()
    assert model.dirty.is_empty()
