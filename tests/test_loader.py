import logging

import numpy as np
import pytest

from voxscene import load_scene, VoxSceneLoader, LoaderSettings, FormatError
from voxscene.core.voxel_model import default_pivot
from voxscene.scene.graph import GroupNode, InstanceNode

from vox_builder import RED


def test_red_cube_end_to_end(vox_writer):
    scene = load_scene(vox_writer().palette([RED]).solid_model((2, 2, 2)).build())

    assert len(scene.models) == 1
    assert isinstance(scene.root, InstanceNode)
    assert scene.root.model_index == 0
    assert scene.root.transform.is_identity()

    parts = scene.instance_parts(0)
    assert len(parts) == 1
    descriptor, buffer = parts[0]
    assert descriptor.base_color == (1.0, 0.0, 0.0, 1.0)
    assert not descriptor.transparent
    assert buffer.quad_count == 6
    assert buffer.triangle_count == 12


def test_load_from_path_logs(vox_writer, tmp_path, caplog):
    path = tmp_path / "cube.vox"
    path.write_bytes(vox_writer().solid_model((3, 3, 3)).build())
    with caplog.at_level(logging.INFO):
        scene = VoxSceneLoader().load(path)
    assert scene.models[0].grid.voxel_count() == 27
    assert "Loading" in caplog.text


def test_malformed_bytes_raise_format_error():
    with pytest.raises(FormatError):
        load_scene(b"not a vox file")


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        VoxSceneLoader(LoaderSettings(chunk_size=3))


def test_z_up_to_y_up_grid(vox_writer):
    data = vox_writer().model((2, 3, 4), [(1, 2, 3, 5)]).build()

    model = load_scene(data).models[0]
    assert model.grid.size == (2, 4, 3)
    assert model.get_voxel(1, 3, 0) == 5
    assert model.pivot == (1, 2, 2)
    assert model.point_to_voxel((0.5, 1.5, -1.5)) == (1, 3, 0)
    assert model.get_voxel_at_point((0.5, 1.5, -1.5)) == 5

    model = load_scene(data, LoaderSettings(y_up=False)).models[0]
    assert model.grid.size == (2, 3, 4)
    assert model.get_voxel(1, 2, 3) == 5
    assert model.pivot == default_pivot((2, 3, 4)) == (1, 1, 2)


def test_chunk_size_reaches_grids(vox_writer):
    data = vox_writer().solid_model((5, 5, 5)).build()
    model = load_scene(data, LoaderSettings(chunk_size=2)).models[0]
    assert model.grid.chunk_size == 2
    assert len(model.mesh.unit_faces()) == 150
    assert len(load_scene(data, LoaderSettings(chunk_size=None)).models[0].mesh.chunk_keys()) == 1


def test_models_without_scene_get_synthesized_group(vox_writer):
    scene = load_scene(vox_writer().solid_model((1, 1, 1)).solid_model((2, 1, 1)).build())
    assert isinstance(scene.root, GroupNode)
    assert [scene.graph.node(i).model_index for i in scene.root.children] == [0, 1]
    assert [m.name for m in scene.models] == ["model-0", "model-1"]
    assert np.array_equal(scene.graph.world_transform(2).matrix(), np.eye(4))


def test_large_cube_at_default_settings_is_six_quads(vox_writer):
    scene = load_scene(vox_writer().solid_model((64, 64, 64)).build())
    model = scene.models[0]
    assert model.grid.chunk_size == 32
    assert len(model.mesh.chunk_keys()) == 8
    parts = scene.instance_parts(0)
    assert sum(buffer.quad_count for _, buffer in parts) == 6
