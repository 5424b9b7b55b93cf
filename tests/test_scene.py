import numpy as np
import pytest

from voxscene import load_scene, LoaderSettings
from voxscene.core.operations import VoxelEditor
from voxscene.scene.graph import GroupNode, InstanceNode
from voxscene.scene.transform import Transform


def workshop(writer, **transform_options):
    """Root group holding two named instances of the same model plus one of a second model."""
    writer.solid_model((2, 2, 2)).solid_model((1, 1, 1))
    writer.transform(0, 1)
    writer.group(1, [2, 4, 6])
    writer.transform(2, 3, name="desk", layer_id=0)
    writer.shape(3, [0])
    writer.transform(4, 5, name="shelf", translation=(10, 20, 30), **transform_options)
    writer.shape(5, [0])
    writer.transform(6, 7, name="lamp", layer_id=1)
    writer.shape(7, [1])
    writer.layer(0, name="furniture")
    writer.layer(1, name="lights", hidden=True)
    return writer.build()


def test_instances_share_models(vox_writer):
    scene = load_scene(workshop(vox_writer()))
    instances = scene.graph.instances()
    assert [node.name for node in instances] == ["desk", "shelf", "lamp"]
    assert [node.model_index for node in instances] == [0, 0, 1]
    assert scene.instance_parts(instances[0].index)[0][1] is scene.instance_parts(instances[1].index)[0][1]
    assert [m.name for m in scene.models] == ["desk", "lamp"]
    assert scene.model_named("lamp") is scene.models[1]
    assert scene.model_named("nothing") is None


def test_resolve_registers_each_asset_once(vox_writer):
    scene = load_scene(workshop(vox_writer()))
    materials, meshes = [], []

    def register_material(descriptor):
        materials.append(descriptor)
        return f"mat{len(materials)}"

    def register_mesh(buffer):
        meshes.append(buffer)
        return f"mesh{len(meshes)}"

    resolved = scene.resolve(register_material, register_mesh)
    assert len(resolved) == 3
    assert len(materials) == 1
    assert len(meshes) == 2
    desk, shelf, lamp = (node.index for node in scene.graph.instances())
    assert resolved[desk] == resolved[shelf] == [("mat1", "mesh1")]
    assert resolved[lamp] == [("mat1", "mesh2")]
    with pytest.raises(ValueError):
        scene.instance_parts(scene.graph.root)


def test_translation_is_converted_to_y_up(vox_writer):
    data = workshop(vox_writer())
    shelf = load_scene(data).graph.find("shelf")
    assert shelf is not None
    assert load_scene(data).graph.node(shelf).transform.translation.tolist() == [10, 30, -20]

    scene = load_scene(data, LoaderSettings(y_up=False))
    assert scene.graph.node(scene.graph.find("shelf")).transform.translation.tolist() == [10, 20, 30]


def test_rotation_is_converted_to_y_up(vox_writer):
    # 90 degrees about the file's Z (up) axis becomes 90 degrees about Y
    data = workshop(vox_writer(), rotation=17)
    scene = load_scene(data)
    node = scene.graph.node(scene.graph.find("shelf"))
    assert node.transform.rotation.tolist() == [[0, 0, 1], [0, 1, 0], [-1, 0, 0]]

    scene = load_scene(data, LoaderSettings(y_up=False))
    node = scene.graph.node(scene.graph.find("shelf"))
    assert node.transform.rotation.tolist() == [[0, -1, 0], [1, 0, 0], [0, 0, 1]]


def test_world_transform_composes_parents():
    parent = Transform(np.array([[0, -1, 0], [1, 0, 0], [0, 0, 1]]), [1, 0, 0])
    child = Transform(np.eye(3), [0, 2, 0])
    world = parent.compose(child)
    assert world.translation.tolist() == [-1, 0, 0]
    assert np.allclose(world.apply((0, 0, 0)), parent.apply(child.apply((0, 0, 0))))
    assert np.allclose(world.matrix(), parent.matrix() @ child.matrix())


def test_layer_and_node_visibility(vox_writer):
    scene = load_scene(workshop(vox_writer(), hidden=True))
    visible = {node.name: node.visible for node in scene.graph.instances()}
    assert visible == {"desk": True, "shelf": False, "lamp": False}
    assert scene.layers[1].hidden and scene.layers[1].name == "lights"
    assert scene.graph.node(scene.graph.find("desk")).layer_id == 0
    assert scene.graph.is_visible(scene.graph.find("desk"))
    assert not scene.graph.is_visible(scene.graph.find("lamp"))


def test_paths_and_subscene(vox_writer):
    scene = load_scene(workshop(vox_writer()))
    shelf = scene.graph.find("shelf")
    assert scene.graph.path(shelf) == "shelf"

    sub = scene.subscene("shelf")
    assert isinstance(sub.root, InstanceNode)
    assert sub.root.transform.is_identity()
    assert sub.models is scene.models
    with pytest.raises(KeyError):
        scene.subscene("missing")


def test_nested_group_paths(vox_writer):
    writer = vox_writer().solid_model((1, 1, 1))
    writer.transform(0, 1).group(1, [2])
    writer.transform(2, 3, name="workstation", translation=(0, 0, 4)).group(3, [4])
    writer.transform(4, 5, name="computer", translation=(1, 0, 0)).shape(5, [0])
    scene = load_scene(writer.build(), LoaderSettings(y_up=False))

    computer = scene.graph.find("workstation/computer")
    assert computer is not None
    assert scene.graph.find("computer") is None
    assert scene.graph.world_transform(computer).translation.tolist() == [1, 0, 4]

    sub = scene.subscene("workstation")
    assert isinstance(sub.root, GroupNode)
    assert sub.graph.find("workstation/computer") is not None
    assert sub.graph.world_transform(sub.graph.find("workstation/computer")).translation.tolist() == [1, 0, 0]


def test_multi_model_shape_becomes_group(vox_writer):
    writer = vox_writer().solid_model((1, 1, 1)).solid_model((2, 2, 2))
    writer.transform(0, 1, name="pair").shape(1, [0, 1])
    scene = load_scene(writer.build())
    assert isinstance(scene.root, GroupNode)
    children = [scene.graph.node(i) for i in scene.root.children]
    assert [c.model_index for c in children] == [0, 1]
    assert all(c.transform.is_identity() for c in children)


def test_edits_show_through_every_instance(vox_writer):
    scene = load_scene(workshop(vox_writer()))
    desk, shelf, _ = scene.graph.instances()
    editor = VoxelEditor(scene.models[desk.model_index])
    editor.set_voxel(0, 0, 0, 0)
    editor.remesh()
    assert scene.instance_parts(desk.index)[0][1].quad_count == 12
    assert scene.instance_parts(shelf.index)[0][1] is scene.instance_parts(desk.index)[0][1]
