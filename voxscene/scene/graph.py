"""
Scene Graph
===========

Arena-allocated scene nodes addressed by index. Group nodes hold child
indices and a local transform; instance nodes reference a model by index
into ``VoxelScene.models``, so every instance of a model shares its mesh.
"""

from typing import List, Dict, Optional, Iterator, Tuple, Callable, Any, Union
from dataclasses import dataclass, field, replace

from voxscene.config import LoaderSettings
from voxscene.core.materials import MaterialTable, MaterialDescriptor
from voxscene.core.mesher import MeshBuffer
from voxscene.core.palette import VoxelPalette
from voxscene.core.voxel_model import VoxelModel
from voxscene.scene.transform import Transform


@dataclass(frozen=True)
class LayerInfo:
    layer_id: int
    name: Optional[str] = None
    hidden: bool = False


@dataclass
class GroupNode:
    index: int
    transform: Transform
    children: List[int] = field(default_factory=list)
    name: Optional[str] = None
    parent: Optional[int] = None
    visible: bool = True
    layer_id: Optional[int] = None


@dataclass
class InstanceNode:
    index: int
    transform: Transform
    model_index: int
    name: Optional[str] = None
    parent: Optional[int] = None
    visible: bool = True
    layer_id: Optional[int] = None


SceneNode = Union[GroupNode, InstanceNode]


class SceneGraph:
    """Fixed-shape tree of scene nodes; node 0 is the root."""

    def __init__(self, nodes: List[SceneNode], root: int = 0):
        self.nodes = list(nodes)
        self.root = root

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, index: int) -> SceneNode:
        if not 0 <= index < len(self.nodes):
            raise IndexError(f"no scene node {index}")
        return self.nodes[index]

    def children(self, index: int) -> List[int]:
        node = self.node(index)
        return list(node.children) if isinstance(node, GroupNode) else []

    def parent(self, index: int) -> Optional[int]:
        return self.node(index).parent

    def iter_depth_first(self, start: Optional[int] = None) -> Iterator[int]:
        """Node indices in pre-order, children in stored order."""
        stack = [self.root if start is None else start]
        while stack:
            index = stack.pop()
            yield index
            stack.extend(reversed(self.children(index)))

    def instances(self) -> List[InstanceNode]:
        return [self.nodes[i] for i in self.iter_depth_first() if isinstance(self.nodes[i], InstanceNode)]

    def world_transform(self, index: int) -> Transform:
        """Local transforms composed from the root down to ``index``."""
        transform = self.node(index).transform
        parent = self.node(index).parent
        while parent is not None:
            node = self.nodes[parent]
            transform = node.transform.compose(transform)
            parent = node.parent
        return transform

    def is_visible(self, index: int) -> bool:
        """True if the node and all of its ancestors are visible."""
        current: Optional[int] = index
        while current is not None:
            node = self.node(current)
            if not node.visible:
                return False
            current = node.parent
        return True

    def path(self, index: int) -> str:
        """Slash-joined names of the named nodes from the root down to ``index``."""
        names = []
        current: Optional[int] = index
        while current is not None:
            node = self.node(current)
            if node.name:
                names.append(node.name)
            current = node.parent
        return '/'.join(reversed(names))

    def find(self, path: str) -> Optional[int]:
        """Index of the first named node whose path equals ``path``."""
        path = path.strip('/')
        for index in self.iter_depth_first():
            if self.nodes[index].name and self.path(index) == path:
                return index
        return None


@dataclass
class VoxelScene:
    """
    A loaded scene: graph, models, materials and palette.

    Attributes:
        graph: Node arena
        models: Models referenced by instance nodes
        materials: Material table shared by all models
        palette: Palette of the source file
        layers: Layer metadata keyed by layer id
        settings: Settings the scene was loaded with
    """

    graph: SceneGraph
    models: List[VoxelModel]
    materials: MaterialTable
    palette: VoxelPalette
    layers: Dict[int, LayerInfo] = field(default_factory=dict)
    settings: LoaderSettings = field(default_factory=LoaderSettings)

    @property
    def root(self) -> SceneNode:
        return self.graph.node(self.graph.root)

    def instance_parts(self, node_index: int) -> List[Tuple[MaterialDescriptor, MeshBuffer]]:
        """(descriptor, buffer) pairs to draw for an instance node."""
        node = self.graph.node(node_index)
        if not isinstance(node, InstanceNode):
            raise ValueError(f"scene node {node_index} is not an instance")
        return self.models[node.model_index].parts()

    def resolve(self, register_material: Callable[[MaterialDescriptor], Any],
                register_mesh: Callable[[MeshBuffer], Any]) -> Dict[int, List[Tuple[Any, Any]]]:
        """
        Hand materials and meshes to a host.

        Each descriptor and each buffer is registered once, however many
        instances use it.

        Args:
            register_material: Called with a descriptor, returns a host handle
            register_mesh: Called with a buffer, returns a host handle

        Returns:
            Mapping of instance node index to (material handle, mesh handle) pairs
        """
        material_handles: Dict[MaterialDescriptor, Any] = {}
        mesh_handles: Dict[int, Any] = {}
        resolved: Dict[int, List[Tuple[Any, Any]]] = {}

        for node in self.graph.instances():
            parts = []
            for descriptor, buffer in self.instance_parts(node.index):
                if descriptor not in material_handles:
                    material_handles[descriptor] = register_material(descriptor)
                if id(buffer) not in mesh_handles:
                    mesh_handles[id(buffer)] = register_mesh(buffer)
                parts.append((material_handles[descriptor], mesh_handles[id(buffer)]))
            resolved[node.index] = parts
        return resolved

    def model_named(self, name: str) -> Optional[VoxelModel]:
        for model in self.models:
            if model.name == name:
                return model
        return None

    def subscene(self, path: str) -> 'VoxelScene':
        """
        Scene rooted at the named node ``path`` (e.g. "workstation/computer").

        The new root is placed at the identity transform; models are shared
        with this scene, so edits show up in both.
        """
        start = self.graph.find(path)
        if start is None:
            raise KeyError(f"no scene node named {path!r}")

        order = list(self.graph.iter_depth_first(start))
        renumber = {old: new for new, old in enumerate(order)}
        nodes: List[SceneNode] = []
        for old in order:
            node = self.graph.nodes[old]
            parent = None if old == start else renumber[node.parent]
            changes: Dict[str, Any] = {'index': renumber[old], 'parent': parent}
            if old == start:
                changes['transform'] = Transform.identity()
            if isinstance(node, GroupNode):
                changes['children'] = [renumber[c] for c in node.children]
            nodes.append(replace(node, **changes))

        return VoxelScene(graph=SceneGraph(nodes), models=self.models, materials=self.materials,
                          palette=self.palette, layers=self.layers, settings=self.settings)
