"""
Scene graph construction from the decoded node hierarchy.
"""

import numpy as np
from typing import List, Dict, Optional

from voxscene.formats.vox import RawSceneDescription, RawTransformNode, RawGroupNode, RawShapeNode
from voxscene.scene.graph import SceneGraph, GroupNode, InstanceNode, SceneNode, LayerInfo
from voxscene.scene.transform import Transform, Z_UP_TO_Y_UP


class SceneGraphBuilder:
    """
    Turns a RawSceneDescription into a SceneGraph.

    Transform nodes fold into the group or instance they point at; shapes
    with several models become a group of identity instances. Files without
    scene chunks get a synthesized graph.

    Args:
        y_up: Re-express node transforms in Y-up space
    """

    def __init__(self, y_up: bool = True):
        self.basis: Optional[np.ndarray] = Z_UP_TO_Y_UP if y_up else None

    def build(self, raw_scene: RawSceneDescription, model_count: int) -> SceneGraph:
        nodes: List[SceneNode] = []
        if raw_scene.is_empty():
            self._synthesize(nodes, model_count)
        else:
            layers = self.layers(raw_scene)
            self._add(raw_scene, raw_scene.root_id, None, nodes, layers)
        return SceneGraph(nodes)

    @staticmethod
    def layers(raw_scene: RawSceneDescription) -> Dict[int, LayerInfo]:
        return {layer_id: LayerInfo(layer_id, raw.name, raw.hidden)
                for layer_id, raw in sorted(raw_scene.layers.items())}

    @staticmethod
    def model_names(raw_scene: RawSceneDescription, model_count: int) -> List[str]:
        """Name of the first named transform referencing each model, else ``model-{index}``."""
        names: List[Optional[str]] = [None] * model_count
        if not raw_scene.is_empty():
            stack = [raw_scene.root_id]
            while stack:
                raw = raw_scene.nodes[stack.pop()]
                if isinstance(raw, RawTransformNode) and raw.name:
                    child = raw_scene.nodes[raw.child_id]
                    if isinstance(child, RawShapeNode):
                        for model in child.models:
                            if names[model] is None:
                                names[model] = raw.name
                stack.extend(reversed(raw.child_ids()))
        return [name or f"model-{i}" for i, name in enumerate(names)]

    def _synthesize(self, nodes: List[SceneNode], model_count: int):
        if model_count == 1:
            nodes.append(InstanceNode(index=0, transform=Transform.identity(), model_index=0))
            return
        root = GroupNode(index=0, transform=Transform.identity())
        nodes.append(root)
        for model in range(model_count):
            root.children.append(len(nodes))
            nodes.append(InstanceNode(index=len(nodes), transform=Transform.identity(),
                                      model_index=model, parent=0))

    def _add(self, raw_scene: RawSceneDescription, raw_id: int, parent: Optional[int],
             nodes: List[SceneNode], layers: Dict[int, LayerInfo]) -> int:
        raw = raw_scene.nodes[raw_id]
        transform = Transform.identity()
        name = None
        visible = True
        layer_id = None

        if isinstance(raw, RawTransformNode):
            transform = Transform.from_frame(raw.rotation(), raw.translation(), self.basis)
            name = raw.name
            layer = layers.get(raw.layer_id)
            layer_id = raw.layer_id if raw.layer_id >= 0 else None
            visible = not raw.hidden and not (layer is not None and layer.hidden)
            raw = raw_scene.nodes[raw.child_id]

        index = len(nodes)
        if isinstance(raw, RawShapeNode) and len(raw.models) == 1:
            nodes.append(InstanceNode(index=index, transform=transform, model_index=raw.models[0],
                                      name=name, parent=parent, visible=visible, layer_id=layer_id))
            return index

        group = GroupNode(index=index, transform=transform, name=name, parent=parent,
                          visible=visible, layer_id=layer_id)
        nodes.append(group)
        if isinstance(raw, RawShapeNode):
            for model in raw.models:
                group.children.append(len(nodes))
                nodes.append(InstanceNode(index=len(nodes), transform=Transform.identity(),
                                          model_index=model, parent=index))
        elif isinstance(raw, RawGroupNode):
            for child in raw.children:
                group.children.append(self._add(raw_scene, child, index, nodes, layers))
        return index
