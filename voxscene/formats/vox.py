"""
MagicaVoxel .vox Decoder
========================

Reads the MagicaVoxel chunk container into plain decoded records: dense
model arrays, the palette with its materials, and the raw scene
hierarchy (transform, group and shape nodes plus layers).

VOX file layout:
- Little-endian throughout
- 'VOX ' magic followed by an int32 version
- A MAIN chunk whose children hold PACK, SIZE, XYZI, RGBA, MATL, nTRN,
  nGRP, nSHP and LAYR chunks
- Every chunk is a 4-byte tag, int32 content size, int32 children size

Chunks this decoder does not know (rOBJ, rCAM, NOTE, IMAP, ...) are
skipped together with their children.
"""

import struct
import numpy as np
from typing import Tuple, List, Dict, Optional, Union
from dataclasses import dataclass, field
from pathlib import Path

from voxscene.core.palette import VoxelPalette, PALETTE_SIZE
from voxscene.errors import FormatError
from voxscene.log import get_logger

logger = get_logger(__name__)

IDENTITY_ROTATION = 0b0000100
MAX_MODEL_SIZE = 256


def rotation_from_byte(value: int) -> np.ndarray:
    """
    Decode a packed MagicaVoxel rotation.

    Bits 0-1 and 2-3 give the column of the non-zero entry in rows 0 and 1
    (row 2 takes the remaining column); bits 4, 5 and 6 are set when the
    entry of row 0, 1 or 2 is negative.

    Returns:
        3x3 integer rotation matrix (row-major, acting on column vectors)
    """
    value = int(value)
    first = value & 0b11
    second = (value >> 2) & 0b11
    if value < 0 or value > 0x7F or first == 3 or second == 3 or first == second:
        raise FormatError(f"invalid rotation byte {value}", tag='nTRN')
    third = 3 - first - second

    matrix = np.zeros((3, 3), dtype=np.int64)
    for row, column in enumerate((first, second, third)):
        matrix[row, column] = -1 if value & (1 << (4 + row)) else 1
    return matrix


class _ByteReader:
    """Bounded little-endian cursor over a bytes object."""

    def __init__(self, data: bytes, offset: int = 0, end: Optional[int] = None, tag: Optional[str] = None):
        self.data = data
        self.offset = offset
        self.end = len(data) if end is None else end
        self.tag = tag

    @property
    def remaining(self) -> int:
        return self.end - self.offset

    def _need(self, count: int):
        if count < 0 or self.offset + count > self.end:
            raise FormatError(f"truncated data: need {count} bytes, {self.remaining} left",
                              offset=self.offset, tag=self.tag)

    def read(self, count: int) -> bytes:
        self._need(count)
        start = self.offset
        self.offset += count
        return self.data[start:self.offset]

    def int32(self) -> int:
        self._need(4)
        value = struct.unpack_from('<i', self.data, self.offset)[0]
        self.offset += 4
        return value

    def string(self) -> str:
        length = self.int32()
        if length < 0:
            raise FormatError(f"negative string length {length}", offset=self.offset - 4, tag=self.tag)
        raw = self.read(length)
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError:
            raise FormatError("string is not valid UTF-8", offset=self.offset - length, tag=self.tag) from None

    def dict(self) -> Dict[str, str]:
        count = self.int32()
        if count < 0:
            raise FormatError(f"negative dictionary size {count}", offset=self.offset - 4, tag=self.tag)
        result = {}
        for _ in range(count):
            key = self.string()
            result[key] = self.string()
        return result


@dataclass
class RawModel:
    """One SIZE/XYZI pair: a dense (X, Y, Z) array in file (Z-up) coordinates."""
    size: Tuple[int, int, int]
    voxels: np.ndarray

    def voxel_count(self) -> int:
        return int(np.count_nonzero(self.voxels))


@dataclass
class RawTransformNode:
    node_id: int
    attributes: Dict[str, str]
    child_id: int
    layer_id: int = -1
    frames: List[Dict[str, str]] = field(default_factory=list)

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get('_name') or None

    @property
    def hidden(self) -> bool:
        return self.attributes.get('_hidden', '0') == '1'

    def _frame(self) -> Dict[str, str]:
        return self.frames[0] if self.frames else {}

    def rotation(self) -> np.ndarray:
        raw = self._frame().get('_r', IDENTITY_ROTATION)
        try:
            value = int(raw)
        except ValueError:
            raise FormatError(f"invalid rotation {raw!r} on node {self.node_id}", tag='nTRN') from None
        return rotation_from_byte(value)

    def translation(self) -> np.ndarray:
        raw = self._frame().get('_t')
        if not raw:
            return np.zeros(3, dtype=np.int64)
        parts = raw.split()
        try:
            values = [int(p) for p in parts]
        except ValueError:
            raise FormatError(f"invalid translation {raw!r} on node {self.node_id}", tag='nTRN') from None
        if len(values) != 3:
            raise FormatError(f"translation {raw!r} on node {self.node_id} needs three values", tag='nTRN')
        return np.array(values, dtype=np.int64)

    def child_ids(self) -> List[int]:
        return [self.child_id]


@dataclass
class RawGroupNode:
    node_id: int
    attributes: Dict[str, str]
    children: List[int]

    def child_ids(self) -> List[int]:
        return list(self.children)


@dataclass
class RawShapeNode:
    node_id: int
    attributes: Dict[str, str]
    models: List[int]

    def child_ids(self) -> List[int]:
        return []


RawNode = Union[RawTransformNode, RawGroupNode, RawShapeNode]


@dataclass
class RawLayer:
    layer_id: int
    attributes: Dict[str, str]

    @property
    def name(self) -> Optional[str]:
        return self.attributes.get('_name') or None

    @property
    def hidden(self) -> bool:
        return self.attributes.get('_hidden', '0') == '1'


@dataclass
class RawSceneDescription:
    """Scene hierarchy exactly as stored in the file, keyed by node id."""
    nodes: Dict[int, RawNode] = field(default_factory=dict)
    layers: Dict[int, RawLayer] = field(default_factory=dict)
    root_id: int = 0

    def is_empty(self) -> bool:
        return not self.nodes


@dataclass
class VoxFile:
    """Everything decoded from a .vox file."""
    version: int
    models: List[RawModel]
    palette: VoxelPalette
    materials: Dict[int, Dict[str, str]] = field(default_factory=dict)
    scene: RawSceneDescription = field(default_factory=RawSceneDescription)


class VoxDecoder:
    """
    MagicaVoxel .vox decoder.

    Validates the container (magic, version, chunk bounds) and the
    references between chunks; any violation raises FormatError.
    """

    MAGIC = b'VOX '
    SUPPORTED_VERSIONS = (150, 200)

    def decode_file(self, filepath: Union[str, Path]) -> VoxFile:
        """Read and decode a .vox file from disk."""
        with open(filepath, 'rb') as f:
            return self.decode(f.read())

    def decode(self, data: bytes) -> VoxFile:
        """
        Decode the bytes of a .vox file.

        Args:
            data: Complete file contents

        Returns:
            VoxFile with models, palette, materials and scene description
        """
        reader = _ByteReader(bytes(data))
        magic = reader.read(4) if len(data) >= 4 else b''
        if magic != self.MAGIC:
            raise FormatError(f"not a .vox file: expected magic {self.MAGIC!r}, got {magic!r}", offset=0)
        version = reader.int32()
        if version not in self.SUPPORTED_VERSIONS:
            raise FormatError(f"unsupported .vox version {version}", offset=4)

        tag, content, children = self._read_chunk_header(reader)
        if tag != 'MAIN':
            raise FormatError(f"expected MAIN chunk, got {tag!r}", offset=8)

        state = _DecodeState()
        for child_tag, child_content, child_children in self._iter_chunks(reader.data, *children):
            self._handle_chunk(state, reader.data, child_tag, child_content)

        if state.pending_size is not None:
            raise FormatError("SIZE chunk without matching XYZI", tag='SIZE')
        if state.expected_models is not None and state.expected_models != len(state.models):
            logger.warning("PACK declares %d models, file contains %d",
                           state.expected_models, len(state.models))

        palette = state.palette or VoxelPalette.default()
        palette = palette.with_materials(state.materials)

        scene = RawSceneDescription(nodes=state.nodes, layers=state.layers)
        self._validate_scene(scene, len(state.models))

        return VoxFile(version=version, models=state.models, palette=palette,
                       materials=state.materials, scene=scene)

    # Container ----------------------------------------------------------
    @staticmethod
    def _read_chunk_header(reader: _ByteReader) -> Tuple[str, Tuple[int, int], Tuple[int, int]]:
        start = reader.offset
        raw_tag = reader.read(4)
        try:
            tag = raw_tag.decode('ascii')
        except UnicodeDecodeError:
            raise FormatError(f"invalid chunk tag {raw_tag!r}", offset=start) from None
        content_size = reader.int32()
        children_size = reader.int32()
        if content_size < 0 or children_size < 0:
            raise FormatError("negative chunk size", offset=start, tag=tag)
        content_start = reader.offset
        children_start = content_start + content_size
        children_end = children_start + children_size
        if children_end > reader.end:
            raise FormatError("truncated chunk", offset=start, tag=tag)
        reader.offset = children_end
        return tag, (content_start, children_start), (children_start, children_end)

    def _iter_chunks(self, data: bytes, start: int, end: int):
        reader = _ByteReader(data, start, end)
        while reader.remaining > 0:
            tag, content, children = self._read_chunk_header(reader)
            yield tag, content, children

    def _handle_chunk(self, state: '_DecodeState', data: bytes, tag: str, content: Tuple[int, int]):
        handler = self._HANDLERS.get(tag)
        if handler is None:
            logger.debug("Skipping unknown chunk %r at offset %d", tag, content[0] - 12)
            return
        reader = _ByteReader(data, content[0], content[1], tag=tag)
        handler(self, state, reader)

    # Chunk handlers -----------------------------------------------------
    def _read_pack(self, state: '_DecodeState', reader: _ByteReader):
        state.expected_models = reader.int32()

    def _read_size(self, state: '_DecodeState', reader: _ByteReader):
        if state.pending_size is not None:
            raise FormatError("SIZE chunk without matching XYZI", offset=reader.offset, tag='SIZE')
        size = (reader.int32(), reader.int32(), reader.int32())
        if any(s <= 0 for s in size):
            raise FormatError(f"invalid model size {size}", offset=reader.offset, tag='SIZE')
        if any(s > MAX_MODEL_SIZE for s in size):
            raise FormatError(f"model size {size} exceeds {MAX_MODEL_SIZE} cells per axis",
                              offset=reader.offset, tag='SIZE')
        state.pending_size = size

    def _read_xyzi(self, state: '_DecodeState', reader: _ByteReader):
        if state.pending_size is None:
            raise FormatError("XYZI chunk without preceding SIZE", offset=reader.offset, tag='XYZI')
        size = state.pending_size
        state.pending_size = None

        count = reader.int32()
        if count < 0 or count * 4 > reader.remaining:
            raise FormatError(f"voxel count {count} exceeds chunk content", offset=reader.offset, tag='XYZI')
        entries = np.frombuffer(reader.read(count * 4), dtype=np.uint8).reshape(-1, 4)

        voxels = np.zeros(size, dtype=np.uint8)
        if count:
            coords = entries[:, :3].astype(np.int64)
            if (coords >= np.array(size)).any():
                raise FormatError(f"voxel coordinates exceed model size {size}",
                                  offset=reader.offset, tag='XYZI')
            solid = entries[entries[:, 3] != 0]
            voxels[solid[:, 0], solid[:, 1], solid[:, 2]] = solid[:, 3]
        state.models.append(RawModel(size=size, voxels=voxels))

    def _read_rgba(self, state: '_DecodeState', reader: _ByteReader):
        entries = np.frombuffer(reader.read(PALETTE_SIZE * 4), dtype=np.uint8).reshape(-1, 4)
        state.palette = VoxelPalette.from_rgba_chunk([tuple(int(v) for v in e) for e in entries])

    def _read_matl(self, state: '_DecodeState', reader: _ByteReader):
        material_id = reader.int32()
        state.materials[material_id] = reader.dict()

    def _read_transform(self, state: '_DecodeState', reader: _ByteReader):
        node_id = reader.int32()
        attributes = reader.dict()
        child_id = reader.int32()
        reader.int32()  # reserved
        layer_id = reader.int32()
        num_frames = reader.int32()
        if num_frames < 0:
            raise FormatError(f"negative frame count on node {node_id}", tag='nTRN')
        frames = [reader.dict() for _ in range(num_frames)]
        node = RawTransformNode(node_id, attributes, child_id, layer_id, frames)
        node.rotation()
        node.translation()
        self._add_node(state, node)

    def _read_group(self, state: '_DecodeState', reader: _ByteReader):
        node_id = reader.int32()
        attributes = reader.dict()
        count = reader.int32()
        if count < 0:
            raise FormatError(f"negative child count on node {node_id}", tag='nGRP')
        self._add_node(state, RawGroupNode(node_id, attributes, [reader.int32() for _ in range(count)]))

    def _read_shape(self, state: '_DecodeState', reader: _ByteReader):
        node_id = reader.int32()
        attributes = reader.dict()
        count = reader.int32()
        if count < 0:
            raise FormatError(f"negative model count on node {node_id}", tag='nSHP')
        models = []
        for _ in range(count):
            models.append(reader.int32())
            reader.dict()  # per-model attributes (animation frame)
        self._add_node(state, RawShapeNode(node_id, attributes, models))

    def _read_layer(self, state: '_DecodeState', reader: _ByteReader):
        layer_id = reader.int32()
        attributes = reader.dict()
        if reader.remaining >= 4:
            reader.int32()  # reserved
        state.layers[layer_id] = RawLayer(layer_id, attributes)

    _HANDLERS = {
        'PACK': _read_pack,
        'SIZE': _read_size,
        'XYZI': _read_xyzi,
        'RGBA': _read_rgba,
        'MATL': _read_matl,
        'nTRN': _read_transform,
        'nGRP': _read_group,
        'nSHP': _read_shape,
        'LAYR': _read_layer,
    }

    @staticmethod
    def _add_node(state: '_DecodeState', node: RawNode):
        if node.node_id in state.nodes:
            raise FormatError(f"duplicate scene node id {node.node_id}")
        state.nodes[node.node_id] = node

    # Validation ---------------------------------------------------------
    @staticmethod
    def _validate_scene(scene: RawSceneDescription, model_count: int):
        if scene.is_empty():
            return
        if scene.root_id not in scene.nodes:
            raise FormatError(f"scene has no root node {scene.root_id}")

        for node in scene.nodes.values():
            for child in node.child_ids():
                if child not in scene.nodes:
                    raise FormatError(f"node {node.node_id} references missing node {child}")
            if isinstance(node, RawTransformNode) and isinstance(scene.nodes[node.child_id], RawTransformNode):
                raise FormatError(f"transform {node.node_id} points at another transform")
            if isinstance(node, RawShapeNode):
                for model in node.models:
                    if not 0 <= model < model_count:
                        raise FormatError(f"shape {node.node_id} references missing model {model}")

        # Depth-first walk from the root; reaching a node already on the path is a cycle.
        on_path = set()
        done = set()
        stack = [(scene.root_id, False)]
        while stack:
            node_id, leaving = stack.pop()
            if leaving:
                on_path.discard(node_id)
                done.add(node_id)
                continue
            if node_id in on_path:
                raise FormatError(f"scene graph contains a cycle through node {node_id}")
            if node_id in done:
                continue
            on_path.add(node_id)
            stack.append((node_id, True))
            for child in reversed(scene.nodes[node_id].child_ids()):
                if child in on_path:
                    raise FormatError(f"scene graph contains a cycle through node {child}")
                stack.append((child, False))


@dataclass
class _DecodeState:
    models: List[RawModel] = field(default_factory=list)
    palette: Optional[VoxelPalette] = None
    materials: Dict[int, Dict[str, str]] = field(default_factory=dict)
    nodes: Dict[int, RawNode] = field(default_factory=dict)
    layers: Dict[int, RawLayer] = field(default_factory=dict)
    pending_size: Optional[Tuple[int, int, int]] = None
    expected_models: Optional[int] = None
