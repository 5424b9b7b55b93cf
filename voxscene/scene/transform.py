"""
Rigid node transforms.

MagicaVoxel node transforms are a signed axis permutation plus an integer
translation; they are kept as float arrays here so hosts can compose them
with their own transforms.
"""

import numpy as np
from typing import Sequence, Optional
from dataclasses import dataclass

# Z-up (MagicaVoxel) to Y-up: (x, y, z) -> (x, z, -y)
Z_UP_TO_Y_UP = np.array([
    [1, 0, 0],
    [0, 0, 1],
    [0, -1, 0],
], dtype=np.float64)


@dataclass(frozen=True, eq=False)
class Transform:
    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self):
        rotation = np.array(self.rotation, dtype=np.float64).reshape(3, 3)
        translation = np.array(self.translation, dtype=np.float64).reshape(3)
        rotation.flags.writeable = False
        translation.flags.writeable = False
        object.__setattr__(self, 'rotation', rotation)
        object.__setattr__(self, 'translation', translation)

    @classmethod
    def identity(cls) -> 'Transform':
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_frame(cls, rotation: np.ndarray, translation: Sequence[float],
                   basis: Optional[np.ndarray] = None) -> 'Transform':
        """
        Build a transform from a decoded frame, optionally re-expressed in
        another basis (``basis @ R @ basis.T``, ``basis @ t``).
        """
        rotation = np.asarray(rotation, dtype=np.float64)
        translation = np.asarray(translation, dtype=np.float64)
        if basis is not None:
            rotation = basis @ rotation @ basis.T
            translation = basis @ translation
        return cls(rotation, translation)

    def matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix."""
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def compose(self, child: 'Transform') -> 'Transform':
        """Transform equivalent to applying ``child`` first, then ``self``."""
        return Transform(self.rotation @ child.rotation,
                         self.rotation @ child.translation + self.translation)

    def apply(self, point: Sequence[float]) -> np.ndarray:
        return self.rotation @ np.asarray(point, dtype=np.float64) + self.translation

    def is_identity(self) -> bool:
        return bool(np.allclose(self.rotation, np.eye(3)) and np.allclose(self.translation, 0.0))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Transform):
            return NotImplemented
        return bool(np.allclose(self.rotation, other.rotation)
                    and np.allclose(self.translation, other.translation))

    __hash__ = None

    def __repr__(self) -> str:
        return f"Transform(rotation={self.rotation.tolist()}, translation={self.translation.tolist()})"
