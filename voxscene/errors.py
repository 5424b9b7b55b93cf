"""
Error Taxonomy
==============

User-facing errors derive from ``VoxSceneError``. ``InvariantViolation``
marks an internal bug and sits outside that hierarchy;
catching ``VoxSceneError`` does not catch it.
"""


class VoxSceneError(Exception):
    """Base class for errors a caller is expected to handle."""


class FormatError(VoxSceneError, ValueError):
    """Malformed or unsupported .vox data (bad magic, truncation, dangling references...)."""

    def __init__(self, message: str, offset: int = None, tag: str = None):
        details = []
        if tag is not None:
            details.append(f"chunk '{tag}'")
        if offset is not None:
            details.append(f"offset {offset}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)
        self.offset = offset
        self.tag = tag


class OutOfBounds(VoxSceneError, IndexError):
    """A write, chunk lookup or edit region falls outside a grid's dimensions."""


class InvariantViolation(AssertionError):
    """An internal consistency check failed; this indicates a bug, not bad input."""
