"""
Project-wide custom exception hierarchy.
All modules raise subclasses of ProbeError — never bare Exception.

Resolution misses are NOT errors: they surface as absent values in the
report. Only input and structural faults are raised.
"""

__all__ = [
    "ProbeError",
    "MetadataError",
    "TypeNotFoundError",
]


class ProbeError(Exception):
    """Root exception for all cil-probe errors."""


# ── Metadata ──────────────────────────────────────────────────────────────────

class MetadataError(ProbeError):
    """Raised when a file cannot be read as a .NET module."""


# ── Engine ────────────────────────────────────────────────────────────────────

class TypeNotFoundError(ProbeError):
    """Raised when the target type is not declared in the module."""

    def __init__(self, type_name: str) -> None:
        super().__init__(f"Type {type_name} not found.")
        self.type_name = type_name
