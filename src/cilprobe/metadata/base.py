"""Abstract base class for module readers."""

from abc import ABC, abstractmethod

from .models import ModuleDescriptor

__all__ = ["AbstractModuleReader", "get_reader"]


class AbstractModuleReader(ABC):
    """
    Turns a compiled module on disk into a ModuleDescriptor.
    The factory function get_reader() selects the default implementation.
    """

    @abstractmethod
    def read(self, path: str) -> ModuleDescriptor:
        """
        Read the module's metadata and method bodies.

        The file is opened and released inside this call; the returned
        descriptors hold no reference to it.

        Args:
            path: Path to the .dll / .exe module.

        Returns:
            Immutable ModuleDescriptor for the whole module.

        Raises:
            FileNotFoundError: The path does not exist.
            MetadataError: The file is not a readable .NET module.
        """
        ...


def get_reader() -> "AbstractModuleReader":
    """
    Factory: return the default module reader.

    Import is deferred so the engine and its tests never load dnfile.
    """
    from .dnfile_reader import DnfileModuleReader
    return DnfileModuleReader()
