"""
Abstract base class for asset storage adapters.

Defines the directory-scan primitive the catalog relies on, enabling
easy swapping between backing stores.
"""

from abc import ABC, abstractmethod
from typing import Optional, List
from dataclasses import dataclass


@dataclass(frozen=True)
class StoredFile:
    """A file entry reported by a storage adapter"""
    name: str
    size_bytes: int


class AssetStore(ABC):
    """Abstract base class for asset storage adapters"""

    @abstractmethod
    def scan(self) -> List[StoredFile]:
        """
        List regular files at the top level of the store.

        Returns:
            Stored files in no particular order

        Raises:
            OSError: if the store cannot be listed
        """
        pass

    @abstractmethod
    def stat(self, name: str) -> Optional[StoredFile]:
        """
        Look up a single file by name.

        Args:
            name: Plain filename inside the store

        Returns:
            StoredFile if a regular file with that name exists, None otherwise
        """
        pass

    @abstractmethod
    def path_for(self, name: str) -> str:
        """Absolute filesystem path of a stored file"""
        pass

    @abstractmethod
    def version(self) -> Optional[int]:
        """
        Stamp that changes whenever the listing may have changed.

        Returns:
            Opaque version, or None if the store cannot tell (disables caching)
        """
        pass
