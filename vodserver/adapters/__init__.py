"""
Adapter pattern implementations for asset storage backends.

This module provides the abstract storage interface used by the catalog
and a local-directory implementation.
"""

from .base import AssetStore, StoredFile
from .local_adapter import LocalDirectoryStore

__all__ = [
    'AssetStore',
    'StoredFile',
    'LocalDirectoryStore'
]
