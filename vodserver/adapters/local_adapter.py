"""
Local directory implementation of the asset storage adapter.
"""

import os
import stat
import logging
from typing import Optional, List

from .base import AssetStore, StoredFile

logger = logging.getLogger("video_server")


class LocalDirectoryStore(AssetStore):
    """Asset store backed by a single directory on the local filesystem"""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def scan(self) -> List[StoredFile]:
        files = []
        with os.scandir(self.root) as entries:
            for entry in entries:
                try:
                    if not entry.is_file():
                        continue
                    files.append(StoredFile(name=entry.name, size_bytes=entry.stat().st_size))
                except OSError as e:
                    # File vanished between listing and stat
                    logger.debug(f"Skipping {entry.name}: {e}")
        return files

    def stat(self, name: str) -> Optional[StoredFile]:
        try:
            st = os.stat(self.path_for(name))
        except OSError:
            return None
        if not stat.S_ISREG(st.st_mode):
            return None
        return StoredFile(name=name, size_bytes=st.st_size)

    def path_for(self, name: str) -> str:
        return os.path.join(self.root, name)

    def version(self) -> Optional[int]:
        try:
            return os.stat(self.root).st_mtime_ns
        except OSError:
            return None
