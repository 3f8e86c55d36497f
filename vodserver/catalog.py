"""
Asset catalog.

Discovers video files on the backing store, describes them as VideoAsset
records and tracks their transcode status. Transcode status is written
only by the transcode orchestrator through set_transcode_status().
"""

import os
import logging
import threading
from typing import Dict, List, Optional, Tuple

from .adapters.base import AssetStore, StoredFile
from .errors import InternalError, NotFound
from .models import TranscodeStatus, VideoAsset
from .pipeline.util import (
    get_file_size,
    get_mime_type,
    is_plain_filename,
    is_video_file,
    transcoded_filename,
)

logger = logging.getLogger("video_server")


class AssetCatalog:
    """Catalog of video assets on a backing store"""

    def __init__(self, store: AssetStore, transcoded_dir: str):
        self.store = store
        self.transcoded_dir = os.path.abspath(transcoded_dir)
        self._lock = threading.RLock()
        self._scan_cache: Optional[Tuple[int, List[StoredFile]]] = None
        self._transcode_state: Dict[str, Tuple[TranscodeStatus, Optional[str]]] = {}

    def list_assets(self) -> List[VideoAsset]:
        """
        List every video on the backing store, ordered by filename.

        Returns:
            VideoAsset records with their current transcode status

        Raises:
            InternalError: if the backing store cannot be scanned
        """
        files = self._scan()
        return [self._build_asset(f) for f in sorted(files, key=lambda f: f.name)]

    def get_asset(self, asset_id: str) -> VideoAsset:
        """
        Look up one asset by filename.

        Raises:
            NotFound: if the name is not a listed video on the store
        """
        if not is_plain_filename(asset_id) or not is_video_file(asset_id):
            raise NotFound("Video not found")

        stored = self.store.stat(asset_id)
        if stored is None:
            raise NotFound("Video not found")
        return self._build_asset(stored)

    def resolve_playback_path(self, asset: VideoAsset) -> str:
        """Prefer the transcoded output, fall back to the original"""
        if asset.transcode_status is TranscodeStatus.READY and asset.transcoded_path:
            if os.path.isfile(asset.transcoded_path):
                return asset.transcoded_path
            logger.warning(f"Transcoded file for {asset.id} is gone, serving original")
        return asset.path

    def transcoded_path_for(self, asset_id: str, container: str = "mp4") -> str:
        return os.path.join(self.transcoded_dir, transcoded_filename(asset_id, container))

    def set_transcode_status(self, asset_id: str, status: TranscodeStatus,
                             transcoded_path: Optional[str] = None) -> None:
        """Record transcode status for an asset. transcoded_path is kept only when ready."""
        if status is TranscodeStatus.READY and not transcoded_path:
            raise ValueError("A ready asset needs a transcoded path")
        with self._lock:
            self._transcode_state[asset_id] = (
                status,
                transcoded_path if status is TranscodeStatus.READY else None,
            )
        logger.debug(f"Asset {asset_id} transcode status -> {status.value}")

    def invalidate(self) -> None:
        """Drop the cached directory scan"""
        with self._lock:
            self._scan_cache = None

    def clear(self) -> None:
        with self._lock:
            self._scan_cache = None
            self._transcode_state.clear()

    def _scan(self) -> List[StoredFile]:
        version = self.store.version()
        with self._lock:
            if version is not None and self._scan_cache and self._scan_cache[0] == version:
                return self._scan_cache[1]

        try:
            files = [f for f in self.store.scan() if is_video_file(f.name)]
        except OSError as e:
            logger.error(f"Failed to scan video store: {e}")
            raise InternalError("Failed to list videos") from e

        with self._lock:
            if version is not None:
                self._scan_cache = (version, files)
        logger.debug(f"Scanned {len(files)} videos")
        return files

    def _build_asset(self, stored: StoredFile) -> VideoAsset:
        with self._lock:
            state = self._transcode_state.get(stored.name)

        if state is None:
            # Outputs from an earlier run are still valid
            candidate = self.transcoded_path_for(stored.name)
            if get_file_size(candidate):
                state = (TranscodeStatus.READY, candidate)
            else:
                state = (TranscodeStatus.NONE, None)

        status, transcoded_path = state
        return VideoAsset(
            id=stored.name,
            path=self.store.path_for(stored.name),
            size_bytes=stored.size_bytes,
            mime_type=get_mime_type(stored.name),
            transcode_status=status,
            transcoded_path=transcoded_path,
        )
