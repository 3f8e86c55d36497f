"""
Playback position store.

Keeps per-client, per-video resume positions in memory for the lifetime
of the process. Client identity is supplied by the caller through a
pluggable key function. The default keys clients on their remote
address, which is a weak identity: every client behind the same NAT or
proxy shares one key. Deployments that care should key on a cookie or
session token instead (see client_header_key).
"""

import math
import logging
import threading
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request

from .errors import InvalidRequest
from .models import PlaybackRecord

logger = logging.getLogger("video_server")

ClientKeyFunc = Callable[[Request], str]

CLIENT_ID_HEADER = "X-Client-Id"


def remote_address_key(request: Request) -> str:
    """Key a client on its network address"""
    if request.client is None:
        return "unknown"
    return request.client.host


def client_header_key(header_name: str = CLIENT_ID_HEADER) -> ClientKeyFunc:
    """Key clients on a header they send, falling back to the remote address"""

    def key(request: Request) -> str:
        value = request.headers.get(header_name, "").strip()
        if value:
            return f"id:{value}"
        return remote_address_key(request)

    return key


def get_client_key_func(mode: str) -> ClientKeyFunc:
    if mode == "header":
        return client_header_key()
    if mode == "address":
        return remote_address_key
    raise ValueError(f"Unknown client key mode: {mode}")


class PlaybackStore:
    """Thread-safe in-memory map of (client, video) -> resume position"""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, str], PlaybackRecord] = {}

    def save(self, client_key: str, video_id: Optional[str], position) -> PlaybackRecord:
        """
        Insert or update a resume position.

        Raises:
            InvalidRequest: if video_id is empty or position is missing, not a number or negative
        """
        if not isinstance(video_id, str) or not video_id:
            raise InvalidRequest("Invalid data")
        if position is None or isinstance(position, bool):
            raise InvalidRequest("Invalid data")
        try:
            position = float(position)
        except (TypeError, ValueError):
            raise InvalidRequest("Invalid data")
        if not math.isfinite(position) or position < 0:
            raise InvalidRequest("Invalid data")

        with self._lock:
            record = self._records.get((client_key, video_id))
            if record is None:
                record = PlaybackRecord(client_key=client_key, video_id=video_id, position_seconds=position)
                self._records[(client_key, video_id)] = record
            else:
                record.position_seconds = position
                record.updated_at = datetime.now()

        logger.debug(f"Saved position {position:.1f}s of {video_id} for {client_key}")
        return record

    def get(self, client_key: str, video_id: str) -> float:
        """Resume position in seconds, 0 when nothing was saved"""
        with self._lock:
            record = self._records.get((client_key, video_id))
            return record.position_seconds if record else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
