"""
Content responder.

Streams a byte source according to a range decision with the right
status line and framing headers. Once the status line is sent it is
never changed: a source failure mid-transfer is logged and the response
is left incomplete so the server drops the connection, and a client
disconnect stops reading and releases the file handle immediately.

Reads are issued one chunk at a time and the next chunk is only read
after the ASGI server has accepted the previous one, so a slow client
throttles reading from disk instead of buffering the file in memory.
"""

import os
import logging
from contextlib import aclosing
from typing import AsyncIterator

import aiofiles
from fastapi.responses import Response, StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from ..errors import InternalError, NotFound, RangeUnsatisfiable
from .ranges import Partial, RangeDecision, Unsatisfiable

logger = logging.getLogger("video_server")

DEFAULT_CHUNK_SIZE = 64 * 1024


class FileSource:
    """An open, readable file of known size"""

    def __init__(self, path: str, handle, size: int):
        self.path = path
        self.size = size
        self._handle = handle
        self.closed = False

    @classmethod
    async def open(cls, path: str) -> "FileSource":
        """
        Open a file for streaming.

        Raises:
            NotFound: if the file cannot be opened or stat'ed
        """
        try:
            handle = await aiofiles.open(path, "rb")
        except OSError as e:
            logger.warning(f"Cannot open {path}: {e}")
            raise NotFound("Video not found") from e

        try:
            size = os.fstat(handle.fileno()).st_size
        except OSError as e:
            await handle.close()
            logger.warning(f"Cannot stat {path}: {e}")
            raise NotFound("Video not found") from e

        return cls(path, handle, size)

    async def iter_span(self, start: int, end: int, chunk_size: int) -> AsyncIterator[bytes]:
        """Yield bytes start..end inclusive"""
        remaining = end - start + 1
        try:
            await self._handle.seek(start)
            while remaining > 0:
                chunk = await self._handle.read(min(chunk_size, remaining))
                if not chunk:
                    raise InternalError(f"{self.path} ended {remaining} bytes early")
                remaining -= len(chunk)
                yield chunk
        except OSError as e:
            raise InternalError(f"Read error on {self.path}: {e}") from e

    async def close(self):
        if not self.closed:
            self.closed = True
            await self._handle.close()


class RangeStreamingResponse(StreamingResponse):
    """Streams one span of a FileSource and always releases it afterwards"""

    def __init__(self, source: FileSource, start: int, end: int, chunk_size: int,
                 status_code: int, headers: dict, media_type: str):
        self.source = source
        self.start = start
        self.end = end
        self.chunk_size = chunk_size
        self.expected_length = max(0, end - start + 1)
        self.bytes_sent = 0
        super().__init__(self._body(), status_code=status_code, headers=headers, media_type=media_type)

    async def _body(self) -> AsyncIterator[bytes]:
        async with aclosing(self.source.iter_span(self.start, self.end, self.chunk_size)) as chunks:
            async for chunk in chunks:
                yield chunk
                self.bytes_sent += len(chunk)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        failed = False
        try:
            await super().__call__(scope, receive, send)
        except (ClientDisconnect, OSError):
            pass
        except InternalError as e:
            failed = True
            logger.error(f"Aborting stream after {self.bytes_sent} bytes: {e.message}")
        finally:
            await self.body_iterator.aclose()
            await self.source.close()

        if not failed and self.bytes_sent < self.expected_length:
            logger.info(
                f"Client disconnected from {os.path.basename(self.source.path)} "
                f"after {self.bytes_sent}/{self.expected_length} bytes"
            )


class ContentResponder:
    """Builds HTTP responses for range decisions"""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size

    async def respond(self, decision: RangeDecision, source: FileSource, content_type: str) -> Response:
        """
        Build the response for a decision. Takes ownership of source.

        Raises:
            RangeUnsatisfiable: for an Unsatisfiable decision (source is closed first)
        """
        if isinstance(decision, Unsatisfiable):
            await source.close()
            raise RangeUnsatisfiable(source.size)

        if isinstance(decision, Partial):
            headers = {
                "Content-Range": f"bytes {decision.start}-{decision.end}/{source.size}",
                "Accept-Ranges": "bytes",
                "Content-Length": str(decision.length),
            }
            return RangeStreamingResponse(
                source, decision.start, decision.end, self.chunk_size,
                status_code=206, headers=headers, media_type=content_type,
            )

        headers = {
            "Content-Length": str(source.size),
            "Accept-Ranges": "bytes",
        }
        return RangeStreamingResponse(
            source, 0, source.size - 1, self.chunk_size,
            status_code=200, headers=headers, media_type=content_type,
        )
