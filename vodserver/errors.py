"""
Error taxonomy for the video server.

Every error carries the HTTP status it maps to; the HTTP layer renders
them as {"error": message} bodies.
"""

from typing import Dict, Optional


class VideoServerError(Exception):
    """Base class for errors surfaced to HTTP clients"""
    status_code = 500
    has_body = True

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.headers: Dict[str, str] = {}

    def to_dict(self):
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFound(VideoServerError):
    """Asset or job absent from the catalog or filesystem"""
    status_code = 404


class RangeUnsatisfiable(VideoServerError):
    """Requested span lies outside the content; answered with an empty 416"""
    status_code = 416
    has_body = False

    def __init__(self, size: int):
        super().__init__("Requested range not satisfiable")
        self.size = size
        self.headers["Content-Range"] = f"bytes */{size}"


class InvalidRequest(VideoServerError):
    """Malformed body or missing required fields"""
    status_code = 400


class TranscodeFailure(VideoServerError):
    """Encoder exited non-zero or produced no usable output"""
    status_code = 500


class InternalError(VideoServerError):
    """Catalog scan or filesystem failure not tied to a single asset"""
    status_code = 500
