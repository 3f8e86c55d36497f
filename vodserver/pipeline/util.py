import os
from pathlib import Path
from typing import Optional


# Extensions surfaced by the catalog
VIDEO_EXTENSIONS = {".mp4", ".avi", ".mkv", ".mov"}

MIME_TYPES = {
    ".mp4": "video/mp4",
    ".m4v": "video/x-m4v",
    ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".ts": "video/mp2t",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def get_mime_type(path: str) -> str:
    """Get MIME type for a file path from its extension"""
    return MIME_TYPES.get(Path(path).suffix.lower(), DEFAULT_MIME_TYPE)


def is_video_file(filename: str) -> bool:
    """Check the extension against the allow-list (case-insensitive)"""
    return Path(filename).suffix.lower() in VIDEO_EXTENSIONS


def is_plain_filename(filename: str) -> bool:
    """True if filename names an entry directly inside a directory"""
    if not filename or filename in (".", ".."):
        return False
    if "/" in filename or "\\" in filename or "\x00" in filename:
        return False
    return os.path.basename(filename) == filename


def transcoded_filename(filename: str, container: str = "mp4") -> str:
    """
    Name of the transcoded output for a source file, e.g. clip.mkv -> clip.mkv.mp4.

    The whole source name is kept so clip.mkv and clip.mp4 never share an output.
    """
    return f"{filename}.{container}"


def ensure_dir(path: str):
    """Ensure directory exists"""
    os.makedirs(path, exist_ok=True)


def get_file_size(file_path: str) -> Optional[int]:
    """Get file size in bytes, None if the file is missing"""
    try:
        return os.path.getsize(file_path)
    except OSError:
        return None


def remove_file(file_path: str) -> bool:
    """Remove a file if present. Returns True if something was deleted."""
    try:
        os.remove(file_path)
        return True
    except FileNotFoundError:
        return False


def tail_text(data: bytes, limit: int = 2000) -> str:
    """Decode process output and keep the last `limit` characters"""
    text = data.decode("utf-8", errors="replace").strip() if data else ""
    if len(text) > limit:
        text = "..." + text[-limit:]
    return text
