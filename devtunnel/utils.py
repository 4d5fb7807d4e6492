"""Common utility functions for devtunnel."""

import os
from typing import Optional

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Fixed extension table; anything not listed is served as opaque binary
CONTENT_TYPES = {
    ".html": "text/html",
    ".js": "application/javascript",
    ".json": "application/json",
    ".zip": "application/zip",
    ".css": "text/css",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".txt": "text/plain",
}


def content_type_for(file_path: str) -> str:
    """
    Infer the Content-Type of a file from its extension.

    Args:
        file_path: Path (or bare file name) of the file being served

    Returns:
        The MIME type from the extension table, or application/octet-stream
    """
    ext = os.path.splitext(file_path)[1].lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def mask_token(token: Optional[str], visible: int = 4) -> str:
    """Hide all but the edges of a secret so it can be printed."""
    if not token:
        return "<none>"
    if len(token) <= visible * 2:
        return "*" * len(token)
    return f"{token[:visible]}{'*' * (len(token) - visible * 2)}{token[-visible:]}"
