"""
=============================================================================
MIME TYPES
=============================================================================

Maps file extensions to Content-Type values. Used when a view is rendered
from disk and when a StreamingResolution is given a file name but no
explicit content type.

=============================================================================
"""

from pathlib import Path
from typing import Optional


MIME_TYPES = {
    # TEXT
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".md": "text/markdown",

    # IMAGES
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",

    # DOCUMENTS AND ARCHIVES
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# Text types get an explicit charset so browsers do not guess
_TEXT_PREFIXES = ("text/", "application/json", "application/xml")


def get_mime_type(filename: str) -> str:
    """
    Look up the MIME type for a file name or path.

    Example:
        get_mime_type("report.csv")  # "text/csv"
        get_mime_type("blob.bin")    # "application/octet-stream"
    """
    return MIME_TYPES.get(Path(filename).suffix.lower(), DEFAULT_MIME_TYPE)


def get_content_type(filename: str, charset: Optional[str] = "utf-8") -> str:
    """Content-Type header value for a file, with charset for text types."""
    mime_type = get_mime_type(filename)
    if charset and mime_type.startswith(_TEXT_PREFIXES):
        return f"{mime_type}; charset={charset}"
    return mime_type
