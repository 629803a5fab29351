"""Error kinds raised by the catalog core and rendered by the HTTP layer."""
from __future__ import annotations

from typing import Optional


class CatalogError(Exception):
    """Base error; ``status_code`` is the HTTP status the app maps it to."""

    status_code = 500
    message = "Request failed"

    def __init__(self, detail: str = "", *, message: Optional[str] = None):
        super().__init__(detail or message or self.message)
        self.detail = detail
        if message is not None:
            self.message = message


class ValidationError(CatalogError):
    """Bad or missing input: media type, filename, required parameter."""

    status_code = 400
    message = "Invalid request"


class UnsupportedMediaType(ValidationError):
    status_code = 415
    message = "Only mp4, mov, and mp3 formats are allowed"


class ConflictOrIOError(CatalogError):
    """Naming, placement or other filesystem failure."""

    message = "Failed to store the uploaded file"


class ExternalToolError(CatalogError):
    """ffprobe or yt-dlp failed."""

    message = "External tool failed"


class PersistenceError(CatalogError):
    """Catalog document could not be written."""

    message = "Failed to persist the catalog"


__all__ = [
    "CatalogError",
    "ValidationError",
    "UnsupportedMediaType",
    "ConflictOrIOError",
    "ExternalToolError",
    "PersistenceError",
]
