"""Exceptions raised by the Kepler data layer."""

from __future__ import annotations


class KeplerError(Exception):
    """Base class for all Kepler errors."""


class RemoteApiError(KeplerError):
    """An upstream call returned a non-success status."""

    def __init__(self, status: int, url: str, reason: str = "") -> None:
        self.status = status
        self.url = url
        self.reason = reason
        message = f"GitHub API error: {status}"
        if reason:
            message += f" {reason}"
        super().__init__(f"{message} ({url})")


class InvalidDocumentError(KeplerError):
    """Fetched metadata could not be turned into a record."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid metadata at {path}: {reason}")


class DocumentNotFoundError(KeplerError):
    """No document with the requested number exists in the track."""

    def __init__(self, track: str, number: str) -> None:
        self.track = track
        self.number = number
        super().__init__(f"{track.upper()}-{number} not found")
