"""Exception hierarchy for page extraction and asset ingestion."""

from __future__ import annotations


class ExtractionError(Exception):
    """A failure that aborts the whole extraction."""

    def __init__(self, message: str, details: str = "") -> None:
        super().__init__(message)
        self.details = details or message


class InvalidRequestError(ExtractionError):
    """The request is missing a source URL or a usable project id."""


class FetchError(ExtractionError):
    """The source page could not be retrieved (network, timeout, non-2xx)."""


class ParseError(ExtractionError):
    """The fetched response could not be parsed into a document tree."""


class AssetError(Exception):
    """A per-asset failure; callers drop the asset and carry on."""


class AssetFetchError(AssetError):
    """The image request failed or timed out."""


class InvalidAssetError(AssetError):
    """The downloaded bytes are not a recognizable image."""


class StorageError(AssetError):
    """The image could not be written to disk."""
