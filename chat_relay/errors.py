"""
Relay error taxonomy.

Every failure that can reach the HTTP boundary is a RelayError carrying the
status code used when nothing has been streamed yet. Once the event stream
is open the same errors travel in-band as an error frame instead.
"""
from __future__ import annotations


class RelayError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(RelayError):
    """Bad or missing messages, unknown provider or model."""
    status_code = 400


class ConfigurationError(RelayError):
    """A provider credential is missing."""
    status_code = 500


class ImageDecodeError(RelayError):
    """An image reference is not a usable base64 data URI."""
    status_code = 400


class UpstreamError(RelayError):
    """The provider API rejected the call or dropped the connection."""
    status_code = 502


class ChunkParseError(RelayError):
    """One upstream chunk could not be read. Always absorbed by the normalizer."""
