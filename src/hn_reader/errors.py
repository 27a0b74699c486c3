from __future__ import annotations

from typing import Optional


class HNReaderError(Exception):
    """Base class for every error raised by the client."""


class TransportError(HNReaderError):
    """A REST call failed at the network level."""


class EnvelopeError(TransportError):
    """The backend answered, but not with a usable ``{success, data}`` envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class StreamError(HNReaderError):
    """The push channel dropped or ended unexpectedly."""


class MalformedEventError(HNReaderError):
    """A push frame could not be decoded into a known event."""

    def __init__(self, message: str, frame: str = ""):
        super().__init__(message)
        self.frame = frame
