"""DSS-P client error types."""

from __future__ import annotations

from typing import Any

__all__ = [
    "CertificateError",
    "ConfigError",
    "DsspError",
    "MalformedResponseError",
    "PreconditionError",
    "ProtocolError",
    "TransportError",
]


class DsspError(Exception):
    """Base error for DSS-P client operations."""


class PreconditionError(DsspError, ValueError):
    """The caller supplied missing or invalid input.

    Always raised before any network call is made.
    """


class ProtocolError(DsspError):
    """The service returned a result code the flow did not expect.

    Args:
        major: ResultMajor URI as returned by the service.
        minor: ResultMinor URI, if any.
        message: ResultMessage text, if any.
    """

    def __init__(self, major: str | None, minor: str | None = None, message: str | None = None):
        self.major = major
        self.minor = minor
        self.message = message
        super().__init__(self._render())

    def _render(self) -> str:
        codes = " ".join(code for code in (self.major, self.minor) if code) or "no result"
        return f"{codes}: {self.message}" if self.message else codes

    def __reduce__(
        self,
    ) -> tuple[type[ProtocolError], tuple[str | None, str | None, str | None]]:
        """Preserve the result triple across pickle/unpickle."""
        return (type(self), (self.major, self.minor, self.message))


class TransportError(DsspError):
    """Network, HTTP or SOAP fault raised by the channel.

    Args:
        message: Human-readable error description.
        retryable: Whether this error is transient and worth retrying.
            True for timeouts and dropped connections.  The client never
            retries by itself; the flag is for the caller.
    """

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable

    def __reduce__(self) -> tuple[type[TransportError], tuple[str], dict[str, bool]]:
        """Preserve retryable flag across pickle/unpickle."""
        return (type(self), (str(self),), {"retryable": self.retryable})

    def __setstate__(self, state: dict[str, Any] | None) -> None:
        if state is None:
            return
        self.retryable = state.get("retryable", False)


class MalformedResponseError(DsspError):
    """The service response violates the protocol contract.

    Unparseable XML, a missing mandatory element, or a document count
    other than the one the flow requires.
    """


class ConfigError(DsspError):
    """Configuration validation error."""


class CertificateError(DsspError):
    """Certificate parsing, lookup or chain building error."""
