"""
Channel protocol abstraction for the DSS-P service.

Defines the interface that channels must implement.  The client depends
on this protocol, not on the concrete SOAP implementation, so tests and
alternative stacks plug in at the :class:`ChannelFactory` seam.
"""

from __future__ import annotations

__all__ = ["AuthMode", "ChannelBinding", "ChannelFactory", "DsspChannel"]

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..config import ClientCertificate
    from ..core.messages import (
        PendingRequest,
        SignRequest,
        SignResponse,
        VerifyRequest,
        VerifyResponse,
    )


class AuthMode(enum.Enum):
    """How a channel authenticates the calling application."""

    ANONYMOUS = "anonymous"
    CLIENT_CERT = "client_cert"
    CLIENT_CERT_LOOKUP = "client_cert_lookup"
    USERNAME_PASSWORD = "username_password"
    SECURE_CONVERSATION = "secure_conversation"


@dataclass(frozen=True)
class ChannelBinding:
    """Everything a factory needs to open a channel in one auth mode.

    Attributes:
        mode: Authentication mode.
        username: Application name (USERNAME_PASSWORD).
        password: Application password (USERNAME_PASSWORD).
        client_certificate: Certificate presented at TLS (CLIENT_CERT*).
        key_id: Secure conversation token identifier (SECURE_CONVERSATION).
        key_value: Derived session key (SECURE_CONVERSATION).
    """

    mode: AuthMode
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    client_certificate: ClientCertificate | None = None
    key_id: str | None = None
    key_value: bytes | None = field(default=None, repr=False)


class DsspChannel(Protocol):
    """Protocol for one authenticated connection to the DSS-P service.

    Every method performs exactly one round trip.  Failures to reach the
    service or to obtain a response raise
    :class:`~dssp.errors.TransportError`; result codes are returned as-is
    and checked by the caller.
    """

    def sign(self, request: SignRequest) -> SignResponse: ...

    def pending_request(self, request: PendingRequest) -> SignResponse: ...

    def verify(self, request: VerifyRequest) -> VerifyResponse: ...

    async def sign_async(self, request: SignRequest) -> SignResponse: ...

    async def pending_request_async(self, request: PendingRequest) -> SignResponse: ...

    async def verify_async(self, request: VerifyRequest) -> VerifyResponse: ...


class ChannelFactory(Protocol):
    """Opens a new channel for a binding; channels are never reused."""

    def open(self, binding: ChannelBinding) -> DsspChannel: ...
