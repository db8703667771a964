"""
Channel selection.

Maps the configured application credentials (or an established async
session) to one of the five authentication modes and opens a channel
for it.  Every call opens a new channel; channel instances are never
shared between modes.
"""

from __future__ import annotations

__all__ = ["binding_for_credentials", "binding_for_session", "open_channel", "select_mode"]

import logging
from typing import TYPE_CHECKING

from ..errors import PreconditionError
from ..network.protocol import AuthMode, ChannelBinding

if TYPE_CHECKING:
    from ..config import AppCredentials
    from ..network.protocol import ChannelFactory, DsspChannel
    from .cert_info import CertificateStore
    from .sessions import AsyncSession

_logger = logging.getLogger(__name__)


def select_mode(credentials: AppCredentials) -> AuthMode:
    """
    Pick the authentication mode for *credentials*.

    Precedence: no password and no certificate means anonymous; then an
    inline certificate; then a store lookup; otherwise username/password.
    """
    has_certificate = (
        credentials.certificate is not None or credentials.certificate_lookup is not None
    )
    if not credentials.password and not has_certificate:
        return AuthMode.ANONYMOUS
    if credentials.certificate is not None:
        return AuthMode.CLIENT_CERT
    if credentials.certificate_lookup is not None:
        return AuthMode.CLIENT_CERT_LOOKUP
    return AuthMode.USERNAME_PASSWORD


def binding_for_credentials(
    credentials: AppCredentials, store: CertificateStore | None = None
) -> ChannelBinding:
    """
    Resolve the channel binding for the application credentials.

    Raises:
        PreconditionError: If a certificate lookup is configured but no
            certificate store is available.
        CertificateError: If the store has no matching certificate.
    """
    mode = select_mode(credentials)
    _logger.debug("Selected channel mode %s", mode.value)
    if mode is AuthMode.CLIENT_CERT:
        return ChannelBinding(mode, client_certificate=credentials.certificate)
    lookup = credentials.certificate_lookup
    if mode is AuthMode.CLIENT_CERT_LOOKUP and lookup is not None:
        if store is None:
            raise PreconditionError("A certificate store is required for certificate lookup")
        return ChannelBinding(mode, client_certificate=store.find_certificate(lookup))
    if mode is AuthMode.USERNAME_PASSWORD:
        return ChannelBinding(mode, username=credentials.username, password=credentials.password)
    return ChannelBinding(mode)


def binding_for_session(session: AsyncSession | None) -> ChannelBinding:
    """
    Bind a secure conversation channel to an async session's key material.

    Raises:
        PreconditionError: If *session* is None.
    """
    if session is None:
        raise PreconditionError("session is required")
    return ChannelBinding(
        AuthMode.SECURE_CONVERSATION,
        key_id=session.key_id,
        key_value=session.key_value,
    )


def open_channel(factory: ChannelFactory, binding: ChannelBinding) -> DsspChannel:
    """Open a new channel for *binding*."""
    return factory.open(binding)
