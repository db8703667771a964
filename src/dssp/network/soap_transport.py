"""
SOAP-based DSS-P channel implementation.

Implements the DsspChannel protocol over SOAP 1.1 and HTTPS.
"""

from __future__ import annotations

__all__ = ["SoapChannelFactory", "SoapDsspChannel"]

import logging
from typing import TYPE_CHECKING

from ..constants import DEFAULT_TIMEOUT_SOAP
from ..errors import PreconditionError
from .protocol import AuthMode
from .soap import send_soap, send_soap_async
from .soap_envelope import build_pending_envelope, build_sign_envelope, build_verify_envelope
from .soap_parsers import parse_sign_response, parse_verify_response

if TYPE_CHECKING:
    from ..core.messages import (
        PendingRequest,
        SignRequest,
        SignResponse,
        VerifyRequest,
        VerifyResponse,
    )
    from .protocol import ChannelBinding

_logger = logging.getLogger(__name__)

_CERTIFICATE_MODES = (AuthMode.CLIENT_CERT, AuthMode.CLIENT_CERT_LOOKUP)


class SoapDsspChannel:
    """SOAP implementation of the DsspChannel protocol.

    One channel serves one binding.  The security header is built from
    the binding on every call; client certificates are presented during
    the TLS handshake.
    """

    def __init__(self, url: str, binding: ChannelBinding, timeout: int = DEFAULT_TIMEOUT_SOAP):
        """
        Initialize a SOAP channel.

        Args:
            url: DSS-P endpoint URL.
            binding: Authentication binding of this channel.
            timeout: Round trip timeout in seconds.

        Raises:
            PreconditionError: If a certificate mode has no certificate.
        """
        if binding.mode in _CERTIFICATE_MODES and binding.client_certificate is None:
            raise PreconditionError(f"Channel mode {binding.mode.value} needs a client certificate")
        self.url = url
        self.binding = binding
        self.timeout = timeout

    def _post(self, envelope: str) -> str:
        return send_soap(
            self.url,
            envelope,
            timeout=self.timeout,
            client_certificate=self.binding.client_certificate,
        )

    async def _post_async(self, envelope: str) -> str:
        return await send_soap_async(
            self.url,
            envelope,
            timeout=self.timeout,
            client_certificate=self.binding.client_certificate,
        )

    def sign(self, request: SignRequest) -> SignResponse:
        _logger.debug("SignRequest (%s) via %s", request.profile, self.binding.mode.value)
        return parse_sign_response(self._post(build_sign_envelope(request, self.binding)))

    def pending_request(self, request: PendingRequest) -> SignResponse:
        _logger.debug("PendingRequest via %s", self.binding.mode.value)
        return parse_sign_response(self._post(build_pending_envelope(request, self.binding)))

    def verify(self, request: VerifyRequest) -> VerifyResponse:
        _logger.debug("VerifyRequest via %s", self.binding.mode.value)
        return parse_verify_response(self._post(build_verify_envelope(request, self.binding)))

    async def sign_async(self, request: SignRequest) -> SignResponse:
        _logger.debug("SignRequest (%s) via %s", request.profile, self.binding.mode.value)
        envelope = build_sign_envelope(request, self.binding)
        return parse_sign_response(await self._post_async(envelope))

    async def pending_request_async(self, request: PendingRequest) -> SignResponse:
        _logger.debug("PendingRequest via %s", self.binding.mode.value)
        envelope = build_pending_envelope(request, self.binding)
        return parse_sign_response(await self._post_async(envelope))

    async def verify_async(self, request: VerifyRequest) -> VerifyResponse:
        _logger.debug("VerifyRequest via %s", self.binding.mode.value)
        envelope = build_verify_envelope(request, self.binding)
        return parse_verify_response(await self._post_async(envelope))


class SoapChannelFactory:
    """Opens a new :class:`SoapDsspChannel` per binding."""

    def __init__(self, url: str, timeout: int = DEFAULT_TIMEOUT_SOAP) -> None:
        self.url = url
        self.timeout = timeout

    def open(self, binding: ChannelBinding) -> SoapDsspChannel:
        return SoapDsspChannel(self.url, binding, timeout=self.timeout)
