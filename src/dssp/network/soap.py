"""
SOAP 1.1 round trips for DSS-P.

Builds no envelopes itself; see :mod:`.soap_envelope` and
:mod:`.soap_parsers`.  This module only frames and posts them.
"""

from __future__ import annotations

__all__ = ["send_soap", "send_soap_async"]

import logging
from typing import TYPE_CHECKING

from ..constants import DEFAULT_TIMEOUT_SOAP
from .transport import http_post, http_post_async

if TYPE_CHECKING:
    from ..config import ClientCertificate

_logger = logging.getLogger(__name__)

_HEADERS = {
    "Content-Type": "text/xml; charset=utf-8",
    "SOAPAction": '""',
}


def send_soap(
    url: str,
    envelope: str,
    *,
    timeout: int = DEFAULT_TIMEOUT_SOAP,
    client_certificate: ClientCertificate | None = None,
) -> str:
    """
    Send a SOAP request to a DSS-P endpoint.

    Returns the response body as string.
    Raises TransportError on connection or HTTP failures.
    """
    body = envelope.encode("utf-8")
    _logger.debug("SOAP request: url=%s, timeout=%ds, %d bytes", url, timeout, len(body))
    response = http_post(
        url,
        body,
        headers=_HEADERS,
        timeout=timeout,
        client_certificate=client_certificate,
    )
    decoded = response.decode("utf-8", errors="replace")
    _logger.debug("SOAP response: %d bytes", len(decoded))
    return decoded


async def send_soap_async(
    url: str,
    envelope: str,
    *,
    timeout: int = DEFAULT_TIMEOUT_SOAP,
    client_certificate: ClientCertificate | None = None,
) -> str:
    """Awaitable counterpart of :func:`send_soap`."""
    body = envelope.encode("utf-8")
    _logger.debug("SOAP request (async): url=%s, timeout=%ds, %d bytes", url, timeout, len(body))
    response = await http_post_async(
        url,
        body,
        headers=_HEADERS,
        timeout=timeout,
        client_certificate=client_certificate,
    )
    decoded = response.decode("utf-8", errors="replace")
    _logger.debug("SOAP response (async): %d bytes", len(decoded))
    return decoded
