"""
HTTPS transport for DSS-P.

Blocking POSTs go through ``urllib.request`` (system TLS); awaitable
POSTs go through ``httpx.AsyncClient``.  Both paths share the same TLS
context, so a configured client certificate is presented either way.

Public API:
- http_post / http_post_async for SOAP round trips

Neither path retries: every call is exactly one round trip.  Transient
failures are flagged ``retryable`` on the raised TransportError.
"""

from __future__ import annotations

__all__ = ["http_post", "http_post_async"]

import logging
import ssl
import urllib.error
import urllib.request
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlparse

import httpx

from ..constants import BYTES_PER_MB, DEFAULT_TIMEOUT_SOAP, MAX_RESPONSE_SIZE, RECV_BUFFER_SIZE
from ..errors import TransportError

if TYPE_CHECKING:
    import http.client

    from ..config import ClientCertificate

_logger = logging.getLogger(__name__)

# SOAP 1.1 faults come back with this status and an XML body
_HTTP_SOAP_FAULT = 500


def _require_https_url(url: str) -> None:
    """Reject non-HTTPS URLs to prevent credential leakage over plaintext.

    Raises:
        TransportError: If the URL scheme is not https.
    """
    scheme = urlparse(url).scheme.lower()
    if scheme != "https":
        raise TransportError(
            f"Only HTTPS URLs are allowed (got {scheme}://). "
            "Credentials must not be sent over unencrypted connections."
        )


def _ssl_context(client_certificate: ClientCertificate | None) -> ssl.SSLContext:
    """System-trust TLS context, presenting *client_certificate* when given.

    Raises:
        TransportError: If the certificate or key cannot be loaded.
    """
    context = ssl.create_default_context()
    if client_certificate is not None:
        try:
            context.load_cert_chain(
                certfile=str(client_certificate.cert_file),
                keyfile=(
                    str(client_certificate.key_file)
                    if client_certificate.key_file is not None
                    else None
                ),
                password=client_certificate.password,
            )
        except (OSError, ssl.SSLError) as exc:
            raise TransportError(
                f"Cannot load client certificate {client_certificate.cert_file}: {exc}"
            ) from exc
        _logger.debug("Presenting client certificate %s", client_certificate.cert_file.name)
    return context


def _soap_fault_body(data: bytes, url: str) -> bytes:
    """Return an HTTP 500 body if it carries a SOAP envelope.

    Raises:
        TransportError: If the body is anything else, such as a proxy error page.
    """
    if b"Envelope" not in data:
        raise TransportError(f"HTTP POST failed: {url}: HTTP 500 without a SOAP envelope")
    return data


# ── Blocking (urllib) ────────────────────────────────────────────────


class _Readable(Protocol):
    def read(self, amt: int = ...) -> bytes: ...


def _read_with_limit(response: _Readable, url: str) -> bytes:
    """Read an HTTP response body with size limit to prevent memory exhaustion."""
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = response.read(RECV_BUFFER_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > MAX_RESPONSE_SIZE:
            raise TransportError(
                f"Response from {url} exceeds {MAX_RESPONSE_SIZE // BYTES_PER_MB} MB limit"
            )
        chunks.append(chunk)
    return b"".join(chunks)


class _SafeRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Redirect handler that refuses every redirect of a SOAP POST.

    Each operation is a single round trip, so the POST is never replayed.
    """

    def redirect_request(  # type: ignore[override]  # urllib stubs use incompatible signature
        self,
        req: urllib.request.Request,
        fp: http.client.HTTPResponse,
        code: int,
        msg: str,
        headers: http.client.HTTPMessage,
        newurl: str,
    ) -> urllib.request.Request | None:
        raise TransportError(f"HTTP POST failed: {req.full_url}: unexpected redirect to {newurl}")


def _safe_urlopen(
    request: urllib.request.Request, *, timeout: int, context: ssl.SSLContext
) -> http.client.HTTPResponse:
    """Open a Request with redirects refused and the given TLS context.

    Thin wrapper to simplify testing.
    """
    opener = urllib.request.build_opener(
        _SafeRedirectHandler, urllib.request.HTTPSHandler(context=context)
    )
    return opener.open(request, timeout=timeout)


def http_post(
    url: str,
    body: bytes,
    *,
    headers: dict[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_SOAP,
    client_certificate: ClientCertificate | None = None,
) -> bytes:
    """
    Send an HTTPS POST and return the response body.

    An HTTP 500 body is returned as-is when it holds a SOAP envelope,
    since SOAP faults travel that way.

    Args:
        url: Target URL (must be https).
        body: Request body bytes.
        headers: Additional HTTP headers.
        timeout: HTTP timeout in seconds.
        client_certificate: Certificate to present during the handshake.

    Raises:
        TransportError: On connection, TLS or HTTP failures.
    """
    _require_https_url(url)
    context = _ssl_context(client_certificate)
    _logger.debug("POST %s (urllib, timeout=%ds, %d bytes)", url, timeout, len(body))
    req = urllib.request.Request(url, data=body, method="POST")  # noqa: S310 -- URL is validated as HTTPS above
    if headers:
        for k, v in headers.items():
            req.add_header(k, v)
    try:
        with _safe_urlopen(req, timeout=timeout, context=context) as response:
            data = _read_with_limit(response, url)
            _logger.debug("POST %s -> %d bytes", url, len(data))
            return data
    except urllib.error.HTTPError as exc:
        if exc.code == _HTTP_SOAP_FAULT:
            _logger.debug("POST %s -> HTTP 500, reading SOAP fault", url)
            return _soap_fault_body(_read_with_limit(exc, url), url)
        raise TransportError(f"HTTP POST failed: {url}: HTTP {exc.code} {exc.reason}") from exc
    except urllib.error.URLError as exc:
        reason = str(exc.reason) if exc.reason else str(exc)
        raise TransportError(f"HTTP POST failed: {url}: {reason}", retryable=True) from exc
    except TimeoutError as exc:
        raise TransportError(
            f"Connection timed out after {timeout}s: {url}",
            retryable=True,
        ) from exc


# ── Awaitable (httpx) ────────────────────────────────────────────────


async def _aread_with_limit(response: httpx.Response, url: str) -> bytes:
    """Stream an httpx response body under the same size limit as the blocking path."""
    chunks: list[bytes] = []
    total_size = 0
    async for chunk in response.aiter_bytes():
        total_size += len(chunk)
        if total_size > MAX_RESPONSE_SIZE:
            raise TransportError(
                f"Response from {url} exceeds {MAX_RESPONSE_SIZE // BYTES_PER_MB} MB limit"
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def http_post_async(
    url: str,
    body: bytes,
    *,
    headers: dict[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_SOAP,
    client_certificate: ClientCertificate | None = None,
) -> bytes:
    """
    Awaitable counterpart of :func:`http_post`, with identical semantics.

    Raises:
        TransportError: On connection, TLS or HTTP failures.
    """
    _require_https_url(url)
    context = _ssl_context(client_certificate)
    _logger.debug("POST %s (httpx, timeout=%ds, %d bytes)", url, timeout, len(body))
    try:
        async with httpx.AsyncClient(verify=context, timeout=timeout) as client:
            async with client.stream("POST", url, content=body, headers=headers) as response:
                if response.is_redirect:
                    location = response.headers.get("location")
                    raise TransportError(
                        f"HTTP POST failed: {url}: unexpected redirect to {location}"
                    )
                if response.is_error and response.status_code != _HTTP_SOAP_FAULT:
                    raise TransportError(
                        f"HTTP POST failed: {url}: "
                        f"HTTP {response.status_code} {response.reason_phrase}"
                    )
                data = await _aread_with_limit(response, url)
    except httpx.TimeoutException as exc:
        raise TransportError(
            f"Connection timed out after {timeout}s: {url}",
            retryable=True,
        ) from exc
    except httpx.RequestError as exc:
        raise TransportError(f"HTTP POST failed: {url}: {exc}", retryable=True) from exc

    if response.status_code == _HTTP_SOAP_FAULT:
        _logger.debug("POST %s -> HTTP 500, reading SOAP fault", url)
        return _soap_fault_body(data, url)
    _logger.debug("POST %s -> %d bytes", url, len(data))
    return data
