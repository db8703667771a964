"""High-level DSS-P client.

:class:`DsspClient` runs every flow as build, one round trip, then
validate and extract.  Each operation has an awaitable ``*_async`` twin
sharing the same builders and processors, so both behave identically.

For lower-level control, use the builders in :mod:`dssp.core.requests`
and the processors in :mod:`dssp.core.results` with any
:class:`~dssp.network.protocol.DsspChannel`.
"""

from __future__ import annotations

__all__ = ["DsspClient"]

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from .config import ClientConfig
from .core.cert_info import DirectoryCertificateStore, TrustStoreChainBuilder
from .core.channels import binding_for_credentials, binding_for_session, open_channel
from .core.report import map_security_info
from .core.requests import (
    build_async_download_request,
    build_async_sign_request,
    build_seal_request,
    build_two_step_download_request,
    build_two_step_request,
    build_verify_request,
    require_signer,
)
from .core.results import (
    process_async_sign_response,
    process_signed_document_response,
    process_two_step_response,
    process_verify_response,
)
from .core.sessions import AsyncSession, TwoStepSession
from .errors import PreconditionError
from .network.soap_transport import SoapChannelFactory

if TYPE_CHECKING:
    from pathlib import Path

    from asn1crypto import x509 as asn1_x509

    from .core.cert_info import CertificateStore, ChainBuilder
    from .core.messages import Document, SignatureRequestProperties
    from .core.report import SecurityInfo
    from .core.signer import SignerIdentity
    from .network.protocol import ChannelFactory, DsspChannel

_logger = logging.getLogger(__name__)


class _ConfiguredChainBuilder:
    """Loads the configured trust store (or the system one) once, on first use."""

    def __init__(self, trust_store: Path | None) -> None:
        self._trust_store = trust_store
        self._builder: TrustStoreChainBuilder | None = None
        self._lock = threading.Lock()

    def _load(self) -> TrustStoreChainBuilder:
        with self._lock:
            if self._builder is None:
                if self._trust_store is not None:
                    self._builder = TrustStoreChainBuilder.from_pem_file(self._trust_store)
                else:
                    self._builder = TrustStoreChainBuilder.from_system()
            return self._builder

    def build_chain(self, leaf: asn1_x509.Certificate) -> list[asn1_x509.Certificate]:
        return self._load().build_chain(leaf)


class DsspClient:
    """Client for a DSS-P signing service.

    The client holds only immutable configuration; concurrent calls on
    one instance do not interfere.  Sessions returned by the upload
    operations belong to the caller, who must use each one for a single
    download and discard it afterwards.

    Args:
        config: Endpoint, credentials and signer configuration.
        channel_factory: Opens channels; defaults to the SOAP channel.
        certificate_store: Resolves certificate lookups; defaults to
            ``~/.dssp/certs``.
        chain_builder: Completes single signer certificates; defaults to
            the configured trust store, else the system CA bundle.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        channel_factory: ChannelFactory | None = None,
        certificate_store: CertificateStore | None = None,
        chain_builder: ChainBuilder | None = None,
    ) -> None:
        self.config = config
        self._channel_factory = channel_factory or SoapChannelFactory(
            config.address, timeout=config.timeout
        )
        self._certificate_store = certificate_store or DirectoryCertificateStore()
        self._chain_builder = chain_builder or _ConfiguredChainBuilder(config.trust_store)

    @classmethod
    def from_url(cls, address: str, **kwargs: Any) -> DsspClient:
        """Anonymous client for *address*, with the default signature type."""
        return cls(ClientConfig(address=address), **kwargs)

    # ── Channels ────────────────────────────────────────────────────

    def _app_channel(self) -> DsspChannel:
        binding = binding_for_credentials(self.config.application, self._certificate_store)
        return open_channel(self._channel_factory, binding)

    def _session_channel(self, session: AsyncSession) -> DsspChannel:
        return open_channel(self._channel_factory, binding_for_session(session))

    def _signer(self, signer: SignerIdentity | None) -> SignerIdentity | None:
        return signer if signer is not None else self.config.signer

    # ── Asynchronous (browser) signing ──────────────────────────────

    def upload_document(self, document: Document) -> AsyncSession:
        """
        Upload a document for signing in the user's browser.

        Returns:
            The session to hand to the browser step and, afterwards, to
            :meth:`download_document`.

        Raises:
            PreconditionError: If *document* is None.
            ProtocolError: If the service does not answer Pending.
            TransportError: On network failures.
        """
        request, nonce = build_async_sign_request(document, self.config.signature_type)
        _logger.info("Uploading document for async signing")
        response = self._app_channel().sign(request)
        return process_async_sign_response(response, nonce)

    async def upload_document_async(self, document: Document) -> AsyncSession:
        request, nonce = build_async_sign_request(document, self.config.signature_type)
        _logger.info("Uploading document for async signing")
        response = await self._app_channel().sign_async(request)
        return process_async_sign_response(response, nonce)

    # ── Two-step (local) signing ────────────────────────────────────

    def upload_document_for_two_step(
        self,
        document: Document,
        properties: SignatureRequestProperties | None = None,
        signer: SignerIdentity | None = None,
    ) -> TwoStepSession:
        """
        Upload a document and get back the digest to sign locally.

        Args:
            document: Document to sign.
            properties: Optional signer role, place and visible signature.
            signer: Signer identity; defaults to the configured signer.

        Returns:
            The session; call :meth:`TwoStepSession.sign` and then
            :meth:`download_document`.

        Raises:
            PreconditionError: If the document or signer chain is missing,
                or the signer has no matching private key.  No network
                call is made in that case.
            ProtocolError: Unless the service answers Success/documentHash.
        """
        signer = require_signer(self._signer(signer))
        request = build_two_step_request(
            document, signer, self._chain_builder, self.config.signature_type, properties
        )
        _logger.info("Uploading document for two-step signing")
        response = self._app_channel().sign(request)
        return process_two_step_response(response, signer)

    async def upload_document_for_two_step_async(
        self,
        document: Document,
        properties: SignatureRequestProperties | None = None,
        signer: SignerIdentity | None = None,
    ) -> TwoStepSession:
        signer = require_signer(self._signer(signer))
        # chain completion reads the trust store and runs its own event loop
        request = await asyncio.to_thread(
            build_two_step_request,
            document,
            signer,
            self._chain_builder,
            self.config.signature_type,
            properties,
        )
        _logger.info("Uploading document for two-step signing")
        response = await self._app_channel().sign_async(request)
        return process_two_step_response(response, signer)

    # ── Downloads ───────────────────────────────────────────────────

    def download_document(self, session: AsyncSession | TwoStepSession) -> Document:
        """
        Fetch the signed document of a finished session.

        Async sessions are resumed over a secure conversation channel
        bound to the session key; two-step sessions deliver their local
        signature over the application's own channel.

        Raises:
            PreconditionError: If *session* is None, or a two-step session
                has not been signed.
            ProtocolError: If the service does not answer Success.
            MalformedResponseError: Unless exactly one document came back.
        """
        if isinstance(session, TwoStepSession):
            request = build_two_step_download_request(session, self.config.signature_type)
            _logger.info("Downloading two-step signed document")
            response = self._app_channel().sign(request)
        elif isinstance(session, AsyncSession):
            pending = build_async_download_request(session)
            _logger.info("Downloading async signed document")
            response = self._session_channel(session).pending_request(pending)
        else:
            raise PreconditionError("session is required")
        return process_signed_document_response(response)

    async def download_document_async(self, session: AsyncSession | TwoStepSession) -> Document:
        if isinstance(session, TwoStepSession):
            request = build_two_step_download_request(session, self.config.signature_type)
            _logger.info("Downloading two-step signed document")
            response = await self._app_channel().sign_async(request)
        elif isinstance(session, AsyncSession):
            pending = build_async_download_request(session)
            _logger.info("Downloading async signed document")
            response = await self._session_channel(session).pending_request_async(pending)
        else:
            raise PreconditionError("session is required")
        return process_signed_document_response(response)

    # ── eSeal ───────────────────────────────────────────────────────

    def seal(
        self, document: Document, properties: SignatureRequestProperties | None = None
    ) -> Document:
        """
        Seal a document with the application's own key, in one round trip.

        Raises:
            PreconditionError: If *document* is None.
            ProtocolError: If the service does not answer Success.
            MalformedResponseError: Unless exactly one document came back.
        """
        request = build_seal_request(document, self.config.signature_type, properties)
        _logger.info("Sealing document")
        return process_signed_document_response(self._app_channel().sign(request))

    async def seal_async(
        self, document: Document, properties: SignatureRequestProperties | None = None
    ) -> Document:
        request = build_seal_request(document, self.config.signature_type, properties)
        _logger.info("Sealing document")
        response = await self._app_channel().sign_async(request)
        return process_signed_document_response(response)

    # ── Verification ────────────────────────────────────────────────

    def verify(self, document: Document) -> SecurityInfo | None:
        """
        Verify the signatures of a document.

        Returns:
            The security info, one entry per signature in report order,
            or None when the document is not signed.

        Raises:
            PreconditionError: If *document* is None.
            ProtocolError: If the service, or any individual report, does
                not answer Success.
        """
        request = build_verify_request(document)
        _logger.info("Verifying document")
        response = self._app_channel().verify(request)
        reports = process_verify_response(response)
        return map_security_info(response, reports) if reports is not None else None

    async def verify_async(self, document: Document) -> SecurityInfo | None:
        request = build_verify_request(document)
        _logger.info("Verifying document")
        response = await self._app_channel().verify_async(request)
        reports = process_verify_response(response)
        return map_security_info(response, reports) if reports is not None else None
