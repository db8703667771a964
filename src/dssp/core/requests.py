"""
DSS-P request builders.

One pure function per flow.  Each builder generates a fresh document id
(``"doc-" + uuid4``) and references it from the enveloped signature
placement, so the service can match placement to document.  Protocol
profile and policy URIs are defined here.
"""

from __future__ import annotations

__all__ = [
    "ADDITIONAL_PROFILE_ASYNC",
    "PROFILE_DSSP",
    "PROFILE_ESEAL",
    "PROFILE_LOCALSIG",
    "REQUEST_TYPE_CANCEL",
    "REQUEST_TYPE_ISSUE",
    "SERVICE_POLICY_TWO_STEP",
    "TOKEN_TYPE_NONCE",
    "TOKEN_TYPE_SCT",
    "build_async_download_request",
    "build_async_sign_request",
    "build_seal_request",
    "build_two_step_download_request",
    "build_two_step_request",
    "build_verify_request",
    "new_client_nonce",
    "new_document_id",
    "require_signer",
]

import logging
import secrets
import uuid
from typing import TYPE_CHECKING

from ..constants import CLIENT_NONCE_SIZE, DOCUMENT_ID_PREFIX
from ..errors import PreconditionError
from .messages import (
    Document,
    PendingRequest,
    SecurityTokenRequest,
    SignaturePlacement,
    SignRequest,
    VerifyRequest,
)

if TYPE_CHECKING:
    from .cert_info import ChainBuilder
    from .messages import SignatureRequestProperties
    from .sessions import AsyncSession, TwoStepSession
    from .signer import SignerIdentity

_logger = logging.getLogger(__name__)

# ── Protocol URIs ─────────────────────────────────────────────────────

PROFILE_DSSP = "urn:be:e-contract:dssp:1.0"
PROFILE_ESEAL = "urn:be:e-contract:dssp:eseal:1.0"
PROFILE_LOCALSIG = "http://docs.oasis-open.org/dss-x/ns/localsig"
SERVICE_POLICY_TWO_STEP = "http://docs.oasis-open.org/dss-x/ns/localsig/two-step-approach"
ADDITIONAL_PROFILE_ASYNC = "urn:oasis:names:tc:dss:1.0:profiles:asynchronousprocessing"

TOKEN_TYPE_SCT = "http://docs.oasis-open.org/ws-sx/ws-secureconversation/200512/sct"
TOKEN_TYPE_NONCE = "http://docs.oasis-open.org/ws-sx/ws-trust/200512/Nonce"
REQUEST_TYPE_ISSUE = "http://docs.oasis-open.org/ws-sx/ws-trust/200512/Issue"
REQUEST_TYPE_CANCEL = "http://docs.oasis-open.org/ws-sx/ws-trust/200512/Cancel"


def new_document_id() -> str:
    return f"{DOCUMENT_ID_PREFIX}{uuid.uuid4()}"


def new_client_nonce() -> bytes:
    """Fresh client entropy for the secure conversation handshake."""
    return secrets.token_bytes(CLIENT_NONCE_SIZE)


def _require_document(document: Document | None) -> Document:
    if document is None:
        raise PreconditionError("document is required")
    return document


def _with_id(document: Document) -> tuple[Document, str]:
    doc_id = new_document_id()
    return Document(document.mime_type, bytes(document.content), doc_id), doc_id


def _properties(properties: SignatureRequestProperties | None) -> SignatureRequestProperties | None:
    if properties is None or properties.is_empty:
        return None
    return properties


# ── Signing flows ─────────────────────────────────────────────────────


def build_async_sign_request(
    document: Document | None, signature_type: str | None = None
) -> tuple[SignRequest, bytes]:
    """
    Build the upload request of the asynchronous (browser) flow.

    Returns:
        The request and the client nonce; keep the nonce to derive the
        session key from the response.

    Raises:
        PreconditionError: If *document* is None.
    """
    document, doc_id = _with_id(_require_document(document))
    nonce = new_client_nonce()
    request = SignRequest(
        profile=PROFILE_DSSP,
        input_documents=(document,),
        signature_type=signature_type or None,
        additional_profile=ADDITIONAL_PROFILE_ASYNC,
        signature_placement=SignaturePlacement(doc_id),
        security_token_request=SecurityTokenRequest(
            request_type=REQUEST_TYPE_ISSUE,
            token_type=TOKEN_TYPE_SCT,
            entropy=nonce,
            entropy_type=TOKEN_TYPE_NONCE,
        ),
    )
    _logger.debug("Built async sign request for %s (%s)", doc_id, document.mime_type)
    return request, nonce


def build_seal_request(
    document: Document | None,
    signature_type: str | None = None,
    properties: SignatureRequestProperties | None = None,
) -> SignRequest:
    """
    Build a synchronous eSeal request.

    Raises:
        PreconditionError: If *document* is None.
    """
    document, doc_id = _with_id(_require_document(document))
    _logger.debug("Built seal request for %s (%s)", doc_id, document.mime_type)
    return SignRequest(
        profile=PROFILE_ESEAL,
        input_documents=(document,),
        signature_type=signature_type or None,
        signature_placement=SignaturePlacement(doc_id),
        properties=_properties(properties),
    )


def require_signer(signer: SignerIdentity | None) -> SignerIdentity:
    """
    Check that *signer* can take part in two-step signing.

    Raises:
        PreconditionError: If the chain is empty or the leaf has no
            matching private key.
    """
    if signer is None or not signer.chain:
        raise PreconditionError("A signer certificate chain is required for two-step signing")
    if not signer.has_private_key:
        raise PreconditionError("The signer certificate has no matching private key")
    return signer


def _signer_chain(signer: SignerIdentity, chain_builder: ChainBuilder) -> tuple[bytes, ...]:
    chain = list(signer.chain)
    if len(chain) == 1 and not chain[0].self_issued:
        chain = chain_builder.build_chain(chain[0])
        _logger.debug("Completed signer chain to %d certificate(s)", len(chain))
    return tuple(cert.dump() for cert in chain)


def build_two_step_request(
    document: Document | None,
    signer: SignerIdentity | None,
    chain_builder: ChainBuilder,
    signature_type: str | None = None,
    properties: SignatureRequestProperties | None = None,
) -> SignRequest:
    """
    Build the upload request of the two-step (local signature) flow.

    A single non-self-issued signer certificate is completed through
    *chain_builder*; several certificates are embedded as given, leaf first.

    Raises:
        PreconditionError: If *document* is None, the signer chain is
            empty, or the leaf has no matching private key.
    """
    document = _require_document(document)
    signer_chain = _signer_chain(require_signer(signer), chain_builder)
    document, doc_id = _with_id(document)
    _logger.debug("Built two-step sign request for %s (%s)", doc_id, document.mime_type)
    return SignRequest(
        profile=PROFILE_LOCALSIG,
        input_documents=(document,),
        signature_type=signature_type or None,
        service_policy=SERVICE_POLICY_TWO_STEP,
        signature_placement=SignaturePlacement(doc_id),
        maintain_request_state=True,
        signer_chain=signer_chain,
        properties=_properties(properties),
    )


# ── Downloads ─────────────────────────────────────────────────────────


def build_async_download_request(session: AsyncSession | None) -> PendingRequest:
    """
    Build the pending request that fetches the signed document.

    The embedded Cancel token request closes the secure conversation.

    Raises:
        PreconditionError: If *session* is None.
    """
    if session is None:
        raise PreconditionError("session is required")
    return PendingRequest(
        response_id=session.server_id,
        additional_profile=ADDITIONAL_PROFILE_ASYNC,
        security_token_request=SecurityTokenRequest(
            request_type=REQUEST_TYPE_CANCEL,
            cancel_target=session.key_id,
            cancel_target_type=TOKEN_TYPE_SCT,
        ),
    )


def build_two_step_download_request(
    session: TwoStepSession | None, signature_type: str | None = None
) -> SignRequest:
    """
    Build the request that delivers the local signature value.

    Raises:
        PreconditionError: If *session* is None or has not been signed.
    """
    if session is None:
        raise PreconditionError("session is required")
    if session.signature_value is None:
        raise PreconditionError("The two-step session has not been signed yet")
    return SignRequest(
        profile=PROFILE_LOCALSIG,
        signature_type=signature_type or None,
        service_policy=SERVICE_POLICY_TWO_STEP,
        correlation_id=session.correlation_id,
        signature_value=session.signature_value,
    )


# ── Verification ──────────────────────────────────────────────────────


def build_verify_request(document: Document | None) -> VerifyRequest:
    """
    Build a verify request asking for a full verification report.

    Raises:
        PreconditionError: If *document* is None.
    """
    document, doc_id = _with_id(_require_document(document))
    _logger.debug("Built verify request for %s (%s)", doc_id, document.mime_type)
    return VerifyRequest(profile=PROFILE_DSSP, input_documents=(document,))
