"""
Result validation and session extraction.

Every response passes through :func:`validate_response` with the major
(and optionally minor) result code its flow expects.  Only accepted
responses are mined for session state or documents; a missing field in
an accepted response is a service contract violation.
"""

from __future__ import annotations

__all__ = [
    "RESULT_MAJOR_PENDING",
    "RESULT_MAJOR_SUCCESS",
    "RESULT_MINOR_DOCUMENT_HASH",
    "process_async_sign_response",
    "process_signed_document_response",
    "process_two_step_response",
    "process_verify_response",
    "validate_response",
]

import logging
from typing import TYPE_CHECKING, TypeVar

from ..errors import MalformedResponseError, ProtocolError
from .derived_key import derive_key
from .sessions import AsyncSession, TwoStepSession

if TYPE_CHECKING:
    from .messages import Document, IndividualReport, SignResponse, VerifyResponse
    from .signer import SignerIdentity

_logger = logging.getLogger(__name__)

RESULT_MAJOR_SUCCESS = "urn:oasis:names:tc:dss:1.0:resultmajor:Success"
RESULT_MAJOR_PENDING = (
    "urn:oasis:names:tc:dss:1.0:profiles:asynchronousprocessing:resultmajor:Pending"
)
RESULT_MINOR_DOCUMENT_HASH = "urn:oasis:names:tc:dss:1.0:resultminor:documentHash"

_R = TypeVar("_R", "SignResponse", "VerifyResponse")


def validate_response(response: _R, expected_major: str, expected_minor: str | None = None) -> _R:
    """
    Check the response's result codes against what the flow expects.

    Returns:
        The response itself, for chaining.

    Raises:
        ProtocolError: On any major mismatch, or a minor mismatch when
            *expected_minor* is given.  Carries the actual codes and
            message verbatim.
    """
    result = response.result
    _logger.debug("Result major=%s minor=%s", result.major, result.minor)
    if result.major != expected_major or (
        expected_minor is not None and result.minor != expected_minor
    ):
        _logger.error(
            "Unexpected result %s %s: %s",
            result.major,
            result.minor or "",
            result.message or "",
        )
        raise ProtocolError(result.major, result.minor, result.message)
    return response


_T = TypeVar("_T")


def _require(value: _T | None, name: str) -> _T:
    if value is None:
        raise MalformedResponseError(f"Response is missing {name}")
    return value


def process_async_sign_response(response: SignResponse, client_nonce: bytes) -> AsyncSession:
    """
    Validate an async upload response and open the session.

    The session key is derived from *client_nonce* and the entropy the
    service returned.

    Raises:
        ProtocolError: If the result is not Pending.
        MalformedResponseError: If the token response is incomplete.
    """
    validate_response(response, RESULT_MAJOR_PENDING)
    if not response.security_token_responses:
        raise MalformedResponseError("Response is missing RequestSecurityTokenResponse")

    token = response.security_token_responses[0]
    server_id = _require(response.response_id, "ResponseID")
    key_id = _require(token.token_identifier, "SecurityContextToken identifier")
    entropy = _require(token.entropy, "server entropy")
    key_size = _require(token.key_size, "KeySize")
    key_reference = _require(token.unattached_reference, "RequestedUnattachedReference")
    expires = _require(token.expires, "Lifetime/Expires")

    session = AsyncSession(
        server_id=server_id,
        key_id=key_id,
        key_value=derive_key(client_nonce, entropy, key_size),
        key_reference=key_reference,
        expires_on=expires,
    )
    _logger.info("Async signing session opened, expires %s", session.expires_on.isoformat())
    return session


def process_two_step_response(response: SignResponse, signer: SignerIdentity) -> TwoStepSession:
    """
    Validate a two-step upload response and capture the digest to sign.

    Raises:
        ProtocolError: Unless the result is Success/documentHash.
        MalformedResponseError: If correlation id or document hash is missing.
    """
    validate_response(response, RESULT_MAJOR_SUCCESS, RESULT_MINOR_DOCUMENT_HASH)
    document_hash = response.document_hash
    correlation_id = _require(response.correlation_id, "CorrelationID")
    if document_hash is None or not document_hash.algorithm or document_hash.value is None:
        raise MalformedResponseError("Response is missing DocumentHash")

    _logger.info("Two-step session opened, digest %s", document_hash.algorithm)
    return TwoStepSession(
        signer=signer,
        correlation_id=correlation_id,
        digest_algorithm=document_hash.algorithm,
        digest_value=document_hash.value,
    )


def process_signed_document_response(response: SignResponse) -> Document:
    """
    Validate a seal or download response and return the signed document.

    Raises:
        ProtocolError: If the result is not Success.
        MalformedResponseError: Unless exactly one document was returned.
    """
    validate_response(response, RESULT_MAJOR_SUCCESS)
    count = len(response.signed_documents)
    if count != 1:
        raise MalformedResponseError(f"Expected exactly one signed document, got {count}")
    document = response.signed_documents[0]
    _logger.debug("Received signed document (%d bytes)", len(document.content))
    return document


def process_verify_response(
    response: VerifyResponse,
) -> tuple[IndividualReport, ...] | None:
    """
    Validate a verify response and return its individual reports.

    Returns:
        The reports in report order, or None when the document carries
        no signature.

    Raises:
        ProtocolError: If the overall result, or any individual report's
            result, is not Success.
    """
    validate_response(response, RESULT_MAJOR_SUCCESS)
    reports = response.individual_reports
    if not reports:
        _logger.info("Verification report contains no signatures")
        return None
    for report in reports:
        if report.result.major != RESULT_MAJOR_SUCCESS:
            _logger.error(
                "Individual report failed inside a successful response: %s",
                report.result.major,
            )
            raise ProtocolError(report.result.major, report.result.minor, report.result.message)
    return reports
