"""SOAP response parsers for DSS-P.

Responses are navigated by local element name; the service's namespace
prefixes vary between deployments and carry no extra meaning here.
"""

from __future__ import annotations

import base64
import binascii
import datetime
import logging
import re
from typing import TYPE_CHECKING
from xml.etree.ElementTree import ParseError as _XMLParseError
from xml.etree.ElementTree import tostring as _xml_tostring

import defusedxml.ElementTree as ET

from ..constants import XML_PREVIEW_LENGTH
from ..core.messages import (
    CertificateValidity,
    Document,
    DocumentHash,
    IndividualReport,
    Result,
    SecurityTokenResponse,
    SignResponse,
    VerifyResponse,
)
from ..errors import MalformedResponseError, TransportError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from xml.etree.ElementTree import Element

_logger = logging.getLogger(__name__)

# Regex patterns for redacting credentials from XML previews in error messages
_REDACT_PASSWORD_PATTERN = r"<([\w]+:)?Password([^>]*)>[^<]*</([\w]+:)?Password>"
_REDACT_PASSWORD_REPLACEMENT = "<Password>[REDACTED]</Password>"
_REDACT_SECRET_PATTERN = r"<([\w]+:)?BinarySecret([^>]*)>[^<]*</([\w]+:)?BinarySecret>"
_REDACT_SECRET_REPLACEMENT = "<BinarySecret>[REDACTED]</BinarySecret>"


def _strip_namespace(tag: str) -> str:
    """Strip XML namespace prefix from a tag name."""
    return tag.split("}")[-1] if "}" in tag else tag


def _redact_and_truncate_xml(xml_str: str) -> str:
    """Redact secrets from XML and truncate to preview length.

    Used in error messages to prevent leaking passwords or key material.
    """
    redacted = re.sub(_REDACT_PASSWORD_PATTERN, _REDACT_PASSWORD_REPLACEMENT, xml_str)
    redacted = re.sub(_REDACT_SECRET_PATTERN, _REDACT_SECRET_REPLACEMENT, redacted)
    return redacted[:XML_PREVIEW_LENGTH]


# ── Element navigation ────────────────────────────────────────────────


def _children(elem: Element | None, name: str) -> Iterator[Element]:
    if elem is None:
        return
    for child in elem:
        if _strip_namespace(child.tag) == name:
            yield child


def _child(elem: Element | None, name: str) -> Element | None:
    return next(_children(elem, name), None)


def _path(elem: Element | None, *names: str) -> Element | None:
    for name in names:
        elem = _child(elem, name)
    return elem


def _text(elem: Element | None) -> str | None:
    if elem is None:
        return None
    text = "".join(elem.itertext()).strip()
    return text or None


def _b64decode(text: str | None, what: str) -> bytes | None:
    if text is None:
        return None
    try:
        return base64.b64decode("".join(text.split()), validate=True)
    except binascii.Error as e:
        raise MalformedResponseError(f"Invalid Base64 in {what}: {e}") from e


def _parse_datetime(text: str | None, what: str) -> datetime.datetime | None:
    if text is None:
        return None
    value = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    value = re.sub(r"(\.\d+)", lambda m: m.group(1)[:7].ljust(7, "0"), value, count=1)
    try:
        parsed = datetime.datetime.fromisoformat(value)
    except ValueError as e:
        raise MalformedResponseError(f"Invalid {what} timestamp {text!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def _parse_int(text: str | None, what: str) -> int | None:
    if text is None:
        return None
    try:
        return int(text)
    except ValueError as e:
        raise MalformedResponseError(f"Invalid {what} {text!r}") from e


# ── Envelope ──────────────────────────────────────────────────────────


def _response_element(xml_str: str, expected: str) -> Element:
    """Parse the envelope and return the response element inside the Body.

    Raises:
        TransportError: If the service answered with a SOAP fault.
        MalformedResponseError: If the XML is invalid or the body does not
            hold the expected response.
    """
    try:
        root = ET.fromstring(xml_str)
    except _XMLParseError as e:
        _logger.exception("Invalid XML response")
        safe_preview = _redact_and_truncate_xml(xml_str[:500])
        raise MalformedResponseError(f"Invalid XML response: {e}\nRaw: {safe_preview}") from e

    body = _child(root, "Body")
    fault = _child(body, "Fault")
    if fault is not None:
        code = _text(_child(fault, "faultcode")) or "soap:Server"
        reason = _text(_child(fault, "faultstring")) or "no fault string"
        _logger.error("SOAP fault %s: %s", code, reason)
        raise TransportError(f"SOAP fault {code}: {reason}")

    response = _child(body, expected)
    if response is None:
        found = [_strip_namespace(child.tag) for child in body] if body is not None else []
        raise MalformedResponseError(
            f"Expected {expected} in SOAP body, found {found or 'nothing'}"
        )
    return response


def _parse_result(response: Element) -> Result:
    result = _child(response, "Result")
    return Result(
        major=_text(_child(result, "ResultMajor")),
        minor=_text(_child(result, "ResultMinor")),
        message=_text(_child(result, "ResultMessage")),
    )


# ── Sign responses ────────────────────────────────────────────────────


def _parse_token_response(elem: Element) -> SecurityTokenResponse:
    reference = _path(elem, "RequestedUnattachedReference", "SecurityTokenReference")
    return SecurityTokenResponse(
        token_identifier=_text(
            _path(elem, "RequestedSecurityToken", "SecurityContextToken", "Identifier")
        ),
        entropy=_b64decode(_text(_path(elem, "Entropy", "BinarySecret")), "server entropy"),
        key_size=_parse_int(_text(_child(elem, "KeySize")), "KeySize"),
        unattached_reference=(
            _xml_tostring(reference, encoding="unicode") if reference is not None else None
        ),
        expires=_parse_datetime(_text(_path(elem, "Lifetime", "Expires")), "Lifetime/Expires"),
    )


def _parse_documents(outputs: Element | None) -> tuple[Document, ...]:
    documents = []
    for doc in _children(_child(outputs, "DocumentWithSignature"), "Document"):
        data = _child(doc, "Base64Data")
        if data is None:
            raise MalformedResponseError("Signed document has no Base64Data")
        content = _b64decode(_text(data), "signed document") or b""
        documents.append(
            Document(data.get("MimeType", "application/octet-stream"), content, doc.get("ID"))
        )
    return tuple(documents)


def parse_sign_response(xml_str: str) -> SignResponse:
    """
    Parse a ``dss:SignResponse`` (sign and pending requests both return one).

    Result codes are returned as-is; checking them is the caller's job.

    Raises:
        TransportError: On a SOAP fault.
        MalformedResponseError: If the response cannot be parsed.
    """
    response = _response_element(xml_str, "SignResponse")
    result = _parse_result(response)
    outputs = _child(response, "OptionalOutputs")

    tokens = tuple(
        _parse_token_response(elem)
        for elem in _children(
            _child(outputs, "RequestSecurityTokenResponseCollection"),
            "RequestSecurityTokenResponse",
        )
    )
    digest = _child(outputs, "DocumentHash")
    document_hash = None
    if digest is not None:
        method = _child(digest, "DigestMethod")
        document_hash = DocumentHash(
            algorithm=method.get("Algorithm") if method is not None else None,
            value=_b64decode(_text(_child(digest, "DigestValue")), "DigestValue"),
        )

    parsed = SignResponse(
        result=result,
        response_id=_text(_child(outputs, "ResponseID")),
        security_token_responses=tokens,
        correlation_id=_text(_child(outputs, "CorrelationID")),
        document_hash=document_hash,
        signed_documents=_parse_documents(outputs),
    )
    _logger.debug(
        "Parsed sign response: major=%s, minor=%s, tokens=%d, documents=%d",
        result.major,
        result.minor,
        len(tokens),
        len(parsed.signed_documents),
    )
    return parsed


# ── Verify responses ──────────────────────────────────────────────────


def _parse_individual_report(elem: Element) -> IndividualReport:
    properties = _path(
        elem, "SignedObjectIdentifier", "SignedProperties", "SignedSignatureProperties"
    )
    signer_role = _child(properties, "SignerRole")
    roles = None
    if signer_role is not None:
        roles = tuple(
            _text(role) or ""
            for role in _children(_child(signer_role, "ClaimedRoles"), "ClaimedRole")
        )

    path_detail = _path(
        elem, "Details", "DetailedSignatureReport", "CertificatePathValidity", "PathValidityDetail"
    )
    validities = tuple(
        CertificateValidity(
            subject=_text(_child(validity, "Subject")),
            certificate_value=_b64decode(
                _text(_child(validity, "CertificateValue")), "CertificateValue"
            ),
        )
        for validity in _children(path_detail, "CertificateValidity")
    )

    return IndividualReport(
        result=_parse_result(elem),
        signing_time=_text(_child(properties, "SigningTime")),
        signer_roles=roles,
        location=_text(_child(properties, "Location")),
        certificate_validities=validities,
    )


def parse_verify_response(xml_str: str) -> VerifyResponse:
    """
    Parse a ``dss:VerifyResponse``.

    ``individual_reports`` is None when the response holds no
    verification report or a report without individual entries.

    Raises:
        TransportError: On a SOAP fault.
        MalformedResponseError: If the response cannot be parsed.
    """
    response = _response_element(xml_str, "VerifyResponse")
    result = _parse_result(response)
    outputs = _child(response, "OptionalOutputs")

    reports = tuple(
        _parse_individual_report(elem)
        for elem in _children(_child(outputs, "VerificationReport"), "IndividualReport")
    )
    renewal = _child(outputs, "TimeStampRenewal")
    before = renewal.get("Before") if renewal is not None else None

    _logger.debug(
        "Parsed verify response: major=%s, reports=%d", result.major, len(reports)
    )
    return VerifyResponse(
        result=result,
        individual_reports=reports or None,
        time_stamp_renewal=_parse_datetime(before, "TimeStampRenewal"),
    )
