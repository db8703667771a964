"""
Verification report mapping.

Turns the individual reports of a verify response into
:class:`SignatureInfo` entries, in report order, plus the overall
timestamp validity bound.
"""

from __future__ import annotations

__all__ = [
    "UNBOUNDED",
    "SecurityInfo",
    "SignatureInfo",
    "map_security_info",
    "map_signature_info",
    "parse_signing_time",
]

import datetime
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import MalformedResponseError
from .cert_info import decode_certificate, format_subject

if TYPE_CHECKING:
    from asn1crypto import x509 as asn1_x509

    from .messages import IndividualReport, VerifyResponse

_logger = logging.getLogger(__name__)

# Validity bound used when the service reports no renewal deadline
UNBOUNDED = datetime.datetime.max.replace(tzinfo=datetime.timezone.utc)

_FRACTION_RE = re.compile(r"(\.\d+)")


@dataclass(frozen=True)
class SignatureInfo:
    """One signature found by the service.

    Attributes:
        signing_time: Claimed signing time; local time when the report
            carries an offset, as declared otherwise.
        signer: Decoded signer certificate.
        signer_subject: Subject as written by the service (long names,
            e.g. ``GIVENNAME=``).
        certificate_subject: Subject re-derived from *signer* with short
            aliases (e.g. ``G=``, ``SN=``).
        signer_role: Claimed roles joined with ``", "``, or None.
        production_place: Signature production place, or None.
    """

    signing_time: datetime.datetime
    signer: asn1_x509.Certificate
    signer_subject: str | None
    certificate_subject: str
    signer_role: str | None
    production_place: str | None


@dataclass(frozen=True)
class SecurityInfo:
    """Verification outcome of a signed document."""

    time_stamp_validity: datetime.datetime
    signatures: tuple[SignatureInfo, ...]


def parse_signing_time(value: str | None) -> datetime.datetime:
    """
    Parse an ISO-8601 signing time.

    ``Z`` is accepted as UTC and fractional seconds are cut to
    microseconds.  Values with an offset are converted to local time;
    values without one are returned as declared.

    Raises:
        MalformedResponseError: If the value is missing or not a timestamp.
    """
    if not value:
        raise MalformedResponseError("Individual report is missing the signing time")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: m.group(1)[:7].ljust(7, "0"), text, count=1)
    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError as e:
        raise MalformedResponseError(f"Invalid signing time {value!r}") from e
    if parsed.tzinfo is not None:
        return parsed.astimezone()
    return parsed


def map_signature_info(report: IndividualReport) -> SignatureInfo:
    """
    Map one individual report.

    Raises:
        MalformedResponseError: If the report has no signing time or no
            signer certificate.
        CertificateError: If the signer certificate cannot be decoded.
    """
    validities = report.certificate_validities
    if not validities or validities[0].certificate_value is None:
        raise MalformedResponseError("Individual report has no signer certificate")
    first = validities[0]
    signer = decode_certificate(first.certificate_value)

    roles = report.signer_roles
    return SignatureInfo(
        signing_time=parse_signing_time(report.signing_time),
        signer=signer,
        signer_subject=first.subject,
        certificate_subject=format_subject(signer.subject),
        signer_role=", ".join(roles) if roles is not None else None,
        production_place=report.location,
    )


def map_security_info(
    response: VerifyResponse, reports: tuple[IndividualReport, ...]
) -> SecurityInfo:
    """Map validated individual reports and the renewal deadline of *response*."""
    signatures = tuple(map_signature_info(report) for report in reports)
    validity = response.time_stamp_renewal or UNBOUNDED
    _logger.info("Mapped %d signature(s)", len(signatures))
    return SecurityInfo(time_stamp_validity=validity, signatures=signatures)
