"""
Typed DSS-P protocol messages.

Requests are produced by :mod:`dssp.core.requests` and serialized by
:mod:`dssp.network.soap_envelope`; responses are produced by
:mod:`dssp.network.soap_parsers` and consumed by :mod:`dssp.core.results`.
The structures mirror the wire schema closely but carry only the fields
the client reads or writes.
"""

from __future__ import annotations

__all__ = [
    "EID_PHOTO_URI",
    "CertificateValidity",
    "Document",
    "DocumentHash",
    "ImageVisibleSignature",
    "IndividualReport",
    "PendingRequest",
    "Result",
    "SecurityTokenRequest",
    "SecurityTokenResponse",
    "SignRequest",
    "SignResponse",
    "SignaturePlacement",
    "SignatureRequestProperties",
    "VerifyRequest",
    "VerifyResponse",
]

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import datetime
    from typing import BinaryIO

EID_PHOTO_URI = "urn:be:e-contract:dssp:1.0:vs:si:eid-photo"

# Maximum number of custom text lines the service accepts on a visible signature
_MAX_CUSTOM_TEXTS = 5


# ── Documents ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Document:
    """A document to sign, seal or verify, or one returned by the service.

    Attributes:
        mime_type: MIME type, e.g. ``application/pdf`` or ``text/xml``.
        content: Raw document bytes.
        id: Document identifier; set on documents returned by the service.
    """

    mime_type: str
    content: bytes = field(repr=False)
    id: str | None = None

    @classmethod
    def from_stream(cls, mime_type: str, stream: BinaryIO, id: str | None = None) -> Document:
        """Read a binary stream to its end; the stream stays open."""
        return cls(mime_type, stream.read(), id)

    @classmethod
    def from_file(cls, path: str | Path, mime_type: str | None = None) -> Document:
        """Read a document from disk, guessing the MIME type when not given."""
        path = Path(path)
        if mime_type is None:
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(mime_type, path.read_bytes())


# ── Signature request properties ──────────────────────────────────────


@dataclass(frozen=True)
class ImageVisibleSignature:
    """A visible signature showing an image (the eID photo by default).

    Attributes:
        page: Page number, starting at 1.
        x: Horizontal position in pixels.
        y: Vertical position in pixels.
        value_uri: URI of the image.
        custom_texts: Up to five lines of custom text.
    """

    page: int = 1
    x: int = 0
    y: int = 0
    value_uri: str = EID_PHOTO_URI
    custom_texts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"Visible signature page starts at 1, got {self.page}")
        if len(self.custom_texts) > _MAX_CUSTOM_TEXTS:
            raise ValueError(
                f"At most {_MAX_CUSTOM_TEXTS} custom texts are supported, "
                f"got {len(self.custom_texts)}"
            )


@dataclass(frozen=True)
class SignatureRequestProperties:
    """Optional properties for seal and two-step uploads."""

    signer_role: str | None = None
    production_place: str | None = None
    visible_signature: ImageVisibleSignature | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.signer_role is None
            and self.production_place is None
            and self.visible_signature is None
        )


# ── Requests ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SignaturePlacement:
    which_document: str
    create_enveloped_signature: bool = True


@dataclass(frozen=True)
class SecurityTokenRequest:
    """A ``wst:RequestSecurityToken`` (Issue on upload, Cancel on download)."""

    request_type: str
    token_type: str | None = None
    entropy: bytes | None = field(default=None, repr=False)
    entropy_type: str | None = None
    cancel_target: str | None = None
    cancel_target_type: str | None = None


@dataclass(frozen=True)
class SignRequest:
    """A ``dss:SignRequest`` covering the async, seal and two-step flows."""

    profile: str
    input_documents: tuple[Document, ...] = ()
    signature_type: str | None = None
    additional_profile: str | None = None
    service_policy: str | None = None
    signature_placement: SignaturePlacement | None = None
    security_token_request: SecurityTokenRequest | None = None
    maintain_request_state: bool = False
    signer_chain: tuple[bytes, ...] = field(default=(), repr=False)
    correlation_id: str | None = None
    signature_value: bytes | None = field(default=None, repr=False)
    properties: SignatureRequestProperties | None = None


@dataclass(frozen=True)
class PendingRequest:
    """An ``async:PendingRequest`` fetching the result of an async upload."""

    response_id: str
    additional_profile: str
    security_token_request: SecurityTokenRequest


@dataclass(frozen=True)
class VerifyRequest:
    profile: str
    input_documents: tuple[Document, ...]
    include_verifier: bool = True
    include_certificate_values: bool = True


# ── Responses ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Result:
    major: str | None
    minor: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class SecurityTokenResponse:
    """One ``wst:RequestSecurityTokenResponse`` of an async upload."""

    token_identifier: str | None = None
    entropy: bytes | None = field(default=None, repr=False)
    key_size: int | None = None
    unattached_reference: str | None = None
    expires: datetime.datetime | None = None


@dataclass(frozen=True)
class DocumentHash:
    algorithm: str | None
    value: bytes | None


@dataclass(frozen=True)
class SignResponse:
    result: Result
    response_id: str | None = None
    security_token_responses: tuple[SecurityTokenResponse, ...] = ()
    correlation_id: str | None = None
    document_hash: DocumentHash | None = None
    signed_documents: tuple[Document, ...] = ()


@dataclass(frozen=True)
class CertificateValidity:
    subject: str | None
    certificate_value: bytes | None = field(default=None, repr=False)


@dataclass(frozen=True)
class IndividualReport:
    """Per-signature entry of a verification report."""

    result: Result
    signing_time: str | None = None
    signer_roles: tuple[str, ...] | None = None
    location: str | None = None
    certificate_validities: tuple[CertificateValidity, ...] = ()


@dataclass(frozen=True)
class VerifyResponse:
    """A verify response.

    ``individual_reports`` is None when the service returned no
    verification report at all.
    """

    result: Result
    individual_reports: tuple[IndividualReport, ...] | None = None
    time_stamp_renewal: datetime.datetime | None = None
