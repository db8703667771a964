"""SOAP envelope builders for DSS-P requests."""

from __future__ import annotations

import base64
import datetime
import uuid
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape as _xml_escape

from ..constants import SECURITY_HEADER_TTL
from .protocol import AuthMode

if TYPE_CHECKING:
    from ..core.messages import (
        Document,
        ImageVisibleSignature,
        PendingRequest,
        SecurityTokenRequest,
        SignatureRequestProperties,
        SignRequest,
        VerifyRequest,
    )
    from .protocol import ChannelBinding

NS_SOAP = "http://schemas.xmlsoap.org/soap/envelope/"
NS_DSS = "urn:oasis:names:tc:dss:1.0:core:schema"
NS_ASYNC = "urn:oasis:names:tc:dss:1.0:profiles:asynchronousprocessing:1.0"
NS_WST = "http://docs.oasis-open.org/ws-sx/ws-trust/200512"
NS_WSC = "http://docs.oasis-open.org/ws-sx/ws-secureconversation/200512"
NS_WSSE = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
NS_WSU = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd"
NS_DS = "http://www.w3.org/2000/09/xmldsig#"
NS_VR = "urn:oasis:names:tc:dss-x:1.0:profiles:verificationreport:schema#"
NS_LOCALSIG = "http://docs.oasis-open.org/dss-x/ns/localsig"
NS_VS = "urn:oasis:names:tc:dssx:1.0:profiles:VisibleSignatures:schema#"
NS_XSI = "http://www.w3.org/2001/XMLSchema-instance"

_PASSWORD_TEXT = (
    "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-username-token-profile-1.0"
    "#PasswordText"
)

_NAMESPACES = (
    f'xmlns:soap="{NS_SOAP}" xmlns:dss="{NS_DSS}" xmlns:async="{NS_ASYNC}" '
    f'xmlns:wst="{NS_WST}" xmlns:wsc="{NS_WSC}" xmlns:wsse="{NS_WSSE}" '
    f'xmlns:wsu="{NS_WSU}" xmlns:ds="{NS_DS}" xmlns:vr="{NS_VR}" '
    f'xmlns:localsig="{NS_LOCALSIG}" xmlns:vs="{NS_VS}" xmlns:xsi="{NS_XSI}"'
)

# Names of the custom text items of a visible signature, in order
_CUSTOM_TEXT_ITEMS = ("CustomText", "CustomText2", "CustomText3", "CustomText4", "CustomText5")


def xml_escape(s: str) -> str:
    """Escape XML special characters in user input."""
    return _xml_escape(s, {'"': "&quot;", "'": "&apos;"})


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _utc_stamp(moment: datetime.datetime) -> str:
    return moment.astimezone(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


# ── Security header ───────────────────────────────────────────────────


def _security_header(binding: ChannelBinding, now: datetime.datetime | None = None) -> str:
    """
    Build the ``wsse:Security`` header for *binding*.

    Anonymous calls carry no header.  Client certificates are presented
    at the TLS layer, so those modes only carry the timestamp.
    """
    if binding.mode is AuthMode.ANONYMOUS:
        return ""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    expires = now + datetime.timedelta(seconds=SECURITY_HEADER_TTL)
    parts = [
        f'<wsu:Timestamp wsu:Id="TS-{uuid.uuid4()}">'
        f"<wsu:Created>{_utc_stamp(now)}</wsu:Created>"
        f"<wsu:Expires>{_utc_stamp(expires)}</wsu:Expires>"
        "</wsu:Timestamp>"
    ]
    if binding.mode is AuthMode.USERNAME_PASSWORD:
        parts.append(
            "<wsse:UsernameToken>"
            f"<wsse:Username>{xml_escape(binding.username or '')}</wsse:Username>"
            f'<wsse:Password Type="{_PASSWORD_TEXT}">'
            f"{xml_escape(binding.password or '')}</wsse:Password>"
            "</wsse:UsernameToken>"
        )
    elif binding.mode is AuthMode.SECURE_CONVERSATION:
        parts.append(
            f'<wsc:SecurityContextToken wsu:Id="SCT-{uuid.uuid4()}">'
            f"<wsc:Identifier>{xml_escape(binding.key_id or '')}</wsc:Identifier>"
            "</wsc:SecurityContextToken>"
        )
    return f'<wsse:Security soap:mustUnderstand="1">{"".join(parts)}</wsse:Security>'


def _envelope(body: str, binding: ChannelBinding, now: datetime.datetime | None = None) -> str:
    header = _security_header(binding, now)
    header_part = f"\n  <soap:Header>{header}</soap:Header>" if header else ""
    return f"""\
<?xml version="1.0" encoding="utf-8"?>
<soap:Envelope {_NAMESPACES}>{header_part}
  <soap:Body>
    {body}
  </soap:Body>
</soap:Envelope>"""


# ── Request fragments ─────────────────────────────────────────────────


def _input_documents(documents: tuple[Document, ...]) -> str:
    if not documents:
        return ""
    docs = "".join(
        f'<dss:Document ID="{xml_escape(doc.id or "")}">'
        f'<dss:Base64Data MimeType="{xml_escape(doc.mime_type)}">{_b64(doc.content)}'
        "</dss:Base64Data></dss:Document>"
        for doc in documents
    )
    return f"<dss:InputDocuments>{docs}</dss:InputDocuments>"


def _security_token_request(token: SecurityTokenRequest) -> str:
    parts = []
    if token.token_type:
        parts.append(f"<wst:TokenType>{xml_escape(token.token_type)}</wst:TokenType>")
    parts.append(f"<wst:RequestType>{xml_escape(token.request_type)}</wst:RequestType>")
    if token.entropy is not None:
        entropy_type = f' Type="{xml_escape(token.entropy_type)}"' if token.entropy_type else ""
        parts.append(
            f"<wst:Entropy><wst:BinarySecret{entropy_type}>{_b64(token.entropy)}"
            "</wst:BinarySecret></wst:Entropy>"
        )
    if token.cancel_target is not None:
        value_type = (
            f' ValueType="{xml_escape(token.cancel_target_type)}"'
            if token.cancel_target_type
            else ""
        )
        parts.append(
            "<wst:CancelTarget><wsse:SecurityTokenReference>"
            f'<wsse:Reference{value_type} URI="{xml_escape(token.cancel_target)}"/>'
            "</wsse:SecurityTokenReference></wst:CancelTarget>"
        )
    return f"<wst:RequestSecurityToken>{''.join(parts)}</wst:RequestSecurityToken>"


def _string_item(name: str, value: str) -> str:
    return (
        f"<vs:VisibleSignatureItem><vs:ItemName>{name}</vs:ItemName>"
        '<vs:ItemValue xsi:type="vs:ItemValueStringType">'
        f"<vs:ItemValue>{xml_escape(value)}</vs:ItemValue></vs:ItemValue>"
        "</vs:VisibleSignatureItem>"
    )


def _uri_item(name: str, value: str) -> str:
    return (
        f"<vs:VisibleSignatureItem><vs:ItemName>{name}</vs:ItemName>"
        '<vs:ItemValue xsi:type="vs:ItemValueURIType">'
        f"<vs:ItemValue>{xml_escape(value)}</vs:ItemValue></vs:ItemValue>"
        "</vs:VisibleSignatureItem>"
    )


def _visible_signature_position(visible: ImageVisibleSignature) -> str:
    return (
        '<vs:VisibleSignaturePosition xsi:type="vs:PixelVisibleSignaturePositionType">'
        f"<vs:PageNumber>{visible.page}</vs:PageNumber>"
        f"<vs:x>{visible.x}</vs:x><vs:y>{visible.y}</vs:y>"
        "</vs:VisibleSignaturePosition>"
    )


def _visible_signature_configuration(properties: SignatureRequestProperties) -> str:
    """Pass the signature properties through; the service renders them."""
    items = []
    if properties.signer_role is not None:
        items.append(_string_item("SignatureReason", properties.signer_role))
    if properties.production_place is not None:
        items.append(_string_item("SignatureProductionPlace", properties.production_place))
    visible = properties.visible_signature
    if visible is not None:
        items.append(_uri_item("SignerImage", visible.value_uri))
        items.extend(
            _string_item(name, text)
            for name, text in zip(_CUSTOM_TEXT_ITEMS, visible.custom_texts)
            if text
        )

    parts = ["<vs:VisibleSignaturePolicy>DocumentSubmissionPolicy</vs:VisibleSignaturePolicy>"]
    if items:
        parts.append(
            f"<vs:VisibleSignatureItemsConfiguration>{''.join(items)}"
            "</vs:VisibleSignatureItemsConfiguration>"
        )
    if visible is not None:
        parts.append(_visible_signature_position(visible))
    return f"<vs:VisibleSignatureConfiguration>{''.join(parts)}</vs:VisibleSignatureConfiguration>"


def _sign_optional_inputs(request: SignRequest) -> str:
    parts = []
    if request.additional_profile:
        parts.append(
            f"<dss:AdditionalProfile>{xml_escape(request.additional_profile)}"
            "</dss:AdditionalProfile>"
        )
    if request.service_policy:
        parts.append(
            f"<dss:ServicePolicy>{xml_escape(request.service_policy)}</dss:ServicePolicy>"
        )
    if request.signature_type:
        parts.append(
            f"<dss:SignatureType>{xml_escape(request.signature_type)}</dss:SignatureType>"
        )
    if request.security_token_request is not None:
        parts.append(_security_token_request(request.security_token_request))
    if request.signature_placement is not None:
        placement = request.signature_placement
        enveloped = "true" if placement.create_enveloped_signature else "false"
        parts.append(
            f'<dss:SignaturePlacement WhichDocument="{xml_escape(placement.which_document)}" '
            f'CreateEnvelopedSignature="{enveloped}"/>'
        )
    if request.maintain_request_state:
        parts.append('<localsig:RequestDocumentHash MaintainRequestState="true"/>')
    if request.signer_chain:
        certs = "".join(
            f"<ds:X509Certificate>{_b64(der)}</ds:X509Certificate>"
            for der in request.signer_chain
        )
        parts.append(
            f"<dss:KeySelector><ds:KeyInfo><ds:X509Data>{certs}</ds:X509Data>"
            "</ds:KeyInfo></dss:KeySelector>"
        )
    if request.correlation_id is not None:
        parts.append(
            f"<localsig:CorrelationID>{xml_escape(request.correlation_id)}"
            "</localsig:CorrelationID>"
        )
    if request.signature_value is not None:
        parts.append(
            "<dss:SignatureObject><dss:Base64Signature>"
            f"{_b64(request.signature_value)}</dss:Base64Signature></dss:SignatureObject>"
        )
    if request.properties is not None:
        parts.append(_visible_signature_configuration(request.properties))
    return f"<dss:OptionalInputs>{''.join(parts)}</dss:OptionalInputs>"


# ── Envelopes ─────────────────────────────────────────────────────────


def build_sign_envelope(
    request: SignRequest, binding: ChannelBinding, now: datetime.datetime | None = None
) -> str:
    """Build the SOAP envelope of a ``dss:SignRequest``.

    All strings taken from the request are XML-escaped internally;
    binary fields are base64-encoded.
    """
    body = (
        f'<dss:SignRequest RequestID="{uuid.uuid4()}" Profile="{xml_escape(request.profile)}">'
        f"{_sign_optional_inputs(request)}{_input_documents(request.input_documents)}"
        "</dss:SignRequest>"
    )
    return _envelope(body, binding, now)


def build_pending_envelope(
    request: PendingRequest, binding: ChannelBinding, now: datetime.datetime | None = None
) -> str:
    """Build the SOAP envelope of an ``async:PendingRequest``."""
    body = (
        "<async:PendingRequest><dss:OptionalInputs>"
        f"<dss:AdditionalProfile>{xml_escape(request.additional_profile)}</dss:AdditionalProfile>"
        f"<async:ResponseID>{xml_escape(request.response_id)}</async:ResponseID>"
        f"{_security_token_request(request.security_token_request)}"
        "</dss:OptionalInputs></async:PendingRequest>"
    )
    return _envelope(body, binding, now)


def build_verify_envelope(
    request: VerifyRequest, binding: ChannelBinding, now: datetime.datetime | None = None
) -> str:
    """Build the SOAP envelope of a ``dss:VerifyRequest``."""
    verifier = "true" if request.include_verifier else "false"
    cert_values = "true" if request.include_certificate_values else "false"
    body = (
        f'<dss:VerifyRequest RequestID="{uuid.uuid4()}" Profile="{xml_escape(request.profile)}">'
        "<dss:OptionalInputs><vr:ReturnVerificationReport>"
        f"<vr:IncludeVerifier>{verifier}</vr:IncludeVerifier>"
        f"<vr:IncludeCertificateValues>{cert_values}</vr:IncludeCertificateValues>"
        "</vr:ReturnVerificationReport></dss:OptionalInputs>"
        f"{_input_documents(request.input_documents)}"
        "</dss:VerifyRequest>"
    )
    return _envelope(body, binding, now)
