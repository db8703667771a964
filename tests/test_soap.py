"""Tests for dssp.network.soap* -- envelope builders, response parsers, channel."""

from __future__ import annotations

import base64
import datetime
from pathlib import Path
from unittest.mock import patch

import defusedxml.ElementTree as ET
import pytest

from dssp.config import ClientCertificate
from dssp.core.messages import (
    Document,
    ImageVisibleSignature,
    SignatureRequestProperties,
)
from dssp.core.requests import (
    TOKEN_TYPE_NONCE,
    build_async_download_request,
    build_async_sign_request,
    build_seal_request,
    build_two_step_download_request,
    build_verify_request,
)
from dssp.core.results import (
    RESULT_MAJOR_PENDING,
    RESULT_MAJOR_SUCCESS,
    RESULT_MINOR_DOCUMENT_HASH,
)
from dssp.core.sessions import AsyncSession, TwoStepSession
from dssp.errors import MalformedResponseError, PreconditionError, TransportError
from dssp.network.protocol import AuthMode, ChannelBinding
from dssp.network.soap import send_soap, send_soap_async
from dssp.network.soap_envelope import (
    NS_DS,
    NS_DSS,
    NS_SOAP,
    NS_VS,
    NS_WSC,
    NS_WSSE,
    NS_WST,
    NS_WSU,
    build_pending_envelope,
    build_sign_envelope,
    build_verify_envelope,
    xml_escape,
)
from dssp.network.soap_parsers import (
    _redact_and_truncate_xml,
    parse_sign_response,
    parse_verify_response,
)
from dssp.network.soap_transport import SoapChannelFactory, SoapDsspChannel

ANONYMOUS = ChannelBinding(AuthMode.ANONYMOUS)
DOC = Document("application/pdf", b"%PDF-1.4 content")
NOW = datetime.datetime(2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


def _q(ns: str, name: str) -> str:
    return f"{{{ns}}}{name}"


def _envelope(body: str) -> str:
    return (
        f'<soap:Envelope xmlns:soap="{NS_SOAP}" xmlns:dss="{NS_DSS}" '
        f'xmlns:wst="{NS_WST}" xmlns:wsc="{NS_WSC}" xmlns:wsse="{NS_WSSE}" '
        'xmlns:async="urn:oasis:names:tc:dss:1.0:profiles:asynchronousprocessing:1.0" '
        'xmlns:localsig="http://docs.oasis-open.org/dss-x/ns/localsig" '
        f'xmlns:ds="{NS_DS}" '
        'xmlns:vr="urn:oasis:names:tc:dss-x:1.0:profiles:verificationreport:schema#" '
        'xmlns:xades="http://uri.etsi.org/01903/v1.3.2#">'
        f"<soap:Body>{body}</soap:Body></soap:Envelope>"
    )


def _result(major: str, minor: str | None = None, message: str | None = None) -> str:
    parts = [f"<dss:ResultMajor>{major}</dss:ResultMajor>"]
    if minor:
        parts.append(f"<dss:ResultMinor>{minor}</dss:ResultMinor>")
    if message:
        parts.append(f'<dss:ResultMessage xml:lang="en">{message}</dss:ResultMessage>')
    return f"<dss:Result>{''.join(parts)}</dss:Result>"


# ── Helpers ─────────────────────────────────────────────────────────


def test_xml_escape():
    assert xml_escape("<a & \"b\" 'c'>") == "&lt;a &amp; &quot;b&quot; &apos;c&apos;&gt;"


def test_redact_password_and_secret():
    xml = (
        '<wsse:Password Type="x">hunter2</wsse:Password>'
        '<wst:BinarySecret Type="y">c2VjcmV0</wst:BinarySecret>'
    )
    redacted = _redact_and_truncate_xml(xml)
    assert "hunter2" not in redacted
    assert "c2VjcmV0" not in redacted
    assert "[REDACTED]" in redacted


# ── Security header ─────────────────────────────────────────────────


def _header(envelope: str):
    return ET.fromstring(envelope).find(_q(NS_SOAP, "Header"))


def test_anonymous_envelope_has_no_header():
    request, _ = build_async_sign_request(DOC)
    assert _header(build_sign_envelope(request, ANONYMOUS, NOW)) is None


def test_username_token_header():
    binding = ChannelBinding(AuthMode.USERNAME_PASSWORD, username="app", password="p<w>")
    request = build_seal_request(DOC)
    header = _header(build_sign_envelope(request, binding, NOW))

    security = header.find(_q(NS_WSSE, "Security"))
    assert security.get(_q(NS_SOAP, "mustUnderstand")) == "1"
    token = security.find(_q(NS_WSSE, "UsernameToken"))
    assert token.findtext(_q(NS_WSSE, "Username")) == "app"
    password = token.find(_q(NS_WSSE, "Password"))
    assert password.text == "p<w>"
    assert password.get("Type").endswith("#PasswordText")

    stamp = security.find(_q(NS_WSU, "Timestamp"))
    assert stamp.findtext(_q(NS_WSU, "Created")) == "2024-05-01T12:00:00.000Z"
    assert stamp.findtext(_q(NS_WSU, "Expires")) == "2024-05-01T12:05:00.000Z"


def test_secure_conversation_header():
    binding = ChannelBinding(
        AuthMode.SECURE_CONVERSATION, key_id="urn:uuid:sct-1", key_value=b"k" * 32
    )
    session = AsyncSession("resp-1", "urn:uuid:sct-1", b"k" * 32, "<ref/>", NOW)
    envelope = build_pending_envelope(build_async_download_request(session), binding, NOW)
    security = _header(envelope).find(_q(NS_WSSE, "Security"))
    sct = security.find(_q(NS_WSC, "SecurityContextToken"))
    assert sct.findtext(_q(NS_WSC, "Identifier")) == "urn:uuid:sct-1"


def test_client_cert_header_has_only_timestamp():
    binding = ChannelBinding(
        AuthMode.CLIENT_CERT, client_certificate=ClientCertificate(Path("/c.pem"))
    )
    security = _header(build_sign_envelope(build_seal_request(DOC), binding, NOW)).find(
        _q(NS_WSSE, "Security")
    )
    assert [child.tag for child in security] == [_q(NS_WSU, "Timestamp")]


# ── Sign envelopes ──────────────────────────────────────────────────


def _sign_request_elem(envelope: str):
    body = ET.fromstring(envelope).find(_q(NS_SOAP, "Body"))
    return body.find(_q(NS_DSS, "SignRequest"))


def test_async_sign_envelope():
    request, nonce = build_async_sign_request(DOC, "urn:sig-type")
    elem = _sign_request_elem(build_sign_envelope(request, ANONYMOUS, NOW))

    assert elem.get("Profile") == "urn:be:e-contract:dssp:1.0"
    inputs = elem.find(_q(NS_DSS, "OptionalInputs"))
    assert inputs.findtext(_q(NS_DSS, "SignatureType")) == "urn:sig-type"
    assert inputs.findtext(_q(NS_DSS, "AdditionalProfile")).endswith("asynchronousprocessing")

    rst = inputs.find(_q(NS_WST, "RequestSecurityToken"))
    assert rst.findtext(_q(NS_WST, "RequestType")).endswith("/Issue")
    secret = rst.find(f"{_q(NS_WST, 'Entropy')}/{_q(NS_WST, 'BinarySecret')}")
    assert secret.get("Type") == TOKEN_TYPE_NONCE
    assert base64.b64decode(secret.text) == nonce

    document = elem.find(f"{_q(NS_DSS, 'InputDocuments')}/{_q(NS_DSS, 'Document')}")
    placement = inputs.find(_q(NS_DSS, "SignaturePlacement"))
    assert placement.get("WhichDocument") == document.get("ID")
    assert placement.get("CreateEnvelopedSignature") == "true"
    data = document.find(_q(NS_DSS, "Base64Data"))
    assert data.get("MimeType") == "application/pdf"
    assert base64.b64decode(data.text) == DOC.content


def test_sign_envelope_omits_empty_signature_type():
    request, _ = build_async_sign_request(DOC)
    inputs = _sign_request_elem(build_sign_envelope(request, ANONYMOUS)).find(
        _q(NS_DSS, "OptionalInputs")
    )
    assert inputs.find(_q(NS_DSS, "SignatureType")) is None


def test_seal_envelope_visible_signature():
    properties = SignatureRequestProperties(
        signer_role="CEO & founder",
        production_place="Gent",
        visible_signature=ImageVisibleSignature(page=2, x=10, y=20, custom_texts=("Line 1",)),
    )
    request = build_seal_request(DOC, None, properties)
    inputs = _sign_request_elem(build_sign_envelope(request, ANONYMOUS)).find(
        _q(NS_DSS, "OptionalInputs")
    )
    config = inputs.find(_q(NS_VS, "VisibleSignatureConfiguration"))
    assert config.findtext(_q(NS_VS, "VisibleSignaturePolicy")) == "DocumentSubmissionPolicy"

    items = {
        item.findtext(_q(NS_VS, "ItemName")): item.findtext(
            f"{_q(NS_VS, 'ItemValue')}/{_q(NS_VS, 'ItemValue')}"
        )
        for item in config.iter(_q(NS_VS, "VisibleSignatureItem"))
    }
    assert items == {
        "SignatureReason": "CEO & founder",
        "SignatureProductionPlace": "Gent",
        "SignerImage": "urn:be:e-contract:dssp:1.0:vs:si:eid-photo",
        "CustomText": "Line 1",
    }
    position = config.find(_q(NS_VS, "VisibleSignaturePosition"))
    assert position.findtext(_q(NS_VS, "PageNumber")) == "2"
    assert position.findtext(_q(NS_VS, "x")) == "10"


def test_two_step_download_envelope(signer):
    session = TwoStepSession(signer, "corr-1", "urn:alg", b"d", signature_value=b"sig")
    request = build_two_step_download_request(session)
    elem = _sign_request_elem(build_sign_envelope(request, ANONYMOUS))
    inputs = elem.find(_q(NS_DSS, "OptionalInputs"))

    assert inputs.findtext("{http://docs.oasis-open.org/dss-x/ns/localsig}CorrelationID") == (
        "corr-1"
    )
    signature = inputs.findtext(
        f"{_q(NS_DSS, 'SignatureObject')}/{_q(NS_DSS, 'Base64Signature')}"
    )
    assert base64.b64decode(signature) == b"sig"
    assert elem.find(_q(NS_DSS, "InputDocuments")) is None


def test_pending_envelope():
    session = AsyncSession("resp-1", "urn:uuid:sct-1", b"k", "<ref/>", NOW)
    binding = ChannelBinding(AuthMode.SECURE_CONVERSATION, key_id="urn:uuid:sct-1")
    envelope = build_pending_envelope(build_async_download_request(session), binding, NOW)
    body = ET.fromstring(envelope).find(_q(NS_SOAP, "Body"))
    pending = body[0]
    assert pending.tag.endswith("}PendingRequest")

    inputs = pending.find(_q(NS_DSS, "OptionalInputs"))
    response_id = [child.text for child in inputs if child.tag.endswith("}ResponseID")]
    assert response_id == ["resp-1"]
    reference = inputs.find(
        f"{_q(NS_WST, 'RequestSecurityToken')}/{_q(NS_WST, 'CancelTarget')}"
        f"/{_q(NS_WSSE, 'SecurityTokenReference')}/{_q(NS_WSSE, 'Reference')}"
    )
    assert reference.get("URI") == "urn:uuid:sct-1"


def test_verify_envelope():
    envelope = build_verify_envelope(build_verify_request(DOC), ANONYMOUS)
    body = ET.fromstring(envelope).find(_q(NS_SOAP, "Body"))
    verify = body.find(_q(NS_DSS, "VerifyRequest"))
    assert verify.get("Profile") == "urn:be:e-contract:dssp:1.0"
    texts = {child.tag.split("}")[1]: child.text for child in verify.iter() if child.text}
    assert texts["IncludeVerifier"] == "true"
    assert texts["IncludeCertificateValues"] == "true"


# ── parse_sign_response ─────────────────────────────────────────────


PENDING_XML = _envelope(
    "<dss:SignResponse>"
    + _result(RESULT_MAJOR_PENDING)
    + "<dss:OptionalOutputs>"
    "<async:ResponseID>resp-1</async:ResponseID>"
    "<wst:RequestSecurityTokenResponseCollection><wst:RequestSecurityTokenResponse>"
    "<wst:RequestedSecurityToken><wsc:SecurityContextToken>"
    "<wsc:Identifier>urn:uuid:sct-1</wsc:Identifier>"
    "</wsc:SecurityContextToken></wst:RequestedSecurityToken>"
    "<wst:RequestedUnattachedReference><wsse:SecurityTokenReference>"
    '<wsse:Reference URI="urn:uuid:sct-1"/>'
    "</wsse:SecurityTokenReference></wst:RequestedUnattachedReference>"
    "<wst:Entropy><wst:BinarySecret>"
    + base64.b64encode(b"\x02" * 32).decode()
    + "</wst:BinarySecret></wst:Entropy>"
    "<wst:KeySize>256</wst:KeySize>"
    "<wst:Lifetime><wsu:Expires "
    f'xmlns:wsu="{NS_WSU}">2030-01-01T00:00:00.000Z</wsu:Expires></wst:Lifetime>'
    "</wst:RequestSecurityTokenResponse></wst:RequestSecurityTokenResponseCollection>"
    "</dss:OptionalOutputs></dss:SignResponse>"
)


def test_parse_pending_response():
    response = parse_sign_response(PENDING_XML)
    assert response.result.major == RESULT_MAJOR_PENDING
    assert response.response_id == "resp-1"
    (token,) = response.security_token_responses
    assert token.token_identifier == "urn:uuid:sct-1"
    assert token.entropy == b"\x02" * 32
    assert token.key_size == 256
    assert token.expires == datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)
    assert "SecurityTokenReference" in token.unattached_reference
    assert "urn:uuid:sct-1" in token.unattached_reference


def test_parse_document_hash_response():
    digest = b"\x11" * 32
    xml = _envelope(
        "<dss:SignResponse>"
        + _result(RESULT_MAJOR_SUCCESS, RESULT_MINOR_DOCUMENT_HASH)
        + "<dss:OptionalOutputs>"
        "<localsig:CorrelationID>corr-1</localsig:CorrelationID>"
        "<localsig:DocumentHash>"
        '<ds:DigestMethod Algorithm="http://www.w3.org/2001/04/xmlenc#sha256"/>'
        f"<ds:DigestValue>{base64.b64encode(digest).decode()}</ds:DigestValue>"
        "</localsig:DocumentHash>"
        "</dss:OptionalOutputs></dss:SignResponse>"
    )
    response = parse_sign_response(xml)
    assert response.result.minor == RESULT_MINOR_DOCUMENT_HASH
    assert response.correlation_id == "corr-1"
    assert response.document_hash.algorithm == "http://www.w3.org/2001/04/xmlenc#sha256"
    assert response.document_hash.value == digest


def test_parse_signed_document_response():
    content = base64.b64encode(b"%PDF-signed").decode()
    xml = _envelope(
        "<dss:SignResponse>"
        + _result(RESULT_MAJOR_SUCCESS)
        + "<dss:OptionalOutputs><dss:DocumentWithSignature>"
        f'<dss:Document ID="doc-1"><dss:Base64Data MimeType="application/pdf">{content}'
        "</dss:Base64Data></dss:Document>"
        "</dss:DocumentWithSignature></dss:OptionalOutputs></dss:SignResponse>"
    )
    (document,) = parse_sign_response(xml).signed_documents
    assert document == Document("application/pdf", b"%PDF-signed", "doc-1")


def test_parse_error_result_with_message():
    xml = _envelope(
        "<dss:SignResponse>"
        + _result("urn:major:RequesterError", "urn:minor:x", "unsupported type")
        + "</dss:SignResponse>"
    )
    response = parse_sign_response(xml)
    assert response.result.major == "urn:major:RequesterError"
    assert response.result.message == "unsupported type"
    assert response.signed_documents == ()
    assert response.security_token_responses == ()


def test_parse_soap_fault():
    xml = _envelope(
        "<soap:Fault><faultcode>soap:Client</faultcode>"
        "<faultstring>Authentication failed</faultstring></soap:Fault>"
    )
    with pytest.raises(TransportError, match="Authentication failed"):
        parse_sign_response(xml)


def test_parse_invalid_xml():
    with pytest.raises(MalformedResponseError, match="Invalid XML"):
        parse_sign_response("<not xml")


def test_parse_unexpected_body():
    with pytest.raises(MalformedResponseError, match="Expected SignResponse"):
        parse_sign_response(_envelope("<dss:VerifyResponse/>"))


def test_parse_invalid_base64():
    xml = _envelope(
        "<dss:SignResponse>"
        + _result(RESULT_MAJOR_SUCCESS)
        + "<dss:OptionalOutputs><dss:DocumentWithSignature>"
        '<dss:Document><dss:Base64Data MimeType="application/pdf">!!!</dss:Base64Data>'
        "</dss:Document></dss:DocumentWithSignature></dss:OptionalOutputs></dss:SignResponse>"
    )
    with pytest.raises(MalformedResponseError, match="Base64"):
        parse_sign_response(xml)


def test_parse_invalid_key_size():
    with pytest.raises(MalformedResponseError, match="KeySize"):
        parse_sign_response(PENDING_XML.replace(">256<", ">lots<"))


# ── parse_verify_response ───────────────────────────────────────────


def _individual_report(signing_time: str, roles: list[str], location: str | None) -> str:
    role_xml = "".join(
        f"<xades:ClaimedRole>{role}</xades:ClaimedRole>" for role in roles
    )
    location_xml = f"<vr:Location>{location}</vr:Location>" if location else ""
    cert = base64.b64encode(b"certificate-der").decode()
    return (
        "<vr:IndividualReport>"
        "<vr:SignedObjectIdentifier><vr:SignedProperties><vr:SignedSignatureProperties>"
        f"<xades:SigningTime>{signing_time}</xades:SigningTime>"
        f"<vr:SignerRole><xades:ClaimedRoles>{role_xml}</xades:ClaimedRoles></vr:SignerRole>"
        f"{location_xml}"
        "</vr:SignedSignatureProperties></vr:SignedProperties></vr:SignedObjectIdentifier>"
        + _result(RESULT_MAJOR_SUCCESS)
        + "<vr:Details><vr:DetailedSignatureReport><vr:CertificatePathValidity>"
        "<vr:PathValidityDetail><vr:CertificateValidity>"
        "<vr:Subject>CN=Signer, C=BE</vr:Subject>"
        f"<vr:CertificateValue>{cert}</vr:CertificateValue>"
        "</vr:CertificateValidity><vr:CertificateValidity><vr:Subject>CN=CA</vr:Subject>"
        "</vr:CertificateValidity></vr:PathValidityDetail>"
        "</vr:CertificatePathValidity></vr:DetailedSignatureReport></vr:Details>"
        "</vr:IndividualReport>"
    )


def test_parse_verify_response_reports():
    xml = _envelope(
        "<dss:VerifyResponse>"
        + _result(RESULT_MAJOR_SUCCESS)
        + "<dss:OptionalOutputs><vr:VerificationReport>"
        + _individual_report("2014-09-23T20:11:34Z", ["Zaakvoerder"], "Denderleeuw")
        + _individual_report("2014-09-23T20:53:18Z", ["A", "B"], None)
        + "</vr:VerificationReport>"
        '<dss:TimeStampRenewal Before="2025-06-01T00:00:00Z"/>'
        "</dss:OptionalOutputs></dss:VerifyResponse>"
    )
    response = parse_verify_response(xml)

    first, second = response.individual_reports
    assert first.signing_time == "2014-09-23T20:11:34Z"
    assert first.signer_roles == ("Zaakvoerder",)
    assert first.location == "Denderleeuw"
    assert first.result.major == RESULT_MAJOR_SUCCESS
    assert first.certificate_validities[0].subject == "CN=Signer, C=BE"
    assert first.certificate_validities[0].certificate_value == b"certificate-der"
    assert first.certificate_validities[1].certificate_value is None
    assert second.signer_roles == ("A", "B")
    assert second.location is None
    assert response.time_stamp_renewal == datetime.datetime(
        2025, 6, 1, tzinfo=datetime.timezone.utc
    )


def test_parse_verify_response_without_report():
    xml = _envelope(
        "<dss:VerifyResponse>" + _result(RESULT_MAJOR_SUCCESS) + "</dss:VerifyResponse>"
    )
    response = parse_verify_response(xml)
    assert response.individual_reports is None
    assert response.time_stamp_renewal is None


def test_parse_verify_response_empty_report():
    xml = _envelope(
        "<dss:VerifyResponse>"
        + _result(RESULT_MAJOR_SUCCESS)
        + "<dss:OptionalOutputs><vr:VerificationReport/></dss:OptionalOutputs>"
        "</dss:VerifyResponse>"
    )
    assert parse_verify_response(xml).individual_reports is None


# ── send_soap ───────────────────────────────────────────────────────


def test_send_soap_headers_and_body():
    with patch("dssp.network.soap.http_post", return_value=b"<response/>") as mock_post:
        result = send_soap("https://example.com", "<envelope/>", timeout=30)

    mock_post.assert_called_once_with(
        "https://example.com",
        b"<envelope/>",
        headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": '""'},
        timeout=30,
        client_certificate=None,
    )
    assert result == "<response/>"


def test_send_soap_utf8_response():
    response_text = "<r>Brouckaert é</r>"
    with patch("dssp.network.soap.http_post", return_value=response_text.encode("utf-8")):
        assert send_soap("https://example.com", "<envelope/>") == response_text


@pytest.mark.asyncio
async def test_send_soap_async_passes_certificate():
    cert = ClientCertificate(Path("/c.pem"))

    async def fake_post(url, body, **kwargs):
        assert kwargs["client_certificate"] is cert
        return b"<ok/>"

    with patch("dssp.network.soap.http_post_async", fake_post):
        assert await send_soap_async("https://example.com", "<e/>", client_certificate=cert) == (
            "<ok/>"
        )


# ── SoapDsspChannel ─────────────────────────────────────────────────


def test_channel_requires_certificate_in_certificate_mode():
    with pytest.raises(PreconditionError, match="client certificate"):
        SoapDsspChannel("https://example.com", ChannelBinding(AuthMode.CLIENT_CERT))


def test_channel_sign_round_trip():
    channel = SoapChannelFactory("https://example.com", timeout=10).open(ANONYMOUS)
    with patch("dssp.network.soap_transport.send_soap", return_value=PENDING_XML) as mock_send:
        response = channel.sign(build_async_sign_request(DOC)[0])

    assert response.response_id == "resp-1"
    url, envelope = mock_send.call_args.args
    assert url == "https://example.com"
    assert "<dss:SignRequest" in envelope
    assert mock_send.call_args.kwargs == {"timeout": 10, "client_certificate": None}


@pytest.mark.asyncio
async def test_channel_verify_async():
    xml = _envelope(
        "<dss:VerifyResponse>" + _result(RESULT_MAJOR_SUCCESS) + "</dss:VerifyResponse>"
    )

    async def fake_send(url, envelope, **kwargs):
        assert "<dss:VerifyRequest" in envelope
        return xml

    channel = SoapDsspChannel("https://example.com", ANONYMOUS)
    with patch("dssp.network.soap_transport.send_soap_async", fake_send):
        response = await channel.verify_async(build_verify_request(DOC))
    assert response.result.major == RESULT_MAJOR_SUCCESS
