"""Shared test fixtures for the DSS-P client test suite."""

from __future__ import annotations

import datetime
from unittest.mock import patch

import pytest
from asn1crypto import x509 as asn1_x509
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from dssp.core.messages import (
    CertificateValidity,
    Document,
    DocumentHash,
    IndividualReport,
    Result,
    SecurityTokenResponse,
    SignResponse,
    VerifyResponse,
)
from dssp.core.results import (
    RESULT_MAJOR_PENDING,
    RESULT_MAJOR_SUCCESS,
    RESULT_MINOR_DOCUMENT_HASH,
)

SHA256_URI = "http://www.w3.org/2001/04/xmlenc#sha256"

# Subject of the test signer, listed in DER order (least specific first)
SIGNER_NAME = x509.Name(
    [
        x509.NameAttribute(NameOID.COUNTRY_NAME, "BE"),
        x509.NameAttribute(NameOID.COMMON_NAME, "Bryan Brouckaert (Signature)"),
        x509.NameAttribute(NameOID.SURNAME, "Brouckaert"),
        x509.NameAttribute(NameOID.GIVEN_NAME, "Bryan Eduard"),
        x509.NameAttribute(NameOID.SERIAL_NUMBER, "79021802145"),
    ]
)
SIGNER_SUBJECT_SHORT = (
    "SERIALNUMBER=79021802145, G=Bryan Eduard, SN=Brouckaert, "
    "CN=Bryan Brouckaert (Signature), C=BE"
)
SIGNER_SUBJECT_LONG = (
    "SERIALNUMBER=79021802145, GIVENNAME=Bryan Eduard, SURNAME=Brouckaert, "
    "CN=Bryan Brouckaert (Signature), C=BE"
)


def _name(cn: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "BE"),
            x509.NameAttribute(NameOID.COMMON_NAME, cn),
        ]
    )


def make_certificate(
    subject: x509.Name,
    key: rsa.RSAPrivateKey,
    *,
    issuer: x509.Name | None = None,
    issuer_key: rsa.RSAPrivateKey | None = None,
    ca: bool = False,
) -> x509.Certificate:
    """Issue a certificate for *key*; self-signed unless an issuer is given."""
    now = datetime.datetime.now(datetime.timezone.utc)
    signing_key = issuer_key or key
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer or subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(signing_key.public_key()),
            critical=False,
        )
    )
    return builder.sign(signing_key, hashes.SHA256())


def to_asn1(cert: x509.Certificate) -> asn1_x509.Certificate:
    return asn1_x509.Certificate.load(cert.public_bytes(serialization.Encoding.DER))


def to_pem(*certs: x509.Certificate) -> bytes:
    return b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in certs)


# ── Keys and certificates ─────────────────────────────────────────────


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def pki(rsa_key, other_rsa_key):
    """Root CA, intermediate CA and a leaf signer issued under them."""
    root_name = _name("Test Root CA")
    inter_name = _name("Test Citizen CA")
    root = make_certificate(root_name, other_rsa_key, ca=True)
    inter_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    inter = make_certificate(
        inter_name, inter_key, issuer=root_name, issuer_key=other_rsa_key, ca=True
    )
    leaf = make_certificate(SIGNER_NAME, rsa_key, issuer=inter_name, issuer_key=inter_key)
    return {"root": root, "intermediate": inter, "leaf": leaf}


@pytest.fixture
def signer(pki, rsa_key):
    """Signer holding only its own (non-self-issued) certificate."""
    from dssp.core.signer import SignerIdentity

    return SignerIdentity(chain=(to_asn1(pki["leaf"]),), private_key=rsa_key)


# ── Canned responses ──────────────────────────────────────────────────


def success_sign_response(content: bytes = b"%PDF-signed", count: int = 1) -> SignResponse:
    return SignResponse(
        result=Result(RESULT_MAJOR_SUCCESS),
        signed_documents=tuple(
            Document("application/pdf", content, f"doc-{i}") for i in range(count)
        ),
    )


def pending_sign_response(entropy: bytes = b"\x02" * 32) -> SignResponse:
    return SignResponse(
        result=Result(RESULT_MAJOR_PENDING),
        response_id="response-1",
        security_token_responses=(
            SecurityTokenResponse(
                token_identifier="urn:uuid:sct-1",
                entropy=entropy,
                key_size=256,
                unattached_reference="<wsse:SecurityTokenReference/>",
                expires=datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc),
            ),
        ),
    )


def document_hash_response(digest: bytes = b"\x11" * 32) -> SignResponse:
    return SignResponse(
        result=Result(RESULT_MAJOR_SUCCESS, RESULT_MINOR_DOCUMENT_HASH),
        correlation_id="corr-1",
        document_hash=DocumentHash(SHA256_URI, digest),
    )


def verify_response(*reports: IndividualReport, renewal=None) -> VerifyResponse:
    return VerifyResponse(
        result=Result(RESULT_MAJOR_SUCCESS),
        individual_reports=reports or None,
        time_stamp_renewal=renewal,
    )


def individual_report(
    cert_der: bytes,
    *,
    signing_time: str = "2014-09-23T20:11:34Z",
    roles: tuple[str, ...] | None = ("Zaakvoerder",),
    location: str | None = "Denderleeuw",
    major: str = RESULT_MAJOR_SUCCESS,
) -> IndividualReport:
    return IndividualReport(
        result=Result(major),
        signing_time=signing_time,
        signer_roles=roles,
        location=location,
        certificate_validities=(CertificateValidity(SIGNER_SUBJECT_LONG, cert_der),),
    )


# ── Fake channels ─────────────────────────────────────────────────────


class FakeChannel:
    """Channel that records requests and replays canned responses."""

    def __init__(self, factory, binding):
        self.factory = factory
        self.binding = binding

    def _reply(self, kind, request):
        self.factory.calls.append((kind, self.binding, request))
        response = self.factory.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def sign(self, request):
        return self._reply("sign", request)

    def pending_request(self, request):
        return self._reply("pending", request)

    def verify(self, request):
        return self._reply("verify", request)

    async def sign_async(self, request):
        return self._reply("sign", request)

    async def pending_request_async(self, request):
        return self._reply("pending", request)

    async def verify_async(self, request):
        return self._reply("verify", request)


class FakeChannelFactory:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.opened = []

    def open(self, binding):
        self.opened.append(binding)
        return FakeChannel(self, binding)


@pytest.fixture
def fake_factory():
    return FakeChannelFactory()


# ── Config isolation ──────────────────────────────────────────────────


class FakeKeyring:
    """In-memory keyring backend."""

    def __init__(self):
        self.store = {}

    def get_password(self, service, user):
        return self.store.get((service, user))

    def set_password(self, service, user, password):
        self.store[(service, user)] = password

    def delete_password(self, service, user):
        from keyring.errors import PasswordDeleteError

        if (service, user) not in self.store:
            raise PasswordDeleteError("not found")
        del self.store[(service, user)]


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    """Redirect config to a temp directory and use an in-memory keyring."""
    for var in (
        "DSSP_URL",
        "DSSP_SIGNATURE_TYPE",
        "DSSP_TIMEOUT",
        "DSSP_APP_NAME",
        "DSSP_APP_PASSWORD",
    ):
        monkeypatch.delenv(var, raising=False)
    config_file = tmp_path / "config.json"
    fake = FakeKeyring()
    with (
        patch("dssp.config._storage.CONFIG_DIR", tmp_path),
        patch("dssp.config._storage.CONFIG_FILE", config_file),
        patch("dssp.config.credentials.keyring", fake),
    ):
        yield tmp_path, config_file, fake
