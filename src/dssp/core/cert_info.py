# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false, reportUnknownArgumentType=false
"""
X.509 certificate helpers.

Decoding of DER certificates returned in verification reports, subject
rendering in the short-alias notation, chain completion over a trust
store, and client certificate lookup in a directory-backed certificate
store.
"""

from __future__ import annotations

__all__ = [
    "CertificateStore",
    "ChainBuilder",
    "DirectoryCertificateStore",
    "TrustStoreChainBuilder",
    "decode_certificate",
    "format_subject",
    "load_pem_certificates",
]

import logging
import ssl
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from asn1crypto import pem
from asn1crypto import x509 as asn1_x509
from pyhanko_certvalidator.errors import PathBuildingError
from pyhanko_certvalidator.registry import CertificateRegistry, PathBuilder, SimpleTrustManager

from ..config import ClientCertificate, FindType
from ..errors import CertificateError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ..config import X509Lookup

_logger = logging.getLogger(__name__)

# Short aliases for subject attributes, by OID
_OID_ALIASES = {
    "2.5.4.3": "CN",
    "2.5.4.6": "C",
    "2.5.4.7": "L",
    "2.5.4.8": "S",
    "2.5.4.9": "STREET",
    "2.5.4.10": "O",
    "2.5.4.11": "OU",
    "2.5.4.12": "T",
    "2.5.4.4": "SN",
    "2.5.4.42": "G",
    "2.5.4.43": "I",
    "2.5.4.5": "SERIALNUMBER",
    "1.2.840.113549.1.9.1": "E",
    "0.9.2342.19200300.100.1.25": "DC",
    "2.5.4.17": "PostalCode",
}

# Characters that force a value into double quotes
_QUOTE_CHARS = frozenset(',+="\n<>#;')

_DEFAULT_STORE_ROOT = Path.home() / ".dssp" / "certs"


# ── Decoding and rendering ────────────────────────────────────────────


def decode_certificate(der: bytes) -> asn1_x509.Certificate:
    """
    Decode a DER-encoded X.509 certificate.

    Raises:
        CertificateError: If the bytes are not a certificate.
    """
    try:
        cert = asn1_x509.Certificate.load(der)
        # force a full parse so corrupt input fails here, not on first use
        _ = cert.subject.native
    except (ValueError, TypeError, OSError) as e:
        raise CertificateError(f"Failed to parse X.509 certificate: {e}") from e
    return cert


def _format_value(value: object) -> str:
    text = value if isinstance(value, str) else str(value)
    if text and (
        any(ch in _QUOTE_CHARS for ch in text) or text[0] == " " or text[-1] == " "
    ):
        return '"' + text.replace('"', '""') + '"'
    return text


def format_subject(name: asn1_x509.Name) -> str:
    """
    Render a distinguished name in short-alias notation.

    RDNs are listed most specific first (the reverse of their DER order)
    and separated by ``", "``; attributes of a multi-valued RDN are joined
    with ``" + "``.  Unknown attribute types render as ``OID.<dotted>``.

    Example::

        SERIALNUMBER=79021802145, G=Bryan Eduard, SN=Brouckaert, CN=..., C=BE
    """
    parts = []
    for rdn in reversed(list(name.chosen)):
        attrs = []
        for attr in rdn:
            oid = attr["type"].dotted
            alias = _OID_ALIASES.get(oid, f"OID.{oid}")
            attrs.append(f"{alias}={_format_value(attr['value'].native)}")
        parts.append(" + ".join(attrs))
    return ", ".join(parts)


def load_pem_certificates(data: bytes) -> list[asn1_x509.Certificate]:
    """Load every CERTIFICATE block of a PEM bundle (DER input is accepted too)."""
    if not pem.detect(data):
        return [decode_certificate(data)]
    certs = []
    try:
        for object_type, _headers, der in pem.unarmor(data, multiple=True):
            if object_type == "CERTIFICATE":
                certs.append(decode_certificate(der))
    except ValueError as e:
        raise CertificateError(f"Invalid PEM data: {e}") from e
    return certs


# ── Chain building ────────────────────────────────────────────────────


class ChainBuilder(Protocol):
    """Completes a single signer certificate into a leaf-first chain."""

    def build_chain(self, leaf: asn1_x509.Certificate) -> list[asn1_x509.Certificate]: ...


class TrustStoreChainBuilder:
    """
    Builds signer chains over a set of CA certificates.

    Self-issued certificates act as trust roots, the rest as intermediates.
    Paths come from :class:`pyhanko_certvalidator.registry.PathBuilder`.
    When no path reaches a root, every CA certificate is accepted as an
    anchor, so the chain ends at the last issuer that could be resolved.
    """

    def __init__(self, ca_certs: Iterable[asn1_x509.Certificate] = ()) -> None:
        certs = list(ca_certs)
        roots = [cert for cert in certs if cert.self_issued]
        registry = CertificateRegistry.build(cert for cert in certs if not cert.self_issued)
        self._builder = PathBuilder(SimpleTrustManager.build(trust_roots=roots), registry)
        self._partial_builder = PathBuilder(
            SimpleTrustManager.build(trust_roots=certs), CertificateRegistry.build(certs)
        )
        _logger.debug(
            "Chain builder loaded %d CA certificate(s), %d root(s)", len(certs), len(roots)
        )

    @classmethod
    def from_pem_file(cls, path: str | Path) -> TrustStoreChainBuilder:
        """
        Load CA certificates from a PEM bundle.

        Raises:
            CertificateError: If the file cannot be read or parsed.
        """
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise CertificateError(f"Cannot read trust store {path}: {e}") from e
        return cls(load_pem_certificates(data))

    @classmethod
    def from_system(cls) -> TrustStoreChainBuilder:
        """Load the interpreter's default OpenSSL CA bundle, if there is one."""
        paths = ssl.get_default_verify_paths()
        for candidate in (paths.cafile, paths.openssl_cafile):
            if candidate and Path(candidate).is_file():
                return cls.from_pem_file(candidate)
        _logger.warning("No system CA bundle found; signer chains cannot be completed")
        return cls()

    def build_chain(self, leaf: asn1_x509.Certificate) -> list[asn1_x509.Certificate]:
        """
        Leaf-first chain for *leaf*.

        Blocking: path building runs its own event loop, so call this from
        a worker thread inside async code.
        """
        if leaf.self_issued:
            return [leaf]
        for builder in (self._builder, self._partial_builder):
            try:
                paths = builder.build_paths(leaf)
            except PathBuildingError as e:
                _logger.debug("No validation path: %s", e)
                continue
            if paths:
                # paths run from the anchor down to the leaf
                return [cert for cert in reversed(list(paths[0])) if cert is not None]
        _logger.warning("No issuer found for %s", leaf.subject.human_friendly)
        return [leaf]


# ── Certificate store lookup ──────────────────────────────────────────


class CertificateStore(Protocol):
    """Resolves a certificate lookup descriptor to a client certificate."""

    def find_certificate(self, lookup: X509Lookup) -> ClientCertificate: ...


def _matches(cert: asn1_x509.Certificate, lookup: X509Lookup) -> bool:
    value = lookup.find_value.strip()
    if lookup.find_type is FindType.THUMBPRINT:
        wanted = value.replace(" ", "").replace(":", "").lower()
        return cert.sha1.hex() == wanted
    if lookup.find_type is FindType.SERIAL_NUMBER:
        try:
            return cert.serial_number == int(value.replace(" ", ""), 16)
        except ValueError:
            return False
    return value.lower() in format_subject(cert.subject).lower()


class DirectoryCertificateStore:
    """
    Certificate store laid out as ``<root>/<location>/<store>/*.pem``.

    Each PEM file holds a certificate and optionally its key; a sibling
    ``.key`` file with the same stem is used as the key file when present.
    """

    def __init__(self, root: str | Path = _DEFAULT_STORE_ROOT) -> None:
        self.root = Path(root)

    def _candidates(self, lookup: X509Lookup) -> Iterator[tuple[Path, asn1_x509.Certificate]]:
        directory = self.root / lookup.store_location / lookup.store_name
        if not directory.is_dir():
            return
        for path in sorted(directory.glob("*.pem")):
            try:
                certs = load_pem_certificates(path.read_bytes())
            except (OSError, CertificateError) as e:
                _logger.warning("Skipping unreadable certificate file %s: %s", path, e)
                continue
            if certs:
                yield path, certs[0]

    def find_certificate(self, lookup: X509Lookup) -> ClientCertificate:
        """
        Find the first certificate matching *lookup*.

        Raises:
            CertificateError: If no certificate matches.
        """
        for path, cert in self._candidates(lookup):
            if _matches(cert, lookup):
                key_file = path.with_suffix(".key")
                _logger.debug("Certificate lookup matched %s", path.name)
                return ClientCertificate(
                    cert_file=path,
                    key_file=key_file if key_file.is_file() else None,
                )
        raise CertificateError(
            f"No certificate matching {lookup.find_type.value}={lookup.find_value!r} "
            f"in {lookup.store_location}/{lookup.store_name}"
        )
