"""
Signer identity for two-step local signing.

The service computes the digest of the prepared document; the client
signs that digest with a private key it never sends anywhere.  This
module holds the signer's certificate chain plus key and performs the
local raw-digest signature.
"""

from __future__ import annotations

__all__ = ["SignerIdentity", "sign_digest"]

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.hazmat.primitives.serialization import pkcs12

from ..errors import CertificateError, PreconditionError
from .cert_info import decode_certificate

if TYPE_CHECKING:
    from asn1crypto import x509 as asn1_x509
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

_logger = logging.getLogger(__name__)

# XML digest method URIs used by the service for the document hash
_DIGEST_ALGORITHMS: dict[str, hashes.HashAlgorithm] = {
    "http://www.w3.org/2000/09/xmldsig#sha1": hashes.SHA1(),
    "http://www.w3.org/2001/04/xmldsig-more#sha224": hashes.SHA224(),
    "http://www.w3.org/2001/04/xmlenc#sha256": hashes.SHA256(),
    "http://www.w3.org/2001/04/xmldsig-more#sha384": hashes.SHA384(),
    "http://www.w3.org/2001/04/xmlenc#sha512": hashes.SHA512(),
}


@dataclass(frozen=True)
class SignerIdentity:
    """A signer's certificate chain and (optionally) private key.

    Attributes:
        chain: Certificates, leaf first.  A single non-self-issued
            certificate is completed against the trust store when the
            two-step request is built.
        private_key: Key matching the leaf certificate.
    """

    chain: tuple[asn1_x509.Certificate, ...]
    private_key: PrivateKeyTypes | None = field(default=None, repr=False)

    @property
    def leaf(self) -> asn1_x509.Certificate | None:
        return self.chain[0] if self.chain else None

    @property
    def has_private_key(self) -> bool:
        """True only when a private key is present and matches the leaf."""
        leaf = self.leaf
        if self.private_key is None or leaf is None:
            return False
        public_der = self.private_key.public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return public_der == leaf.public_key.dump()

    @classmethod
    def from_pkcs12(cls, data: bytes, password: str | bytes | None = None) -> SignerIdentity:
        """
        Load a signer from a PKCS#12 (.p12/.pfx) bundle.

        Raises:
            CertificateError: If the bundle cannot be decrypted or holds
                no certificate.
        """
        if isinstance(password, str):
            password = password.encode("utf-8")
        try:
            key, cert, extra = pkcs12.load_key_and_certificates(data, password)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CertificateError(f"Cannot load PKCS#12 bundle: {e}") from e
        if cert is None:
            raise CertificateError("PKCS#12 bundle contains no certificate")

        chain = [cert, *extra]
        return cls(
            chain=tuple(
                decode_certificate(c.public_bytes(serialization.Encoding.DER)) for c in chain
            ),
            private_key=key,
        )


def sign_digest(private_key: PrivateKeyTypes, digest_algorithm: str, digest_value: bytes) -> bytes:
    """
    Sign a precomputed digest with RSA PKCS#1 v1.5.

    Args:
        private_key: The signer's RSA private key.
        digest_algorithm: XML digest method URI of the document hash.
        digest_value: The raw digest returned by the service.

    Raises:
        PreconditionError: For non-RSA keys, unknown digest algorithms, or
            a digest of the wrong length.
    """
    hash_algo = _DIGEST_ALGORITHMS.get(digest_algorithm)
    if hash_algo is None:
        raise PreconditionError(f"Unsupported digest algorithm: {digest_algorithm}")
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise PreconditionError(
            f"Only RSA signer keys are supported, got {type(private_key).__name__}"
        )
    if len(digest_value) != hash_algo.digest_size:
        raise PreconditionError(
            f"Digest is {len(digest_value)} bytes, expected {hash_algo.digest_size} "
            f"for {hash_algo.name}"
        )
    _logger.debug("Signing %s digest locally", hash_algo.name)
    return private_key.sign(digest_value, padding.PKCS1v15(), Prehashed(hash_algo))
