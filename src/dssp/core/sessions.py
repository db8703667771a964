"""
Session state carried between the upload and download steps.

Sessions are immutable values: every field comes from a validated
service response (plus, for two-step, the caller's signer identity).
Persisting a session between the two steps is up to the caller.
"""

from __future__ import annotations

__all__ = ["AsyncSession", "TwoStepSession"]

import dataclasses
import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..errors import PreconditionError
from .signer import sign_digest

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

    from .signer import SignerIdentity


@dataclass(frozen=True)
class AsyncSession:
    """State of an asynchronous (browser) signing session.

    Attributes:
        server_id: Response id the service assigned to the upload.
        key_id: Identifier of the secure conversation token.
        key_value: Derived session key.
        key_reference: Serialized unattached token reference.
        expires_on: Expiry of the secure conversation token.
    """

    server_id: str
    key_id: str
    key_value: bytes = field(repr=False)
    key_reference: str
    expires_on: datetime.datetime

    @property
    def expired(self) -> bool:
        expires = self.expires_on
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=datetime.timezone.utc)
        return expires <= datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class TwoStepSession:
    """State of a two-step (local signature) session."""

    signer: SignerIdentity = field(repr=False)
    correlation_id: str
    digest_algorithm: str
    digest_value: bytes = field(repr=False)
    signature_value: bytes | None = field(default=None, repr=False)

    @property
    def signed(self) -> bool:
        return self.signature_value is not None

    def sign(self, private_key: PrivateKeyTypes | None = None) -> TwoStepSession:
        """
        Sign the service-computed digest locally.

        Args:
            private_key: Key to sign with; defaults to the signer's key.

        Returns:
            A new session carrying the signature value.

        Raises:
            PreconditionError: If no private key is available.
        """
        key = private_key if private_key is not None else self.signer.private_key
        if key is None:
            raise PreconditionError("No private key available to sign the document digest")
        signature = sign_digest(key, self.digest_algorithm, self.digest_value)
        return dataclasses.replace(self, signature_value=signature)
