"""
WS-Trust P_SHA1 key derivation.

The asynchronous signing flow opens a WS-SecureConversation context:
the client sends a random nonce, the service answers with its own
entropy and a key size, and both sides compute the same symmetric key::

    A(0) = seed
    A(i) = HMAC-SHA1(secret, A(i-1))
    P_SHA1(secret, seed) = HMAC-SHA1(secret, A(1) + seed) +
                           HMAC-SHA1(secret, A(2) + seed) + ...

with the client nonce as ``secret`` and the server entropy as ``seed``.
"""

from __future__ import annotations

__all__ = ["derive_key"]

import hashlib
import hmac

from ..errors import PreconditionError


def _hmac_sha1(secret: bytes, data: bytes) -> bytes:
    return hmac.new(secret, data, hashlib.sha1).digest()


def derive_key(client_nonce: bytes, server_entropy: bytes, key_size_bits: int) -> bytes:
    """
    Compute the shared session key from client and server entropy.

    Args:
        client_nonce: Entropy the client sent in its token request.
        server_entropy: Entropy returned by the service.
        key_size_bits: Requested key length; must be a positive multiple of 8.

    Returns:
        Exactly ``key_size_bits // 8`` bytes.

    Raises:
        PreconditionError: If the key size is not positive or not byte-aligned.
    """
    if key_size_bits <= 0 or key_size_bits % 8:
        raise PreconditionError(
            f"Key size must be a positive multiple of 8 bits, got {key_size_bits}"
        )

    key_len = key_size_bits // 8
    output = bytearray()
    a = server_entropy
    while len(output) < key_len:
        a = _hmac_sha1(client_nonce, a)
        output += _hmac_sha1(client_nonce, a + server_entropy)
    return bytes(output[:key_len])
