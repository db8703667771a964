"""
Application-wide constants for the DSS-P client.

Timeouts, size limits, environment variable names and other magic
numbers are centralized here.  Protocol URIs live next to the code
that emits or checks them (``core.requests`` and ``core.results``).
"""

from __future__ import annotations

import importlib.metadata

try:
    __version__ = importlib.metadata.version("dssp-client")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "BYTES_PER_MB",
    "CLIENT_NONCE_SIZE",
    "DEFAULT_ADDRESS",
    "DEFAULT_TIMEOUT_SOAP",
    "DOCUMENT_ID_PREFIX",
    "ENV_APP_NAME",
    "ENV_APP_PASSWORD",
    "ENV_SIGNATURE_TYPE",
    "ENV_TIMEOUT",
    "ENV_URL",
    "MAX_RESPONSE_SIZE",
    "MAX_TIMEOUT",
    "MIN_TIMEOUT",
    "RECV_BUFFER_SIZE",
    "SECURITY_HEADER_TTL",
    "XML_PREVIEW_LENGTH",
    "__version__",
]

# ── Timeout values (seconds) ──────────────────────────────────────────

# SOAP round trip timeout (upload of large documents can be slow)
DEFAULT_TIMEOUT_SOAP = 120

MIN_TIMEOUT = 1
MAX_TIMEOUT = 3600

# Lifetime of the wsu:Timestamp in outgoing security headers
SECURITY_HEADER_TTL = 300


# ── Size limits (bytes) ───────────────────────────────────────────────

BYTES_PER_MB = 1024 * 1024

# Maximum SOAP response body (signed documents come back inline, base64)
MAX_RESPONSE_SIZE = 100 * BYTES_PER_MB

RECV_BUFFER_SIZE = 8192


# ── Protocol constants ────────────────────────────────────────────────

# Client entropy for the WS-SecureConversation handshake (bytes)
CLIENT_NONCE_SIZE = 32

# Every uploaded document gets "doc-" + a random UUID
DOCUMENT_ID_PREFIX = "doc-"

# XML preview truncation length for error messages (characters)
XML_PREVIEW_LENGTH = 300


# ── Endpoint ──────────────────────────────────────────────────────────

DEFAULT_ADDRESS = "https://www.e-contract.be/dss-ws/dss"


# ── Environment variable names ──────────────────────────────────────

ENV_URL = "DSSP_URL"
ENV_SIGNATURE_TYPE = "DSSP_SIGNATURE_TYPE"
ENV_TIMEOUT = "DSSP_TIMEOUT"
ENV_APP_NAME = "DSSP_APP_NAME"
ENV_APP_PASSWORD = "DSSP_APP_PASSWORD"
