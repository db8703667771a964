"""
dssp -- Python client for DSS-P digital signature services.

Signs, seals and verifies documents through the e-contract DSS-P
protocol (OASIS DSS over SOAP with WS-Trust secure conversation).
"""

from __future__ import annotations

from .client import DsspClient
from .config import (
    AppCredentials,
    ClientCertificate,
    ClientConfig,
    FindType,
    X509Lookup,
    load_client_config,
)
from .constants import __version__
from .core.derived_key import derive_key
from .core.messages import (
    EID_PHOTO_URI,
    Document,
    ImageVisibleSignature,
    SignatureRequestProperties,
)
from .core.report import UNBOUNDED, SecurityInfo, SignatureInfo
from .core.sessions import AsyncSession, TwoStepSession
from .core.signer import SignerIdentity
from .errors import (
    CertificateError,
    ConfigError,
    DsspError,
    MalformedResponseError,
    PreconditionError,
    ProtocolError,
    TransportError,
)

__all__ = [
    "EID_PHOTO_URI",
    "UNBOUNDED",
    "AppCredentials",
    "AsyncSession",
    "CertificateError",
    "ClientCertificate",
    "ClientConfig",
    "ConfigError",
    "Document",
    "DsspClient",
    "DsspError",
    "FindType",
    "ImageVisibleSignature",
    "MalformedResponseError",
    "PreconditionError",
    "ProtocolError",
    "SecurityInfo",
    "SignatureInfo",
    "SignatureRequestProperties",
    "SignerIdentity",
    "TransportError",
    "TwoStepSession",
    "X509Lookup",
    "__version__",
    "derive_key",
    "load_client_config",
]
