"""
Client configuration for the DSS-P client.

One canonical, immutable configuration structure: endpoint address,
optional signature type, application credentials, the signer used for
two-step signing, and a few transport settings.  Invariants are checked
at construction so an invalid combination never reaches the network.
"""

from __future__ import annotations

__all__ = [
    "AppCredentials",
    "ClientCertificate",
    "ClientConfig",
    "FindType",
    "X509Lookup",
    "load_client_config",
    "save_client_config",
]

import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from ..constants import (
    DEFAULT_ADDRESS,
    DEFAULT_TIMEOUT_SOAP,
    ENV_SIGNATURE_TYPE,
    ENV_TIMEOUT,
    ENV_URL,
    MAX_TIMEOUT,
    MIN_TIMEOUT,
)
from ..errors import ConfigError
from ._storage import load_config, load_raw_config, save_config

if TYPE_CHECKING:
    from ..core.signer import SignerIdentity

_logger = logging.getLogger(__name__)


# ── Application credentials ──────────────────────────────────────────


class FindType(str, enum.Enum):
    """How a client certificate is looked up in a certificate store."""

    SUBJECT_NAME = "subject_name"
    THUMBPRINT = "thumbprint"
    SERIAL_NUMBER = "serial_number"


@dataclass(frozen=True)
class ClientCertificate:
    """A client certificate on disk, presented during the TLS handshake.

    Attributes:
        cert_file: PEM file holding the certificate (and possibly the key).
        key_file: PEM file holding the private key, if separate.
        password: Password protecting the private key, if any.
    """

    cert_file: Path
    key_file: Path | None = None
    password: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class X509Lookup:
    """Descriptor for finding a client certificate in a certificate store."""

    find_value: str
    find_type: FindType = FindType.SUBJECT_NAME
    store_location: str = "CurrentUser"
    store_name: str = "My"


@dataclass(frozen=True)
class AppCredentials:
    """Credentials of the calling application.

    At most one mode is active: username/password, an inline client
    certificate, or a certificate-store lookup.  With none of them the
    application calls the service anonymously.

    Raises:
        ConfigError: If more than one mode is configured.
    """

    username: str | None = None
    password: str | None = field(default=None, repr=False)
    certificate: ClientCertificate | None = None
    certificate_lookup: X509Lookup | None = None

    def __post_init__(self) -> None:
        uses_password = bool(self.username or self.password)
        if self.certificate is not None and self.certificate_lookup is not None:
            raise ConfigError(
                "Configure either an inline client certificate or a certificate lookup, not both."
            )
        if uses_password and (self.certificate is not None or self.certificate_lookup is not None):
            raise ConfigError(
                "Username/password and client certificate authentication are mutually exclusive."
            )


# ── Client configuration ─────────────────────────────────────────────


def _validate_address(address: str) -> None:
    parsed = urlparse(address)
    if parsed.scheme == "http":
        raise ConfigError(
            "HTTP URLs are not supported. Use https:// to protect credentials in transit."
        )
    if parsed.scheme != "https":
        raise ConfigError(f"Invalid URL scheme {parsed.scheme!r}. Use https://.")
    if not parsed.hostname:
        raise ConfigError(f"Invalid URL: no hostname found in {address!r}")


@dataclass(frozen=True)
class ClientConfig:
    """Immutable configuration of a :class:`~dssp.client.DsspClient`.

    Attributes:
        address: DSS-P endpoint URL.
        signature_type: Signature type URI; None (or empty) lets the
            service choose the most appropriate type.
        application: Credentials of the calling application.
        signer: Signer identity for two-step local signing.
        timeout: Round trip timeout in seconds.
        trust_store: PEM bundle used to complete a single-certificate
            signer chain; defaults to the system CA file.
    """

    address: str = DEFAULT_ADDRESS
    signature_type: str | None = None
    application: AppCredentials = field(default_factory=AppCredentials)
    signer: SignerIdentity | None = field(default=None, repr=False)
    timeout: int = DEFAULT_TIMEOUT_SOAP
    trust_store: Path | None = None

    def __post_init__(self) -> None:
        _validate_address(self.address)
        if not MIN_TIMEOUT <= self.timeout <= MAX_TIMEOUT:
            raise ConfigError(
                f"Timeout must be within [{MIN_TIMEOUT}, {MAX_TIMEOUT}] seconds, got {self.timeout}"
            )
        if self.signature_type == "":
            object.__setattr__(self, "signature_type", None)


def _resolve_timeout(config_timeout: int | None) -> int:
    timeout_str = os.environ.get(ENV_TIMEOUT, "").strip()
    if timeout_str:
        try:
            timeout = int(timeout_str)
        except ValueError:
            _logger.warning("Invalid %s value %r, using default", ENV_TIMEOUT, timeout_str)
            return DEFAULT_TIMEOUT_SOAP
        if timeout < MIN_TIMEOUT or timeout > MAX_TIMEOUT:
            _logger.warning(
                "%s=%d out of range [%d, %d], using default",
                ENV_TIMEOUT,
                timeout,
                MIN_TIMEOUT,
                MAX_TIMEOUT,
            )
            return DEFAULT_TIMEOUT_SOAP
        return timeout
    if config_timeout is not None:
        return config_timeout
    return DEFAULT_TIMEOUT_SOAP


def load_client_config(signer: SignerIdentity | None = None) -> ClientConfig:
    """
    Build a ClientConfig from the environment and the saved config file.

    Priority: env vars > config file > built-in default endpoint.

    Args:
        signer: Signer identity for two-step signing (never persisted).

    Raises:
        ConfigError: If the resolved settings are invalid.
    """
    from .credentials import resolve_app_credentials

    config = load_config()

    address = os.environ.get(ENV_URL, "").strip() or config.get("url") or DEFAULT_ADDRESS
    signature_type = (
        os.environ.get(ENV_SIGNATURE_TYPE, "").strip() or config.get("signature_type") or None
    )
    trust_store = config.get("trust_store")

    return ClientConfig(
        address=address,
        signature_type=signature_type,
        application=resolve_app_credentials(config),
        signer=signer,
        timeout=_resolve_timeout(config.get("timeout")),
        trust_store=Path(trust_store) if trust_store else None,
    )


def save_client_config(config: ClientConfig) -> None:
    """
    Persist the non-secret settings of *config*.

    The application password is not written; store it with
    :func:`~dssp.config.credentials.save_app_password`.  Certificate
    and lookup settings replace whatever was saved before.
    """
    raw = load_raw_config()
    raw["url"] = config.address
    raw["timeout"] = config.timeout
    if config.signature_type:
        raw["signature_type"] = config.signature_type
    else:
        raw.pop("signature_type", None)
    if config.trust_store is not None:
        raw["trust_store"] = str(config.trust_store)
    else:
        raw.pop("trust_store", None)

    for key in (
        "app_username",
        "cert_file",
        "key_file",
        "lookup_value",
        "lookup_type",
        "lookup_location",
        "lookup_store",
    ):
        raw.pop(key, None)

    app = config.application
    if app.username:
        raw["app_username"] = app.username
    if app.certificate is not None:
        raw["cert_file"] = str(app.certificate.cert_file)
        if app.certificate.key_file is not None:
            raw["key_file"] = str(app.certificate.key_file)
    if app.certificate_lookup is not None:
        lookup = app.certificate_lookup
        raw["lookup_value"] = lookup.find_value
        raw["lookup_type"] = lookup.find_type.value
        raw["lookup_location"] = lookup.store_location
        raw["lookup_store"] = lookup.store_name

    save_config(raw)
    _logger.debug("Saved client configuration for %s", config.address)
