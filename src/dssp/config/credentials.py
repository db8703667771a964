"""
Application credential management.

The application password is kept in the system keychain (keyring),
never in config.json.  The application name and certificate settings
are stored in the config file.
"""

from __future__ import annotations

__all__ = [
    "clear_app_password",
    "get_app_password",
    "resolve_app_credentials",
    "save_app_password",
]

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

import keyring
from keyring.errors import KeyringError

from ..constants import ENV_APP_NAME, ENV_APP_PASSWORD
from ..errors import ConfigError
from .config import AppCredentials, ClientCertificate, FindType, X509Lookup

if TYPE_CHECKING:
    from ._storage import ConfigDict

_logger = logging.getLogger(__name__)

# Keyring service name for credential storage
_KEYRING_SERVICE = "dssp-client"


def get_app_password(username: str) -> str | None:
    """Look up the application password for *username* in the keychain."""
    if not username:
        return None
    try:
        return keyring.get_password(_KEYRING_SERVICE, username)
    except (KeyringError, OSError, RuntimeError) as e:
        _logger.debug("Keyring read failed: %s", e)
        return None


def save_app_password(username: str, password: str) -> None:
    """Store the application password in the keychain.

    Raises:
        ConfigError: If no usable keychain backend is available.
    """
    if not username:
        raise ConfigError("Application name is required to store a password.")
    try:
        keyring.set_password(_KEYRING_SERVICE, username, password)
    except (KeyringError, OSError, RuntimeError) as e:
        raise ConfigError(f"Cannot store application password in keychain: {e}") from e
    _logger.info("Application password saved to keychain")


def clear_app_password(username: str) -> None:
    """Delete the keychain entry for *username* (best-effort)."""
    if not username:
        return
    try:
        keyring.delete_password(_KEYRING_SERVICE, username)
        _logger.debug("Deleted keyring entry")
    except KeyringError:
        pass  # entry doesn't exist
    except (OSError, RuntimeError) as e:
        _logger.debug("Keyring delete failed: %s", e)


def _lookup_from_config(config: ConfigDict) -> X509Lookup | None:
    value = config.get("lookup_value")
    if not value:
        return None
    type_name = config.get("lookup_type", FindType.SUBJECT_NAME.value)
    try:
        find_type = FindType(type_name)
    except ValueError as e:
        raise ConfigError(f"Unknown certificate lookup type {type_name!r}") from e
    return X509Lookup(
        find_value=value,
        find_type=find_type,
        store_location=config.get("lookup_location", "CurrentUser"),
        store_name=config.get("lookup_store", "My"),
    )


def resolve_app_credentials(config: ConfigDict) -> AppCredentials:
    """
    Resolve the application credentials from env vars, config and keychain.

    Priority: env vars > config file certificate settings > saved
    application name with keychain password.

    Returns:
        AppCredentials; anonymous when nothing is configured.
    """
    env_name = os.environ.get(ENV_APP_NAME, "").strip()
    env_pass = os.environ.get(ENV_APP_PASSWORD, "")
    if env_name or env_pass:
        password = env_pass or get_app_password(env_name)
        _logger.debug("Using application credentials from environment")
        return AppCredentials(username=env_name or None, password=password or None)

    cert_file = config.get("cert_file")
    if cert_file:
        key_file = config.get("key_file")
        return AppCredentials(
            certificate=ClientCertificate(
                cert_file=Path(cert_file),
                key_file=Path(key_file) if key_file else None,
            )
        )

    lookup = _lookup_from_config(config)
    if lookup is not None:
        return AppCredentials(certificate_lookup=lookup)

    username = config.get("app_username")
    if username:
        return AppCredentials(username=username, password=get_app_password(username))

    return AppCredentials()
