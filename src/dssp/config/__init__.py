"""
Client configuration and credential management.

Unified API for all config-related functionality. Instead of importing
from individual submodules (config, credentials), import from this
package directly.
"""

from __future__ import annotations

from ._storage import CONFIG_DIR, CONFIG_FILE

# Client configuration
from .config import (
    AppCredentials,
    ClientCertificate,
    ClientConfig,
    FindType,
    X509Lookup,
    load_client_config,
    save_client_config,
)

# Credentials management
from .credentials import (
    clear_app_password,
    get_app_password,
    resolve_app_credentials,
    save_app_password,
)

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "AppCredentials",
    "ClientCertificate",
    "ClientConfig",
    "FindType",
    "X509Lookup",
    "clear_app_password",
    "get_app_password",
    "load_client_config",
    "resolve_app_credentials",
    "save_app_password",
    "save_client_config",
]
