"""
Low-level config file I/O for the DSS-P client.

Handles reading, writing, and validating the on-disk config.json.
Shared by config.py and credentials.py; neither module owns it.
"""

from __future__ import annotations

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "load_config",
    "load_raw_config",
    "save_config",
]

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, TypedDict, cast

from ..constants import MAX_TIMEOUT, MIN_TIMEOUT

_logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".dssp"
CONFIG_FILE = CONFIG_DIR / "config.json"


class ConfigDict(TypedDict, total=False):
    """Type definition for the config file structure."""

    url: str
    signature_type: str
    timeout: int
    app_username: str
    cert_file: str
    key_file: str
    lookup_value: str
    lookup_type: str
    lookup_location: str
    lookup_store: str
    trust_store: str


_STR_KEYS = (
    "url",
    "signature_type",
    "app_username",
    "cert_file",
    "key_file",
    "lookup_value",
    "lookup_type",
    "lookup_location",
    "lookup_store",
    "trust_store",
)


def load_raw_config() -> dict[str, object]:
    """Load raw config dict from disk, preserving all keys.

    Used for merge-and-save operations to preserve unknown keys.
    """
    try:
        data: Any = json.loads(CONFIG_FILE.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return cast("dict[str, object]", data)
    except FileNotFoundError:
        pass
    except json.JSONDecodeError as e:
        _logger.warning("Config file corrupted, ignoring: %s", e)
    except OSError as e:
        _logger.warning("Cannot read config file: %s", e)
    return {}


def _validate_config_dict(data: dict[str, object]) -> ConfigDict:
    """Pick only known keys with correct types."""
    result: ConfigDict = {}
    for key in _STR_KEYS:
        val = data.get(key)
        if isinstance(val, str) and val:
            result[key] = val  # type: ignore[literal-required]  # dynamic key from known set
    timeout_val = data.get("timeout")
    if isinstance(timeout_val, int):
        if MIN_TIMEOUT <= timeout_val <= MAX_TIMEOUT:
            result["timeout"] = timeout_val
        else:
            _logger.warning(
                "Config timeout=%d out of range [%d, %d], ignoring",
                timeout_val,
                MIN_TIMEOUT,
                MAX_TIMEOUT,
            )
    return result


def load_config() -> ConfigDict:
    """Load config from disk, returning only known typed keys."""
    return _validate_config_dict(load_raw_config())


def save_config(config: dict[str, object]) -> None:
    """Save config to disk with restricted permissions (0600).

    Uses atomic write (temp file + rename) so an interrupted write
    never leaves a truncated file behind.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True, mode=0o700)
    content = json.dumps(config, indent=2, ensure_ascii=False) + "\n"
    fd, tmp_path = tempfile.mkstemp(dir=CONFIG_DIR, suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        fd = -1  # closed by the context manager
        if os.name != "nt":
            try:
                tmp.chmod(0o600)
            except OSError:
                _logger.exception("Failed to set restrictive permissions on %s", tmp)
        tmp.replace(CONFIG_FILE)
    except BaseException:
        if fd >= 0:
            os.close(fd)
        tmp.unlink(missing_ok=True)
        raise
