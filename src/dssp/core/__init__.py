"""Protocol session engine: request building, result processing, key derivation."""

from __future__ import annotations

__all__: list[str] = []
