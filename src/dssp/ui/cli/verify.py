"""Signature verification command."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ...client import DsspClient
from ...config import load_client_config
from ...core.messages import Document
from ...core.report import UNBOUNDED
from ...errors import DsspError

if TYPE_CHECKING:
    import argparse

    from ...core.report import SecurityInfo


def _print_security_info(info: SecurityInfo) -> None:
    count = len(info.signatures)
    for i, sig in enumerate(info.signatures):
        indent = "    " if count > 1 else "  "
        if count > 1:
            print(f"\n  Signature {i + 1}/{count}:")
        print(f"{indent}Signer:  {sig.certificate_subject}")
        print(f"{indent}Signed:  {sig.signing_time.isoformat(sep=' ')}")
        if sig.signer_role is not None:
            print(f"{indent}Role:    {sig.signer_role}")
        if sig.production_place is not None:
            print(f"{indent}Place:   {sig.production_place}")
    if info.time_stamp_validity != UNBOUNDED:
        print(f"\n  Time stamps valid until {info.time_stamp_validity.isoformat(sep=' ')}")


def cmd_verify(args: argparse.Namespace) -> None:
    """Verify a document through the service and print its signatures."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: {path} not found", file=sys.stderr)
        sys.exit(1)

    try:
        document = Document.from_file(path, args.mime_type)
    except OSError as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Verifying {path.name}...")
    try:
        info = DsspClient(load_client_config()).verify(document)
    except DsspError as e:
        print(f"  ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    if info is None:
        print("  No signature found.")
        return
    _print_security_info(info)
