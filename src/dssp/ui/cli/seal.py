"""Seal command."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ...client import DsspClient
from ...config import load_client_config
from ...core.messages import Document, SignatureRequestProperties
from ...errors import DsspError

if TYPE_CHECKING:
    import argparse


def default_output_path(path: Path) -> Path:
    """``report.pdf`` -> ``report-sealed.pdf``."""
    return path.with_name(f"{path.stem}-sealed{path.suffix}")


def cmd_seal(args: argparse.Namespace) -> None:
    """Seal a document with the configured application credentials."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: {path} not found", file=sys.stderr)
        sys.exit(1)
    output = Path(args.output) if args.output else default_output_path(path)

    try:
        document = Document.from_file(path, args.mime_type)
    except OSError as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
        sys.exit(1)

    properties = SignatureRequestProperties(signer_role=args.role, production_place=args.place)
    print(f"Sealing {path.name}...")
    try:
        sealed = DsspClient(load_client_config()).seal(document, properties)
    except DsspError as e:
        print(f"  ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        output.write_bytes(sealed.content)
    except OSError as e:
        print(f"Error: cannot write {output}: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"  Saved: {output}")
