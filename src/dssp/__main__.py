"""
Entry point for `python -m dssp`.

Usage:
    python -m dssp verify document.pdf
    python -m dssp seal document.pdf -o sealed.pdf
"""

from .ui.cli import main

main()
