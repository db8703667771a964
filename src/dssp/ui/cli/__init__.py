"""
Command-line interface for the DSS-P client.

Argument parsing, dispatch, and the configuration subcommands.
Document commands live in ``verify`` and ``seal``.
"""

from __future__ import annotations

import argparse
import getpass
import sys

from ...config import (
    AppCredentials,
    ClientConfig,
    clear_app_password,
    load_client_config,
    save_app_password,
    save_client_config,
)
from ...constants import __version__
from ...errors import DsspError
from .seal import cmd_seal
from .verify import cmd_verify


def _cmd_setup(args: argparse.Namespace) -> None:
    """Save the endpoint and application name; the password goes to the keychain."""
    try:
        current = load_client_config()
        application = current.application
        if args.app_name:
            application = AppCredentials(username=args.app_name)
        config = ClientConfig(
            address=args.url or current.address,
            signature_type=(
                args.signature_type
                if args.signature_type is not None
                else current.signature_type
            ),
            application=application,
            timeout=args.timeout or current.timeout,
            trust_store=current.trust_store,
        )
        save_client_config(config)
        if args.app_name:
            password = getpass.getpass(f"Password for application {args.app_name}: ")
            if password:
                save_app_password(args.app_name, password)
    except DsspError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Endpoint: {config.address}")
    if config.application.username:
        print(f"Application: {config.application.username}")


def _cmd_logout() -> None:
    """Remove the application password from the keychain, keeping the config."""
    try:
        config = load_client_config()
    except DsspError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    username = config.application.username
    if not username:
        print("No application name configured.")
        return
    clear_app_password(username)
    print(f"Removed keychain password for {username}.")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="dssp",
        description="Client for DSS-P digital signature services.",
        epilog=(
            "Environment variables:\n"
            "  DSSP_URL             Service endpoint (default: e-contract.be)\n"
            "  DSSP_SIGNATURE_TYPE  Signature type URI (default: chosen by the service)\n"
            "  DSSP_TIMEOUT         Timeout in seconds (default: 120)\n"
            "  DSSP_APP_NAME        Application name\n"
            "  DSSP_APP_PASSWORD    Application password\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"dssp {__version__}")

    sub = parser.add_subparsers(dest="command", help="Available commands")

    # verify
    p_verify = sub.add_parser("verify", help="Verify the signatures of a document")
    p_verify.add_argument("file", help="Signed document")
    p_verify.add_argument("--mime-type", default=None, help="MIME type (default: guessed)")

    # seal
    p_seal = sub.add_parser("seal", help="Seal a document with the application's key")
    p_seal.add_argument("file", help="Document to seal")
    p_seal.add_argument("-o", "--output", help="Output file path (default: <name>-sealed.<ext>)")
    p_seal.add_argument("--mime-type", default=None, help="MIME type (default: guessed)")
    p_seal.add_argument("--role", default=None, help="Signer role shown on the seal")
    p_seal.add_argument("--place", default=None, help="Signature production place")

    # setup
    p_setup = sub.add_parser("setup", help="Save endpoint and application credentials")
    p_setup.add_argument("--url", default=None, help="Service endpoint URL")
    p_setup.add_argument("--app-name", default=None, help="Application name (prompts password)")
    p_setup.add_argument("--signature-type", default=None, help="Signature type URI")
    p_setup.add_argument("--timeout", type=int, default=None, help="Timeout in seconds")

    # logout
    sub.add_parser("logout", help="Remove the application password from the keychain")

    args = parser.parse_args()

    if args.command == "verify":
        cmd_verify(args)
    elif args.command == "seal":
        cmd_seal(args)
    elif args.command == "setup":
        _cmd_setup(args)
    elif args.command == "logout":
        _cmd_logout()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
