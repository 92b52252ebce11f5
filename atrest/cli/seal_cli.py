#!/usr/bin/env python3
"""atrest command-line tool.

Encrypts and decrypts configuration secrets with the key configured in the
environment (ENCRYPTION_KEY), and generates new keys.

Usage:
    atrest keygen --format base64
    atrest encrypt "postgres://user:pass@db/app"
    echo -n "secret" | atrest encrypt
    atrest decrypt '{"ciphertext": "...", "tag": "...", "nonce": "..."}'
    atrest decrypt --ciphertext ... --tag ... --nonce ...

Exit Codes:
    0 - Success
    1 - Encryption or decryption failed
    2 - Configuration error
    3 - Invalid arguments
"""

import argparse
import json
import sys

from pydantic import ValidationError

from atrest.config import get_settings
from atrest.core.cipher_engine import (
    CipherEngine,
    DecryptionError,
    EncryptedEnvelope,
    EncryptionError,
)
from atrest.core.key_resolver import ConfigurationError, generate_key_material
from atrest.core.logging import get_logger, setup_logging

EXIT_OK = 0
EXIT_CRYPTO_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_INVALID_ARGS = 3

logger = get_logger("atrest.cli")


def _read_input(value: str | None) -> str:
    """Positional argument if given, stdin otherwise."""
    if value is not None:
        return value
    return sys.stdin.read()


def _build_engine() -> CipherEngine:
    return CipherEngine.from_settings(get_settings(), logger=logger)


def cmd_keygen(args: argparse.Namespace) -> int:
    """Print a fresh 32-byte key."""
    print(generate_key_material(args.format, CipherEngine.KEY_SIZE))
    return EXIT_OK


def cmd_encrypt(args: argparse.Namespace) -> int:
    """Encrypt text and print the envelope as JSON."""
    try:
        engine = _build_engine()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        envelope = engine.encrypt(_read_input(args.text))
    except EncryptionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CRYPTO_FAILURE

    print(json.dumps(envelope.to_dict()))
    return EXIT_OK


def cmd_decrypt(args: argparse.Namespace) -> int:
    """Decrypt an envelope given as JSON or as separate fields."""
    fields = (args.ciphertext, args.tag, args.nonce)
    if any(f is not None for f in fields):
        if args.envelope is not None or any(f is None for f in fields):
            print(
                "Error: pass either an envelope or all of --ciphertext, --tag and --nonce",
                file=sys.stderr,
            )
            return EXIT_INVALID_ARGS
        envelope_data = {"ciphertext": args.ciphertext, "tag": args.tag, "nonce": args.nonce}
    else:
        try:
            envelope_data = json.loads(_read_input(args.envelope))
        except json.JSONDecodeError:
            print("Error: envelope is not valid JSON", file=sys.stderr)
            return EXIT_INVALID_ARGS

    try:
        engine = _build_engine()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        envelope = EncryptedEnvelope.from_dict(envelope_data)
        plaintext = engine.decrypt_envelope(envelope)
    except DecryptionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CRYPTO_FAILURE

    sys.stdout.write(plaintext)
    if sys.stdout.isatty():
        sys.stdout.write("\n")
    return EXIT_OK


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="atrest",
        description="Encrypt and decrypt secrets at rest (AES-256-GCM)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a new encryption key")
    keygen_parser.add_argument("--format", "-f", choices=["hex", "base64"], default="hex")

    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt text (argument or stdin)")
    encrypt_parser.add_argument("text", nargs="?", help="Text to encrypt (default: stdin)")

    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt an envelope")
    decrypt_parser.add_argument("envelope", nargs="?", help="Envelope JSON (default: stdin)")
    decrypt_parser.add_argument("--ciphertext", help="Ciphertext hex")
    decrypt_parser.add_argument("--tag", help="Authentication tag hex")
    decrypt_parser.add_argument("--nonce", help="Nonce hex")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        setup_logging(
            json_output=settings.log_json,
            level="DEBUG" if args.verbose else settings.log_level,
        )
    except (ValidationError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if not args.command:
        parser.print_help()
        return EXIT_OK

    if args.command == "keygen":
        return cmd_keygen(args)
    elif args.command == "encrypt":
        return cmd_encrypt(args)
    elif args.command == "decrypt":
        return cmd_decrypt(args)
    else:
        parser.print_help()
        return EXIT_INVALID_ARGS


if __name__ == "__main__":
    sys.exit(main())
