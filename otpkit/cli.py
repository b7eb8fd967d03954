#!/usr/bin/env python3
"""Command line enrolment wizard and code tools for OTPKit."""

from __future__ import annotations

import argparse
import contextlib
import getpass
import os
import sys
from pathlib import Path
from textwrap import dedent
from typing import FrozenSet, Iterator, List, Optional, Tuple

from otpkit.auth import (
    Credential,
    CredentialStore,
    OTPError,
    build_provisioning_uri,
    consume_recovery_code,
    create_new_credential,
    current_code,
    hash_recovery_codes,
    locked_bundle,
    parse_provisioning_uri,
    render_qr_ascii,
    time_remaining,
    verify,
)
from otpkit.utils import Config, OTPEventLogger

PASSPHRASE_ENV_VAR = "OTPKIT_PASSPHRASE"
BUNDLE_FILE_NAME = "credential.json"

LoadedCredential = Tuple[Credential, Optional[CredentialStore], FrozenSet[str], Optional[Path]]


def _banner(title: str):
    print("\n" + "=" * 60)
    print(f" {title} ".center(60, "="))
    print("=" * 60)


def _read_passphrase(confirm: bool = False) -> str:
    """Take the bundle passphrase from the environment or the terminal."""
    passphrase = os.environ.get(PASSPHRASE_ENV_VAR)
    if passphrase:
        return passphrase

    while True:
        passphrase = getpass.getpass("Passphrase for the credential bundle: ")
        if not passphrase:
            print("The passphrase must not be empty.")
            continue
        if confirm and getpass.getpass("Repeat passphrase: ") != passphrase:
            print("Passphrases did not match. Try again.")
            continue
        return passphrase


def _event_logger(config: Config) -> Optional[OTPEventLogger]:
    if not config.is_audit_enabled():
        return None
    return OTPEventLogger(config.config_dir / "events.db",
                          retention_days=config.get_log_retention_days())


def run_enroll(config: Config,
               label: Optional[str] = None,
               issuer: Optional[str] = None,
               mode: Optional[str] = None,
               output: Optional[Path] = None,
               force: bool = False) -> int:
    """Interactive wizard: issue a credential, confirm it and save it sealed."""
    _banner("OTPKit Enrolment")

    label = label or config.get('provisioning.label', 'user')
    issuer = issuer or config.get('provisioning.issuer')
    output = Path(output) if output else config.config_dir / BUNDLE_FILE_NAME

    if output.exists() and not force:
        print(f"A credential is already enrolled at {output}.")
        print("Use --force to replace it.")
        return 0

    kwargs = config.provision_kwargs()
    if mode:
        kwargs['mode'] = mode
    credential, recovery_codes = create_new_credential(
        recovery_count=config.get_recovery_count(), **kwargs
    )
    uri = build_provisioning_uri(credential, label, issuer)

    print(
        dedent(
            """
            1. Install Google Authenticator (or any TOTP/HOTP app) on your phone.
            2. Add a new account using the secret below or by scanning the QR.
            3. You'll verify it's working by entering a code next.
            """
        ).strip()
    )
    print(f"\nSecret: {credential.secret_base32}\n")
    print(render_qr_ascii(uri))

    # Confirm the authenticator before handing out recovery codes
    _banner("Verify Your Authenticator")
    window = config.verify_window(credential.mode)
    while True:
        user_code = input(f"\nEnter the current {credential.digits}-digit code to confirm setup: ").strip()
        result = verify(credential, user_code, window=window)
        if result.accepted:
            credential = result.updated_credential
            print("✓ Code verified successfully!")
            break

        print("✗ Code did not match. Try again.")

    _banner("Save Your Recovery Codes")
    print("\nGreat! Your authenticator is working correctly.")
    print("\nNow save these backup recovery codes in a safe place:")
    print("(You can use them if you lose access to your authenticator app)\n")
    for idx, code in enumerate(sorted(recovery_codes), 1):
        print(f"  {idx:2d}. {code}")

    input("\nPress Enter after you've saved these codes...")

    store = CredentialStore(_read_passphrase(confirm=True))
    with locked_bundle(output):
        store.write_bundle(output, credential, hash_recovery_codes(recovery_codes))

    event_logger = _event_logger(config)
    if event_logger:
        event_logger.log_provisioned(label, credential, len(recovery_codes))

    print(f"\n✓ Credential saved to {output}")
    return 0


@contextlib.contextmanager
def _open_credential(config: Config,
                     uri: Optional[str],
                     bundle: Optional[Path]) -> Iterator[LoadedCredential]:
    """
    Load a credential from a URI or a sealed bundle file.

    A bundle stays locked until the block exits, so the updated credential
    can be written back before another process reads it.
    """
    if uri:
        yield parse_provisioning_uri(uri), None, frozenset(), None
        return

    path = Path(bundle) if bundle else config.config_dir / BUNDLE_FILE_NAME
    passphrase = _read_passphrase()
    with locked_bundle(path):
        store, credential, hashes = CredentialStore.read_bundle(path, passphrase)
        yield credential, store, hashes, path


def run_code(config: Config, uri: Optional[str] = None, bundle: Optional[Path] = None) -> int:
    """Print the code the authenticator should currently display."""
    with _open_credential(config, uri, bundle) as (credential, _, _, _):
        code = current_code(credential)
    if credential.is_time_based:
        print(f"{code} (expires in {time_remaining(credential)}s)")
    else:
        print(f"{code} (counter {credential.counter})")
    return 0


def run_verify(config: Config,
               code: str,
               uri: Optional[str] = None,
               bundle: Optional[Path] = None,
               label: Optional[str] = None) -> int:
    """Verify a code; counter-based bundles are rewritten with the new counter."""
    with _open_credential(config, uri, bundle) as (credential, store, hashes, path):
        result = verify(credential, code, window=config.verify_window(credential.mode))
        if result.accepted and store is not None and result.updated_credential != credential:
            store.write_bundle(path, result.updated_credential, hashes)

    event_logger = _event_logger(config)
    if event_logger:
        event_logger.log_verification(label or config.get('provisioning.label'), credential, result)

    if not result.accepted:
        print("✗ Code rejected.", file=sys.stderr)
        return 1

    print(f"✓ Code accepted (offset {result.matched_offset}).")
    return 0


def run_recover(config: Config,
                code: str,
                bundle: Optional[Path] = None,
                label: Optional[str] = None) -> int:
    """Spend a recovery code from a sealed bundle."""
    with _open_credential(config, None, bundle) as (credential, store, hashes, path):
        result = consume_recovery_code(hashes, code)
        if result.accepted:
            store.write_bundle(path, credential, result.remaining_hashes)

    event_logger = _event_logger(config)
    if event_logger:
        event_logger.log_recovery(label or config.get('provisioning.label'), result)

    if not result.accepted:
        print("✗ Recovery code rejected.", file=sys.stderr)
        return 1

    print(f"✓ Recovery code accepted. {len(result.remaining_hashes)} remaining.")
    return 0


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="otpkit",
        description="Issue and check HOTP/TOTP credentials."
    )
    parser.add_argument(
        '--config-dir',
        type=Path,
        help="Configuration directory (default: $OTPKIT_CONFIG_DIR or ~/.config/otpkit).",
        default=None
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommand to run")

    enroll = subparsers.add_parser('enroll', help="Enrol a new authenticator.")
    enroll.add_argument('--label', help="Account name shown in the app.")
    enroll.add_argument('--issuer', help="Issuer shown in the app.")
    enroll.add_argument('--mode', choices=['totp', 'hotp'], help="Credential type.")
    enroll.add_argument('--output', type=Path, help="Where to write the sealed credential.")
    enroll.add_argument('--force', action='store_true', help="Replace an existing credential.")

    for name, help_text in (('code', "Print the current code."), ('verify', "Check a code.")):
        sub = subparsers.add_parser(name, help=help_text)
        source = sub.add_mutually_exclusive_group()
        source.add_argument('--uri', help="otpauth:// URI of the credential.")
        source.add_argument('--bundle', type=Path, help="Sealed credential file.")
        if name == 'verify':
            sub.add_argument('--label', help="Account label for the audit log.")
            sub.add_argument('otp', help="Code to check.")

    recover = subparsers.add_parser('recover', help="Spend a recovery code.")
    recover.add_argument('--bundle', type=Path, help="Sealed credential file.")
    recover.add_argument('--label', help="Account label for the audit log.")
    recover.add_argument('recovery_code', help="Recovery code to spend.")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    config = Config(args.config_dir)

    try:
        if args.command == 'enroll':
            return run_enroll(config, args.label, args.issuer, args.mode, args.output, args.force)
        if args.command == 'code':
            return run_code(config, args.uri, args.bundle)
        if args.command == 'verify':
            return run_verify(config, args.otp, args.uri, args.bundle, args.label)
        return run_recover(config, args.recovery_code, args.bundle, args.label)
    except OTPError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except FileNotFoundError as e:
        print(f"Error: {e.filename} not found", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
