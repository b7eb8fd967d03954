#!/usr/bin/env python3
"""
Credential Sealing Module for OTPKit

Encrypts a credential and its recovery code hashes into an opaque token
that the caller can persist wherever it likes. Uses the cryptography
library with Fernet symmetric encryption and a PBKDF2-derived key.
"""

import base64
import contextlib
import fcntl
import json
import os
import stat
import tempfile
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, Optional, Tuple, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .credential import Credential
from .errors import EntropyUnavailable, InvalidParameter

# Constants
STORAGE_FORMAT_VERSION = 1
SALT_BYTES = 16
KDF_ITERATIONS = 100000


class CredentialStore:
    """Seals and unseals credentials with a passphrase-derived key."""

    def __init__(self, passphrase: str, salt: Optional[bytes] = None):
        """
        Initialize the store.

        Args:
            passphrase: Secret the encryption key is derived from
            salt: KDF salt. If None, a new random salt is generated; keep
                it (see export_bundle) to unseal tokens later.
        """
        if not passphrase:
            raise InvalidParameter("passphrase must not be empty")

        if salt is None:
            try:
                salt = os.urandom(SALT_BYTES)
            except (NotImplementedError, OSError) as e:
                raise EntropyUnavailable(
                    f"Secure random source unavailable ({type(e).__name__})"
                ) from None

        self.salt = bytes(salt)
        self._init_encryption(passphrase)

    def _init_encryption(self, passphrase: str):
        """Derive the Fernet key from the passphrase and salt."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self.salt,
            iterations=KDF_ITERATIONS,
        )
        key = base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))

        self.cipher = Fernet(key)

    def seal(self, credential: Credential, recovery_hashes: Iterable[str] = ()) -> bytes:
        """
        Encrypt a credential and its recovery code hashes.

        Args:
            credential: Credential to seal
            recovery_hashes: Hashes of unused recovery codes

        Returns:
            Fernet token
        """
        data = {
            'version': STORAGE_FORMAT_VERSION,
            'mode': credential.mode.value,
            'algorithm': credential.algorithm.value,
            'digits': credential.digits,
            'period': credential.period,
            'counter': credential.counter,
            'secret': credential.secret_base32,
            'recovery_codes': sorted(recovery_hashes),
        }

        return self.cipher.encrypt(json.dumps(data).encode())

    def unseal(self, token: Union[bytes, str]) -> Tuple[Credential, FrozenSet[str]]:
        """
        Decrypt a token produced by seal().

        Returns:
            Tuple of (Credential, frozenset of recovery code hashes)

        Raises:
            InvalidParameter: If the token is tampered with, was sealed with
                another key, or holds an unsupported payload
        """
        if isinstance(token, str):
            token = token.encode()

        try:
            decrypted = self.cipher.decrypt(token)
        except InvalidToken:
            raise InvalidParameter("Sealed credential could not be decrypted") from None

        try:
            data = json.loads(decrypted.decode())
            version = data['version']
        except (ValueError, KeyError, TypeError):
            raise InvalidParameter("Sealed credential payload is malformed") from None

        if version != STORAGE_FORMAT_VERSION:
            raise InvalidParameter(f"Unsupported sealed credential version: {version}")

        try:
            credential = Credential(
                secret_key=data['secret'],
                mode=data['mode'],
                counter=data['counter'],
                digits=data['digits'],
                period=data['period'],
                algorithm=data['algorithm'],
            )
            recovery_hashes = frozenset(data['recovery_codes'])
        except (KeyError, TypeError):
            raise InvalidParameter("Sealed credential payload is malformed") from None

        return credential, recovery_hashes

    def export_bundle(self, token: bytes) -> str:
        """
        Package a token with the salt needed to unseal it.

        Returns:
            JSON document with base64 salt and token
        """
        export_data = {
            'auth_data': base64.b64encode(token).decode(),
            'salt': base64.b64encode(self.salt).decode(),
            'version': STORAGE_FORMAT_VERSION,
        }
        return json.dumps(export_data, indent=2)

    @classmethod
    def import_bundle(cls, bundle: str, passphrase: str) -> Tuple["CredentialStore", bytes]:
        """
        Restore a store and token from export_bundle() output.

        Returns:
            Tuple of (CredentialStore using the bundled salt, token)
        """
        try:
            export_data = json.loads(bundle)
            salt = base64.b64decode(export_data['salt'])
            token = base64.b64decode(export_data['auth_data'])
        except (ValueError, KeyError, TypeError):
            raise InvalidParameter("Credential bundle is malformed") from None

        return cls(passphrase, salt=salt), token

    def write_bundle(self, path: Path, credential: Credential, recovery_hashes: Iterable[str] = ()) -> None:
        """
        Seal a credential and write the bundle to path (mode 600).

        The bundle is written to a temporary file in the same directory and
        renamed over path, so readers see either the old or the new bundle.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        bundle = self.export_bundle(self.seal(credential, recovery_hashes))

        # mkstemp creates the file with mode 600
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", closefd=True) as f:
                f.write(bundle)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, stat.S_IRUSR | stat.S_IWUSR)
            os.replace(tmp_path, path)
        except Exception:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()
            raise

    @classmethod
    def read_bundle(cls, path: Path, passphrase: str) -> Tuple["CredentialStore", Credential, FrozenSet[str]]:
        """
        Read a bundle written by write_bundle().

        Returns:
            Tuple of (store, Credential, recovery code hashes)
        """
        store, token = cls.import_bundle(Path(path).read_text(), passphrase)
        credential, hashes = store.unseal(token)
        return store, credential, hashes


@contextlib.contextmanager
def locked_bundle(path: Path) -> Iterator[Path]:
    """
    Hold an exclusive lock for a bundle path.

    The lock lives on a sidecar "<name>.lock" file, since write_bundle()
    replaces the bundle file itself. Wrap the whole read, verify and write
    cycle in it so two processes cannot spend the same code.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lock_path = path.with_name(path.name + ".lock")

    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, stat.S_IRUSR | stat.S_IWUSR)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
