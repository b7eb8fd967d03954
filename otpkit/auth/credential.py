#!/usr/bin/env python3
"""
Credential Types for OTPKit

Immutable value objects passed into and returned from the OTP functions.
The library never stores these; callers persist whatever they get back.
"""

import base64
import binascii
import hashlib
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, FrozenSet, Optional, Union

from .errors import CodeMismatch, InvalidParameter

# Constants
SUPPORTED_DIGITS = (6, 8)
DEFAULT_DIGITS = 6
DEFAULT_PERIOD_SECONDS = 30
SECRET_KEY_BYTES = 20  # 160 bits
MAX_COUNTER = 2 ** 64 - 1  # moving factor is an 8-byte big-endian integer


class OTPMode(Enum):
    """How the moving factor of a credential advances."""
    TIME_BASED = "totp"
    COUNTER_BASED = "hotp"

    @classmethod
    def parse(cls, value: Union["OTPMode", str]) -> "OTPMode":
        """
        Coerce an enum member, its value ("totp"/"hotp") or its name.

        Raises:
            InvalidParameter: If the value names no known mode
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            for member in cls:
                if text.lower() == member.value or text.upper() == member.name:
                    return member
        raise InvalidParameter(f"Unknown OTP mode: {value!r}")


class HashAlgorithm(Enum):
    """HMAC hash functions usable for code derivation."""
    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA512 = "sha512"

    @property
    def digest(self) -> Callable:
        """The hashlib constructor for this algorithm."""
        return getattr(hashlib, self.value)

    @property
    def uri_name(self) -> str:
        """Name used in otpauth:// URIs (e.g. SHA1)."""
        return self.name

    @classmethod
    def parse(cls, value: Union["HashAlgorithm", str]) -> "HashAlgorithm":
        """
        Coerce an enum member or a name such as "sha256", "SHA-256".

        Raises:
            InvalidParameter: If the algorithm is not supported
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip().lower().replace('-', '')
            for member in cls:
                if text == member.value:
                    return member
        raise InvalidParameter(f"Unsupported hash algorithm: {value!r}")


def encode_secret(secret_key: bytes) -> str:
    """Return the unpadded, upper-case Base32 form of a secret."""
    return base64.b32encode(secret_key).decode('ascii').rstrip('=')


def decode_secret(secret: Union[bytes, str]) -> bytes:
    """
    Normalise a caller-supplied secret to raw bytes.

    Args:
        secret: Raw bytes, or a Base32 string (case-insensitive; spaces,
            dashes and padding are tolerated)

    Returns:
        The secret key bytes

    Raises:
        InvalidParameter: If the secret is empty or not valid Base32
    """
    if isinstance(secret, (bytes, bytearray)):
        key = bytes(secret)
    elif isinstance(secret, str):
        clean = ''.join(secret.split()).replace('-', '').rstrip('=').upper()
        if not clean:
            raise InvalidParameter("Secret must not be empty")
        clean += '=' * (-len(clean) % 8)
        try:
            key = base64.b32decode(clean)
        except (binascii.Error, ValueError):
            raise InvalidParameter("Secret is not valid Base32") from None
    else:
        raise InvalidParameter(f"Secret must be bytes or str, got {type(secret).__name__}")

    if not key:
        raise InvalidParameter("Secret must not be empty")
    return key


def validate_digits(digits) -> int:
    if isinstance(digits, bool) or not isinstance(digits, int) or digits not in SUPPORTED_DIGITS:
        raise InvalidParameter(f"digits must be one of {SUPPORTED_DIGITS}, got {digits!r}")
    return digits


def validate_period(period) -> int:
    if isinstance(period, bool) or not isinstance(period, int) or period <= 0:
        raise InvalidParameter(f"period must be a positive integer, got {period!r}")
    return period


def validate_counter(counter) -> int:
    if isinstance(counter, bool) or not isinstance(counter, int) or not 0 <= counter <= MAX_COUNTER:
        raise InvalidParameter(f"counter must be an integer in 0..2**64-1, got {counter!r}")
    return counter


@dataclass(frozen=True)
class Credential:
    """
    An OTP credential owned by the caller.

    The secret key is excluded from repr() so a credential can be printed
    or logged without disclosing it.
    """

    secret_key: bytes = field(repr=False)
    mode: OTPMode = OTPMode.TIME_BASED
    counter: int = 0
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_PERIOD_SECONDS
    algorithm: HashAlgorithm = HashAlgorithm.SHA1

    def __post_init__(self):
        object.__setattr__(self, 'secret_key', decode_secret(self.secret_key))
        object.__setattr__(self, 'mode', OTPMode.parse(self.mode))
        object.__setattr__(self, 'algorithm', HashAlgorithm.parse(self.algorithm))
        validate_digits(self.digits)
        validate_period(self.period)
        validate_counter(self.counter)
        if self.mode is OTPMode.TIME_BASED and self.counter != 0:
            raise InvalidParameter("counter must be 0 for time-based credentials")

    @property
    def secret_base32(self) -> str:
        """Unpadded upper-case Base32 secret, as authenticator apps expect."""
        return encode_secret(self.secret_key)

    @property
    def is_time_based(self) -> bool:
        return self.mode is OTPMode.TIME_BASED

    def with_counter(self, counter: int) -> "Credential":
        """Return a copy with a new counter value."""
        return replace(self, counter=counter)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying a one-time code."""

    accepted: bool
    matched_offset: Optional[int]
    updated_credential: Credential
    error: Optional[CodeMismatch] = None

    def __bool__(self) -> bool:
        return self.accepted

    def raise_for_error(self) -> None:
        """Raise the tagged error if verification was rejected."""
        if self.error is not None:
            raise self.error


@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of consuming a recovery code."""

    accepted: bool
    remaining_hashes: FrozenSet[str]
    error: Optional[CodeMismatch] = None

    def __bool__(self) -> bool:
        return self.accepted

    def raise_for_error(self) -> None:
        """Raise the tagged error if the recovery code was rejected."""
        if self.error is not None:
            raise self.error
