#!/usr/bin/env python3
"""
Recovery Code Module for OTPKit

Single-use backup codes for users who lose their authenticator. Plaintext
codes are shown once; only their SHA-256 hashes are meant to be stored.
"""

import hashlib
import hmac
import secrets
from typing import FrozenSet, Iterable, Optional, Set

from .credential import RecoveryResult
from .errors import CodeMismatch, EntropyUnavailable, InvalidParameter

# Constants
RECOVERY_CODE_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZ234567'
RECOVERY_CODE_LENGTH = 12
RECOVERY_CODE_FORMAT_SEGMENT_LENGTH = 4
RECOVERY_CODE_MIN_COUNT = 1
RECOVERY_CODE_MAX_COUNT = 100
DEFAULT_RECOVERY_CODE_COUNT = 10


class RecoveryCodeManager:
    """Manages one-time recovery codes for emergency access."""

    @staticmethod
    def generate_codes(count: int = DEFAULT_RECOVERY_CODE_COUNT) -> Set[str]:
        """
        Generate cryptographically secure recovery codes.

        Args:
            count: Number of recovery codes to generate (1-100)

        Returns:
            Set of distinct recovery codes in format XXXX-XXXX-XXXX

        Raises:
            TypeError: If count is not an integer
            InvalidParameter: If count is outside 1-100
            EntropyUnavailable: If the secure random source fails
        """
        if isinstance(count, bool) or not isinstance(count, int):
            raise TypeError(f"count must be an integer, got {type(count).__name__}")

        if not RECOVERY_CODE_MIN_COUNT <= count <= RECOVERY_CODE_MAX_COUNT:
            raise InvalidParameter(
                f"count must be between {RECOVERY_CODE_MIN_COUNT} and {RECOVERY_CODE_MAX_COUNT}"
            )

        codes = set()
        try:
            while len(codes) < count:
                raw = ''.join(secrets.choice(RECOVERY_CODE_ALPHABET) for _ in range(RECOVERY_CODE_LENGTH))
                codes.add(RecoveryCodeManager._segment(raw))
        except (NotImplementedError, OSError) as e:
            raise EntropyUnavailable(
                f"Secure random source unavailable ({type(e).__name__})"
            ) from None

        return codes

    @staticmethod
    def _segment(clean: str) -> str:
        seg_len = RECOVERY_CODE_FORMAT_SEGMENT_LENGTH
        return f"{clean[0:seg_len]}-{clean[seg_len:seg_len*2]}-{clean[seg_len*2:seg_len*3]}"

    @staticmethod
    def hash_code(code: str) -> str:
        """
        Hash a recovery code for secure storage.

        Args:
            code: Recovery code to hash

        Returns:
            SHA-256 hex digest of the normalised code
        """
        # Remove separators and convert to uppercase
        clean_code = ''.join(code.split()).replace('-', '').upper()
        return hashlib.sha256(clean_code.encode()).hexdigest()

    @staticmethod
    def verify_code(code: str, hashed_code: str) -> bool:
        """
        Verify a recovery code against its hash in constant time.

        Args:
            code: Recovery code to verify
            hashed_code: SHA-256 hash to compare against

        Returns:
            True if code matches hash, False otherwise
        """
        return hmac.compare_digest(RecoveryCodeManager.hash_code(code), hashed_code)

    @staticmethod
    def format_code(code: str) -> str:
        """
        Format a recovery code to standard format.

        Args:
            code: Raw recovery code (may have spaces, dashes, mixed case)

        Returns:
            Formatted code as XXXX-XXXX-XXXX

        Raises:
            TypeError: If code is not a string
            InvalidParameter: If code is not 12 alphanumeric characters
        """
        if not isinstance(code, str):
            raise TypeError(f"code must be a string, got {type(code).__name__}")

        # Remove all non-alphanumeric characters and convert to uppercase
        clean = ''.join(c for c in code.upper() if c.isalnum())

        if len(clean) != RECOVERY_CODE_LENGTH:
            raise InvalidParameter(
                f"Recovery code must be {RECOVERY_CODE_LENGTH} characters, got {len(clean)}"
            )

        return RecoveryCodeManager._segment(clean)

    @staticmethod
    def consume_code(stored_hashes: Iterable[str], candidate: str) -> RecoveryResult:
        """
        Spend a recovery code.

        Every stored hash is compared so timing does not reveal which one
        matched.

        Args:
            stored_hashes: Hashes of the codes still unused
            candidate: Code entered by the user

        Returns:
            RecoveryResult whose remaining_hashes omit the spent hash

        Raises:
            TypeError: If stored_hashes is a single string
        """
        if isinstance(stored_hashes, (str, bytes)):
            raise TypeError("stored_hashes must be a collection of hashes, not a single string")
        remaining = frozenset(stored_hashes)

        try:
            candidate_hash = RecoveryCodeManager.hash_code(RecoveryCodeManager.format_code(candidate))
        except (TypeError, InvalidParameter):
            return RecoveryResult(False, remaining, CodeMismatch("Recovery code did not match"))

        matched: Optional[str] = None
        for stored in remaining:
            if hmac.compare_digest(candidate_hash, stored):
                matched = stored

        if matched is None:
            return RecoveryResult(False, remaining, CodeMismatch("Recovery code did not match"))

        return RecoveryResult(True, remaining - {matched})


def generate_recovery_codes(n: int = DEFAULT_RECOVERY_CODE_COUNT) -> Set[str]:
    """Generate n single-use recovery codes."""
    return RecoveryCodeManager.generate_codes(n)


def hash_recovery_code(code: str) -> str:
    """Hash a recovery code for storage."""
    return RecoveryCodeManager.hash_code(code)


def hash_recovery_codes(codes: Iterable[str]) -> FrozenSet[str]:
    """Hash every code in codes."""
    return frozenset(RecoveryCodeManager.hash_code(code) for code in codes)


def format_recovery_code(code: str) -> str:
    """Normalise user input to XXXX-XXXX-XXXX."""
    return RecoveryCodeManager.format_code(code)


def consume_recovery_code(stored_hashes: Iterable[str], candidate: str) -> RecoveryResult:
    """Spend a recovery code; see RecoveryCodeManager.consume_code."""
    return RecoveryCodeManager.consume_code(stored_hashes, candidate)
