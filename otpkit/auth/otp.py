#!/usr/bin/env python3
"""
OTP Module for OTPKit

Provisions credentials, derives HOTP/TOTP codes and verifies submitted
codes with a bounded drift window. Built on pyotp, so codes are compatible
with Google Authenticator and other RFC 4226 / RFC 6238 apps.

Every function here is pure: it reads only its arguments and returns new
values. Callers persist the returned credential themselves.
"""

import time
from datetime import datetime
from typing import Iterator, Optional, Set, Tuple, Union

import pyotp
from pyotp.utils import strings_equal

from .credential import (
    Credential,
    HashAlgorithm,
    OTPMode,
    VerificationResult,
    decode_secret,
    validate_digits,
    validate_period,
    DEFAULT_DIGITS,
    DEFAULT_PERIOD_SECONDS,
    SECRET_KEY_BYTES,
    MAX_COUNTER,
)
from .errors import CodeMismatch, EntropyUnavailable, InvalidParameter
from .recovery import generate_recovery_codes, DEFAULT_RECOVERY_CODE_COUNT

# Constants
DEFAULT_DRIFT_WINDOW = 1
MAX_DRIFT_WINDOW = 5
DEFAULT_LOOKAHEAD_WINDOW = 3
MAX_LOOKAHEAD_WINDOW = 50
SECRET_BASE32_LENGTH = SECRET_KEY_BYTES * 8 // 5

Timestamp = Union[int, float, datetime]


def provision(mode: Union[OTPMode, str] = OTPMode.TIME_BASED,
              digits: int = DEFAULT_DIGITS,
              period: int = DEFAULT_PERIOD_SECONDS,
              algorithm: Union[HashAlgorithm, str] = HashAlgorithm.SHA1,
              secret_key: Optional[Union[bytes, str]] = None) -> Credential:
    """
    Create a new credential.

    Args:
        mode: TIME_BASED or COUNTER_BASED (or "totp"/"hotp")
        digits: Code length, 6 or 8
        period: Time step in seconds (time-based only)
        algorithm: HMAC hash function
        secret_key: Optional caller-supplied secret (bytes or Base32). When
            given, no random secret is generated.

    Returns:
        A new Credential with counter 0

    Raises:
        InvalidParameter: If any parameter is out of range
        EntropyUnavailable: If the secure random source fails
    """
    mode = OTPMode.parse(mode)
    algorithm = HashAlgorithm.parse(algorithm)
    validate_digits(digits)
    validate_period(period)

    if secret_key is None:
        key = _random_secret()
    else:
        key = decode_secret(secret_key)

    return Credential(
        secret_key=key,
        mode=mode,
        counter=0,
        digits=digits,
        period=period,
        algorithm=algorithm,
    )


def _random_secret() -> bytes:
    """Draw a 160-bit secret from the OS random source."""
    try:
        secret = pyotp.random_base32(length=SECRET_BASE32_LENGTH)
    except (NotImplementedError, OSError) as e:
        raise EntropyUnavailable(
            f"Secure random source unavailable ({type(e).__name__})"
        ) from None
    return decode_secret(secret)


def create_new_credential(mode: Union[OTPMode, str] = OTPMode.TIME_BASED,
                          recovery_count: int = DEFAULT_RECOVERY_CODE_COUNT,
                          **kwargs) -> Tuple[Credential, Set[str]]:
    """
    Create a new credential together with a fresh set of recovery codes.

    Returns:
        Tuple of (Credential, set of plaintext recovery codes)
    """
    credential = provision(mode, **kwargs)
    recovery_codes = generate_recovery_codes(recovery_count)
    return credential, recovery_codes


def _otp(credential: Credential) -> pyotp.OTP:
    return pyotp.OTP(
        credential.secret_base32,
        digits=credential.digits,
        digest=credential.algorithm.digest,
    )


def derive_code(credential: Credential, moving_factor: int) -> str:
    """
    Derive the code for a counter value or time step.

    Args:
        credential: The credential to derive from
        moving_factor: Counter value or time step (0..2**64-1)

    Returns:
        Zero-padded decimal code of length credential.digits
    """
    if (isinstance(moving_factor, bool) or not isinstance(moving_factor, int)
            or not 0 <= moving_factor <= MAX_COUNTER):
        raise InvalidParameter("moving factor must be an integer in 0..2**64-1")
    return _otp(credential).generate_otp(moving_factor)


def _timestamp(at: Optional[Timestamp]) -> float:
    if at is None:
        return time.time()
    if isinstance(at, datetime):
        return at.timestamp()
    return at


def time_step(credential: Credential, at: Optional[Timestamp] = None) -> int:
    """Return floor(at / period), with at defaulting to now."""
    return int(_timestamp(at) // credential.period)


def current_code(credential: Credential, at: Optional[Timestamp] = None) -> str:
    """
    Generate the code a user's authenticator would show right now.

    Note: This should only be used for testing/debugging and enrolment.
    """
    if credential.is_time_based:
        return derive_code(credential, time_step(credential, at))
    return derive_code(credential, credential.counter)


def time_remaining(credential: Credential, at: Optional[Timestamp] = None) -> int:
    """
    Get seconds remaining until the current time-based code expires.

    Returns:
        Seconds until the next step (1..period)
    """
    return credential.period - (int(_timestamp(at)) % credential.period)


def normalize_code(code) -> Optional[str]:
    """Strip spaces and dashes; None if the result is not all digits."""
    if not isinstance(code, str):
        return None
    code = code.replace(' ', '').replace('-', '')
    if not code.isdigit() or not code.isascii():
        return None
    return code


def drift_offsets(window: int) -> Iterator[int]:
    """Yield 0, -1, +1, -2, +2, ... up to +/- window."""
    yield 0
    for step in range(1, window + 1):
        yield -step
        yield step


def _resolve_window(window: Optional[int], default: int, maximum: int) -> int:
    if window is None:
        return default
    if isinstance(window, bool) or not isinstance(window, int):
        raise InvalidParameter(f"window must be an integer, got {type(window).__name__}")
    return max(0, min(maximum, window))


def _rejected(credential: Credential) -> VerificationResult:
    return VerificationResult(
        accepted=False,
        matched_offset=None,
        updated_credential=credential,
        error=CodeMismatch(),
    )


def verify(credential: Credential,
           candidate_code: str,
           at: Optional[Timestamp] = None,
           window: Optional[int] = None) -> VerificationResult:
    """
    Verify a submitted code.

    Time-based credentials are checked at the current step, then one step
    back, then one step forward (wider windows continue alternating). They
    carry no mutable state, so the credential is returned unchanged.

    Counter-based credentials are checked at counter..counter+window in
    ascending order. On a match the returned credential's counter is set
    past the matched value, so that code and every earlier one are spent.

    Args:
        credential: Stored credential
        candidate_code: Code entered by the user (spaces/dashes allowed)
        at: Submission time for time-based credentials (default: now)
        window: Drift steps (time-based, default 1, max 5) or lookahead
            (counter-based, default 3)

    Returns:
        VerificationResult; rejected results carry a CodeMismatch
    """
    code = normalize_code(candidate_code)
    if code is None or len(code) != credential.digits:
        return _rejected(credential)

    if credential.is_time_based:
        window = _resolve_window(window, DEFAULT_DRIFT_WINDOW, MAX_DRIFT_WINDOW)
        current = time_step(credential, at)
        for offset in drift_offsets(window):
            step = current + offset
            if step < 0:
                continue
            if strings_equal(derive_code(credential, step), code):
                return VerificationResult(
                    accepted=True,
                    matched_offset=offset,
                    updated_credential=credential,
                )
        return _rejected(credential)

    window = _resolve_window(window, DEFAULT_LOOKAHEAD_WINDOW, MAX_LOOKAHEAD_WINDOW)
    for offset in range(window + 1):
        counter = credential.counter + offset
        # The last counter value has no successor to advance to
        if counter >= MAX_COUNTER:
            break
        if strings_equal(derive_code(credential, counter), code):
            return VerificationResult(
                accepted=True,
                matched_offset=offset,
                updated_credential=credential.with_counter(counter + 1),
            )
    return _rejected(credential)
