#!/usr/bin/env python3
"""
Error types for OTPKit.

Every failure is tagged with one of these classes. Messages never carry
secret material or HMAC intermediates.
"""


class OTPError(Exception):
    """Base class for all OTPKit errors."""


class EntropyUnavailable(OTPError):
    """The secure random source could not supply the requested bytes."""


class CodeMismatch(OTPError):
    """A submitted one-time or recovery code did not match."""

    def __init__(self, message: str = "Code did not match"):
        super().__init__(message)


class InvalidParameter(OTPError, ValueError):
    """A caller supplied an out-of-range or malformed parameter."""
