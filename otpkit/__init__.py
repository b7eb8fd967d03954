"""OTPKit: stateless HOTP/TOTP credentials with recovery codes."""

__version__ = "1.0.0"
