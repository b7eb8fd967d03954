"""Authentication module for OTPKit."""

from .errors import OTPError, EntropyUnavailable, CodeMismatch, InvalidParameter
from .credential import Credential, HashAlgorithm, OTPMode, RecoveryResult, VerificationResult
from .otp import (
    create_new_credential,
    current_code,
    derive_code,
    provision,
    time_remaining,
    time_step,
    verify,
)
from .recovery import (
    RecoveryCodeManager,
    consume_recovery_code,
    format_recovery_code,
    generate_recovery_codes,
    hash_recovery_code,
    hash_recovery_codes,
)
from .provisioning import build_provisioning_uri, parse_provisioning_uri, render_qr_ascii
from .storage import CredentialStore, locked_bundle

__all__ = [
    'OTPError',
    'EntropyUnavailable',
    'CodeMismatch',
    'InvalidParameter',
    'Credential',
    'HashAlgorithm',
    'OTPMode',
    'RecoveryResult',
    'VerificationResult',
    'create_new_credential',
    'current_code',
    'derive_code',
    'provision',
    'time_remaining',
    'time_step',
    'verify',
    'RecoveryCodeManager',
    'consume_recovery_code',
    'format_recovery_code',
    'generate_recovery_codes',
    'hash_recovery_code',
    'hash_recovery_codes',
    'build_provisioning_uri',
    'parse_provisioning_uri',
    'render_qr_ascii',
    'CredentialStore',
    'locked_bundle',
]
