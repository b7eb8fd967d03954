#!/usr/bin/env python3
"""
Provisioning Module for OTPKit

Exports credentials as otpauth:// URIs (and QR codes) for authenticator
apps, and imports credentials back from such URIs.
"""

from io import StringIO
from typing import Optional
from urllib.parse import quote, urlencode

import pyotp
import qrcode

from .credential import Credential, HashAlgorithm, OTPMode
from .errors import InvalidParameter


def build_provisioning_uri(credential: Credential, label: str, issuer: Optional[str] = None) -> str:
    """
    Generate a provisioning URI for QR code generation.

    Args:
        credential: Credential to export
        label: Account name to display in the authenticator app
        issuer: Optional issuer name shown alongside the label

    Returns:
        URI of the form otpauth://totp/Issuer:label?secret=...&digits=6...
    """
    if not label:
        raise InvalidParameter("label must not be empty")

    path = quote(label, safe='@')
    params = [('secret', credential.secret_base32)]
    if issuer:
        path = f"{quote(issuer, safe='')}:{path}"
        params.append(('issuer', issuer))

    params.append(('algorithm', credential.algorithm.uri_name))
    params.append(('digits', credential.digits))
    if credential.is_time_based:
        params.append(('period', credential.period))
    else:
        params.append(('counter', credential.counter))

    return f"otpauth://{credential.mode.value}/{path}?{urlencode(params, quote_via=quote)}"


def parse_provisioning_uri(uri: str) -> Credential:
    """
    Build a credential from an otpauth:// URI.

    Raises:
        InvalidParameter: If the URI is malformed or uses unsupported settings
    """
    try:
        otp = pyotp.parse_uri(uri)
    except (ValueError, TypeError, KeyError) as e:
        raise InvalidParameter(f"Invalid provisioning URI: {e}") from None

    algorithm = HashAlgorithm.parse(otp.digest().name)

    if isinstance(otp, pyotp.TOTP):
        return Credential(
            secret_key=otp.secret,
            mode=OTPMode.TIME_BASED,
            digits=otp.digits,
            period=int(otp.interval),
            algorithm=algorithm,
        )

    return Credential(
        secret_key=otp.secret,
        mode=OTPMode.COUNTER_BASED,
        counter=int(otp.initial_count),
        digits=otp.digits,
        algorithm=algorithm,
    )


def render_qr_ascii(uri: str, invert: bool = True) -> str:
    """Render a URI as a QR code drawn with block characters."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(uri)
    qr.make(fit=True)

    out = StringIO()
    qr.print_ascii(out=out, invert=invert)
    return out.getvalue()
