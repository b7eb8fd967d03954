#!/usr/bin/env python3
"""
Path utilities for OTPKit.

Provides a single place to resolve where configuration, the audit log and
sealed credential bundles should live, so the CLI and library callers
agree on the same directory.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


ENV_VAR_NAME = "OTPKIT_CONFIG_DIR"
APP_DIR_NAME = "otpkit"


def _user_config_home() -> Path:
    """Return $XDG_CONFIG_HOME, falling back to ~/.config."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg).expanduser()
    return Path.home() / ".config"


def resolve_config_dir(explicit_dir: Optional[Path] = None) -> Path:
    """
    Determine which directory OTPKit should use for config/logging.

    Resolution order:
        1. Caller-provided path
        2. OTPKIT_CONFIG_DIR environment variable
        3. $XDG_CONFIG_HOME/otpkit
        4. User default (~/.config/otpkit)

    Args:
        explicit_dir: Optional override provided by callers/tests.

    Returns:
        Path to the directory to use (directory may not exist yet).
    """
    if explicit_dir:
        return Path(explicit_dir).expanduser()

    env_path = os.environ.get(ENV_VAR_NAME)
    if env_path:
        return Path(env_path).expanduser()

    return _user_config_home() / APP_DIR_NAME
