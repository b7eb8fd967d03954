#!/usr/bin/env python3
"""
Configuration Module for OTPKit

Manages the OTP policy (code length, step size, drift windows, recovery
code count) and the defaults used by the command line tools.
"""

import json
import copy
from pathlib import Path
from typing import Dict, Any, Optional

from ..auth.credential import (
    HashAlgorithm,
    OTPMode,
    validate_digits,
    validate_period,
)
from ..auth.errors import InvalidParameter
from .paths import resolve_config_dir


class Config:
    """Manages OTPKit configuration."""

    DEFAULT_CONFIG = {
        'version': 1,
        'otp': {
            'mode': 'totp',  # totp, hotp
            'digits': 6,
            'period': 30,
            'algorithm': 'sha1',  # sha1, sha256, sha512
            'drift_window': 1,
            'lookahead_window': 3,
        },
        'recovery': {
            'count': 10,
        },
        'provisioning': {
            'issuer': 'OTPKit',
            'label': 'user',
        },
        'audit': {
            'enabled': True,
            'log_retention_days': 90,
        }
    }

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_dir: Configuration directory path. If None, uses the shared OTPKit config dir.
        """
        self.config_dir = resolve_config_dir(config_dir)

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file = self.config_dir / "config.json"

        self.config = self._load_config()

        # Create config file if it doesn't exist
        if not self.config_file.exists():
            self.save()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or create default."""
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    config = json.load(f)

                # Merge with defaults to add any new settings
                return self._merge_configs(self.DEFAULT_CONFIG, config)

            except (OSError, ValueError) as e:
                print(f"Error loading config: {e}, using defaults")
                return copy.deepcopy(self.DEFAULT_CONFIG)
        else:
            return copy.deepcopy(self.DEFAULT_CONFIG)

    def _merge_configs(self, default: Dict, loaded: Dict) -> Dict:
        """
        Recursively merge loaded config with defaults.

        Args:
            default: Default configuration dictionary
            loaded: Loaded configuration dictionary

        Returns:
            Merged configuration dictionary
        """
        result = copy.deepcopy(default)

        for key, value in loaded.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = copy.deepcopy(value) if isinstance(value, (dict, list)) else value

        return result

    def save(self) -> bool:
        """
        Save configuration to file.

        Returns:
            True if successful, False otherwise
        """
        try:
            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=2)
            return True
        except OSError as e:
            print(f"Error saving config: {e}")
            return False

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Configuration key path (e.g., 'otp.digits')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key_path: str, value: Any) -> bool:
        """
        Set configuration value using dot notation.

        Args:
            key_path: Configuration key path (e.g., 'otp.digits')
            value: Value to set

        Returns:
            True if successful, False otherwise
        """
        keys = key_path.split('.')
        config = self.config

        # Navigate to parent of target key
        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value
        return self.save()

    def reset_to_defaults(self) -> bool:
        """
        Reset configuration to defaults.

        Returns:
            True if successful, False otherwise
        """
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        return self.save()

    def get_mode(self) -> OTPMode:
        return OTPMode.parse(self.get('otp.mode', 'totp'))

    def get_digits(self) -> int:
        return validate_digits(self.get('otp.digits', 6))

    def get_period(self) -> int:
        """Get the time step in seconds."""
        return validate_period(self.get('otp.period', 30))

    def get_algorithm(self) -> HashAlgorithm:
        return HashAlgorithm.parse(self.get('otp.algorithm', 'sha1'))

    def _get_window(self, key_path: str, default: int) -> int:
        value = self.get(key_path, default)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidParameter(f"{key_path} must be a non-negative integer, got {value!r}")
        return value

    def get_drift_window(self) -> int:
        """Get the number of time steps tolerated either side of now."""
        return self._get_window('otp.drift_window', 1)

    def get_lookahead_window(self) -> int:
        """Get how many counter values past the stored one are accepted."""
        return self._get_window('otp.lookahead_window', 3)

    def get_recovery_count(self) -> int:
        value = self.get('recovery.count', 10)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidParameter(f"recovery.count must be a positive integer, got {value!r}")
        return value

    def is_audit_enabled(self) -> bool:
        return bool(self.get('audit.enabled', True))

    def get_log_retention_days(self) -> int:
        return self.get('audit.log_retention_days', 90)

    def provision_kwargs(self) -> Dict[str, Any]:
        """
        Keyword arguments for otpkit.auth.provision().

        Raises:
            InvalidParameter: If a configured value is invalid
        """
        return {
            'mode': self.get_mode(),
            'digits': self.get_digits(),
            'period': self.get_period(),
            'algorithm': self.get_algorithm(),
        }

    def verify_window(self, mode: OTPMode) -> int:
        """The configured verification window for a credential mode."""
        if mode is OTPMode.TIME_BASED:
            return self.get_drift_window()
        return self.get_lookahead_window()

    def export_config(self, export_path: Path) -> bool:
        """
        Export configuration to file.

        Args:
            export_path: Path to export file

        Returns:
            True if successful, False otherwise
        """
        try:
            with open(export_path, 'w') as f:
                json.dump(self.config, f, indent=2)
            return True
        except OSError as e:
            print(f"Error exporting config: {e}")
            return False

    def import_config(self, import_path: Path) -> bool:
        """
        Import configuration from file.

        Args:
            import_path: Path to import file

        Returns:
            True if successful, False otherwise
        """
        try:
            with open(import_path, 'r') as f:
                imported = json.load(f)
        except (OSError, ValueError) as e:
            print(f"Error importing config: {e}")
            return False

        self.config = self._merge_configs(self.DEFAULT_CONFIG, imported)
        return self.save()
