"""Utility modules for OTPKit."""

from .logger import OTPEventLogger, EventAction
from .config import Config
from .paths import resolve_config_dir

__all__ = [
    'OTPEventLogger',
    'EventAction',
    'Config',
    'resolve_config_dir'
]
