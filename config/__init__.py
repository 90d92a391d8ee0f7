"""Configuration module for loading and managing application settings"""
import os
from typing import Any, Dict

from .lib.load_settings_conf import DEFAULTS, SettingsError, load_settings_conf, validate_settings

__all__ = ['settings_conf', 'DEFAULTS', 'SettingsError', 'load_settings_conf', 'validate_settings']

try:
    settings_conf: Dict[str, Any] = load_settings_conf(os.environ.get('EXCHANGE_SETTINGS_DIR', '.'))

except SettingsError as e:
    # Re-raise the error but provide more context
    raise SettingsError(
        f"Configuration Error\n"
        "=================\n\n"
        f"{str(e)}\n\n"
        "Please ensure settings.conf is properly configured.\n"
        "Run `python -m config` to write examples/settings.conf.example."
    )
