"""Settings configuration loader module.

This module handles loading and parsing of the settings.conf file which
contains the exchange settings: storage backend, database URL, the seller's
share of a marketplace sale and the API bind address.

The settings file uses INI format with a [DEFAULT] section containing key-value pairs.

Example settings.conf:
    [DEFAULT]
    store_backend = postgres
    db_url = postgresql://root@localhost:26257/exchange?sslmode=disable
    seller_share = 0.75

Raises:
    SettingsError: If the settings file is invalid or contains invalid values
"""
import logging
from configparser import ConfigParser
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

STORE_BACKENDS = ('postgres', 'memory')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigValidationError:
    """Helper class to format configuration validation errors"""
    def __init__(self):
        self.invalid: List[str] = []

    def has_errors(self) -> bool:
        return bool(self.invalid)

    def format_message(self) -> str:
        messages = ["Invalid settings:"]
        messages.extend(f"  - {item}" for item in self.invalid)
        return "\n".join(messages)


class SettingsError(Exception):
    """Raised when there are issues loading or parsing the settings configuration."""
    pass


# Default settings
DEFAULTS = {
    'store_backend': 'postgres',
    'db_url': 'postgresql://root@localhost:26257/defaultdb?sslmode=disable',
    'seller_share': '0.75',  # Seller receives floor(price * seller_share) on a direct purchase
    'max_conflict_retries': '5',  # Attempts for an operation whose transaction lost a race
    'api_host': '0.0.0.0',
    'api_port': '8000',
    'log_level': 'INFO',
    'admin_users': '',  # Comma-separated user ids allowed to grant and overwrite items
}


def load_settings_conf(settings_path: str = ".") -> Dict[str, Any]:
    """Load and validate settings.conf, falling back to defaults.

    Args:
        settings_path: Directory containing settings.conf

    Returns:
        Dictionary containing validated settings

    Raises:
        SettingsError: If parsing fails or validation fails
    """
    config_path = Path(settings_path) / 'settings.conf'

    if not config_path.exists():
        logger.info(f"No settings file at {config_path}, using defaults")
        return validate_settings(dict(DEFAULTS))

    try:
        parser = ConfigParser(defaults=DEFAULTS)
        parser.read(config_path)
    except Exception as e:
        raise SettingsError(f"Error parsing settings.conf: {str(e)}")

    return validate_settings(dict(parser['DEFAULT']))


def validate_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce and validate loaded settings.

    Args:
        settings: Dictionary of raw (string) settings

    Returns:
        Validated and processed settings

    Raises:
        SettingsError: If validation fails
    """
    errors = ConfigValidationError()

    backend = str(settings.get('store_backend', '')).strip().lower()
    if backend not in STORE_BACKENDS:
        errors.invalid.append(f"store_backend: must be one of {', '.join(STORE_BACKENDS)}")
    settings['store_backend'] = backend

    try:
        share = Decimal(str(settings['seller_share']))
        if not Decimal('0') <= share <= Decimal('1'):
            errors.invalid.append("seller_share: must be between 0 and 1")
        settings['seller_share'] = share
    except (InvalidOperation, KeyError):
        errors.invalid.append("seller_share: not a decimal number")

    for key, minimum in (('max_conflict_retries', 1), ('api_port', 1)):
        try:
            settings[key] = int(settings[key])
            if settings[key] < minimum:
                errors.invalid.append(f"{key}: must be at least {minimum}")
        except (ValueError, KeyError):
            errors.invalid.append(f"{key}: not an integer")

    level = str(settings.get('log_level', '')).upper()
    if level not in LOG_LEVELS:
        errors.invalid.append(f"log_level: must be one of {', '.join(LOG_LEVELS)}")
    settings['log_level'] = level

    raw_admins = settings.get('admin_users') or ''
    if isinstance(raw_admins, str):
        raw_admins = raw_admins.split(',')
    settings['admin_users'] = tuple(u.strip() for u in raw_admins if u.strip())

    if backend == 'postgres' and not settings.get('db_url'):
        errors.invalid.append("db_url: required for the postgres store")

    if errors.has_errors():
        raise SettingsError(
            "Settings Configuration Validation Failed\n\n" +
            errors.format_message()
        )

    return settings
