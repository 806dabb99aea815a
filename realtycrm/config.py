"""
Realty CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


def _env_number(name: str, default: str, cast=int):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError:
        _logger.critical(f"{name}={raw!r} is not a valid number — cannot start.")
        raise ValueError(f"{name} must be numeric, got {raw!r}")


class Config:
    """Application configuration."""

    # Reporting calendar is pinned to one fixed offset (Asia/Dhaka, no DST)
    REPORTING_UTC_OFFSET_HOURS = _env_number('REPORTING_UTC_OFFSET_HOURS', '6')

    # Artificial delay on every store operation, models the future service boundary
    SIMULATED_LATENCY_MS = _env_number('SIMULATED_LATENCY_MS', '300')

    # New agents
    DEFAULT_COMMISSION_RATE = _env_number('DEFAULT_COMMISSION_RATE', '100')
    DEFAULT_AGENT_PASSWORD = os.getenv('DEFAULT_AGENT_PASSWORD', '123456')

    # Built-in administrator
    ADMIN_EMAIL = os.getenv('ADMIN_EMAIL', 'admin@user.com')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', '123456')


# Singleton instance
config = Config()
