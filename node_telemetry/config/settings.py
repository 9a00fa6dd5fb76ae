"""Environment settings."""

import os
from typing import Optional


class Settings:
    """Application settings from environment variables."""

    CONFIG_ENV = "NODE_TELEMETRY_CONFIG"
    LOG_LEVEL_ENV = "NODE_TELEMETRY_LOG_LEVEL"

    @staticmethod
    def get(key: str, default: Optional[str] = None, required: bool = False) -> str:
        """
        Get environment variable value.

        Args:
            key: Environment variable name
            default: Default value if not set
            required: Whether the variable is required

        Returns:
            str: Environment variable value

        Raises:
            ValueError: If required variable is not set
        """
        value = os.getenv(key, default)
        if required and not value:
            raise ValueError(f"Required environment variable not set: {key}")
        return value or ""

    @staticmethod
    def config_path(default: str = "config/config.yaml") -> str:
        return Settings.get(Settings.CONFIG_ENV, default)

    @staticmethod
    def log_level(default: Optional[str] = None) -> Optional[str]:
        """Log level override, or ``default`` when the variable is unset."""
        return os.getenv(Settings.LOG_LEVEL_ENV) or default
