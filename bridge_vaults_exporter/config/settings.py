"""Environment settings."""

import os
from typing import Optional


class Settings:
    """Process settings read from environment variables."""

    CONFIG_PATH_VAR = "BRIDGE_VAULTS_EXPORTER_CONFIG"
    LOG_LEVEL_VAR = "LOG_LEVEL"

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
    def config_path() -> str:
        """Default configuration path."""
        return Settings.get(Settings.CONFIG_PATH_VAR, "config.yaml")

    @staticmethod
    def log_level() -> Optional[str]:
        """Log level override from the environment, if any."""
        return os.getenv(Settings.LOG_LEVEL_VAR) or None
