"""Configuration loader with YAML parsing and environment variable substitution."""

import yaml
import logging
import os
import re
from pathlib import Path
from typing import Any
from .models import ExporterConfig


ENV_PATTERN = re.compile(r'\$\{([a-zA-Z_][0-9a-zA-Z_]*)\}')


class ConfigError(Exception):
    """Raised when the configuration file cannot be turned into a config."""


class ConfigLoader:
    """Load and validate exporter configuration."""

    logger = logging.getLogger("bridge_vaults_exporter.config")

    @staticmethod
    def load_from_file(config_path: str) -> ExporterConfig:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            ExporterConfig: Validated configuration object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigError: If the file is empty or not a mapping
            yaml.YAMLError: If YAML parsing fails
            pydantic.ValidationError: If configuration validation fails
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r') as f:
            raw_config = yaml.safe_load(f)

        return ConfigLoader.load_from_dict(raw_config)

    @staticmethod
    def load_from_dict(raw_config: Any) -> ExporterConfig:
        """
        Validate an already parsed configuration mapping.

        Args:
            raw_config: Parsed YAML document

        Returns:
            ExporterConfig: Validated configuration object
        """
        if not isinstance(raw_config, dict):
            raise ConfigError("Configuration must be a mapping with a 'networks' key")

        raw_config = ConfigLoader._substitute_env_vars(raw_config)

        return ExporterConfig(**raw_config)

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """
        Recursively substitute ${ENV_VAR} placeholders with environment values.

        Unset variables are replaced with an empty string and reported.

        Args:
            obj: Object to process (str, dict, list, or primitive)

        Returns:
            Object with environment variables substituted
        """
        if isinstance(obj, str):
            return ENV_PATTERN.sub(ConfigLoader._env_value, obj)

        elif isinstance(obj, dict):
            return {k: ConfigLoader._substitute_env_vars(v) for k, v in obj.items()}

        elif isinstance(obj, list):
            return [ConfigLoader._substitute_env_vars(item) for item in obj]

        return obj

    @staticmethod
    def _env_value(match: "re.Match") -> str:
        name = match.group(1)
        value = os.getenv(name)
        if value is None:
            ConfigLoader.logger.warning(f"Environment variable {name} was not set")
            return ''
        return value
