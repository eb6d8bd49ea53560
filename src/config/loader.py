"""Configuration loading and management system.

This module loads the task configuration from a YAML file, a dictionary or
Azure Pipelines variables and validates it. It also locates and parses the
repository's dependabot.yml.

The loading hierarchy is:
1. Default values from Pydantic models
2. Configuration file (YAML)
3. Environment variables (``${VAR}`` substitution)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import (
    ConfigurationFileError,
    ConfigurationValidationError,
    EnvironmentVariableError,
)
from .models import DependabotConfig, TaskConfig

logger = logging.getLogger(__name__)

# Azure Pipelines predefined variables, keyed by the setting they provide
PIPELINE_VARIABLES = {
    "organization_url": "SYSTEM_TEAMFOUNDATIONCOLLECTIONURI",
    "project": "SYSTEM_TEAMPROJECT",
    "project_id": "SYSTEM_TEAMPROJECTID",
    "repository": "BUILD_REPOSITORY_NAME",
    "repository_source_path": "BUILD_SOURCESDIRECTORY",
    "access_token": "SYSTEM_ACCESSTOKEN",
    "github_access_token": "GITHUB_ACCESS_TOKEN",
    "debug": "SYSTEM_DEBUG",
}
REQUIRED_PIPELINE_SETTINGS = ("organization_url", "project", "repository", "access_token")

# Searched in order, relative to the repository root
DEPENDABOT_CONFIG_PATHS = (
    ".azuredevops/dependabot.yml",
    ".azuredevops/dependabot.yaml",
    ".github/dependabot.yml",
    ".github/dependabot.yaml",
)

# GitHub-style secret placeholders, e.g. "${{ MY_TOKEN }}"
_TOKEN_PLACEHOLDER = re.compile(r"\$\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")


def _read_text_file(path: Path) -> str:
    if not path.exists():
        raise ConfigurationFileError(
            f"Configuration file not found: {path}", file_path=str(path)
        )
    if not path.is_file():
        raise ConfigurationFileError(
            f"Configuration path is not a file: {path}", file_path=str(path)
        )
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise ConfigurationFileError(
            f"Failed to read configuration file: {e}", file_path=str(path)
        ) from e


def _parse_yaml(content: str, source: str | None = None) -> dict[str, Any]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationFileError(
            f"Failed to parse YAML configuration: {e}", file_path=source
        ) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationFileError(
            "Configuration document must be a mapping", file_path=source
        )
    return data


class ConfigurationLoader:
    """Handles loading and validation of the task configuration."""

    def __init__(self) -> None:
        """Initialize configuration loader."""
        self._config: TaskConfig | None = None
        self._config_file_path: Path | None = None

    def load_from_file(self, config_path: str | Path) -> TaskConfig:
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationFileError: If file cannot be read or parsed
            ConfigurationValidationError: If configuration validation fails
        """
        config_path = Path(config_path)
        config_data = _parse_yaml(_read_text_file(config_path), str(config_path))

        self._config = self._build(config_data)
        self._config_file_path = config_path.resolve()
        return self._config

    def load_from_dict(self, config_data: dict[str, Any]) -> TaskConfig:
        """Load configuration from a dictionary.

        Args:
            config_data: Configuration data dictionary

        Returns:
            Loaded and validated configuration

        Raises:
            ConfigurationValidationError: If configuration validation fails
        """
        self._config = self._build(config_data)
        return self._config

    def load_from_environment(
        self, overrides: dict[str, Any] | None = None
    ) -> TaskConfig:
        """Load configuration from Azure Pipelines predefined variables.

        Args:
            overrides: Values taking precedence over the environment

        Returns:
            Loaded and validated configuration

        Raises:
            EnvironmentVariableError: If a required variable is not set
            ConfigurationValidationError: If configuration validation fails
        """
        config_data: dict[str, Any] = {}
        for field_name, var_name in PIPELINE_VARIABLES.items():
            value = os.getenv(var_name)
            if value:
                config_data[field_name] = value
        config_data.update(overrides or {})

        for field_name in REQUIRED_PIPELINE_SETTINGS:
            if not config_data.get(field_name):
                raise EnvironmentVariableError(
                    f"Required environment variable "
                    f"'{PIPELINE_VARIABLES[field_name]}' not found",
                    variable_name=PIPELINE_VARIABLES[field_name],
                )

        self._config = self._build(config_data)
        return self._config

    def _build(self, config_data: dict[str, Any]) -> TaskConfig:
        try:
            return TaskConfig(**config_data)
        except ValidationError as e:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}",
                validation_errors=e.errors(include_url=False),
            ) from e
        except ValueError as e:
            raise ConfigurationValidationError(
                f"Configuration validation failed: {e}"
            ) from e

    @property
    def config(self) -> TaskConfig | None:
        """Get the loaded configuration."""
        return self._config

    @property
    def config_file_path(self) -> Path | None:
        """Get the path to the loaded configuration file."""
        return self._config_file_path

    @property
    def is_loaded(self) -> bool:
        """Check if configuration has been loaded."""
        return self._config is not None


def substitute_token_placeholders(content: str) -> str:
    """Replace ``${{ NAME }}`` placeholders with environment variable values.

    Unknown names are left in place and logged, so a missing secret surfaces
    as an authentication failure of the registry rather than a parse error.
    """

    def replacer(match: re.Match[str]) -> str:
        name = match.group(1)
        value = os.getenv(name)
        if value is None:
            logger.warning(f"Environment variable '{name}' not found for placeholder")
            return match.group(0)
        return value

    return _TOKEN_PLACEHOLDER.sub(replacer, content)


def parse_dependabot_config(content: str, source: str | None = None) -> DependabotConfig:
    """Parse and validate the contents of a dependabot.yml.

    Raises:
        ConfigurationFileError: If the content is not a YAML mapping
        ConfigurationValidationError: If the content is not a valid config
    """
    data = _parse_yaml(substitute_token_placeholders(content), source)
    try:
        return DependabotConfig(**data)
    except ValidationError as e:
        raise ConfigurationValidationError(
            f"Invalid dependabot configuration{f' in {source}' if source else ''}: {e}",
            validation_errors=e.errors(include_url=False),
        ) from e
    except ValueError as e:
        raise ConfigurationValidationError(
            f"Invalid dependabot configuration: {e}"
        ) from e


def find_dependabot_config_file(repository_root: str | Path) -> Path | None:
    """Locate dependabot.yml in a local checkout."""
    root = Path(repository_root)
    for relative_path in DEPENDABOT_CONFIG_PATHS:
        path = root / relative_path
        if path.is_file():
            return path
    return None


def load_dependabot_config(path: str | Path) -> DependabotConfig:
    """Load and validate a dependabot.yml from disk."""
    path = Path(path)
    return parse_dependabot_config(_read_text_file(path), str(path))
