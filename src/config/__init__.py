"""Configuration management for the dependency update task.

This module provides type-safe configuration management with support for:
- YAML configuration files with environment variable substitution
- Azure Pipelines predefined variables
- Pydantic-based validation of the task configuration and dependabot.yml

Example usage:
    from src.config import ConfigurationLoader, load_dependabot_config

    config = ConfigurationLoader().load_from_file("dependabot-task.yaml")
    dependabot = load_dependabot_config(".azuredevops/dependabot.yml")
"""

from .exceptions import (
    ConfigurationError,
    ConfigurationFileError,
    ConfigurationValidationError,
    DependabotConfigNotFoundError,
    EnvironmentVariableError,
)
from .loader import (
    ConfigurationLoader,
    find_dependabot_config_file,
    load_dependabot_config,
    parse_dependabot_config,
    substitute_token_placeholders,
)
from .models import (
    AllowCondition,
    BaseConfigModel,
    BranchNameConfig,
    ClientSettings,
    CommitMessageConfig,
    DependabotConfig,
    GroupConfig,
    IgnoreCondition,
    LogLevel,
    TaskConfig,
    UpdateConfig,
)

__all__ = [
    "AllowCondition",
    "BaseConfigModel",
    "BranchNameConfig",
    "ClientSettings",
    "CommitMessageConfig",
    "ConfigurationError",
    "ConfigurationFileError",
    "ConfigurationLoader",
    "ConfigurationValidationError",
    "DependabotConfig",
    "DependabotConfigNotFoundError",
    "EnvironmentVariableError",
    "GroupConfig",
    "IgnoreCondition",
    "LogLevel",
    "TaskConfig",
    "UpdateConfig",
    "find_dependabot_config_file",
    "load_dependabot_config",
    "parse_dependabot_config",
    "substitute_token_placeholders",
]
