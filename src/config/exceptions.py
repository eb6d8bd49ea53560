"""Configuration-related exceptions.

Raised while loading the task configuration (file, dictionary or Azure
Pipelines variables) and while locating and validating dependabot.yml.
"""

from typing import Any


class ConfigurationError(Exception):
    """Base exception for all configuration-related errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize configuration error.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.details = details or {}


class ConfigurationFileError(ConfigurationError):
    """A configuration file is missing, unreadable or not a YAML mapping."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.file_path = file_path


class DependabotConfigNotFoundError(ConfigurationFileError):
    """No dependabot.yml exists in any of the searched locations."""

    def __init__(self, searched_paths: list[str] | tuple[str, ...]):
        super().__init__(
            f"No dependabot configuration found; looked for "
            f"{', '.join(searched_paths)}"
        )
        self.searched_paths = list(searched_paths)


class ConfigurationValidationError(ConfigurationError):
    """Configuration content failed pydantic validation.

    ``validation_errors`` holds pydantic's error dicts (without documentation
    URLs) so callers can report each offending field.
    """

    def __init__(
        self,
        message: str,
        validation_errors: list[Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.validation_errors = validation_errors or []


class EnvironmentVariableError(ConfigurationError):
    """A required Azure Pipelines variable is not set."""

    def __init__(
        self,
        message: str,
        variable_name: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.variable_name = variable_name
