"""Pydantic configuration models for the dependency update task.

Two documents are modelled here:
- TaskConfig: how the task itself runs (organization, repository,
  credentials, pull request behaviour, tool images)
- DependabotConfig: the repository's ``dependabot.yml`` (version 2), which
  lists the updates to run

Environment variables are substituted in string values using the format
${VAR_NAME} with optional defaults: ${VAR_NAME:default_value}
"""

import os
import re
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.azure_devops.models import MergeStrategy


class LogLevel(str, Enum):
    """Supported logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BaseConfigModel(BaseModel):
    """Base configuration model with environment variable substitution."""

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",  # Prevent extra fields
        populate_by_name=True,
    )

    @model_validator(mode="before")
    @classmethod
    def substitute_env_vars(cls, values: Any) -> Any:
        """Substitute environment variables in string values.

        Supports formats:
        - ${VAR_NAME} - Required environment variable
        - ${VAR_NAME:default} - Optional with default value

        Args:
            values: Raw configuration values

        Returns:
            Configuration values with environment variables substituted

        Raises:
            ValueError: If required environment variable is missing
        """

        def substitute_value(value: Any) -> Any:
            if isinstance(value, str):
                # Pattern: ${VAR_NAME} or ${VAR_NAME:default}
                pattern = r"\$\{([^{}:]+)(?::([^}]*))?\}"

                def replacer(match: re.Match[str]) -> str:
                    var_name = match.group(1)
                    default_value = match.group(2)

                    env_value = os.getenv(var_name)
                    if env_value is not None:
                        return env_value
                    elif default_value is not None:
                        return default_value
                    else:
                        raise ValueError(
                            f"Required environment variable '{var_name}' not found"
                        )

                return re.sub(pattern, replacer, value)
            elif isinstance(value, dict):
                return {k: substitute_value(v) for k, v in value.items()}
            elif isinstance(value, list):
                return [substitute_value(item) for item in value]
            else:
                return value

        if not isinstance(values, dict):
            return values
        return {key: substitute_value(value) for key, value in values.items()}


def _split_delimited(value: Any, delimiter: str = ";") -> Any:
    """Accept ``"1;2;3"`` where a list is expected."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(delimiter) if item.strip()]
    if isinstance(value, int):
        return [value]
    return value


class ClientSettings(BaseConfigModel):
    """REST client behaviour."""

    timeout: int = Field(
        default=60, ge=1, le=600, description="Per-request timeout in seconds"
    )

    max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries for retryable failures"
    )

    retry_backoff_factor: float = Field(
        default=2.0, ge=1.0, le=10.0, description="Exponential backoff base"
    )

    max_concurrent_requests: int = Field(
        default=10, ge=1, le=100, description="Concurrent request limit"
    )


class TaskConfig(BaseConfigModel):
    """Settings for one run of the update task."""

    organization_url: str = Field(
        description="Organization (collection) URL, e.g. https://dev.azure.com/contoso/"
    )

    project: str = Field(description="Project name")

    project_id: str | None = Field(
        default=None, description="Project id; resolved from the name when omitted"
    )

    repository: str = Field(description="Repository name")

    repository_source_path: str | None = Field(
        default=None,
        description="Local checkout of the repository, used instead of cloning",
    )

    access_user: str = Field(
        default="", description="User name paired with the access token"
    )

    access_token: str = Field(description="Azure DevOps personal access token")

    github_access_token: str | None = Field(
        default=None,
        description="GitHub token used to avoid rate limits on GitHub registries",
    )

    author_email: str | None = Field(
        default=None, description="Commit author email for update commits"
    )

    author_name: str | None = Field(
        default=None, description="Commit author name for update commits"
    )

    store_dependency_list: bool = Field(
        default=False,
        description="Store dependency snapshots in the project properties",
    )

    set_auto_complete: bool = Field(
        default=False, description="Set auto-complete on created pull requests"
    )

    merge_strategy: MergeStrategy = Field(
        default=MergeStrategy.SQUASH, description="Merge strategy for auto-complete"
    )

    auto_complete_ignore_config_ids: list[int] = Field(
        default_factory=list,
        description="Policy configuration ids auto-complete should not wait for",
    )

    auto_approve: bool = Field(
        default=False, description="Approve pull requests after creating them"
    )

    auto_approve_user_token: str | None = Field(
        default=None,
        description="Token of the approving user; defaults to the access token",
    )

    experiments: dict[str, str | bool] = Field(
        default_factory=dict, description="Updater experiments to enable"
    )

    dependabot_config_path: str | None = Field(
        default=None,
        description="Explicit path of dependabot.yml; discovered when omitted",
    )

    dependabot_cli_image: str | None = Field(
        default=None, description="Go package to install the update tool from"
    )

    dependabot_collector_image: str | None = Field(default=None)

    dependabot_collector_config_path: str | None = Field(default=None)

    dependabot_proxy_image: str | None = Field(default=None)

    dependabot_updater_image: str | None = Field(
        default=None,
        description="Updater image; '{package-ecosystem}' is replaced per update",
    )

    flamegraph: bool = Field(
        default=False, description="Ask the update tool for a flame graph report"
    )

    target_update_ids: list[int] = Field(
        default_factory=list,
        description="Indexes into dependabot.yml updates to run; empty runs all",
    )

    skip_pull_requests: bool = Field(
        default=False, description="Do not create or update pull requests"
    )

    comment_pull_requests: bool = Field(
        default=False, description="Comment on pull requests before abandoning them"
    )

    abandon_unwanted_pull_requests: bool = Field(
        default=True, description="Abandon pull requests that are no longer needed"
    )

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    debug: bool = Field(
        default=False, description="Enable debug mode with verbose logging"
    )

    client: ClientSettings = Field(
        default_factory=ClientSettings, description="REST client settings"
    )

    @field_validator("organization_url")
    @classmethod
    def validate_organization_url(cls, v: str) -> str:
        """Validate organization URL format."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError("Organization URL must be an absolute http(s) URL")
        return v.rstrip("/") + "/"

    @field_validator("access_token")
    @classmethod
    def validate_access_token(cls, v: str) -> str:
        """Validate access token is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Access token cannot be empty")
        return v.strip()

    @field_validator("merge_strategy", mode="before")
    @classmethod
    def default_unknown_merge_strategy(cls, v: Any) -> Any:
        """Fall back to squash for unrecognized strategies."""
        if isinstance(v, MergeStrategy):
            return v
        values = {strategy.value.lower(): strategy for strategy in MergeStrategy}
        return values.get(str(v or "").lower(), MergeStrategy.SQUASH)

    @field_validator(
        "auto_complete_ignore_config_ids", "target_update_ids", mode="before"
    )
    @classmethod
    def split_id_lists(cls, v: Any) -> Any:
        """Accept semicolon-delimited id lists."""
        return _split_delimited(v)

    @field_validator("experiments", mode="before")
    @classmethod
    def parse_experiments(cls, v: Any) -> Any:
        """Accept ``"name=value,flag"`` pairs; bare names are enabled flags."""
        if v is None:
            return {}
        if not isinstance(v, str):
            return v
        experiments: dict[str, str | bool] = {}
        for pair in v.split(","):
            if not pair.strip():
                continue
            key, _, value = pair.strip().partition("=")
            experiments[key] = value or True
        return experiments

    @property
    def hostname(self) -> str:
        """Host name of the organization URL."""
        return urlparse(self.organization_url).hostname or ""

    @property
    def organization(self) -> str:
        """Organization name taken from the organization URL."""
        parsed = urlparse(self.organization_url)
        host = parsed.hostname or ""
        if host.endswith(".visualstudio.com"):
            return host.split(".")[0]
        segments = [s for s in parsed.path.split("/") if s]
        return segments[-1] if segments else host

    @property
    def virtual_directory(self) -> str:
        """Virtual directory of an on-premises server; empty for the cloud."""
        if self.hostname == "dev.azure.com" or self.hostname.endswith(
            ".visualstudio.com"
        ):
            return ""
        segments = [s for s in urlparse(self.organization_url).path.split("/") if s]
        return segments[0] if len(segments) > 1 else ""

    @property
    def api_endpoint_url(self) -> str:
        """API endpoint of the server (without the organization)."""
        parsed = urlparse(self.organization_url)
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        suffix = f"{self.virtual_directory}/" if self.virtual_directory else ""
        return f"{parsed.scheme}://{self.hostname}:{port}/{suffix}"


class CommitMessageConfig(BaseConfigModel):
    """``commit-message`` options of an update."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    prefix: str | None = None
    prefix_development: str | None = Field(default=None, alias="prefix-development")
    include: str | None = None


class GroupConfig(BaseConfigModel):
    """A dependency group of an update."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    applies_to: str | None = Field(default=None, alias="applies-to")
    dependency_type: str | None = Field(default=None, alias="dependency-type")
    patterns: list[str] = Field(default_factory=list)
    exclude_patterns: list[str] = Field(
        default_factory=list, alias="exclude-patterns"
    )
    update_types: list[str] = Field(default_factory=list, alias="update-types")


class AllowCondition(BaseConfigModel):
    """An ``allow`` entry of an update."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    dependency_name: str | None = Field(default=None, alias="dependency-name")
    dependency_type: str | None = Field(default=None, alias="dependency-type")
    update_type: str | None = Field(default=None, alias="update-type")


class IgnoreCondition(BaseConfigModel):
    """An ``ignore`` entry of an update."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    dependency_name: str = Field(alias="dependency-name")
    versions: list[str] = Field(default_factory=list)
    update_types: list[str] = Field(default_factory=list, alias="update-types")

    @field_validator("versions", mode="before")
    @classmethod
    def wrap_single_version(cls, v: Any) -> Any:
        """A single version requirement may be given as a plain string."""
        if isinstance(v, str):
            return [v]
        return v


class BranchNameConfig(BaseConfigModel):
    """``pull-request-branch-name`` options of an update."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    separator: str | None = None

    @field_validator("separator")
    @classmethod
    def validate_separator(cls, v: str | None) -> str | None:
        """Only ``/`` or letters, digits, ``-`` and ``_`` keep refs legal."""
        if v is None or v == "/" or re.fullmatch(r"[A-Za-z0-9_\-]+", v):
            return v
        raise ValueError(f"Branch name separator '{v}' is not allowed in git refs")


class UpdateConfig(BaseConfigModel):
    """One entry of ``updates`` in dependabot.yml."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    package_ecosystem: str = Field(alias="package-ecosystem")
    directory: str | None = None
    directories: list[str] | None = None
    target_branch: str | None = Field(default=None, alias="target-branch")
    open_pull_requests_limit: int = Field(
        default=5, ge=0, alias="open-pull-requests-limit"
    )
    assignees: list[str] = Field(default_factory=list)
    reviewers: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    milestone: int | None = None
    pull_request_branch_name: BranchNameConfig | None = Field(
        default=None, alias="pull-request-branch-name"
    )
    groups: dict[str, GroupConfig] = Field(default_factory=dict)
    allow: list[AllowCondition] = Field(default_factory=list)
    ignore: list[IgnoreCondition] = Field(default_factory=list)
    commit_message: CommitMessageConfig | None = Field(
        default=None, alias="commit-message"
    )
    registries: list[str] = Field(default_factory=list)
    vendor: bool = False
    versioning_strategy: str | None = Field(default=None, alias="versioning-strategy")
    insecure_external_code_execution: str | None = Field(
        default=None, alias="insecure-external-code-execution"
    )

    @field_validator("registries", mode="before")
    @classmethod
    def expand_wildcard_registries(cls, v: Any) -> Any:
        """``registries: "*"`` is kept as a single wildcard entry."""
        if isinstance(v, str):
            return [v]
        return v

    @model_validator(mode="after")
    def validate_directories(self) -> "UpdateConfig":
        """Either ``directory`` or ``directories`` is required."""
        if not self.directory and not self.directories:
            raise ValueError(
                f"Update for '{self.package_ecosystem}' must set "
                "'directory' or 'directories'"
            )
        return self

    @property
    def branch_name_separator(self) -> str | None:
        if self.pull_request_branch_name:
            return self.pull_request_branch_name.separator
        return None


class DependabotConfig(BaseConfigModel):
    """A repository's dependabot.yml."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: int = Field(default=2, description="Configuration format version")

    updates: list[UpdateConfig] = Field(description="Updates to run")

    registries: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Private registries, keyed by name"
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        """Only version 2 is supported."""
        if v != 2:
            raise ValueError(f"Unsupported dependabot.yml version {v}; expected 2")
        return v

    @field_validator("updates")
    @classmethod
    def validate_updates_not_empty(cls, v: list[UpdateConfig]) -> list[UpdateConfig]:
        """Ensure at least one update is configured."""
        if not v:
            raise ValueError("At least one update must be configured")
        return v

    @model_validator(mode="after")
    def validate_registry_references(self) -> "DependabotConfig":
        """Updates may only reference registries that are declared."""
        for update in self.updates:
            for name in update.registries:
                if name != "*" and name not in self.registries:
                    raise ValueError(
                        f"Update for '{update.package_ecosystem}' references "
                        f"undeclared registry '{name}'"
                    )
        return self
