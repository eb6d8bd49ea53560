"""Types shared by the update job runner and the output reconciler."""

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.config.models import UpdateConfig

# Project property holding the dependency list snapshot of every repository
PROJECT_PROPERTY_NAME_DEPENDENCY_LIST = "Dependabot.DependencyList"

# Pull request properties identifying the update a pull request was opened for
PR_PROPERTY_NAME_PACKAGE_MANAGER = "Dependabot.PackageManager"
PR_PROPERTY_NAME_DEPENDENCIES = "Dependabot.Dependencies"

PR_DEFAULT_AUTHOR_EMAIL = "noreply@github.com"
PR_DEFAULT_AUTHOR_NAME = "dependabot[bot]"


@dataclass(frozen=True)
class DependencyRef:
    """A dependency as recorded on a pull request."""

    name: str
    version: str | None = None
    directory: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "dependency-name": self.name,
            "dependency-version": self.version,
            "directory": self.directory,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DependencyRef":
        name = data.get("dependency-name")
        if name is None:
            raise ValueError("Dependency entry has no 'dependency-name'")
        version = data.get("dependency-version")
        return cls(
            name=str(name),
            version=str(version) if version is not None else None,
            directory=data.get("directory"),
        )


@dataclass(frozen=True)
class DependencyIdentity:
    """The set of dependencies a pull request updates.

    Serialized into the ``Dependabot.Dependencies`` pull request property,
    either as a flat list of dependencies or, for grouped updates, as
    ``{"dependency-group-name": ..., "dependencies": [...]}``.
    """

    dependencies: tuple[DependencyRef, ...] = ()
    group_name: str | None = None

    @property
    def names(self) -> list[str]:
        """Dependency names, in stored order."""
        return [dep.name for dep in self.dependencies]

    def to_json(self) -> Any:
        dependencies = [dep.to_dict() for dep in self.dependencies]
        if self.group_name:
            return {
                "dependency-group-name": self.group_name,
                "dependencies": dependencies,
            }
        return dependencies

    def to_property_value(self) -> str:
        """Serialize for storage as a pull request property."""
        return json.dumps(self.to_json())

    @classmethod
    def from_property_value(cls, value: str) -> "DependencyIdentity":
        """Decode a stored ``Dependabot.Dependencies`` property.

        Raises:
            ValueError: If the value is not valid JSON of either shape
        """
        data = json.loads(value)
        group_name = None
        if isinstance(data, dict):
            group_name = data.get("dependency-group-name")
            data = data.get("dependencies")
        if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
            raise ValueError("Dependencies property is not a list of dependencies")
        return cls(
            dependencies=tuple(DependencyRef.from_dict(d) for d in data),
            group_name=group_name,
        )


@dataclass
class UpdateOperation:
    """One configured update: the tool's job document plus its source config.

    Immutable for the duration of a run by convention; the reconciler only
    reads from it.
    """

    job: dict[str, Any]
    config: "UpdateConfig"
    credentials: list[dict[str, Any]] = field(default_factory=list)

    @property
    def job_id(self) -> str:
        return str(self.job.get("id", ""))

    @property
    def package_manager(self) -> str:
        return str(self.job.get("package-manager", ""))

    @property
    def source_commit(self) -> str | None:
        return (self.job.get("source") or {}).get("commit")


@dataclass
class ReconciliationResult:
    """Outcome of reconciling one output event."""

    success: bool
    output: dict[str, Any]
    error: Exception | None = None

    @property
    def type(self) -> str | None:
        return self.output.get("type")
