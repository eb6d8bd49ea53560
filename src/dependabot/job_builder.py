"""Builds the update tool's job document from the task configuration.

The job model is documented by the tool itself:
https://github.com/dependabot/cli/blob/main/internal/model/job.go
"""

import hashlib
import logging
from typing import Any

from src.config.models import DependabotConfig, TaskConfig, UpdateConfig

from .identity_index import PullRequestIdentityIndex
from .models import DependencyIdentity, UpdateOperation
from .package_managers import convert_package_ecosystem_to_package_manager

logger = logging.getLogger(__name__)

REQUIREMENTS_UPDATE_STRATEGIES = {
    "increase": "bump_versions",
    "increase-if-necessary": "bump_versions_if_necessary",
    "lockfile-only": "lockfile_only",
    "widen": "widen_ranges",
}

# Registry types that take a host name rather than a URL
REGISTRY_KEYS_BY_TYPE = {
    "docker-registry": "registry",
    "npm-registry": "registry",
    "composer-repository": "url",
    "python-index": "index-url",
    "terraform-registry": "host",
    "nuget-feed": "url",
    "hex-organization": "organization",
    "cargo-registry": "registry",
}


def _strip_scheme(url: str) -> str:
    return url.split("://", 1)[-1].rstrip("/")


def _job_id(update_index: int, update: UpdateConfig) -> str:
    directories = update.directory or ",".join(update.directories or [])
    digest = hashlib.md5(directories.encode("utf-8")).hexdigest()[:10]
    return f"update-{update_index}-{update.package_ecosystem}-{digest}"


class JobConfigBuilder:
    """Translates one dependabot.yml update into an ``UpdateOperation``."""

    def __init__(self, task: TaskConfig, dependabot_config: DependabotConfig):
        """Initialize job builder.

        Args:
            task: Task configuration
            dependabot_config: The repository's dependabot.yml
        """
        self.task = task
        self.dependabot_config = dependabot_config

    def build_update_job(
        self,
        update_index: int,
        update: UpdateConfig,
        existing_pull_requests: PullRequestIdentityIndex | None = None,
    ) -> UpdateOperation:
        """Build the job and credentials for one configured update.

        Args:
            update_index: Position of the update in dependabot.yml
            update: The update entry
            existing_pull_requests: Index of the active pull requests, reported to
                the tool so it can decide between creating and updating

        Returns:
            The update operation for the tool to run
        """
        package_manager = convert_package_ecosystem_to_package_manager(
            update.package_ecosystem
        )
        existing, existing_groups = self._existing_pull_requests(
            package_manager, existing_pull_requests
        )

        job: dict[str, Any] = {
            "id": _job_id(update_index, update),
            "package-manager": package_manager,
            "updating-a-pull-request": False,
            "dependency-groups": self._dependency_groups(update),
            "allowed-updates": self._allowed_updates(update),
            "ignore-conditions": self._ignore_conditions(update),
            "security-updates-only": update.open_pull_requests_limit == 0,
            "security-advisories": [],
            "source": self._source(update),
            "existing-pull-requests": existing,
            "existing-group-pull-requests": existing_groups,
            "commit-message-options": self._commit_message_options(update),
            "experiments": dict(self.task.experiments),
            "reject-external-code": update.insecure_external_code_execution
            != "allow",
            "repo-private": True,
            "lockfile-only": update.versioning_strategy == "lockfile-only",
            "requirements-update-strategy": REQUIREMENTS_UPDATE_STRATEGIES.get(
                update.versioning_strategy or ""
            ),
            "update-subdependencies": False,
            "vendor-dependencies": update.vendor,
            "debug": self.task.debug,
        }

        return UpdateOperation(
            job=job, config=update, credentials=self._credentials(update)
        )

    def _source(self, update: UpdateConfig) -> dict[str, Any]:
        task = self.task
        source: dict[str, Any] = {
            "provider": "azure",
            "api-endpoint": task.api_endpoint_url,
            "hostname": task.hostname,
            "repo": f"{task.organization}/{task.project}/_git/{task.repository}",
            "branch": update.target_branch,
        }
        if update.directory:
            source["directory"] = update.directory
        else:
            source["directories"] = list(update.directories or [])
        return source

    @staticmethod
    def _dependency_groups(update: UpdateConfig) -> list[dict[str, Any]]:
        groups = []
        for name, group in update.groups.items():
            rules: dict[str, Any] = {}
            if group.patterns:
                rules["patterns"] = group.patterns
            if group.exclude_patterns:
                rules["exclude-patterns"] = group.exclude_patterns
            if group.dependency_type:
                rules["dependency-type"] = group.dependency_type
            if group.update_types:
                rules["update-types"] = group.update_types
            groups.append(
                {"name": name, "applies-to": group.applies_to, "rules": rules}
            )
        return groups

    @staticmethod
    def _allowed_updates(update: UpdateConfig) -> list[dict[str, Any]]:
        if not update.allow:
            return [{"dependency-type": "direct", "update-type": "all"}]
        allowed = []
        for condition in update.allow:
            entry = {
                "dependency-name": condition.dependency_name,
                "dependency-type": condition.dependency_type,
                "update-type": condition.update_type,
            }
            allowed.append({k: v for k, v in entry.items() if v is not None})
        return allowed

    @staticmethod
    def _ignore_conditions(update: UpdateConfig) -> list[dict[str, Any]]:
        conditions = []
        for condition in update.ignore:
            entry: dict[str, Any] = {
                "dependency-name": condition.dependency_name,
                "source": "dependabot.yml",
            }
            if condition.versions:
                entry["version-requirement"] = ", ".join(condition.versions)
            if condition.update_types:
                entry["update-types"] = condition.update_types
            conditions.append(entry)
        return conditions

    @staticmethod
    def _commit_message_options(update: UpdateConfig) -> dict[str, Any] | None:
        options = update.commit_message
        if options is None:
            return None
        return {
            "prefix": options.prefix,
            "prefix-development": options.prefix_development,
            "include-scope": options.include == "scope",
        }

    @staticmethod
    def _existing_pull_requests(
        package_manager: str, index: PullRequestIdentityIndex | None
    ) -> tuple[list[list[dict[str, Any]]], list[dict[str, Any]]]:
        existing: list[list[dict[str, Any]]] = []
        existing_groups: list[dict[str, Any]] = []
        if index is None:
            return existing, existing_groups

        identities: dict[int, DependencyIdentity] = (
            index.pull_requests_for_package_manager(package_manager)
        )
        for identity in identities.values():
            dependencies = [dep.to_dict() for dep in identity.dependencies]
            if identity.group_name:
                existing_groups.append(
                    {
                        "dependency-group-name": identity.group_name,
                        "dependencies": dependencies,
                    }
                )
            else:
                existing.append(dependencies)
        return existing, existing_groups

    def _credentials(self, update: UpdateConfig) -> list[dict[str, Any]]:
        task = self.task
        credentials: list[dict[str, Any]] = [
            {
                "type": "git_source",
                "host": task.hostname,
                "username": task.access_user or "x-access-token",
                "password": task.access_token,
            }
        ]
        if task.github_access_token:
            credentials.append(
                {
                    "type": "git_source",
                    "host": "github.com",
                    "username": "x-access-token",
                    "password": task.github_access_token,
                }
            )

        registries = self.dependabot_config.registries
        names = list(registries) if "*" in update.registries else update.registries
        for name in names:
            registry = registries.get(name)
            if registry is None:
                logger.warning(f"Registry '{name}' is not declared; skipping")
                continue
            credentials.append(self._registry_credential(registry))
        return credentials

    @staticmethod
    def _registry_credential(registry: dict[str, Any]) -> dict[str, Any]:
        credential = {k: v for k, v in registry.items() if k != "url"}
        url = registry.get("url")
        if url:
            key = REGISTRY_KEYS_BY_TYPE.get(str(registry.get("type")), "url")
            credential[key] = url if key in ("url", "index-url") else _strip_scheme(url)
        return credential
