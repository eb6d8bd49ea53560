"""
Test configuration and fixtures for the update task tests.

Provides pytest fixtures for task configuration, update operations, and
mocked pull request host collaborators shared by unit tests.
"""

import os
from collections.abc import Callable, Sequence
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.azure_devops.identities import IdentityResolver
from src.azure_devops.interfaces import PullRequestHostInterface
from src.azure_devops.models import ExistingPullRequest, PullRequestProperty
from src.config.models import TaskConfig, UpdateConfig
from src.dependabot.models import (
    PR_PROPERTY_NAME_DEPENDENCIES,
    PR_PROPERTY_NAME_PACKAGE_MANAGER,
    DependencyIdentity,
    DependencyRef,
    UpdateOperation,
)

TEST_ORGANIZATION_URL = "https://dev.azure.com/contoso/"


@pytest.fixture
def test_env_vars():
    """
    Set up Azure Pipelines predefined variables.

    Why: Ensures tests run with predictable pipeline configuration values
    What: Sets the collection URI, project, repository and access token
    How: Uses patch.dict to temporarily set environment variables
    """
    env_vars = {
        "SYSTEM_TEAMFOUNDATIONCOLLECTIONURI": TEST_ORGANIZATION_URL,
        "SYSTEM_TEAMPROJECT": "Fabrikam",
        "SYSTEM_TEAMPROJECTID": "0b7a5a3f-6a9f-4c44-9d3e-0a4c7e1d2b11",
        "BUILD_REPOSITORY_NAME": "web-app",
        "SYSTEM_ACCESSTOKEN": "pipeline-token",
    }

    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def task_config_data() -> dict:
    """
    Minimal valid task configuration.

    Why: Most tests need a task configuration but only care about a few fields
    What: Returns a dictionary accepted by TaskConfig
    How: Uses a cloud organization URL and a fake token
    """
    return {
        "organization_url": TEST_ORGANIZATION_URL,
        "project": "Fabrikam",
        "repository": "web-app",
        "access_token": "test-token",
    }


@pytest.fixture
def task_config(task_config_data: dict) -> TaskConfig:
    """Validated task configuration."""
    return TaskConfig(**task_config_data)


@pytest.fixture
def update_config() -> UpdateConfig:
    """An npm update entry as written in dependabot.yml."""
    return UpdateConfig(
        **{
            "package-ecosystem": "npm",
            "directory": "/",
            "open-pull-requests-limit": 5,
        }
    )


@pytest.fixture
def update_operation(update_config: UpdateConfig) -> UpdateOperation:
    """Update operation for the npm update entry."""
    return UpdateOperation(
        job={
            "id": "update-0-npm-6f1b2c3d4e",
            "package-manager": "npm_and_yarn",
            "source": {"commit": "1a2b3c4d5e6f"},
        },
        config=update_config,
    )


@pytest.fixture
def mock_pr_host() -> AsyncMock:
    """
    Mock pull request host.

    Why: Allows testing reconciliation without an Azure DevOps organization
    What: Provides an AsyncMock honouring PullRequestHostInterface
    How: Every mutation succeeds by default; tests override return values
    """
    host = AsyncMock(spec=PullRequestHostInterface)
    host.create_pull_request.return_value = 101
    host.update_pull_request.return_value = True
    host.abandon_pull_request.return_value = True
    host.approve_pull_request.return_value = True
    host.get_default_branch.return_value = "main"
    host.update_project_property.return_value = True
    host.get_active_pull_request_properties.return_value = []
    host.get_branch_names.return_value = []
    return host


@pytest.fixture
def mock_identities() -> MagicMock:
    """
    Mock identity resolver.

    Why: Reviewer resolution must not reach the identities API in unit tests
    What: Resolves every identity to ``id-<identity>``
    How: MagicMock with an AsyncMock ``resolve``
    """
    identities = MagicMock(spec=IdentityResolver)

    async def resolve(identity: str) -> str | None:
        return f"id-{identity}"

    identities.resolve = AsyncMock(side_effect=resolve)
    return identities


@pytest.fixture
def pull_request_factory() -> Callable[..., ExistingPullRequest]:
    """
    Factory for existing pull requests carrying dependency metadata.

    Why: Identity index and reconciler tests need many snapshot variants
    What: Builds ExistingPullRequest instances with stored properties
    How: Serializes a DependencyIdentity the same way created PRs are tagged
    """

    def factory(
        pull_request_id: int,
        package_manager: str,
        dependency_names: Sequence[str],
        group_name: str | None = None,
    ) -> ExistingPullRequest:
        identity = DependencyIdentity(
            dependencies=tuple(
                DependencyRef(name=name, version="1.0.0", directory="/")
                for name in dependency_names
            ),
            group_name=group_name,
        )
        return ExistingPullRequest(
            id=pull_request_id,
            properties=(
                PullRequestProperty(PR_PROPERTY_NAME_PACKAGE_MANAGER, package_manager),
                PullRequestProperty(
                    PR_PROPERTY_NAME_DEPENDENCIES, identity.to_property_value()
                ),
            ),
        )

    return factory
