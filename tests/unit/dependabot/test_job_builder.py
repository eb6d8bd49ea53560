"""
Unit tests for the update job builder.

Why: The job document is the whole contract with the update tool; a wrong
     key silently changes which updates are proposed.

What: Tests JobConfigBuilder job keys, existing pull request reporting and
      credentials.

How: Parses dependabot.yml content and builds jobs from it.
"""

import os
from unittest.mock import patch

import pytest

from src.config.loader import parse_dependabot_config
from src.config.models import TaskConfig
from src.dependabot.identity_index import PullRequestIdentityIndex
from src.dependabot.job_builder import JobConfigBuilder

DEPENDABOT_YAML = """
version: 2
registries:
  npm-feed:
    type: npm-registry
    url: https://pkgs.dev.azure.com/contoso/_packaging/feed/npm/registry/
    token: ${{ FEED_TOKEN }}
  nuget-feed:
    type: nuget-feed
    url: https://pkgs.dev.azure.com/contoso/_packaging/feed/nuget/v3/index.json
    username: build
    password: secret
updates:
  - package-ecosystem: npm
    directory: /
    target-branch: main
    registries:
      - npm-feed
    groups:
      frontend:
        patterns: ["react*"]
        exclude-patterns: ["react-native"]
    ignore:
      - dependency-name: express
        versions: ["4.x", "5.x"]
      - dependency-name: lodash
        update-types: ["version-update:semver-major"]
    commit-message:
      prefix: deps
      prefix-development: deps-dev
      include: scope
    versioning-strategy: increase
  - package-ecosystem: nuget
    directories: ["/src", "/tests"]
    open-pull-requests-limit: 0
    registries: "*"
    allow:
      - dependency-type: direct
"""


@pytest.fixture
def dependabot_config():
    """Parsed dependabot.yml with the feed token substituted."""
    with patch.dict(os.environ, {"FEED_TOKEN": "feed-token"}):
        return parse_dependabot_config(DEPENDABOT_YAML)


@pytest.fixture
def builder(task_config: TaskConfig, dependabot_config) -> JobConfigBuilder:
    """Job builder for the test repository."""
    return JobConfigBuilder(task_config, dependabot_config)


class TestJobConfigBuilder:
    """Test JobConfigBuilder job documents."""

    def test_job_basics(self, builder: JobConfigBuilder, dependabot_config) -> None:
        """Test identity, source and defaults of a job."""
        operation = builder.build_update_job(0, dependabot_config.updates[0])
        job = operation.job

        assert job["id"].startswith("update-0-npm-")
        assert operation.package_manager == "npm_and_yarn"
        assert job["source"] == {
            "provider": "azure",
            "api-endpoint": "https://dev.azure.com:443/",
            "hostname": "dev.azure.com",
            "repo": "contoso/Fabrikam/_git/web-app",
            "branch": "main",
            "directory": "/",
        }
        assert job["allowed-updates"] == [
            {"dependency-type": "direct", "update-type": "all"}
        ]
        assert job["security-updates-only"] is False
        assert job["reject-external-code"] is True
        assert job["requirements-update-strategy"] == "bump_versions"
        assert job["existing-pull-requests"] == []
        assert operation.config is dependabot_config.updates[0]

    def test_job_id_is_stable(self, builder: JobConfigBuilder, dependabot_config) -> None:
        """Test the same update always gets the same job id."""
        update = dependabot_config.updates[0]

        assert (
            builder.build_update_job(0, update).job_id
            == builder.build_update_job(0, update).job_id
        )

    def test_groups_ignore_and_commit_message(
        self, builder: JobConfigBuilder, dependabot_config
    ) -> None:
        """Test dependabot.yml options are translated to job keys."""
        job = builder.build_update_job(0, dependabot_config.updates[0]).job

        assert job["dependency-groups"] == [
            {
                "name": "frontend",
                "applies-to": None,
                "rules": {
                    "patterns": ["react*"],
                    "exclude-patterns": ["react-native"],
                },
            }
        ]
        assert job["ignore-conditions"] == [
            {
                "dependency-name": "express",
                "source": "dependabot.yml",
                "version-requirement": "4.x, 5.x",
            },
            {
                "dependency-name": "lodash",
                "source": "dependabot.yml",
                "update-types": ["version-update:semver-major"],
            },
        ]
        assert job["commit-message-options"] == {
            "prefix": "deps",
            "prefix-development": "deps-dev",
            "include-scope": True,
        }

    def test_directories_and_security_only(
        self, builder: JobConfigBuilder, dependabot_config
    ) -> None:
        """Test multi-directory updates and a zero open PR limit."""
        job = builder.build_update_job(1, dependabot_config.updates[1]).job

        assert job["source"]["directories"] == ["/src", "/tests"]
        assert "directory" not in job["source"]
        assert job["security-updates-only"] is True
        assert job["allowed-updates"] == [{"dependency-type": "direct"}]
        assert job["commit-message-options"] is None

    def test_existing_pull_requests(
        self, builder: JobConfigBuilder, dependabot_config, pull_request_factory
    ) -> None:
        """Test existing PRs are reported per package manager."""
        index = PullRequestIdentityIndex(
            [
                pull_request_factory(1, "npm_and_yarn", ["lodash"]),
                pull_request_factory(2, "npm_and_yarn", ["react"], group_name="frontend"),
                pull_request_factory(3, "nuget", ["Newtonsoft.Json"]),
            ]
        )

        job = builder.build_update_job(0, dependabot_config.updates[0], index).job

        assert job["existing-pull-requests"] == [
            [
                {
                    "dependency-name": "lodash",
                    "dependency-version": "1.0.0",
                    "directory": "/",
                }
            ]
        ]
        assert job["existing-group-pull-requests"] == [
            {
                "dependency-group-name": "frontend",
                "dependencies": [
                    {
                        "dependency-name": "react",
                        "dependency-version": "1.0.0",
                        "directory": "/",
                    }
                ],
            }
        ]


class TestCredentials:
    """Test credentials passed to the update tool."""

    def test_git_source_and_referenced_registry(
        self, builder: JobConfigBuilder, dependabot_config
    ) -> None:
        """Test the organization host and referenced registries are included."""
        credentials = builder.build_update_job(0, dependabot_config.updates[0]).credentials

        assert credentials[0] == {
            "type": "git_source",
            "host": "dev.azure.com",
            "username": "x-access-token",
            "password": "test-token",
        }
        assert credentials[1] == {
            "type": "npm-registry",
            "registry": "pkgs.dev.azure.com/contoso/_packaging/feed/npm/registry",
            "token": "feed-token",
        }
        assert len(credentials) == 2

    def test_wildcard_registries(
        self, builder: JobConfigBuilder, dependabot_config
    ) -> None:
        """Test ``*`` includes every declared registry."""
        credentials = builder.build_update_job(1, dependabot_config.updates[1]).credentials

        types = [credential["type"] for credential in credentials]
        assert types == ["git_source", "npm-registry", "nuget-feed"]
        assert credentials[2]["url"].endswith("/nuget/v3/index.json")

    def test_github_token(self, task_config_data: dict, dependabot_config) -> None:
        """Test a GitHub token adds a github.com credential."""
        task_config = TaskConfig(**task_config_data, github_access_token="gh-token")
        builder = JobConfigBuilder(task_config, dependabot_config)

        credentials = builder.build_update_job(0, dependabot_config.updates[0]).credentials

        assert {
            "type": "git_source",
            "host": "github.com",
            "username": "x-access-token",
            "password": "gh-token",
        } in credentials
