"""
Unit tests for the dependency list project property document.

Why: One project property is shared by every repository and package manager
     in the project; an update must never drop another entry.

What: Tests merge_dependency_list_document and
      parse_project_dependency_list_property.

How: Round-trips documents through merge and parse.
"""

import json
from datetime import UTC, datetime

import pytest

from src.dependabot.dependency_list import (
    merge_dependency_list_document,
    parse_project_dependency_list_property,
)
from src.dependabot.models import PROJECT_PROPERTY_NAME_DEPENDENCY_LIST

TIMESTAMP = datetime(2024, 5, 1, 12, 30, 0, tzinfo=UTC)


class TestMergeDependencyListDocument:
    """Test merging into the project document."""

    def test_creates_document(self) -> None:
        """Test an empty property starts a new document."""
        value = merge_dependency_list_document(
            "", "web-app", "npm_and_yarn", [{"name": "lodash"}], ["/package.json"],
            last_updated=TIMESTAMP,
        )

        assert json.loads(value) == {
            "web-app": {
                "npm_and_yarn": {
                    "dependencies": [{"name": "lodash"}],
                    "dependency-files": ["/package.json"],
                    "last-updated": "2024-05-01T12:30:00.000Z",
                }
            }
        }

    def test_preserves_other_entries(self) -> None:
        """Test other repositories and package managers survive a merge."""
        existing = json.dumps(
            {
                "api": {"pip": {"dependencies": [{"name": "requests"}]}},
                "web-app": {"nuget": {"dependencies": []}},
            }
        )

        merged = json.loads(
            merge_dependency_list_document(
                existing, "web-app", "npm_and_yarn", [], [], last_updated=TIMESTAMP
            )
        )

        assert merged["api"] == {"pip": {"dependencies": [{"name": "requests"}]}}
        assert merged["web-app"]["nuget"] == {"dependencies": []}
        assert "npm_and_yarn" in merged["web-app"]

    def test_replaces_existing_entry(self) -> None:
        """Test the entry for the same repository and manager is replaced."""
        existing = merge_dependency_list_document(
            None, "web-app", "npm_and_yarn", [{"name": "old"}], []
        )

        merged = json.loads(
            merge_dependency_list_document(
                existing, "web-app", "npm_and_yarn", [{"name": "new"}], []
            )
        )

        assert merged["web-app"]["npm_and_yarn"]["dependencies"] == [{"name": "new"}]

    def test_rejects_non_object_document(self) -> None:
        """Test a property that is not a JSON object is refused."""
        with pytest.raises(ValueError):
            merge_dependency_list_document("[1, 2]", "web-app", "npm_and_yarn", [], [])


class TestParseProjectDependencyListProperty:
    """Test reading entries back from project properties."""

    def test_round_trip(self) -> None:
        """Test a merged entry can be read back."""
        value = merge_dependency_list_document(
            "{}", "web-app", "npm_and_yarn", [{"name": "lodash"}], []
        )
        properties = {PROJECT_PROPERTY_NAME_DEPENDENCY_LIST: value}

        entry = parse_project_dependency_list_property(
            properties, "web-app", "npm_and_yarn"
        )

        assert entry is not None
        assert entry["dependencies"] == [{"name": "lodash"}]

    def test_missing_entries(self) -> None:
        """Test absent properties, repositories and managers yield None."""
        value = merge_dependency_list_document("{}", "web-app", "npm_and_yarn", [], [])
        properties = {PROJECT_PROPERTY_NAME_DEPENDENCY_LIST: value}

        assert parse_project_dependency_list_property(None, "web-app", "npm") is None
        assert parse_project_dependency_list_property(properties, "api", "pip") is None
        assert (
            parse_project_dependency_list_property(properties, "web-app", "pip")
            is None
        )
