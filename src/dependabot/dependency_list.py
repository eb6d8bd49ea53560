"""The ``Dependabot.DependencyList`` project property document.

The property holds one JSON document for the whole project, shaped::

    {repository: {package_manager: {dependencies, dependency-files, last-updated}}}

It is always rewritten as a whole (parse, merge, serialize) so that one
update never drops the entries of another repository or package manager.
"""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from .models import PROJECT_PROPERTY_NAME_DEPENDENCY_LIST


def _load_document(value: str | None) -> dict[str, Any]:
    document = json.loads(value or "{}")
    if not isinstance(document, dict):
        raise ValueError("Dependency list document is not a JSON object")
    return document


def merge_dependency_list_document(
    existing_value: str | None,
    repository: str,
    package_manager: str,
    dependencies: list[Any],
    dependency_files: list[str],
    last_updated: datetime | None = None,
) -> str:
    """Merge one repository's dependency list into the project document.

    Args:
        existing_value: Current property value; empty means no document yet
        repository: Repository name
        package_manager: Package manager of the update
        dependencies: Dependencies reported by the update tool
        dependency_files: Dependency files reported by the update tool
        last_updated: Timestamp to record; defaults to now (UTC)

    Returns:
        The serialized document with the entry replaced

    Raises:
        ValueError: If the existing value is not a JSON object
    """
    document = _load_document(existing_value)
    repository_lists = document.get(repository)
    if not isinstance(repository_lists, dict):
        repository_lists = {}
    document[repository] = repository_lists

    timestamp = (last_updated or datetime.now(UTC)).isoformat(timespec="milliseconds")
    repository_lists[package_manager] = {
        "dependencies": dependencies,
        "dependency-files": dependency_files,
        "last-updated": timestamp.replace("+00:00", "Z"),
    }
    return json.dumps(document)


def parse_project_dependency_list_property(
    properties: Mapping[str, str] | None,
    repository: str,
    package_manager: str,
) -> dict[str, Any] | None:
    """Read one repository's dependency list entry back out of project properties."""
    document = _load_document(
        (properties or {}).get(PROJECT_PROPERTY_NAME_DEPENDENCY_LIST)
    )
    repository_lists = document.get(repository)
    if not isinstance(repository_lists, dict):
        return None
    entry = repository_lists.get(package_manager)
    return entry if isinstance(entry, dict) else None
