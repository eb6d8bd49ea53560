"""Deterministic source branch names for update pull requests.

Names follow dependabot-core's layout so that repeated runs of the same
update always produce the same branch:

    dependabot/<ecosystem>/<target-branch>/<directory>/<segment>

where the segment is the group name, the single dependency, or a digest
of all updated dependencies.
"""

import hashlib
import re
from collections.abc import Sequence

from .models import DependencyRef

# Azure DevOps limits ref names to 256 characters, including "refs/heads/"
MAX_BRANCH_NAME_LENGTH = 245
DIGEST_LENGTH = 10
MIN_SEGMENT_LENGTH = 8

_FORBIDDEN_REF_CHARACTERS = re.compile(r"[^A-Za-z0-9/\-_.(){}]")
_SEPARATOR = re.compile(r"[A-Za-z0-9_\-]+")


def sanitize_ref_name(ref: str) -> str:
    """Make ``ref`` a legal git ref name.

    Stricter than git itself for cosmetic reasons: characters outside
    ``[A-Za-z0-9/-_.(){}]`` are removed, slashes cannot be followed by
    periods, consecutive periods and slashes are squeezed, and trailing
    periods are dropped.
    """
    ref = _FORBIDDEN_REF_CHARACTERS.sub("", ref)
    ref = ref.replace("/.", "/dot-")
    ref = re.sub(r"\.{2,}", ".", ref)
    ref = re.sub(r"/{2,}", "/", ref)
    ref = re.sub(r"\.+$", "", ref)
    return ref.lstrip("/")


def sanitize_dependency_name(name: str) -> str:
    """Replace characters common in package names but illegal in refs."""
    for character in ":[]":
        name = name.replace(character, "-")
    return name.replace("@", "")


def _dependencies_digest(dependencies: Sequence[DependencyRef]) -> str:
    pairs = sorted(f"{dep.name}-{dep.version or 'removed'}" for dep in dependencies)
    return hashlib.md5(",".join(pairs).encode("utf-8")).hexdigest()[:DIGEST_LENGTH]


def _branch_segment(
    dependency_group_name: str | None, dependencies: Sequence[DependencyRef]
) -> str:
    if dependency_group_name:
        return f"{dependency_group_name}-{_dependencies_digest(dependencies)}"
    if len(dependencies) > 1:
        return f"all-{_dependencies_digest(dependencies)}"
    if len(dependencies) == 1:
        dependency = dependencies[0]
        name = sanitize_dependency_name(dependency.name)
        return f"{name}-{dependency.version or 'removed'}"
    return "all"


def _shorten_prefix(prefix: str, separator: str, length: int) -> str:
    head = prefix[: max(length - len(separator), 0)].rstrip(f"./-{separator}")
    return f"{head}{separator}" if head else ""


def get_branch_name_for_update(
    package_ecosystem: str,
    target_branch: str | None,
    directory: str | None,
    dependency_group_name: str | None,
    dependencies: Sequence[DependencyRef],
    separator: str | None = "/",
    max_length: int = MAX_BRANCH_NAME_LENGTH,
) -> str:
    """Compute the source branch name for an update.

    Args:
        package_ecosystem: Package ecosystem of the update
        target_branch: Branch the pull request targets
        directory: Directory of the update; ``/`` contributes nothing
        dependency_group_name: Name of the dependency group, if grouped
        dependencies: Dependencies the update touches
        separator: Replacement for ``/`` between name parts; anything other
            than ``/`` or letters, digits, ``-`` and ``_`` is ignored
        max_length: Maximum length of the returned name

    Returns:
        A sanitized, deterministic branch name no longer than ``max_length``
    """
    if not separator or not _SEPARATOR.fullmatch(separator):
        separator = "/"
    directory_part = (directory or "").strip("/").replace(" ", "-")
    prefix_parts = ["dependabot", package_ecosystem, target_branch, directory_part]
    prefix = sanitize_ref_name("/".join(part for part in prefix_parts if part))
    prefix = prefix.rstrip("/")
    segment = sanitize_ref_name(_branch_segment(dependency_group_name, dependencies))

    branch_name = sanitize_ref_name(f"{prefix}/{segment}")
    if separator != "/":
        branch_name = branch_name.replace("/", separator)
        prefix = prefix.replace("/", separator)

    if len(branch_name) <= max_length:
        return branch_name

    # The digest of the full name keeps shortened names distinct
    digest = hashlib.sha1(branch_name.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
    budget = max_length - len(digest) - 1
    head = f"{prefix}{separator}"
    if len(head) > budget - MIN_SEGMENT_LENGTH:
        # An over-long directory or target branch gives up half the budget
        head = _shorten_prefix(prefix, separator, budget // 2)
    segment_part = branch_name[len(prefix) + len(separator) :]
    truncated = segment_part[: budget - len(head)].rstrip(f"./-{separator}")
    if not truncated:
        return f"{head}{digest}"
    return f"{head}{truncated}-{digest}"
