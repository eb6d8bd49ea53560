"""Request and snapshot types exchanged with the pull request host.

These are plain, immutable data classes; they carry exactly what one
mutation needs so that repeating a request against the same repository
state is safe.
"""

from dataclasses import dataclass
from enum import Enum


class ChangeType(str, Enum):
    """Version control change types accepted by the pushes API."""

    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"


class MergeStrategy(str, Enum):
    """Merge strategies used when auto-completing a pull request."""

    NO_FAST_FORWARD = "noFastForward"
    SQUASH = "squash"
    REBASE = "rebase"
    REBASE_MERGE = "rebaseMerge"


@dataclass(frozen=True)
class FileChange:
    """A single file change to push to a branch."""

    change_type: ChangeType
    path: str
    content: str | None = None
    encoding: str | None = "utf-8"


@dataclass(frozen=True)
class PullRequestProperty:
    """A named property stored on a pull request."""

    name: str
    value: str


@dataclass(frozen=True)
class ExistingPullRequest:
    """An active pull request and the properties stored on it."""

    id: int
    properties: tuple[PullRequestProperty, ...] = ()

    def get_property(self, name: str) -> str | None:
        """Value of the first property called ``name``, if present."""
        for prop in self.properties:
            if prop.name == name:
                return prop.value
        return None


@dataclass(frozen=True)
class Author:
    """Commit author identity."""

    email: str
    name: str


@dataclass(frozen=True)
class Reviewer:
    """A resolved reviewer identity.

    Azure DevOps has no notion of assignees; assignees are sent as required
    (and flagged) reviewers.
    """

    id: str
    is_required: bool = False

    def to_api(self) -> dict[str, object]:
        """Render as an ``IdentityRefWithVote`` payload."""
        if self.is_required:
            return {"id": self.id, "isRequired": True, "isFlagged": True}
        return {"id": self.id}


@dataclass(frozen=True)
class AutoCompleteOptions:
    """Auto-complete settings for a new pull request."""

    merge_strategy: MergeStrategy = MergeStrategy.SQUASH
    ignore_policy_config_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class CreatePullRequestRequest:
    """Everything needed to push a new branch and open a pull request on it."""

    project: str
    repository: str
    source_branch: str
    source_commit: str
    target_branch: str
    author: Author
    title: str
    description: str
    commit_message: str
    changes: tuple[FileChange, ...]
    reviewers: tuple[Reviewer, ...] = ()
    labels: tuple[str, ...] = ()
    work_items: tuple[int, ...] = ()
    properties: tuple[PullRequestProperty, ...] = ()
    auto_complete: AutoCompleteOptions | None = None


@dataclass(frozen=True)
class UpdatePullRequestRequest:
    """Push new file changes onto an existing pull request's source branch."""

    project: str
    repository: str
    pull_request_id: int
    commit: str
    author: Author
    changes: tuple[FileChange, ...]
    skip_if_draft: bool = True
    skip_if_commits_from_authors_other_than: str | None = None
    skip_if_not_behind_target_branch: bool = True


@dataclass(frozen=True)
class AbandonPullRequestRequest:
    """Abandon a pull request, optionally commenting and deleting its branch."""

    project: str
    repository: str
    pull_request_id: int
    comment: str | None = None
    delete_source_branch: bool = True


@dataclass(frozen=True)
class ApprovePullRequestRequest:
    """Cast an approval vote as the authenticated user."""

    project: str
    repository: str
    pull_request_id: int

