"""Abstract contract for the pull request hosting collaborator.

The reconciler only talks to the host through this interface, which keeps
it testable with mocks and independent of the REST transport. All methods
report failure through their return value rather than raising.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from .models import (
    AbandonPullRequestRequest,
    ApprovePullRequestRequest,
    CreatePullRequestRequest,
    ExistingPullRequest,
    UpdatePullRequestRequest,
)


class PullRequestHostInterface(ABC):
    """Operations the reconciler needs from the pull request host."""

    @abstractmethod
    async def create_pull_request(
        self, request: CreatePullRequestRequest
    ) -> int | None:
        """Push the source branch and open a pull request.

        Returns:
            The new pull request id, or None on failure
        """
        pass

    @abstractmethod
    async def update_pull_request(self, request: UpdatePullRequestRequest) -> bool:
        """Push changes to an existing pull request.

        Safety skips (draft, foreign commits, already up to date) count as
        success.
        """
        pass

    @abstractmethod
    async def abandon_pull_request(self, request: AbandonPullRequestRequest) -> bool:
        """Abandon a pull request and optionally delete its source branch."""
        pass

    @abstractmethod
    async def approve_pull_request(self, request: ApprovePullRequestRequest) -> bool:
        """Approve a pull request as the authenticated user."""
        pass

    @abstractmethod
    async def get_default_branch(self, project: str, repository: str) -> str | None:
        """Default branch name of a repository, without ``refs/heads/``."""
        pass

    @abstractmethod
    async def update_project_property(
        self,
        project_id: str,
        name: str,
        value_builder: Callable[[str], str],
    ) -> bool:
        """Read-modify-write a project property as a whole value."""
        pass

    @abstractmethod
    async def get_active_pull_request_properties(
        self, project: str, repository: str, creator: str
    ) -> list[ExistingPullRequest]:
        """Active pull requests created by ``creator`` with their properties."""
        pass

    @abstractmethod
    async def get_branch_names(self, project: str, repository: str) -> list[str]:
        """Names of all branches in the repository, without ``refs/heads/``."""
        pass
