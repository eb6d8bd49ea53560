"""Lookup of existing pull requests by the update they were opened for.

A pull request's only durable identity across runs is the pair of
properties stored on it: the package manager and the set of dependency
names. Two pull requests match when both are equal, regardless of the order
the names were stored in.
"""

import json
import logging
from collections.abc import Iterable, Sequence

from src.azure_devops.models import ExistingPullRequest

from .models import (
    PR_PROPERTY_NAME_DEPENDENCIES,
    PR_PROPERTY_NAME_PACKAGE_MANAGER,
    DependencyIdentity,
)

logger = logging.getLogger(__name__)

IdentityKey = tuple[str, tuple[str, ...]]


def identity_key(package_manager: str, dependency_names: Iterable[str]) -> IdentityKey:
    """Order-independent key for a (package manager, dependency names) pair."""
    return package_manager, tuple(sorted(str(name) for name in dependency_names))


class PullRequestIdentityIndex:
    """Read-only index over a snapshot of existing pull requests.

    Built once per run from the snapshot fetched by the caller; it is never
    updated with pull requests created during the run.
    """

    def __init__(self, existing_pull_requests: Iterable[ExistingPullRequest]):
        self._pull_requests = tuple(existing_pull_requests)
        self._identities: dict[int, tuple[str, DependencyIdentity]] = {}
        self._index: dict[IdentityKey, ExistingPullRequest] = {}

        for pull_request in self._pull_requests:
            package_manager = pull_request.get_property(
                PR_PROPERTY_NAME_PACKAGE_MANAGER
            )
            dependencies = pull_request.get_property(PR_PROPERTY_NAME_DEPENDENCIES)
            if package_manager is None or dependencies is None:
                logger.debug(
                    f"Pull request #{pull_request.id} has no dependency metadata"
                )
                continue

            try:
                identity = DependencyIdentity.from_property_value(dependencies)
            except (ValueError, json.JSONDecodeError) as e:
                logger.warning(
                    f"Ignoring pull request #{pull_request.id} with malformed "
                    f"dependency metadata: {e}"
                )
                continue

            self._identities[pull_request.id] = (package_manager, identity)
            key = identity_key(package_manager, identity.names)
            if key in self._index:
                logger.warning(
                    f"Pull requests #{self._index[key].id} and #{pull_request.id} "
                    f"update the same dependencies; using #{self._index[key].id}"
                )
                continue
            self._index[key] = pull_request

    def __len__(self) -> int:
        return len(self._pull_requests)

    @property
    def pull_requests(self) -> tuple[ExistingPullRequest, ...]:
        return self._pull_requests

    def find(
        self, package_manager: str, dependency_names: Sequence[str]
    ) -> ExistingPullRequest | None:
        """Find the pull request opened for exactly these dependencies."""
        return self._index.get(identity_key(package_manager, dependency_names))

    def pull_requests_for_package_manager(
        self, package_manager: str
    ) -> dict[int, DependencyIdentity]:
        """Decoded dependency identities of pull requests for one package manager."""
        return {
            pr_id: identity
            for pr_id, (pm, identity) in self._identities.items()
            if pm == package_manager
        }
