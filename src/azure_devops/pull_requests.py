"""Azure DevOps implementation of the pull request host.

Every public method logs API failures and converts them into the failure
value of its return type; callers never see transport exceptions.
"""

import base64
import logging
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import quote

from .client import AzureDevOpsClient
from .exceptions import AzureDevOpsError, AzureDevOpsNotFoundError
from .identities import IdentityResolver, is_guid
from .interfaces import PullRequestHostInterface
from .models import (
    AbandonPullRequestRequest,
    ApprovePullRequestRequest,
    ChangeType,
    CreatePullRequestRequest,
    ExistingPullRequest,
    FileChange,
    PullRequestProperty,
    UpdatePullRequestRequest,
)

logger = logging.getLogger(__name__)

PROJECT_PROPERTIES_API_VERSION = "7.1-preview.1"
MERGE_COMMIT_MESSAGE_MAX_LENGTH = 3500
EMPTY_OBJECT_ID = "0" * 40
VOTE_APPROVED = 10
REFS_HEADS = "refs/heads/"


def normalize_devops_path(path: str) -> str:
    """Format a repository path the way Azure DevOps expects it.

    Backslashes become forward slashes, a leading ``./`` becomes ``/`` and
    a leading ``/`` is added when missing.
    """
    path = path.replace("\\", "/")
    if path.startswith("./"):
        path = "/" + path[2:]
    if not path.startswith("/"):
        path = "/" + path
    return path


def strip_refs_heads(ref_name: str | None) -> str | None:
    """Remove the ``refs/heads/`` prefix from a ref name."""
    if ref_name and ref_name.startswith(REFS_HEADS):
        return ref_name[len(REFS_HEADS) :]
    return ref_name


def merge_commit_message(pull_request_id: int, title: str, description: str) -> str:
    """Merge commit message used when auto-completing a pull request.

    Azure DevOps rejects completion options whose encoded size exceeds its
    limit, which in practice sits around 3500 characters.
    """
    message = f"Merged PR {pull_request_id}: {title}\n\n{description}"
    return message[:MERGE_COMMIT_MESSAGE_MAX_LENGTH]


def encode_content(change: FileChange) -> str:
    """Base64-encode file content for the pushes API."""
    content = change.content or ""
    if change.encoding == "base64":
        return content
    return base64.b64encode(content.encode(change.encoding or "utf-8")).decode("ascii")


def build_push_changes(changes: Iterable[FileChange]) -> list[dict[str, Any]]:
    """Render file changes as pushes API ``changes`` entries."""
    rendered = []
    for change in changes:
        entry: dict[str, Any] = {
            "changeType": change.change_type.value,
            "item": {"path": normalize_devops_path(change.path)},
        }
        if change.change_type != ChangeType.DELETE:
            entry["newContent"] = {
                "content": encode_content(change),
                "contentType": "base64encoded",
            }
        rendered.append(entry)
    return rendered


class AzureDevOpsPullRequestClient(PullRequestHostInterface):
    """Pull request host backed by the Azure DevOps Git REST API."""

    def __init__(self, client: AzureDevOpsClient, identities: IdentityResolver):
        """Initialize pull request client.

        Args:
            client: Azure DevOps REST client
            identities: Identity resolver sharing the same credentials
        """
        self.client = client
        self.identities = identities

    @staticmethod
    def _repository_path(project: str, repository: str) -> str:
        return (
            f"{quote(project, safe='')}/_apis/git/repositories/"
            f"{quote(repository, safe='')}"
        )

    async def get_default_branch(self, project: str, repository: str) -> str | None:
        """Get the default branch of a repository."""
        try:
            data = await self.client.get(self._repository_path(project, repository))
        except AzureDevOpsError as e:
            logger.error(
                f"Failed to get default branch for '{project}/{repository}': {e}"
            )
            return None
        return strip_refs_heads((data or {}).get("defaultBranch"))

    async def get_branch_names(self, project: str, repository: str) -> list[str]:
        """List all branch names in a repository."""
        path = f"{self._repository_path(project, repository)}/refs"
        try:
            refs = await self.client.paginate(
                path, params={"filter": "heads/"}
            ).collect_all()
        except AzureDevOpsError as e:
            logger.error(f"Failed to list branches for '{project}/{repository}': {e}")
            return []
        return [strip_refs_heads(ref["name"]) for ref in refs if ref.get("name")]

    async def get_repository_file_contents(
        self, project: str, repository: str, path: str
    ) -> str | None:
        """Get the contents of a file on the default branch.

        Returns:
            File contents, or None if the file does not exist or the request
            failed
        """
        try:
            data = await self.client.get(
                f"{self._repository_path(project, repository)}/items",
                params={"path": normalize_devops_path(path), "includeContent": "true"},
            )
        except AzureDevOpsNotFoundError:
            return None
        except AzureDevOpsError as e:
            logger.error(f"Failed to get file contents of '{path}': {e}")
            return None
        return (data or {}).get("content")

    async def get_active_pull_request_properties(
        self, project: str, repository: str, creator: str
    ) -> list[ExistingPullRequest]:
        """Get the properties of every active pull request created by ``creator``."""
        logger.info(
            f"Fetching active pull request properties in '{project}/{repository}' "
            f"for creator '{creator}'"
        )
        repository_path = self._repository_path(project, repository)
        try:
            creator_id = await self.identities.resolve(creator)
            if not creator_id:
                logger.warning(f"Unable to resolve creator identity '{creator}'")
                return []
            pull_requests = await self.client.paginate(
                f"{repository_path}/pullrequests",
                params={
                    "searchCriteria.creatorId": creator_id,
                    "searchCriteria.status": "active",
                },
                use_skip=True,
            ).collect_all()

            existing = []
            for pr in pull_requests:
                pr_id = pr["pullRequestId"]
                data = await self.client.get(
                    f"{repository_path}/pullrequests/{pr_id}/properties"
                )
                values = (data or {}).get("value") or {}
                properties = tuple(
                    PullRequestProperty(name=key, value=str(item.get("$value", "")))
                    for key, item in values.items()
                    if isinstance(item, dict)
                )
                existing.append(ExistingPullRequest(id=pr_id, properties=properties))
            return existing
        except AzureDevOpsError as e:
            logger.error(f"Failed to list active pull request properties: {e}")
            return []

    async def _push(
        self,
        repository_path: str,
        ref_name: str,
        old_object_id: str,
        comment: str,
        changes: Iterable[FileChange],
        author: dict[str, str] | None = None,
    ) -> Any:
        commit: dict[str, Any] = {
            "comment": comment,
            "changes": build_push_changes(changes),
        }
        if author:
            commit["author"] = author
        return await self.client.post(
            f"{repository_path}/pushes",
            {
                "refUpdates": [{"name": ref_name, "oldObjectId": old_object_id}],
                "commits": [commit],
            },
        )

    async def create_pull_request(
        self, request: CreatePullRequestRequest
    ) -> int | None:
        """Push the source branch and open a pull request from it."""
        logger.info(f"Creating pull request '{request.title}'")
        repository_path = self._repository_path(request.project, request.repository)
        try:
            user_id = await self.identities.get_authenticated_user_id()

            logger.info(
                f"Pushing {len(request.changes)} change(s) to branch "
                f"'{request.source_branch}'"
            )
            await self._push(
                repository_path,
                f"{REFS_HEADS}{request.source_branch}",
                request.source_commit,
                request.commit_message,
                request.changes,
                author={"email": request.author.email, "name": request.author.name},
            )

            logger.info(
                f"Creating pull request to merge '{request.source_branch}' "
                f"into '{request.target_branch}'"
            )
            payload: dict[str, Any] = {
                "sourceRefName": f"{REFS_HEADS}{request.source_branch}",
                "targetRefName": f"{REFS_HEADS}{request.target_branch}",
                "title": request.title,
                "description": request.description,
                "reviewers": [reviewer.to_api() for reviewer in request.reviewers],
                "workItemRefs": [{"id": str(item)} for item in request.work_items],
                "labels": [{"name": label} for label in request.labels],
                "isDraft": False,
            }
            pull_request = await self.client.post(
                f"{repository_path}/pullrequests",
                payload,
                params={"supportsIterations": "true"},
            )
            pr_id = int(pull_request["pullRequestId"])

            if request.properties:
                logger.info("Adding dependency metadata to pull request properties")
                await self.client.patch(
                    f"{repository_path}/pullrequests/{pr_id}/properties",
                    [
                        {"op": "add", "path": f"/{prop.name}", "value": prop.value}
                        for prop in request.properties
                    ],
                    json_patch=True,
                )

            if request.auto_complete:
                logger.info("Setting auto-complete")
                await self.client.patch(
                    f"{repository_path}/pullrequests/{pr_id}",
                    {
                        "autoCompleteSetBy": {"id": user_id},
                        "completionOptions": {
                            "autoCompleteIgnoreConfigIds": list(
                                request.auto_complete.ignore_policy_config_ids
                            ),
                            "deleteSourceBranch": True,
                            "mergeCommitMessage": merge_commit_message(
                                pr_id, request.title, request.description
                            ),
                            "mergeStrategy": request.auto_complete.merge_strategy.value,
                            "transitionWorkItems": False,
                        },
                    },
                )

            logger.info(f"Pull request #{pr_id} was created successfully")
            return pr_id
        except (AzureDevOpsError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to create pull request: {e}")
            return None

    async def _is_behind_target_branch(
        self, repository_path: str, pull_request: dict[str, Any]
    ) -> bool:
        stats = await self.client.get(
            f"{repository_path}/stats/branches",
            params={
                "name": strip_refs_heads(pull_request.get("sourceRefName")),
                "baseVersionDescriptor.version": strip_refs_heads(
                    pull_request.get("targetRefName")
                ),
                "baseVersionDescriptor.versionType": "branch",
            },
        )
        return int((stats or {}).get("behindCount") or 0) > 0

    async def update_pull_request(self, request: UpdatePullRequestRequest) -> bool:
        """Push new changes onto an existing pull request's source branch."""
        pr_id = request.pull_request_id
        logger.info(f"Updating pull request #{pr_id}")
        repository_path = self._repository_path(request.project, request.repository)
        try:
            pull_request = await self.client.get(
                f"{repository_path}/pullrequests/{pr_id}"
            )
            if not pull_request:
                raise AzureDevOpsNotFoundError(f"Pull request #{pr_id} not found")

            if request.skip_if_draft and pull_request.get("isDraft"):
                logger.info(f"Skipping update of #{pr_id}: pull request is a draft")
                return True

            if request.skip_if_commits_from_authors_other_than:
                commits = await self.client.paginate(
                    f"{repository_path}/pullrequests/{pr_id}/commits"
                ).collect_all()
                allowed = request.skip_if_commits_from_authors_other_than
                if any(
                    (commit.get("author") or {}).get("email") != allowed
                    for commit in commits
                ):
                    logger.info(
                        f"Skipping update of #{pr_id}: pull request has been "
                        f"modified by another user"
                    )
                    return True

            if request.skip_if_not_behind_target_branch and not (
                await self._is_behind_target_branch(repository_path, pull_request)
            ):
                logger.info(
                    f"Skipping update of #{pr_id}: source branch is not behind "
                    f"the target branch"
                )
                return True

            logger.info(
                f"Pushing {len(request.changes)} change(s) to branch "
                f"'{pull_request['sourceRefName']}'"
            )
            await self._push(
                repository_path,
                pull_request["sourceRefName"],
                pull_request["lastMergeSourceCommit"]["commitId"],
                "Resolve merge conflicts"
                if pull_request.get("mergeStatus") == "conflicts"
                else "Update dependency files",
                request.changes,
                author={"email": request.author.email, "name": request.author.name},
            )

            logger.info(f"Pull request #{pr_id} was updated successfully")
            return True
        except (AzureDevOpsError, KeyError, TypeError) as e:
            logger.error(f"Failed to update pull request #{pr_id}: {e}")
            return False

    async def approve_pull_request(self, request: ApprovePullRequestRequest) -> bool:
        """Cast an approval vote as the authenticated user."""
        pr_id = request.pull_request_id
        logger.info(f"Approving pull request #{pr_id}")
        repository_path = self._repository_path(request.project, request.repository)
        try:
            user_id = await self.identities.get_authenticated_user_id()
            await self.client.put(
                f"{repository_path}/pullrequests/{pr_id}/reviewers/{user_id}",
                {"vote": VOTE_APPROVED, "isReapprove": True},
            )
        except AzureDevOpsError as e:
            logger.error(f"Failed to approve pull request #{pr_id}: {e}")
            return False
        logger.info(f"Pull request #{pr_id} was approved")
        return True

    async def abandon_pull_request(self, request: AbandonPullRequestRequest) -> bool:
        """Abandon a pull request, commenting first and deleting its branch after."""
        pr_id = request.pull_request_id
        logger.info(f"Abandoning pull request #{pr_id}")
        repository_path = self._repository_path(request.project, request.repository)
        try:
            user_id = await self.identities.get_authenticated_user_id()

            if request.comment:
                logger.info(f"Adding comment to pull request #{pr_id}")
                await self.client.post(
                    f"{repository_path}/pullrequests/{pr_id}/threads",
                    {
                        "status": "closed",
                        "comments": [
                            {
                                "author": {"id": user_id},
                                "content": request.comment,
                                "commentType": "system",
                            }
                        ],
                    },
                )

            pull_request = await self.client.patch(
                f"{repository_path}/pullrequests/{pr_id}",
                {"status": "abandoned", "closedBy": {"id": user_id}},
            )

            if request.delete_source_branch and pull_request:
                logger.info(f"Deleting source branch of #{pr_id}")
                await self.client.post(
                    f"{repository_path}/refs",
                    [
                        {
                            "name": pull_request["sourceRefName"],
                            "oldObjectId": pull_request["lastMergeSourceCommit"][
                                "commitId"
                            ],
                            "newObjectId": EMPTY_OBJECT_ID,
                        }
                    ],
                )
        except (AzureDevOpsError, KeyError, TypeError) as e:
            logger.error(f"Failed to abandon pull request #{pr_id}: {e}")
            return False

        logger.info(f"Pull request #{pr_id} was abandoned successfully")
        return True

    async def _get_project_id(self, project: str) -> str:
        if is_guid(project):
            return project
        data = await self.client.get(f"_apis/projects/{quote(project, safe='')}")
        return str(data["id"])

    async def _fetch_project_properties(self, project_id: str) -> dict[str, str]:
        data = await self.client.get(
            f"_apis/projects/{project_id}/properties",
            api_version=PROJECT_PROPERTIES_API_VERSION,
        )
        return {
            item["name"]: item.get("value")
            for item in (data or {}).get("value") or []
            if "name" in item
        }

    async def get_project_properties(self, project: str) -> dict[str, str] | None:
        """Get all properties of a project, keyed by name."""
        try:
            project_id = await self._get_project_id(project)
            return await self._fetch_project_properties(project_id)
        except (AzureDevOpsError, KeyError) as e:
            logger.error(f"Failed to get project properties: {e}")
            return None

    async def update_project_property(
        self,
        project_id: str,
        name: str,
        value_builder: Callable[[str], str],
    ) -> bool:
        """Read-modify-write a single project property."""
        try:
            project_id = await self._get_project_id(project_id)
            properties = await self._fetch_project_properties(project_id)
            value = value_builder(properties.get(name) or "")
            await self.client.patch(
                f"_apis/projects/{project_id}/properties",
                [{"op": "add", "path": f"/{name}", "value": value}],
                json_patch=True,
                api_version=PROJECT_PROPERTIES_API_VERSION,
            )
        except (AzureDevOpsError, KeyError, ValueError) as e:
            logger.error(f"Failed to update project property '{name}': {e}")
            return False
        return True
