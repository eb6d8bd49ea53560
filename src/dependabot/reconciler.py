"""Reconciliation of update tool output against pull request state.

The reconciler turns each output event of one update run into at most one
mutation of the repository's pull requests (create, update, abandon) or a
no-op. It works from a snapshot of existing pull requests and branches taken
before the run, and never re-reads them while the run is in progress.

Every event yields a verdict; a failed event never stops the events after
it from being processed.
"""

import json
import logging
import posixpath
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from src.azure_devops.identities import IdentityResolver
from src.azure_devops.interfaces import PullRequestHostInterface
from src.azure_devops.models import (
    AbandonPullRequestRequest,
    ApprovePullRequestRequest,
    Author,
    AutoCompleteOptions,
    ChangeType,
    CreatePullRequestRequest,
    ExistingPullRequest,
    FileChange,
    MergeStrategy,
    PullRequestProperty,
    Reviewer,
    UpdatePullRequestRequest,
)

from .branch_name import get_branch_name_for_update
from .dependency_list import merge_dependency_list_document
from .events import (
    ClosePullRequestEvent,
    CreatePullRequestEvent,
    DependencyFile,
    IncrementMetricEvent,
    MarkAsProcessedEvent,
    OutputEvent,
    RecordEcosystemVersionsEvent,
    RecordUpdateJobErrorEvent,
    RecordUpdateJobUnknownErrorEvent,
    UnknownEvent,
    UpdateDependencyListEvent,
    UpdatePullRequestEvent,
)
from .exceptions import EventDecodeError, EventSequenceError
from .identity_index import PullRequestIdentityIndex
from .models import (
    PR_DEFAULT_AUTHOR_EMAIL,
    PR_DEFAULT_AUTHOR_NAME,
    PR_PROPERTY_NAME_DEPENDENCIES,
    PR_PROPERTY_NAME_PACKAGE_MANAGER,
    PROJECT_PROPERTY_NAME_DEPENDENCY_LIST,
    DependencyIdentity,
    DependencyRef,
    ReconciliationResult,
    UpdateOperation,
)

if TYPE_CHECKING:
    from src.config.models import TaskConfig

logger = logging.getLogger(__name__)

CLOSE_REASONS = {
    "dependencies_changed": "Looks like the dependencies have changed",
    "dependency_group_empty": (
        "Looks like the dependencies in this group are now empty"
    ),
    "dependency_removed": "Looks like {lead} is no longer a dependency",
    "up_to_date": "Looks like {lead} is up-to-date now",
    "update_no_longer_possible": "Looks like {lead} can no longer be updated",
}


@dataclass(frozen=True)
class ReconcilerConfig:
    """Behaviour switches and identity of the repository being reconciled."""

    project: str
    repository: str
    project_id: str | None = None
    author_email: str = PR_DEFAULT_AUTHOR_EMAIL
    author_name: str = PR_DEFAULT_AUTHOR_NAME
    store_dependency_list: bool = False
    skip_pull_requests: bool = False
    comment_pull_requests: bool = False
    abandon_unwanted_pull_requests: bool = True
    set_auto_complete: bool = False
    merge_strategy: MergeStrategy = MergeStrategy.SQUASH
    auto_complete_ignore_config_ids: tuple[int, ...] = ()
    auto_approve: bool = False

    @classmethod
    def from_task_config(cls, config: "TaskConfig") -> "ReconcilerConfig":
        return cls(
            project=config.project,
            repository=config.repository,
            project_id=config.project_id,
            author_email=config.author_email or PR_DEFAULT_AUTHOR_EMAIL,
            author_name=config.author_name or PR_DEFAULT_AUTHOR_NAME,
            store_dependency_list=config.store_dependency_list,
            skip_pull_requests=config.skip_pull_requests,
            comment_pull_requests=config.comment_pull_requests,
            abandon_unwanted_pull_requests=config.abandon_unwanted_pull_requests,
            set_auto_complete=config.set_auto_complete,
            merge_strategy=config.merge_strategy,
            auto_complete_ignore_config_ids=tuple(
                config.auto_complete_ignore_config_ids
            ),
            auto_approve=config.auto_approve,
        )

    @property
    def author(self) -> Author:
        return Author(email=self.author_email, name=self.author_name)


def get_close_reason_comment(
    reason: str | None, dependency_names: Sequence[str]
) -> str | None:
    """Human readable explanation for abandoning a pull request.

    The first dependency name is the lead dependency of a multi-dependency
    update. Unknown reasons yield no comment.
    """
    template = CLOSE_REASONS.get(reason or "")
    if template is None:
        return None
    lead = dependency_names[0] if dependency_names else ""
    return template.format(lead=lead) + ", so this is no longer needed."


def get_file_changes(files: Iterable[DependencyFile]) -> list[FileChange]:
    """Convert updated dependency files into file changes.

    Only regular files are pushed; symlinks and submodules are skipped.
    """
    changes = []
    for file in files:
        if file.type != "file":
            continue
        if file.deleted:
            change_type = ChangeType.DELETE
        elif file.operation == "update":
            change_type = ChangeType.EDIT
        else:
            change_type = ChangeType.ADD
        changes.append(
            FileChange(
                change_type=change_type,
                path=posixpath.normpath(
                    posixpath.join(file.directory or "/", file.name.lstrip("/"))
                ),
                content=file.content,
                encoding=file.content_encoding or "utf-8",
            )
        )
    return changes


def get_dependency_identity(event: CreatePullRequestEvent) -> DependencyIdentity:
    """Dependency identity recorded on a new pull request."""
    dependencies = tuple(
        DependencyRef(name=dep.name, version=dep.version, directory=dep.directory)
        for dep in event.dependencies
    )
    return DependencyIdentity(
        dependencies=dependencies,
        group_name=event.dependency_group.name if event.dependency_group else None,
    )


def find_conflicting_branches(
    branch_name: str, existing_branch_names: Iterable[str]
) -> list[str]:
    """Existing branches that ``branch_name`` would collide with.

    A branch cannot be created when a branch of the same name exists, when
    an existing branch is a prefix of it, or when it is a prefix of an
    existing branch.
    """
    return [
        existing
        for existing in existing_branch_names
        if branch_name.startswith(existing) or existing.startswith(branch_name)
    ]


class OutputReconciler:
    """Applies the output events of one update run to the pull request host."""

    def __init__(
        self,
        update: UpdateOperation,
        config: ReconcilerConfig,
        pr_host: PullRequestHostInterface,
        identities: IdentityResolver,
        existing_pull_requests: Iterable[ExistingPullRequest]
        | PullRequestIdentityIndex,
        existing_branch_names: Iterable[str],
        approver: PullRequestHostInterface | None = None,
    ):
        """Initialize output reconciler.

        Args:
            update: The update being run
            config: Reconciliation behaviour switches
            pr_host: Host used to create, update and abandon pull requests
            identities: Resolver for reviewer and assignee identities
            existing_pull_requests: Snapshot of active pull requests
            existing_branch_names: Snapshot of branch names
            approver: Host used for approvals; defaults to ``pr_host``
        """
        self.update = update
        self.config = config
        self.pr_host = pr_host
        self.approver = approver or pr_host
        self.identities = identities
        if isinstance(existing_pull_requests, PullRequestIdentityIndex):
            self.index = existing_pull_requests
        else:
            self.index = PullRequestIdentityIndex(existing_pull_requests)
        self.existing_branch_names = tuple(existing_branch_names)
        self._last_sequence: int | None = None

        self._handlers: dict[type, Callable[[Any], Awaitable[bool]]] = {
            UpdateDependencyListEvent: self._update_dependency_list,
            CreatePullRequestEvent: self._create_pull_request,
            UpdatePullRequestEvent: self._update_pull_request,
            ClosePullRequestEvent: self._close_pull_request,
            MarkAsProcessedEvent: self._no_action,
            RecordEcosystemVersionsEvent: self._no_action,
            IncrementMetricEvent: self._no_action,
            RecordUpdateJobErrorEvent: self._record_update_job_error,
            RecordUpdateJobUnknownErrorEvent: self._record_update_job_error,
            UnknownEvent: self._unknown_event,
        }

    @property
    def package_manager(self) -> str:
        return self.update.package_manager

    def _check_sequence(self, event: OutputEvent) -> None:
        if self._last_sequence is not None and event.sequence <= self._last_sequence:
            raise EventSequenceError(event.sequence, self._last_sequence)
        self._last_sequence = event.sequence

    async def process(self, event: OutputEvent) -> bool:
        """Reconcile a single output event.

        Returns:
            True if the event was handled (including deliberate no-ops)

        Raises:
            EventSequenceError: If the event is not newer than the last one
        """
        self._check_sequence(event)
        logger.info(f"Processing '{event.type}' (#{event.sequence})")
        logger.debug(f"Data: {event.data}")

        handler = self._handlers.get(type(event.payload), self._unknown_event)
        return await handler(event.payload)

    async def process_all(
        self, events: Iterable[OutputEvent | EventDecodeError]
    ) -> list[ReconciliationResult]:
        """Reconcile every event in order, collecting one result per event."""
        results: list[ReconciliationResult] = []
        for event in events:
            if isinstance(event, EventDecodeError):
                logger.error(f"Failed to decode output: {event}")
                results.append(
                    ReconciliationResult(
                        success=False,
                        output={
                            "type": event.event_type,
                            "data": event.details.get("data"),
                        },
                        error=event,
                    )
                )
                continue

            result = ReconciliationResult(success=True, output=event.to_output())
            try:
                result.success = await self.process(event)
            except Exception as e:
                logger.error(f"Failed to process '{event.type}': {e}")
                result.success = False
                result.error = e
            results.append(result)
            # Continue processing despite errors
        return results

    async def _no_action(self, payload: Any) -> bool:
        return True

    async def _unknown_event(self, payload: UnknownEvent) -> bool:
        logger.warning(f"Unknown output type '{payload.type}', ignoring")
        return True

    async def _record_update_job_error(
        self, payload: RecordUpdateJobErrorEvent | RecordUpdateJobUnknownErrorEvent
    ) -> bool:
        kind = "unknown error" if payload.type.endswith("unknown_error") else "error"
        logger.error(
            f"Update job {kind}: {payload.error_type} "
            f"{json.dumps(payload.error_details, default=str)}"
        )
        return False

    async def _update_dependency_list(self, payload: UpdateDependencyListEvent) -> bool:
        if not self.config.store_dependency_list:
            return True

        logger.info(
            f"Updating the dependency list snapshot for project "
            f"'{self.config.project}'"
        )
        repository = self.config.repository
        package_manager = self.package_manager

        def merge(existing_value: str) -> str:
            return merge_dependency_list_document(
                existing_value,
                repository,
                package_manager,
                payload.dependencies,
                payload.dependency_files,
            )

        return await self.pr_host.update_project_property(
            self.config.project_id or self.config.project,
            PROJECT_PROPERTY_NAME_DEPENDENCY_LIST,
            merge,
        )

    async def _resolve_reviewers(self) -> list[Reviewer]:
        """Resolve assignees (as required reviewers) and optional reviewers."""
        reviewers = []
        groups = (
            (self.update.config.assignees, True, "assignee"),
            (self.update.config.reviewers, False, "reviewer"),
        )
        for identities, is_required, role in groups:
            for identity in identities:
                identity_id = await self.identities.resolve(identity)
                if identity_id:
                    reviewers.append(Reviewer(id=identity_id, is_required=is_required))
                else:
                    logger.warning(f"Unable to resolve {role} identity '{identity}'")
        return reviewers

    def _get_directory(self, changes: Sequence[FileChange]) -> str | None:
        if self.update.config.directory:
            return self.update.config.directory
        first_path = changes[0].path if changes else ""
        for directory in self.update.config.directories or []:
            if first_path.startswith(directory):
                return directory
        return None

    async def _approve(self, pull_request_id: int) -> bool:
        return await self.approver.approve_pull_request(
            ApprovePullRequestRequest(
                project=self.config.project,
                repository=self.config.repository,
                pull_request_id=pull_request_id,
            )
        )

    async def _create_pull_request(self, payload: CreatePullRequestEvent) -> bool:
        if self.config.skip_pull_requests:
            logger.warning("Skipping pull request creation; pull requests are disabled")
            return True

        # The limit is checked against the pre-run snapshot only
        limit = self.update.config.open_pull_requests_limit
        if limit > 0 and len(self.index) >= limit:
            logger.warning(
                f"Skipping pull request creation as the maximum number of active "
                f"pull requests ({limit}) has been reached"
            )
            return True

        changes = get_file_changes(payload.updated_dependency_files)
        identity = get_dependency_identity(payload)
        target_branch = self.update.config.target_branch or (
            await self.pr_host.get_default_branch(
                self.config.project, self.config.repository
            )
        )
        if not target_branch:
            logger.error("Unable to create pull request; target branch is unknown")
            return False

        source_branch = get_branch_name_for_update(
            self.update.config.package_ecosystem,
            target_branch,
            self._get_directory(changes),
            identity.group_name,
            identity.dependencies,
            self.update.config.branch_name_separator,
        )

        if source_branch in self.existing_branch_names:
            logger.error(
                f"Unable to create pull request as source branch '{source_branch}' "
                f"already exists; delete the existing branch and try again"
            )
            return False
        conflicting = find_conflicting_branches(
            source_branch, self.existing_branch_names
        )
        if conflicting:
            logger.error(
                f"Unable to create pull request as source branch '{source_branch}' "
                f"would conflict with existing branch(es) '{', '.join(conflicting)}'; "
                f"delete the conflicting branch(es) and try again"
            )
            return False

        auto_complete = None
        if self.config.set_auto_complete:
            auto_complete = AutoCompleteOptions(
                merge_strategy=self.config.merge_strategy,
                ignore_policy_config_ids=self.config.auto_complete_ignore_config_ids,
            )

        milestone = self.update.config.milestone
        request = CreatePullRequestRequest(
            project=self.config.project,
            repository=self.config.repository,
            source_branch=source_branch,
            source_commit=payload.base_commit_sha or self.update.source_commit or "",
            target_branch=target_branch,
            author=self.config.author,
            title=payload.pr_title,
            description=payload.pr_body,
            commit_message=payload.commit_message,
            changes=tuple(changes),
            reviewers=tuple(await self._resolve_reviewers()),
            labels=tuple(
                label.strip() for label in self.update.config.labels if label.strip()
            ),
            work_items=(milestone,) if milestone else (),
            properties=(
                PullRequestProperty(
                    PR_PROPERTY_NAME_PACKAGE_MANAGER, self.package_manager
                ),
                PullRequestProperty(
                    PR_PROPERTY_NAME_DEPENDENCIES, identity.to_property_value()
                ),
            ),
            auto_complete=auto_complete,
        )
        pull_request_id = await self.pr_host.create_pull_request(request)

        if self.config.auto_approve and pull_request_id:
            await self._approve(pull_request_id)

        return bool(pull_request_id and pull_request_id > 0)

    def _find_pull_request(
        self, dependency_names: Sequence[str], action: str
    ) -> ExistingPullRequest | None:
        pull_request = self.index.find(self.package_manager, dependency_names)
        if pull_request is None:
            logger.error(
                f"Could not find pull request to {action} for package manager "
                f"'{self.package_manager}' and dependencies "
                f"'{', '.join(dependency_names)}'"
            )
        return pull_request

    async def _update_pull_request(self, payload: UpdatePullRequestEvent) -> bool:
        if self.config.skip_pull_requests:
            logger.warning("Skipping pull request update; pull requests are disabled")
            return True

        pull_request = self._find_pull_request(payload.dependency_names, "update")
        if pull_request is None:
            return False

        updated = await self.pr_host.update_pull_request(
            UpdatePullRequestRequest(
                project=self.config.project,
                repository=self.config.repository,
                pull_request_id=pull_request.id,
                commit=payload.base_commit_sha or self.update.source_commit or "",
                author=self.config.author,
                changes=tuple(get_file_changes(payload.updated_dependency_files)),
                skip_if_draft=True,
                skip_if_commits_from_authors_other_than=self.config.author_email,
                skip_if_not_behind_target_branch=True,
            )
        )

        if self.config.auto_approve and updated:
            await self._approve(pull_request.id)

        return updated

    async def _close_pull_request(self, payload: ClosePullRequestEvent) -> bool:
        if not self.config.abandon_unwanted_pull_requests:
            logger.warning(
                "Skipping pull request closure; abandoning unwanted pull requests "
                "is disabled"
            )
            return True

        pull_request = self._find_pull_request(payload.dependency_names, "close")
        if pull_request is None:
            return False

        comment = None
        if self.config.comment_pull_requests:
            comment = get_close_reason_comment(payload.reason, payload.dependency_names)

        return await self.pr_host.abandon_pull_request(
            AbandonPullRequestRequest(
                project=self.config.project,
                repository=self.config.repository,
                pull_request_id=pull_request.id,
                comment=comment,
                delete_source_branch=True,
            )
        )
