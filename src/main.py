"""Entry point for running dependency updates against an Azure DevOps repository.

For each update in the repository's dependabot.yml, the task snapshots the
active pull requests and branches, runs the update job once and reconciles
every output event against that snapshot. The process exits non-zero when
any event or update failed.
"""

import asyncio
import logging
import sys
from typing import Any

from src.azure_devops.auth import PersonalAccessTokenAuth
from src.azure_devops.client import AzureDevOpsClient, AzureDevOpsClientConfig
from src.azure_devops.identities import IdentityResolver
from src.azure_devops.pull_requests import AzureDevOpsPullRequestClient
from src.config.exceptions import ConfigurationError, DependabotConfigNotFoundError
from src.config.loader import (
    DEPENDABOT_CONFIG_PATHS,
    ConfigurationLoader,
    find_dependabot_config_file,
    load_dependabot_config,
    parse_dependabot_config,
)
from src.config.models import DependabotConfig, TaskConfig, UpdateConfig
from src.dependabot.cli import DependabotCli, DependabotCliOptions
from src.dependabot.identity_index import PullRequestIdentityIndex
from src.dependabot.job_builder import JobConfigBuilder
from src.dependabot.models import ReconciliationResult
from src.dependabot.reconciler import OutputReconciler, ReconcilerConfig

logger = logging.getLogger(__name__)


def _create_client(config: TaskConfig, token: str) -> AzureDevOpsClient:
    return AzureDevOpsClient(
        config.organization_url,
        PersonalAccessTokenAuth(token, config.access_user),
        AzureDevOpsClientConfig(
            timeout=config.client.timeout,
            max_retries=config.client.max_retries,
            retry_backoff_factor=config.client.retry_backoff_factor,
            max_concurrent_requests=config.client.max_concurrent_requests,
        ),
    )


class DependabotTask:
    """Runs every configured update for one repository."""

    def __init__(self, config: TaskConfig, cli: DependabotCli | None = None):
        self.config = config
        self.cli = cli or DependabotCli(
            tool_image=config.dependabot_cli_image, debug=config.debug
        )
        self.client = _create_client(config, config.access_token)
        self.identities = IdentityResolver(self.client)
        self.pr_host = AzureDevOpsPullRequestClient(self.client, self.identities)

        # Approvals come from a second user when its token is configured
        self.approver_client: AzureDevOpsClient | None = None
        self.approver: AzureDevOpsPullRequestClient | None = None
        if config.auto_approve and config.auto_approve_user_token:
            self.approver_client = _create_client(
                config, config.auto_approve_user_token
            )
            self.approver = AzureDevOpsPullRequestClient(
                self.approver_client, IdentityResolver(self.approver_client)
            )

        self.stats: dict[str, Any] = {
            "updates_run": 0,
            "updates_failed": 0,
            "events_processed": 0,
            "events_failed": 0,
        }

    async def load_dependabot_config(self) -> DependabotConfig:
        """Load dependabot.yml from the configured path, the checkout or the API.

        Raises:
            DependabotConfigNotFoundError: If no dependabot.yml can be found
        """
        config = self.config
        if config.dependabot_config_path:
            return load_dependabot_config(config.dependabot_config_path)

        if config.repository_source_path:
            path = find_dependabot_config_file(config.repository_source_path)
            if path:
                logger.info(f"Using dependabot configuration from '{path}'")
                return load_dependabot_config(path)

        for path in DEPENDABOT_CONFIG_PATHS:
            content = await self.pr_host.get_repository_file_contents(
                config.project, config.repository, path
            )
            if content:
                logger.info(f"Using dependabot configuration from '/{path}'")
                return parse_dependabot_config(content, path)

        raise DependabotConfigNotFoundError(DEPENDABOT_CONFIG_PATHS)

    def _cli_options(self) -> DependabotCliOptions:
        config = self.config
        return DependabotCliOptions(
            source_provider="azure",
            source_local_path=config.repository_source_path,
            azure_devops_access_token=config.access_token,
            github_access_token=config.github_access_token,
            collector_image=config.dependabot_collector_image,
            collector_config_path=config.dependabot_collector_config_path,
            proxy_image=config.dependabot_proxy_image,
            updater_image=config.dependabot_updater_image,
            flamegraph=config.flamegraph,
        )

    async def run(self) -> bool:
        """Run the selected updates.

        Returns:
            True if every update and every output event succeeded
        """
        config = self.config
        dependabot_config = await self.load_dependabot_config()
        builder = JobConfigBuilder(config, dependabot_config)
        reconciler_config = ReconcilerConfig.from_task_config(config)
        creator = await self.identities.get_authenticated_user_id()

        success = True
        for index, update in enumerate(dependabot_config.updates):
            if config.target_update_ids and index not in config.target_update_ids:
                logger.debug(f"Skipping update {index}; not a targeted update")
                continue

            try:
                results = await self._run_update(
                    index, update, builder, reconciler_config, creator
                )
            except Exception as e:
                logger.error(
                    f"Update {index} ({update.package_ecosystem}) failed: {e}"
                )
                self.stats["updates_failed"] += 1
                success = False
                # Continue processing despite errors
                continue

            self.stats["updates_run"] += 1
            for result in results or []:
                self.stats["events_processed"] += 1
                if not result.success:
                    self.stats["events_failed"] += 1
                    success = False

        logger.info(
            f"Finished {self.stats['updates_run']} update(s): "
            f"{self.stats['events_processed']} event(s) processed, "
            f"{self.stats['events_failed']} failed"
        )
        return success

    async def _run_update(
        self,
        index: int,
        update: UpdateConfig,
        builder: JobConfigBuilder,
        reconciler_config: ReconcilerConfig,
        creator: str,
    ) -> list[ReconciliationResult] | None:
        config = self.config
        existing_pull_requests = await self.pr_host.get_active_pull_request_properties(
            config.project, config.repository, creator
        )
        existing_branch_names = await self.pr_host.get_branch_names(
            config.project, config.repository
        )
        pull_requests = PullRequestIdentityIndex(existing_pull_requests)

        operation = builder.build_update_job(index, update, pull_requests)
        reconciler = OutputReconciler(
            update=operation,
            config=reconciler_config,
            pr_host=self.pr_host,
            identities=self.identities,
            existing_pull_requests=pull_requests,
            existing_branch_names=existing_branch_names,
            approver=self.approver,
        )
        return await self.cli.update(operation, reconciler, self._cli_options())

    async def cleanup(self) -> None:
        """Close API sessions and remove job files."""
        await self.client.close()
        if self.approver_client:
            await self.approver_client.close()
        if not self.config.debug:
            self.cli.cleanup()


async def main() -> None:
    """Main entry point for the dependency update task."""
    import argparse

    parser = argparse.ArgumentParser(description="Dependabot for Azure DevOps")
    parser.add_argument(
        "--config",
        help="Task configuration file; Azure Pipelines variables are used if omitted",
    )
    parser.add_argument("--log-level", help="Log level")

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, (args.log_level or "INFO").upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    loader = ConfigurationLoader()
    try:
        if args.config:
            config = loader.load_from_file(args.config)
        else:
            config = loader.load_from_environment()
    except ConfigurationError as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    if not args.log_level:
        level = "DEBUG" if config.debug else config.log_level.value
        logging.getLogger().setLevel(getattr(logging, level))

    task = DependabotTask(config)
    try:
        success = await task.run()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        success = False
    except Exception as e:
        logger.error(f"Task failed: {e}")
        success = False
    finally:
        await task.cleanup()

    if not success:
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
