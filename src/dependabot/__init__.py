"""Dependabot update jobs and reconciliation of their output."""

from .branch_name import get_branch_name_for_update
from .cli import DependabotCli, DependabotCliOptions, get_docker_image_url
from .dependency_list import (
    merge_dependency_list_document,
    parse_project_dependency_list_property,
)
from .events import OutputEvent, parse_output_event, parse_scenario_outputs
from .exceptions import (
    DependabotCliError,
    DependabotError,
    EventDecodeError,
    EventSequenceError,
)
from .identity_index import PullRequestIdentityIndex
from .job_builder import JobConfigBuilder
from .models import (
    DependencyIdentity,
    DependencyRef,
    ReconciliationResult,
    UpdateOperation,
)
from .package_managers import convert_package_ecosystem_to_package_manager
from .reconciler import OutputReconciler, ReconcilerConfig

__all__ = [
    "DependabotCli",
    "DependabotCliError",
    "DependabotCliOptions",
    "DependabotError",
    "DependencyIdentity",
    "DependencyRef",
    "EventDecodeError",
    "EventSequenceError",
    "JobConfigBuilder",
    "OutputEvent",
    "OutputReconciler",
    "PullRequestIdentityIndex",
    "ReconcilerConfig",
    "ReconciliationResult",
    "UpdateOperation",
    "convert_package_ecosystem_to_package_manager",
    "get_branch_name_for_update",
    "get_docker_image_url",
    "merge_dependency_list_document",
    "parse_output_event",
    "parse_scenario_outputs",
    "parse_project_dependency_list_property",
]
