"""Azure DevOps API client package."""

from .auth import AuthProvider, AuthToken, PersonalAccessTokenAuth
from .client import ApiResponse, AzureDevOpsClient, AzureDevOpsClientConfig
from .exceptions import (
    AzureDevOpsAuthenticationError,
    AzureDevOpsConnectionError,
    AzureDevOpsError,
    AzureDevOpsNotFoundError,
    AzureDevOpsRateLimitError,
    AzureDevOpsServerError,
    AzureDevOpsTimeoutError,
    AzureDevOpsValidationError,
)
from .identities import IdentityResolver, is_guid
from .interfaces import PullRequestHostInterface
from .models import (
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
from .pagination import AsyncPaginator, PaginatedResponse
from .pull_requests import AzureDevOpsPullRequestClient, normalize_devops_path
from .rate_limiting import CircuitBreaker, RateLimitInfo, RateLimitManager

__all__ = [
    "AbandonPullRequestRequest",
    "ApiResponse",
    "ApprovePullRequestRequest",
    "AsyncPaginator",
    "AuthProvider",
    "AuthToken",
    "Author",
    "AutoCompleteOptions",
    "AzureDevOpsAuthenticationError",
    "AzureDevOpsClient",
    "AzureDevOpsClientConfig",
    "AzureDevOpsConnectionError",
    "AzureDevOpsError",
    "AzureDevOpsNotFoundError",
    "AzureDevOpsPullRequestClient",
    "AzureDevOpsRateLimitError",
    "AzureDevOpsServerError",
    "AzureDevOpsTimeoutError",
    "AzureDevOpsValidationError",
    "ChangeType",
    "CircuitBreaker",
    "CreatePullRequestRequest",
    "ExistingPullRequest",
    "FileChange",
    "IdentityResolver",
    "MergeStrategy",
    "PaginatedResponse",
    "PersonalAccessTokenAuth",
    "PullRequestHostInterface",
    "PullRequestProperty",
    "RateLimitInfo",
    "RateLimitManager",
    "Reviewer",
    "UpdatePullRequestRequest",
    "is_guid",
    "normalize_devops_path",
]
