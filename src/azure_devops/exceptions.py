"""Azure DevOps REST API client exceptions."""

from typing import Any


class AzureDevOpsError(Exception):
    """Base exception for Azure DevOps API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        """Initialize Azure DevOps error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from the Azure DevOps API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


class AzureDevOpsAuthenticationError(AzureDevOpsError):
    """Raised when the access token is missing, invalid or lacks permissions."""

    pass


class AzureDevOpsRateLimitError(AzureDevOpsError):
    """Raised when requests are being throttled."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        reset_time: int | None = None,
        remaining: int = 0,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retrying (Retry-After header)
            reset_time: Unix timestamp when the throttling window resets
            remaining: Remaining request units in the current window
        """
        super().__init__(message, status_code=429)
        self.retry_after = retry_after
        self.reset_time = reset_time
        self.remaining = remaining


class AzureDevOpsNotFoundError(AzureDevOpsError):
    """Raised when resource is not found."""

    pass


class AzureDevOpsValidationError(AzureDevOpsError):
    """Raised when the request is rejected as invalid (400, 409, 422)."""

    pass


class AzureDevOpsServerError(AzureDevOpsError):
    """Raised when Azure DevOps returns a 5xx error."""

    pass


class AzureDevOpsConnectionError(AzureDevOpsError):
    """Raised when connection to Azure DevOps fails."""

    pass


class AzureDevOpsTimeoutError(AzureDevOpsError):
    """Raised when request times out."""

    pass
