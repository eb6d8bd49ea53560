"""Azure DevOps REST API client with authentication, throttling and pagination."""

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin, urlparse

import aiohttp

from .auth import AuthProvider
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
from .pagination import AsyncPaginator, PaginatedResponse
from .rate_limiting import CircuitBreaker, RateLimitManager

logger = logging.getLogger(__name__)

JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"


@dataclass
class AzureDevOpsClientConfig:
    """Configuration for Azure DevOps client."""

    api_version: str = "7.1"
    timeout: int = 60
    max_retries: int = 3
    retry_backoff_factor: float = 2.0
    user_agent: str = "dependabot-azure-devops/2.0"
    max_concurrent_requests: int = 10


@dataclass
class ApiResponse:
    """Decoded HTTP response from the Azure DevOps API."""

    status: int
    headers: Mapping[str, str]
    data: Any


class AzureDevOpsClient:
    """Async Azure DevOps REST API client."""

    def __init__(
        self,
        organization_url: str,
        auth: AuthProvider,
        config: AzureDevOpsClientConfig | None = None,
    ) -> None:
        """Initialize Azure DevOps client.

        Args:
            organization_url: Organization (collection) URL, e.g.
                ``https://dev.azure.com/contoso/``
            auth: Authentication provider
            config: Client configuration
        """
        self.organization_url = organization_url.rstrip("/") + "/"
        self.auth = auth
        self.config = config or AzureDevOpsClientConfig()
        self.rate_limiter = RateLimitManager()
        self.circuit_breaker = CircuitBreaker()

        # HTTP session will be initialized on first use
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._request_semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)

    async def __aenter__(self) -> "AzureDevOpsClient":
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @property
    def hostname(self) -> str:
        """Host name of the organization URL."""
        return urlparse(self.organization_url).hostname or ""

    @property
    def organization(self) -> str:
        """Organization name taken from the organization URL.

        ``https://dev.azure.com/contoso/`` and ``https://contoso.visualstudio.com/``
        both yield ``contoso``; on-premises collection URLs yield the last
        path segment.
        """
        parsed = urlparse(self.organization_url)
        host = parsed.hostname or ""
        if host.endswith(".visualstudio.com"):
            return host.split(".")[0]
        segments = [s for s in parsed.path.split("/") if s]
        return segments[-1] if segments else host

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is initialized."""
        if self._session is None or self._session.closed:
            async with self._session_lock:
                if self._session is None or self._session.closed:
                    timeout = aiohttp.ClientTimeout(total=self.config.timeout)
                    self._session = aiohttp.ClientSession(
                        timeout=timeout,
                        headers={
                            "User-Agent": self.config.user_agent,
                            "Accept": "application/json",
                        },
                    )

    async def close(self) -> None:
        """Close HTTP session and cleanup resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _generate_correlation_id(self) -> str:
        """Generate correlation ID for request tracking."""
        return str(uuid.uuid4())[:8]

    def build_url(self, path: str) -> str:
        """Resolve an API path against the organization URL.

        Absolute URLs are returned unchanged so that calls to sibling
        services (e.g. ``vssps.dev.azure.com``) can share this client.
        """
        if path.startswith(("http://", "https://")):
            return path
        return urljoin(self.organization_url, path.lstrip("/"))

    async def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
        api_version: str | None = None,
        correlation_id: str | None = None,
    ) -> ApiResponse:
        """Make HTTP request with retry logic and error handling.

        Args:
            method: HTTP method
            path: API path or absolute URL
            params: Query parameters
            data: JSON request body
            headers: Additional headers
            api_version: Override for the ``api-version`` query parameter
            correlation_id: Request correlation ID

        Returns:
            Decoded response

        Raises:
            AzureDevOpsError: Various Azure DevOps API errors
        """
        if not correlation_id:
            correlation_id = self._generate_correlation_id()

        if not self.circuit_breaker.can_attempt_request():
            wait_time = self.circuit_breaker.get_wait_time()
            raise AzureDevOpsConnectionError(
                f"Circuit breaker open. Wait {wait_time:.1f}s before retry."
            )

        self.rate_limiter.check_rate_limit()

        url = self.build_url(path)
        request_params = {"api-version": api_version or self.config.api_version}
        request_params.update(
            {k: str(v) for k, v in (params or {}).items() if v is not None}
        )

        request_headers = dict(headers or {})
        auth_token = await self.auth.get_token()
        request_headers.update(auth_token.to_header())

        await self._ensure_session()
        if not self._session:
            raise AzureDevOpsConnectionError("Failed to initialize HTTP session")

        request_kwargs: dict[str, Any] = {
            "params": request_params,
            "headers": request_headers,
        }
        if data is not None:
            request_headers.setdefault("Content-Type", "application/json")
            request_kwargs["data"] = json.dumps(data)

        last_exception: AzureDevOpsError | None = None
        for attempt in range(self.config.max_retries + 1):
            backoff_time = self.config.retry_backoff_factor**attempt
            try:
                async with self._request_semaphore:
                    start_time = time.time()

                    logger.debug(
                        f"Azure DevOps API request [{correlation_id}] {method} {url} "
                        f"(attempt {attempt + 1})"
                    )

                    async with self._session.request(
                        method, url, **request_kwargs
                    ) as response:
                        request_time = time.time() - start_time
                        self.rate_limiter.update_rate_limit(response.headers)

                        logger.debug(
                            f"Azure DevOps API response [{correlation_id}] "
                            f"{response.status} in {request_time:.2f}s"
                        )

                        body = await response.text()
                        if 200 <= response.status < 300:
                            self.circuit_breaker.record_success()
                            return ApiResponse(
                                status=response.status,
                                headers=response.headers,
                                data=json.loads(body) if body else None,
                            )

                        self._raise_for_error_response(
                            response.status, response.headers, body, correlation_id
                        )

            except (AzureDevOpsServerError, AzureDevOpsRateLimitError) as e:
                last_exception = e
                if isinstance(e, AzureDevOpsRateLimitError) and e.retry_after:
                    backoff_time = min(e.retry_after, self.rate_limiter.max_retry_wait)

            except TimeoutError:
                last_exception = AzureDevOpsTimeoutError(
                    f"Request timeout for {method} {url}"
                )
                self.circuit_breaker.record_failure()

            except aiohttp.ClientError as e:
                last_exception = AzureDevOpsConnectionError(
                    f"Connection error for {method} {url}: {e}"
                )
                self.circuit_breaker.record_failure()

            if attempt < self.config.max_retries:
                logger.warning(
                    f"Request [{correlation_id}] failed (attempt {attempt + 1}), "
                    f"retrying in {backoff_time:.1f}s: {last_exception}"
                )
                await asyncio.sleep(backoff_time)

        if last_exception:
            raise last_exception
        raise AzureDevOpsError(
            f"Request failed after {self.config.max_retries} retries"
        )

    def _raise_for_error_response(
        self,
        status: int,
        headers: Mapping[str, str],
        body: str,
        correlation_id: str,
    ) -> None:
        """Map an error response onto the exception hierarchy.

        Raises:
            AzureDevOpsError: Appropriate error based on status code
        """
        try:
            error_data = json.loads(body) if body else {}
            if not isinstance(error_data, dict):
                error_data = {"message": body}
        except json.JSONDecodeError:
            error_data = {"message": body}

        error_message = error_data.get("message") or f"HTTP {status}"

        logger.warning(
            f"Azure DevOps API error [{correlation_id}] {status}: {error_message}"
        )

        if status in (401, 403):
            raise AzureDevOpsAuthenticationError(error_message, status, error_data)
        elif status == 404:
            raise AzureDevOpsNotFoundError(error_message, status, error_data)
        elif status == 429:
            retry_after = headers.get("Retry-After")
            raise AzureDevOpsRateLimitError(
                error_message,
                retry_after=float(retry_after) if retry_after else None,
            )
        elif status in (400, 409, 422):
            raise AzureDevOpsValidationError(error_message, status, error_data)
        elif 500 <= status < 600:
            self.circuit_breaker.record_failure()
            raise AzureDevOpsServerError(error_message, status, error_data)
        else:
            raise AzureDevOpsError(error_message, status, error_data)

    async def get(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        api_version: str | None = None,
    ) -> Any:
        """Make GET request to the Azure DevOps API.

        Args:
            path: API path (e.g. ``'{project}/_apis/git/repositories/{repo}'``)
            params: Query parameters
            api_version: Override for the ``api-version`` query parameter

        Returns:
            JSON response data
        """
        response = await self._make_request(
            "GET", path, params, api_version=api_version
        )
        return response.data

    async def post(
        self,
        path: str,
        data: Any = None,
        params: dict[str, Any] | None = None,
        api_version: str | None = None,
    ) -> Any:
        """Make POST request to the Azure DevOps API."""
        response = await self._make_request(
            "POST", path, params, data, api_version=api_version
        )
        return response.data

    async def put(
        self,
        path: str,
        data: Any = None,
        params: dict[str, Any] | None = None,
        api_version: str | None = None,
    ) -> Any:
        """Make PUT request to the Azure DevOps API."""
        response = await self._make_request(
            "PUT", path, params, data, api_version=api_version
        )
        return response.data

    async def patch(
        self,
        path: str,
        data: Any = None,
        params: dict[str, Any] | None = None,
        json_patch: bool = False,
        api_version: str | None = None,
    ) -> Any:
        """Make PATCH request to the Azure DevOps API.

        Args:
            path: API path
            data: Request body; a list of operations when ``json_patch`` is set
            params: Query parameters
            json_patch: Send the body as ``application/json-patch+json``
            api_version: Override for the ``api-version`` query parameter

        Returns:
            JSON response data
        """
        headers = {"Content-Type": JSON_PATCH_CONTENT_TYPE} if json_patch else None
        response = await self._make_request(
            "PATCH", path, params, data, headers=headers, api_version=api_version
        )
        return response.data

    async def delete(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        api_version: str | None = None,
    ) -> Any:
        """Make DELETE request to the Azure DevOps API."""
        response = await self._make_request(
            "DELETE", path, params, api_version=api_version
        )
        return response.data

    async def _fetch_paginated(
        self, path: str, params: dict[str, Any] | None = None
    ) -> PaginatedResponse:
        """Fetch a single page (used by AsyncPaginator)."""
        response = await self._make_request("GET", path, params)
        return PaginatedResponse(
            response.data or {}, response.headers, self.build_url(path)
        )

    def paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        page_size: int = 100,
        max_pages: int | None = None,
        use_skip: bool = False,
    ) -> AsyncPaginator:
        """Create async paginator for an Azure DevOps list endpoint.

        Args:
            path: API path
            params: Query parameters
            page_size: Items per page
            max_pages: Maximum pages to fetch
            use_skip: Page with ``$skip`` offsets instead of continuation tokens

        Returns:
            AsyncPaginator for iterating through results
        """
        return AsyncPaginator(
            client=self,
            path=path,
            params=params,
            page_size=page_size,
            max_pages=max_pages,
            use_skip=use_skip,
        )

    async def get_connection_data(self) -> dict[str, Any]:
        """Get connection data, including the authenticated user."""
        data: dict[str, Any] = await self.get(
            "_apis/connectionData", api_version="7.1-preview"
        )
        return data
