"""Azure DevOps API pagination utilities.

Azure DevOps list endpoints return ``{"count": n, "value": [...]}`` and page
in one of two ways: a ``x-ms-continuationtoken`` response header that is sent
back as the ``continuationToken`` query parameter (refs, projects), or plain
``$top``/``$skip`` offsets (pull requests).
"""

from collections.abc import AsyncIterator, Mapping
from typing import Any

CONTINUATION_TOKEN_HEADER = "x-ms-continuationtoken"


class PaginatedResponse:
    """Wrapper for a single page of an Azure DevOps list response."""

    def __init__(
        self,
        data: dict[str, Any] | list[Any],
        headers: Mapping[str, str],
        url: str,
    ):
        """Initialize paginated response.

        Args:
            data: Response data
            headers: Response headers
            url: Request URL
        """
        self.data = data
        self.headers = {k.lower(): v for k, v in headers.items()}
        self.url = url

    @property
    def continuation_token(self) -> str | None:
        """Get the continuation token for the next page, if any."""
        return self.headers.get(CONTINUATION_TOKEN_HEADER) or None

    @property
    def has_next_page(self) -> bool:
        """Check if the server advertised another page."""
        return self.continuation_token is not None

    @property
    def items(self) -> list[Any]:
        """Get items from current page."""
        if isinstance(self.data, dict):
            return list(self.data.get("value") or [])
        return list(self.data)


class AsyncPaginator:
    """Async iterator for paginated Azure DevOps API responses."""

    def __init__(
        self,
        client: Any,  # Avoid circular import
        path: str,
        params: dict[str, Any] | None = None,
        page_size: int = 100,
        max_pages: int | None = None,
        use_skip: bool = False,
    ):
        """Initialize async paginator.

        Args:
            client: Azure DevOps client instance
            path: API path relative to the organization URL
            params: Query parameters
            page_size: Items requested per page (``$top``)
            max_pages: Maximum number of pages to fetch
            use_skip: Page with ``$skip`` offsets instead of continuation tokens
        """
        self.client = client
        self.path = path
        self.params = params or {}
        self.page_size = page_size
        self.max_pages = max_pages
        self.use_skip = use_skip

    async def __aiter__(self) -> AsyncIterator[Any]:
        """Async iterator implementation."""
        pages_fetched = 0
        skip = 0
        continuation_token: str | None = None

        while True:
            if self.max_pages and pages_fetched >= self.max_pages:
                break

            params = dict(self.params)
            params["$top"] = self.page_size
            if self.use_skip:
                params["$skip"] = skip
            if continuation_token:
                params["continuationToken"] = continuation_token

            response = await self._fetch_page(params)
            pages_fetched += 1
            items = response.items

            for item in items:
                yield item

            if response.has_next_page:
                continuation_token = response.continuation_token
            elif self.use_skip and len(items) >= self.page_size:
                skip += len(items)
            else:
                break

    async def _fetch_page(self, params: dict[str, Any]) -> PaginatedResponse:
        """Fetch a single page through the owning client."""
        result: PaginatedResponse = await self.client._fetch_paginated(
            self.path, params
        )
        return result

    async def collect_all(self) -> list[Any]:
        """Collect all items from all pages.

        Returns:
            List of all items
        """
        items = []
        async for item in self:
            items.append(item)
        return items
