"""Azure DevOps throttling and failure management.

Azure DevOps reports throttling through ``X-RateLimit-*`` headers once a
caller starts consuming a noticeable share of its resource budget, and
through ``Retry-After`` once requests are actually being delayed or blocked.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from .exceptions import AzureDevOpsRateLimitError

logger = logging.getLogger(__name__)


@dataclass
class RateLimitInfo:
    """Throttling information reported by Azure DevOps."""

    limit: int
    remaining: int
    reset: int
    resource: str = "core"
    delay: float = 0.0
    retry_after: float | None = None

    @property
    def seconds_until_reset(self) -> float:
        """Get seconds until the throttling window resets."""
        return max(0, self.reset - time.time())

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RateLimitInfo":
        """Build from response headers; missing numeric headers count as 0."""
        retry_after = headers.get("Retry-After")
        return cls(
            limit=int(float(headers.get("X-RateLimit-Limit", 0))),
            remaining=int(float(headers.get("X-RateLimit-Remaining", 0))),
            reset=int(float(headers.get("X-RateLimit-Reset", 0))),
            resource=headers.get("X-RateLimit-Resource", "core"),
            delay=float(headers.get("X-RateLimit-Delay", 0)),
            retry_after=float(retry_after) if retry_after else None,
        )


@dataclass
class RateLimitManager:
    """Tracks Azure DevOps throttling state between requests."""

    buffer: int = 0
    max_retry_wait: int = 300

    _rate_limits: dict[str, RateLimitInfo] = field(default_factory=dict)

    def get_rate_limit(self, resource: str = "core") -> RateLimitInfo | None:
        """Get current throttling info for resource, ignoring case."""
        return self._rate_limits.get(resource.lower())

    def update_rate_limit(self, headers: Mapping[str, str]) -> None:
        """Update throttling info from response headers.

        Args:
            headers: HTTP response headers from the Azure DevOps API
        """
        if "X-RateLimit-Limit" not in headers and "Retry-After" not in headers:
            return

        try:
            rate_limit = RateLimitInfo.from_headers(headers)
        except (ValueError, TypeError):
            logger.debug("Ignoring malformed throttling headers")
            return

        if rate_limit.delay > 0:
            logger.warning(
                f"Azure DevOps is delaying requests for '{rate_limit.resource}' "
                f"by {rate_limit.delay:.1f}s"
            )
        self._rate_limits[rate_limit.resource.lower()] = rate_limit

    def check_rate_limit(self, resource: str | None = None) -> None:
        """Check whether a request may be sent now.

        Args:
            resource: Azure DevOps throttling resource name; every resource
                seen so far is checked when omitted

        Raises:
            AzureDevOpsRateLimitError: If the budget is exhausted and the
                window has not reset yet
        """
        if resource is None:
            for rate_limit in list(self._rate_limits.values()):
                self._check(rate_limit)
            return

        rate_limit = self.get_rate_limit(resource)
        if rate_limit:
            self._check(rate_limit)

    def _check(self, rate_limit: RateLimitInfo) -> None:
        if rate_limit.limit == 0:
            return

        if (
            rate_limit.remaining <= self.buffer
            and rate_limit.seconds_until_reset > 0
        ):
            wait_time = min(rate_limit.seconds_until_reset, self.max_retry_wait)
            raise AzureDevOpsRateLimitError(
                f"Rate limit reached for {rate_limit.resource}. "
                f"Remaining: {rate_limit.remaining}, "
                f"Reset in {wait_time:.0f} seconds",
                retry_after=wait_time,
                reset_time=rate_limit.reset,
                remaining=rate_limit.remaining,
            )


class CircuitBreaker:
    """Stops calling Azure DevOps after repeated transport or server failures.

    After ``failure_threshold`` consecutive failures the breaker opens and
    rejects requests for ``recovery_timeout`` seconds; the next request after
    that is let through as a trial, and its outcome closes or re-opens it.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._failure_count = 0
        self._opened_at: float | None = None
        self._state = self.CLOSED

    @property
    def state(self) -> str:
        """Current breaker state."""
        return self._state

    def record_success(self) -> None:
        """Record a successful response."""
        if self._state != self.CLOSED:
            logger.info("Azure DevOps requests are succeeding again")
        self._failure_count = 0
        self._opened_at = None
        self._state = self.CLOSED

    def record_failure(self) -> None:
        """Record a transport or server failure."""
        self._failure_count += 1
        if self._state == self.HALF_OPEN or (
            self._failure_count >= self.failure_threshold
        ):
            if self._state != self.OPEN:
                logger.warning(
                    f"Pausing Azure DevOps requests for {self.recovery_timeout}s "
                    f"after {self._failure_count} consecutive failures"
                )
            self._state = self.OPEN
            self._opened_at = time.time()

    def can_attempt_request(self) -> bool:
        """Check whether a request may be sent."""
        if self._state == self.OPEN and self.get_wait_time() <= 0:
            self._state = self.HALF_OPEN
        return self._state != self.OPEN

    def get_wait_time(self) -> float:
        """Seconds until the breaker lets a trial request through."""
        if self._state != self.OPEN or self._opened_at is None:
            return 0
        return max(0, self.recovery_timeout - (time.time() - self._opened_at))
