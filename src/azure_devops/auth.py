"""Azure DevOps authentication handlers."""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .exceptions import AzureDevOpsAuthenticationError


@dataclass(frozen=True)
class AuthToken:
    """Credentials rendered as an ``Authorization`` header value."""

    token: str
    token_type: str = "Basic"

    def to_header(self) -> dict[str, str]:
        """Convert to authorization header."""
        return {"Authorization": f"{self.token_type} {self.token}"}


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    async def get_token(self) -> AuthToken:
        """Get authentication token."""


class PersonalAccessTokenAuth(AuthProvider):
    """Personal Access Token authentication provider.

    Azure DevOps accepts a PAT (or a pipeline's ``System.AccessToken``) as the
    password half of HTTP basic auth; the user name is ignored by the service
    but is sent when configured.
    """

    def __init__(self, token: str, username: str = ""):
        """Initialize PAT authentication.

        Args:
            token: Azure DevOps Personal Access Token
            username: Optional user name to pair with the token
        """
        if not token:
            raise AzureDevOpsAuthenticationError("Personal Access Token is required")
        encoded = base64.b64encode(f"{username}:{token}".encode()).decode("ascii")
        self._token = AuthToken(token=encoded)

    async def get_token(self) -> AuthToken:
        """Get authentication token."""
        return self._token
