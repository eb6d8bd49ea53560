"""Identity lookups with run-scoped memoization."""

import logging
import re

from .client import AzureDevOpsClient
from .exceptions import AzureDevOpsError

logger = logging.getLogger(__name__)

GUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_guid(value: str | None) -> bool:
    """Check whether ``value`` is already an identity id."""
    return bool(value) and GUID_PATTERN.match(value or "") is not None


class IdentityResolver:
    """Resolves email addresses to Azure DevOps identity ids.

    Results are memoized for the lifetime of the resolver, so one instance
    should be created per run (or per process) and shared by reference with
    everything that needs lookups. Lookups that found nothing are memoized
    too; lookups that failed with an API error are not.
    """

    def __init__(self, client: AzureDevOpsClient) -> None:
        """Initialize identity resolver.

        Args:
            client: Azure DevOps client used for lookups
        """
        self._client = client
        self._identity_ids: dict[str, str | None] = {}
        self._authenticated_user_id: str | None = None

    @property
    def identities_url(self) -> str:
        """Identity search endpoint for the client's organization.

        Cloud organizations serve identities from the ``vssps`` host;
        on-premises servers serve them from the collection itself.
        """
        hostname = self._client.hostname
        organization = self._client.organization
        if hostname == "dev.azure.com":
            return f"https://vssps.dev.azure.com/{organization}/_apis/identities"
        if hostname.endswith(".visualstudio.com"):
            return f"https://{organization}.vssps.visualstudio.com/_apis/identities"
        return "_apis/identities"

    async def get_authenticated_user_id(self) -> str:
        """Identity id of the user the client is authenticated as."""
        if self._authenticated_user_id is None:
            data = await self._client.get_connection_data()
            user = (data or {}).get("authenticatedUser") or {}
            self._authenticated_user_id = user.get("id") or ""
        return self._authenticated_user_id

    async def resolve(self, identity: str) -> str | None:
        """Resolve an email address (or pass through an id).

        Args:
            identity: Email address or identity id

        Returns:
            The identity id, or None if it could not be resolved
        """
        if is_guid(identity):
            return identity

        key = identity.strip().lower()
        if key in self._identity_ids:
            return self._identity_ids[key]

        try:
            data = await self._client.get(
                self.identities_url,
                params={
                    "searchFilter": "General",
                    "filterValue": identity.strip(),
                    "queryMembership": "None",
                },
            )
        except AzureDevOpsError as e:
            logger.warning(f"Failed to resolve identity '{identity}': {e}")
            return None

        values = (data or {}).get("value") or []
        identity_id = values[0].get("id") if values else None
        self._identity_ids[key] = identity_id
        return identity_id
