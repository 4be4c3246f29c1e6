"""Registry capability and its npm implementation."""

import logging
from typing import Protocol
from urllib.parse import quote

import httpx

from .errors import NetworkError, UnknownPackageError

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org/"

# Abbreviated packument: versions without full metadata
PACKUMENT_ACCEPT = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8, */*"


class Registry(Protocol):
    """Anything that can list the published versions of a package."""

    async def list_versions(self, name: str) -> list[str]:
        """Return published version strings.

        Raises:
            NetworkError: Registry unreachable or failing (retryable).
            UnknownPackageError: The registry does not know ``name``.
        """
        ...


class NpmRegistry:
    """Lists versions from an npm-compatible registry over HTTP."""

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize npm registry client.

        Args:
            base_url: Registry root URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.transport = transport

    def package_url(self, name: str) -> str:
        # Scoped names keep the leading @ but escape the slash
        return self.base_url + quote(name, safe="@")

    async def list_versions(self, name: str) -> list[str]:
        url = self.package_url(name)
        logger.debug("GET %s", url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, headers={"Accept": PACKUMENT_ACCEPT})
                if response.status_code == 404:
                    raise UnknownPackageError(name)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise NetworkError(name, f"Timeout fetching metadata for {name}") from e
        except httpx.HTTPStatusError as e:
            raise NetworkError(name, f"HTTP error fetching {name}: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise NetworkError(name, f"Network error fetching {name}: {e}") from e
        except ValueError as e:
            raise NetworkError(name, f"Malformed registry response for {name}: {e}") from e

        versions = data.get("versions") if isinstance(data, dict) else None
        if not isinstance(versions, dict):
            raise UnknownPackageError(name)
        return list(versions)
