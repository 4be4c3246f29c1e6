"""Version resolution against a registry."""

import asyncio
import logging
from collections.abc import Iterable

from .errors import NetworkError, OperationCancelled, RegistryError, UnknownPackageError
from .models import ResolutionResult
from .registry import Registry
from .versions import Version, highest_match, latest_of, sort_versions

logger = logging.getLogger(__name__)


class VersionResolver:
    """Resolves latest and highest-satisfying versions for dependencies."""

    def __init__(
        self,
        registry: Registry,
        timeout: float = 30.0,
        max_concurrency: int = 6,
    ):
        """Initialize resolver.

        Args:
            registry: Registry capability to query
            timeout: Per-query timeout in seconds
            max_concurrency: Maximum concurrent registry queries
        """
        self.registry = registry
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._cache: dict[str, list[Version]] = {}
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def available_versions(self, name: str, cancel=None) -> list[Version]:
        """Published versions of ``name``, ascending.

        ``cancel`` is checked once a query slot is free, so queued lookups
        stop as soon as it is set.

        Raises:
            OperationCancelled: If ``cancel`` is set before the query starts.
            NetworkError: On failure or timeout; the caller may retry.
            UnknownPackageError: If the registry does not know ``name``.
        """
        if name in self._cache:
            return self._cache[name]

        async with self._semaphore:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"Resolution cancelled before {name}")
            try:
                raw = await asyncio.wait_for(self.registry.list_versions(name), self.timeout)
            except asyncio.TimeoutError as e:
                raise NetworkError(name, f"Timeout after {self.timeout}s querying {name}") from e

        versions = sort_versions(raw)
        if not versions:
            raise UnknownPackageError(name)
        self._cache[name] = versions
        return versions

    async def resolve_latest(self, name: str) -> str:
        """Highest stable version of ``name`` by semver precedence."""
        versions = await self.available_versions(name)
        return str(latest_of(versions))

    async def highest_satisfying(self, name: str, range_text: str) -> str | None:
        """Highest published version matching ``range_text``.

        Returns None when nothing matches, including ranges that do not
        resolve against the registry (``workspace:``, git urls, tags).
        """
        versions = await self.available_versions(name)
        match = highest_match(range_text, versions)
        return str(match) if match is not None else None

    async def resolve(self, name: str, ranges: Iterable[str] = (), cancel=None) -> ResolutionResult:
        """Latest version plus the best match for each declared range."""
        versions = await self.available_versions(name, cancel=cancel)
        satisfying = {}
        for range_text in ranges:
            match = highest_match(range_text, versions)
            satisfying[range_text] = str(match) if match is not None else None
        return ResolutionResult(name=name, latest=str(latest_of(versions)), satisfying=satisfying)

    async def resolve_many(
        self,
        requests: dict[str, list[str]],
        cancel=None,
    ) -> tuple[dict[str, ResolutionResult], dict[str, RegistryError]]:
        """Resolve several dependencies concurrently.

        Args:
            requests: Dependency name -> declared ranges
            cancel: Optional signal with ``is_set()``; checked before each registry query

        Returns:
            (results, errors) keyed by dependency name. A failure for one
            name never prevents the others from resolving.

        Raises:
            OperationCancelled: If ``cancel`` is set.
        """

        async def resolve_one(name: str, ranges: list[str]):
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("Resolution cancelled")
            try:
                return name, await self.resolve(name, ranges, cancel=cancel)
            except RegistryError as e:
                logger.warning("Could not resolve %s: %s", name, e)
                return name, e

        outcomes = await asyncio.gather(
            *(resolve_one(name, ranges) for name, ranges in requests.items()),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Resolution cancelled")

        results: dict[str, ResolutionResult] = {}
        errors: dict[str, RegistryError] = {}
        for name, outcome in outcomes:
            if isinstance(outcome, RegistryError):
                errors[name] = outcome
            else:
                results[name] = outcome
        return results, errors
