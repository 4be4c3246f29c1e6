"""Tests for version resolution."""

import asyncio
import threading
from unittest.mock import AsyncMock

import pytest

from core.errors import NetworkError, OperationCancelled, UnknownPackageError
from core.resolver import VersionResolver


class TestVersionResolver:
    """Test latest and highest-satisfying resolution."""

    @pytest.mark.asyncio
    async def test_resolve_latest(self, fake_registry):
        """Should pick the highest stable version."""
        resolver = VersionResolver(fake_registry)
        assert await resolver.resolve_latest("react") == "18.2.0"
        assert await resolver.resolve_latest("lodash") == "4.17.21"

    @pytest.mark.asyncio
    async def test_highest_satisfying(self, fake_registry):
        """Should pick the highest version inside a range, or None."""
        resolver = VersionResolver(fake_registry)
        assert await resolver.highest_satisfying("lodash", "~4.17.0") == "4.17.21"
        assert await resolver.highest_satisfying("react", "^17.0.0") == "17.0.2"
        assert await resolver.highest_satisfying("react", "^20.0.0") is None
        assert await resolver.highest_satisfying("react", "workspace:*") is None

    @pytest.mark.asyncio
    async def test_cache_per_name(self, fake_registry):
        """Should query the registry once per name."""
        resolver = VersionResolver(fake_registry)
        await resolver.resolve_latest("lodash")
        await resolver.highest_satisfying("lodash", "^4.0.0")
        await resolver.resolve("lodash", ["^4.17.0"])
        assert fake_registry.calls == ["lodash"]

    @pytest.mark.asyncio
    async def test_resolve_with_ranges(self, fake_registry):
        """Should report the latest version and the best match per range."""
        resolver = VersionResolver(fake_registry)

        result = await resolver.resolve("lodash", ["^4.17.0", "4.17.15", "workspace:*"])

        assert result.latest == "4.17.21"
        assert result.satisfying == {"^4.17.0": "4.17.21", "4.17.15": "4.17.15", "workspace:*": None}

    @pytest.mark.asyncio
    async def test_unknown_package(self, fake_registry):
        """Should propagate UnknownPackageError."""
        resolver = VersionResolver(fake_registry)
        with pytest.raises(UnknownPackageError):
            await resolver.resolve_latest("no-such-package")

    @pytest.mark.asyncio
    async def test_no_valid_versions(self, registry_factory):
        """Should treat a package with no parseable versions as unknown."""
        resolver = VersionResolver(registry_factory({"odd": ["not-a-version"]}))
        with pytest.raises(UnknownPackageError):
            await resolver.resolve_latest("odd")

    @pytest.mark.asyncio
    async def test_timeout_is_network_error(self):
        """Should turn a slow query into a retryable NetworkError."""
        registry = AsyncMock()

        async def slow(name):
            await asyncio.sleep(1)
            return ["1.0.0"]

        registry.list_versions.side_effect = slow
        resolver = VersionResolver(registry, timeout=0.01)

        with pytest.raises(NetworkError) as exc_info:
            await resolver.resolve_latest("slow")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_resolve_many_isolates_failures(self, registry_factory):
        """Should resolve the rest when one dependency fails."""
        registry = registry_factory(
            {"lodash": ["4.17.21"]},
            failures={"flaky": NetworkError("flaky", "connection reset")},
        )
        resolver = VersionResolver(registry)

        results, errors = await resolver.resolve_many(
            {"lodash": ["^4.0.0"], "flaky": ["^1.0.0"], "ghost": []}
        )

        assert set(results) == {"lodash"}
        assert results["lodash"].latest == "4.17.21"
        assert isinstance(errors["flaky"], NetworkError)
        assert isinstance(errors["ghost"], UnknownPackageError)

    @pytest.mark.asyncio
    async def test_resolve_many_cancelled(self, fake_registry):
        """Should raise OperationCancelled when the signal is set."""
        cancel = threading.Event()
        cancel.set()
        resolver = VersionResolver(fake_registry)

        with pytest.raises(OperationCancelled):
            await resolver.resolve_many({"lodash": []}, cancel=cancel)
        assert fake_registry.calls == []

    @pytest.mark.asyncio
    async def test_cancel_stops_queued_lookups(self, registry_factory):
        """Should stop querying once the signal is set mid-run."""
        cancel = threading.Event()
        registry = registry_factory({f"pkg{i}": ["1.0.0"] for i in range(5)})
        list_versions = registry.list_versions

        async def cancel_on_first(name):
            cancel.set()
            return await list_versions(name)

        registry.list_versions = cancel_on_first
        resolver = VersionResolver(registry, max_concurrency=1)

        with pytest.raises(OperationCancelled):
            await resolver.resolve_many({f"pkg{i}": [] for i in range(5)}, cancel=cancel)
        assert registry.calls == ["pkg0"]

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        """Should never run more queries at once than allowed."""
        active = 0
        peak = 0

        class SlowRegistry:
            async def list_versions(self, name):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return ["1.0.0"]

        resolver = VersionResolver(SlowRegistry(), max_concurrency=2)
        results, errors = await resolver.resolve_many({f"pkg-{i}": [] for i in range(6)})

        assert len(results) == 6
        assert errors == {}
        assert peak <= 2
