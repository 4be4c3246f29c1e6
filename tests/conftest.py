"""Pytest configuration and fixtures."""

import json

import pytest

from core.errors import UnknownPackageError


def write_package(directory, data, indent=2):
    """Write ``data`` as directory/package.json and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "package.json"
    path.write_text(json.dumps(data, indent=indent) + "\n", encoding="utf-8")
    return path


class FakeRegistry:
    """In-memory registry; records every lookup."""

    def __init__(self, versions, failures=None):
        self.versions = versions
        self.failures = failures or {}
        self.calls = []

    async def list_versions(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]
        if name not in self.versions:
            raise UnknownPackageError(name)
        return list(self.versions[name])


@pytest.fixture
def package_writer():
    """Helper that writes package.json files."""
    return write_package


@pytest.fixture
def registry_versions():
    """Published versions for the packages the sample workspace uses."""
    return {
        "lodash": ["4.17.0", "4.17.15", "4.17.21"],
        "react": ["17.0.2", "18.2.0", "19.0.0-rc.1"],
        "typescript": ["5.0.0", "5.4.5"],
        "jest": ["29.0.0", "29.7.0"],
    }


@pytest.fixture
def fake_registry(registry_versions):
    """Registry that knows the sample workspace's packages."""
    return FakeRegistry(registry_versions)


@pytest.fixture
def registry_factory():
    """Build a FakeRegistry with custom versions or failures."""
    return FakeRegistry


@pytest.fixture
def monorepo(tmp_path):
    """A workspace with a root manifest, three packages and an npm lockfile."""
    write_package(tmp_path, {
        "name": "root",
        "private": True,
        "workspaces": ["packages/*"],
        "devDependencies": {"typescript": "^5.0.0"},
    })
    write_package(tmp_path / "packages" / "a", {
        "name": "a",
        "version": "1.0.0",
        "dependencies": {"lodash": "^4.17.0", "react": "^17.0.2"},
    })
    write_package(tmp_path / "packages" / "b", {
        "name": "b",
        "dependencies": {"lodash": "^4.17.21"},
        "devDependencies": {"jest": "29.0.0"},
    })
    write_package(tmp_path / "packages" / "c", {
        "name": "c",
        "dependencies": {"lodash": "4.17.15", "shared": "workspace:*"},
    })
    (tmp_path / "package-lock.json").write_text('{"lockfileVersion": 3}\n', encoding="utf-8")
    return tmp_path


@pytest.fixture
def sample_package_json():
    """Sample package.json content for testing."""
    return """{
  "name": "test-project",
  "version": "1.0.0",
  "scripts": {
    "test": "jest"
  },
  "dependencies": {
    "express": "^4.18.0",
    "lodash": "~4.17.21"
  },
  "devDependencies": {
    "jest": "^29.0.0"
  }
}
"""
