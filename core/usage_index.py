"""Cross-manifest index of dependency declarations."""

import logging
from pathlib import Path

from .models import UsageEntry, Workspace

logger = logging.getLogger(__name__)


class UsageIndex:
    """Every declaration of every dependency across a workspace.

    Entries refer to manifests by path; the Workspace stays the only owner
    of Manifest objects.
    """

    def __init__(self, entries: dict[str, list[UsageEntry]] | None = None):
        self._entries: dict[str, list[UsageEntry]] = entries or {}

    @classmethod
    def build(cls, workspace: Workspace) -> "UsageIndex":
        """Index a workspace in manifest order, then field declaration order."""
        entries: dict[str, list[UsageEntry]] = {}
        for manifest in workspace:
            for field_name, dependencies in manifest.fields.items():
                for name, declared in dependencies.items():
                    entries.setdefault(name, []).append(
                        UsageEntry(name=name, manifest=manifest.path, field=field_name, range=declared)
                    )
        logger.debug(
            "Indexed %d dependencies across %d manifest(s)", len(entries), len(workspace)
        )
        return cls(entries)

    def entries_for(self, name: str) -> list[UsageEntry]:
        """Usage entries for ``name``; empty when nothing declares it."""
        return list(self._entries.get(name, ()))

    def names(self) -> list[str]:
        """Every distinct dependency name, sorted."""
        return sorted(self._entries)

    def ranges_for(self, name: str) -> list[str]:
        """Distinct declared ranges for ``name`` in first-seen order."""
        seen: dict[str, None] = {}
        for entry in self._entries.get(name, ()):
            seen.setdefault(entry.range, None)
        return list(seen)

    def manifests_declaring(self, name: str) -> list[Path]:
        seen: dict[Path, None] = {}
        for entry in self._entries.get(name, ()):
            seen.setdefault(entry.manifest, None)
        return list(seen)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
