"""Lockfile detection. Lockfiles are reported, never read or modified."""

import logging
from collections.abc import Iterable
from pathlib import Path

from .models import Advisory, AdvisoryKind, LockfileRecord

logger = logging.getLogger(__name__)

# File name -> kind identifier, in precedence order for manager detection
LOCKFILE_KINDS = {
    "package-lock.json": "npm",
    "npm-shrinkwrap.json": "npm-shrinkwrap",
    "pnpm-lock.yaml": "pnpm",
    "yarn.lock": "yarn",
    "bun.lockb": "bun",
    "bun.lock": "bun",
}

INSTALL_COMMANDS = {
    "npm": "npm install",
    "npm-shrinkwrap": "npm install",
    "pnpm": "pnpm install",
    "yarn": "yarn install",
    "bun": "bun install",
}


def scan(root: Path, manifests: Iterable[Path] = ()) -> list[LockfileRecord]:
    """Find lockfiles at the root and beside each member manifest.

    Args:
        root: Workspace root
        manifests: Member manifest paths; their directories are checked too

    Returns:
        Records sorted by path, one per lockfile
    """
    root = Path(root)
    directories = {root}
    directories.update(Path(manifest).parent for manifest in manifests)

    records = []
    for directory in sorted(directories, key=str):
        for filename, kind in LOCKFILE_KINDS.items():
            candidate = directory / filename
            if candidate.is_file():
                records.append(LockfileRecord(path=candidate, kind=kind))
    records.sort(key=lambda record: str(record.path))
    logger.debug("Found %d lockfile(s) under %s", len(records), root)
    return records


def detect_package_manager(root: Path) -> str | None:
    """Package manager owning the root lockfile, if any."""
    for filename, kind in LOCKFILE_KINDS.items():
        if (Path(root) / filename).is_file():
            return kind.split("-")[0]
    return None


def stale_reminders(records: Iterable[LockfileRecord], root: Path | None = None) -> list[Advisory]:
    """One lockfile-stale-reminder advisory per lockfile."""
    advisories = []
    for record in records:
        shown = record.path
        if root is not None:
            try:
                shown = record.path.relative_to(root)
            except ValueError:
                pass
        advisories.append(
            Advisory(
                kind=AdvisoryKind.LOCKFILE_STALE,
                message=(
                    f"{shown.as_posix()} ({record.kind}) is not updated by depsync; "
                    f"run `{INSTALL_COMMANDS[record.kind]}` after applying to refresh it"
                ),
                manifest=record.path,
            )
        )
    return advisories
