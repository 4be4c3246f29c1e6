"""Workspace discovery: find every package.json that belongs to a workspace."""

import fnmatch
import json
import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path

import yaml

from .errors import ParseError, ScanError
from .lockfiles import LOCKFILE_KINDS
from .manifest_store import MANIFEST_FILE, ManifestStore
from .models import Advisory, AdvisoryKind, Workspace

logger = logging.getLogger(__name__)

DEFAULT_IGNORES = (
    "node_modules",
    ".git",
    ".hg",
    ".svn",
    ".yarn",
    ".pnpm-store",
    "bower_components",
)

PNPM_WORKSPACE_FILE = "pnpm-workspace.yaml"


def _glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a workspace glob (``packages/*``, ``apps/**``) to a regex."""
    pattern = pattern.strip().strip("/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    parts = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif char == "*":
            parts.append("[^/]*")
            i += 1
        elif char == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(char))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def workspace_globs(root: Path) -> list[str] | None:
    """Member globs declared by the root, or None for a plain tree.

    Reads ``workspaces`` from the root package.json (array, or object with
    ``packages``) and ``packages`` from pnpm-workspace.yaml.
    """
    globs: list[str] = []
    declared = False

    pnpm_file = root / PNPM_WORKSPACE_FILE
    if pnpm_file.is_file():
        try:
            data = yaml.safe_load(pnpm_file.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ParseError(pnpm_file, f"invalid YAML: {e}") from e
        packages = data.get("packages") if isinstance(data, dict) else None
        if isinstance(packages, list):
            declared = True
            globs.extend(str(p) for p in packages)

    manifest_file = root / MANIFEST_FILE
    if manifest_file.is_file():
        try:
            data = json.loads(manifest_file.read_text(encoding="utf-8-sig"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            # Reported when the manifest itself is loaded
            data = None
        workspaces = data.get("workspaces") if isinstance(data, dict) else None
        if isinstance(workspaces, dict):
            workspaces = workspaces.get("packages")
        if isinstance(workspaces, list):
            declared = True
            globs.extend(str(p) for p in workspaces)

    return globs if declared else None


def _is_member(relative_dir: str, globs: list[str]) -> bool:
    if relative_dir == "":
        return True
    included = False
    for pattern in globs:
        negated = pattern.startswith("!")
        regex = _glob_to_regex(pattern[1:] if negated else pattern)
        if regex.match(relative_dir):
            included = not negated
    return included


def _is_ignored(name: str, relative: str, ignore: Iterable[str]) -> bool:
    return any(
        fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(relative, pattern)
        for pattern in ignore
    )


def scan(root: Path, ignore: Iterable[str] = DEFAULT_IGNORES) -> list[Path]:
    """Find workspace manifests under ``root``.

    Args:
        root: Workspace root directory
        ignore: fnmatch patterns for directory names or root-relative paths

    Returns:
        Absolute manifest paths sorted lexicographically

    Raises:
        ScanError: If root does not exist or is not a directory
    """
    root = Path(root)
    if not root.exists():
        raise ScanError(f"Workspace root {root} does not exist")
    if not root.is_dir():
        raise ScanError(f"Workspace root {root} is not a directory")
    root = root.resolve()
    ignore = tuple(ignore)
    try:
        globs = workspace_globs(root)
    except ParseError as e:
        raise ScanError(f"Cannot read workspace declaration: {e}") from e

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        relative_dir = current.relative_to(root).as_posix()
        relative_dir = "" if relative_dir == "." else relative_dir

        # Prune in place so os.walk never descends into ignored trees
        dirnames[:] = sorted(
            d for d in dirnames
            if not _is_ignored(d, f"{relative_dir}/{d}".lstrip("/"), ignore)
        )

        if MANIFEST_FILE not in filenames:
            continue
        if globs is not None and not _is_member(relative_dir, globs):
            logger.debug("Skipping %s: outside declared workspaces", current)
            continue
        found.append(current / MANIFEST_FILE)

    found.sort(key=lambda p: p.relative_to(root).as_posix())
    logger.debug("Found %d manifest(s) under %s", len(found), root)
    return found


def find_workspace_root(start: Path) -> Path:
    """Locate the workspace root for a directory inside it.

    Walks upward to the nearest directory that holds a lockfile or declares
    workspaces; falls back to the nearest directory with a package.json.

    Raises:
        ScanError: If no package.json exists at or above ``start``.
    """
    start = Path(start).resolve()
    nearest_manifest = None
    for directory in [start, *start.parents]:
        if any((directory / name).is_file() for name in LOCKFILE_KINDS):
            return directory
        if (directory / PNPM_WORKSPACE_FILE).is_file():
            return directory
        if (directory / MANIFEST_FILE).is_file():
            if nearest_manifest is None:
                nearest_manifest = directory
            try:
                if workspace_globs(directory) is not None:
                    return directory
            except ParseError:
                continue
    if nearest_manifest is None:
        raise ScanError(f"Could not find a {MANIFEST_FILE} at or above {start}")
    return nearest_manifest


def find_closest_manifest(start: Path, workspace: Workspace) -> Path:
    """The workspace manifest closest to ``start`` (walking upward)."""
    start = Path(start).resolve()
    for directory in [start, *start.parents]:
        candidate = directory / MANIFEST_FILE
        if candidate in workspace.manifests:
            return candidate
    raise ScanError(f"{start} is not inside any package of {workspace.root}")


def load_workspace(
    root: Path,
    ignore: Iterable[str] = DEFAULT_IGNORES,
    store: ManifestStore | None = None,
) -> Workspace:
    """Scan ``root`` and load every manifest.

    Malformed manifests are excluded and recorded as parse-error advisories.
    """
    store = store or ManifestStore()
    paths = scan(root, ignore)
    workspace = Workspace(root=Path(root).resolve())
    for path in paths:
        try:
            workspace.manifests[path] = store.load(path)
        except ParseError as e:
            logger.warning("Excluding malformed manifest %s: %s", path, e.reason)
            workspace.warnings.append(
                Advisory(
                    kind=AdvisoryKind.PARSE_ERROR,
                    message=f"{workspace.relative(path)}: {e.reason}",
                    manifest=path,
                )
            )
    return workspace
