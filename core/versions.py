"""npm semver helpers on top of semantic_version."""

import re
from collections.abc import Iterable

from semantic_version import NpmSpec, Version

# Declarations that do not resolve against the registry
NON_REGISTRY_PREFIXES = (
    "workspace:",
    "file:",
    "link:",
    "portal:",
    "patch:",
    "catalog:",
    "npm:",
    "git:",
    "git+",
    "github:",
    "gitlab:",
    "bitbucket:",
    "http:",
    "https:",
)

# Ranges we know how to rewrite while keeping the author's operator
_SIMPLE_RANGE = re.compile(
    r"^(?P<op>\^|~|>=|=)?\s*v?"
    r"(?P<version>\d+\.\d+\.\d+(?:-[0-9A-Za-z.\-]+)?(?:\+[0-9A-Za-z.\-]+)?)$"
)


def parse_version(text: str) -> Version | None:
    """Parse a concrete version, tolerating a leading ``v`` or ``=``."""
    candidate = text.strip().lstrip("=").strip()
    if candidate.startswith("v"):
        candidate = candidate[1:]
    try:
        return Version(candidate)
    except ValueError:
        return None


def is_registry_range(range_text: str) -> bool:
    """False for workspace, file, git, url and alias declarations."""
    stripped = range_text.strip()
    if stripped.startswith(NON_REGISTRY_PREFIXES):
        return False
    # GitHub shorthand ("user/repo#ref")
    if "/" in stripped:
        return False
    return True


def parse_range(range_text: str) -> NpmSpec | None:
    """Parse an npm range; None for non-registry specs and dist-tags."""
    stripped = range_text.strip()
    if not is_registry_range(stripped):
        return None
    if stripped in ("", "*", "x", "X"):
        stripped = "*"
    try:
        return NpmSpec(stripped)
    except ValueError:
        return None


def satisfies(range_text: str, version: Version | str) -> bool:
    spec = parse_range(range_text)
    if spec is None:
        return False
    if isinstance(version, str):
        version = Version(version)
    return spec.match(version)


def split_simple(range_text: str) -> tuple[str, Version] | None:
    """Split ``^1.2.3`` style ranges into operator and base version.

    Exact versions come back with an empty operator (or ``=`` when written).
    Anything more complex (unions, hyphens, x-ranges, upper bounds) is None.
    """
    match = _SIMPLE_RANGE.match(range_text.strip())
    if not match:
        return None
    return match.group("op") or "", Version(match.group("version"))


def pinned_version(range_text: str) -> Version | None:
    """The version an exact declaration pins, or None if it is a range."""
    simple = split_simple(range_text)
    if simple is None:
        return None
    op, version = simple
    if op in ("", "="):
        return version
    return None


def rewrite_range(range_text: str, target: Version) -> str | None:
    """Rewrite a simple range so its base is ``target``, keeping the operator."""
    simple = split_simple(range_text)
    if simple is None:
        return None
    op, _ = simple
    return f"{op}{target}"


def compat_key(version: Version) -> tuple[int, ...]:
    """Caret compatibility line: ``^1.x`` -> (1,), ``^0.3.x`` -> (0, 3)."""
    if version.major:
        return (version.major,)
    if version.minor:
        return (0, version.minor)
    return (0, 0, version.patch)


def sort_versions(candidates: Iterable[str]) -> list[Version]:
    """Parse and sort version strings ascending, dropping invalid ones."""
    parsed = []
    for candidate in candidates:
        try:
            parsed.append(Version(candidate))
        except ValueError:
            continue  # Skip invalid versions
    return sorted(set(parsed))


def latest_of(versions: Iterable[Version]) -> Version | None:
    """Highest stable version, or highest prerelease if nothing is stable."""
    versions = list(versions)
    stable = [v for v in versions if not v.prerelease]
    pool = stable or versions
    return max(pool) if pool else None


def highest_match(range_text: str, versions: Iterable[Version]) -> Version | None:
    spec = parse_range(range_text)
    if spec is None:
        return None
    return spec.select(versions)

