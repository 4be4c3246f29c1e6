"""Core data models for depsync."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# Dependency fields of a package.json, in canonical order
DEPENDENCY_FIELDS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


def field_rank(field_name: str) -> int:
    """Position of a dependency field in canonical order."""
    try:
        return DEPENDENCY_FIELDS.index(field_name)
    except ValueError:
        return len(DEPENDENCY_FIELDS)


class Classification(str, Enum):
    """Workspace-wide state of one dependency against a target version."""

    UNIFORM = "uniform"
    DIVERGENT_COMPATIBLE = "divergent-compatible"
    DIVERGENT_INCOMPATIBLE = "divergent-incompatible"


class EntryStatus(str, Enum):
    """What rewriting one declaration to the target would mean."""

    CURRENT = "current"
    UPGRADE = "upgrade"
    MAJOR = "major"
    PINNED = "pinned"
    DOWNGRADE = "downgrade"
    SATISFIED = "satisfied"
    UNSUPPORTED = "unsupported"


class AdvisoryKind(str, Enum):
    LOCKFILE_STALE = "lockfile-stale-reminder"
    NO_USAGES = "no-usages"
    NO_TARGET = "no-target"
    PINNED_SKIPPED = "pinned-skipped"
    MAJOR_SKIPPED = "major-skipped"
    DOWNGRADE_SKIPPED = "downgrade-skipped"
    UNSUPPORTED_RANGE = "unsupported-range"
    ALREADY_DECLARED = "already-declared"
    NOT_DECLARED = "not-declared"
    PARSE_ERROR = "parse-error"
    REGISTRY_ERROR = "registry-error"


@dataclass
class Manifest:
    """A parsed package.json."""

    path: Path
    raw: str
    name: str | None = None
    fields: dict[str, dict[str, str]] = field(default_factory=dict)

    def declared(self, dependency: str) -> list[tuple[str, str]]:
        """(field, range) pairs declaring ``dependency``, in field order."""
        return [
            (field_name, deps[dependency])
            for field_name, deps in self.fields.items()
            if dependency in deps
        ]


@dataclass
class Workspace:
    """Manifests discovered under a root, keyed by absolute path."""

    root: Path
    manifests: dict[Path, Manifest] = field(default_factory=dict)
    warnings: list["Advisory"] = field(default_factory=list)

    def __iter__(self):
        return iter(self.manifests.values())

    def __len__(self) -> int:
        return len(self.manifests)

    def relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return str(path)


@dataclass(frozen=True)
class UsageEntry:
    """One declaration of a dependency inside one manifest field."""

    name: str
    manifest: Path
    field: str
    range: str


@dataclass(frozen=True)
class ResolutionResult:
    """Registry answer for a dependency: latest plus per-range best match."""

    name: str
    latest: str
    satisfying: dict[str, str | None] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class EntryAssessment:
    """How one usage entry relates to the target version."""

    entry: UsageEntry
    status: EntryStatus
    proposed_range: str | None
    reason: str


@dataclass(frozen=True)
class ConflictReport:
    """Classification of a dependency across the workspace."""

    name: str
    target: str
    classification: Classification
    assessments: tuple[EntryAssessment, ...] = ()


@dataclass(frozen=True)
class Edit:
    """A single field-level change to a manifest.

    ``old_range`` is None for an insertion and ``new_range`` is None for a
    removal.
    """

    manifest: Path
    field: str
    name: str
    old_range: str | None
    new_range: str | None

    @property
    def sort_key(self) -> tuple[str, int, str, str]:
        return (str(self.manifest), field_rank(self.field), self.field, self.name)

    @property
    def is_noop(self) -> bool:
        return self.old_range == self.new_range


@dataclass(frozen=True)
class Advisory:
    """Non-blocking note attached to a plan or report."""

    kind: AdvisoryKind
    message: str
    manifest: Path | None = None
    name: str | None = None


@dataclass(frozen=True)
class UpgradePlan:
    """Ordered edits and advisories; immutable once built."""

    edits: tuple[Edit, ...] = ()
    advisories: tuple[Advisory, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.edits

    def manifests(self) -> list[Path]:
        return sorted({edit.manifest for edit in self.edits}, key=str)

    def edits_for(self, path: Path) -> list[Edit]:
        return [edit for edit in self.edits if edit.manifest == path]

    def advisories_of(self, kind: AdvisoryKind) -> list[Advisory]:
        return [advisory for advisory in self.advisories if advisory.kind == kind]


@dataclass(frozen=True)
class LockfileRecord:
    """A lockfile found in the workspace. Never read or modified."""

    path: Path
    kind: str  # npm, npm-shrinkwrap, yarn, pnpm, bun


@dataclass
class ApplyResult:
    """Manifests written by a successful apply."""

    written: list[Path] = field(default_factory=list)
    unchanged: list[Path] = field(default_factory=list)


@dataclass
class RunReport:
    """Everything a single engine run did or decided not to do."""

    plan: UpgradePlan
    conflicts: list[ConflictReport] = field(default_factory=list)
    resolutions: dict[str, ResolutionResult] = field(default_factory=dict)
    applied: ApplyResult | None = None
    warnings: list[Advisory] = field(default_factory=list)

    @property
    def advisories(self) -> list[Advisory]:
        return list(self.warnings) + list(self.plan.advisories)

    @property
    def has_parse_errors(self) -> bool:
        return any(w.kind == AdvisoryKind.PARSE_ERROR for w in self.warnings)
