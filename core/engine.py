"""Engine wiring: scan -> index -> resolve -> classify -> plan -> apply."""

import asyncio
import logging
from collections.abc import Callable, Collection, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from . import lockfiles as lockfile_advisor
from .applier import PlanApplier
from .conflicts import classify
from .errors import PlanError
from .manifest_store import ManifestStore
from .models import (
    Advisory,
    AdvisoryKind,
    ConflictReport,
    EntryStatus,
    LockfileRecord,
    ResolutionResult,
    RunReport,
    UsageEntry,
    Workspace,
)
from .package_name import split_spec, validate_package_name
from .planner import RangeChooser, analyze, choose_add_range, first_choice, plan_add, plan_remove, plan_upgrade
from .registry import NpmRegistry
from .resolver import VersionResolver
from .scanner import find_closest_manifest, load_workspace
from .settings import Settings
from .usage_index import UsageIndex
from .versions import is_registry_range, parse_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A dependency offered to the selection callback."""

    name: str
    target: str
    latest: str | None
    report: ConflictReport
    advisories: tuple[Advisory, ...] = ()
    wanted: dict[str, str | None] = field(default_factory=dict, compare=False, hash=False)

    @property
    def classification(self) -> str:
        return self.report.classification.value

    @property
    def needs_change(self) -> bool:
        return any(
            a.status not in (EntryStatus.CURRENT, EntryStatus.SATISFIED)
            for a in self.report.assessments
        )


# Receives the classified candidates and returns the names to upgrade
SelectCallback = Callable[[list[Candidate]], Iterable[str]]


@dataclass
class LoadedWorkspace:
    workspace: Workspace
    index: UsageIndex
    lockfiles: list[LockfileRecord]


class UpgradeEngine:
    """Plans and applies synchronized dependency changes across a workspace."""

    def __init__(
        self,
        root: Path,
        settings: Settings | None = None,
        resolver: VersionResolver | None = None,
        store: ManifestStore | None = None,
    ):
        self.root = Path(root)
        self.settings = settings or Settings()
        self.store = store or ManifestStore()
        self.resolver = resolver or VersionResolver(
            NpmRegistry(self.settings.registry_url, timeout=self.settings.timeout),
            timeout=self.settings.timeout,
            max_concurrency=self.settings.max_concurrency,
        )
        self.applier = PlanApplier(self.store)

    def load(self) -> LoadedWorkspace:
        """Scan the workspace once; membership is fixed for the run."""
        workspace = load_workspace(self.root, self.settings.ignore, self.store)
        index = UsageIndex.build(workspace)
        records = lockfile_advisor.scan(workspace.root, workspace.manifests)
        return LoadedWorkspace(workspace, index, records)

    async def upgrade(
        self,
        packages: Iterable[str] | None = None,
        override_pinned: bool | Collection[Path] = False,
        allow_major: bool = False,
        select: SelectCallback | None = None,
        dry_run: bool = False,
        strict: bool = False,
        cancel=None,
    ) -> RunReport:
        """Upgrade dependencies everywhere they are declared.

        Args:
            packages: Names (optionally ``name@version`` to force a target);
                None upgrades every dependency in the workspace
            override_pinned: Allow changing exact pins (all, or per manifest)
            allow_major: Allow caret/tilde widening across a major version
            select: Interactive selection callback
            dry_run: Build the plan without writing
            strict: Raise PlanError on a pin instead of skipping it
            cancel: Signal with ``is_set()``; checked between resolution
                steps and before writing

        Raises:
            ScanError: Bad workspace root.
            RegistryError: Every requested dependency failed to resolve.
        """
        loaded = await asyncio.to_thread(self.load)
        index = loaded.index

        explicit: dict[str, str] = {}
        if packages is None:
            names = [
                name for name in index.names()
                if any(is_registry_range(r) for r in index.ranges_for(name))
            ]
        else:
            names = []
            for token in packages:
                name, version = split_spec(token)
                validate_package_name(name)
                if version is not None:
                    parsed = parse_version(version)
                    if parsed is None:
                        raise PlanError(f"{version} is not a version; use name@x.y.z to set a target")
                    explicit[name] = str(parsed)
                names.append(name)

        requests = {
            name: index.ranges_for(name)
            for name in names
            if name in index
            and name not in explicit
            and any(is_registry_range(r) for r in index.ranges_for(name))
        }
        results, errors = await self.resolver.resolve_many(requests, cancel=cancel)
        if requests and errors and not results and not explicit:
            raise errors[sorted(errors)[0]]

        warnings = list(loaded.workspace.warnings)
        for name in sorted(errors):
            error = errors[name]
            hint = "retry later" if error.retryable else "check the package name"
            warnings.append(Advisory(AdvisoryKind.REGISTRY_ERROR, f"{name}: {error} ({hint})", name=name))

        targets = {name: result.latest for name, result in results.items()}
        targets.update(explicit)
        selection = [name for name in names if name not in errors]
        reports = analyze(index, selection, targets)

        if select is not None:
            # Advisories the full selection would raise, offered per name
            preview = plan_upgrade(
                index,
                selection,
                targets,
                override_pinned=override_pinned,
                allow_major=allow_major,
                lockfiles=loaded.lockfiles,
                root=loaded.workspace.root,
            )
            shared = tuple(warnings) + tuple(a for a in preview.advisories if a.name is None)
            candidates = [
                Candidate(
                    name=report.name,
                    target=report.target,
                    latest=results[report.name].latest if report.name in results else None,
                    report=report,
                    advisories=tuple(a for a in preview.advisories if a.name == report.name) + shared,
                    wanted=dict(results[report.name].satisfying) if report.name in results else {},
                )
                for report in reports
            ]
            offered = {c.name for c in candidates if c.needs_change}
            chosen = set(select([c for c in candidates if c.needs_change]))
            selection = [name for name in selection if name not in offered or name in chosen]
            logger.debug("Selected %d of %d candidates", len(chosen & offered), len(offered))

        plan = plan_upgrade(
            index,
            selection,
            targets,
            override_pinned=override_pinned,
            allow_major=allow_major,
            lockfiles=loaded.lockfiles,
            root=loaded.workspace.root,
            strict=strict,
        )
        applied = None if dry_run else await asyncio.to_thread(self.applier.apply, plan, cancel=cancel)
        return RunReport(plan=plan, conflicts=reports, resolutions=results, applied=applied, warnings=warnings)

    async def add(
        self,
        packages: Iterable[str],
        cwd: Path,
        field_name: str = "dependencies",
        chooser: RangeChooser = first_choice,
        dry_run: bool = False,
        cancel=None,
    ) -> RunReport:
        """Add dependencies to the package enclosing ``cwd``.

        Without an explicit ``name@range``, the latest caret range is used;
        when the workspace already declares other ranges, ``chooser`` picks
        between them so packages stay in sync.
        """
        loaded = await asyncio.to_thread(self.load)
        manifest = find_closest_manifest(cwd, loaded.workspace)

        explicit: dict[str, str] = {}
        wanted: list[str] = []
        for token in packages:
            name, range_text = split_spec(token)
            validate_package_name(name)
            if range_text:
                explicit[name] = range_text
            else:
                wanted.append(name)

        results, errors = await self.resolver.resolve_many({name: [] for name in wanted}, cancel=cancel)
        if errors:
            raise errors[sorted(errors)[0]]

        ranges = dict(explicit)
        for name in wanted:
            ranges[name] = choose_add_range(
                name, results[name].latest, loaded.index.ranges_for(name), chooser
            )

        plan = plan_add(
            loaded.index,
            manifest,
            ranges,
            field=field_name,
            lockfiles=loaded.lockfiles,
            root=loaded.workspace.root,
        )
        applied = None if dry_run else await asyncio.to_thread(self.applier.apply, plan, cancel=cancel)
        return RunReport(plan=plan, resolutions=results, applied=applied, warnings=list(loaded.workspace.warnings))

    def remove(
        self,
        packages: Iterable[str],
        cwd: Path,
        everywhere: bool = False,
        dry_run: bool = False,
        cancel=None,
    ) -> RunReport:
        """Remove dependencies from the enclosing package, or everywhere."""
        loaded = self.load()
        names = [validate_package_name(split_spec(token)[0]) for token in packages]
        manifests = None if everywhere else [find_closest_manifest(cwd, loaded.workspace)]
        plan = plan_remove(
            loaded.index,
            names,
            manifests=manifests,
            lockfiles=loaded.lockfiles,
            root=loaded.workspace.root,
        )
        applied = None if dry_run else self.applier.apply(plan, cancel=cancel)
        return RunReport(plan=plan, applied=applied, warnings=list(loaded.workspace.warnings))

    async def inspect(self, name: str) -> tuple[list[UsageEntry], ConflictReport | None, ResolutionResult | None]:
        """Usages of ``name`` and how they compare to the latest version."""
        validate_package_name(name)
        loaded = await asyncio.to_thread(self.load)
        entries = loaded.index.entries_for(name)
        if not entries:
            return entries, None, None
        result = await self.resolver.resolve(name, loaded.index.ranges_for(name))
        return entries, classify(name, entries, result.latest), result
