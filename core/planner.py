"""Upgrade planning. Pure functions of the index and chosen targets; no I/O."""

import logging
from collections.abc import Callable, Collection, Iterable, Mapping
from pathlib import Path

from .conflicts import classify
from .errors import PlanError
from .lockfiles import stale_reminders
from .models import (
    Advisory,
    AdvisoryKind,
    ConflictReport,
    Edit,
    EntryStatus,
    LockfileRecord,
    UpgradePlan,
)
from .usage_index import UsageIndex

logger = logging.getLogger(__name__)

# Receives (dependency name, candidate ranges) and returns the chosen range
RangeChooser = Callable[[str, list[str]], str]

_SKIP_KINDS = {
    EntryStatus.PINNED: AdvisoryKind.PINNED_SKIPPED,
    EntryStatus.MAJOR: AdvisoryKind.MAJOR_SKIPPED,
    EntryStatus.DOWNGRADE: AdvisoryKind.DOWNGRADE_SKIPPED,
    EntryStatus.UNSUPPORTED: AdvisoryKind.UNSUPPORTED_RANGE,
}


def _display(path: Path, root: Path | None) -> str:
    if root is not None:
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            pass
    return str(path)


def _override_allows(override_pinned: bool | Collection[Path], manifest: Path) -> bool:
    if isinstance(override_pinned, bool):
        return override_pinned
    return manifest in override_pinned


def _finish(edits: Iterable[Edit], advisories: list[Advisory], lockfiles, root) -> UpgradePlan:
    advisories = advisories + stale_reminders(lockfiles, root)
    ordered = sorted(edits, key=lambda edit: edit.sort_key)
    return UpgradePlan(edits=tuple(ordered), advisories=tuple(advisories))


def analyze(
    index: UsageIndex,
    selection: Iterable[str],
    target_versions: Mapping[str, str],
) -> list[ConflictReport]:
    """Classify each selected dependency that has usages and a target."""
    reports = []
    for name in sorted(set(selection)):
        entries = index.entries_for(name)
        target = target_versions.get(name)
        if entries and target:
            reports.append(classify(name, entries, target))
    return reports


def plan_upgrade(
    index: UsageIndex,
    selection: Iterable[str],
    target_versions: Mapping[str, str],
    override_pinned: bool | Collection[Path] = False,
    allow_major: bool = False,
    lockfiles: Iterable[LockfileRecord] = (),
    root: Path | None = None,
    strict: bool = False,
) -> UpgradePlan:
    """Build the edits that move every selected dependency to its target.

    Args:
        index: Usage index snapshot
        selection: Dependency names to upgrade
        target_versions: Dependency name -> target version
        override_pinned: True/False for every pin, or the manifest paths
            whose pins may be changed
        allow_major: Permit caret/tilde widening across a major version
        lockfiles: Lockfiles to remind about
        root: Workspace root, used to shorten paths in messages
        strict: Raise instead of skipping a pin that is not overridden

    Returns:
        Plan with edits sorted by (manifest, field, name) and an advisory
        for every entry left alone.

    Raises:
        PlanError: In strict mode, when a pin blocks the upgrade.
    """
    edits: list[Edit] = []
    advisories: list[Advisory] = []

    for name in sorted(set(selection)):
        entries = index.entries_for(name)
        if not entries:
            advisories.append(Advisory(AdvisoryKind.NO_USAGES, f"no usages found for {name}", name=name))
            continue
        target = target_versions.get(name)
        if not target:
            advisories.append(
                Advisory(AdvisoryKind.NO_TARGET, f"no target version for {name}; left unchanged", name=name)
            )
            continue

        report = classify(name, entries, target)
        logger.debug("%s -> %s: %s", name, target, report.classification.value)

        for assessment in report.assessments:
            entry = assessment.entry
            status = assessment.status
            permitted = (
                status == EntryStatus.UPGRADE
                or (status == EntryStatus.MAJOR and allow_major)
                or (status == EntryStatus.PINNED and _override_allows(override_pinned, entry.manifest))
            )
            where = f"{_display(entry.manifest, root)} ({entry.field})"

            if permitted:
                if assessment.proposed_range != entry.range:
                    edits.append(
                        Edit(
                            manifest=entry.manifest,
                            field=entry.field,
                            name=name,
                            old_range=entry.range,
                            new_range=assessment.proposed_range,
                        )
                    )
                continue

            if status == EntryStatus.PINNED and strict:
                raise PlanError(f"{where}: {name} {assessment.reason}")
            if status in _SKIP_KINDS:
                advisories.append(
                    Advisory(
                        kind=_SKIP_KINDS[status],
                        message=f"{where}: skipped {name}, {assessment.reason}",
                        manifest=entry.manifest,
                        name=name,
                    )
                )

    return _finish(edits, advisories, lockfiles, root)


def first_choice(name: str, options: list[str]) -> str:
    return options[0]


def choose_add_range(
    name: str,
    latest: str,
    existing_ranges: list[str],
    chooser: RangeChooser = first_choice,
) -> str:
    """Pick the range to declare when adding ``name``.

    The latest caret range is used directly unless the workspace already
    declares other ranges for the dependency; then ``chooser`` picks between
    the latest and the existing ones.
    """
    latest_range = f"^{latest}"
    if not existing_ranges or latest_range in existing_ranges:
        return latest_range
    options = [latest_range] + [r for r in existing_ranges if r != latest_range]
    choice = chooser(name, options)
    if choice not in options:
        raise PlanError(f"{choice} is not one of the offered ranges for {name}")
    return choice


def plan_add(
    index: UsageIndex,
    manifest: Path,
    ranges: Mapping[str, str],
    field: str = "dependencies",
    lockfiles: Iterable[LockfileRecord] = (),
    root: Path | None = None,
) -> UpgradePlan:
    """Insert dependencies into one manifest.

    Dependencies the manifest already declares (in any field) are reported
    instead of duplicated.
    """
    edits: list[Edit] = []
    advisories: list[Advisory] = []
    for name in sorted(ranges):
        existing = [e for e in index.entries_for(name) if e.manifest == manifest]
        if existing:
            declared = ", ".join(f"{e.field} {e.range}" for e in existing)
            advisories.append(
                Advisory(
                    AdvisoryKind.ALREADY_DECLARED,
                    f"{_display(manifest, root)}: {name} is already declared ({declared})",
                    manifest=manifest,
                    name=name,
                )
            )
            continue
        edits.append(Edit(manifest=manifest, field=field, name=name, old_range=None, new_range=ranges[name]))
    return _finish(edits, advisories, lockfiles, root)


def plan_remove(
    index: UsageIndex,
    names: Iterable[str],
    manifests: Collection[Path] | None = None,
    lockfiles: Iterable[LockfileRecord] = (),
    root: Path | None = None,
) -> UpgradePlan:
    """Remove dependencies from every field of the given manifests.

    ``manifests=None`` removes them everywhere in the workspace.
    """
    edits: list[Edit] = []
    advisories: list[Advisory] = []
    for name in sorted(set(names)):
        entries = [
            e for e in index.entries_for(name)
            if manifests is None or e.manifest in manifests
        ]
        if not entries:
            advisories.append(Advisory(AdvisoryKind.NOT_DECLARED, f"{name} is not declared; nothing to remove", name=name))
            continue
        for entry in entries:
            edits.append(
                Edit(manifest=entry.manifest, field=entry.field, name=name, old_range=entry.range, new_range=None)
            )
    return _finish(edits, advisories, lockfiles, root)
