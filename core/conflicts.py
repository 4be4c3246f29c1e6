"""Conflict analysis: how a workspace's declarations relate to a target version."""

from .models import Classification, ConflictReport, EntryAssessment, EntryStatus, UsageEntry
from .versions import (
    Version,
    compat_key,
    is_registry_range,
    parse_range,
    parse_version,
    pinned_version,
    rewrite_range,
    satisfies,
    split_simple,
)


def _as_version(target: Version | str) -> Version:
    if isinstance(target, Version):
        return target
    parsed = parse_version(target)
    if parsed is None:
        raise ValueError(f"{target} is not a valid semantic version")
    return parsed


def assess_entry(entry: UsageEntry, target: Version | str) -> EntryAssessment:
    """Decide what rewriting ``entry`` to ``target`` would mean."""
    target = _as_version(target)
    declared = entry.range.strip()

    def verdict(status: EntryStatus, proposed: str | None, reason: str) -> EntryAssessment:
        return EntryAssessment(entry=entry, status=status, proposed_range=proposed, reason=reason)

    if not is_registry_range(declared):
        return verdict(EntryStatus.UNSUPPORTED, None, f"'{declared}' does not resolve from the registry")

    pin = pinned_version(declared)
    if pin is not None:
        if pin == target:
            return verdict(EntryStatus.CURRENT, entry.range, f"already pinned to {target}")
        return verdict(
            EntryStatus.PINNED,
            rewrite_range(declared, target),
            f"pinned to {pin}; changing it to {target} needs an explicit override",
        )

    simple = split_simple(declared)
    if simple is not None:
        op, base = simple
        proposed = rewrite_range(declared, target)
        if base == target:
            return verdict(EntryStatus.CURRENT, entry.range, f"already at {target}")
        if target < base:
            return verdict(
                EntryStatus.DOWNGRADE, proposed, f"declares {base}, newer than target {target}"
            )
        if op in ("^", "~") and not satisfies(declared, target) and compat_key(base) != compat_key(target):
            return verdict(
                EntryStatus.MAJOR,
                proposed,
                f"{declared} does not allow {target}; widening crosses a major version",
            )
        return verdict(EntryStatus.UPGRADE, proposed, f"{declared} -> {proposed}")

    if parse_range(declared) is None:
        return verdict(EntryStatus.UNSUPPORTED, None, f"'{declared}' is not a semver range")
    if satisfies(declared, target):
        return verdict(EntryStatus.SATISFIED, entry.range, f"{declared} already accepts {target}")
    return verdict(
        EntryStatus.UNSUPPORTED,
        None,
        f"{declared} does not accept {target} and is too complex to rewrite automatically",
    )


def classify(name: str, entries: list[UsageEntry], target: Version | str) -> ConflictReport:
    """Classify the workspace's declarations of ``name`` against ``target``.

    Exactly one classification applies:

    * divergent-incompatible: some exact pin differs from the target
    * uniform: every registry declaration already accepts the target as written
      (a name with no registry declarations is never uniform)
    * divergent-compatible: everything else; the ranges can be rewritten,
      possibly with confirmation for major-version widening
    """
    target = _as_version(target)
    assessments = tuple(assess_entry(entry, target) for entry in entries)
    registry_ranges = [a.entry.range for a in assessments if is_registry_range(a.entry.range)]

    if any(a.status == EntryStatus.PINNED for a in assessments):
        classification = Classification.DIVERGENT_INCOMPATIBLE
    elif registry_ranges and all(satisfies(r, target) for r in registry_ranges):
        classification = Classification.UNIFORM
    else:
        classification = Classification.DIVERGENT_COMPATIBLE

    return ConflictReport(
        name=name,
        target=str(target),
        classification=classification,
        assessments=assessments,
    )
