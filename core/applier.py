"""Transactional application of upgrade plans."""

import logging
import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from pathlib import Path

from .errors import OperationCancelled, PartialApplyError, PlanError
from .manifest_store import ManifestStore
from .models import ApplyResult, Edit, UpgradePlan

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_path_locks: dict[Path, threading.Lock] = {}


def _lock_for(path: Path) -> threading.Lock:
    with _locks_guard:
        return _path_locks.setdefault(path, threading.Lock())


@contextmanager
def _locked(paths: list[Path]) -> Iterator[None]:
    """Hold the per-manifest locks for ``paths``, taken in sorted order."""
    with ExitStack() as stack:
        for path in sorted(paths, key=str):
            stack.enter_context(_lock_for(path))
        yield


class PlanApplier:
    """Writes a plan's edits to disk, all-or-nothing at staging time.

    New text for every affected manifest is computed before any file is
    touched. A staging failure writes nothing; a write failure part-way
    through raises PartialApplyError naming what was and was not written.
    """

    def __init__(self, store: ManifestStore | None = None):
        self.store = store or ManifestStore()

    def stage(self, plan: UpgradePlan) -> dict[Path, str]:
        """Compute the new text of every manifest the plan touches.

        Each edit is checked against what is on disk now: a value equal to
        ``old_range`` is rewritten, one already equal to ``new_range`` is left
        as is (the plan was applied before), anything else means the manifest
        changed since planning.

        Raises:
            ParseError: A manifest no longer parses.
            PlanError: A manifest changed since the plan was built.
        """
        staged: dict[Path, str] = {}
        for path in plan.manifests():
            manifest = self.store.load(path)
            pending: list[Edit] = []
            for edit in plan.edits_for(path):
                current = manifest.fields.get(edit.field, {}).get(edit.name)
                if current == edit.new_range:
                    continue
                if current != edit.old_range:
                    raise PlanError(
                        f"{path}: {edit.field}.{edit.name} is {current!r}, expected "
                        f"{edit.old_range!r}; the manifest changed since planning"
                    )
                pending.append(edit)
            if pending:
                staged[path] = self.store.serialize(manifest, pending)
        return staged

    def apply(self, plan: UpgradePlan, cancel=None) -> ApplyResult:
        """Apply ``plan``.

        Args:
            plan: Plan to apply
            cancel: Optional signal with ``is_set()``, honoured only before
                the first write

        Returns:
            Which manifests were written and which needed no change

        Raises:
            ParseError, PlanError: Staging failed; nothing was written.
            OperationCancelled: Cancelled before writing; nothing was written.
            PartialApplyError: A write failed after others succeeded.
        """
        paths = plan.manifests()
        result = ApplyResult()
        if not paths:
            return result

        with _locked(paths):
            staged = self.stage(plan)
            result.unchanged = [p for p in paths if p not in staged]

            if cancel is not None and cancel.is_set():
                raise OperationCancelled("Cancelled before applying; no manifest was written")

            to_write = [p for p in paths if p in staged]
            for position, path in enumerate(to_write):
                try:
                    self.store.write(path, staged[path])
                except OSError as e:
                    logger.error("Failed writing %s: %s", path, e)
                    raise PartialApplyError(
                        written=result.written,
                        failed=[path],
                        pending=to_write[position + 1:],
                        cause=e,
                    ) from e
                result.written.append(path)
                logger.info("Updated %s", path)

        return result
