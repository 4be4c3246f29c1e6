"""Exception hierarchy for depsync."""

from pathlib import Path


class DepsyncError(Exception):
    """Base class for all depsync failures."""


class ScanError(DepsyncError):
    """The workspace root is missing, not a directory, or cannot be found."""


class ParseError(DepsyncError):
    """A manifest could not be parsed."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class RegistryError(DepsyncError):
    """The registry could not answer for a dependency."""

    retryable = False

    def __init__(self, name: str, message: str):
        self.name = name
        super().__init__(message)


class NetworkError(RegistryError):
    """Registry unreachable, timed out or returned a server error."""

    retryable = True


class UnknownPackageError(RegistryError):
    """The registry does not know the package."""

    def __init__(self, name: str):
        super().__init__(name, f"Package {name} not found in registry")


class PlanError(DepsyncError):
    """A plan cannot be built or staged as requested."""


class PartialApplyError(DepsyncError):
    """Some manifests were written before a write failed."""

    def __init__(
        self,
        written: list[Path],
        failed: list[Path],
        pending: list[Path],
        cause: BaseException | None = None,
    ):
        self.written = list(written)
        self.failed = list(failed)
        self.pending = list(pending)
        self.cause = cause
        super().__init__(
            f"Wrote {len(self.written)} manifest(s) before failing on "
            f"{', '.join(str(p) for p in self.failed)}; "
            f"{len(self.pending)} not attempted"
        )


class OperationCancelled(DepsyncError):
    """The caller cancelled the run before anything was written."""


class InvalidPackageName(DepsyncError, ValueError):
    """Not a valid npm package name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name} is not a valid npm package name")
