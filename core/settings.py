"""Runtime settings, from defaults and DEPSYNC_* environment variables."""

import os
from dataclasses import dataclass, field

from .registry import DEFAULT_REGISTRY_URL
from .scanner import DEFAULT_IGNORES


@dataclass(frozen=True)
class Settings:
    """Options for a single depsync run."""

    registry_url: str = DEFAULT_REGISTRY_URL
    timeout: float = 30.0
    max_concurrency: int = 6
    ignore: tuple[str, ...] = field(default=DEFAULT_IGNORES)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        extra_ignores = tuple(
            pattern.strip()
            for pattern in env.get("DEPSYNC_IGNORE", "").split(",")
            if pattern.strip()
        )
        return cls(
            registry_url=env.get("DEPSYNC_REGISTRY_URL", DEFAULT_REGISTRY_URL),
            timeout=float(env.get("DEPSYNC_TIMEOUT", 30.0)),
            max_concurrency=int(env.get("DEPSYNC_MAX_CONCURRENCY", 6)),
            ignore=DEFAULT_IGNORES + extra_ignores,
        )
