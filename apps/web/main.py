"""FastAPI web application for depsync."""

from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from core.engine import UpgradeEngine
from core.errors import InvalidPackageName, PlanError, RegistryError, ScanError
from core.lockfiles import detect_package_manager
from core.models import RunReport
from core.registry import NpmRegistry
from core.resolver import VersionResolver
from core.settings import Settings

app = FastAPI(
    title="depsync",
    description="Report and plan synchronized dependency upgrades across npm workspaces",
    version="0.1.0",
)


class Usage(BaseModel):
    """One declaration of a dependency."""
    name: str
    manifest: str
    field: str
    range: str


class UsagesResponse(BaseModel):
    root: str
    package_manager: Optional[str] = None
    usages: list[Usage]
    warnings: list[str]


class PlanRequest(BaseModel):
    """Request model for planning upgrades. Plans are never applied."""
    root: str
    packages: Optional[list[str]] = None
    override_pinned: bool = False
    allow_major: bool = False


class PlannedEdit(BaseModel):
    manifest: str
    field: str
    name: str
    old_range: Optional[str] = None
    new_range: Optional[str] = None


class AdvisoryOut(BaseModel):
    kind: str
    message: str


class ConflictOut(BaseModel):
    name: str
    target: str
    classification: str


class PlanResponse(BaseModel):
    """Response model for a dry-run plan."""
    edits: list[PlannedEdit]
    advisories: list[AdvisoryOut]
    conflicts: list[ConflictOut]
    has_changes: bool


def build_engine(root: str) -> UpgradeEngine:
    settings = Settings.from_env()
    resolver = VersionResolver(
        NpmRegistry(settings.registry_url, timeout=settings.timeout),
        timeout=settings.timeout,
        max_concurrency=settings.max_concurrency,
    )
    return UpgradeEngine(Path(root), settings=settings, resolver=resolver)


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def _plan_response(report: RunReport, root: Path) -> PlanResponse:
    return PlanResponse(
        edits=[
            PlannedEdit(
                manifest=_relative(edit.manifest, root),
                field=edit.field,
                name=edit.name,
                old_range=edit.old_range,
                new_range=edit.new_range,
            )
            for edit in report.plan.edits
        ],
        advisories=[AdvisoryOut(kind=a.kind.value, message=a.message) for a in report.advisories],
        conflicts=[
            ConflictOut(name=c.name, target=c.target, classification=c.classification.value)
            for c in report.conflicts
        ],
        has_changes=not report.plan.is_empty,
    )


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/api/usages", response_model=UsagesResponse)
async def list_usages(root: str, name: Optional[str] = None):
    """List dependency declarations in a workspace, optionally for one name."""
    engine = build_engine(root)
    try:
        loaded = await run_in_threadpool(engine.load)
    except ScanError as e:
        raise HTTPException(status_code=400, detail=str(e))

    index = loaded.index
    workspace_root = loaded.workspace.root
    names = [name] if name else index.names()
    usages = [
        Usage(
            name=entry.name,
            manifest=_relative(entry.manifest, workspace_root),
            field=entry.field,
            range=entry.range,
        )
        for dependency in names
        for entry in index.entries_for(dependency)
    ]
    return UsagesResponse(
        root=str(workspace_root),
        package_manager=detect_package_manager(workspace_root),
        usages=usages,
        warnings=[w.message for w in loaded.workspace.warnings],
    )


@app.post("/api/plan", response_model=PlanResponse)
async def plan_upgrades(request: PlanRequest):
    """Build an upgrade plan without writing anything."""
    engine = build_engine(request.root)
    try:
        report = await engine.upgrade(
            request.packages,
            override_pinned=request.override_pinned,
            allow_major=request.allow_major,
            dry_run=True,
        )
    except ScanError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (PlanError, InvalidPackageName) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RegistryError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return _plan_response(report, engine.root.resolve())
