"""CLI application for depsync."""

import asyncio
import dataclasses
import json
from enum import IntEnum
from pathlib import Path

import typer
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from core.engine import Candidate, UpgradeEngine
from core.errors import (
    DepsyncError,
    InvalidPackageName,
    OperationCancelled,
    ParseError,
    PartialApplyError,
    PlanError,
    RegistryError,
    ScanError,
)
from core.log import configure_logging
from core.models import DEPENDENCY_FIELDS, RunReport
from core.registry import NpmRegistry
from core.resolver import VersionResolver
from core.scanner import find_workspace_root
from core.settings import Settings

console = Console()


class ExitCode(IntEnum):
    """Process exit codes."""

    OK = 0
    ERROR = 1
    SCAN_ERROR = 2
    PARSE_ERROR = 3
    REGISTRY_ERROR = 4
    PLAN_ERROR = 5
    PARTIAL_APPLY = 6
    CANCELLED = 7


@dataclasses.dataclass
class CliState:
    root: Path | None = None
    settings: Settings = dataclasses.field(default_factory=Settings)


def _display(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def format_diff_output(report: RunReport, root: Path) -> str:
    """Format diff-style output showing planned changes."""
    lines = []
    for path in report.plan.manifests():
        shown = _display(path, root)
        lines.append(f"--- {shown}")
        lines.append(f"+++ {shown}")
        for edit in report.plan.edits_for(path):
            lines.append(f" {edit.field}")
            if edit.old_range is not None:
                lines.append(f'-  "{edit.name}": "{edit.old_range}"')
            if edit.new_range is not None:
                lines.append(f'+  "{edit.name}": "{edit.new_range}"')

    for advisory in report.advisories:
        lines.append(f"! {advisory.kind.value}: {advisory.message}")

    if report.plan.is_empty:
        lines.append("No changes needed")
    elif report.applied is not None:
        lines.append(f"Updated {len(report.applied.written)} manifest(s)")
    return "\n".join(lines)


def format_json_output(report: RunReport, root: Path) -> str:
    """Format JSON output."""
    payload = {
        "edits": [
            {
                "manifest": _display(edit.manifest, root),
                "field": edit.field,
                "name": edit.name,
                "old_range": edit.old_range,
                "new_range": edit.new_range,
            }
            for edit in report.plan.edits
        ],
        "advisories": [
            {
                "kind": advisory.kind.value,
                "message": advisory.message,
                "manifest": _display(advisory.manifest, root) if advisory.manifest else None,
                "name": advisory.name,
            }
            for advisory in report.advisories
        ],
        "conflicts": [
            {
                "name": conflict.name,
                "target": conflict.target,
                "classification": conflict.classification.value,
            }
            for conflict in report.conflicts
        ],
        "applied": (
            [_display(p, root) for p in report.applied.written] if report.applied is not None else None
        ),
    }
    return json.dumps(payload, indent=2)


def prompt_selection(candidates: list[Candidate]) -> list[str]:
    """Show classified candidates and ask which to upgrade."""
    if not candidates:
        return []
    table = Table(title="Outdated dependencies")
    table.add_column("#", justify="right")
    table.add_column("Package")
    table.add_column("Declared")
    table.add_column("Target")
    table.add_column("State")
    for number, candidate in enumerate(candidates, start=1):
        declared = ", ".join(sorted({a.entry.range for a in candidate.report.assessments}))
        table.add_row(str(number), candidate.name, declared, candidate.target, candidate.classification)
    console.print(table)
    notes = list(dict.fromkeys(a for c in candidates for a in c.advisories))
    for advisory in notes:
        console.print(f"! {advisory.kind.value}: {advisory.message}", style="yellow", markup=False, soft_wrap=True)

    answer = Prompt.ask("Upgrade which? (numbers separated by commas, 'all' or 'none')", default="all")
    answer = answer.strip().lower()
    if answer == "all":
        return [c.name for c in candidates]
    if answer in ("", "none"):
        return []
    chosen = []
    for part in answer.split(","):
        part = part.strip()
        if part.isdigit() and 1 <= int(part) <= len(candidates):
            chosen.append(candidates[int(part) - 1].name)
    return chosen


def prompt_range(name: str, options: list[str]) -> str:
    """Ask which range to use when the workspace already declares others."""
    console.print(f"There are multiple versions of {name} in the workspace, which one do you want to add?")
    labels = [f"{options[0]} (latest version)"] + options[1:]
    for number, label in enumerate(labels, start=1):
        console.print(f"  {number}. {label}", markup=False)
    choice = Prompt.ask("Version", choices=[str(n) for n in range(1, len(options) + 1)], default="1")
    return options[int(choice) - 1]


def build_engine(state: CliState) -> UpgradeEngine:
    settings = state.settings
    root = state.root or find_workspace_root(Path.cwd())
    resolver = VersionResolver(
        NpmRegistry(settings.registry_url, timeout=settings.timeout),
        timeout=settings.timeout,
        max_concurrency=settings.max_concurrency,
    )
    return UpgradeEngine(root, settings=settings, resolver=resolver)


def emit(report: RunReport, root: Path, format_type: str) -> None:
    if format_type == "json":
        console.print(format_json_output(report, root), soft_wrap=True, markup=False, highlight=False, emoji=False)
    else:
        console.print(format_diff_output(report, root), soft_wrap=True, markup=False, highlight=False, emoji=False)
    if report.has_parse_errors:
        raise typer.Exit(ExitCode.PARSE_ERROR)


def run_guarded(action):
    """Run a command body, mapping depsync errors to exit codes."""
    try:
        return action()
    except ScanError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.SCAN_ERROR)
    except ParseError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.PARSE_ERROR)
    except RegistryError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.REGISTRY_ERROR)
    except (PlanError, InvalidPackageName) as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.PLAN_ERROR)
    except PartialApplyError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        for path in e.written:
            console.print(f"  written: {path}", markup=False)
        for path in e.failed + e.pending:
            console.print(f"  not written: {path}", markup=False)
        raise typer.Exit(ExitCode.PARTIAL_APPLY)
    except OperationCancelled:
        console.print("Cancelled; no manifest was written", style="yellow")
        raise typer.Exit(ExitCode.CANCELLED)
    except KeyboardInterrupt:
        console.print("Interrupted; some manifests may already have been written", style="yellow")
        raise typer.Exit(ExitCode.CANCELLED)
    except DepsyncError as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(ExitCode.ERROR)


app = typer.Typer(
    name="depsync",
    help="depsync - Keep dependency versions in sync across a workspace of package.json files",
    add_completion=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    root: Path | None = typer.Option(None, "--root", "-C", envvar="DEPSYNC_ROOT", help="Workspace root (default: detected from the current directory)"),
    registry: str | None = typer.Option(None, "--registry", envvar="DEPSYNC_REGISTRY_URL", help="npm registry URL"),
    timeout: float | None = typer.Option(None, "--timeout", envvar="DEPSYNC_TIMEOUT", help="Per-request timeout in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """depsync - Keep dependency versions in sync across a workspace."""
    configure_logging(verbose)
    settings = Settings.from_env()
    if registry:
        settings = dataclasses.replace(settings, registry_url=registry)
    if timeout:
        settings = dataclasses.replace(settings, timeout=timeout)
    ctx.obj = CliState(root=root, settings=settings)


@app.command()
def upgrade(
    ctx: typer.Context,
    packages: list[str] | None = typer.Argument(None, help="Packages to upgrade, optionally name@version"),
    upgrade_all: bool = typer.Option(False, "--all", "-a", help="Upgrade every dependency in the workspace"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Choose which dependencies to upgrade"),
    override_pinned: bool = typer.Option(False, "--override-pinned", help="Also rewrite exact version pins"),
    allow_major: bool = typer.Option(False, "--allow-major", help="Allow ranges to move to a new major version"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without applying"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Upgrade dependencies everywhere they are declared."""
    state: CliState = ctx.obj
    if not packages and not upgrade_all and not interactive:
        console.print("Error: Specify packages, --all or --interactive", style="red")
        raise typer.Exit(ExitCode.ERROR)

    def action():
        engine = build_engine(state)
        report = asyncio.run(
            engine.upgrade(
                packages or None,
                override_pinned=override_pinned,
                allow_major=allow_major,
                select=prompt_selection if interactive else None,
                dry_run=dry_run,
            )
        )
        emit(report, engine.root.resolve(), format_type)

    run_guarded(action)


@app.command()
def add(
    ctx: typer.Context,
    packages: list[str] = typer.Argument(..., help="Packages to add, optionally name@range"),
    dev: bool = typer.Option(False, "--dev", "-D", help="Add to devDependencies"),
    peer: bool = typer.Option(False, "--peer", help="Add to peerDependencies"),
    optional: bool = typer.Option(False, "--optional", help="Add to optionalDependencies"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Pick among versions already used in the workspace"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without applying"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Add dependencies to the package in the current directory."""
    state: CliState = ctx.obj
    field_name = DEPENDENCY_FIELDS[0]
    if dev:
        field_name = "devDependencies"
    elif peer:
        field_name = "peerDependencies"
    elif optional:
        field_name = "optionalDependencies"

    def action():
        engine = build_engine(state)
        kwargs = {"chooser": prompt_range} if interactive else {}
        report = asyncio.run(
            engine.add(packages, Path.cwd(), field_name=field_name, dry_run=dry_run, **kwargs)
        )
        emit(report, engine.root.resolve(), format_type)

    run_guarded(action)


@app.command()
def remove(
    ctx: typer.Context,
    packages: list[str] = typer.Argument(..., help="Packages to remove"),
    everywhere: bool = typer.Option(False, "--everywhere", "-e", help="Remove from every package in the workspace"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without applying"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Remove dependencies from the current package, or everywhere."""
    state: CliState = ctx.obj

    def action():
        engine = build_engine(state)
        report = engine.remove(packages, Path.cwd(), everywhere=everywhere, dry_run=dry_run)
        emit(report, engine.root.resolve(), format_type)

    run_guarded(action)


@app.command()
def why(
    ctx: typer.Context,
    package: str = typer.Argument(..., help="Package to inspect"),
) -> None:
    """Show where a dependency is declared and how it compares to the latest version."""
    state: CliState = ctx.obj

    def action():
        engine = build_engine(state)
        root = engine.root.resolve()
        entries, conflict, resolution = asyncio.run(engine.inspect(package))
        if not entries:
            console.print(f"No usages found for {package}")
            return

        table = Table(title=package)
        table.add_column("Manifest")
        table.add_column("Field")
        table.add_column("Declared")
        table.add_column("Wanted")
        table.add_column("Status")
        statuses = {a.entry: a for a in conflict.assessments} if conflict else {}
        for entry in entries:
            assessment = statuses.get(entry)
            wanted = resolution.satisfying.get(entry.range) if resolution else None
            table.add_row(
                _display(entry.manifest, root),
                entry.field,
                entry.range,
                wanted or "-",
                assessment.status.value if assessment else "-",
            )
        console.print(table)
        if conflict is not None:
            console.print(f"latest: {conflict.target} ({conflict.classification.value})", markup=False)

    run_guarded(action)


if __name__ == "__main__":
    app()
