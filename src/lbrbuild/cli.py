"""Command-line front end for lbr-build."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from . import log as lbr_log
from .coordinator import BuildCoordinator, BuildPreview, BuildReport
from .errors import BuildFailure
from .io import confirm, fail, say
from .requests import (
    EditDependency,
    FetchRemoteObjectList,
    OperationRequest,
    PreviewChanges,
    RefreshRemoteSourceList,
    RerunBuild,
    ResetObjectList,
    RunBuild,
    dispatch,
)
from .result import ServiceFailure

app = typer.Typer(
    name="lbr",
    help="Plan and run incremental remote builds.",
    add_completion=False,
    no_args_is_help=True,
)
deps_app = typer.Typer(help="Show and edit declared source dependencies.", no_args_is_help=True)
app.add_typer(deps_app, name="deps")

_state: dict[str, Path] = {"workspace": Path(".")}


def _validate_log_level(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if lbr_log.parse_level(value) is None:
        raise typer.BadParameter(f"expected one of: {', '.join(lbr_log.LEVEL_NAMES)}")
    return value


def _version_callback(value: bool) -> None:
    if value:
        say(__version__)
        raise typer.Exit()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        callback=_validate_log_level,
        help="trace, debug, info, success, warning or error",
    ),
    no_color: bool = typer.Option(False, "--no-color", help="disable coloured output"),
    workspace: Path = typer.Option(
        Path("."), "--workspace", "-w", help="workspace root containing .lbr"
    ),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="show version"
    ),
) -> None:
    """lbr-build command line."""
    if log_level is not None:
        lbr_log.set_level(log_level)
    if no_color:
        lbr_log.set_no_color(True)
    _state["workspace"] = workspace.resolve()


def _coordinator() -> BuildCoordinator:
    try:
        return BuildCoordinator.from_workspace(_state["workspace"])
    except BuildFailure as exc:
        fail(exc)


def _serve(coordinator: BuildCoordinator, request: OperationRequest) -> object:
    result = asyncio.run(dispatch(coordinator, request))
    if isinstance(result, ServiceFailure):
        raise typer.Exit(code=1)
    return result.outcome


def _print_preview(preview: BuildPreview) -> None:
    table = Table(title="Build plan", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("source")
    table.add_column("reason")
    table.add_column("command")
    new = set(preview.change_set.new_objects)
    changed = set(preview.change_set.changed_sources)
    for index, target in enumerate(preview.plan.targets, start=1):
        if target.source in new:
            reason = "new"
        elif target.source in changed:
            reason = "changed"
        else:
            reason = "dependent"
        table.add_row(str(index), target.source, reason, target.command or "")
    Console(no_color=lbr_log.color_disabled()).print(table)
    for source in preview.stale:
        lbr_log.warning(f"{source} no longer exists but is still recorded as built")


def _print_report(report: BuildReport) -> None:
    if report.nothing_to_build:
        say("No changed sources to build")
        return
    for source in report.failed_sources:
        say(f"failed: {source}")
    for source in report.unreported_sources:
        say(f"not reported: {source}")
    if report.history_dir is not None:
        say(f"history: {report.history_dir}")
    if report.partial_failure:
        say("Use 'lbr rerun --ignore SOURCE' to retry without sources that keep failing.")


@app.command("changes")
def changes(
    source: Optional[str] = typer.Argument(None, help="single source or file path"),
) -> None:
    """Show the sources the next build would compile."""
    coordinator = _coordinator()
    if source is not None:
        source = _resolve(coordinator, source)
    preview = _serve(coordinator, PreviewChanges(source=source))
    _print_preview(preview)


def _resolve(coordinator: BuildCoordinator, value: str) -> str:
    try:
        return coordinator.detector.resolve_source(value)
    except BuildFailure as exc:
        fail(exc)


@app.command("build")
def build(
    sources: Optional[list[str]] = typer.Argument(None, help="restrict to these sources"),
    yes: bool = typer.Option(False, "--yes", "-y", help="do not ask for confirmation"),
) -> None:
    """Build changed sources and everything depending on them."""
    coordinator = _coordinator()
    candidates = tuple(_resolve(coordinator, value) for value in sources) if sources else None
    if not yes:
        if candidates is not None and len(candidates) > 1:
            count = len(candidates)
        else:
            single = candidates[0] if candidates else None
            count = len(_serve(coordinator, PreviewChanges(source=single)).plan)
        if count == 0:
            say("No changed sources to build")
            return
        noun = "source" if count == 1 else "sources"
        if not confirm(f"{count} {noun} will be built. Do you want to proceed?"):
            return
    report = _serve(coordinator, RunBuild(sources=candidates))
    _print_report(report)


def _parse_ignore_commands(values: list[str]) -> dict[str, tuple[str, ...] | None]:
    parsed: dict[str, tuple[str, ...] | None] = {}
    for value in values:
        source, separator, command = value.partition("=")
        source = source.strip()
        if not source:
            raise typer.BadParameter(f"expected SOURCE=COMMAND, got {value!r}")
        if not separator:
            parsed[source] = None
            continue
        current = parsed.get(source, ())
        if current is None:
            continue
        parsed[source] = (*current, command.strip())
    return parsed


@app.command("rerun")
def rerun(
    ignore: Optional[list[str]] = typer.Option(None, "--ignore", help="source to leave out"),
    ignore_command: Optional[list[str]] = typer.Option(
        None, "--ignore-command", help="SOURCE=COMMAND target to leave out"
    ),
) -> None:
    """Build again, leaving out ignored sources or commands."""
    coordinator = _coordinator()
    request = RerunBuild(
        ignore_sources=tuple(ignore or ()),
        ignore_commands=_parse_ignore_commands(ignore_command or []),
    )
    report = _serve(coordinator, request)
    _print_report(report)


@app.command("reset-objects")
def reset_objects() -> None:
    """Record every source on disk as built, without a remote build."""
    _serve(_coordinator(), ResetObjectList())


@app.command("fetch-objects")
def fetch_objects() -> None:
    """Replace the local object list with the one on the remote."""
    _serve(_coordinator(), FetchRemoteObjectList())


@app.command("remote-sources")
def remote_sources() -> None:
    """Generate the source list on the remote and download it."""
    path = _serve(_coordinator(), RefreshRemoteSourceList())
    say(str(path))


@app.command("history")
def history() -> None:
    """List build history snapshots, oldest first."""
    for entry in _coordinator().history_entries():
        say(entry.name)


@deps_app.command("show")
def deps_show(source: str = typer.Argument(..., help="source to inspect")) -> None:
    """Show what a source depends on and what depends on it."""
    graph = _coordinator().dependencies()
    say(f"{source} depends on:")
    for dependency in graph.dependencies_of(source):
        say(f"  {dependency}")
    say(f"{source} is a dependency of:")
    for dependent in graph.dependents_of(source):
        say(f"  {dependent}")


def _edit(source: str, other: str, *, dependent: bool, remove: bool) -> None:
    _serve(
        _coordinator(),
        EditDependency(source=source, other=other, reverse=dependent, remove=remove),
    )


@deps_app.command("add")
def deps_add(
    source: str,
    other: str,
    dependent: bool = typer.Option(
        False, "--dependent", help="OTHER depends on SOURCE instead of the reverse"
    ),
) -> None:
    """Declare that SOURCE depends on OTHER."""
    _edit(source, other, dependent=dependent, remove=False)


@deps_app.command("remove")
def deps_remove(
    source: str,
    other: str,
    dependent: bool = typer.Option(
        False, "--dependent", help="OTHER depends on SOURCE instead of the reverse"
    ),
) -> None:
    """Remove the declaration that SOURCE depends on OTHER."""
    _edit(source, other, dependent=dependent, remove=True)


if __name__ == "__main__":  # pragma: no cover
    app()
