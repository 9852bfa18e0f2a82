"""Build cycle coordination.

``BuildCoordinator`` drives one remote build cycle end to end: detect and
order changes, stage sources remotely, run the remote build, retrieve its
outputs, record successful fingerprints and archive the cycle.

Every public operation holds its ``RunStatusRegistry`` cell for its whole
duration and returns a ``ServiceResult``. Failures never escape: they are
logged for the user and converted at this boundary, and the cell is always
released. The fingerprint table is written only after a completed remote
round-trip.
"""

from __future__ import annotations

import asyncio
import shlex
import shutil
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TypeVar

from . import log as lbr_log
from . import paths
from .config import load_build_config, utc_now
from .dependencies import DependencyGraph
from .errors import BuildFailure, ConfigurationError, SourceReadError, TransportError
from .history import HistoryArchiver
from .models import BuildConfig
from .ordering import BuildOrderer, BuildPlan, exclude
from .result import ServiceResult, failure_from, service_failure, service_success
from .sources import BuildStatus, ChangeDetector, ChangeSet, Source
from .status import OperationKind, RunStatusRegistry
from .store import BuildPlanStore
from .transport import SshTransport, Transport

T = TypeVar("T")

IgnoreCommands = Mapping[str, Sequence[str] | None]

_BUILD_STEPS = 7


@dataclass(frozen=True)
class BuildPreview:
    """Outcome of change detection and ordering.

    ``fingerprints`` holds the content fingerprint of every planned source
    as read at detection time.
    """

    change_set: ChangeSet
    plan: BuildPlan
    stale: tuple[str, ...] = ()
    fingerprints: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BuildReport:
    """Outcome of one build cycle.

    ``failed_sources`` non-empty means a partial remote failure: the cycle
    completed, only successes were recorded, and the rest can be retried
    with ``rerun_build``.
    """

    plan: BuildPlan
    sources: tuple[Source, ...] = ()
    history_dir: Path | None = None
    nothing_to_build: bool = False

    @property
    def built_sources(self) -> list[str]:
        return [source.path for source in self.sources if source.status is BuildStatus.SUCCESS]

    @property
    def failed_sources(self) -> list[str]:
        return [source.path for source in self.sources if source.status is BuildStatus.FAILURE]

    @property
    def unreported_sources(self) -> list[str]:
        """Planned sources the remote left without a final result."""
        settled = {
            source.path
            for source in self.sources
            if source.status in (BuildStatus.SUCCESS, BuildStatus.FAILURE)
        }
        return [path for path in self.plan.sources if path not in settled]

    @property
    def partial_failure(self) -> bool:
        return bool(self.failed_sources)


@dataclass(frozen=True)
class RemoteDirs:
    base_dir: str
    lbr_dir: str

    @property
    def python(self) -> str:
        return paths.remote_python(self.lbr_dir)


@dataclass
class BuildCoordinator:
    """Run build, preview and object-list operations for one workspace."""

    workspace: Path
    config: BuildConfig
    transport: Transport
    status: RunStatusRegistry = field(default_factory=RunStatusRegistry)

    @classmethod
    def from_workspace(
        cls,
        workspace: Path,
        *,
        transport: Transport | None = None,
        status: RunStatusRegistry | None = None,
    ) -> BuildCoordinator:
        """Load the workspace config and wire the default ssh transport."""
        config = load_build_config(workspace)
        if transport is None:
            transport = SshTransport(
                remote=config.remote,
                workspace=workspace,
                remote_base_dir=config.general.remote_base_dir or ".",
            )
        return cls(
            workspace=workspace,
            config=config,
            transport=transport,
            status=status or RunStatusRegistry(),
        )

    @property
    def source_root(self) -> Path:
        general = self.config.general
        return self.workspace / general.local_base_dir / general.source_dir

    @property
    def detector(self) -> ChangeDetector:
        return ChangeDetector(self.source_root, tuple(self.config.general.supported_object_types))

    @property
    def store(self) -> BuildPlanStore:
        return BuildPlanStore.for_workspace(self.workspace, self.config.general)

    @property
    def archiver(self) -> HistoryArchiver:
        return HistoryArchiver(paths.history_root(self.workspace))

    # boundary

    async def _guarded(
        self,
        kind: OperationKind,
        label: str,
        operation: Callable[[], Awaitable[T]],
    ) -> ServiceResult[T]:
        try:
            with self.status.hold(kind), lbr_log.scoped(label):
                outcome = await operation()
        except BuildFailure as exc:
            lbr_log.error(f"{label} failed: {exc.message}")
            if exc.recovery_hint:
                lbr_log.info(f"hint: {exc.recovery_hint}")
            return failure_from(exc)
        except Exception as exc:
            lbr_log.error(f"{label} failed unexpectedly: {exc}")
            return service_failure(code="unexpected_state", message=str(exc) or repr(exc))
        return service_success(outcome)

    async def _remote(self, action: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except BuildFailure:
            raise
        except Exception as exc:
            raise TransportError(f"{action} failed: {exc}") from exc

    # planning

    def _workspace_path(self, source: str) -> str:
        general = self.config.general
        return PurePosixPath(general.local_base_dir, general.source_dir, source).as_posix()

    def _derive(
        self,
        candidates: str | Iterable[str] | None,
        ignore_sources: Iterable[str] = (),
        ignore_commands: IgnoreCommands | None = None,
    ) -> BuildPreview:
        store = self.store
        detector = self.detector
        table = store.load_fingerprints()
        graph = store.load_dependencies()
        change_set = detector.detect(candidates, table)
        fingerprints: dict[str, str] = {}
        for source in graph.forward_closure(change_set.sources):
            try:
                fingerprints[source] = detector.fingerprint_of(source)
            except SourceReadError as exc:
                lbr_log.warning(f"{exc.message}; skipping")
        orderer = BuildOrderer(
            graph,
            type_order=tuple(self.config.general.object_type_order),
            commands=self.config.general.commands,
        )
        plan = exclude(orderer.order(list(fingerprints)), ignore_sources, ignore_commands)
        stale: tuple[str, ...] = ()
        if candidates is None:
            stale = tuple(detector.stale_sources(table))
            for source in stale:
                lbr_log.debug(f"stale fingerprint entry {source}")
        return BuildPreview(
            change_set=change_set,
            plan=plan.stamped(utc_now()),
            stale=stale,
            fingerprints={source: fingerprints[source] for source in plan.sources},
        )

    def _persist(self, preview: BuildPreview) -> None:
        store = self.store
        store.save_change_set(preview.change_set)
        store.save_plan(preview.plan)

    async def _preview(self, source: str | None) -> BuildPreview:
        preview = self._derive(source)
        self._persist(preview)
        lbr_log.info(
            f"{len(preview.change_set.new_objects)} new, "
            f"{len(preview.change_set.changed_sources)} changed, "
            f"{len(preview.plan)} to build"
        )
        return preview

    # remote steps

    def _require_remote_dirs(self) -> RemoteDirs:
        general = self.config.general
        if not general.remote_base_dir or not general.remote_lbr_dir:
            raise ConfigurationError(
                "missing 'remote-base-dir' or 'remote-lbr-dir'",
                recovery_hint="set both under general in .lbr/etc/app-config.json",
            )
        return RemoteDirs(base_dir=general.remote_base_dir, lbr_dir=general.remote_lbr_dir)

    async def _check_remote(self, remote: RemoteDirs) -> None:
        command = " && ".join(
            [
                f"test -d {shlex.quote(remote.base_dir)}",
                f"test -x {shlex.quote(remote.python)}",
                f"test -f {shlex.quote(remote.lbr_dir + '/main.py')}",
            ]
        )
        status = await self._remote("remote check", self.transport.execute_remote_command(command))
        if status != 0:
            raise ConfigurationError(
                f"remote project {remote.base_dir} or LBR installation {remote.lbr_dir} "
                "is not set up correctly",
                recovery_hint="check remote-base-dir, remote-lbr-dir and the remote venv",
            )

    def _lbr_command(self, remote: RemoteDirs, action: str, source: str | None = None) -> str:
        parts = [
            f"cd {shlex.quote(remote.base_dir)} || exit 1;",
            "rm log/* .lbr/log/* 2> /dev/null || true;",
            shlex.quote(remote.python),
            "-X utf8",
            shlex.quote(remote.lbr_dir + "/main.py"),
            f"-a {action} -p .",
        ]
        if source is not None:
            parts.append(f"--source={shlex.quote(source)}")
        return " ".join(parts)

    async def _run_lbr(self, remote: RemoteDirs, action: str, source: str | None = None) -> int:
        command = self._lbr_command(remote, action, source)
        lbr_log.trace(f"remote: {command}")
        return await self._remote(
            f"remote action {action}", self.transport.execute_remote_command(command)
        )

    async def _stage_build_script(self, remote: RemoteDirs, plan: BuildPlan) -> None:
        general = self.config.general
        if general.generate_remotely:
            lbr_log.step(4, _BUILD_STEPS, "generate build script on remote")
            single = plan.sources[0] if len(plan) == 1 else None
            status = await self._run_lbr(remote, "create", single)
            if status != 0:
                raise TransportError(
                    f"remote build script generation failed (exit status {status})"
                )
            return
        lbr_log.step(4, _BUILD_STEPS, "transfer build list")
        await self._remote(
            "transfer build list", self.transport.transfer_files([general.compile_list])
        )
        tmp_relative = f"{paths.LBR_DIRNAME}/{paths.TMP_DIRNAME}"
        await self._remote(
            "transfer tmp dir",
            self.transport.transfer_dir(
                paths.tmp_dir(self.workspace), paths.remote_path(remote.base_dir, tmp_relative)
            ),
        )

    async def _retrieve_outputs(self, remote: RemoteDirs) -> None:
        general = self.config.general
        targets = [
            general.build_output_dir,
            f"{paths.LBR_DIRNAME}/{paths.TMP_DIRNAME}",
            f"{paths.LBR_DIRNAME}/{paths.LOG_DIRNAME}",
        ]
        await asyncio.gather(
            *(
                self._remote(
                    f"retrieve {relative}",
                    self.transport.get_remote_dir(
                        self.workspace / relative, paths.remote_path(remote.base_dir, relative)
                    ),
                )
                for relative in targets
            )
        )

    def _record_results(self, planned: Mapping[str, str]) -> tuple[Source, ...]:
        """Merge reported successes into the fingerprint table.

        A success without a reported hash records the fingerprint captured
        when the plan was derived. Disk content is not re-read, so an edit
        saved while the remote was building stays changed.
        """
        store = self.store
        table = store.load_fingerprints()
        results: list[Source] = []
        for target in store.load_report():
            fingerprint = target.hash
            if target.status is BuildStatus.SUCCESS:
                if fingerprint is None:
                    fingerprint = planned.get(target.source)
                if fingerprint is None:
                    lbr_log.warning(f"{target.source} was not planned; result not recorded")
                else:
                    table[target.source] = fingerprint
            results.append(
                Source(path=target.source, fingerprint=fingerprint, status=target.status)
            )
        store.save_fingerprints(table)
        return tuple(results)

    async def _build_cycle(
        self,
        candidates: Iterable[str] | None,
        ignore_sources: Iterable[str] = (),
        ignore_commands: IgnoreCommands | None = None,
    ) -> BuildReport:
        build_output = self.workspace / self.config.general.build_output_dir
        if build_output.exists():
            shutil.rmtree(build_output)

        lbr_log.step(1, _BUILD_STEPS, "detect changes")
        preview = self._derive(candidates, ignore_sources, ignore_commands)
        self._persist(preview)
        plan = preview.plan
        if plan.is_empty():
            lbr_log.info("nothing to build")
            return BuildReport(plan=plan, nothing_to_build=True)

        lbr_log.info(f"{len(plan)} source{'s' if len(plan) > 1 else ''} will be built")
        lbr_log.step(2, _BUILD_STEPS, "check remote setup")
        remote = self._require_remote_dirs()
        await self._check_remote(remote)

        lbr_log.step(3, _BUILD_STEPS, f"transfer {len(plan)} source(s)")
        transfers = [self._workspace_path(source) for source in plan.sources]
        await self._remote("transfer sources", self.transport.transfer_files(transfers))
        await self._stage_build_script(remote, plan)

        lbr_log.step(5, _BUILD_STEPS, "run build on remote")
        status = await self._run_lbr(remote, "run")
        if status != 0:
            lbr_log.warning(f"remote build exited with status {status}; collecting results")

        lbr_log.step(6, _BUILD_STEPS, "retrieve build outputs")
        await self._retrieve_outputs(remote)

        lbr_log.step(7, _BUILD_STEPS, "record results")
        results = self._record_results(preview.fingerprints)
        history_dir = self.archiver.archive(
            self.store.load_plan_document(), paths.tmp_dir(self.workspace)
        )
        report = BuildReport(plan=plan, sources=results, history_dir=history_dir)
        if report.partial_failure:
            lbr_log.warning(
                f"{len(report.failed_sources)} source(s) failed: {', '.join(report.failed_sources)}"
            )
        lbr_log.success(f"{len(report.built_sources)} source(s) built")
        return report

    # operations

    async def preview_changes(self, source: str | None = None) -> ServiceResult[BuildPreview]:
        """Detect, expand, order and persist the current changes."""
        return await self._guarded(
            OperationKind.PREVIEW, "show changes", lambda: self._preview(source)
        )

    async def run_build(self, sources: Iterable[str] | None = None) -> ServiceResult[BuildReport]:
        """Run one full build cycle over ``sources`` (default: whole tree)."""
        candidates = list(sources) if sources is not None else None
        return await self._guarded(
            OperationKind.BUILD, "build", lambda: self._build_cycle(candidates)
        )

    async def rerun_build(
        self,
        ignore_sources: Iterable[str] = (),
        ignore_commands: IgnoreCommands | None = None,
    ) -> ServiceResult[BuildReport]:
        """Re-derive the plan without the ignored targets and build it."""
        ignored = list(ignore_sources)
        return await self._guarded(
            OperationKind.BUILD,
            "build",
            lambda: self._build_cycle(None, ignored, ignore_commands),
        )

    async def _reset_object_list(self) -> int:
        table = self.detector.current_fingerprints()
        self.store.save_fingerprints(table)
        lbr_log.success(f"object list created ({len(table)} sources)")
        return len(table)

    async def reset_object_list(self) -> ServiceResult[int]:
        """Recompute the fingerprint table from disk without building."""
        return await self._guarded(
            OperationKind.OBJECT_LIST, "reset object list", self._reset_object_list
        )

    async def _fetch_remote_object_list(self) -> int:
        remote = self._require_remote_dirs()
        general = self.config.general
        download = paths.tmp_dir(self.workspace) / "object-builds.remote.json"
        await self._remote(
            "download object list",
            self.transport.get_remote_file(
                download, paths.remote_path(remote.base_dir, general.compiled_object_list)
            ),
        )
        fetched = BuildPlanStore(
            fingerprints_path=download,
            change_set_path=self.store.change_set_path,
            plan_path=self.store.plan_path,
            dependencies_path=self.store.dependencies_path,
        ).load_fingerprints()
        self.store.save_fingerprints(fetched)
        download.unlink(missing_ok=True)
        lbr_log.success("compiled object list transferred from remote")
        return len(fetched)

    async def fetch_remote_object_list(self) -> ServiceResult[int]:
        """Replace the local fingerprint table with the remote one."""
        return await self._guarded(
            OperationKind.OBJECT_LIST, "fetch object list", self._fetch_remote_object_list
        )

    async def _refresh_remote_source_list(self) -> Path:
        remote = self._require_remote_dirs()
        general = self.config.general
        config_files = [
            path.relative_to(self.workspace).as_posix()
            for path in (
                paths.app_config_path(self.workspace),
                paths.user_app_config_path(self.workspace),
            )
            if path.is_file()
        ]
        if config_files:
            await self._remote("transfer config", self.transport.transfer_files(config_files))
        status = await self._run_lbr(remote, "gen_src_list")
        if status != 0:
            raise TransportError(f"remote source list generation failed (exit status {status})")
        local = self.workspace / general.remote_source_list
        await self._remote(
            "download source list",
            self.transport.get_remote_file(
                local, paths.remote_path(remote.base_dir, general.source_list)
            ),
        )
        lbr_log.success("remote source list transferred from remote")
        return local

    async def refresh_remote_source_list(self) -> ServiceResult[Path]:
        """Regenerate the source list on the remote and download it."""
        return await self._guarded(
            OperationKind.REMOTE_SOURCE_LIST,
            "remote source list",
            self._refresh_remote_source_list,
        )

    # dependencies

    def dependencies(self) -> DependencyGraph:
        return self.store.load_dependencies()

    def edit_dependency(
        self, source: str, other: str, *, reverse: bool = False, remove: bool = False
    ) -> ServiceResult[DependencyGraph]:
        """Add or remove one dependency edge and persist the relation.

        Args:
            source: Source being edited.
            other: The dependency (or, with ``reverse``, the dependent).
            reverse: Edit the edge "``other`` depends on ``source``".
            remove: Remove instead of add.
        """
        try:
            graph = self.store.load_dependencies()
            if remove:
                edit = graph.remove_dependent if reverse else graph.remove_dependency
            else:
                edit = graph.add_dependent if reverse else graph.add_dependency
            if edit(source, other):
                self.store.save_dependencies(graph)
        except BuildFailure as exc:
            lbr_log.error(f"dependency update failed: {exc.message}")
            return failure_from(exc)
        return service_success(graph)

    def history_entries(self) -> list[Path]:
        return self.archiver.entries()
