from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

import lbrbuild.config as config
from lbrbuild.coordinator import BuildCoordinator

REMOTE_BASE = "/home/build/app"
REMOTE_LBR = "/opt/lbr"


def write_source(workspace: Path, source: str, content: str) -> Path:
    path = workspace / "src" / source
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def write_app_config(workspace: Path, **general: object) -> None:
    payload = {
        "general": {
            "source-dir": "src",
            "supported-object-types": ["h", "c", "pgm"],
            "object-type-order": ["h", "c", "pgm"],
            "remote-base-dir": REMOTE_BASE,
            "remote-lbr-dir": REMOTE_LBR,
            **general,
        },
        "remote": {"host": "build.example.com", "user": "builder"},
    }
    config.write_json(workspace / ".lbr" / "etc" / "app-config.json", payload)


def snapshot_files(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


class FakeTransport:
    """In-memory stand-in for the remote side.

    ``results`` maps a source to ``(status, hash)``; retrieving the remote
    temp directory rewrites the local plan with those results, the way the
    remote build does. ``during_build`` runs while the remote build command
    is executing.
    """

    def __init__(self, workspace: Path) -> None:
        self.workspace = workspace
        self.calls: list[tuple[str, object]] = []
        self.results: dict[str, tuple[str, str | None]] = {}
        self.command_status: dict[str, int] = {}
        self.fail_on: set[str] = set()
        self.remote_files: dict[str, object] = {}
        self.build_gate: asyncio.Event | None = None
        self.build_started = asyncio.Event()
        self.during_build: Callable[[], None] | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    def _record(self, name: str, payload: object) -> None:
        self.calls.append((name, payload))
        if name in self.fail_on:
            raise OSError(f"{name}: connection reset by peer")

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def transfer_files(self, paths: Sequence[str]) -> None:
        self._record("transfer_files", tuple(paths))

    async def transfer_dir(self, local: Path, remote: str) -> None:
        self._record("transfer_dir", (local, remote))

    async def execute_remote_command(self, command: str) -> int:
        self._record("execute_remote_command", command)
        if "-a run" in command:
            self.build_started.set()
            if self.build_gate is not None:
                await self.build_gate.wait()
            if self.during_build is not None:
                self.during_build()
        for marker, status in self.command_status.items():
            if marker in command:
                return status
        return 0

    async def get_remote_file(self, local: Path, remote: str) -> None:
        self._record("get_remote_file", (local, remote))
        config.write_json(local, self.remote_files.get(remote, {}))

    async def get_remote_dir(self, local: Path, remote: str) -> None:
        self._record("get_remote_dir", (local, remote))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        local.mkdir(parents=True, exist_ok=True)
        if not remote.endswith(".lbr/tmp"):
            return
        plan_path = local / "compile-list.json"
        plan = json.loads(plan_path.read_text(encoding="utf-8"))
        for target in plan["targets"]:
            result = self.results.get(target["source"])
            if result is None:
                continue
            status, digest = result
            target["status"] = status
            if digest is not None:
                target["hash"] = digest
        config.write_json(plan_path, plan)
        (local / "remote-joblog.txt").write_text("job finished\n", encoding="utf-8")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    write_app_config(root)
    return root


@pytest.fixture
def transport(workspace: Path) -> FakeTransport:
    return FakeTransport(workspace)


@pytest.fixture
def source_file(workspace: Path) -> Callable[[str, str], Path]:
    def _write(source: str, content: str) -> Path:
        return write_source(workspace, source, content)

    return _write


@pytest.fixture
def coordinator(workspace: Path, transport: FakeTransport) -> BuildCoordinator:
    return BuildCoordinator.from_workspace(workspace, transport=transport)


@pytest.fixture
def files_snapshot() -> Callable[[Path], dict[str, bytes]]:
    return snapshot_files


@pytest.fixture
def app_config(workspace: Path) -> Callable[..., None]:
    def _write(**general: object) -> None:
        write_app_config(workspace, **general)

    return _write
