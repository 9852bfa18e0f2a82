"""Remote transport contract and its ssh/scp adapter.

The coordinator only depends on the ``Transport`` protocol. ``SshTransport``
implements it by shelling out to the ``ssh`` and ``scp`` executables, with
workspace-relative local paths mirrored below the remote base directory.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from . import log as lbr_log
from .errors import ConfigurationError, TransportError
from .exec import CommandExecutionError, CommandRequest, CommandRunner, run_checked
from .models import RemoteConfig
from .paths import remote_path


class Transport(Protocol):
    """Remote file transfer and command execution used by the coordinator."""

    async def transfer_files(self, paths: Sequence[str]) -> None: ...

    async def transfer_dir(self, local: Path, remote: str) -> None: ...

    async def execute_remote_command(self, command: str) -> int: ...

    async def get_remote_file(self, local: Path, remote: str) -> None: ...

    async def get_remote_dir(self, local: Path, remote: str) -> None: ...


@dataclass
class SshTransport:
    """``Transport`` backed by the OpenSSH command line tools.

    Attributes:
        remote: Connection settings.
        workspace: Local workspace root; ``transfer_files`` paths are relative
            to it.
        remote_base_dir: Remote directory mirroring the workspace.
        runner: Command runner, replaceable in tests.
    """

    remote: RemoteConfig
    workspace: Path
    remote_base_dir: str
    runner: CommandRunner | None = None
    timeout_seconds: float | None = None

    def _destination(self) -> str:
        destination = self.remote.destination
        if not destination:
            raise ConfigurationError(
                "missing remote host",
                recovery_hint="set remote.host in .lbr/etc/app-config.json",
            )
        return destination

    def _ssh_options(self, port_flag: str) -> list[str]:
        options = ["-o", "BatchMode=yes", port_flag, str(self.remote.port)]
        if self.remote.identity_file:
            options.extend(["-i", self.remote.identity_file])
        return options

    async def _run(self, argv: list[str], *, action: str) -> int:
        lbr_log.trace(f"transport {action}: {shlex.join(argv)}")
        request = CommandRequest(
            argv=tuple(argv), cwd=self.workspace, timeout_seconds=self.timeout_seconds
        )
        try:
            result = await run_checked(request, runner=self.runner)
        except CommandExecutionError as exc:
            raise TransportError(str(exc), recovery_hint="install OpenSSH client tools") from exc
        if result.timed_out:
            raise TransportError(f"{action} timed out")
        if result.stderr.strip():
            lbr_log.debug(f"transport {action} stderr: {result.stderr.strip()}")
        return result.returncode

    async def _scp(self, sources: list[str], target: str, *, action: str) -> None:
        argv = [self.remote.scp_path, *self._ssh_options("-P"), "-r", *sources, target]
        returncode = await self._run(argv, action=action)
        if returncode != 0:
            raise TransportError(f"{action} failed with exit status {returncode}")

    async def _mkdir(self, directories: set[str]) -> None:
        if not directories:
            return
        command = "mkdir -p " + " ".join(shlex.quote(path) for path in sorted(directories))
        status = await self.execute_remote_command(command)
        if status != 0:
            raise TransportError(f"cannot create remote directories (exit status {status})")

    async def transfer_files(self, paths: Sequence[str]) -> None:
        destination = self._destination()
        by_directory: dict[str, list[str]] = {}
        for relative in paths:
            parent = Path(relative).parent.as_posix()
            by_directory.setdefault(parent, []).append(str(self.workspace / relative))
        await self._mkdir({remote_path(self.remote_base_dir, key) for key in by_directory})
        for directory, files in by_directory.items():
            target = f"{destination}:{remote_path(self.remote_base_dir, directory)}/"
            await self._scp(files, target, action=f"transfer {len(files)} file(s) to {directory}")

    async def transfer_dir(self, local: Path, remote: str) -> None:
        destination = self._destination()
        await self._mkdir({remote})
        if not local.is_dir():
            return
        entries = sorted(str(entry) for entry in local.iterdir())
        if entries:
            await self._scp(entries, f"{destination}:{remote}/", action=f"transfer dir {local}")

    async def execute_remote_command(self, command: str) -> int:
        argv = [self.remote.ssh_path, *self._ssh_options("-p"), self._destination(), command]
        return await self._run(argv, action="remote command")

    async def get_remote_file(self, local: Path, remote: str) -> None:
        local.parent.mkdir(parents=True, exist_ok=True)
        await self._scp(
            [f"{self._destination()}:{remote}"], str(local), action=f"get {remote}"
        )

    async def get_remote_dir(self, local: Path, remote: str) -> None:
        local.mkdir(parents=True, exist_ok=True)
        await self._scp(
            [f"{self._destination()}:{remote.rstrip('/')}/."], str(local), action=f"get {remote}"
        )
