from __future__ import annotations

from pathlib import Path

import pytest

from lbrbuild.errors import ConfigurationError, TransportError
from lbrbuild.exec import CommandRequest, CommandResult
from lbrbuild.models import RemoteConfig
from lbrbuild.transport import SshTransport


class RecordingRunner:
    def __init__(self, returncodes: dict[str, int] | None = None, missing: bool = False) -> None:
        self.requests: list[CommandRequest] = []
        self.returncodes = returncodes or {}
        self.missing = missing

    async def run(self, request: CommandRequest) -> CommandResult | None:
        self.requests.append(request)
        if self.missing:
            return None
        returncode = self.returncodes.get(request.argv[0], 0)
        return CommandResult(argv=request.argv, returncode=returncode, stdout="", stderr="")

    @property
    def argvs(self) -> list[list[str]]:
        return [list(request.argv) for request in self.requests]


def _transport(tmp_path: Path, runner: RecordingRunner, **remote: object) -> SshTransport:
    settings = {"host": "ibmi.example.com", "user": "dev", **remote}
    return SshTransport(
        remote=RemoteConfig.model_validate(settings),
        workspace=tmp_path,
        remote_base_dir="/home/app",
        runner=runner,
    )


@pytest.mark.asyncio
async def test_execute_remote_command_builds_ssh_argv(tmp_path: Path) -> None:
    runner = RecordingRunner({"ssh": 3})
    transport = _transport(tmp_path, runner, port=2222, **{"identity-file": "~/.ssh/build"})

    status = await transport.execute_remote_command("ls -la")

    assert status == 3
    assert runner.argvs == [
        [
            "ssh",
            "-o",
            "BatchMode=yes",
            "-p",
            "2222",
            "-i",
            "~/.ssh/build",
            "dev@ibmi.example.com",
            "ls -la",
        ]
    ]
    assert runner.requests[0].cwd == tmp_path


@pytest.mark.asyncio
async def test_transfer_files_groups_by_directory(tmp_path: Path) -> None:
    runner = RecordingRunner()
    transport = _transport(tmp_path, runner)

    await transport.transfer_files(["src/a.c", "src/b.c", "src/sub/c.h"])

    mkdir, first, second = runner.argvs
    assert mkdir[-1] == "mkdir -p /home/app/src /home/app/src/sub"
    assert first[0] == "scp"
    assert first[first.index("-P") + 1] == "22"
    assert first[-3:] == [
        str(tmp_path / "src/a.c"),
        str(tmp_path / "src/b.c"),
        "dev@ibmi.example.com:/home/app/src/",
    ]
    assert second[-2:] == [str(tmp_path / "src/sub/c.h"), "dev@ibmi.example.com:/home/app/src/sub/"]


@pytest.mark.asyncio
async def test_transfer_dir_copies_entries(tmp_path: Path) -> None:
    local = tmp_path / ".lbr" / "tmp"
    local.mkdir(parents=True)
    (local / "compile-list.json").write_text("{}", encoding="utf-8")
    runner = RecordingRunner()

    await _transport(tmp_path, runner).transfer_dir(local, "/home/app/.lbr/tmp")

    assert runner.argvs[0][-1] == "mkdir -p /home/app/.lbr/tmp"
    assert runner.argvs[1][-2:] == [
        str(local / "compile-list.json"),
        "dev@ibmi.example.com:/home/app/.lbr/tmp/",
    ]


@pytest.mark.asyncio
async def test_get_remote_dir_copies_directory_contents(tmp_path: Path) -> None:
    runner = RecordingRunner()
    local = tmp_path / ".lbr" / "log"

    await _transport(tmp_path, runner).get_remote_dir(local, "/home/app/.lbr/log/")

    assert local.is_dir()
    assert runner.argvs[0][-2:] == ["dev@ibmi.example.com:/home/app/.lbr/log/.", str(local)]


@pytest.mark.asyncio
async def test_failed_copy_raises_transport_error(tmp_path: Path) -> None:
    runner = RecordingRunner({"scp": 1})

    with pytest.raises(TransportError, match="exit status 1") as excinfo:
        await _transport(tmp_path, runner).get_remote_file(
            tmp_path / "out.json", "/home/app/out.json"
        )

    assert excinfo.value.code == "transport_failed"


@pytest.mark.asyncio
async def test_missing_executable_raises_transport_error(tmp_path: Path) -> None:
    runner = RecordingRunner(missing=True)

    with pytest.raises(TransportError, match="missing required command: ssh"):
        await _transport(tmp_path, runner).execute_remote_command("true")


@pytest.mark.asyncio
async def test_missing_host_is_a_configuration_error(tmp_path: Path) -> None:
    runner = RecordingRunner()

    with pytest.raises(ConfigurationError, match="missing remote host"):
        await _transport(tmp_path, runner, host=None).execute_remote_command("true")

    assert runner.requests == []
