from __future__ import annotations

import threading

import pytest

from lbrbuild.errors import AlreadyRunning
from lbrbuild.status import OperationKind, RunStatus, RunStatusRegistry


def test_all_cells_start_ready() -> None:
    registry = RunStatusRegistry()

    assert set(registry.snapshot().values()) == {"READY"}
    assert set(registry.snapshot()) == {"build", "preview", "remote-source-list", "object-list"}


def test_hold_marks_cell_in_process_and_releases() -> None:
    registry = RunStatusRegistry()

    with registry.hold(OperationKind.BUILD):
        assert registry.status(OperationKind.BUILD) is RunStatus.IN_PROCESS
        assert registry.status(OperationKind.PREVIEW) is RunStatus.READY

    assert registry.status(OperationKind.BUILD) is RunStatus.READY


def test_second_hold_of_same_kind_is_rejected() -> None:
    registry = RunStatusRegistry()

    with registry.hold(OperationKind.OBJECT_LIST):
        with pytest.raises(AlreadyRunning) as excinfo:
            with registry.hold(OperationKind.OBJECT_LIST):
                pass
        assert registry.status(OperationKind.OBJECT_LIST) is RunStatus.IN_PROCESS

    assert excinfo.value.code == "already_running"
    assert excinfo.value.message == "object-list process is already running"


def test_cell_is_released_when_the_block_raises() -> None:
    registry = RunStatusRegistry()

    with pytest.raises(RuntimeError):
        with registry.hold(OperationKind.BUILD):
            raise RuntimeError("remote went away")

    assert registry.status(OperationKind.BUILD) is RunStatus.READY


def test_try_acquire_admits_exactly_one_thread() -> None:
    registry = RunStatusRegistry()
    barrier = threading.Barrier(8)
    results: list[bool] = []
    lock = threading.Lock()

    def contend() -> None:
        barrier.wait()
        acquired = registry.try_acquire(OperationKind.BUILD)
        with lock:
            results.append(acquired)

    threads = [threading.Thread(target=contend) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
