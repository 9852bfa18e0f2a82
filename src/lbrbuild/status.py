"""Per-operation run status cells."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum

from . import log as lbr_log
from .errors import AlreadyRunning


class OperationKind(str, Enum):
    BUILD = "build"
    PREVIEW = "preview"
    REMOTE_SOURCE_LIST = "remote-source-list"
    OBJECT_LIST = "object-list"


class RunStatus(str, Enum):
    READY = "READY"
    IN_PROCESS = "IN_PROCESS"


class RunStatusRegistry:
    """One mutual-exclusion cell per operation kind.

    Kinds are independent: holding ``BUILD`` does not block ``PREVIEW``.

    Example:
        >>> registry = RunStatusRegistry()
        >>> registry.try_acquire(OperationKind.BUILD)
        True
        >>> registry.try_acquire(OperationKind.BUILD)
        False
        >>> registry.release(OperationKind.BUILD)
        >>> registry.status(OperationKind.BUILD).value
        'READY'
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._cells = {kind: RunStatus.READY for kind in OperationKind}

    def status(self, kind: OperationKind) -> RunStatus:
        with self._guard:
            return self._cells[kind]

    def try_acquire(self, kind: OperationKind) -> bool:
        """Move a cell from READY to IN_PROCESS; False when already held."""
        with self._guard:
            if self._cells[kind] is not RunStatus.READY:
                return False
            self._cells[kind] = RunStatus.IN_PROCESS
            return True

    def release(self, kind: OperationKind) -> None:
        with self._guard:
            self._cells[kind] = RunStatus.READY

    @contextmanager
    def hold(self, kind: OperationKind) -> Iterator[None]:
        """Hold a cell for the duration of the block.

        Raises:
            AlreadyRunning: The cell is already IN_PROCESS. Nothing is changed.
        """
        if not self.try_acquire(kind):
            raise AlreadyRunning(kind.value)
        lbr_log.trace(f"run status acquired kind={kind.value}")
        try:
            yield
        finally:
            self.release(kind)
            lbr_log.trace(f"run status released kind={kind.value}")

    def snapshot(self) -> dict[str, str]:
        with self._guard:
            return {kind.value: status.value for kind, status in self._cells.items()}
