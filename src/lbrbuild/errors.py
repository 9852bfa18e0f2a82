"""Build failure contracts.

Planning and coordination code raises ``BuildFailure`` subclasses on expected
configuration, admission, read and transport failures. The coordinator
boundary catches them and converts them into ``ServiceFailure`` results.
Programmer bugs raise normal exceptions.
"""

from __future__ import annotations

from typing import Literal

BuildFailureCode = Literal[
    "configuration_invalid",
    "already_running",
    "source_unreadable",
    "transport_failed",
    "plan_store_failed",
    "unexpected_state",
]


class BuildFailure(Exception):
    """Expected failure of a build operation.

    Use ``raise BuildFailure(...) from exc`` to chain a causing exception; it
    is available as ``__cause__``.
    """

    def __init__(
        self,
        code: BuildFailureCode,
        message: str,
        *,
        recovery_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recovery_hint = recovery_hint


class ConfigurationError(BuildFailure):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("configuration_invalid", message, recovery_hint=recovery_hint)


class AlreadyRunning(BuildFailure):
    """An operation of the same kind is already in process."""

    def __init__(self, kind: str) -> None:
        super().__init__(
            "already_running",
            f"{kind} process is already running",
            recovery_hint="wait for the running operation to finish",
        )
        self.kind = kind


class SourceReadError(BuildFailure):
    """A source could not be read during change detection."""

    def __init__(self, path: str, reason: str | None = None) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__("source_unreadable", f"cannot read source {path}{detail}")
        self.path = path


class TransportError(BuildFailure):
    """A remote transfer or command failed."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("transport_failed", message, recovery_hint=recovery_hint)


class PlanStoreError(BuildFailure):
    """A persisted build document could not be read."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("plan_store_failed", message, recovery_hint=recovery_hint)
