"""Common result contracts for coordinator entrypoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from .errors import BuildFailure, BuildFailureCode

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceSuccess(Generic[T]):
    """Container for successful operation outcomes.

    Args:
        outcome: Typed outcome payload returned by an operation.
    """

    outcome: T


@dataclass(frozen=True)
class ServiceFailure:
    """Deterministic failure result for expected operation errors.

    Args:
        code: Stable failure code for callers and tests.
        message: Human-readable failure summary.
        recovery_hint: Optional actionable hint for recovery.
    """

    code: BuildFailureCode
    message: str
    recovery_hint: str | None = None


ServiceResult = ServiceSuccess[T] | ServiceFailure


def service_success(outcome: T) -> ServiceSuccess[T]:
    """Create a successful result wrapping ``outcome``."""

    return ServiceSuccess(outcome=outcome)


def service_failure(
    *,
    code: BuildFailureCode,
    message: str,
    recovery_hint: str | None = None,
) -> ServiceFailure:
    """Create a deterministic failure result."""

    return ServiceFailure(code=code, message=message, recovery_hint=recovery_hint)


def failure_from(error: BuildFailure) -> ServiceFailure:
    """Convert a raised ``BuildFailure`` into its result form."""

    return service_failure(
        code=error.code, message=error.message, recovery_hint=error.recovery_hint
    )
