"""Operation requests accepted at the front-end boundary.

Front ends (the CLI, an editor integration) build one of the request types
below and hand it to ``dispatch``; the dispatch table maps each request type
to the coordinator operation that serves it.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from .coordinator import BuildCoordinator
from .result import ServiceResult


@dataclass(frozen=True)
class PreviewChanges:
    source: str | None = None


@dataclass(frozen=True)
class RunBuild:
    sources: tuple[str, ...] | None = None


@dataclass(frozen=True)
class RerunBuild:
    ignore_sources: tuple[str, ...] = ()
    ignore_commands: Mapping[str, tuple[str, ...] | None] = field(default_factory=dict)


@dataclass(frozen=True)
class ResetObjectList:
    pass


@dataclass(frozen=True)
class FetchRemoteObjectList:
    pass


@dataclass(frozen=True)
class RefreshRemoteSourceList:
    pass


@dataclass(frozen=True)
class EditDependency:
    source: str
    other: str
    reverse: bool = False
    remove: bool = False


OperationRequest = (
    PreviewChanges
    | RunBuild
    | RerunBuild
    | ResetObjectList
    | FetchRemoteObjectList
    | RefreshRemoteSourceList
    | EditDependency
)

Handler = Callable[[BuildCoordinator, OperationRequest], object]

DISPATCH_TABLE: dict[type, Handler] = {
    PreviewChanges: lambda coordinator, request: coordinator.preview_changes(request.source),
    RunBuild: lambda coordinator, request: coordinator.run_build(request.sources),
    RerunBuild: lambda coordinator, request: coordinator.rerun_build(
        request.ignore_sources, request.ignore_commands
    ),
    ResetObjectList: lambda coordinator, request: coordinator.reset_object_list(),
    FetchRemoteObjectList: lambda coordinator, request: coordinator.fetch_remote_object_list(),
    RefreshRemoteSourceList: lambda coordinator, request: coordinator.refresh_remote_source_list(),
    EditDependency: lambda coordinator, request: coordinator.edit_dependency(
        request.source, request.other, reverse=request.reverse, remove=request.remove
    ),
}


async def dispatch(coordinator: BuildCoordinator, request: OperationRequest) -> ServiceResult:
    """Serve one request with the matching coordinator operation.

    Raises:
        TypeError: ``request`` is not one of the known request types.
    """
    handler = DISPATCH_TABLE.get(type(request))
    if handler is None:
        raise TypeError(f"unsupported request {type(request).__name__}")
    result = handler(coordinator, request)
    if inspect.isawaitable(result):
        result = await result
    return result
