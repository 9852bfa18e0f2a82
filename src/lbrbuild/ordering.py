"""Deterministic, dependency-respecting build ordering."""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace

from . import log as lbr_log
from .dependencies import DependencyGraph
from .sources import BuildStatus, normalize_source, object_type


@dataclass(frozen=True)
class BuildTarget:
    """One entry of a build plan.

    Attributes:
        source: Source identity.
        command: Explicit remote command override, if any.
        status: Remote build result, set once the remote reported.
        hash: Fingerprint the remote built, set once the remote reported.
    """

    source: str
    command: str | None = None
    status: BuildStatus | None = None
    hash: str | None = None

    def to_document(self) -> dict[str, str]:
        payload = {"source": self.source}
        if self.command:
            payload["command"] = self.command
        if self.status is not None:
            payload["status"] = self.status.value
        if self.hash:
            payload["hash"] = self.hash
        return payload

    @classmethod
    def from_document(cls, payload: Mapping[str, object]) -> BuildTarget | None:
        source = payload.get("source")
        if not isinstance(source, str) or not source.strip():
            return None
        command = payload.get("command")
        raw_status = payload.get("status")
        status = None
        if isinstance(raw_status, str):
            try:
                status = BuildStatus(raw_status.strip().lower())
            except ValueError:
                status = BuildStatus.FAILURE
        raw_hash = payload.get("hash")
        return cls(
            source=normalize_source(source.strip()),
            command=command if isinstance(command, str) and command.strip() else None,
            status=status,
            hash=raw_hash if isinstance(raw_hash, str) and raw_hash else None,
        )


@dataclass(frozen=True)
class BuildPlan:
    """Ordered build targets; no target precedes one it depends on."""

    targets: tuple[BuildTarget, ...] = ()
    timestamp: str | None = None

    @property
    def sources(self) -> list[str]:
        return [target.source for target in self.targets]

    def is_empty(self) -> bool:
        return not self.targets

    def __len__(self) -> int:
        return len(self.targets)

    def stamped(self, timestamp: str) -> BuildPlan:
        return replace(self, timestamp=timestamp)

    def to_document(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp,
            "targets": [target.to_document() for target in self.targets],
        }

    @classmethod
    def from_document(cls, payload: object) -> BuildPlan:
        if isinstance(payload, list):
            entries, timestamp = payload, None
        elif isinstance(payload, Mapping):
            raw_targets = payload.get("targets")
            entries = raw_targets if isinstance(raw_targets, list) else []
            raw_timestamp = payload.get("timestamp")
            timestamp = raw_timestamp if isinstance(raw_timestamp, str) else None
        else:
            return cls()
        targets = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            target = BuildTarget.from_document(entry)
            if target is not None:
                targets.append(target)
        return cls(targets=tuple(targets), timestamp=timestamp)


@dataclass
class BuildOrderer:
    """Convert an unordered set of affected sources into a ``BuildPlan``.

    Ordering rules, in priority:

    1. dependencies before dependents (topological over ``depends_on``
       restricted to the target set);
    2. among unconstrained sources, the object type precedence
       ``type_order`` (unknown types last);
    3. then discovery order (position in the input).

    A cycle is broken by emitting the cyclic member discovered first.

    Example:
        >>> orderer = BuildOrderer(DependencyGraph({"b.pgm": ["a.pf"]}), ["pf", "pgm"])
        >>> orderer.order(["b.pgm", "a.pf"]).sources
        ['a.pf', 'b.pgm']
    """

    graph: DependencyGraph
    type_order: Sequence[str] = ()
    commands: Mapping[str, str] = field(default_factory=dict)

    def _rank(self, source: str) -> int:
        ranks = {value.lower(): index for index, value in enumerate(self.type_order)}
        return ranks.get(object_type(source), len(ranks))

    def order(self, sources: Iterable[str]) -> BuildPlan:
        discovered = list(dict.fromkeys(normalize_source(source) for source in sources))
        position = {source: index for index, source in enumerate(discovered)}
        restricted = self.graph.restricted_to(discovered)

        pending: dict[str, int] = {}
        dependents: dict[str, list[str]] = {source: [] for source in discovered}
        for source in discovered:
            dependencies = [dep for dep in restricted.get(source, ()) if dep != source]
            pending[source] = len(dependencies)
            for dependency in dependencies:
                dependents[dependency].append(source)

        def key(source: str) -> tuple[int, int, str]:
            return (self._rank(source), position[source], source)

        ready = [key(source) for source in discovered if pending[source] == 0]
        heapq.heapify(ready)
        emitted: set[str] = set()
        ordered: list[str] = []

        def emit(source: str) -> None:
            emitted.add(source)
            ordered.append(source)
            for dependent in dependents[source]:
                if dependent in emitted:
                    continue
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, key(dependent))

        while len(ordered) < len(discovered):
            if ready:
                _, _, source = heapq.heappop(ready)
                if source in emitted:
                    continue
                emit(source)
                continue
            remaining = [source for source in discovered if source not in emitted]
            cyclic = _unblocked_cycle_members(remaining, restricted)
            breaker = cyclic[0]
            lbr_log.warning(
                "dependency cycle among "
                f"{', '.join(cyclic)}; building {breaker} first (discovery order)"
            )
            pending[breaker] = 0
            emit(breaker)

        targets = tuple(
            BuildTarget(source=source, command=self.commands.get(source)) for source in ordered
        )
        return BuildPlan(targets=targets)


def _unblocked_cycle_members(
    remaining: list[str], restricted: Mapping[str, list[str]]
) -> list[str]:
    """Return members of a cycle that waits on nothing outside itself.

    ``remaining`` is in discovery order and every member waits on at least
    one other member, so such a cycle always exists.
    """
    members = set(remaining)
    reach: dict[str, set[str]] = {}
    for source in remaining:
        seen: set[str] = set()
        stack = [dep for dep in restricted.get(source, ()) if dep in members]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(dep for dep in restricted.get(current, ()) if dep in members)
        reach[source] = seen
    unblocked = [
        source
        for source in remaining
        if source in reach[source] and all(source in reach[dep] for dep in reach[source])
    ]
    return unblocked or remaining


def exclude(
    plan: BuildPlan,
    ignore_sources: Iterable[str] = (),
    ignore_commands: Mapping[str, Sequence[str] | None] | None = None,
) -> BuildPlan:
    """Drop ignored targets from a plan, preserving order.

    Args:
        plan: Plan to filter.
        ignore_sources: Sources never to build.
        ignore_commands: Per source, ``None`` to drop the source, or a list
            of commands whose targets are dropped.

    Returns:
        Filtered plan with the same timestamp.
    """
    ignored = {normalize_source(source) for source in ignore_sources}
    by_source = {
        normalize_source(source): commands for source, commands in (ignore_commands or {}).items()
    }
    kept: list[BuildTarget] = []
    for target in plan.targets:
        if target.source in ignored:
            continue
        if target.source in by_source:
            commands = by_source[target.source]
            if commands is None or (target.command is not None and target.command in commands):
                continue
        kept.append(target)
    return replace(plan, targets=tuple(kept))
