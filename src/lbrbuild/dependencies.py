"""Declared source dependencies and forward-closure expansion.

``depends_on[a] == [b, ...]`` means *a depends on b*: a change to ``b``
requires rebuilding ``a``. Declaration order is preserved and drives the
deterministic expansion order. Raw input may contain cycles.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping

from . import log as lbr_log
from .sources import normalize_source


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = normalize_source(value.strip())
    return cleaned or None


class DependencyGraph:
    """Adjacency structure over source identities.

    Example:
        >>> graph = DependencyGraph({"b.c": ["a.c"]})
        >>> graph.forward_closure(["a.c"])
        ['a.c', 'b.c']
    """

    def __init__(self, depends_on: Mapping[str, Iterable[str]] | None = None) -> None:
        self._depends_on: dict[str, list[str]] = {}
        for source, dependencies in (depends_on or {}).items():
            key = _clean(source)
            if key is None or isinstance(dependencies, str):
                continue
            for dependency in dependencies:
                value = _clean(dependency)
                if value is not None:
                    self._insert(key, value)

    def _insert(self, source: str, dependency: str) -> bool:
        entries = self._depends_on.setdefault(source, [])
        if dependency in entries:
            return False
        entries.append(dependency)
        return True

    def _discard(self, source: str, dependency: str) -> bool:
        entries = self._depends_on.get(source)
        if not entries or dependency not in entries:
            return False
        entries.remove(dependency)
        return True

    def dependencies_of(self, source: str) -> list[str]:
        """Return the sources ``source`` depends on, in declared order."""
        return list(self._depends_on.get(normalize_source(source), ()))

    def dependents_of(self, source: str) -> list[str]:
        """Return the sources that directly depend on ``source``."""
        target = normalize_source(source)
        return [
            dependent
            for dependent, dependencies in self._depends_on.items()
            if target in dependencies
        ]

    def _dependents_index(self) -> dict[str, list[str]]:
        inverse: dict[str, list[str]] = {}
        for dependent, dependencies in self._depends_on.items():
            for dependency in dependencies:
                inverse.setdefault(dependency, []).append(dependent)
        return inverse

    def forward_closure(self, seeds: Iterable[str]) -> list[str]:
        """Return the seeds plus every source transitively depending on them.

        The walk is breadth-first over the inverse relation and visits every
        source at most once, so cyclic declarations terminate.

        Args:
            seeds: Changed sources.

        Returns:
            Seeds first (deduplicated, in given order), then dependents in
            discovery order.
        """
        inverse = self._dependents_index()
        visited: set[str] = set()
        ordered: list[str] = []
        queue: deque[str] = deque()
        seed_count = 0
        for seed in seeds:
            source = normalize_source(seed)
            if source in visited:
                continue
            visited.add(source)
            ordered.append(source)
            queue.append(source)
            seed_count += 1
        while queue:
            current = queue.popleft()
            for dependent in inverse.get(current, ()):
                if dependent in visited:
                    continue
                visited.add(dependent)
                ordered.append(dependent)
                queue.append(dependent)
        lbr_log.trace(f"forward closure seeds={seed_count} total={len(ordered)}")
        return ordered

    def add_dependency(self, source: str, dependency: str) -> bool:
        """Record that ``source`` depends on ``dependency``."""
        return self._insert(normalize_source(source), normalize_source(dependency))

    def add_dependent(self, source: str, dependent: str) -> bool:
        """Record that ``dependent`` depends on ``source``.

        This is the reverse insertion: the edge is stored under
        ``depends_on[dependent]``.
        """
        return self._insert(normalize_source(dependent), normalize_source(source))

    def remove_dependency(self, source: str, dependency: str) -> bool:
        return self._discard(normalize_source(source), normalize_source(dependency))

    def remove_dependent(self, source: str, dependent: str) -> bool:
        return self._discard(normalize_source(dependent), normalize_source(source))

    def restricted_to(self, sources: Iterable[str]) -> dict[str, list[str]]:
        """Return the ``depends_on`` relation restricted to ``sources``."""
        members = set(sources)
        return {
            source: [dependency for dependency in dependencies if dependency in members]
            for source, dependencies in self._depends_on.items()
            if source in members
        }

    def to_mapping(self) -> dict[str, list[str]]:
        """Return the relation for persistence, without empty entries."""
        return {source: list(deps) for source, deps in self._depends_on.items() if deps}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencyGraph):
            return NotImplemented
        return self.to_mapping() == other.to_mapping()

    def __repr__(self) -> str:
        return f"DependencyGraph({self.to_mapping()!r})"
