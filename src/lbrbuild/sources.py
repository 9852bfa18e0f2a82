"""Source discovery, fingerprinting and change detection.

Sources are identified by their POSIX-style path relative to the source root.
A source's object type is its last file suffix, lower-cased.

Example:
    >>> object_type("qrpglesrc/order.pgm.sqlrpgle")
    'sqlrpgle'
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

from . import log as lbr_log
from .config import hash_file
from .errors import SourceReadError

FingerprintTable = dict[str, str]


class BuildStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


def object_type(source: str) -> str:
    """Return the object type of a source identity or file name."""
    suffix = PurePosixPath(source.replace("\\", "/")).suffix
    return suffix.lstrip(".").lower()


def normalize_source(source: str) -> str:
    """Normalize a source identity to forward slashes without a leading slash.

    Example:
        >>> normalize_source("/qclsrc/start.clle")
        'qclsrc/start.clle'
    """
    return source.replace("\\", "/").lstrip("/")


def fingerprint(path: Path) -> str:
    """Return the content fingerprint of a source file."""
    return hash_file(path)


@dataclass
class Source:
    """A source file below the source root.

    Attributes:
        path: Identity, relative to the source root.
        fingerprint: Current content fingerprint.
        status: Result of the latest remote build attempt.
        stale: True when the file no longer exists on disk.
    """

    path: str
    fingerprint: str | None = None
    status: BuildStatus = BuildStatus.PENDING
    stale: bool = False

    @property
    def object_type(self) -> str:
        return object_type(self.path)


@dataclass(frozen=True)
class ChangeSet:
    """Sources needing a build, split by whether they were ever built."""

    new_objects: tuple[str, ...] = ()
    changed_sources: tuple[str, ...] = ()

    @property
    def sources(self) -> list[str]:
        return [*self.new_objects, *self.changed_sources]

    def is_empty(self) -> bool:
        return not self.new_objects and not self.changed_sources

    def to_document(self) -> dict[str, list[str]]:
        return {
            "new-objects": list(self.new_objects),
            "changed-sources": list(self.changed_sources),
        }

    @classmethod
    def from_document(cls, payload: Mapping[str, object]) -> ChangeSet:
        def _paths(key: str) -> tuple[str, ...]:
            value = payload.get(key)
            if not isinstance(value, list):
                return ()
            return tuple(normalize_source(item) for item in value if isinstance(item, str))

        return cls(new_objects=_paths("new-objects"), changed_sources=_paths("changed-sources"))


def discover_sources(source_root: Path, object_types: Iterable[str]) -> list[str]:
    """List every source with a recognized object type below ``source_root``.

    Returns:
        Sorted source identities; empty when the root does not exist.
    """
    recognized = {value.lower() for value in object_types}
    if not source_root.is_dir():
        lbr_log.warning(f"source directory {source_root} does not exist")
        return []
    discovered = [
        path.relative_to(source_root).as_posix()
        for path in source_root.rglob("*")
        if path.is_file() and object_type(path.name) in recognized
    ]
    return sorted(discovered)


@dataclass
class ChangeDetector:
    """Diff source fingerprints against the last recorded fingerprint table."""

    source_root: Path
    object_types: Sequence[str] = field(default_factory=tuple)

    def supports(self, source: str) -> bool:
        return object_type(source) in {value.lower() for value in self.object_types}

    def discover(self) -> list[str]:
        return discover_sources(self.source_root, self.object_types)

    def fingerprint_of(self, source: str) -> str:
        path = self.source_root / source
        try:
            return fingerprint(path)
        except FileNotFoundError as exc:
            raise SourceReadError(source, "file not found") from exc
        except IsADirectoryError as exc:
            raise SourceReadError(source, "is a directory") from exc
        except OSError as exc:
            raise SourceReadError(source, exc.strerror or str(exc)) from exc

    def detect(
        self,
        candidates: str | Iterable[str] | None,
        table: Mapping[str, str],
    ) -> ChangeSet:
        """Classify candidates as new, changed or unchanged.

        Args:
            candidates: One source identity, several, or ``None`` for every
                discovered source.
            table: Last-known-good fingerprints.

        Returns:
            ``ChangeSet`` with new and changed sources in candidate order.

        Raises:
            SourceReadError: A candidate is missing, unreadable or of an
                unsupported object type. No partial result is returned.
        """
        if candidates is None:
            selected = self.discover()
        elif isinstance(candidates, str):
            selected = [normalize_source(candidates)]
        else:
            selected = list(dict.fromkeys(normalize_source(item) for item in candidates))

        new_objects: list[str] = []
        changed: list[str] = []
        for source in selected:
            if not self.supports(source):
                raise SourceReadError(source, f"unsupported object type {object_type(source)!r}")
            current = self.fingerprint_of(source)
            recorded = table.get(source)
            if recorded is None:
                new_objects.append(source)
            elif recorded != current:
                changed.append(source)
        lbr_log.debug(
            f"change detection candidates={len(selected)} "
            f"new={len(new_objects)} changed={len(changed)}"
        )
        return ChangeSet(new_objects=tuple(new_objects), changed_sources=tuple(changed))

    def current_fingerprints(self, candidates: Iterable[str] | None = None) -> FingerprintTable:
        """Compute a fresh fingerprint table from disk content."""
        selected = self.discover() if candidates is None else list(candidates)
        return {normalize_source(source): self.fingerprint_of(source) for source in selected}

    def stale_sources(
        self, table: Mapping[str, str], discovered: Iterable[str] | None = None
    ) -> list[str]:
        """Return table entries whose file no longer exists."""
        present = set(self.discover() if discovered is None else discovered)
        return sorted(source for source in table if source not in present)

    def resolve_source(self, path: Path | str) -> str:
        """Map a file path to a source identity.

        Args:
            path: Absolute path, or a path relative to the source root.

        Returns:
            Normalized source identity.

        Raises:
            SourceReadError: The file is outside the source root, has an
                unsupported object type or does not exist.
        """
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                relative = candidate.resolve().relative_to(self.source_root.resolve())
            except ValueError as exc:
                raise SourceReadError(
                    str(path), f"not below source directory {self.source_root}"
                ) from exc
            source = relative.as_posix()
        else:
            source = normalize_source(str(path))
        if not self.supports(source):
            raise SourceReadError(source, "not a supported source type")
        if not (self.source_root / source).is_file():
            raise SourceReadError(source, f"does not exist in {self.source_root}")
        return source
