"""Durable JSON documents for change sets, build plans and fingerprints."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from . import log as lbr_log
from .config import load_json, write_json
from .dependencies import DependencyGraph
from .errors import PlanStoreError
from .models import GeneralConfig
from .ordering import BuildPlan, BuildTarget
from .sources import ChangeSet, FingerprintTable, normalize_source


@dataclass(frozen=True)
class BuildPlanStore:
    """Locations and codecs of the persisted build documents.

    Attributes:
        fingerprints_path: FingerprintTable document.
        change_set_path: Last ChangeSet document.
        plan_path: Last BuildPlan document; the remote rewrites it with
            per-target results.
        dependencies_path: Declared dependency relation.
    """

    fingerprints_path: Path
    change_set_path: Path
    plan_path: Path
    dependencies_path: Path

    @classmethod
    def for_workspace(cls, workspace: Path, general: GeneralConfig) -> BuildPlanStore:
        return cls(
            fingerprints_path=workspace / general.compiled_object_list,
            change_set_path=workspace / general.changed_object_list,
            plan_path=workspace / general.compile_list,
            dependencies_path=workspace / general.dependency_list,
        )

    def _read(self, path: Path) -> object:
        try:
            return load_json(path)
        except json.JSONDecodeError as exc:
            raise PlanStoreError(
                f"malformed JSON in {path}: {exc}",
                recovery_hint="delete the file or restore it from build history",
            ) from exc
        except OSError as exc:
            raise PlanStoreError(f"cannot read {path}: {exc}") from exc

    def load_fingerprints(self) -> FingerprintTable:
        payload = self._read(self.fingerprints_path)
        if payload is None:
            return {}
        if not isinstance(payload, Mapping):
            raise PlanStoreError(f"{self.fingerprints_path} must hold a JSON object")
        return {
            normalize_source(source): value
            for source, value in payload.items()
            if isinstance(source, str) and isinstance(value, str)
        }

    def save_fingerprints(self, table: Mapping[str, str]) -> None:
        write_json(self.fingerprints_path, dict(sorted(table.items())))
        lbr_log.debug(f"fingerprint table written entries={len(table)}")

    def load_change_set(self) -> ChangeSet:
        payload = self._read(self.change_set_path)
        if not isinstance(payload, Mapping):
            return ChangeSet()
        return ChangeSet.from_document(payload)

    def save_change_set(self, change_set: ChangeSet) -> None:
        write_json(self.change_set_path, change_set.to_document())

    def load_plan(self) -> BuildPlan:
        return BuildPlan.from_document(self._read(self.plan_path))

    def save_plan(self, plan: BuildPlan) -> None:
        write_json(self.plan_path, plan.to_document())
        lbr_log.debug(f"build plan written targets={len(plan)} path={self.plan_path}")

    def load_plan_document(self) -> dict | list | None:
        """Return the raw plan document, as retrieved from the remote."""
        payload = self._read(self.plan_path)
        if payload is None or isinstance(payload, (dict, list)):
            return payload
        raise PlanStoreError(f"{self.plan_path} must hold a JSON object")

    def load_report(self) -> list[BuildTarget]:
        """Return the targets of the retrieved plan that carry a result."""
        plan = self.load_plan()
        return [target for target in plan.targets if target.status is not None]

    def load_dependencies(self) -> DependencyGraph:
        payload = self._read(self.dependencies_path)
        if payload is None:
            return DependencyGraph()
        if not isinstance(payload, Mapping):
            raise PlanStoreError(f"{self.dependencies_path} must hold a JSON object")
        return DependencyGraph(payload)

    def save_dependencies(self, graph: DependencyGraph) -> None:
        write_json(self.dependencies_path, graph.to_mapping())
