"""Append-only build history snapshots."""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from . import log as lbr_log
from .config import utc_now, write_json
from .paths import HISTORY_PLAN_FILENAME

_WHITESPACE = re.compile(r"\s+")
_INVALID_DIR_CHARS = re.compile(r'[<>"/\\|?*\x00-\x1f]')


def history_dir_name(timestamp: str) -> str:
    """Return a directory name for a timestamp that is valid on Windows too.

    Example:
        >>> history_dir_name("2026-10-19 12:34:56.789")
        '2026-10-19_12.34.56.789'
    """
    name = timestamp.strip().replace(":", ".")
    name = _WHITESPACE.sub("_", name)
    name = _INVALID_DIR_CHARS.sub("-", name)
    return name.rstrip(". ") or "snapshot"


@dataclass(frozen=True)
class HistoryArchiver:
    """Write one immutable snapshot per completed build cycle."""

    root: Path

    def _claim(self, base_name: str) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        sequence = 0
        while True:
            name = base_name if sequence == 0 else f"{base_name}-{sequence}"
            candidate = self.root / name
            try:
                candidate.mkdir()
            except FileExistsError:
                sequence += 1
                continue
            return candidate

    def archive(self, plan_document: dict | list | None, temp_dir: Path) -> Path:
        """Snapshot a plan and the retrieved remote temp payload.

        Args:
            plan_document: Plan document as retrieved from the remote.
            temp_dir: Local copy of the remote temp directory.

        Returns:
            Path of the new snapshot directory.
        """
        timestamp = None
        if isinstance(plan_document, dict):
            raw = plan_document.get("timestamp")
            timestamp = raw if isinstance(raw, str) and raw.strip() else None
        snapshot = self._claim(history_dir_name(timestamp or utc_now()))
        if temp_dir.is_dir():
            shutil.copytree(temp_dir, snapshot, dirs_exist_ok=True)
        write_json(snapshot / HISTORY_PLAN_FILENAME, plan_document or {})
        lbr_log.debug(f"build history archived path={snapshot}")
        return snapshot

    def entries(self) -> list[Path]:
        """Return existing snapshots, oldest first."""
        if not self.root.is_dir():
            return []
        return sorted(path for path in self.root.iterdir() if path.is_dir())
