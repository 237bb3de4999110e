"""
Reference filesystem executor for placement plans.

The placers only compute where files go; this module copies them.  It
follows the same rules a production executor must honour:

- entries marked ``preserve_existing`` never overwrite a file that is
  already at the destination (user-edited config survives reinstalls);
- tracked entries overwrite an existing file only when that file was placed
  by an earlier install (listed in ``managed``); anything else already at
  the destination is foreign content and is left untouched.

Callers must not run two executors against the same target directory at
once.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from placement_plan import PlacementPlan

_log = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    written: list[str] = field(default_factory=list)
    preserved: list[str] = field(default_factory=list)
    foreign: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    tracked: list[str] = field(default_factory=list)


def _cleanup_empty_dirs(start: Path, stop_at: Path):
    current = start
    while current.exists() and current != stop_at and current != current.parent:
        if any(current.iterdir()):
            break
        current.rmdir()
        current = current.parent


def _backup(path: Path) -> Path:
    """Move an existing file aside so it can be restored on failure."""
    fd, name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".rollback")
    os.close(fd)
    backup = Path(name)
    os.replace(path, backup)
    return backup


def apply_plan(
    plan: PlacementPlan,
    package_root: str | Path,
    target_root: str | Path,
    managed: set[str] | frozenset[str] = frozenset(),
) -> ExecutionResult:
    """Copy every planned file from ``package_root`` into ``target_root``.

    ``managed`` holds destinations recorded as tracked by previous installs.
    On failure, files this call created are removed and managed files it
    overwrote are restored from their backups before the exception
    propagates.
    """
    package_root = Path(package_root)
    target_root = Path(target_root)
    result = ExecutionResult()
    created: list[Path] = []
    backups: list[tuple[Path, Path]] = []

    try:
        for entry in plan.entries:
            src = package_root / entry.source.replace("/", os.sep)
            dst = target_root / entry.destination.replace("/", os.sep)

            if not src.is_file():
                _log.warning("Planned source missing from package: %s", entry.source)
                result.missing.append(entry.source)
                continue

            if dst.exists():
                if entry.preserve_existing:
                    _log.debug("Keeping existing %s", entry.destination)
                    result.preserved.append(entry.destination)
                    continue
                if dst.is_dir() or entry.destination not in managed:
                    _log.warning(
                        "Not overwriting %s: it was not placed by a previous install",
                        entry.destination,
                    )
                    result.foreign.append(entry.destination)
                    continue
                backups.append((dst, _backup(dst)))
            else:
                dst.parent.mkdir(parents=True, exist_ok=True)
                created.append(dst)

            shutil.copy2(src, dst)
            result.written.append(entry.destination)
            if entry.tracked:
                result.tracked.append(entry.destination)
            _log.debug("Copied: %s -> %s", entry.source, entry.destination)
    except OSError:
        _log.error(
            "Applying plan failed, removing %d new file(s) and restoring %d",
            len(created), len(backups),
        )
        for path in reversed(created):
            if path.exists():
                path.unlink()
            _cleanup_empty_dirs(path.parent, stop_at=target_root)
        for path, backup in reversed(backups):
            os.replace(backup, path)
        raise

    for _, backup in backups:
        backup.unlink()

    _log.info(
        "Applied plan: %d written, %d preserved, %d foreign, %d missing",
        len(result.written), len(result.preserved),
        len(result.foreign), len(result.missing),
    )
    return result
