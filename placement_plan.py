"""
Package listings and placement plans.

A ``PackageListing`` is the in-memory view of an extracted mod package: its
top-level entries, each either a single file or a directory with the files
nested beneath it.  Placers read a listing and produce a ``PlacementPlan``,
the ordered mapping of package-relative source paths to profile-relative
destinations that a filesystem executor later applies.

Listings can be built from a flat list of archive member names (the same
shape ``zipfile.ZipFile.namelist()`` returns), from an already extracted
directory, or by listing a .zip/.7z/.rar archive without extracting it.
"""

from __future__ import annotations

import logging
import posixpath
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

import py7zr
import rarfile

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}

_log = logging.getLogger(__name__)


def normalize_member(name: str) -> str:
    """Convert an archive member name to a clean relative posix path."""
    parts = name.replace("\\", "/").split("/")
    return "/".join(p for p in parts if p not in ("", "."))


def is_unsafe_member(name: str) -> bool:
    """Whether a member name is absolute or climbs out of the package root."""
    posix = name.replace("\\", "/")
    if posix.startswith("/") or re.match(r"^[A-Za-z]:", posix):
        return True
    return ".." in posix.split("/")


@dataclass(frozen=True)
class PackageEntry:
    """A file or directory located directly at the root of a package.

    ``files`` holds the posix paths of every file under a directory entry,
    relative to that directory.  A top-level file has no nested files.
    """

    name: str
    is_dir: bool
    files: tuple[str, ...] = ()

    def source_path(self, relpath: str = "") -> str:
        """Package-relative path of ``relpath`` inside this entry."""
        return posixpath.join(self.name, relpath) if relpath else self.name


@dataclass(frozen=True)
class PackageListing:
    entries: tuple[PackageEntry, ...] = ()

    @classmethod
    def from_names(cls, names: list[str]) -> PackageListing:
        """Group a flat list of member paths into top-level entries.

        Directory markers (names ending in ``/``) only establish that a
        directory exists; an empty directory becomes an entry with no files.
        """
        dirs: dict[str, set[str]] = {}
        top_files: set[str] = set()

        for raw in names:
            if is_unsafe_member(raw):
                _log.warning("Skipping unsafe package member: %s", raw)
                continue
            is_marker = raw.replace("\\", "/").endswith("/")
            name = normalize_member(raw)
            if not name:
                continue
            head, sep, rest = name.partition("/")
            if sep or is_marker:
                files = dirs.setdefault(head, set())
                if rest and not is_marker:
                    files.add(rest)
            else:
                top_files.add(name)

        entries = [
            PackageEntry(name=name, is_dir=True, files=tuple(sorted(files)))
            for name, files in dirs.items()
        ]
        entries.extend(
            PackageEntry(name=name, is_dir=False)
            for name in top_files
            if name not in dirs
        )
        return cls(entries=tuple(sorted(entries, key=lambda e: e.name)))

    @classmethod
    def from_directory(cls, root: str | Path) -> PackageListing:
        """Build a listing from a package that was already extracted to disk."""
        root = Path(root)
        names = []
        for path in sorted(root.rglob("*")):
            rel = path.relative_to(root).as_posix()
            names.append(rel + "/" if path.is_dir() else rel)
        return cls.from_names(names)

    @classmethod
    def from_archive(cls, filepath: str | Path) -> PackageListing:
        """List an archive's members without extracting anything."""
        filepath = Path(filepath)
        ext = filepath.suffix.lower()
        if ext == ".zip":
            with zipfile.ZipFile(filepath, "r") as zf:
                names = zf.namelist()
        elif ext == ".7z":
            with py7zr.SevenZipFile(filepath, "r") as sz:
                names = [
                    info.filename + "/" if info.is_directory else info.filename
                    for info in sz.list()
                ]
        elif ext == ".rar":
            with rarfile.RarFile(filepath, "r") as rf:
                names = [
                    info.filename + "/" if info.is_dir() else info.filename
                    for info in rf.infolist()
                ]
        else:
            raise ValueError(f"Unsupported archive format: {ext}")
        _log.debug("Listed %d member(s) in %s", len(names), filepath.name)
        return cls.from_names(names)

    def directories(self) -> list[PackageEntry]:
        return [e for e in self.entries if e.is_dir]

    def all_files(self) -> list[str]:
        """Every file in the package as a package-relative posix path."""
        paths = []
        for entry in self.entries:
            if entry.is_dir:
                paths.extend(entry.source_path(f) for f in entry.files)
            else:
                paths.append(entry.name)
        return paths


@dataclass(frozen=True)
class PlanEntry:
    """One file to place.

    ``tracked`` files belong to the manager and may be replaced or removed on
    update/uninstall.  ``preserve_existing`` marks user-editable files: an
    executor must leave an existing file at ``destination`` untouched.
    """

    source: str
    destination: str
    tracked: bool = True
    preserve_existing: bool = False


@dataclass(frozen=True)
class UnroutableEntry:
    name: str
    reason: str


@dataclass
class PlacementPlan:
    entries: list[PlanEntry] = field(default_factory=list)
    warnings: list[UnroutableEntry] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def add(self, entry: PlanEntry):
        self.entries.append(entry)

    def warn(self, name: str, reason: str):
        self.warnings.append(UnroutableEntry(name=name, reason=reason))

    def destinations(self) -> list[str]:
        return [e.destination for e in self.entries]

    def tracked_destinations(self) -> list[str]:
        return [e.destination for e in self.entries if e.tracked]
