"""
Rule-based placement for ordinary content mods.

Every top-level entry of a package is matched against an ordered list of
``SubdirRule``s by name.  The first matching rule decides where the entry's
files go, whether the manager tracks them, and whether existing copies must
be preserved.  Entries no rule matches fall through to the default rule when
one is configured and are reported as unroutable otherwise.

Example (BepInEx-style rules, mod id ``Author-CoolMod``):

    plugins/CoolMod.dll    ->  BepInEx/plugins/Author-CoolMod/plugins/CoolMod.dll
    config/cool.cfg        ->  BepInEx/config/cool.cfg      (untracked, kept on update)
    CoolMod.dll            ->  BepInEx/plugins/Author-CoolMod/CoolMod.dll  (default rule)
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field, replace
from enum import Enum

from placement_plan import PackageEntry, PackageListing, PlacementPlan, PlanEntry

_log = logging.getLogger(__name__)


class Layout(Enum):
    FLAT = "flat"  # drop the matched folder, files go straight into the destination
    NESTED = "nested"  # keep the folder, under a per-mod directory


class Tracking(Enum):
    TRACKED = "tracked"
    UNTRACKED = "untracked"


@dataclass(frozen=True)
class SubdirRule:
    """A declarative placement rule for one top-level package folder."""

    match_name: str
    destination: str
    layout: Layout = Layout.FLAT
    tracking: Tracking = Tracking.TRACKED
    mutable: bool = False
    extension_filter: str | None = None

    @classmethod
    def tracked(cls, match_name: str, destination: str) -> SubdirRule:
        return cls(match_name, destination, Layout.FLAT, Tracking.TRACKED)

    @classmethod
    def nested(cls, match_name: str, destination: str) -> SubdirRule:
        return cls(match_name, destination, Layout.NESTED, Tracking.TRACKED)

    @classmethod
    def untracked(cls, match_name: str, destination: str) -> SubdirRule:
        return cls(match_name, destination, Layout.FLAT, Tracking.UNTRACKED)

    def as_mutable(self) -> SubdirRule:
        return replace(self, mutable=True)

    def with_extension(self, suffix: str) -> SubdirRule:
        return replace(self, extension_filter=suffix)

    def matches(self, name: str) -> bool:
        return self.match_name.lower() == name.lower()

    def accepts(self, filename: str) -> bool:
        if self.extension_filter is None:
            return True
        basename = posixpath.basename(filename)
        return basename.lower().endswith(self.extension_filter.lower())

    @property
    def preserves_existing(self) -> bool:
        return self.tracking is Tracking.UNTRACKED and self.mutable


@dataclass(frozen=True)
class SubdirPlacer:
    """Places a content mod's files according to an ordered rule list.

    ``rules`` is owned by the placer; built-in rules come first so they take
    priority over runtime overrides.  ``mod_id`` keys the per-mod directory
    used by nested rules.
    """

    rules: tuple[SubdirRule, ...]
    mod_id: str
    default_index: int | None = None
    ignored_files: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if self.default_index is not None and not 0 <= self.default_index < len(self.rules):
            raise IndexError(
                f"Default rule index {self.default_index} out of range "
                f"for {len(self.rules)} rule(s)"
            )

    @property
    def default_rule(self) -> SubdirRule | None:
        if self.default_index is None:
            return None
        return self.rules[self.default_index]

    def _is_ignored(self, name: str) -> bool:
        lowered = name.lower()
        return any(lowered == ignored.lower() for ignored in self.ignored_files)

    def match(self, name: str) -> SubdirRule | None:
        """Return the first rule matching ``name``, else the default rule."""
        for rule in self.rules:
            if rule.matches(name):
                return rule
        return self.default_rule

    def _destination(self, rule: SubdirRule, entry: PackageEntry, relpath: str) -> str:
        inner = relpath if entry.is_dir else entry.name
        if rule.layout is Layout.FLAT:
            return posixpath.join(rule.destination, inner)
        return posixpath.join(rule.destination, self.mod_id, entry.source_path(relpath))

    def _entry_files(self, entry: PackageEntry) -> list[str]:
        # Paths relative to the entry; "" stands for a top-level file itself
        if entry.is_dir:
            return list(entry.files)
        return [""]

    def plan(self, listing: PackageListing) -> PlacementPlan:
        plan = PlacementPlan()
        planned: dict[str, str] = {}  # lowercased destination -> source

        for entry in listing.entries:
            if self._is_ignored(entry.name):
                _log.debug("Ignoring package metadata: %s", entry.name)
                continue

            rule = self.match(entry.name)
            if rule is None:
                _log.warning(
                    "No rule matches top-level entry '%s' in %s, skipping",
                    entry.name, self.mod_id,
                )
                plan.warn(entry.name, "no matching rule and no default")
                continue

            for relpath in self._entry_files(entry):
                filename = relpath or entry.name
                if not rule.accepts(filename):
                    _log.debug(
                        "Skipping %s: does not end with %s",
                        entry.source_path(relpath), rule.extension_filter,
                    )
                    continue
                source = entry.source_path(relpath)
                destination = self._destination(rule, entry, relpath)
                previous = planned.get(destination.lower())
                if previous is not None:
                    _log.warning(
                        "%s and %s both map to %s, keeping the first",
                        previous, source, destination,
                    )
                    plan.warn(source, f"destination {destination} already planned from {previous}")
                    continue
                planned[destination.lower()] = source
                plan.add(
                    PlanEntry(
                        source=source,
                        destination=destination,
                        tracked=rule.tracking is Tracking.TRACKED,
                        preserve_existing=rule.preserves_existing,
                    )
                )

        _log.info(
            "Planned %d file(s) for %s (%d unroutable)",
            len(plan.entries), self.mod_id, len(plan.warnings),
        )
        return plan
