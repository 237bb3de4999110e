"""
Self-install placement for a mod loader's own package.

Loader packages ship the runtime files that belong at the game root (proxy
DLLs, launcher executables, the loader's core directory).  Only paths on a
fixed allow-list are placed; everything else in the package is left alone.
Some loaders wrap their payload in one top-level folder, which ``flatten``
strips before the allow-list is consulted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from placement_plan import PackageListing, PlacementPlan, PlanEntry, normalize_member

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionPlacer:
    allow_list: tuple[str, ...]
    flatten: bool = False

    def _payload_root(self, listing: PackageListing) -> str:
        """Package-relative prefix under which allow-list paths are resolved."""
        if not self.flatten:
            return ""
        dirs = listing.directories()
        if len(dirs) != 1:
            _log.warning(
                "Expected exactly one wrapping directory, found %d; "
                "matching against the package root",
                len(dirs),
            )
            return ""
        return dirs[0].name + "/"

    def plan(self, listing: PackageListing) -> PlacementPlan:
        plan = PlacementPlan()
        prefix = self._payload_root(listing)
        files = [path for path in listing.all_files() if path.startswith(prefix)]
        placed: set[str] = set()

        for allowed in self.allow_list:
            allowed = normalize_member(allowed)
            source = prefix + allowed
            matched = [
                path for path in files
                if path == source or path.startswith(source + "/")
            ]
            if not matched:
                _log.debug("Allow-listed path not in package: %s", allowed)
                continue
            for path in matched:
                if path in placed:
                    continue
                placed.add(path)
                relpath = path[len(prefix):]
                plan.add(PlanEntry(source=path, destination=relpath, tracked=True))

        _log.info("Planned %d loader file(s) for the game root", len(plan.entries))
        return plan
