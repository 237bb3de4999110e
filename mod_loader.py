"""
Mod loader catalog and installer selection.

Each supported mod loader is a ``LoaderVariant``.  A ``LoaderDescriptor``
pairs a variant with the runtime data a game's registry entry carries for it
(an explicit self-package id, extra subdirectory rules, or the self-install
file list for loaders that declare it at runtime).

``resolve(descriptor, package_id)`` picks the placer for one install:

    loader's own package   ->  ExtractionPlacer (fixed allow-list, game root)
    anything else          ->  SubdirPlacer (built-in rules + extra_subdirs)

Every dispatch over ``LoaderVariant`` ends in ``assert_never`` so a type
checker reports any site that misses a newly added variant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, assert_never, runtime_checkable

from extraction_placer import ExtractionPlacer
from placement_plan import PackageListing, PlacementPlan
from subdir_placer import SubdirPlacer, SubdirRule

_log = logging.getLogger(__name__)


@runtime_checkable
class Placer(Protocol):
    """Computes a placement plan from a package listing.

    Implemented by ``SubdirPlacer`` and ``ExtractionPlacer``; ``resolve`` picks
    one per install.
    """

    def plan(self, listing: PackageListing) -> PlacementPlan: ...


PROFILE_ROOT = "."

# Skipped for every variant. Broader than the Thunderstore installers, which
# only ignore metadata for MelonLoader and Northstar and omit CHANGELOG.md.
THUNDERSTORE_METADATA = frozenset({"manifest.json", "icon.png", "README.md", "CHANGELOG.md"})


class ConfigurationError(ValueError):
    """Loader descriptor data is malformed or ambiguous."""


class LoaderVariant(Enum):
    BEPINEX = "BepInEx"
    BEPIS_LOADER = "BepisLoader"
    MELON_LOADER = "MelonLoader"
    NORTHSTAR = "Northstar"
    GDWEAVE = "GDWeave"
    SHIMLOADER = "Shimloader"
    LOVELY = "Lovely"
    RETURN_OF_MODDING = "ReturnOfModding"

    @property
    def supports_extra_subdirs(self) -> bool:
        return self in (
            LoaderVariant.BEPINEX,
            LoaderVariant.BEPIS_LOADER,
            LoaderVariant.MELON_LOADER,
        )

    @property
    def declares_fixed_files(self) -> bool:
        return self is LoaderVariant.RETURN_OF_MODDING


@dataclass(frozen=True)
class RuleSet:
    """Built-in rules for a variant's ordinary mods."""

    rules: tuple[SubdirRule, ...]
    default_index: int | None = None
    ignored_files: frozenset[str] = THUNDERSTORE_METADATA


_BEPINEX_RULES = (
    SubdirRule.nested("plugins", "BepInEx/plugins"),
    SubdirRule.nested("patchers", "BepInEx/patchers"),
    SubdirRule.nested("monomod", "BepInEx/monomod").with_extension(".mm.dll"),
    SubdirRule.nested("core", "BepInEx/core"),
    SubdirRule.untracked("config", "BepInEx/config").as_mutable(),
)

_BEPINEX_FILES = (
    "BepInEx",
    "winhttp.dll",
    "doorstop_config.ini",
    ".doorstop_version",
    "libdoorstop.so",
    "libdoorstop.dylib",
    "run_bepinex.sh",
    "changelog.txt",
)


def builtin_rules(variant: LoaderVariant) -> RuleSet:
    match variant:
        case LoaderVariant.BEPINEX:
            return RuleSet(_BEPINEX_RULES, default_index=0)
        case LoaderVariant.BEPIS_LOADER:
            # Renderer content only goes to the renderer's plugin folder,
            # everything else defaults to the regular plugins folder
            return RuleSet(
                (SubdirRule.nested("Renderer", "Renderer/BepInEx/plugins"),) + _BEPINEX_RULES,
                default_index=1,
            )
        case LoaderVariant.MELON_LOADER:
            return RuleSet(
                (
                    SubdirRule.tracked("UserLibs", "UserLibs").with_extension(".lib.dll"),
                    SubdirRule.tracked("Managed", "MelonLoader/Managed").with_extension(".managed.dll"),
                    SubdirRule.tracked("Mods", "Mods").with_extension(".dll"),
                    SubdirRule.nested("ModManager", "UserData/ModManager"),
                    SubdirRule.tracked("MelonLoader", "MelonLoader"),
                    SubdirRule.tracked("Libs", "MelonLoader/Libs"),
                ),
                default_index=2,
            )
        case LoaderVariant.NORTHSTAR:
            return RuleSet(
                (SubdirRule.tracked("mods", "R2Northstar/mods"),),
                ignored_files=THUNDERSTORE_METADATA | {"LICENSE"},
            )
        case LoaderVariant.GDWEAVE:
            return RuleSet((SubdirRule.nested("", "GDWeave/mods"),), default_index=0)
        case LoaderVariant.SHIMLOADER:
            return RuleSet(
                (
                    SubdirRule.nested("mod", "shimloader/mod"),
                    SubdirRule.nested("pak", "shimloader/pak"),
                    SubdirRule.untracked("cfg", "shimloader/cfg").as_mutable(),
                ),
                default_index=0,
            )
        case LoaderVariant.LOVELY:
            return RuleSet((SubdirRule.nested("", "mods"),), default_index=0)
        case LoaderVariant.RETURN_OF_MODDING:
            return RuleSet(
                (
                    SubdirRule.nested("plugins", "ReturnOfModding/plugins"),
                    SubdirRule.nested("plugins_data", "ReturnOfModding/plugins_data"),
                    SubdirRule.nested("config", "ReturnOfModding/config").as_mutable(),
                ),
                default_index=0,
            )
        case _:
            assert_never(variant)


def builtin_files(variant: LoaderVariant) -> tuple[tuple[str, ...], bool] | None:
    """Compiled-in self-install allow-list and flatten flag.

    ``None`` for the variant whose list only exists in runtime registry data.
    """
    match variant:
        case LoaderVariant.BEPINEX:
            return _BEPINEX_FILES, True
        case LoaderVariant.BEPIS_LOADER:
            return _BEPINEX_FILES + ("Renderer",), True
        case LoaderVariant.MELON_LOADER:
            return (
                "dobby.dll",
                "version.dll",
                "MelonLoader/Dependencies",
                "MelonLoader/Documentation",
                "MelonLoader/net6",
                "MelonLoader/net35",
            ), False
        case LoaderVariant.NORTHSTAR:
            return (
                "Northstar.dll",
                "NorthstarLauncher.exe",
                "r2ds.bat",
                "bin",
                "R2Northstar/plugins",
                "R2Northstar/mods/Northstar.Client",
                "R2Northstar/mods/Northstar.Custom",
                "R2Northstar/mods/Northstar.CustomServers",
                "R2Northstar/mods/md5sum.text",
            ), True
        case LoaderVariant.GDWEAVE:
            return ("winmm.dll", "GDWeave/core"), False
        case LoaderVariant.SHIMLOADER:
            return ("dwmapi.dll", "shimloader"), False
        case LoaderVariant.LOVELY:
            return ("version.dll",), False
        case LoaderVariant.RETURN_OF_MODDING:
            return None
        case _:
            assert_never(variant)


@dataclass(frozen=True)
class LoaderDescriptor:
    variant: LoaderVariant
    self_package_id: str | None = None
    extra_subdirs: tuple[SubdirRule, ...] = ()
    fixed_files: tuple[str, ...] = ()

    def __post_init__(self):
        name = self.variant.value

        if self.extra_subdirs and not self.variant.supports_extra_subdirs:
            raise ConfigurationError(f"{name} does not accept extra subdirs")

        seen = {rule.match_name.lower() for rule in builtin_rules(self.variant).rules}
        for rule in self.extra_subdirs:
            key = rule.match_name.lower()
            if key in seen:
                raise ConfigurationError(
                    f"Extra subdir {rule.match_name!r} duplicates an existing {name} rule"
                )
            seen.add(key)

        if self.variant.declares_fixed_files:
            if not self.fixed_files:
                raise ConfigurationError(f"{name} requires a non-empty files list")
        elif self.fixed_files:
            raise ConfigurationError(f"{name} does not accept a files list")


def is_self_package(descriptor: LoaderDescriptor, package_id: str) -> bool:
    """Whether ``package_id`` is the loader's own package."""
    if descriptor.self_package_id is not None:
        return package_id == descriptor.self_package_id

    variant = descriptor.variant
    match variant:
        case LoaderVariant.BEPINEX:
            return package_id.startswith("BepInEx-BepInExPack")
        case LoaderVariant.BEPIS_LOADER:
            return package_id in (
                "ResoniteModding-BepisLoader",
                "ResoniteModding-BepInExRenderer",
            )
        case LoaderVariant.MELON_LOADER:
            return package_id == "LavaGang-MelonLoader"
        case LoaderVariant.NORTHSTAR:
            return package_id == "northstar-Northstar"
        case LoaderVariant.GDWEAVE:
            return package_id == "NotNet-GDWeave"
        case LoaderVariant.SHIMLOADER:
            return package_id == "Thunderstore-unreal_shimloader"
        case LoaderVariant.LOVELY:
            return package_id == "Thunderstore-lovely"
        case LoaderVariant.RETURN_OF_MODDING:
            return package_id == "ReturnOfModding-ReturnOfModding"
        case _:
            assert_never(variant)


def resolve(descriptor: LoaderDescriptor, package_id: str) -> Placer:
    """Return the placer that governs installing ``package_id``."""
    if is_self_package(descriptor, package_id):
        compiled = builtin_files(descriptor.variant)
        if compiled is None:
            allow_list, flatten = descriptor.fixed_files, True
        else:
            allow_list, flatten = compiled
        _log.debug(
            "%s is the %s package, extracting to the game root",
            package_id, descriptor.variant.value,
        )
        return ExtractionPlacer(allow_list=tuple(allow_list), flatten=flatten)

    ruleset = builtin_rules(descriptor.variant)
    return SubdirPlacer(
        rules=ruleset.rules + descriptor.extra_subdirs,
        mod_id=package_id,
        default_index=ruleset.default_index,
        ignored_files=ruleset.ignored_files,
    )


# ── Auxiliary queries ─────────────────────────────────────────────────


def log_path(variant: LoaderVariant) -> str | None:
    """Relative path of the loader's runtime log, if it has a fixed one."""
    match variant:
        case LoaderVariant.BEPINEX | LoaderVariant.BEPIS_LOADER:
            return "BepInEx/LogOutput.log"
        case LoaderVariant.MELON_LOADER:
            return "MelonLoader/Latest.log"
        case LoaderVariant.GDWEAVE:
            return "GDWeave/GDWeave.log"
        case LoaderVariant.LOVELY:
            return "mods/lovely/log"
        case (
            LoaderVariant.NORTHSTAR
            | LoaderVariant.SHIMLOADER
            | LoaderVariant.RETURN_OF_MODDING
        ):
            return None
        case _:
            assert_never(variant)


def config_dir(variant: LoaderVariant) -> str:
    """Directory holding mod configuration, relative to the profile root."""
    match variant:
        case LoaderVariant.BEPINEX | LoaderVariant.BEPIS_LOADER:
            return "BepInEx/config"
        case LoaderVariant.GDWEAVE:
            return "GDWeave/configs"
        case LoaderVariant.RETURN_OF_MODDING:
            return "ReturnOfModding/config"
        case (
            LoaderVariant.MELON_LOADER
            | LoaderVariant.NORTHSTAR
            | LoaderVariant.SHIMLOADER
            | LoaderVariant.LOVELY
        ):
            return PROFILE_ROOT
        case _:
            assert_never(variant)


def proxy_library(descriptor: LoaderDescriptor) -> str | None:
    """Name of the proxy library the loader uses to hook into the game."""
    variant = descriptor.variant
    match variant:
        case LoaderVariant.BEPINEX:
            return "winhttp"
        case LoaderVariant.GDWEAVE:
            return "winmm"
        case LoaderVariant.RETURN_OF_MODDING:
            # By convention the first declared file is the proxy
            return descriptor.fixed_files[0]
        case (
            LoaderVariant.BEPIS_LOADER
            | LoaderVariant.MELON_LOADER
            | LoaderVariant.NORTHSTAR
            | LoaderVariant.SHIMLOADER
            | LoaderVariant.LOVELY
        ):
            return None
        case _:
            assert_never(variant)
