"""
Runtime loader registry for the placement core.

The game registry ships one ``modLoader`` object per game.  It names the
loader variant and may add data the compiled-in catalog cannot know about:

{
    "games": [
        {
            "slug": "lethal-company",
            "modLoader": {
                "name": "BepInEx",
                "subdirs": [
                    {"name": "sounds", "target": "BepInEx/sounds", "layout": "nested"}
                ]
            }
        },
        {
            "slug": "risk-of-rain-returns",
            "modLoader": {
                "name": "ReturnOfModding",
                "packageName": "ReturnOfModding-ReturnOfModding",
                "files": ["version.dll", "ReturnOfModding"]
            }
        }
    ]
}

Everything is validated up front; any problem surfaces as a
``ConfigurationError`` before a single plan is computed.
"""

from __future__ import annotations

import json
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from mod_loader import ConfigurationError, LoaderDescriptor, LoaderVariant
from subdir_placer import Layout, SubdirRule, Tracking

_log = logging.getLogger(__name__)


class SubdirEntry(BaseModel):
    """One extra subdirectory rule declared by the registry."""

    name: str
    target: str
    layout: Layout = Layout.FLAT
    tracked: bool = True
    mutable: bool = False
    extension: str | None = None

    @field_validator("target")
    @classmethod
    def _normalize_target(cls, v: str) -> str:
        v = v.replace("\\", "/").strip("/")
        if not v or v.startswith("..") or "/../" in f"/{v}/":
            raise ValueError(f"Invalid subdir target {v!r}")
        return v

    @field_validator("extension")
    @classmethod
    def _check_extension(cls, v: str | None) -> str | None:
        if v is not None and not v:
            raise ValueError("extension filter must not be empty")
        return v

    def to_rule(self) -> SubdirRule:
        return SubdirRule(
            match_name=self.name,
            destination=self.target,
            layout=self.layout,
            tracking=Tracking.TRACKED if self.tracked else Tracking.UNTRACKED,
            mutable=self.mutable,
            extension_filter=self.extension,
        )


class ModLoaderEntry(BaseModel):
    """Parsed contents of a game's ``modLoader`` registry object."""

    model_config = ConfigDict(populate_by_name=True)

    name: LoaderVariant
    package_name: str | None = Field(default=None, alias="packageName")
    subdirs: list[SubdirEntry] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)

    @field_validator("files")
    @classmethod
    def _normalize_files(cls, v: list[str]) -> list[str]:
        return [f.replace("\\", "/").strip("/") for f in v]

    @model_validator(mode="after")
    def _no_duplicate_subdirs(self) -> ModLoaderEntry:
        seen = set()
        for subdir in self.subdirs:
            key = subdir.name.lower()
            if key in seen:
                raise ValueError(f"Duplicate subdir name: {subdir.name!r}")
            seen.add(key)
        return self

    def to_descriptor(self) -> LoaderDescriptor:
        return LoaderDescriptor(
            variant=self.name,
            self_package_id=self.package_name,
            extra_subdirs=tuple(s.to_rule() for s in self.subdirs),
            fixed_files=tuple(self.files),
        )


class GameEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    slug: str
    mod_loader: ModLoaderEntry = Field(alias="modLoader")


class Registry(BaseModel):
    games: list[GameEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _no_duplicate_slugs(self) -> Registry:
        slugs = [g.slug for g in self.games]
        if len(slugs) != len(set(slugs)):
            raise ValueError("Duplicate game slug in registry")
        return self


def parse_mod_loader(data: dict) -> LoaderDescriptor:
    """Build a descriptor from one ``modLoader`` object.

    Raises ``ConfigurationError`` for any schema or consistency problem.
    """
    try:
        entry = ModLoaderEntry.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid mod loader entry: {exc}") from exc
    return entry.to_descriptor()


def load_registry(data: bytes | str) -> dict[str, LoaderDescriptor]:
    """Parse registry JSON into descriptors keyed by game slug."""
    try:
        registry = Registry.model_validate(json.loads(data))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Registry is not valid JSON: {exc}") from exc
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid registry: {exc}") from exc

    descriptors: dict[str, LoaderDescriptor] = {}
    for game in registry.games:
        try:
            descriptors[game.slug] = game.mod_loader.to_descriptor()
        except ConfigurationError as exc:
            raise ConfigurationError(f"{game.slug}: {exc}") from exc

    _log.info("Loaded mod loader descriptors for %d game(s)", len(descriptors))
    return descriptors
