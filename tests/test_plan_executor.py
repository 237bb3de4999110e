"""
Tests for applying placement plans to a profile directory.
"""

import shutil
from unittest.mock import patch

import pytest

from mod_loader import LoaderDescriptor, LoaderVariant, resolve
from placement_plan import PackageListing, PlacementPlan, PlanEntry
from plan_executor import apply_plan
from tests.conftest import write_package


def bepinex_mod(package_dir, config_text="default=1\n", dll=b"v1"):
    write_package(
        package_dir,
        {
            "manifest.json": "{}",
            "plugins/Cool.dll": dll,
            "config/Author.Cool.cfg": config_text,
        },
    )
    placer = resolve(LoaderDescriptor(variant=LoaderVariant.BEPINEX), "Author-Cool")
    return placer.plan(PackageListing.from_directory(package_dir))


def test_apply_copies_planned_files(dirs):
    package_dir, profile_dir = dirs
    plan = bepinex_mod(package_dir)

    result = apply_plan(plan, package_dir, profile_dir)

    assert (profile_dir / "BepInEx/plugins/Author-Cool/plugins/Cool.dll").read_bytes() == b"v1"
    assert (profile_dir / "BepInEx/config/Author.Cool.cfg").exists()
    assert not (profile_dir / "manifest.json").exists()
    assert result.tracked == ["BepInEx/plugins/Author-Cool/plugins/Cool.dll"]


def test_reinstall_keeps_user_edited_config(dirs):
    package_dir, profile_dir = dirs
    first = apply_plan(bepinex_mod(package_dir), package_dir, profile_dir)

    cfg = profile_dir / "BepInEx/config/Author.Cool.cfg"
    cfg.write_bytes(b"edited=1\r\n")

    plan = bepinex_mod(package_dir, config_text="default=2\n", dll=b"v2")
    second = apply_plan(plan, package_dir, profile_dir, managed=set(first.tracked))

    assert cfg.read_bytes() == b"edited=1\r\n"
    assert second.preserved == ["BepInEx/config/Author.Cool.cfg"]
    dll = profile_dir / "BepInEx/plugins/Author-Cool/plugins/Cool.dll"
    assert dll.read_bytes() == b"v2"


def test_foreign_files_are_not_overwritten(dirs):
    package_dir, profile_dir = dirs
    dll = profile_dir / "BepInEx/plugins/Author-Cool/plugins/Cool.dll"
    dll.parent.mkdir(parents=True)
    dll.write_bytes(b"hand placed")

    result = apply_plan(bepinex_mod(package_dir), package_dir, profile_dir)

    assert dll.read_bytes() == b"hand placed"
    assert result.foreign == ["BepInEx/plugins/Author-Cool/plugins/Cool.dll"]


def test_missing_sources_are_reported(dirs):
    package_dir, profile_dir = dirs
    plan = PlacementPlan(entries=[PlanEntry("plugins/Gone.dll", "BepInEx/plugins/Gone.dll")])

    result = apply_plan(plan, package_dir, profile_dir)

    assert result.missing == ["plugins/Gone.dll"]
    assert result.written == []


def test_empty_plan_writes_nothing(dirs):
    package_dir, profile_dir = dirs

    result = apply_plan(PlacementPlan(), package_dir, profile_dir)

    assert result.written == []
    assert list(profile_dir.iterdir()) == []


def test_failed_reinstall_restores_previous_files(dirs):
    package_dir, profile_dir = dirs
    placer = resolve(LoaderDescriptor(variant=LoaderVariant.BEPINEX), "Author-Cool")
    write_package(package_dir, {"core/Cool.dll": b"v1", "plugins/Later.dll": b"v1"})
    first = apply_plan(
        placer.plan(PackageListing.from_directory(package_dir)), package_dir, profile_dir
    )

    write_package(
        package_dir,
        {"core/Cool.dll": b"v2", "patchers/New.dll": b"v2", "plugins/Later.dll": b"v2"},
    )
    plan = placer.plan(PackageListing.from_directory(package_dir))
    real_copy = shutil.copy2
    calls = []

    def copy_then_fail(src, dst):
        calls.append(dst)
        if len(calls) == 3:
            raise OSError("disk full")
        return real_copy(src, dst)

    with patch("plan_executor.shutil.copy2", side_effect=copy_then_fail):
        with pytest.raises(OSError, match="disk full"):
            apply_plan(plan, package_dir, profile_dir, managed=set(first.tracked))

    core = profile_dir / "BepInEx/core/Author-Cool/core/Cool.dll"
    later = profile_dir / "BepInEx/plugins/Author-Cool/plugins/Later.dll"
    assert core.read_bytes() == b"v1"
    assert later.read_bytes() == b"v1"
    assert not (profile_dir / "BepInEx/patchers").exists()
    assert not list(profile_dir.rglob("*.rollback"))


def test_successful_overwrite_leaves_no_backups(dirs):
    package_dir, profile_dir = dirs
    first = apply_plan(bepinex_mod(package_dir), package_dir, profile_dir)

    apply_plan(bepinex_mod(package_dir, dll=b"v2"), package_dir, profile_dir, managed=set(first.tracked))

    assert not list(profile_dir.rglob("*.rollback"))


def test_managed_destination_that_is_a_directory_is_left_alone(dirs):
    package_dir, profile_dir = dirs
    plan = bepinex_mod(package_dir)
    dest = "BepInEx/plugins/Author-Cool/plugins/Cool.dll"
    (profile_dir / dest).mkdir(parents=True)

    result = apply_plan(plan, package_dir, profile_dir, managed={dest})

    assert (profile_dir / dest).is_dir()
    assert list((profile_dir / dest).iterdir()) == []
    assert result.foreign == [dest]
