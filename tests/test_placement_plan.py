import pytest

from mod_loader import LoaderDescriptor, LoaderVariant, resolve
from placement_plan import PackageEntry, PackageListing, PlacementPlan, PlanEntry
from tests.conftest import listing, make_zip, write_package


def test_from_names_groups_files_under_top_level_entries():
    result = listing(
        "plugins/Cool.dll",
        "plugins/sub/Extra.dll",
        "config/cool.cfg",
        "manifest.json",
    )

    assert result.entries == (
        PackageEntry(name="config", is_dir=True, files=("cool.cfg",)),
        PackageEntry(name="manifest.json", is_dir=False),
        PackageEntry(name="plugins", is_dir=True, files=("Cool.dll", "sub/Extra.dll")),
    )


def test_from_names_normalizes_backslashes_and_directory_markers():
    result = listing("plugins\\", "plugins\\a.dll", "empty/", "Mod\\sub\\")

    by_name = {e.name: e for e in result.entries}
    assert by_name["plugins"].files == ("a.dll",)
    assert by_name["empty"].is_dir and by_name["empty"].files == ()
    assert by_name["Mod"].is_dir and by_name["Mod"].files == ()


def test_all_files_returns_package_relative_paths():
    result = listing("readme.txt", "plugins/a.dll", "plugins/b/c.dll")
    assert sorted(result.all_files()) == ["plugins/a.dll", "plugins/b/c.dll", "readme.txt"]


def test_from_directory(tmp_path):
    write_package(tmp_path, {"plugins/a.dll": b"a", "icon.png": b"png"})
    (tmp_path / "empty").mkdir()

    result = PackageListing.from_directory(tmp_path)

    by_name = {e.name: e for e in result.entries}
    assert by_name["plugins"].files == ("a.dll",)
    assert by_name["icon.png"].is_dir is False
    assert by_name["empty"].files == ()


def test_from_archive_lists_zip_members(tmp_path):
    archive = make_zip(tmp_path / "mod.zip", {"plugins/a.dll": b"a", "manifest.json": "{}"})

    result = PackageListing.from_archive(archive)

    assert sorted(result.all_files()) == ["manifest.json", "plugins/a.dll"]


def test_from_archive_rejects_unknown_extension(tmp_path):
    path = tmp_path / "mod.tar"
    path.write_bytes(b"")
    with pytest.raises(ValueError, match="Unsupported archive format"):
        PackageListing.from_archive(path)


def test_plan_helpers():
    plan = PlacementPlan()
    assert plan.is_empty

    plan.add(PlanEntry("plugins/a.dll", "BepInEx/plugins/a.dll"))
    plan.add(PlanEntry("config/a.cfg", "BepInEx/config/a.cfg", tracked=False, preserve_existing=True))
    plan.warn("stuff", "no matching rule")

    assert not plan.is_empty
    assert plan.destinations() == ["BepInEx/plugins/a.dll", "BepInEx/config/a.cfg"]
    assert plan.tracked_destinations() == ["BepInEx/plugins/a.dll"]
    assert plan.warnings[0].name == "stuff"


@pytest.mark.parametrize(
    "member",
    [
        "Mods/../../../evil.dll",
        "..\\evil.dll",
        "/etc/evil.dll",
        "C:\\Windows\\evil.dll",
        "Mods/sub/../../evil.dll",
    ],
)
def test_from_names_drops_members_outside_the_package(member):
    result = listing(member, "Mods/Cool.dll")

    assert result.all_files() == ["Mods/Cool.dll"]


def test_escaping_member_never_reaches_a_destination():
    placer = resolve(LoaderDescriptor(variant=LoaderVariant.MELON_LOADER), "Author-Mod")

    plan = placer.plan(listing("Mods/../../../evil.dll", "Mods/Cool.dll"))

    assert plan.destinations() == ["Mods/Cool.dll"]
    for dest in plan.destinations():
        assert ".." not in dest.split("/")


def test_from_names_collapses_dot_segments():
    result = listing("./plugins/./a.dll", "plugins//b.dll")

    assert result.all_files() == ["plugins/a.dll", "plugins/b.dll"]
