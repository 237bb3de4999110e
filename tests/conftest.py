"""
Shared fixtures and helpers for the placement test suite.
"""

import zipfile
from pathlib import Path

import pytest

from placement_plan import PackageListing


def write_package(root: Path, members: dict[str, bytes | str]) -> Path:
    """Write {relative_path: content} into root as an extracted package."""
    for member, data in members.items():
        path = root / member
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        else:
            path.write_bytes(data)
    return root


def make_zip(path: Path, members: dict[str, bytes | str]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


def listing(*names: str) -> PackageListing:
    return PackageListing.from_names(list(names))


@pytest.fixture
def dirs(tmp_path):
    """Return (package_dir, profile_dir) as fresh tmp_path subdirectories."""
    package = tmp_path / "package"
    profile = tmp_path / "profile"
    package.mkdir()
    profile.mkdir()
    return package, profile
