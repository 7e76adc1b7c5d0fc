"""
Shared pytest fixtures for SetupDiff tests.

Setup exports are synthesized in the sim's HTML layout and written to
``tmp_path`` so no test depends on real exports.
"""
from pathlib import Path
from typing import Optional

import pytest

from tests.exports import export_markup


@pytest.fixture
def write_export(tmp_path: Path):
    """Write an export under ``tmp_path`` and return its path."""
    def write(relative: str, content: Optional[str] = None, encoding: str = "utf-8", **kwargs) -> Path:
        path = tmp_path / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if content is None:
            content = export_markup(**kwargs)
        path.write_bytes(content.encode(encoding))
        return path

    return write


@pytest.fixture
def setups_root(write_export, tmp_path: Path) -> Path:
    """A small setups tree laid out as <vehicle>/<track>/<setup>.htm."""
    write_export("Car1/Track1/Setup_10.htm", setup="Setup_10")
    write_export("Car1/Track1/Setup_1.htm", setup="Setup_1")
    write_export("Car1/Track2/Quali.htm", setup="Quali")
    write_export("Car2/Track1/Race.htm", car="car2", setup="Race")
    (tmp_path / "Car1" / "Track1" / "readme.txt").write_text("not a setup")
    return tmp_path
