"""Pytest configuration and shared fixtures."""

import stat
import sys
from datetime import date
from pathlib import Path

import pytest

from scan_config import FilmType, RunConfig, ToolPaths


def pytest_collection_modifyitems(config, items):
    # Fake tools are POSIX shell scripts
    if sys.platform.startswith("win"):
        skip = pytest.mark.skip(reason="fake external tools need /bin/sh")
        for item in items:
            if "fake_tool" in getattr(item, "fixturenames", ()):
                item.add_marker(skip)


@pytest.fixture
def fake_tool(tmp_path):
    """Write an executable shell script standing in for an external tool."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def source_dir(tmp_path):
    """Source directory holding three small fake scans."""
    src = tmp_path / "scans"
    src.mkdir()
    for name in ("a.dng", "b.dng", "c.dng"):
        (src / name).write_bytes(b"RAW:" + name.encode() + bytes(range(64)))
    return src


@pytest.fixture
def dest_dir(tmp_path):
    dst = tmp_path / "archive"
    dst.mkdir()
    return dst


@pytest.fixture
def make_config(source_dir, dest_dir):
    """Factory for RunConfig with the batch used throughout the tests."""

    def _make(**overrides) -> RunConfig:
        values = dict(
            source_dir=source_dir,
            dest_dir=dest_dir,
            processing_date=date(2024, 1, 1),
            film_type=FilmType.TR,
            batch=2,
            workers=3,
            current_year=2026,
            tools=ToolPaths(),
        )
        values.update(overrides)
        return RunConfig(**values)

    return _make
