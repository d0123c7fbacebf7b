"""Tests for the exiv2 metadata stamper."""

import logging
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from exif_stamp import TagAssignment, build_tag_assignments, stamp_metadata, write_command_file
from scan_config import StampError, ToolPaths


class TestBuildTagAssignments:
    def test_required_fields_in_order(self, make_config):
        tags = build_tag_assignments(10, make_config(photographer="Ann Example"))

        assert tags == [
            TagAssignment(
                "Exif.Image.Copyright", "Ascii", "Copyright 2026, Ann Example. All rights reserved"
            ),
            TagAssignment("Exif.Image.Artist", "Ascii", "Ann Example"),
            TagAssignment("Exif.Photo.DateTimeOriginal", "Ascii", "2024:01:01 00:00:00"),
            TagAssignment(
                "Exif.Image.DocumentName", "Ascii", "Processed date 2024-01-01, batch 2, slide 10"
            ),
        ]

    def test_optional_fields_when_set(self, make_config):
        tags = build_tag_assignments(
            3, make_config(description="Grand Canyon", comment="faded, rescanned")
        )

        assert [t.tag for t in tags][-2:] == ["Exif.Image.ImageDescription", "Exif.Photo.UserComment"]
        assert tags[-2].value == "Grand Canyon"
        assert tags[-1] == TagAssignment(
            "Exif.Photo.UserComment", "comment charset=Ascii", "faded, rescanned"
        )

    def test_only_comment(self, make_config):
        tags = build_tag_assignments(3, make_config(comment="c"))
        assert len(tags) == 5
        assert tags[-1].tag == "Exif.Photo.UserComment"

    def test_as_command(self):
        tag = TagAssignment("Exif.Image.Artist", "Ascii", "Ann Example")
        assert tag.as_command() == "set Exif.Image.Artist Ascii Ann Example"


class TestWriteCommandFile:
    def test_writes_one_line_per_tag(self, tmp_path):
        tags = [TagAssignment("A.B.C", "Ascii", "x"), TagAssignment("D.E.F", "Ascii", "y z")]
        path = write_command_file(tags, tmp_path)

        assert path.parent == tmp_path
        assert path.read_text().splitlines() == ["set A.B.C Ascii x", "set D.E.F Ascii y z"]

    def test_multiline_values_stay_on_one_line(self, tmp_path, make_config):
        config = make_config(description="Grand Canyon\nsouth rim", comment="faded\r\nrescanned")
        path = write_command_file(build_tag_assignments(3, config), tmp_path)

        lines = path.read_text().splitlines()
        assert len(lines) == 6
        assert all(line.startswith("set ") for line in lines)
        assert lines[-2] == "set Exif.Image.ImageDescription Ascii Grand Canyon south rim"
        assert lines[-1] == "set Exif.Photo.UserComment comment charset=Ascii faded rescanned"


class TestStampMetadata:
    @pytest.fixture
    def target(self, dest_dir):
        path = dest_dir / "Scn-TR20240101-02-10.dng"
        path.write_bytes(b"image")
        return path

    def test_invokes_exiv2_with_command_file(self, make_config, target):
        seen = {}

        def fake_run(cmd, **kwargs):
            seen["cmd"] = cmd
            seen["commands"] = Path(cmd[2]).read_text()
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        config = make_config(tools=ToolPaths(exiv2="/usr/bin/exiv2"))
        with patch("exif_stamp.subprocess.run", side_effect=fake_run):
            stamp_metadata(target, 10, config)

        assert seen["cmd"][0] == "/usr/bin/exiv2"
        assert seen["cmd"][1] == "-m"
        assert seen["cmd"][3] == str(target)
        assert "set Exif.Image.DocumentName Ascii Processed date 2024-01-01, batch 2, slide 10" in seen["commands"]
        # command file is gone afterwards
        assert not Path(seen["cmd"][2]).exists()
        assert list(target.parent.glob("*.cmds")) == []

    def test_nonzero_exit_raises(self, make_config, target):
        result = subprocess.CompletedProcess([], 1, stdout="", stderr="Exif data not found")
        with patch("exif_stamp.subprocess.run", return_value=result):
            with pytest.raises(StampError, match="status 1") as exc_info:
                stamp_metadata(target, 10, make_config())

        assert exc_info.value.stage == "stamp"
        assert list(target.parent.glob("*.cmds")) == []

    def test_missing_tool_raises(self, make_config, target):
        with patch("exif_stamp.subprocess.run", side_effect=FileNotFoundError("exiv2")):
            with pytest.raises(StampError, match="Failed to run exiv2"):
                stamp_metadata(target, 10, make_config())
        assert list(target.parent.glob("*.cmds")) == []

    def test_diagnostic_output_is_logged_not_fatal(self, make_config, target, caplog):
        result = subprocess.CompletedProcess([], 0, stdout="", stderr="Warning: odd tag")
        with patch("exif_stamp.subprocess.run", return_value=result):
            with caplog.at_level(logging.INFO, logger="exif_stamp"):
                stamp_metadata(target, 10, make_config())

        assert "Warning: odd tag" in caplog.text

    def test_real_process_leaves_untouched_bytes(self, make_config, target, fake_tool):
        # Stand-in exiv2 that only checks its arguments
        exiv2 = fake_tool("exiv2", '[ "$1" = "-m" ] && [ -f "$2" ] && [ -f "$3" ]')
        stamp_metadata(target, 10, make_config(tools=ToolPaths(exiv2=str(exiv2))))
        assert target.read_bytes() == b"image"

    def test_real_process_failure(self, make_config, target, fake_tool):
        exiv2 = fake_tool("exiv2", "echo 'exiv2: bad file' >&2; exit 253")
        with pytest.raises(StampError, match="253"):
            stamp_metadata(target, 10, make_config(tools=ToolPaths(exiv2=str(exiv2))))
