"""Tests for directory scanning and slide argument expansion."""

import logging

import pytest

from scan_config import ConfigError
from scan_sources import expand_slide_tokens, parse_slide_token, scan_directory, verify_directory


class TestSlideTokens:
    def test_single_number(self):
        assert parse_slide_token("7") == [7]

    def test_range(self):
        assert parse_slide_token("3-5") == [3, 4, 5]

    def test_reversed_range_is_empty(self):
        assert parse_slide_token("5-3") == []

    def test_single_element_range(self):
        assert parse_slide_token("4-4") == [4]

    @pytest.mark.parametrize("token", ["x", "1-2-3", "3-", "-3", "a-b", ""])
    def test_malformed(self, token):
        with pytest.raises(ValueError):
            parse_slide_token(token)

    def test_expand_preserves_written_order(self):
        assert expand_slide_tokens(["10-11", "15"]) == [10, 11, 15]
        assert expand_slide_tokens(["15", "10-11"]) == [15, 10, 11]

    def test_expand_skips_and_logs_bad_tokens(self, caplog):
        with caplog.at_level(logging.WARNING, logger="scan_sources"):
            slides = expand_slide_tokens(["1", "two", "3-4", "5-6-7"])
        assert slides == [1, 3, 4]
        assert "two" in caplog.text
        assert "5-6-7" in caplog.text

    def test_expand_reversed_range_contributes_nothing(self):
        assert expand_slide_tokens(["5-3", "8"]) == [8]


class TestScanDirectory:
    def test_sorted_and_suffix_filtered(self, tmp_path):
        for name in ("c.dng", "a.DNG", "b.dng", "notes.txt", "d.dng.bak"):
            (tmp_path / name).write_bytes(b"x")
        (tmp_path / "sub.dng").mkdir()

        files = scan_directory(tmp_path, "dng")

        assert [f.name for f in files] == ["a.DNG", "b.dng", "c.dng"]

    def test_suffix_case_insensitive_and_dot_tolerant(self, tmp_path):
        (tmp_path / "x.TIF").write_bytes(b"x")
        assert [f.name for f in scan_directory(tmp_path, ".Tif")] == ["x.TIF"]

    def test_idempotent(self, source_dir):
        assert scan_directory(source_dir, "dng") == scan_directory(source_dir, "dng")

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigError):
            scan_directory(tmp_path / "nope", "dng")


class TestVerifyDirectory:
    def test_directory_ok(self, tmp_path):
        assert verify_directory(tmp_path) == tmp_path

    def test_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="no such"):
            verify_directory(tmp_path / "missing")

    def test_not_a_directory(self, tmp_path):
        f = tmp_path / "file"
        f.write_text("x")
        with pytest.raises(ConfigError, match="is not a directory"):
            verify_directory(f)
