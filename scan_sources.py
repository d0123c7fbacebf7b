#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Input collection for slide scan imports.

Finds the scanned files in the source directory and expands the slide
number arguments ("7", "3-5") into the ordered list of slide identifiers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Final

from scan_config import ConfigError

__all__: Final[list[str]] = [
    "verify_directory",
    "scan_directory",
    "parse_slide_token",
    "expand_slide_tokens",
]

logger = logging.getLogger(__name__)


def verify_directory(path: Path) -> Path:
    """Check that path exists and is a directory, raising ConfigError otherwise."""
    if not path.exists():
        raise ConfigError(f"{path}: no such file or directory.")
    if not path.is_dir():
        raise ConfigError(f"{path}: is not a directory.")
    return path


def scan_directory(directory: Path, suffix: str) -> list[Path]:
    """
    List regular files in directory whose name ends with .<suffix>.

    Matching is case-insensitive ("dng" matches "IMG_01.DNG"). The result is
    sorted so that repeated scans of an unchanged directory agree.
    """
    verify_directory(directory)
    wanted = "." + suffix.lstrip(".").lower()

    files = [
        entry
        for entry in directory.iterdir()
        if entry.is_file() and not entry.is_symlink() and entry.name.lower().endswith(wanted)
    ]
    return sorted(files)


def parse_slide_token(token: str) -> list[int]:
    """
    Expand one slide argument.

    "7" -> [7], "3-5" -> [3, 4, 5], "5-3" -> [] (empty range).
    Raises ValueError for anything that is not a number or a range.
    """
    parts = token.split("-")
    if len(parts) == 1:
        return [int(parts[0])]
    if len(parts) == 2:
        start, end = int(parts[0]), int(parts[1])
        return list(range(start, end + 1))
    raise ValueError(f"{token} is not a number or range")


def expand_slide_tokens(tokens: Iterable[str]) -> list[int]:
    """
    Expand slide arguments in the order given.

    Tokens that do not parse are logged and skipped; the resulting count
    mismatch is caught later by the dispatcher.
    """
    slides: list[int] = []
    for token in tokens:
        try:
            slides.extend(parse_slide_token(token))
        except ValueError as e:
            logger.warning("Skipping slide argument %r: %s", token, e)
    return slides
