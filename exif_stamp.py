#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Stamp archival EXIF fields into scanned slide images with exiv2.

The tags are written as exiv2 "set" commands to a temporary command file,
which is applied to the image in place with a single `exiv2 -m` call.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from scan_config import RunConfig, StampError

__all__: Final[list[str]] = [
    "TagAssignment",
    "build_tag_assignments",
    "write_command_file",
    "stamp_metadata",
]

logger = logging.getLogger(__name__)

COPYRIGHT_TAG: Final[str] = "Exif.Image.Copyright"
ARTIST_TAG: Final[str] = "Exif.Image.Artist"
DATE_ORIGINAL_TAG: Final[str] = "Exif.Photo.DateTimeOriginal"
DOCUMENT_NAME_TAG: Final[str] = "Exif.Image.DocumentName"
DESCRIPTION_TAG: Final[str] = "Exif.Image.ImageDescription"
USER_COMMENT_TAG: Final[str] = "Exif.Photo.UserComment"

ASCII: Final[str] = "Ascii"
# exiv2 needs the charset prefix for the Comment type
COMMENT_ASCII: Final[str] = "comment charset=Ascii"


@dataclass(frozen=True, slots=True)
class TagAssignment:
    """One exiv2 tag assignment: key, value type and formatted value."""

    tag: str
    tag_type: str
    value: str

    def as_command(self) -> str:
        """Render as an exiv2 command file line; line breaks in the value become spaces."""
        value = " ".join(self.value.splitlines())
        return f"set {self.tag} {self.tag_type} {value}"


def build_tag_assignments(slide: int, config: RunConfig) -> list[TagAssignment]:
    """
    Build the ordered tag list for one slide.

    Copyright, artist, original date and document name are always present;
    description and user comment only when non-empty.
    """
    d = config.processing_date
    tags = [
        TagAssignment(
            COPYRIGHT_TAG,
            ASCII,
            f"Copyright {config.current_year:4d}, {config.photographer}. All rights reserved",
        ),
        TagAssignment(ARTIST_TAG, ASCII, config.photographer),
        TagAssignment(
            DATE_ORIGINAL_TAG,
            ASCII,
            f"{d.year:4d}:{d.month:02d}:{d.day:02d} 00:00:00",
        ),
        TagAssignment(
            DOCUMENT_NAME_TAG,
            ASCII,
            f"Processed date {d.year}-{d.month:02d}-{d.day:02d}, "
            f"batch {config.batch}, slide {slide}",
        ),
    ]
    if config.description:
        tags.append(TagAssignment(DESCRIPTION_TAG, ASCII, config.description))
    if config.comment:
        tags.append(TagAssignment(USER_COMMENT_TAG, COMMENT_ASCII, config.comment))
    return tags


def write_command_file(tags: list[TagAssignment], directory: Path) -> Path:
    """Write tags to a new exiv2 command file in directory and return its path."""
    fd, name = tempfile.mkstemp(suffix=".cmds", dir=directory)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        for tag in tags:
            f.write(tag.as_command() + "\n")
    return Path(name)


def stamp_metadata(target: Path, slide: int, config: RunConfig) -> None:
    """
    Apply the archival tags for slide to target in place.

    Raises StampError if exiv2 cannot be started or exits non-zero. Output on
    stdout or stderr is logged but does not fail the stamp.
    """
    tags = build_tag_assignments(slide, config)

    try:
        cmd_file = write_command_file(tags, target.parent)
    except OSError as e:
        raise StampError(f"Cannot write exiv2 command file: {e}", path=target) from e

    try:
        cmd = [config.tools.exiv2, "-m", str(cmd_file), str(target)]
        logger.debug("Running: %s", cmd)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise StampError(f"Failed to run exiv2: {e}", path=target) from e

        output = (result.stdout or "") + (result.stderr or "")
        if output.strip():
            logger.info("output from exiv2 for %s: %s", target.name, output.strip())

        if result.returncode != 0:
            raise StampError(
                f"exiv2 exited with status {result.returncode} for {target}",
                path=target,
            )
    finally:
        cmd_file.unlink(missing_ok=True)
