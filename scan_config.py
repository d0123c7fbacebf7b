#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Run-wide configuration and error types for slide scan imports.

A single immutable RunConfig is built once from the command line and passed
explicitly to the stamper, the preview generator and the dispatcher.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from pathlib import Path
from typing import Final, Self

__all__: Final[list[str]] = [
    "ScanImportError",
    "ConfigError",
    "JobError",
    "CopyError",
    "StampError",
    "PreviewError",
    "FilmType",
    "ToolPaths",
    "RunConfig",
    "parse_processing_date",
    "default_date_text",
    "DEFAULT_PHOTOGRAPHER",
    "DEFAULT_SUFFIX",
    "PREVIEW_SUFFIX",
]

DEFAULT_PHOTOGRAPHER: Final[str] = "James Lieb"
DEFAULT_SUFFIX: Final[str] = "dng"
PREVIEW_SUFFIX: Final[str] = "jpg"

# Accepted --date layouts: "Jan-2024" and "Jan 5, 2024"
_MONTH_YEAR_FORMAT: Final[str] = "%b-%Y"
_FULL_DATE_FORMAT: Final[str] = "%b %d, %Y"


# =============================================================================
# Exceptions
# =============================================================================


class ScanImportError(Exception):
    """Base exception for slide scan import errors."""


class ConfigError(ScanImportError):
    """Invalid configuration detected before any worker starts."""


class JobError(ScanImportError):
    """A pipeline stage failed for a single job."""

    stage: str = "job"

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class CopyError(JobError):
    """Copying the source file to its destination failed."""

    stage = "copy"


class StampError(JobError):
    """The metadata writing utility failed."""

    stage = "stamp"


class PreviewError(JobError):
    """Preview decoding, conversion or metadata transfer failed."""

    stage = "preview"


# =============================================================================
# Configuration
# =============================================================================


class FilmType(StrEnum):
    """Film stock of a scanned batch."""

    TR = "TR"  # slide (transparency)
    CN = "CN"  # color negative
    BW = "BW"  # black and white negative


def _get_env_int(var_name: str, /) -> int | None:
    """Get a positive int from environment variable, or None if invalid."""
    value = os.environ.get(var_name, "").strip()
    if not value:
        return None
    try:
        result = int(value)
        return result if result > 0 else None
    except ValueError:
        return None


def _get_env_str(var_name: str, default: str, /) -> str:
    value = os.environ.get(var_name, "").strip()
    return value or default


def default_date_text(today: date | None = None) -> str:
    """Current month in the "Jan-2024" form used as the --date default."""
    return (today or date.today()).strftime(_MONTH_YEAR_FORMAT)


def parse_processing_date(text: str) -> date:
    """
    Parse the original processing date of a batch.

    Accepts "Jan-2024" (day defaults to 1) or "Jan 5, 2024".
    Raises ConfigError for anything else.
    """
    value = text.strip()
    for fmt in (_MONTH_YEAR_FORMAT, _FULL_DATE_FORMAT):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ConfigError(f"Unrecognized date: {text}")


@dataclass(frozen=True, slots=True, kw_only=True)
class ToolPaths:
    """Executables for the external tools used by the pipeline."""

    exiv2: str = "exiv2"
    dcraw: str = "dcraw"
    convert: str = "convert"
    exiftool: str = "exiftool"

    @classmethod
    def create(cls) -> Self:
        """Create tool paths with environment variable overrides."""
        return cls(
            exiv2=_get_env_str("SCAN_EXIV2", "exiv2"),
            dcraw=_get_env_str("SCAN_DCRAW", "dcraw"),
            convert=_get_env_str("SCAN_CONVERT", "convert"),
            exiftool=_get_env_str("SCAN_EXIFTOOL", "exiftool"),
        )

    def required(self, generate_preview: bool) -> dict[str, str]:
        """Tools that must be available for a run, keyed by role."""
        tools = {"exiv2": self.exiv2}
        if generate_preview:
            tools |= {
                "dcraw": self.dcraw,
                "convert": self.convert,
                "exiftool": self.exiftool,
            }
        return tools


@dataclass(frozen=True, slots=True, kw_only=True)
class RunConfig:
    """Resolved, validated configuration for one import run."""

    source_dir: Path
    dest_dir: Path
    processing_date: date
    film_type: FilmType = FilmType.TR
    batch: int = 1
    file_suffix: str = DEFAULT_SUFFIX
    workers: int = 1
    description: str = ""
    comment: str = ""
    photographer: str = DEFAULT_PHOTOGRAPHER
    generate_preview: bool = False
    show_progress: bool = False
    current_year: int = field(default_factory=lambda: date.today().year)
    tools: ToolPaths = field(default_factory=ToolPaths)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1, got {self.workers}")
        if self.batch < 0:
            raise ConfigError(f"batch must be >= 0, got {self.batch}")
        if not self.file_suffix.strip(". "):
            raise ConfigError("file suffix must not be empty")
        if not self.photographer.strip():
            raise ConfigError("photographer must not be empty")

    @property
    def suffix(self) -> str:
        """File suffix without a leading dot, as given."""
        return self.file_suffix.lstrip(".")

    @property
    def destination_prefix(self) -> str:
        """Shared name prefix of every destination file in this batch."""
        d = self.processing_date
        return f"Scn-{self.film_type}{d.year}{d.month:02d}{d.day:02d}-{self.batch:02d}-"

    def destination_stem(self, slide: int) -> Path:
        """Destination path without suffix for a slide identifier."""
        return self.dest_dir / f"{self.destination_prefix}{slide:02d}"

    @classmethod
    def create(
        cls,
        *,
        source_dir: Path,
        dest_dir: Path,
        date_text: str | None = None,
        film_type: str | FilmType = FilmType.TR,
        batch: int = 1,
        file_suffix: str = DEFAULT_SUFFIX,
        workers: int | None = None,
        description: str = "",
        comment: str = "",
        photographer: str | None = None,
        generate_preview: bool = False,
        show_progress: bool = False,
    ) -> Self:
        """Create config from arguments with environment variable fallbacks."""
        try:
            film = FilmType(str(film_type).upper())
        except ValueError as e:
            choices = ", ".join(f.value for f in FilmType)
            raise ConfigError(f"Unknown film type {film_type!r} (expected {choices})") from e

        return cls(
            source_dir=source_dir,
            dest_dir=dest_dir,
            processing_date=parse_processing_date(date_text or default_date_text()),
            film_type=film,
            batch=batch,
            file_suffix=file_suffix,
            workers=(
                workers
                if workers is not None
                else _get_env_int("SCAN_JOBS") or os.cpu_count() or 1
            ),
            description=description,
            comment=comment,
            photographer=photographer or DEFAULT_PHOTOGRAPHER,
            generate_preview=generate_preview,
            show_progress=show_progress,
            tools=ToolPaths.create(),
        )
