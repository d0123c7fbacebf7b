#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Preview generation for stamped raw scans.

dcraw decodes the raw file to stdout, which is wired straight into
ImageMagick's convert to write a JPEG preview. The original's metadata is
then carried over to the preview through an EXV sidecar with exiftool.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Final

import exiftool
from exiftool.exceptions import ExifToolException

from scan_config import PREVIEW_SUFFIX, PreviewError, ToolPaths

__all__: Final[list[str]] = [
    "preview_path_for",
    "sidecar_path_for",
    "decode_to_preview",
    "extract_sidecar",
    "inject_sidecar",
    "generate_preview",
]

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX: Final[str] = ".exv"


def preview_path_for(image: Path) -> Path:
    """Preview file that sits next to image."""
    return image.with_suffix("." + PREVIEW_SUFFIX)


def sidecar_path_for(image: Path) -> Path:
    """Metadata sidecar that sits next to image."""
    return image.with_suffix(SIDECAR_SUFFIX)


def _stderr_text(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace").strip()


def decode_to_preview(image: Path, preview: Path, tools: ToolPaths) -> None:
    """
    Run `dcraw -c image | convert - preview`.

    convert is started first so that nothing dcraw writes is lost; dcraw's
    stdout is its stdin. convert's stderr goes to a temporary file, so a
    chatty convert can never stall the pipe while dcraw is still writing.
    Both processes are always reaped. Raises PreviewError if either cannot
    be started or exits non-zero.
    """
    convert_cmd = [tools.convert, "-", str(preview)]
    decode_cmd = [tools.dcraw, "-c", str(image)]
    logger.debug("Running: %s | %s", decode_cmd, convert_cmd)

    with tempfile.TemporaryFile() as convert_log:
        try:
            with subprocess.Popen(
                convert_cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=convert_log,
            ) as convert:
                assert convert.stdin is not None
                try:
                    with subprocess.Popen(
                        decode_cmd,
                        stdout=convert.stdin,
                        stderr=subprocess.PIPE,
                    ) as decode:
                        # dcraw holds the only write end now; convert sees EOF when it exits
                        convert.stdin.close()
                        _, decode_err = decode.communicate()
                except OSError as e:
                    convert.stdin.close()
                    convert.wait()
                    raise PreviewError(f"Failed to run dcraw: {e}", path=image) from e

                convert.wait()
        except OSError as e:
            raise PreviewError(f"Failed to run convert: {e}", path=preview) from e

        if decode.returncode != 0:
            raise PreviewError(
                f"dcraw failed on {image.name} (status {decode.returncode}): "
                f"{_stderr_text(decode_err) or 'no output'}",
                path=image,
            )
        if convert.returncode != 0:
            convert_log.seek(0)
            raise PreviewError(
                f"convert failed for {preview.name} (status {convert.returncode}): "
                f"{_stderr_text(convert_log.read()) or 'no output'}",
                path=preview,
            )


def extract_sidecar(image: Path, sidecar: Path, et: exiftool.ExifToolHelper) -> None:
    """Copy all metadata of image into a new EXV sidecar file."""
    _run_exiftool(et, ["-tagsFromFile", str(image), "-all:all", str(sidecar)], image)


def inject_sidecar(sidecar: Path, target: Path, et: exiftool.ExifToolHelper) -> None:
    """Copy all metadata from sidecar into target in place."""
    _run_exiftool(
        et,
        ["-tagsFromFile", str(sidecar), "-all:all", "-overwrite_original", str(target)],
        target,
    )


def _run_exiftool(et: exiftool.ExifToolHelper, params: list[str], path: Path) -> None:
    try:
        et.execute(*params)
    except ExifToolException as e:
        raise PreviewError(f"exiftool failed for {path.name}: {e}", path=path) from e
    if et.last_stderr:
        logger.info("output from exiftool for %s: %s", path.name, et.last_stderr.strip())


def _transfer_metadata(image: Path, sidecar: Path, preview: Path, tools: ToolPaths) -> None:
    # One exiftool session serves both the extract and the inject step
    try:
        with exiftool.ExifToolHelper(executable=tools.exiftool) as et:
            extract_sidecar(image, sidecar, et)
            inject_sidecar(sidecar, preview, et)
    except (ExifToolException, OSError) as e:
        raise PreviewError(f"exiftool failed for {image.name}: {e}", path=image) from e


def generate_preview(image: Path, tools: ToolPaths) -> Path:
    """
    Create a JPEG preview next to a stamped raw image.

    Steps, in order: decode and convert, extract the image's metadata to a
    sidecar, inject the sidecar into the preview. On any failure the partial
    preview is removed and PreviewError is raised; the image itself is never
    touched. The sidecar is always removed.
    """
    preview = preview_path_for(image)
    sidecar = sidecar_path_for(image)

    try:
        decode_to_preview(image, preview, tools)
        try:
            _transfer_metadata(image, sidecar, preview, tools)
        finally:
            sidecar.unlink(missing_ok=True)
    except PreviewError:
        preview.unlink(missing_ok=True)
        raise

    return preview
