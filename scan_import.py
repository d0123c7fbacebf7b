#!/usr/bin/env -S uv run --quiet --script
# /// script
# requires-python = ">=3.13"
# dependencies = [
#     "pyexiftool>=0.5.6",
#     "rich>=13.0.0",
# ]
# ///
#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Import a batch of scanned slides into the archive.

Copies every scan in the source directory to an archival name
(Scn-<film><date>-<batch>-<slide>.<suffix>), stamps copyright, artist,
original date and batch/slide information into it with exiv2, and
optionally writes a JPEG preview (dcraw | convert) carrying the same
metadata. Scans are paired in sorted order with the slide numbers given on
the command line.

Prerequisites:
    - exiv2
    - dcraw, ImageMagick convert and exiftool when --preview is used

Usage:
    scan_import.py -i scans/ -o archive/ -D "Jan-2024" -T TR -b 2 10-11 15
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import Final

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from scan_config import (
    DEFAULT_PHOTOGRAPHER,
    DEFAULT_SUFFIX,
    ConfigError,
    FilmType,
    RunConfig,
    default_date_text,
)
from scan_pipeline import BatchSummary, Job, build_jobs, run_batch
from scan_sources import expand_slide_tokens, scan_directory, verify_directory

__all__: Final[list[str]] = [
    "parse_args",
    "configure_logging",
    "check_tools",
    "print_summary",
    "run",
    "main",
]

__version__: Final[str] = "1.0.0"

# Console for rich output
console = Console()

logger = logging.getLogger("scan_import")


# =============================================================================
# CLI
# =============================================================================


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Copy and tag a batch of scanned slides into the archive.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Slides are given as numbers or inclusive ranges and are paired, in order,
with the sorted list of matching files in the source directory.

Output names:
  Scn-<film><YYYYMMDD>-<batch>-<slide>.<suffix>   stamped copy
  Scn-<film><YYYYMMDD>-<batch>-<slide>.jpg        preview (--preview)

Examples:
  %(prog)s -i scans -o archive 1-36            Slides 1..36, this month
  %(prog)s -D "Jan-2024" -T TR -b 2 10-11 15   Three slides from batch 2
  %(prog)s -D "Mar 5, 1987" -T CN -P 1-24      Negatives with previews
        """,
    )
    parser.add_argument(
        "-i",
        "--src-dir",
        type=Path,
        default=Path("."),
        help="Source directory (default: current directory)",
    )
    parser.add_argument(
        "-o",
        "--dst-dir",
        type=Path,
        default=Path("."),
        help="Destination directory, must exist (default: current directory)",
    )
    parser.add_argument(
        "-D",
        "--date",
        default=default_date_text(),
        help="Original processing date as 'Mon-YYYY' or 'Mon D, YYYY' (default: this month)",
    )
    parser.add_argument(
        "-T",
        "--film-type",
        type=str.upper,
        choices=[f.value for f in FilmType],
        default=FilmType.TR.value,
        help="Film type: TR = slide, CN = color neg, BW = B/W neg (default: TR)",
    )
    parser.add_argument(
        "-b",
        "--batch",
        type=int,
        default=1,
        help="Processing box or batch number (default: 1)",
    )
    parser.add_argument(
        "-S",
        "--suffix",
        default=DEFAULT_SUFFIX,
        help=f"File name suffix to match, case-insensitive (default: {DEFAULT_SUFFIX})",
    )
    parser.add_argument(
        "-M",
        "--max-procs",
        type=int,
        default=None,
        metavar="N",
        help="Number of concurrent jobs (default: CPU count)",
    )
    parser.add_argument(
        "-d",
        "--description",
        default="",
        help="Image description",
    )
    parser.add_argument(
        "-c",
        "--comment",
        default="",
        help="User comments",
    )
    parser.add_argument(
        "-p",
        "--photographer",
        default=DEFAULT_PHOTOGRAPHER,
        help=f"Name of original photographer/artist (default: {DEFAULT_PHOTOGRAPHER})",
    )
    parser.add_argument(
        "-P",
        "--preview",
        action="store_true",
        help="Also write a JPEG preview of each scan",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "slides",
        nargs="*",
        metavar="SLIDE",
        help="Slide number or inclusive range such as 10-15",
    )

    return parser.parse_args(argv)


def configure_logging(verbose: bool = False) -> None:
    """Route log records through the shared rich console."""
    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.INFO)


def check_tools(config: RunConfig) -> None:
    """Raise ConfigError if a required external tool is not on PATH."""
    missing = [
        f"{role} ({exe})"
        for role, exe in config.tools.required(config.generate_preview).items()
        if shutil.which(exe) is None
    ]
    if missing:
        raise ConfigError(f"Required tools not found in PATH: {', '.join(missing)}")


def print_summary(summary: BatchSummary) -> None:
    """Print per-worker results and the batch totals."""
    if not summary.ok:
        table = Table(title="Worker Results")
        table.add_column("Worker", style="cyan")
        table.add_column("Dequeued", justify="right")
        table.add_column("Completed", justify="right")
        table.add_column("Error")

        for report in summary.reports:
            error = "-"
            if report.failure is not None:
                error = f"[red]{report.failure.stage}:[/red] {escape(report.failure.message)}"
            table.add_row(report.name, str(report.dequeued), str(report.completed), error)

        console.print(table)

    console.print()
    if summary.ok:
        console.print(f"[green]Complete:[/green] {summary.succeeded} file(s) imported")
    else:
        console.print(
            f"[yellow]Complete:[/yellow] {summary.succeeded} succeeded, "
            f"[red]{summary.failed} failed[/red], "
            f"[red]{summary.not_attempted} not attempted[/red]"
        )


def run(config: RunConfig, tokens: list[str]) -> BatchSummary:
    """Validate inputs, then import the batch."""
    verify_directory(config.dest_dir)
    check_tools(config)

    slides = expand_slide_tokens(tokens)
    files = scan_directory(config.source_dir, config.suffix)
    # Fail on a count mismatch before any thread or file exists
    build_jobs(files, slides, config)

    console.print(
        f"Processing {len(slides)} files from {config.source_dir} "
        f"to {config.dest_dir} with {config.workers} workers"
    )

    if not config.show_progress:
        return run_batch(files, slides, config)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Importing scans...", total=len(files))

        def advance(job: Job) -> None:
            progress.advance(task)

        return run_batch(files, slides, config, progress=advance)


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = RunConfig.create(
            source_dir=args.src_dir,
            dest_dir=args.dst_dir,
            date_text=args.date,
            film_type=args.film_type,
            batch=args.batch,
            file_suffix=args.suffix,
            workers=args.max_procs,
            description=args.description,
            comment=args.comment,
            photographer=args.photographer,
            generate_preview=args.preview,
            show_progress=args.progress,
        )
        summary = run(config, args.slides)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/]")
        sys.exit(130)

    print_summary(summary)
    console.print("Done...")

    sys.exit(0 if summary.ok else 1)


if __name__ == "__main__":
    main()
