#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Concurrent import pipeline for scanned slides.

A fixed pool of worker threads drains a bounded job queue. Each job copies
one scan to its archival name, stamps the EXIF fields and optionally builds
a preview. A worker that hits an error stops taking jobs; its peers carry
on. Every worker reports back once, with its counts and first error, and
the dispatcher turns those reports into a BatchSummary.
"""

from __future__ import annotations

import contextlib
import logging
import queue
import shutil
import threading
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from exif_stamp import stamp_metadata
from scan_config import ConfigError, CopyError, JobError, RunConfig, ScanImportError
from scan_preview import generate_preview

__all__: Final[list[str]] = [
    "Job",
    "JobFailure",
    "WorkerReport",
    "BatchSummary",
    "ProgressCallback",
    "build_jobs",
    "copy_source",
    "process_job",
    "WorkerPool",
    "run_batch",
]

logger = logging.getLogger(__name__)

type ProgressCallback = Callable[[Job], None]

# How often a blocked producer re-checks that some worker is still alive
_PUT_POLL_SECONDS: Final[float] = 0.1


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Job:
    """One scan to import: source file, destination stem and slide number."""

    source_path: Path
    destination_stem: Path
    slide_id: int

    def destination_path(self, suffix: str) -> Path:
        """Destination file for the given suffix (without leading dot)."""
        return self.destination_stem.with_name(f"{self.destination_stem.name}.{suffix}")


@dataclass(frozen=True, slots=True)
class JobFailure:
    """The error that stopped a worker."""

    job: Job | None
    stage: str
    message: str


@dataclass(frozen=True, slots=True)
class WorkerReport:
    """Completion message sent by each worker when it stops."""

    name: str
    dequeued: int
    completed: int
    failure: JobFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(slots=True)
class BatchSummary:
    """Outcome of a whole batch, assembled from the worker reports."""

    total: int
    reports: list[WorkerReport] = field(default_factory=list)

    @property
    def dequeued(self) -> int:
        return sum(r.dequeued for r in self.reports)

    @property
    def succeeded(self) -> int:
        return sum(r.completed for r in self.reports)

    @property
    def failures(self) -> list[JobFailure]:
        return [r.failure for r in self.reports if r.failure is not None]

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def not_attempted(self) -> int:
        """Jobs that no worker ever picked up."""
        return self.total - self.dequeued

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.not_attempted == 0


# =============================================================================
# Dispatcher Helpers
# =============================================================================


def build_jobs(files: Sequence[Path], slides: Sequence[int], config: RunConfig) -> list[Job]:
    """
    Pair file i with slide i.

    Raises ConfigError when the counts differ or a slide number repeats,
    since two jobs would then share one destination. No job is created in
    either case.
    """
    if len(files) != len(slides):
        raise ConfigError(
            f"{len(files)} files found but {len(slides)} slide numbers specified"
        )
    duplicates = sorted(slide for slide, count in Counter(slides).items() if count > 1)
    if duplicates:
        raise ConfigError(
            "duplicate slide numbers: " + ", ".join(str(s) for s in duplicates)
        )
    return [
        Job(source_path=src, destination_stem=config.destination_stem(slide), slide_id=slide)
        for src, slide in zip(files, slides, strict=True)
    ]


# =============================================================================
# Pipeline Stage
# =============================================================================


def copy_source(src: Path, dest: Path) -> None:
    """Copy src to dest byte for byte, removing any partial dest on failure."""
    try:
        shutil.copyfile(src, dest)
    except OSError as e:
        with contextlib.suppress(OSError):
            dest.unlink(missing_ok=True)
        raise CopyError(f"Failed to copy file {src}: {e}", path=src) from e


def process_job(
    job: Job,
    config: RunConfig,
    progress: ProgressCallback | None = None,
) -> Path:
    """
    Copy, stamp and optionally preview one scan.

    A stamp failure removes the copied file. A preview failure keeps the
    stamped file and only drops the preview. Progress is reported once per
    job as soon as the copy has succeeded, whatever happens afterwards.
    """
    dest = job.destination_path(config.suffix)
    copy_source(job.source_path, dest)

    try:
        try:
            stamp_metadata(dest, job.slide_id, config)
        except JobError:
            dest.unlink(missing_ok=True)
            raise

        if config.generate_preview:
            generate_preview(dest, config.tools)
    finally:
        if progress is not None:
            progress(job)

    return dest


# =============================================================================
# Worker Pool
# =============================================================================


class WorkerPool:
    """
    Fixed set of worker threads consuming one bounded job queue.

    Workers are started before anything is enqueued. The producer closes the
    queue with close(); workers drain it and stop. join() blocks until one
    WorkerReport per worker has arrived.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        progress: ProgressCallback | None = None,
        process: Callable[[Job, RunConfig, ProgressCallback | None], object] = process_job,
    ) -> None:
        self.config = config
        self.size = config.workers
        self._progress = progress
        self._process = process
        self._jobs: queue.Queue[Job] = queue.Queue(maxsize=self.size)
        self._done: queue.Queue[WorkerReport] = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._running = 0
        self._lock = threading.Lock()

    def start(self) -> None:
        for idx in range(self.size):
            thread = threading.Thread(
                target=self._worker,
                name=f"scan-worker-{idx + 1}",
                daemon=True,
            )
            with self._lock:
                self._running += 1
            self._threads.append(thread)
            thread.start()

    @property
    def running(self) -> int:
        """Workers that have not yet sent their completion report."""
        with self._lock:
            return self._running

    def submit(self, job: Job) -> bool:
        """
        Enqueue job, blocking while the queue is full.

        Returns False without enqueueing if every worker has already stopped,
        since nothing would ever take the job.
        """
        while True:
            if self.running == 0:
                return False
            try:
                self._jobs.put(job, timeout=_PUT_POLL_SECONDS)
                return True
            except queue.Full:
                continue

    def close(self) -> None:
        """Signal end of work; queued jobs are still handed out."""
        self._jobs.shutdown()

    def join(self) -> list[WorkerReport]:
        """Wait for exactly one report per worker."""
        reports = [self._done.get() for _ in self._threads]
        for thread in self._threads:
            thread.join()
        return reports

    def _worker(self) -> None:
        name = threading.current_thread().name
        dequeued = 0
        completed = 0
        failure: JobFailure | None = None
        job: Job | None = None

        try:
            while True:
                try:
                    job = self._jobs.get()
                except queue.ShutDown:
                    break
                dequeued += 1

                try:
                    self._process(job, self.config, self._progress)
                except ScanImportError as e:
                    stage = e.stage if isinstance(e, JobError) else "job"
                    logger.error(
                        "%s: %s failed for %s: %s", name, stage, job.source_path.name, e
                    )
                    failure = JobFailure(job=job, stage=stage, message=str(e))
                    break

                completed += 1
                logger.debug("%s: %s -> %s", name, job.source_path.name, job.destination_stem.name)
        except Exception as e:
            # Unexpected errors still have to reach the dispatcher as a report
            logger.exception("%s: unexpected error", name)
            if failure is None:
                failure = JobFailure(job=job, stage="internal", message=repr(e))
        finally:
            with self._lock:
                self._running -= 1
            self._done.put(
                WorkerReport(name=name, dequeued=dequeued, completed=completed, failure=failure)
            )


def run_batch(
    files: Sequence[Path],
    slides: Sequence[int],
    config: RunConfig,
    *,
    progress: ProgressCallback | None = None,
) -> BatchSummary:
    """
    Import files as slides using config.workers threads.

    Validates the pairing before starting any worker, then starts the pool,
    enqueues every job in order, closes the queue and waits for all workers.
    """
    jobs = build_jobs(files, slides, config)

    pool = WorkerPool(config, progress=progress)
    pool.start()

    for job in jobs:
        if not pool.submit(job):
            logger.error(
                "All workers have stopped; %s and later jobs will not be attempted",
                job.source_path.name,
            )
            break
    pool.close()

    summary = BatchSummary(total=len(jobs), reports=pool.join())
    if summary.not_attempted:
        logger.warning("%d job(s) were never attempted", summary.not_attempted)
    return summary
