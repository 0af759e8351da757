"""
ImportJobRunner -- in-process ticker that drives one job to a stop.

Contract:
    Calls ``drive_batch`` repeatedly with ``poll_delay_ms`` between calls,
    using ``next_poll_delay`` to decide whether and when to call again.  A
    job paused by the rate-limit gate is resumed once its quota window has
    reset (unless disabled).  Operator pauses, errors and completion end
    the run.

Architecture: import_jobs/services.  Uses import_jobs.domain.progress for
    the pure scheduling decision and services.driver for every transition.

Invariants enforced:
    - One fresh session per call; the driver commits, the runner closes.
    - Calls for the same job id are serialized through JobLocks.
    - Graceful shutdown: the stop signal is honoured between batches.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar
from uuid import uuid4

from sqlalchemy.orm import Session

from import_kernel.domain.clock import Clock, SystemClock
from import_kernel.logging_config import LogContext, get_logger

from import_jobs.domain.progress import next_poll_delay
from import_jobs.domain.types import (
    DEFAULT_POLL_DELAY_MS,
    DriveOptions,
    ImportJobStatus,
    ImportProgress,
)
from import_jobs.services.driver import ImportJobDriver

logger = get_logger("jobs.runner")

T = TypeVar("T")


class JobLocks:
    """One ``threading.Lock`` per job id, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, job_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, job_id: str) -> Iterator[None]:
        with self.get(job_id):
            yield


class ImportJobRunner:
    """Polling loop around ImportJobDriver.

    Contract:
        - ``tick()`` drives exactly one batch (public for testing).
        - ``run()`` loops in the calling thread until the job stops.
        - ``start()`` / ``stop()`` run the same loop on a daemon thread.

    Non-goals:
        - NOT a distributed worker: locks are process-local.
        - Does NOT start jobs; call ``ImportJobDriver.start`` first.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        driver_factory: Callable[[Session], ImportJobDriver],
        clock: Clock | None = None,
        poll_delay_ms: int = DEFAULT_POLL_DELAY_MS,
        options: DriveOptions | None = None,
        wait_for_rate_limit: bool = True,
        locks: JobLocks | None = None,
    ):
        if poll_delay_ms < 0:
            raise ValueError(f"poll_delay_ms must be >= 0: {poll_delay_ms}")
        self._session_factory = session_factory
        self._driver_factory = driver_factory
        self._clock = clock or SystemClock()
        self._poll_delay = poll_delay_ms / 1000.0
        self._options = options
        self._wait_for_rate_limit = wait_for_rate_limit
        self._locks = locks or JobLocks()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self, job_id: str) -> ImportProgress:
        """Drive one batch of ``job_id``."""
        return self._with_driver(
            job_id, lambda driver: driver.drive_batch(job_id, self._options),
        )

    def progress(self, job_id: str) -> ImportProgress:
        return self._with_driver(job_id, lambda driver: driver.get_progress(job_id))

    def run(self, job_id: str, max_batches: int | None = None) -> ImportProgress:
        """Drive ``job_id`` until it completes, fails, or is paused for good.

        Args:
            max_batches: Stop after this many ``drive_batch`` calls.

        Returns:
            The last observed progress.
        """
        batches = 0
        with LogContext.bind(job_id=job_id, correlation_id=str(uuid4())):
            progress = self.progress(job_id)
            while not self._stop_event.is_set():
                if progress.status == ImportJobStatus.RUNNING:
                    if max_batches is not None and batches >= max_batches:
                        break
                    progress = self.tick(job_id)
                    batches += 1
                    if progress.status == ImportJobStatus.RUNNING:
                        self._stop_event.wait(timeout=self._poll_delay)
                    continue

                delay = next_poll_delay(progress, self._clock.now(), self._poll_delay)
                if delay is None or not self._wait_for_rate_limit:
                    break

                logger.info(
                    "import_runner_waiting_for_rate_limit",
                    extra={
                        "delay_seconds": round(delay, 3),
                        "reset_at": progress.rate_limit_reset_at,
                    },
                )
                if self._stop_event.wait(timeout=delay):
                    break
                progress = self._with_driver(
                    job_id, lambda driver: driver.resume(job_id),
                )

            logger.info(
                "import_runner_finished",
                extra={
                    "status": progress.status.value,
                    "batches": batches,
                    "processed_items": progress.processed_items,
                },
            )
            return progress

    def start(self, job_id: str) -> None:
        """Run the loop for ``job_id`` on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            args=(job_id,),
            name=f"import-runner-{job_id}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "import_runner_started",
            extra={"job_id": job_id, "poll_delay_seconds": self._poll_delay},
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current batch to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("import_runner_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self, job_id: str) -> None:
        try:
            self.run(job_id)
        except Exception:
            logger.exception("import_runner_failed", extra={"job_id": job_id})

    def _with_driver(
        self, job_id: str, call: Callable[[ImportJobDriver], T],
    ) -> T:
        session = self._session_factory()
        try:
            with self._locks.hold(job_id):
                return call(self._driver_factory(session))
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
