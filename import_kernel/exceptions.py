"""
Typed Exception Hierarchy for the Import Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The batch driver has to tell a rate-limited call apart from any other
failure: the first pauses the job until the quota resets, the second is
counted against a single item and the batch moves on.  Encoding that in a
message string ("RATE_LIMITED:<ts>") and parsing it back is fragile, so
every failure the engine reacts to has its own class, a machine-readable
``code`` and structured attributes.

Example - WRONG:
    except Exception as e:
        if str(e).startswith("RATE_LIMITED:"):
            reset = int(str(e).split(":")[1])

Example - RIGHT:
    except RateLimitedError as e:
        pause_until(e.reset_at)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ImportKernelError (base)
    |
    +-- ImportJobError
    |   +-- ImportJobNotFoundError
    |   +-- SourceNotRegisteredError
    |
    +-- FetchError            listing candidates failed -> job ERROR
    +-- RateLimitedError      quota exhausted -> job PAUSED, not counted
    +-- ItemError             one identity failed -> counted, batch continues
    |
    +-- ConfigError
        +-- InvalidDriveOptionsError
"""

from __future__ import annotations

from datetime import datetime


class ImportKernelError(Exception):
    """
    Base exception for all import kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "IMPORT_KERNEL_ERROR"


# Job-related exceptions


class ImportJobError(ImportKernelError):
    """Base exception for job lifecycle errors."""

    code: str = "IMPORT_JOB_ERROR"


class ImportJobNotFoundError(ImportJobError):
    """No job record exists for the given job id."""

    code: str = "IMPORT_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Import job not found: {job_id}")


class SourceNotRegisteredError(ImportJobError):
    """No import source (fetcher + processor) is registered for a job id."""

    code: str = "SOURCE_NOT_REGISTERED"

    def __init__(self, job_id: str, available: tuple[str, ...] = ()):
        self.job_id = job_id
        self.available = available
        super().__init__(
            f"No import source registered for job '{job_id}'. "
            f"Available: {list(available)}"
        )


# External service exceptions


class FetchError(ImportKernelError):
    """
    Listing candidate identities failed.

    Fatal for the current attempt: the job moves to ERROR with
    ``last_error`` populated.  Calling ``start()`` again retries.
    """

    code: str = "FETCH_ERROR"

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"Fetching candidates from {source} failed: {message}")


class RateLimitedError(ImportKernelError):
    """
    The external service refused a call because its quota is exhausted.

    The driver pauses the job until ``reset_at`` and does NOT count the
    item against ``error_count``; it is attempted again after resuming.
    """

    code: str = "RATE_LIMITED"

    def __init__(self, reset_at: datetime, remaining: int = 0):
        self.reset_at = reset_at
        self.remaining = remaining
        super().__init__(
            f"Rate limited until {reset_at.isoformat()} ({remaining} remaining)"
        )


class ItemError(ImportKernelError):
    """Processing one identity failed.  Isolated; the batch continues."""

    code: str = "ITEM_ERROR"

    def __init__(self, identity_key: str, message: str):
        self.identity_key = identity_key
        self.message = message
        super().__init__(message)


# Configuration exceptions


class ConfigError(ImportKernelError):
    """Base exception for invalid configuration or call parameters."""

    code: str = "CONFIG_ERROR"


class InvalidDriveOptionsError(ConfigError):
    """
    A drive parameter is out of range (e.g. non-positive batch size).

    Raised at call time, before any job state is read or written.
    """

    code: str = "INVALID_DRIVE_OPTIONS"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")
