# core/errors.py
"""Exception hierarchy shared across Chronicle components."""

from __future__ import annotations


class ChronicleError(Exception):
    """Base class for all Chronicle errors."""


class CompletionError(ChronicleError):
    """The completion gateway gave up on a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RecordNotFoundError(ChronicleError):
    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} '{record_id}' not found")
        self.kind = kind
        self.record_id = record_id


class JobNotFoundError(RecordNotFoundError):
    def __init__(self, job_id: str) -> None:
        super().__init__("Job", job_id)


class JobNotResumableError(ChronicleError):
    """Raised when a job is in a state that forbids resuming it."""


class ProjectConfigError(ChronicleError):
    """Invalid project definition (e.g. malformed project YAML)."""
