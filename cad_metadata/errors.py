"""Error kinds surfaced by metadata extraction.

Job-level errors (TranslationFailed, TranslationTimeout, TransportError
from manifest reads) abort an extraction. View-level failures never reach
the caller as exceptions; they are recorded on the view instead.
"""

from __future__ import annotations

GENERIC_FAILURE_MESSAGE = "Translation failed: the file may be unsupported or corrupted"


class ExtractionError(Exception):
    """Base class for errors raised by metadata extraction."""


class TranslationFailed(ExtractionError):
    """The remote translation job reported failure."""

    def __init__(self, job_id: str, diagnostic: str, *, status: str = "failed") -> None:
        self.job_id = job_id
        self.diagnostic = diagnostic or GENERIC_FAILURE_MESSAGE
        self.status = status
        super().__init__(self.diagnostic)


class TranslationTimeout(ExtractionError):
    """Polling budget ran out while the job was still pending or in progress."""

    def __init__(
        self,
        job_id: str,
        *,
        last_status: str,
        elapsed_seconds: float,
        attempts: int,
    ) -> None:
        self.job_id = job_id
        self.last_status = last_status
        self.elapsed_seconds = elapsed_seconds
        self.attempts = attempts
        super().__init__(
            f"Translation still '{last_status}' after {elapsed_seconds:.0f}s "
            f"({attempts} checks). The job may still finish; please try again later."
        )


class TransportError(ExtractionError):
    """A collaborator call failed in a way that is not a 'not ready yet' signal."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ApsAuthError(TransportError):
    """APS token acquisition failed."""
