"""Translation job state machine driven by repeated manifest reads.

    (not found) -> pending -> inprogress -> success | failed | timeout

A missing manifest is an implicit ``pending`` and is polled again. The
remote ``timeout`` status is a failure reported by the service, unlike
``TranslationTimeout`` which means our own polling budget ran out.
"""

from __future__ import annotations

import logging
from typing import Any

from cad_metadata.config import CAD_JOB_POLL_DELAY_SECONDS, CAD_JOB_POLL_MAX_ATTEMPTS
from cad_metadata.errors import GENERIC_FAILURE_MESSAGE, TranslationFailed, TranslationTimeout
from cad_metadata.extraction.poll import PollLoop
from cad_metadata.extraction.types import JobStatus, ManifestReader, ManifestSnapshot

logger = logging.getLogger(__name__)


class JobStatusTracker:
    def __init__(
        self,
        manifests: ManifestReader,
        *,
        max_attempts: int = CAD_JOB_POLL_MAX_ATTEMPTS,
        delay_seconds: float = CAD_JOB_POLL_DELAY_SECONDS,
    ) -> None:
        self._manifests = manifests
        self._max_attempts = max_attempts
        self._delay_seconds = delay_seconds

    async def wait_for_completion(self, job_id: str) -> ManifestSnapshot:
        """Poll until the job is terminal and return the successful manifest.

        Raises:
            TranslationFailed: the job ended in ``failed`` or remote ``timeout``.
            TranslationTimeout: attempts ran out while pending/in progress.
            TransportError: a manifest read failed; not retried.
        """
        loop: PollLoop[ManifestSnapshot | None] = PollLoop(
            max_attempts=self._max_attempts,
            delay_seconds=self._delay_seconds,
            name=f"manifest:{job_id[:16]}",
        )
        last_status = JobStatus.PENDING.value

        async def fetch() -> ManifestSnapshot | None:
            nonlocal last_status
            manifest = await self._manifests.get_manifest(job_id)
            status = manifest.status if manifest is not None else JobStatus.PENDING.value
            if status != last_status:
                logger.info("Job %s: %s -> %s", job_id, last_status, status)
                last_status = status
            elif manifest is not None:
                logger.debug("Job %s still %s (%s)", job_id, status, manifest.progress)
            return manifest

        result = await loop.run(fetch, _is_terminal)

        if not result.ready:
            logger.warning(
                "Job %s not finished after %d checks (%.1fs); last status=%s",
                job_id,
                result.attempts,
                result.elapsed_seconds,
                last_status,
            )
            raise TranslationTimeout(
                job_id,
                last_status=last_status,
                elapsed_seconds=result.elapsed_seconds,
                attempts=result.attempts,
            )

        manifest = result.value
        assert manifest is not None
        if manifest.status == JobStatus.SUCCESS.value:
            logger.info(
                "Job %s succeeded with %d derivative(s) after %d check(s)",
                job_id,
                len(manifest.derivatives),
                result.attempts,
            )
            return manifest

        diagnostic = failure_diagnostic(manifest)
        if manifest.status == JobStatus.TIMEOUT.value:
            diagnostic = f"Translation timed out on the server: {diagnostic}"
        logger.warning("Job %s ended with status=%s: %s", job_id, manifest.status, diagnostic)
        raise TranslationFailed(job_id, diagnostic, status=manifest.status)


def _is_terminal(manifest: ManifestSnapshot | None) -> bool:
    return manifest is not None and manifest.is_terminal


def failure_diagnostic(manifest: ManifestSnapshot) -> str:
    """Most specific failure text available in a manifest.

    Top-level messages win, then the first derivative's messages, then a
    generic message.
    """
    text = _format_messages(manifest.messages)
    if text:
        return text
    if manifest.derivatives:
        text = _format_messages(manifest.derivatives[0].get("messages"))
        if text:
            return text
    return GENERIC_FAILURE_MESSAGE


def _format_messages(messages: Any) -> str:
    if not messages:
        return ""
    if not isinstance(messages, list):
        messages = [messages]

    parts: list[str] = []
    for m in messages:
        if isinstance(m, dict):
            body = m.get("message")
            # message may be a string or a list of strings
            if isinstance(body, list):
                body = " ".join(str(b) for b in body if b)
            body = str(body).strip() if body else ""
            code = str(m.get("code") or "").strip()
            if code and body:
                parts.append(f"{code}: {body}")
            elif body or code:
                parts.append(body or code)
        elif m:
            parts.append(str(m).strip())
    return "; ".join(p for p in parts if p)
