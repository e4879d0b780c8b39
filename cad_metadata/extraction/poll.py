"""Bounded fixed-delay polling shared by the job, object-tree and property loops."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollResult(Generic[T]):
    value: T  # last fetched value, ready or not
    ready: bool
    attempts: int
    elapsed_seconds: float


class PollLoop(Generic[T]):
    """Call ``fetch`` until ``is_ready`` accepts the result or attempts run out.

    The delay between attempts is fixed and there is no sleep after the last
    attempt. Exceptions raised by ``fetch`` are not retried: they propagate
    to the caller immediately. A "not ready yet" result is a normal value,
    never an exception.

    Waiting is done with ``asyncio.sleep`` so other requests keep running,
    and cancelling the enclosing task abandons the loop.
    """

    def __init__(self, *, max_attempts: int, delay_seconds: float, name: str = "poll") -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {delay_seconds}")
        self.max_attempts = max_attempts
        self.delay_seconds = delay_seconds
        self.name = name

    @property
    def budget_seconds(self) -> float:
        """Total sleep time when every attempt comes back not ready."""
        return (self.max_attempts - 1) * self.delay_seconds

    async def run(
        self,
        fetch: Callable[[], Awaitable[T]],
        is_ready: Callable[[T], bool],
    ) -> PollResult[T]:
        start = time.monotonic()
        attempt = 0
        while True:
            attempt += 1
            value = await fetch()
            if is_ready(value):
                return PollResult(
                    value=value,
                    ready=True,
                    attempts=attempt,
                    elapsed_seconds=time.monotonic() - start,
                )
            if attempt >= self.max_attempts:
                break
            logger.debug(
                "%s: not ready (attempt %d/%d); retrying in %.1fs",
                self.name,
                attempt,
                self.max_attempts,
                self.delay_seconds,
            )
            await asyncio.sleep(self.delay_seconds)

        return PollResult(
            value=value,
            ready=False,
            attempts=attempt,
            elapsed_seconds=time.monotonic() - start,
        )
