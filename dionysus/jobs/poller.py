"""
Job Poller

Client-side status polling with exponential backoff on read failures.

A read that fails is retried after 1s, 2s, then 4s. A read that succeeds is
an answer, including a FAILED job; only broken reads are retried.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..common.errors import InvalidInputError, NotFoundError
from ..common.result import Err, Ok, Result

logger = logging.getLogger("dionysus.jobs.poller")

T = TypeVar("T")


class JobPoller:
    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        poll_interval: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._poll_interval = poll_interval
        self._sleep = sleep

    async def read(
        self,
        reader: Callable[[], Awaitable[T]],
        description: str = "read job status",
    ) -> Result[T]:
        """
        Run ``reader`` with backoff on failure.

        Returns:
            Ok(value) once a read succeeds, Err(last_error) when retries are spent
            or the job does not exist
        """

        def _log_retry(retry_state: RetryCallState) -> None:
            logger.warning(
                "%s failed (%s), retry %d of %d",
                description,
                retry_state.outcome.exception(),
                retry_state.attempt_number,
                self._max_retries,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=self._initial_delay, exp_base=2),
            retry=retry_if_not_exception_type((NotFoundError, InvalidInputError)),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    value = await reader()
        except Exception as e:
            logger.error("%s failed: %s", description, e)
            return Err(e)
        return Ok(value)

    async def wait_until_terminal(
        self,
        reader: Callable[[], Awaitable[T]],
        max_polls: Optional[int] = None,
        description: str = "poll job",
    ) -> Result[T]:
        """
        Poll until the job's status is terminal.

        ``reader`` returns an object with a ``status`` (JobStatus). Returns
        Ok(job) for COMPLETED or FAILED jobs, Err on an unrecoverable read or
        when ``max_polls`` is reached first.
        """
        polls = 0
        while True:
            result = await self.read(reader, description=description)
            if not result.is_ok:
                return result
            if result.value.status.is_terminal:
                return result
            polls += 1
            if max_polls is not None and polls >= max_polls:
                return Err(TimeoutError(f"{description}: still {result.value.status.value} after {polls} polls"))
            await self._sleep(self._poll_interval)
