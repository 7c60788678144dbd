"""
Retry Executor

Bounded retry for operations that hit a dependency prone to short outages
(a managed database waking from dormancy, a flaky network hop).

Policy:
- Only transient errors are retried (see errors.is_transient)
- Fixed delay between attempts, not exponential
- After the last retry the final error is returned unchanged
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from .errors import is_transient
from .result import Err, Ok, Result

logger = logging.getLogger("dionysus.common.retry")

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_DELAY_SECONDS = 2.0


class RetryExecutor:
    """Runs an async operation with bounded, transient-only retries."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            max_retries: Retries after the first attempt
            delay_seconds: Constant wait between attempts
            sleep: Awaitable sleep function (replaced in tests)
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._max_retries = max_retries
        self._delay = delay_seconds
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: Optional[int] = None,
        description: str = "operation",
    ) -> Result[T]:
        """
        Run ``operation`` until it succeeds, fails permanently, or the retry
        budget is spent.

        Args:
            operation: Zero-argument coroutine factory (called once per attempt)
            max_retries: Override the executor's retry budget for this call
            description: Label used in log lines

        Returns:
            Ok(value) on success, Err(last_error) otherwise
        """
        retries = self._max_retries if max_retries is None else max_retries
        if retries < 0:
            raise ValueError("max_retries must be >= 0")

        def _log_retry(retry_state: RetryCallState) -> None:
            remaining = retries - retry_state.attempt_number + 1
            logger.warning(
                "%s failed (%s), retrying in %.1fs... (%d attempts left)",
                description,
                retry_state.outcome.exception(),
                self._delay,
                remaining,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_fixed(self._delay),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    value = await operation()
        except Exception as e:
            logger.error("%s failed: %s", description, e)
            return Err(e)

        return Ok(value)
