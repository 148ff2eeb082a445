"""Retry helper for calls against the store and the transaction feed."""

import time
from typing import Callable, TypeVar

from rollout.domain.errors import UpstreamTimeoutError
from rollout.logging_config import get_logger

logger = get_logger("utils.retry")

T = TypeVar("T")


def call_with_retry(
    fn: Callable[[], T],
    *,
    retries: int = 1,
    backoff_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
    operation: str = "upstream call",
) -> T:
    """Call fn, retrying on UpstreamTimeoutError with exponential backoff.

    Only timeouts are retried; every other error propagates on the first
    attempt. After the last retry the timeout is re-raised to the caller.

    Args:
        fn: Zero-argument callable to invoke
        retries: Number of retries after the first attempt
        backoff_seconds: Delay before the first retry, doubled for each further one
        sleep: Sleep function (injectable for tests)
        operation: Label used in log records

    Returns:
        Whatever fn returns
    """
    retries = max(0, retries)
    backoff_seconds = max(0.0, backoff_seconds)

    attempt = 0
    while True:
        try:
            return fn()
        except UpstreamTimeoutError as exc:
            if attempt >= retries:
                logger.error(
                    "upstream_timeout_exhausted",
                    extra={"operation": operation, "attempts": attempt + 1, "detail": str(exc)},
                )
                raise
            delay = backoff_seconds * (2 ** attempt)
            logger.warning(
                "upstream_timeout_retry",
                extra={"operation": operation, "attempt": attempt + 1, "delay_seconds": delay},
            )
            sleep(delay)
            attempt += 1
