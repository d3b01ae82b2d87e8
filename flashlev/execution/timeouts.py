"""Guards for blocking calls into external systems.

Every collaborator call is a suspension point with no upstream timeout, so
calls run on a worker thread and are abandoned (not cancelled) after
``timeout`` seconds. Only read-only queries may be retried; the loan-granting
call must never go through :func:`retry_read`.
"""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Optional, TypeVar

from flashlev.errors import OperationTimeout, TransientProtocolError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_timeout(
    fn: Callable[[], T],
    *,
    timeout: float,
    label: str,
    on_timeout: Optional[Callable[[Future], None]] = None,
) -> T:
    """Run ``fn`` on a worker thread and wait at most ``timeout`` seconds.

    Args:
        fn: Zero-argument callable performing the blocking call
        timeout: Seconds to wait for a result
        label: Call name used in logs and the timeout reason
        on_timeout: Receives the still-running future when the wait expires,
            so the caller can hold resources until the call really returns

    Raises:
        OperationTimeout: If ``fn`` has not returned in time. The call keeps
            running in the background; its outcome is unknown.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"flashlev-{label}")
    future = executor.submit(fn)
    # Already-submitted work still runs to completion.
    executor.shutdown(wait=False)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        logger.error("%s did not return within %.2fs; outcome unknown", label, timeout)
        if on_timeout is not None:
            on_timeout(future)
        raise OperationTimeout(f"{label} timed out after {timeout}s; outcome unknown") from None


def retry_read(
    fn: Callable[[], T],
    *,
    label: str,
    max_retries: int = 2,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    jitter: bool = True,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Retry a read-only query with exponential backoff.

    Only transient failures (``TransientProtocolError`` and read timeouts) are
    retried; anything else propagates on the first attempt.
    """
    for attempt in range(max_retries + 1):
        try:
            return fn()
        except (TransientProtocolError, OperationTimeout) as e:
            if attempt >= max_retries:
                logger.error("Max retries (%d) exceeded for %s: %s", max_retries, label, e)
                raise

            delay = min(base_delay * (2**attempt), max_delay)
            if jitter:
                delay *= 0.5 + random.random()

            logger.warning(
                "Transient error in %s (attempt %d/%d): %s. Retrying in %.2fs",
                label,
                attempt + 1,
                max_retries + 1,
                e,
                delay,
            )
            sleep(delay)

    raise RuntimeError(f"retry loop for {label} exited without a result")
