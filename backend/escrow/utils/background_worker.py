"""Simple thread-based background worker with retries and dead-lettering."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from collections import deque
from typing import Any, Callable, Tuple

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="escrow-bg")
# Dead-letter queue storing failed jobs for later inspection
# Each entry: (function name, args, kwargs, exception)
dead_letter_queue: deque[Tuple[str, tuple, dict, Exception]] = deque(maxlen=1000)


def _run_with_retry(
    func: Callable[..., Any], *args: Any, retries: int = 3, backoff: float = 1, **kwargs: Any
) -> Any:
    """Execute ``func`` with retry and linear backoff."""

    for attempt in range(1, retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            logger.error(
                "Background task %s failed on attempt %s/%s: %s", func.__name__, attempt, retries, exc
            )
            if attempt == retries:
                dead_letter_queue.append((func.__name__, args, kwargs, exc))
                raise
            time.sleep(backoff * attempt)


def enqueue(
    func: Callable[..., Any], *args: Any, retries: int = 3, backoff: float = 1, **kwargs: Any
) -> Future:
    """Submit ``func`` to the worker with retries; returns its future."""

    return _executor.submit(_run_with_retry, func, *args, retries=retries, backoff=backoff, **kwargs)


def shutdown(wait: bool = True) -> None:
    _executor.shutdown(wait=wait)
