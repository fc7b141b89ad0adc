# src/concierge/llm/retry.py
from __future__ import annotations

import time
from typing import Any, Callable, Optional

from .errors import ProviderError


RETRIABLE_KEYWORDS = (
    "rate limit",
    "429",
    "timeout",
    "timed out",
    "temporarily",
    "temporary",
    "overloaded",
    "connection reset",
    "connection aborted",
    "service unavailable",
    "503",
    "529",
)


def is_retriable_exception(e: BaseException) -> bool:
    if isinstance(e, ProviderError):
        return e.retriable
    msg = str(e).lower()
    return any(k in msg for k in RETRIABLE_KEYWORDS)


def call_with_retry(
    fn: Callable[[], Any],
    *,
    max_retries: int,
    backoff: float,
    jitter: float,
    is_retriable: Callable[[Exception], bool] = is_retriable_exception,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
) -> Any:
    last_exc: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            return fn()
        except Exception as e:
            last_exc = e
            if attempt >= max_retries or not is_retriable(e):
                raise

            if on_retry:
                on_retry(attempt + 1, e)

            sleep_s = (backoff ** attempt)
            sleep_s = sleep_s + (jitter * (0.5 - (time.time() % 1)))
            sleep_s = max(0.0, sleep_s)
            time.sleep(sleep_s)

    raise RuntimeError(f"Retry failed: {last_exc}")  # pragma: no cover
