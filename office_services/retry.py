"""
Bounded retry of operations that failed on a transient storage error.

Only errors listed in RETRYABLE_ERRORS are retried.  The counter
increment rolls back whole on such a failure, so calling the operation
again is safe.  Every other error propagates on the first attempt.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from office_kernel.exceptions import RETRYABLE_ERRORS
from office_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3


def with_transient_retry(fn: Callable[[], T], attempts: int = DEFAULT_ATTEMPTS) -> T:
    """
    Call ``fn`` up to ``attempts`` times while it raises a retryable error.

    Raises:
        ValueError: ``attempts`` < 1.
        The last retryable error once the attempts are used up, or any
        non-retryable error immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except RETRYABLE_ERRORS as exc:
            if attempt == attempts:
                logger.error(
                    "transient_retry_exhausted",
                    extra={"attempts": attempts, "error_code": exc.code},
                )
                raise
            logger.warning(
                "transient_retry",
                extra={"attempt": attempt, "max_attempts": attempts, "error_code": exc.code},
            )
    raise AssertionError("unreachable")
