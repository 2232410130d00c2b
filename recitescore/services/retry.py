# recitescore/services/retry.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """All attempts failed; ``last_error`` is the final underlying exception."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded, sequential retry with a fixed delay between attempts.

    max_attempts counts the first try, so max_attempts=1 means no retry.
    """

    max_attempts: int = 3
    delay: float = 1.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        last_error: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func(*args, **kwargs)
            except self.retry_on as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} of "
                    f"{getattr(func, '__name__', func)!s} failed: {e}"
                )
                if attempt < self.max_attempts:
                    self.sleep(self.delay)

        raise RetryExhausted(self.max_attempts, last_error)
