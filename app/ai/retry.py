"""
Sigma Business Automation
Retry policy for generation calls.

    policy = RetryPolicy(max_attempts=3)
    result = policy.run(lambda attempt: provider.complete(...))

Linear backoff (``base_delay * attempt`` seconds). A connectivity failure
stops the loop once ``connectivity_abort_after`` attempts were made; any
other GenerationError retries until the budget is spent. Exceptions that
are not GenerationError propagate immediately.

``sleep`` is injectable so tests run without waiting.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Callable

from app.core.exceptions import (
    ConnectivityError,
    GenerationError,
    RetryExhaustedError,
    classify_generation_error,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    connectivity_abort_after: int = 2
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay * attempt

    def should_abort(self, error: GenerationError, attempt: int) -> bool:
        return isinstance(error, ConnectivityError) and attempt >= self.connectivity_abort_after

    def with_attempts(self, max_attempts: int | None) -> "RetryPolicy":
        if max_attempts is None or max_attempts == self.max_attempts:
            return self
        return replace(self, max_attempts=max_attempts)

    def run(self, call: Callable[[int], object], *, model: str | None = None):
        """Invoke ``call(attempt)`` until it returns or the policy gives up.

        Returns ``(result, attempts_used)``. Raises RetryExhaustedError
        carrying the last failure.
        """
        last_error = None
        attempt = 0
        while attempt < self.max_attempts:
            attempt += 1
            try:
                return call(attempt), attempt
            except GenerationError as exc:
                last_error = exc
                logger.warning(
                    "Generation attempt %d/%d failed (%s): %s",
                    attempt, self.max_attempts, classify_generation_error(exc), exc,
                    extra={"attempt": attempt, "model": model},
                )
                if self.should_abort(exc, attempt):
                    logger.info("Connectivity failure, not retrying further")
                    break
                if attempt < self.max_attempts:
                    self.sleep(self.backoff(attempt))

        raise RetryExhaustedError(attempts=attempt, last_error=last_error, model=model)
