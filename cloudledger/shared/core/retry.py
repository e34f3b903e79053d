"""
Retry Logic with Exponential Backoff

Bounded retry policies for orchestrated units. Only transient failures
(see ``is_transient``) are retried; everything else surfaces on the first
attempt.
"""
from dataclasses import dataclass

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from cloudledger.shared.core.config import Settings, get_settings
from cloudledger.shared.core.exceptions import is_transient

logger = structlog.get_logger()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff, mirrored from the host's child-unit options."""

    initial_interval: float = 1.0
    backoff_coefficient: float = 2.0
    maximum_interval: float = 60.0
    maximum_attempts: int = 3

    def __post_init__(self) -> None:
        if self.maximum_attempts < 1:
            raise ValueError("maximum_attempts must be >= 1")
        if self.initial_interval < 0 or self.maximum_interval < self.initial_interval:
            raise ValueError("retry intervals must satisfy 0 <= initial <= maximum")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            initial_interval=settings.RETRY_INITIAL_INTERVAL_SECONDS,
            backoff_coefficient=settings.RETRY_BACKOFF_COEFFICIENT,
            maximum_interval=settings.RETRY_MAX_INTERVAL_SECONDS,
            maximum_attempts=settings.RETRY_MAX_ATTEMPTS,
        )


def _log_before_sleep(operation: str):
    def _before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "operation_failed_will_retry",
            operation=operation,
            attempt=retry_state.attempt_number,
            delay_seconds=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    return _before_sleep


def async_retrying(policy: RetryPolicy, *, operation: str) -> AsyncRetrying:
    """Build a tenacity controller for ``policy``; reraises the last error."""
    return AsyncRetrying(
        stop=stop_after_attempt(policy.maximum_attempts),
        wait=wait_exponential(
            multiplier=policy.initial_interval,
            exp_base=policy.backoff_coefficient,
            min=policy.initial_interval,
            max=policy.maximum_interval,
        ),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_before_sleep(operation),
        reraise=True,
    )
