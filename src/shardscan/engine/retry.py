# src/shardscan/engine/retry.py
"""RetryManager: Retry logic with tenacity integration.

Provides configurable retry behavior for storage calls:
- Exponential backoff with jitter
- Configurable max attempts
- Retryable error filtering
- Deadline awareness (never sleeps past the active deadline)

Unlike a wrapper-exception design, exhausting the attempts re-raises the
LAST underlying error unchanged, so callers can still tell a definitive
EntityNotExistsError from a store that stayed unavailable.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_any,
    wait_exponential_jitter,
)

from shardscan.engine.deadline import current_deadline

if TYPE_CHECKING:
    from shardscan.core.config import RetrySettings

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    max_attempts is the TOTAL number of tries, not the number of retries.
    So max_attempts=3 means: try, retry, retry (3 total).
    """

    max_attempts: int = 3
    base_delay: float = 0.1  # seconds
    max_delay: float = 10.0  # seconds
    jitter: float = 0.1  # seconds
    exponential_base: float = 2.0  # backoff multiplier

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be >= 0")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        """Factory for no-retry configuration (single attempt)."""
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryConfig":
        """Factory from RetrySettings config model.

        Jitter is not exposed in settings; it scales with the initial delay.
        """
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=settings.initial_delay_seconds,
            exponential_base=settings.exponential_base,
        )


def _deadline_expired(retry_state: RetryCallState) -> bool:
    deadline = current_deadline()
    return deadline is not None and deadline.expired()


class RetryManager:
    """Manages retry logic for storage calls.

    Example:
        manager = RetryManager(RetryConfig(max_attempts=3))

        execution = manager.execute_with_retry(
            lambda: store.get_concrete_execution(domain_id, workflow_id, run_id),
            is_retryable=lambda e: isinstance(e, TransientStoreError),
            on_retry=lambda attempt, error: logger.warning("retrying", attempt=attempt),
        )
    """

    def __init__(
        self,
        config: RetryConfig,
        *,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize with config.

        Args:
            config: Retry configuration
            sleep: Sleep function override (tests pass a no-op)
        """
        self._config = config
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _wait(self) -> Callable[[RetryCallState], float]:
        backoff = wait_exponential_jitter(
            initial=self._config.base_delay,
            max=self._config.max_delay,
            exp_base=self._config.exponential_base,
            jitter=self._config.jitter,
        )

        def wait(retry_state: RetryCallState) -> float:
            delay = backoff(retry_state)
            deadline = current_deadline()
            if deadline is not None:
                return min(delay, deadline.remaining())
            return delay

        return wait

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Execute operation with retry logic.

        Args:
            operation: Operation to execute
            is_retryable: Function to check if error is retryable
            on_retry: Optional callback fired before each retry with the
                0-based number of the attempt that failed and its error.
                It does not fire for the final failing attempt.

        Returns:
            Result of operation

        Raises:
            Exception: The non-retryable error, or the last retryable
                error once attempts (or the deadline) are exhausted
        """

        def before_sleep(retry_state: RetryCallState) -> None:
            if on_retry is None or retry_state.outcome is None:
                return
            error = retry_state.outcome.exception()
            if error is not None:
                on_retry(retry_state.attempt_number - 1, error)

        retry_kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep

        retrying = Retrying(
            stop=stop_any(stop_after_attempt(self._config.max_attempts), _deadline_expired),
            wait=self._wait(),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep,
            reraise=True,
            **retry_kwargs,
        )
        return retrying(operation)
