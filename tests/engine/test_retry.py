# tests/engine/test_retry.py
"""Tests for RetryManager."""

import pytest

from shardscan.contracts import DeadlineExceededError, TransientStoreError
from shardscan.core.config import RetrySettings
from shardscan.engine.clock import MockClock
from shardscan.engine.deadline import deadline_scope
from shardscan.engine.retry import RetryConfig, RetryManager
from tests.conftest import make_retry_manager


class TestRetryManager:
    """Retry logic with tenacity."""

    def test_retry_on_retryable_error(self) -> None:
        manager = make_retry_manager(max_attempts=3)

        call_count = 0

        def flaky_operation() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError("Transient error")
            return "success"

        result = manager.execute_with_retry(
            flaky_operation,
            is_retryable=lambda e: isinstance(e, ValueError),
        )

        assert result == "success"
        assert call_count == 3

    def test_no_retry_on_non_retryable(self) -> None:
        manager = make_retry_manager(max_attempts=3)

        call_count = 0

        def failing_operation() -> None:
            nonlocal call_count
            call_count += 1
            raise TypeError("Not retryable")

        with pytest.raises(TypeError):
            manager.execute_with_retry(
                failing_operation,
                is_retryable=lambda e: isinstance(e, ValueError),
            )

        # Non-retryable error does NOT trigger retries - exactly 1 call
        assert call_count == 1

    def test_exhaustion_reraises_last_error(self) -> None:
        """After max attempts the LAST underlying error surfaces unchanged."""
        manager = make_retry_manager(max_attempts=2)
        errors = [ValueError("first"), ValueError("second")]

        def always_fails() -> None:
            raise errors.pop(0)

        with pytest.raises(ValueError, match="second"):
            manager.execute_with_retry(
                always_fails,
                is_retryable=lambda e: isinstance(e, ValueError),
            )

    def test_on_retry_uses_zero_based_attempts(self) -> None:
        manager = make_retry_manager(max_attempts=3)
        attempts: list[tuple[int, str]] = []

        call_count = 0

        def flaky_with_tracking() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise ValueError("Fail")
            return "ok"

        result = manager.execute_with_retry(
            flaky_with_tracking,
            is_retryable=lambda e: isinstance(e, ValueError),
            on_retry=lambda attempt, error: attempts.append((attempt, str(error))),
        )

        assert result == "ok"
        assert attempts == [(0, "Fail")]

    def test_on_retry_not_called_on_exhausted_retries(self) -> None:
        """on_retry fires after attempts 0 and 1, but not after the final attempt."""
        manager = make_retry_manager(max_attempts=3)
        attempts: list[int] = []

        def always_fails() -> None:
            raise ValueError("Fail")

        with pytest.raises(ValueError):
            manager.execute_with_retry(
                always_fails,
                is_retryable=lambda e: isinstance(e, ValueError),
                on_retry=lambda attempt, error: attempts.append(attempt),
            )

        assert attempts == [0, 1]

    def test_no_retry_config_makes_single_attempt(self) -> None:
        manager = RetryManager(RetryConfig.no_retry())
        call_count = 0

        def fails() -> None:
            nonlocal call_count
            call_count += 1
            raise ValueError("Fail")

        with pytest.raises(ValueError):
            manager.execute_with_retry(fails, is_retryable=lambda e: True)

        assert call_count == 1

    def test_sleep_override_receives_backoff_delays(self) -> None:
        slept: list[float] = []
        manager = RetryManager(
            RetryConfig(max_attempts=3, base_delay=1.0, max_delay=1.0, jitter=0.0),
            sleep=slept.append,
        )

        with pytest.raises(ValueError):
            manager.execute_with_retry(lambda: (_ for _ in ()).throw(ValueError("x")), is_retryable=lambda e: True)

        assert slept == [1.0, 1.0]


class TestRetryDeadline:
    """Retries stop once the active deadline has passed."""

    def test_stops_retrying_after_deadline(self) -> None:
        clock = MockClock()
        manager = make_retry_manager(max_attempts=10)
        call_count = 0

        def slow_failure() -> None:
            nonlocal call_count
            call_count += 1
            clock.advance(1.0)
            raise TransientStoreError("timeout")

        with deadline_scope(2.5, clock=clock), pytest.raises(TransientStoreError):
            manager.execute_with_retry(slow_failure, is_retryable=lambda e: isinstance(e, TransientStoreError))

        assert call_count == 3

    def test_wait_capped_at_remaining_deadline(self) -> None:
        clock = MockClock()
        slept: list[float] = []
        manager = RetryManager(
            RetryConfig(max_attempts=2, base_delay=30.0, max_delay=30.0, jitter=0.0),
            sleep=slept.append,
        )

        with deadline_scope(5.0, clock=clock), pytest.raises(DeadlineExceededError):
            manager.execute_with_retry(
                lambda: (_ for _ in ()).throw(DeadlineExceededError(5.0)),
                is_retryable=lambda e: isinstance(e, TransientStoreError),
            )

        assert slept == [5.0]


class TestRetryConfig:
    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            RetryConfig(max_attempts=0)

    def test_rejects_negative_delay(self) -> None:
        with pytest.raises(ValueError, match="delays"):
            RetryConfig(base_delay=-1.0)

    def test_from_settings(self) -> None:
        config = RetryConfig.from_settings(
            RetrySettings(max_attempts=5, initial_delay_seconds=0.5, max_delay_seconds=4.0, exponential_base=3.0)
        )

        assert config.max_attempts == 5
        assert config.base_delay == 0.5
        assert config.max_delay == 4.0
        assert config.jitter == 0.5
        assert config.exponential_base == 3.0
