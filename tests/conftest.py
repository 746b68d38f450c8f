# tests/conftest.py
"""Shared test fixtures and helpers.

Fixtures:
- db: in-memory ScanDB with the schema created
- retry_manager: three attempts, no sleeping
- clock: MockClock for deadline tests

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterator

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings

from shardscan.core.persistence import ScanDB
from shardscan.engine.clock import MockClock
from shardscan.engine.retry import RetryConfig, RetryManager


def no_sleep(seconds: float) -> None:
    return None


def make_retry_manager(max_attempts: int = 3) -> RetryManager:
    """RetryManager that never sleeps."""
    return RetryManager(
        RetryConfig(max_attempts=max_attempts, base_delay=0.0, max_delay=0.0, jitter=0.0),
        sleep=no_sleep,
    )


@pytest.fixture
def db() -> Iterator[ScanDB]:
    database = ScanDB.in_memory()
    yield database
    database.close()


@pytest.fixture
def retry_manager() -> RetryManager:
    return make_retry_manager()


@pytest.fixture
def clock() -> MockClock:
    return MockClock(start=1000.0)


@pytest.fixture(autouse=True)
def _clear_structlog_contextvars() -> Iterator[None]:
    """Keep bound scan context from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
