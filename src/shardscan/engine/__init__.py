"""Scan engine: orchestrators, pagination, retries and deadlines.

This module provides:
- ExecutionScanner (engine.scanner): targeted scan over an explicit list
- UnsupportedWorkflowScanner (engine.unsupported): shard-range scan
- PagingIterator: lazy iteration over paged store listings
- RetryManager: retry logic with tenacity
- deadline_scope: per-unit deadlines for storage calls

Only the leaf modules are re-exported here. The store layer imports
deadlines and retries from this package, so the orchestrators (which
import the store layer) are imported from their own modules:

    from shardscan.engine.scanner import ExecutionScanner
    from shardscan.engine.unsupported import RemediationSink, UnsupportedWorkflowScanner
"""

from shardscan.engine.clock import DEFAULT_CLOCK, Clock, MockClock, SystemClock
from shardscan.engine.deadline import Deadline, check_deadline, current_deadline, deadline_scope
from shardscan.engine.pagination import PagingIterator
from shardscan.engine.retry import RetryConfig, RetryManager

__all__ = [
    "DEFAULT_CLOCK",
    "Clock",
    "Deadline",
    "MockClock",
    "PagingIterator",
    "RetryConfig",
    "RetryManager",
    "SystemClock",
    "check_deadline",
    "current_deadline",
    "deadline_scope",
]
