# src/shardscan/core/persistence/retryer.py
"""PersistenceRetryer: the resilient storage accessor.

Exposes the same read/delete operations as the execution and history
stores, with every call wrapped in one RetryManager policy. At scan volume
a single flaky call would otherwise abort a whole shard.

This layer adds no state of its own. It never retries definitive errors
(EntityNotExistsError, StoreValidationError), and after exhausting its
attempts it re-raises the last underlying error unchanged.
"""

from collections.abc import Callable
from typing import TypeVar

from shardscan.contracts import (
    ConcreteExecution,
    CurrentExecution,
    HistoryBranchPage,
    ListConcreteExecutionsPage,
    ListCurrentExecutionsPage,
    TransientStoreError,
)
from shardscan.core.logging import get_logger
from shardscan.core.persistence.protocols import ExecutionStore, HistoryStore
from shardscan.engine.retry import RetryManager

T = TypeVar("T")

logger = get_logger(__name__)


def is_transient_error(error: BaseException) -> bool:
    """Default retry classification: only TransientStoreError (incl. deadline expiry)."""
    return isinstance(error, TransientStoreError)


class PersistenceRetryer:
    """Retry-wrapped access to one shard's execution and history stores.

    history_store may be None for callers that only list executions.
    """

    def __init__(
        self,
        execution_store: ExecutionStore,
        history_store: HistoryStore | None,
        retry_manager: RetryManager,
        *,
        is_retryable: Callable[[BaseException], bool] = is_transient_error,
    ) -> None:
        self._execution_store = execution_store
        self._history_store = history_store
        self._retry_manager = retry_manager
        self._is_retryable = is_retryable

    @property
    def shard_id(self) -> int:
        return self._execution_store.shard_id

    @property
    def _history(self) -> HistoryStore:
        if self._history_store is None:
            raise RuntimeError("PersistenceRetryer was built without a history store")
        return self._history_store

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        def on_retry(attempt: int, error: BaseException) -> None:
            logger.warning(
                "Retrying storage call",
                operation=operation,
                shard_id=self.shard_id,
                attempt=attempt,
                error=str(error),
                error_type=type(error).__name__,
            )

        return self._retry_manager.execute_with_retry(fn, is_retryable=self._is_retryable, on_retry=on_retry)

    # === Execution store ===

    def get_concrete_execution(self, domain_id: str, workflow_id: str, run_id: str) -> ConcreteExecution:
        return self._call(
            "get_concrete_execution",
            lambda: self._execution_store.get_concrete_execution(domain_id, workflow_id, run_id),
        )

    def get_current_execution(self, domain_id: str, workflow_id: str) -> CurrentExecution:
        return self._call(
            "get_current_execution",
            lambda: self._execution_store.get_current_execution(domain_id, workflow_id),
        )

    def is_concrete_execution_exists(self, domain_id: str, workflow_id: str, run_id: str) -> bool:
        return self._call(
            "is_concrete_execution_exists",
            lambda: self._execution_store.is_concrete_execution_exists(domain_id, workflow_id, run_id),
        )

    def list_concrete_executions(self, page_size: int, page_token: bytes) -> ListConcreteExecutionsPage:
        return self._call(
            "list_concrete_executions",
            lambda: self._execution_store.list_concrete_executions(page_size, page_token),
        )

    def list_current_executions(self, page_size: int, page_token: bytes) -> ListCurrentExecutionsPage:
        return self._call(
            "list_current_executions",
            lambda: self._execution_store.list_current_executions(page_size, page_token),
        )

    def delete_workflow_execution(self, domain_id: str, workflow_id: str, run_id: str) -> None:
        self._call(
            "delete_workflow_execution",
            lambda: self._execution_store.delete_workflow_execution(domain_id, workflow_id, run_id),
        )

    def delete_current_workflow_execution(self, domain_id: str, workflow_id: str, run_id: str) -> None:
        self._call(
            "delete_current_workflow_execution",
            lambda: self._execution_store.delete_current_workflow_execution(domain_id, workflow_id, run_id),
        )

    # === History store ===

    def read_history_branch(
        self,
        branch_token: bytes,
        min_event_id: int,
        max_event_id: int,
        page_size: int,
        page_token: bytes = b"",
    ) -> HistoryBranchPage:
        return self._call(
            "read_history_branch",
            lambda: self._history.read_history_branch(branch_token, min_event_id, max_event_id, page_size, page_token),
        )

    def delete_history_branch(self, branch_token: bytes) -> None:
        self._call(
            "delete_history_branch",
            lambda: self._history.delete_history_branch(branch_token),
        )
