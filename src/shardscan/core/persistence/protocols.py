# src/shardscan/core/persistence/protocols.py
"""Structural interfaces of the stores the scanner consumes.

Any backend that satisfies these protocols can be scanned. The SQL
implementations live in stores.py; tests use in-memory fakes.

Error contract for every method:
    TransientStoreError   - connectivity/timeout, may be retried
    EntityNotExistsError  - definitive absence
    StoreValidationError  - malformed request (e.g. bad token)
"""

from typing import Protocol, Self, runtime_checkable

from shardscan.contracts import (
    ConcreteExecution,
    CurrentExecution,
    DomainInfo,
    HistoryBranchPage,
    ListConcreteExecutionsPage,
    ListCurrentExecutionsPage,
)


@runtime_checkable
class ExecutionStore(Protocol):
    """Shard-scoped execution store handle."""

    @property
    def shard_id(self) -> int: ...

    def get_concrete_execution(self, domain_id: str, workflow_id: str, run_id: str) -> ConcreteExecution: ...

    def get_current_execution(self, domain_id: str, workflow_id: str) -> CurrentExecution: ...

    def is_concrete_execution_exists(self, domain_id: str, workflow_id: str, run_id: str) -> bool: ...

    def list_concrete_executions(self, page_size: int, page_token: bytes) -> ListConcreteExecutionsPage: ...

    def list_current_executions(self, page_size: int, page_token: bytes) -> ListCurrentExecutionsPage: ...

    def delete_workflow_execution(self, domain_id: str, workflow_id: str, run_id: str) -> None: ...

    def delete_current_workflow_execution(self, domain_id: str, workflow_id: str, run_id: str) -> None: ...

    def close(self) -> None: ...

    def __enter__(self) -> Self: ...

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None: ...


@runtime_checkable
class HistoryStore(Protocol):
    """History branch store handle."""

    def read_history_branch(
        self,
        branch_token: bytes,
        min_event_id: int,
        max_event_id: int,
        page_size: int,
        page_token: bytes = b"",
    ) -> HistoryBranchPage: ...

    def delete_history_branch(self, branch_token: bytes) -> None: ...

    def close(self) -> None: ...

    def __enter__(self) -> Self: ...

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object) -> None: ...


class StoreFactory(Protocol):
    """Opens shard-scoped store handles. Callers close them."""

    def open_execution_store(self, shard_id: int) -> ExecutionStore: ...

    def open_history_store(self, shard_id: int) -> HistoryStore: ...


class DomainLookup(Protocol):
    """Read-only domain lookup available to invariants."""

    def get_domain_by_id(self, domain_id: str) -> DomainInfo: ...
