# tests/core/test_retryer.py
"""Tests for PersistenceRetryer and DomainCache."""

import pytest

from shardscan.contracts import (
    CloseStatus,
    ConcreteExecution,
    DeadlineExceededError,
    DomainInfo,
    DomainStatus,
    EntityNotExistsError,
    StoreValidationError,
    TransientStoreError,
    WorkflowState,
)
from shardscan.core.persistence import DomainCache, PersistenceRetryer, is_transient_error
from shardscan.engine.clock import MockClock
from shardscan.engine.deadline import deadline_scope
from tests.conftest import make_retry_manager
from tests.helpers.stores import FakeDomains, FakeExecutionStore, FakeHistoryStore


def _execution(run_id: str = "run-1") -> ConcreteExecution:
    return ConcreteExecution(
        shard_id=0,
        domain_id="domain-1",
        workflow_id="wf-1",
        run_id=run_id,
        state=WorkflowState.RUNNING,
        close_status=CloseStatus.NONE,
    )


class TestRetryClassification:
    def test_transient_and_deadline_errors_are_retryable(self) -> None:
        assert is_transient_error(TransientStoreError("x"))
        assert is_transient_error(DeadlineExceededError(1.0))

    @pytest.mark.parametrize("error", [EntityNotExistsError("x"), StoreValidationError("x"), ValueError("x")])
    def test_definitive_errors_are_not_retryable(self, error: Exception) -> None:
        assert not is_transient_error(error)


class TestPersistenceRetryer:
    def test_transient_failures_below_max_attempts_succeed(self) -> None:
        store = FakeExecutionStore(executions=[_execution()])
        store.fail("get_concrete_execution", TransientStoreError("1"), TransientStoreError("2"))
        retryer = PersistenceRetryer(store, FakeHistoryStore(), make_retry_manager(max_attempts=3))

        execution = retryer.get_concrete_execution("domain-1", "wf-1", "run-1")

        assert execution.run_id == "run-1"
        assert store.calls["get_concrete_execution"] == 3

    def test_exhaustion_surfaces_final_underlying_error(self) -> None:
        store = FakeExecutionStore(executions=[_execution()])
        store.fail(
            "get_concrete_execution",
            TransientStoreError("first"),
            TransientStoreError("second"),
            TransientStoreError("third"),
        )
        retryer = PersistenceRetryer(store, FakeHistoryStore(), make_retry_manager(max_attempts=3))

        with pytest.raises(TransientStoreError, match="third"):
            retryer.get_concrete_execution("domain-1", "wf-1", "run-1")

        assert store.calls["get_concrete_execution"] == 3

    def test_not_found_is_never_retried(self) -> None:
        store = FakeExecutionStore()
        retryer = PersistenceRetryer(store, FakeHistoryStore(), make_retry_manager(max_attempts=5))

        with pytest.raises(EntityNotExistsError):
            retryer.get_current_execution("domain-1", "wf-1")

        assert store.calls["get_current_execution"] == 1

    def test_validation_error_is_never_retried(self) -> None:
        store = FakeExecutionStore()
        store.fail("list_concrete_executions", StoreValidationError("bad token"))
        retryer = PersistenceRetryer(store, None, make_retry_manager(max_attempts=5))

        with pytest.raises(StoreValidationError):
            retryer.list_concrete_executions(10, b"garbage")

        assert store.calls["list_concrete_executions"] == 1

    def test_custom_retry_classification(self) -> None:
        store = FakeExecutionStore()
        store.fail("is_concrete_execution_exists", ConnectionError("reset"))
        retryer = PersistenceRetryer(
            store,
            None,
            make_retry_manager(),
            is_retryable=lambda e: isinstance(e, ConnectionError),
        )

        assert retryer.is_concrete_execution_exists("domain-1", "wf-1", "run-1") is False
        assert store.calls["is_concrete_execution_exists"] == 2

    def test_history_operations_are_retried(self) -> None:
        history = FakeHistoryStore({b"token": []})
        history.fail("read_history_branch", TransientStoreError("down"))
        retryer = PersistenceRetryer(FakeExecutionStore(), history, make_retry_manager())

        page = retryer.read_history_branch(b"token", 1, 10, page_size=1)

        assert page.events == []
        assert history.calls["read_history_branch"] == 2

    def test_delete_operations_are_retried(self) -> None:
        store = FakeExecutionStore(executions=[_execution()])
        store.fail("delete_workflow_execution", TransientStoreError("down"))
        retryer = PersistenceRetryer(store, FakeHistoryStore(), make_retry_manager())

        retryer.delete_workflow_execution("domain-1", "wf-1", "run-1")

        assert store.executions == []
        assert store.calls["delete_workflow_execution"] == 2

    def test_history_call_without_history_store_is_an_error(self) -> None:
        retryer = PersistenceRetryer(FakeExecutionStore(), None, make_retry_manager())

        with pytest.raises(RuntimeError, match="history store"):
            retryer.delete_history_branch(b"token")

    def test_expired_deadline_stops_retries(self) -> None:
        clock = MockClock()
        store = FakeExecutionStore()
        store.fail("get_current_execution", *[TransientStoreError(str(i)) for i in range(10)])
        retryer = PersistenceRetryer(store, None, make_retry_manager(max_attempts=10))

        with deadline_scope(1.0, clock=clock):
            clock.advance(1.0)
            with pytest.raises(TransientStoreError):
                retryer.get_current_execution("domain-1", "wf-1")

        assert store.calls["get_current_execution"] == 1

    def test_shard_id_comes_from_execution_store(self) -> None:
        retryer = PersistenceRetryer(FakeExecutionStore(shard_id=7), None, make_retry_manager())

        assert retryer.shard_id == 7


class TestDomainCache:
    def test_successful_lookup_is_memoized(self) -> None:
        domains = FakeDomains(DomainInfo("domain-1", "orders", DomainStatus.REGISTERED))
        cache = DomainCache(domains, make_retry_manager())

        first = cache.get_domain_by_id("domain-1")
        second = cache.get_domain_by_id("domain-1")

        assert first is second
        assert domains.calls["get_domain_by_id"] == 1

    def test_transient_failure_is_retried_and_not_cached(self) -> None:
        domains = FakeDomains(DomainInfo("domain-1", "orders", DomainStatus.REGISTERED))
        domains.fail("get_domain_by_id", TransientStoreError("1"), TransientStoreError("2"), TransientStoreError("3"))
        cache = DomainCache(domains, make_retry_manager(max_attempts=3))

        with pytest.raises(TransientStoreError):
            cache.get_domain_by_id("domain-1")

        assert cache.get_domain_by_id("domain-1").name == "orders"
        assert domains.calls["get_domain_by_id"] == 4

    def test_missing_domain_is_not_retried(self) -> None:
        domains = FakeDomains()
        cache = DomainCache(domains, make_retry_manager())

        with pytest.raises(EntityNotExistsError):
            cache.get_domain_by_id("missing")

        assert domains.calls["get_domain_by_id"] == 1
