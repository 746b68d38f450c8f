# tests/engine/test_maintenance.py
"""Tests for local workflow deletion."""

import pytest

from shardscan.contracts import (
    CloseStatus,
    ConcreteExecution,
    EntityNotExistsError,
    HistoryEvent,
    TransientStoreError,
    WorkflowState,
)
from shardscan.core.persistence import ScanDB
from shardscan.engine.maintenance import delete_workflow
from shardscan.engine.retry import RetryManager
from tests.conftest import make_retry_manager
from tests.helpers.seed import add_execution
from tests.helpers.stores import FakeExecutionStore, FakeHistoryStore, FakeStoreFactory

SHARDS = 8


def legacy(workflow_id: str) -> ConcreteExecution:
    return ConcreteExecution(
        shard_id=0,
        domain_id="domain-1",
        workflow_id=workflow_id,
        run_id=f"{workflow_id}-run",
        state=WorkflowState.RUNNING,
        close_status=CloseStatus.NONE,
        branch_token=b"legacy",
    )


class TestDeleteWorkflow:
    def test_deletes_history_execution_and_current(self, db: ScanDB, retry_manager: RetryManager) -> None:
        execution = add_execution(db, workflow_id="wf-1", run_id="run-1", number_of_shards=SHARDS)

        result = delete_workflow(
            db, retry_manager, number_of_shards=SHARDS, domain_id="domain-1", workflow_id="wf-1", run_id="run-1"
        )

        assert result.shard_id == execution.shard_id
        assert (result.branches_deleted, result.execution_deleted, result.current_deleted) == (1, True, True)
        assert result.errors == []
        with db.open_execution_store(execution.shard_id) as store:
            assert store.is_concrete_execution_exists("domain-1", "wf-1", "run-1") is False
            with pytest.raises(EntityNotExistsError):
                store.get_current_execution("domain-1", "wf-1")
        with db.open_history_store(execution.shard_id) as history, pytest.raises(EntityNotExistsError):
            history.read_history_branch(execution.branch_tokens()[0], 1, 10, page_size=1)

    def test_missing_execution_raises(self, db: ScanDB, retry_manager: RetryManager) -> None:
        with pytest.raises(EntityNotExistsError):
            delete_workflow(
                db, retry_manager, number_of_shards=SHARDS, domain_id="domain-1", workflow_id="nope", run_id="r"
            )

    def test_step_failure_propagates_without_skip_errors(self) -> None:
        history = FakeHistoryStore({b"legacy": [HistoryEvent(1, 1, b"")]})
        history.fail("delete_history_branch", *[TransientStoreError("down")] * 3)
        store = FakeExecutionStore(0, executions=[legacy("wf-1")])
        factory = FakeStoreFactory({0: store}, history)

        with pytest.raises(TransientStoreError):
            delete_workflow(
                factory, make_retry_manager(), number_of_shards=1, domain_id="domain-1", workflow_id="wf-1", run_id="wf-1-run"
            )

        assert store.executions != []

    def test_skip_errors_continues_with_next_step(self) -> None:
        history = FakeHistoryStore({b"legacy": [HistoryEvent(1, 1, b"")]})
        history.fail("delete_history_branch", *[TransientStoreError("down")] * 3)
        store = FakeExecutionStore(0, executions=[legacy("wf-1")])
        factory = FakeStoreFactory({0: store}, history)

        result = delete_workflow(
            factory,
            make_retry_manager(),
            number_of_shards=1,
            domain_id="domain-1",
            workflow_id="wf-1",
            run_id="wf-1-run",
            skip_errors=True,
        )

        assert result.branches_deleted == 0
        assert result.execution_deleted is True
        assert result.current_deleted is True
        assert result.errors == ["delete_history_branch: down"]
        assert store.executions == []
