# src/shardscan/engine/maintenance.py
"""Local deletion of one workflow execution.

Order matters: history branches first, then the execution row, then the
current-run pointer. A crash part-way leaves an execution without history
(which history_exists reports) rather than history nobody references.
"""

from dataclasses import dataclass, field

import structlog

from shardscan.contracts import StoreError
from shardscan.core.logging import get_logger
from shardscan.core.persistence.protocols import StoreFactory
from shardscan.core.persistence.retryer import PersistenceRetryer
from shardscan.core.sharding import workflow_id_to_shard
from shardscan.engine.retry import RetryManager

logger = get_logger(__name__)


@dataclass
class DeleteResult:
    """What delete_workflow removed and which steps failed."""

    shard_id: int
    branches_deleted: int = 0
    execution_deleted: bool = False
    current_deleted: bool = False
    errors: list[str] = field(default_factory=list)


def delete_workflow(
    store_factory: StoreFactory,
    retry_manager: RetryManager,
    *,
    number_of_shards: int,
    domain_id: str,
    workflow_id: str,
    run_id: str,
    skip_errors: bool = False,
) -> DeleteResult:
    """Delete an execution, its history branches and its current-run pointer.

    With skip_errors, a failing step is logged and recorded and deletion
    continues with the next step; otherwise the first error propagates.

    Raises:
        EntityNotExistsError: If the execution does not exist
        StoreError: If a delete step fails and skip_errors is False
    """
    shard_id = workflow_id_to_shard(workflow_id, number_of_shards)
    result = DeleteResult(shard_id=shard_id)

    with (
        structlog.contextvars.bound_contextvars(shard_id=shard_id, workflow_id=workflow_id, run_id=run_id),
        store_factory.open_execution_store(shard_id) as execution_store,
        store_factory.open_history_store(shard_id) as history_store,
    ):
        retryer = PersistenceRetryer(execution_store, history_store, retry_manager)
        execution = retryer.get_concrete_execution(domain_id, workflow_id, run_id)

        for token in execution.branch_tokens():
            try:
                retryer.delete_history_branch(token)
            except StoreError as e:
                _handle_step_error("delete_history_branch", e, result, skip_errors)
                continue
            result.branches_deleted += 1

        try:
            retryer.delete_workflow_execution(domain_id, workflow_id, run_id)
            result.execution_deleted = True
        except StoreError as e:
            _handle_step_error("delete_workflow_execution", e, result, skip_errors)

        try:
            retryer.delete_current_workflow_execution(domain_id, workflow_id, run_id)
            result.current_deleted = True
        except StoreError as e:
            _handle_step_error("delete_current_workflow_execution", e, result, skip_errors)

    logger.info(
        "Workflow execution deleted",
        shard_id=shard_id,
        branches_deleted=result.branches_deleted,
        errors=len(result.errors),
    )
    return result


def _handle_step_error(step: str, error: StoreError, result: DeleteResult, skip_errors: bool) -> None:
    if not skip_errors:
        raise error
    logger.warning("Delete step failed, continuing", step=step, error=str(error), error_type=type(error).__name__)
    result.errors.append(f"{step}: {error}")
