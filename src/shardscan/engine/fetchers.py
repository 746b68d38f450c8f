# src/shardscan/engine/fetchers.py
"""Per-scan-type snapshot fetchers for the targeted scan.

A fetcher turns one input request into the snapshot the invariants check.
Store errors propagate; the scanner decides to skip the execution.
"""

from collections.abc import Callable

from shardscan.contracts import ConcreteExecution, CurrentExecution, Execution, ExecutionRequest, ScanType
from shardscan.core.persistence.retryer import PersistenceRetryer

Fetcher = Callable[[PersistenceRetryer, ExecutionRequest], Execution]


def fetch_concrete_execution(retryer: PersistenceRetryer, request: ExecutionRequest) -> ConcreteExecution:
    """Fetch one execution row. An empty run id means the current run."""
    run_id = request.run_id
    if not run_id:
        run_id = retryer.get_current_execution(request.domain_id, request.workflow_id).current_run_id
    return retryer.get_concrete_execution(request.domain_id, request.workflow_id, run_id)


def fetch_current_execution(retryer: PersistenceRetryer, request: ExecutionRequest) -> CurrentExecution:
    return retryer.get_current_execution(request.domain_id, request.workflow_id)


_FETCHERS: dict[ScanType, Fetcher] = {
    ScanType.CONCRETE_EXECUTION: fetch_concrete_execution,
    ScanType.CURRENT_EXECUTION: fetch_current_execution,
}


def get_fetcher(scan_type: ScanType) -> Fetcher:
    return _FETCHERS[scan_type]
