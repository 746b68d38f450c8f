"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core/engine.
Settings classes are NOT re-exported here - import them from
shardscan.core.config.

Import patterns:
    from shardscan.contracts import ConcreteExecution, CheckResultType
    from shardscan.core.config import ScanSettings
"""

from shardscan.contracts.enums import (
    CheckResultType,
    CloseStatus,
    DomainStatus,
    InvariantCollection,
    ScanState,
    ScanType,
    WorkflowState,
)
from shardscan.contracts.errors import (
    DeadlineExceededError,
    EntityNotExistsError,
    InvalidShardRangeError,
    PagingExhaustedError,
    ShardScanError,
    StoreDataError,
    StoreError,
    StoreValidationError,
    TransientStoreError,
)
from shardscan.contracts.executions import (
    ConcreteExecution,
    CurrentExecution,
    DomainInfo,
    Execution,
    ExecutionReference,
    ExecutionRequest,
    HistoryBranchPage,
    HistoryEvent,
    ListConcreteExecutionsPage,
    ListCurrentExecutionsPage,
    VersionHistories,
    VersionHistory,
    VersionHistoryItem,
)
from shardscan.contracts.results import (
    CheckResult,
    ManagerCheckResult,
    RangeScanResult,
    ScanOutputEntity,
    ScanProgress,
    TargetedScanResult,
)

__all__ = [
    "CheckResult",
    "CheckResultType",
    "CloseStatus",
    "ConcreteExecution",
    "CurrentExecution",
    "DeadlineExceededError",
    "DomainInfo",
    "DomainStatus",
    "EntityNotExistsError",
    "Execution",
    "ExecutionReference",
    "ExecutionRequest",
    "HistoryBranchPage",
    "HistoryEvent",
    "InvalidShardRangeError",
    "InvariantCollection",
    "ListConcreteExecutionsPage",
    "ListCurrentExecutionsPage",
    "ManagerCheckResult",
    "PagingExhaustedError",
    "RangeScanResult",
    "ScanOutputEntity",
    "ScanProgress",
    "ScanState",
    "ScanType",
    "ShardScanError",
    "StoreDataError",
    "StoreError",
    "StoreValidationError",
    "TargetedScanResult",
    "TransientStoreError",
    "VersionHistories",
    "VersionHistory",
    "VersionHistoryItem",
    "WorkflowState",
]
