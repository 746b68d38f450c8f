"""All status codes, modes, and kinds used across subsystem boundaries.

Values stored in the execution store are converted to these enums by the
repository layer. An unknown value read back from our own store is a bug,
so conversion crashes rather than defaulting.
"""

from enum import IntEnum, StrEnum


class CloseStatus(IntEnum):
    """Close status of a workflow execution.

    Stored in the database (executions.close_status).
    NONE means the execution has not closed yet.
    """

    NONE = 0
    COMPLETED = 1
    FAILED = 2
    CANCELED = 3
    TERMINATED = 4
    CONTINUED_AS_NEW = 5
    TIMED_OUT = 6


class WorkflowState(StrEnum):
    """Lifecycle state of a workflow execution row.

    Stored in the database (executions.state).
    """

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    ZOMBIE = "zombie"
    VOID = "void"
    CORRUPTED = "corrupted"


class DomainStatus(StrEnum):
    """Registration status of a domain.

    Stored in the database (domains.status).
    """

    REGISTERED = "registered"
    DEPRECATED = "deprecated"
    DELETED = "deleted"


class CheckResultType(StrEnum):
    """Outcome of one invariant check.

    FAILED means the check could not be completed. It is never evidence
    that the execution is healthy.
    """

    HEALTHY = "healthy"
    CORRUPTED = "corrupted"
    FAILED = "failed"

    @property
    def severity(self) -> int:
        """Rank used to aggregate results: FAILED > CORRUPTED > HEALTHY."""
        return _SEVERITY[self]


_SEVERITY: dict[CheckResultType, int] = {
    CheckResultType.HEALTHY: 0,
    CheckResultType.CORRUPTED: 1,
    CheckResultType.FAILED: 2,
}


class InvariantCollection(StrEnum):
    """Named groups of invariants.

    Callers select collections instead of individual invariant names.
    """

    MUTABLE_STATE = "mutable_state"
    HISTORY = "history"
    DOMAIN = "domain"
    VERSION_HISTORIES = "version_histories"


class ScanType(StrEnum):
    """Kind of entity a targeted scan fetches and checks."""

    CONCRETE_EXECUTION = "concrete_execution"
    CURRENT_EXECUTION = "current_execution"


class ScanState(StrEnum):
    """Lifecycle of one orchestrator invocation.

    There is no transition out of COMPLETED or ABORTED. A re-run starts
    a fresh scan.
    """

    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    ABORTED = "aborted"
