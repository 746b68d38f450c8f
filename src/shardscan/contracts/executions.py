"""Execution contracts: references, snapshots, and store pages.

Snapshots are read-only to the invariant layer. They are produced fresh
by a fetch for each evaluation and never cached across invocations.
"""

import base64
from dataclasses import dataclass, field
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from shardscan.contracts.enums import CloseStatus, DomainStatus, WorkflowState


def encode_token(token: bytes | None) -> str | None:
    """Render an opaque byte token for JSON output."""
    if token is None:
        return None
    return base64.b64encode(token).decode("ascii")


class ExecutionRequest(BaseModel):
    """One line of targeted-scan input.

    External data, so it is validated here. Key spellings follow the ones
    operators paste from other tools (domainID, DomainID, domain_id).
    """

    model_config = {"frozen": True, "extra": "ignore"}

    domain_id: str = Field(
        default="",
        validation_alias=AliasChoices("domainID", "DomainID", "domain_id", "domainId"),
    )
    workflow_id: str = Field(
        validation_alias=AliasChoices("workflowID", "WorkflowID", "workflow_id", "workflowId"),
    )
    run_id: str = Field(
        default="",
        validation_alias=AliasChoices("runID", "RunID", "run_id", "runId"),
    )

    @field_validator("workflow_id")
    @classmethod
    def validate_workflow_id(cls, v: str) -> str:
        """Workflow id drives shard mapping, so it cannot be blank."""
        if not v.strip():
            raise ValueError("workflow_id must not be empty")
        return v


@dataclass(frozen=True, slots=True)
class ExecutionReference:
    """Identifies one workflow execution and the shard it lives in."""

    shard_id: int
    domain_id: str
    workflow_id: str
    run_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "shard_id": self.shard_id,
            "domain_id": self.domain_id,
            "workflow_id": self.workflow_id,
            "run_id": self.run_id,
        }


@dataclass(frozen=True, slots=True)
class VersionHistoryItem:
    """Last event id written at a given failover version."""

    event_id: int
    version: int


@dataclass(frozen=True, slots=True)
class VersionHistory:
    """One history branch plus its version items."""

    branch_token: bytes
    items: tuple[VersionHistoryItem, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch_token": encode_token(self.branch_token),
            "items": [{"event_id": item.event_id, "version": item.version} for item in self.items],
        }


@dataclass(frozen=True, slots=True)
class VersionHistories:
    """All version histories of an execution."""

    current_index: int
    histories: tuple[VersionHistory, ...]

    def __post_init__(self) -> None:
        if self.histories and not 0 <= self.current_index < len(self.histories):
            raise ValueError(f"current_index {self.current_index} out of range for {len(self.histories)} histories")

    def current(self) -> VersionHistory:
        """Return the current version history."""
        return self.histories[self.current_index]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_index": self.current_index,
            "histories": [history.to_dict() for history in self.histories],
        }


@dataclass(frozen=True, slots=True)
class ConcreteExecution:
    """Snapshot of one execution row.

    branch_token is the pre-versioning history pointer. version_histories
    is None for executions written before the history-versioning
    migration.
    """

    shard_id: int
    domain_id: str
    workflow_id: str
    run_id: str
    state: WorkflowState
    close_status: CloseStatus
    branch_token: bytes | None = None
    version_histories: VersionHistories | None = None

    @property
    def reference(self) -> ExecutionReference:
        return ExecutionReference(self.shard_id, self.domain_id, self.workflow_id, self.run_id)

    def is_open(self) -> bool:
        return self.close_status == CloseStatus.NONE

    def branch_tokens(self) -> list[bytes]:
        """Every history pointer of this execution.

        When version histories are present they hold all branches and the
        legacy token is ignored.
        """
        if self.version_histories is not None:
            return [history.branch_token for history in self.version_histories.histories]
        if self.branch_token is not None:
            return [self.branch_token]
        return []

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.reference.to_dict(),
            "state": self.state.value,
            "close_status": int(self.close_status),
            "branch_token": encode_token(self.branch_token),
            "version_histories": self.version_histories.to_dict() if self.version_histories is not None else None,
        }


@dataclass(frozen=True, slots=True)
class CurrentExecution:
    """Snapshot of the current-run pointer of a workflow."""

    shard_id: int
    domain_id: str
    workflow_id: str
    current_run_id: str
    state: WorkflowState
    close_status: CloseStatus

    @property
    def reference(self) -> ExecutionReference:
        return ExecutionReference(self.shard_id, self.domain_id, self.workflow_id, self.current_run_id)

    def is_open(self) -> bool:
        return self.close_status == CloseStatus.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "shard_id": self.shard_id,
            "domain_id": self.domain_id,
            "workflow_id": self.workflow_id,
            "current_run_id": self.current_run_id,
            "state": self.state.value,
            "close_status": int(self.close_status),
        }


# Anything a fetcher may hand to invariants
Execution = ConcreteExecution | CurrentExecution


@dataclass(frozen=True, slots=True)
class DomainInfo:
    """Registration record of a domain."""

    domain_id: str
    name: str
    status: DomainStatus


@dataclass(frozen=True, slots=True)
class HistoryEvent:
    """One stored history event."""

    event_id: int
    version: int
    data: bytes


@dataclass(frozen=True, slots=True)
class ListConcreteExecutionsPage:
    """One page of executions; an empty token means the shard is exhausted."""

    executions: list[ConcreteExecution] = field(default_factory=list)
    next_page_token: bytes = b""


@dataclass(frozen=True, slots=True)
class ListCurrentExecutionsPage:
    """One page of current-run pointers."""

    executions: list[CurrentExecution] = field(default_factory=list)
    next_page_token: bytes = b""


@dataclass(frozen=True, slots=True)
class HistoryBranchPage:
    """One page of events read from a history branch."""

    events: list[HistoryEvent] = field(default_factory=list)
    next_page_token: bytes = b""
