"""Repository layer for execution store rows.

Handles the seam between SQLAlchemy rows (strings, ints, JSON text) and
domain objects (strict enum types). The store is written by the workflow
service, so a value we cannot convert is reported as corruption-level
data: the conversion raises StoreDataError instead of guessing.
"""

import base64
import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.engine import Row as SARow

from shardscan.contracts import (
    CloseStatus,
    ConcreteExecution,
    CurrentExecution,
    DomainInfo,
    DomainStatus,
    HistoryEvent,
    StoreDataError,
    VersionHistories,
    VersionHistory,
    VersionHistoryItem,
    WorkflowState,
)

# binascii.Error and json.JSONDecodeError are both ValueError subclasses
_DECODE_ERRORS = (ValueError, KeyError, TypeError)


@contextmanager
def _decoding(table: str, **identifiers: Any) -> Iterator[None]:
    try:
        yield
    except _DECODE_ERRORS as e:
        raise StoreDataError(f"Undecodable {table} row {identifiers}: {type(e).__name__}: {e}", **identifiers) from e


def dump_version_histories(histories: VersionHistories) -> str:
    """Serialize version histories for the version_histories_json column."""
    return json.dumps(
        {
            "current_index": histories.current_index,
            "histories": [
                {
                    "branch_token": base64.b64encode(history.branch_token).decode("ascii"),
                    "items": [[item.event_id, item.version] for item in history.items],
                }
                for history in histories.histories
            ],
        },
        sort_keys=True,
    )


def load_version_histories(raw: str) -> VersionHistories:
    """Parse the version_histories_json column.

    Raises:
        ValueError: If the JSON does not have the expected shape
        KeyError: If a required field is absent
    """
    payload = json.loads(raw)
    if type(payload) is not dict:
        raise ValueError(f"version_histories_json must decode to dict, got {type(payload).__name__}")
    histories = []
    for idx, entry in enumerate(payload["histories"]):
        if type(entry) is not dict:
            raise ValueError(f"version_histories_json.histories[{idx}] must be object, got {type(entry).__name__}")
        histories.append(
            VersionHistory(
                branch_token=base64.b64decode(entry["branch_token"]),
                items=tuple(VersionHistoryItem(event_id=int(e), version=int(v)) for e, v in entry["items"]),
            )
        )
    return VersionHistories(current_index=int(payload["current_index"]), histories=tuple(histories))


class ConcreteExecutionRepository:
    """Repository for executions rows."""

    def load(self, row: SARow[Any]) -> ConcreteExecution:
        """Load ConcreteExecution from database row.

        Converts state and close_status to enums and parses version histories.

        Raises:
            StoreDataError: If any column fails conversion
        """
        with _decoding(
            "executions",
            shard_id=row.shard_id,
            domain_id=row.domain_id,
            workflow_id=row.workflow_id,
            run_id=row.run_id,
        ):
            # Explicit is not None check - an empty string must fail parsing, not become None
            version_histories = load_version_histories(row.version_histories_json) if row.version_histories_json is not None else None
            return ConcreteExecution(
                shard_id=row.shard_id,
                domain_id=row.domain_id,
                workflow_id=row.workflow_id,
                run_id=row.run_id,
                state=WorkflowState(row.state),
                close_status=CloseStatus(row.close_status),
                branch_token=row.branch_token,
                version_histories=version_histories,
            )


class CurrentExecutionRepository:
    """Repository for current_executions rows."""

    def load(self, row: SARow[Any]) -> CurrentExecution:
        with _decoding("current_executions", shard_id=row.shard_id, domain_id=row.domain_id, workflow_id=row.workflow_id):
            return CurrentExecution(
                shard_id=row.shard_id,
                domain_id=row.domain_id,
                workflow_id=row.workflow_id,
                current_run_id=row.run_id,
                state=WorkflowState(row.state),
                close_status=CloseStatus(row.close_status),
            )


class DomainRepository:
    """Repository for domains rows."""

    def load(self, row: SARow[Any]) -> DomainInfo:
        with _decoding("domains", domain_id=row.domain_id):
            return DomainInfo(domain_id=row.domain_id, name=row.name, status=DomainStatus(row.status))


class HistoryEventRepository:
    """Repository for history_nodes rows."""

    def load(self, row: SARow[Any]) -> HistoryEvent:
        return HistoryEvent(event_id=row.event_id, version=row.version, data=row.data)
