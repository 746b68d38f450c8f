# src/shardscan/core/persistence/stores.py
"""SQL implementations of the execution, history, and domain stores.

Each handle owns one connection and is scoped to a single shard. Handles
are cheap to open and must be closed as soon as the shard (or the single
execution lookup) is done; no handle is held across unrelated shards.

Driver-level connectivity errors are translated to TransientStoreError at
this boundary so the retryer can classify them without knowing SQLAlchemy.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Self

from sqlalchemy import and_, delete, select, tuple_
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from shardscan.contracts import (
    ConcreteExecution,
    CurrentExecution,
    DomainInfo,
    EntityNotExistsError,
    HistoryBranchPage,
    ListConcreteExecutionsPage,
    ListCurrentExecutionsPage,
    StoreValidationError,
    TransientStoreError,
)
from shardscan.core.persistence.repositories import (
    ConcreteExecutionRepository,
    CurrentExecutionRepository,
    DomainRepository,
    HistoryEventRepository,
)
from shardscan.core.persistence.schema import (
    current_executions_table,
    domains_table,
    executions_table,
    history_branches_table,
    history_nodes_table,
)
from shardscan.core.persistence.tokens import (
    decode_branch_token,
    decode_page_token,
    encode_page_token,
)
from shardscan.engine.deadline import check_deadline

_TRANSIENT_ERRORS = (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)

_CONCRETE_PAGE_KIND = "concrete_executions"
_CURRENT_PAGE_KIND = "current_executions"
_HISTORY_PAGE_KIND = "history_nodes"

_CONCRETE_CURSOR = {"domain_id": str, "workflow_id": str, "run_id": str}
_CURRENT_CURSOR = {"domain_id": str, "workflow_id": str}
_HISTORY_CURSOR = {"event_id": int}


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    check_deadline()
    try:
        yield
    except _TRANSIENT_ERRORS as e:
        raise TransientStoreError(f"{operation} failed: {e}") from e


def _validate_page_size(page_size: int) -> None:
    if page_size <= 0:
        raise StoreValidationError(f"page_size must be > 0, got {page_size}")


class _ConnectionHandle:
    """One connection, released by close() or on context exit."""

    def __init__(self, engine: Engine) -> None:
        with _translate_errors("connect"):
            self._conn: Connection | None = engine.connect()

    @property
    def connection(self) -> Connection:
        if self._conn is None:
            raise RuntimeError(f"{type(self).__name__} is closed")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()


class SQLExecutionStore(_ConnectionHandle):
    """Execution store handle scoped to one shard."""

    def __init__(self, engine: Engine, shard_id: int) -> None:
        super().__init__(engine)
        self._shard_id = shard_id
        self._executions = ConcreteExecutionRepository()
        self._current = CurrentExecutionRepository()

    @property
    def shard_id(self) -> int:
        return self._shard_id

    def get_concrete_execution(self, domain_id: str, workflow_id: str, run_id: str) -> ConcreteExecution:
        conn = self.connection
        query = select(executions_table).where(
            executions_table.c.shard_id == self._shard_id,
            executions_table.c.domain_id == domain_id,
            executions_table.c.workflow_id == workflow_id,
            executions_table.c.run_id == run_id,
        )
        with _translate_errors("get_concrete_execution"), conn.begin():
            row = conn.execute(query).first()
        if row is None:
            raise EntityNotExistsError(
                f"Execution not found: shard={self._shard_id} workflow_id={workflow_id} run_id={run_id}",
                shard_id=self._shard_id,
                domain_id=domain_id,
                workflow_id=workflow_id,
                run_id=run_id,
            )
        return self._executions.load(row)

    def get_current_execution(self, domain_id: str, workflow_id: str) -> CurrentExecution:
        conn = self.connection
        query = select(current_executions_table).where(
            current_executions_table.c.shard_id == self._shard_id,
            current_executions_table.c.domain_id == domain_id,
            current_executions_table.c.workflow_id == workflow_id,
        )
        with _translate_errors("get_current_execution"), conn.begin():
            row = conn.execute(query).first()
        if row is None:
            raise EntityNotExistsError(
                f"Current execution not found: shard={self._shard_id} workflow_id={workflow_id}",
                shard_id=self._shard_id,
                domain_id=domain_id,
                workflow_id=workflow_id,
            )
        return self._current.load(row)

    def is_concrete_execution_exists(self, domain_id: str, workflow_id: str, run_id: str) -> bool:
        conn = self.connection
        query = select(executions_table.c.run_id).where(
            executions_table.c.shard_id == self._shard_id,
            executions_table.c.domain_id == domain_id,
            executions_table.c.workflow_id == workflow_id,
            executions_table.c.run_id == run_id,
        )
        with _translate_errors("is_concrete_execution_exists"), conn.begin():
            return conn.execute(query).first() is not None

    def list_concrete_executions(self, page_size: int, page_token: bytes) -> ListConcreteExecutionsPage:
        """List one page of executions in this shard.

        Keyset-paginated on (domain_id, workflow_id, run_id), so rows
        inserted behind the cursor during a scan are never re-listed.
        """
        _validate_page_size(page_size)
        cursor = decode_page_token(page_token, kind=_CONCRETE_PAGE_KIND, fields=_CONCRETE_CURSOR)
        t = executions_table
        query = select(t).where(t.c.shard_id == self._shard_id)
        if cursor is not None:
            query = query.where(
                tuple_(t.c.domain_id, t.c.workflow_id, t.c.run_id)
                > tuple_(cursor["domain_id"], cursor["workflow_id"], cursor["run_id"])
            )
        query = query.order_by(t.c.domain_id, t.c.workflow_id, t.c.run_id).limit(page_size + 1)

        conn = self.connection
        with _translate_errors("list_concrete_executions"), conn.begin():
            rows = conn.execute(query).fetchall()

        next_token = b""
        if len(rows) > page_size:
            rows = rows[:page_size]
            last = rows[-1]
            next_token = encode_page_token(
                _CONCRETE_PAGE_KIND,
                {"domain_id": last.domain_id, "workflow_id": last.workflow_id, "run_id": last.run_id},
            )
        return ListConcreteExecutionsPage(
            executions=[self._executions.load(row) for row in rows],
            next_page_token=next_token,
        )

    def list_current_executions(self, page_size: int, page_token: bytes) -> ListCurrentExecutionsPage:
        _validate_page_size(page_size)
        cursor = decode_page_token(page_token, kind=_CURRENT_PAGE_KIND, fields=_CURRENT_CURSOR)
        t = current_executions_table
        query = select(t).where(t.c.shard_id == self._shard_id)
        if cursor is not None:
            query = query.where(tuple_(t.c.domain_id, t.c.workflow_id) > tuple_(cursor["domain_id"], cursor["workflow_id"]))
        query = query.order_by(t.c.domain_id, t.c.workflow_id).limit(page_size + 1)

        conn = self.connection
        with _translate_errors("list_current_executions"), conn.begin():
            rows = conn.execute(query).fetchall()

        next_token = b""
        if len(rows) > page_size:
            rows = rows[:page_size]
            last = rows[-1]
            next_token = encode_page_token(_CURRENT_PAGE_KIND, {"domain_id": last.domain_id, "workflow_id": last.workflow_id})
        return ListCurrentExecutionsPage(
            executions=[self._current.load(row) for row in rows],
            next_page_token=next_token,
        )

    def delete_workflow_execution(self, domain_id: str, workflow_id: str, run_id: str) -> None:
        """Delete one execution row. Deleting a missing row is a no-op."""
        conn = self.connection
        stmt = delete(executions_table).where(
            executions_table.c.shard_id == self._shard_id,
            executions_table.c.domain_id == domain_id,
            executions_table.c.workflow_id == workflow_id,
            executions_table.c.run_id == run_id,
        )
        with _translate_errors("delete_workflow_execution"), conn.begin():
            conn.execute(stmt)

    def delete_current_workflow_execution(self, domain_id: str, workflow_id: str, run_id: str) -> None:
        """Delete the current-run pointer, only if it still points at run_id."""
        conn = self.connection
        stmt = delete(current_executions_table).where(
            current_executions_table.c.shard_id == self._shard_id,
            current_executions_table.c.domain_id == domain_id,
            current_executions_table.c.workflow_id == workflow_id,
            current_executions_table.c.run_id == run_id,
        )
        with _translate_errors("delete_current_workflow_execution"), conn.begin():
            conn.execute(stmt)


class SQLHistoryStore(_ConnectionHandle):
    """History branch store handle."""

    def __init__(self, engine: Engine, shard_id: int) -> None:
        super().__init__(engine)
        self._shard_id = shard_id
        self._events = HistoryEventRepository()

    def read_history_branch(
        self,
        branch_token: bytes,
        min_event_id: int,
        max_event_id: int,
        page_size: int,
        page_token: bytes = b"",
    ) -> HistoryBranchPage:
        """Read events in [min_event_id, max_event_id) from a branch.

        Raises:
            EntityNotExistsError: If the branch itself does not exist
            StoreValidationError: If a token is malformed
        """
        _validate_page_size(page_size)
        ref = decode_branch_token(branch_token)
        cursor = decode_page_token(page_token, kind=_HISTORY_PAGE_KIND, fields=_HISTORY_CURSOR)
        lower = min_event_id if cursor is None else max(min_event_id, cursor["event_id"] + 1)

        branch_query = select(history_branches_table.c.tree_id).where(
            history_branches_table.c.tree_id == ref.tree_id,
            history_branches_table.c.branch_id == ref.branch_id,
        )
        nodes = history_nodes_table
        events_query = (
            select(nodes)
            .where(
                and_(
                    nodes.c.tree_id == ref.tree_id,
                    nodes.c.branch_id == ref.branch_id,
                    nodes.c.event_id >= lower,
                    nodes.c.event_id < max_event_id,
                )
            )
            .order_by(nodes.c.event_id)
            .limit(page_size + 1)
        )

        conn = self.connection
        with _translate_errors("read_history_branch"), conn.begin():
            if conn.execute(branch_query).first() is None:
                raise EntityNotExistsError(
                    f"History branch not found: tree_id={ref.tree_id} branch_id={ref.branch_id}",
                    tree_id=ref.tree_id,
                    branch_id=ref.branch_id,
                )
            rows = conn.execute(events_query).fetchall()

        next_token = b""
        if len(rows) > page_size:
            rows = rows[:page_size]
            next_token = encode_page_token(_HISTORY_PAGE_KIND, {"event_id": rows[-1].event_id})
        return HistoryBranchPage(events=[self._events.load(row) for row in rows], next_page_token=next_token)

    def delete_history_branch(self, branch_token: bytes) -> None:
        """Delete a branch and its events. Deleting a missing branch is a no-op."""
        ref = decode_branch_token(branch_token)
        conn = self.connection
        with _translate_errors("delete_history_branch"), conn.begin():
            conn.execute(
                delete(history_nodes_table).where(
                    history_nodes_table.c.tree_id == ref.tree_id,
                    history_nodes_table.c.branch_id == ref.branch_id,
                )
            )
            conn.execute(
                delete(history_branches_table).where(
                    history_branches_table.c.tree_id == ref.tree_id,
                    history_branches_table.c.branch_id == ref.branch_id,
                )
            )


class SQLDomainStore:
    """Domain lookups; uses a short-lived connection per call."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._domains = DomainRepository()

    def get_domain_by_id(self, domain_id: str) -> DomainInfo:
        query = select(domains_table).where(domains_table.c.domain_id == domain_id)
        with _translate_errors("get_domain_by_id"), self._engine.connect() as conn:
            row: Any = conn.execute(query).first()
        if row is None:
            raise EntityNotExistsError(f"Domain not found: {domain_id}", domain_id=domain_id)
        return self._domains.load(row)
