# src/shardscan/invariants/builtin.py
"""Built-in structural invariants.

These check shape, not business rules: that pointers between the
execution, current-run, history and domain records resolve.
"""

from shardscan.contracts import (
    CheckResult,
    ConcreteExecution,
    CurrentExecution,
    DomainStatus,
    EntityNotExistsError,
    Execution,
    InvariantCollection,
    ScanType,
    StoreError,
)
from shardscan.invariants.base import BaseInvariant
from shardscan.invariants.hookspecs import hookimpl

# Upper bound (exclusive) for "any event on the branch"
_MAX_EVENT_ID = 2**63 - 1


def is_missing_version_histories(execution: ConcreteExecution) -> bool:
    """The pre-versioning signature: still open but no version histories.

    Shared by the missing_version_histories invariant and the shard-range
    scan so both flag exactly the same executions.
    """
    return execution.is_open() and execution.version_histories is None


class HistoryExistsInvariant(BaseInvariant):
    """Every history pointer must resolve to a branch with at least one event."""

    name = "history_exists"
    collection = InvariantCollection.HISTORY
    scan_types = frozenset({ScanType.CONCRETE_EXECUTION})

    def check(self, execution: Execution) -> CheckResult:
        if not isinstance(execution, ConcreteExecution):
            return self.unsupported(execution)

        branch_tokens = execution.branch_tokens()
        if not branch_tokens:
            return self.corrupted("execution has no history branch")

        for index, token in enumerate(branch_tokens):
            try:
                page = self._retryer.read_history_branch(token, 1, _MAX_EVENT_ID, page_size=1)
            except EntityNotExistsError as e:
                return self.corrupted("history branch does not exist", branch_index=index, error=str(e))
            except StoreError as e:
                return self.failed("failed to read history branch", e)
            if not page.events:
                return self.corrupted("history branch has no events", branch_index=index)
        return self.healthy()


class OpenCurrentExecutionInvariant(BaseInvariant):
    """An open execution must be the current run of its workflow."""

    name = "open_current_execution"
    collection = InvariantCollection.MUTABLE_STATE
    scan_types = frozenset({ScanType.CONCRETE_EXECUTION})

    def check(self, execution: Execution) -> CheckResult:
        if not isinstance(execution, ConcreteExecution):
            return self.unsupported(execution)
        if not execution.is_open():
            return self.healthy()

        try:
            current = self._retryer.get_current_execution(execution.domain_id, execution.workflow_id)
        except EntityNotExistsError:
            return self.corrupted("open execution has no current execution")
        except StoreError as e:
            return self.failed("failed to fetch current execution", e)

        if current.current_run_id != execution.run_id:
            return self.corrupted(
                "open execution is not the current run",
                current_run_id=current.current_run_id,
            )
        return self.healthy()


class InactiveDomainInvariant(BaseInvariant):
    """The owning domain must exist and be registered."""

    name = "inactive_domain"
    collection = InvariantCollection.DOMAIN
    scan_types = frozenset({ScanType.CONCRETE_EXECUTION, ScanType.CURRENT_EXECUTION})

    def check(self, execution: Execution) -> CheckResult:
        try:
            domain = self._domains.get_domain_by_id(execution.domain_id)
        except EntityNotExistsError:
            return self.corrupted("domain does not exist", domain_id=execution.domain_id)
        except StoreError as e:
            return self.failed("failed to fetch domain", e)

        if domain.status != DomainStatus.REGISTERED:
            return self.corrupted("domain is not active", domain_name=domain.name, domain_status=domain.status.value)
        return self.healthy()


class MissingVersionHistoriesInvariant(BaseInvariant):
    name = "missing_version_histories"
    collection = InvariantCollection.VERSION_HISTORIES
    scan_types = frozenset({ScanType.CONCRETE_EXECUTION})

    def check(self, execution: Execution) -> CheckResult:
        if not isinstance(execution, ConcreteExecution):
            return self.unsupported(execution)
        if is_missing_version_histories(execution):
            return self.corrupted("open execution has no version histories")
        return self.healthy()


class ConcreteExecutionExistsInvariant(BaseInvariant):
    """A current-run pointer must point at an existing execution."""

    name = "concrete_execution_exists"
    collection = InvariantCollection.MUTABLE_STATE
    scan_types = frozenset({ScanType.CURRENT_EXECUTION})

    def check(self, execution: Execution) -> CheckResult:
        if not isinstance(execution, CurrentExecution):
            return self.unsupported(execution)

        try:
            exists = self._retryer.is_concrete_execution_exists(
                execution.domain_id, execution.workflow_id, execution.current_run_id
            )
        except StoreError as e:
            return self.failed("failed to check concrete execution", e)

        if not exists:
            return self.corrupted("current execution points at a missing run", run_id=execution.current_run_id)
        return self.healthy()


BUILTIN_INVARIANTS: tuple[type[BaseInvariant], ...] = (
    HistoryExistsInvariant,
    OpenCurrentExecutionInvariant,
    ConcreteExecutionExistsInvariant,
    InactiveDomainInvariant,
    MissingVersionHistoriesInvariant,
)


class BuiltinInvariants:
    """Hook implementer registering the built-in invariants."""

    @hookimpl
    def shardscan_get_invariants(self) -> list[type[BaseInvariant]]:
        return list(BUILTIN_INVARIANTS)
