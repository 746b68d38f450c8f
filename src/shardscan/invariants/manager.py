# src/shardscan/invariants/manager.py
"""InvariantManager: runs an ordered set of invariants on one execution.

Every invariant runs, even after one reports CORRUPTED or FAILED, so the
output always carries the full picture for the execution. The manager
does not retry; resilience belongs to the store accessor the invariants
were built with.

Aggregation:
- FAILED if any result is FAILED
- else CORRUPTED if any result is CORRUPTED
- else HEALTHY (also for an empty invariant set)
"""

from collections.abc import Sequence

from shardscan.contracts import CheckResult, CheckResultType, Execution, ManagerCheckResult
from shardscan.contracts.errors import describe_error
from shardscan.core.logging import get_logger
from shardscan.invariants.base import Invariant

logger = get_logger(__name__)


def aggregate_results(results: Sequence[CheckResult]) -> ManagerCheckResult:
    """Combine individual results into one verdict.

    determining_invariant_name is the first invariant (in run order) whose
    result equals the overall status, or None when HEALTHY.
    """
    overall = CheckResultType.HEALTHY
    for result in results:
        if result.check_result_type.severity > overall.severity:
            overall = result.check_result_type

    determining: str | None = None
    if overall != CheckResultType.HEALTHY:
        determining = next(r.invariant_name for r in results if r.check_result_type == overall)

    return ManagerCheckResult(
        check_result_type=overall,
        determining_invariant_name=determining,
        check_results=tuple(results),
    )


class InvariantManager:
    """Runs invariants in order and aggregates their results."""

    def __init__(self, invariants: Sequence[Invariant]) -> None:
        self._invariants = tuple(invariants)

    @property
    def invariants(self) -> tuple[Invariant, ...]:
        return self._invariants

    def run_checks(self, execution: Execution) -> ManagerCheckResult:
        results: list[CheckResult] = []
        for invariant in self._invariants:
            try:
                result = invariant.check(execution)
            except Exception as e:
                # An invariant that crashes could not evaluate its rule
                logger.warning(
                    "Invariant raised",
                    invariant=invariant.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result = CheckResult(
                    CheckResultType.FAILED,
                    invariant.name,
                    info="invariant raised an exception",
                    info_details=dict(describe_error(e)),
                )
            results.append(result)
        return aggregate_results(results)
