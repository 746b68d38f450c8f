"""Check results, scan output records, and orchestrator summaries."""

from dataclasses import dataclass, field
from typing import Any

from shardscan.contracts.enums import CheckResultType, ScanState
from shardscan.contracts.executions import Execution


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Outcome of one invariant against one execution.

    info is a human-readable description for CORRUPTED and FAILED results.
    info_details carries structured context (e.g. the underlying error).
    """

    check_result_type: CheckResultType
    invariant_name: str
    info: str = ""
    info_details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_result_type": self.check_result_type.value,
            "invariant_name": self.invariant_name,
            "info": self.info,
            "info_details": self.info_details,
        }


@dataclass(frozen=True, slots=True)
class ManagerCheckResult:
    """Aggregated verdict for one execution.

    check_results keeps every individual result in invariant order.
    determining_invariant_name is the first invariant whose result equals
    the overall status, or None when the execution is healthy.
    """

    check_result_type: CheckResultType
    determining_invariant_name: str | None
    check_results: tuple[CheckResult, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "check_result_type": self.check_result_type.value,
            "determining_invariant_name": self.determining_invariant_name,
            "check_results": [result.to_dict() for result in self.check_results],
        }


@dataclass(frozen=True, slots=True)
class ScanOutputEntity:
    """One emitted record: the execution and its verdict."""

    execution: Execution
    result: ManagerCheckResult

    def to_dict(self) -> dict[str, Any]:
        return {"execution": self.execution.to_dict(), "result": self.result.to_dict()}


@dataclass
class ScanProgress:
    """Where an orchestrator is in its state machine.

    position is the input record index for the targeted scan and
    (shard_id, page_token) for the range scan.
    """

    state: ScanState = ScanState.IDLE
    position: Any = None
    error: BaseException | None = None


@dataclass
class TargetedScanResult:
    """Counters for a targeted scan."""

    scanned: int = 0
    healthy: int = 0
    corrupted: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, result: ManagerCheckResult) -> None:
        self.scanned += 1
        if result.check_result_type == CheckResultType.HEALTHY:
            self.healthy += 1
        elif result.check_result_type == CheckResultType.CORRUPTED:
            self.corrupted += 1
        else:
            self.failed += 1


@dataclass
class RangeScanResult:
    """Counters for a shard-range scan."""

    shards_scanned: int = 0
    executions_scanned: int = 0
    matches: int = 0
    failed_shards: list[int] = field(default_factory=list)

    def merge(self, shard: "RangeScanResult") -> None:
        """Fold one shard's counters into this total."""
        self.shards_scanned += shard.shards_scanned
        self.executions_scanned += shard.executions_scanned
        self.matches += shard.matches
        self.failed_shards.extend(shard.failed_shards)
