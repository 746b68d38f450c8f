# tests/engine/test_scanner.py
"""Tests for the targeted scan orchestrator."""

import io
import json

import pytest

from shardscan.contracts import (
    CheckResultType,
    CloseStatus,
    ConcreteExecution,
    DomainStatus,
    ExecutionRequest,
    InvariantCollection,
    ScanState,
    ScanType,
    TransientStoreError,
    WorkflowState,
)
from shardscan.core.persistence import DomainCache, ScanDB
from shardscan.engine.retry import RetryManager
from shardscan.engine.scanner import ExecutionScanner, read_execution_requests
from shardscan.invariants import InvariantRegistry
from tests.conftest import make_retry_manager
from tests.helpers.seed import add_domain, add_execution, corrupt_execution
from tests.helpers.stores import FakeDomains, FakeExecutionStore, FakeStoreFactory

SHARDS = 4


@pytest.fixture
def registry() -> InvariantRegistry:
    registry = InvariantRegistry()
    registry.register_builtin_invariants()
    return registry


def make_scanner(
    db: ScanDB,
    registry: InvariantRegistry,
    retry_manager: RetryManager,
    scan_type: ScanType = ScanType.CONCRETE_EXECUTION,
) -> ExecutionScanner:
    return ExecutionScanner(
        db,
        DomainCache(db.domain_store(), retry_manager),
        number_of_shards=SHARDS,
        scan_type=scan_type,
        invariant_factories=registry.resolve(scan_type, list(InvariantCollection)),
        retry_manager=retry_manager,
    )


def request_line(workflow_id: str, run_id: str = "", domain_id: str = "domain-1") -> str:
    return json.dumps({"domainID": domain_id, "workflowID": workflow_id, "runID": run_id}) + "\n"


def output_records(output: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in output.getvalue().splitlines()]


class FailingWriter(io.StringIO):
    def write(self, s: str) -> int:
        raise OSError("disk full")


class TestReadExecutionRequests:
    def test_skips_malformed_and_blank_lines(self) -> None:
        lines = [request_line("wf-a", "r1"), "{not json\n", "\n", '{"domainID": "d"}\n', request_line("wf-b", "r2")]

        requests = list(read_execution_requests(lines))

        assert [r.workflow_id for r in requests] == ["wf-a", "wf-b"]

    def test_truncated_final_line_is_skipped(self) -> None:
        lines = [request_line("wf-a", "r1"), '{"domainID": "d", "workflowID": "wf-b", "ru']

        assert [r.workflow_id for r in read_execution_requests(lines)] == ["wf-a"]

    def test_line_cut_mid_character_is_skipped(self) -> None:
        lines = [request_line("wf-a", "r1").encode(), b'{"workflowID":"\xe2\x82']

        assert [r.workflow_id for r in read_execution_requests(lines)] == ["wf-a"]

    def test_invalid_utf8_line_does_not_stop_later_lines(self) -> None:
        lines = [b"\xff\xfe\n", request_line("wf-b", "r2").encode()]

        assert [r.workflow_id for r in read_execution_requests(lines)] == ["wf-b"]


class TestExecutionScanner:
    def test_healthy_executions(self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS)
        add_execution(db, workflow_id="wf-b", run_id="run-b", number_of_shards=SHARDS)
        output = io.StringIO()

        result = make_scanner(db, registry, retry_manager).scan(
            read_execution_requests([request_line("wf-a", "run-a"), request_line("wf-b", "run-b")]), output
        )

        records = output_records(output)
        assert [r["execution"]["workflow_id"] for r in records] == ["wf-a", "wf-b"]
        assert all(r["result"]["check_result_type"] == "healthy" for r in records)
        assert len(records[0]["result"]["check_results"]) == 4
        assert (result.scanned, result.healthy, result.skipped) == (2, 2, 0)

    def test_malformed_line_between_valid_requests(
        self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager
    ) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS)
        add_execution(db, workflow_id="wf-b", run_id="run-b", number_of_shards=SHARDS)
        lines = [request_line("wf-a", "run-a"), "garbage\n", request_line("wf-b", "run-b")]
        output = io.StringIO()

        make_scanner(db, registry, retry_manager).scan(read_execution_requests(lines), output)

        assert [r["execution"]["workflow_id"] for r in output_records(output)] == ["wf-a", "wf-b"]

    def test_corruption_is_reported(self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS, history_events=0)
        output = io.StringIO()

        result = make_scanner(db, registry, retry_manager).scan(read_execution_requests([request_line("wf-a", "run-a")]), output)

        [record] = output_records(output)
        assert record["result"]["check_result_type"] == "corrupted"
        assert record["result"]["determining_invariant_name"] == "history_exists"
        assert result.corrupted == 1

    def test_rerun_output_is_byte_identical(
        self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager
    ) -> None:
        add_domain(db, status=DomainStatus.DEPRECATED)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS, version_histories=False)
        lines = [request_line("wf-a", "run-a")]
        first, second = io.StringIO(), io.StringIO()

        scanner = make_scanner(db, registry, retry_manager)
        scanner.scan(read_execution_requests(lines), first)
        scanner.scan(read_execution_requests(lines), second)

        assert first.getvalue() == second.getvalue()
        assert first.getvalue().endswith("\n")

    def test_missing_execution_is_skipped(self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-b", run_id="run-b", number_of_shards=SHARDS)
        lines = [request_line("wf-missing", "run-x"), request_line("wf-b", "run-b")]
        output = io.StringIO()

        result = make_scanner(db, registry, retry_manager).scan(read_execution_requests(lines), output)

        assert [r["execution"]["workflow_id"] for r in output_records(output)] == ["wf-b"]
        assert (result.scanned, result.skipped) == (1, 1)

    @pytest.mark.parametrize(
        "columns",
        [{"close_status": 99}, {"version_histories_json": "{}"}],
    )
    def test_undecodable_execution_is_skipped(
        self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager, columns: dict
    ) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS)
        add_execution(db, workflow_id="wf-b", run_id="run-b", number_of_shards=SHARDS)
        corrupt_execution(db, workflow_id="wf-a", run_id="run-a", **columns)
        lines = [request_line("wf-a", "run-a"), request_line("wf-b", "run-b")]
        output = io.StringIO()
        scanner = make_scanner(db, registry, retry_manager)

        result = scanner.scan(read_execution_requests(lines), output)

        [record] = output_records(output)
        assert record["execution"]["workflow_id"] == "wf-b"
        assert record["result"]["check_result_type"] == "healthy"
        assert (result.scanned, result.skipped) == (1, 1)
        assert scanner.progress.state == ScanState.COMPLETED

    def test_empty_run_id_resolves_current_run(
        self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager
    ) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS)
        output = io.StringIO()

        make_scanner(db, registry, retry_manager).scan(read_execution_requests([request_line("wf-a")]), output)

        assert output_records(output)[0]["execution"]["run_id"] == "run-a"

    def test_current_execution_scan(self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS)
        output = io.StringIO()

        make_scanner(db, registry, retry_manager, ScanType.CURRENT_EXECUTION).scan(
            read_execution_requests([request_line("wf-a")]), output
        )

        [record] = output_records(output)
        assert record["execution"]["current_run_id"] == "run-a"
        assert [r["invariant_name"] for r in record["result"]["check_results"]] == [
            "concrete_execution_exists",
            "inactive_domain",
        ]

    def test_output_failure_aborts_scan(self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager) -> None:
        add_domain(db)
        add_execution(db, workflow_id="wf-a", run_id="run-a", number_of_shards=SHARDS)
        scanner = make_scanner(db, registry, retry_manager)

        with pytest.raises(OSError, match="disk full"):
            scanner.scan(read_execution_requests([request_line("wf-a", "run-a")]), FailingWriter())

        assert scanner.progress.state == ScanState.ABORTED
        assert isinstance(scanner.progress.error, OSError)

    def test_progress_tracks_input_position(self, db: ScanDB, registry: InvariantRegistry, retry_manager: RetryManager) -> None:
        add_domain(db)
        scanner = make_scanner(db, registry, retry_manager)
        assert scanner.progress.state == ScanState.IDLE

        scanner.scan(read_execution_requests([request_line("x1", "r"), request_line("x2", "r")]), io.StringIO())

        assert scanner.progress.state == ScanState.COMPLETED
        assert scanner.progress.position == 1

    def test_store_unavailable_produces_failed_result(self) -> None:
        execution = ConcreteExecution(
            shard_id=0,
            domain_id="domain-1",
            workflow_id="wf-a",
            run_id="run-a",
            state=WorkflowState.COMPLETED,
            close_status=CloseStatus.COMPLETED,
            branch_token=b"missing",
        )
        factory = FakeStoreFactory({0: FakeExecutionStore(0, executions=[execution])})
        factory.history_store.fail("read_history_branch", *[TransientStoreError("down")] * 3)
        registry = InvariantRegistry()
        registry.register_builtin_invariants()
        scanner = ExecutionScanner(
            factory,
            FakeDomains(),
            number_of_shards=1,
            scan_type=ScanType.CONCRETE_EXECUTION,
            invariant_factories=registry.resolve(ScanType.CONCRETE_EXECUTION, [InvariantCollection.HISTORY]),
            retry_manager=make_retry_manager(),
        )
        output = io.StringIO()

        result = scanner.scan([ExecutionRequest(domain_id="domain-1", workflow_id="wf-a", run_id="run-a")], output)

        [record] = output_records(output)
        assert record["result"]["check_result_type"] == CheckResultType.FAILED.value
        assert result.failed == 1
        assert factory.opened == [0]

    def test_rejects_non_positive_shard_count(self, db: ScanDB, retry_manager: RetryManager) -> None:
        with pytest.raises(ValueError, match="number_of_shards"):
            ExecutionScanner(
                db,
                FakeDomains(),
                number_of_shards=0,
                scan_type=ScanType.CONCRETE_EXECUTION,
                invariant_factories=[],
                retry_manager=retry_manager,
            )
