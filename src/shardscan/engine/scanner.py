# src/shardscan/engine/scanner.py
"""ExecutionScanner: targeted scan over an explicit list of executions.

For each input request:
1. Map the workflow id to its shard
2. Open shard-scoped store handles (closed as soon as the execution is done)
3. Fetch the snapshot and run the invariants under one per-execution deadline
4. Write one canonical JSON ScanOutputEntity line and flush

Input problems and per-execution store failures are logged and skipped so
that one bad record never stops the batch. Output write failures are not:
losing findings silently is worse than stopping.
"""

from collections.abc import Iterable, Iterator, Sequence
from typing import TextIO

import structlog
from pydantic import ValidationError

from shardscan.contracts import (
    ExecutionRequest,
    ScanOutputEntity,
    ScanProgress,
    ScanState,
    ScanType,
    StoreError,
    TargetedScanResult,
)
from shardscan.core.canonical import canonical_json
from shardscan.core.logging import get_logger
from shardscan.core.persistence.protocols import DomainLookup, StoreFactory
from shardscan.core.persistence.retryer import PersistenceRetryer
from shardscan.core.sharding import workflow_id_to_shard
from shardscan.engine.clock import DEFAULT_CLOCK, Clock
from shardscan.engine.deadline import deadline_scope
from shardscan.engine.fetchers import get_fetcher
from shardscan.engine.retry import RetryManager
from shardscan.invariants.manager import InvariantManager
from shardscan.invariants.registry import InvariantFactory

logger = get_logger(__name__)


def read_execution_requests(stream: Iterable[str | bytes]) -> Iterator[ExecutionRequest]:
    """Parse newline-delimited JSON execution requests.

    Accepts text lines or raw byte lines; byte lines are decoded as UTF-8.
    Blank lines are ignored. A line that is not a JSON object with a
    workflow id (including a final line truncated mid-character) is logged
    and skipped, and parsing continues with the next line.
    """
    for line_number, line in enumerate(stream, start=1):
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                logger.warning("Skipping undecodable input line", line_number=line_number, error=str(e))
                continue
        text = line.strip()
        if not text:
            continue
        try:
            request = ExecutionRequest.model_validate_json(text)
        except ValidationError as e:
            logger.warning(
                "Skipping malformed input line",
                line_number=line_number,
                error_count=e.error_count(),
                error=e.errors(include_url=False, include_input=False)[0]["msg"],
            )
            continue
        yield request


class ExecutionScanner:
    """Runs the invariant set for one scan type over a list of executions.

    Strictly sequential. Each call to scan() is a fresh scan with its own
    progress; nothing is resumed.
    """

    def __init__(
        self,
        store_factory: StoreFactory,
        domains: DomainLookup,
        *,
        number_of_shards: int,
        scan_type: ScanType,
        invariant_factories: Sequence[InvariantFactory],
        retry_manager: RetryManager,
        execution_timeout_seconds: float = 10.0,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        if number_of_shards <= 0:
            raise ValueError(f"number_of_shards must be > 0, got {number_of_shards}")
        self._store_factory = store_factory
        self._domains = domains
        self._number_of_shards = number_of_shards
        self._scan_type = scan_type
        self._fetch = get_fetcher(scan_type)
        self._invariant_factories = tuple(invariant_factories)
        self._retry_manager = retry_manager
        self._execution_timeout_seconds = execution_timeout_seconds
        self._clock = clock
        self._progress = ScanProgress()

    @property
    def progress(self) -> ScanProgress:
        return self._progress

    def scan(self, requests: Iterable[ExecutionRequest], output: TextIO) -> TargetedScanResult:
        """Check every requested execution and write one line per result.

        Args:
            requests: Parsed requests (see read_execution_requests)
            output: Text stream receiving NDJSON output records

        Returns:
            Counters for the scan
        """
        result = TargetedScanResult()
        self._progress = ScanProgress(state=ScanState.SCANNING, position=0)
        try:
            for index, request in enumerate(requests):
                self._progress.position = index
                entity = self._scan_one(request)
                if entity is None or not self._write(entity, output):
                    result.skipped += 1
                    continue
                result.record(entity.result)
        except BaseException as e:
            self._progress.state = ScanState.ABORTED
            self._progress.error = e
            raise

        self._progress.state = ScanState.COMPLETED
        logger.info(
            "Targeted scan completed",
            scan_type=self._scan_type.value,
            scanned=result.scanned,
            corrupted=result.corrupted,
            failed=result.failed,
            skipped=result.skipped,
        )
        return result

    def _scan_one(self, request: ExecutionRequest) -> ScanOutputEntity | None:
        shard_id = workflow_id_to_shard(request.workflow_id, self._number_of_shards)
        with structlog.contextvars.bound_contextvars(
            shard_id=shard_id,
            workflow_id=request.workflow_id,
            run_id=request.run_id,
        ):
            try:
                return self._check(request, shard_id)
            except StoreError as e:
                logger.warning(
                    "Failed to fetch execution, skipping",
                    domain_id=request.domain_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None

    def _check(self, request: ExecutionRequest, shard_id: int) -> ScanOutputEntity:
        with (
            self._store_factory.open_execution_store(shard_id) as execution_store,
            self._store_factory.open_history_store(shard_id) as history_store,
            deadline_scope(self._execution_timeout_seconds, clock=self._clock),
        ):
            retryer = PersistenceRetryer(execution_store, history_store, self._retry_manager)
            execution = self._fetch(retryer, request)
            manager = InvariantManager([factory(retryer, self._domains) for factory in self._invariant_factories])
            check_result = manager.run_checks(execution)
        return ScanOutputEntity(execution=execution, result=check_result)

    def _write(self, entity: ScanOutputEntity, output: TextIO) -> bool:
        try:
            line = canonical_json(entity.to_dict())
        except (ValueError, TypeError) as e:
            # rfc8785.CanonicalizationError is a ValueError
            logger.error("Failed to serialize scan output, skipping", error=str(e), error_type=type(e).__name__)
            return False
        output.write(line + "\n")
        output.flush()
        return True
