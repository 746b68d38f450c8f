# src/shardscan/engine/unsupported.py
"""UnsupportedWorkflowScanner: shard-range scan for pre-versioning executions.

Walks shards lower..upper (inclusive, ascending), lists every execution in
each shard page by page, and writes one remediation command per execution
that is still open but carries no version histories.

Durability: each remediation line is flushed and fsync'd before the scan
moves on, so the output of an interrupted scan is a complete prefix.

A page that cannot be fetched (after retries) fails the shard with
ShardScanError rather than skipping the rest of it. scan_range() stops
there unless continue_on_error is set, in which case the failed shard is
recorded and the next shard is scanned.
"""

import os
from pathlib import Path
from typing import IO, Self

import structlog

from shardscan.contracts import (
    ConcreteExecution,
    InvalidShardRangeError,
    RangeScanResult,
    ScanProgress,
    ScanState,
    ShardScanError,
    StoreError,
)
from shardscan.core.config import RemediationSettings
from shardscan.core.logging import get_logger
from shardscan.core.persistence.protocols import StoreFactory
from shardscan.core.persistence.retryer import PersistenceRetryer
from shardscan.engine.clock import DEFAULT_CLOCK, Clock
from shardscan.engine.deadline import deadline_scope
from shardscan.engine.pagination import PagingIterator
from shardscan.engine.retry import RetryManager
from shardscan.invariants.builtin import is_missing_version_histories

logger = get_logger(__name__)


class RemediationSink:
    """Line-oriented output for remediation commands.

    With durable=True every line is fsync'd after the write. Use
    append_to() for files; pass a stream directly for stdout or tests.
    """

    def __init__(self, stream: IO[str], *, durable: bool = False, owns_stream: bool = False) -> None:
        self._stream = stream
        self._durable = durable
        self._owns_stream = owns_stream
        self._lines_written = 0

    @classmethod
    def append_to(cls, path: Path) -> Self:
        """Open path in append mode; earlier content is never truncated."""
        return cls(path.open("a", encoding="utf-8"), durable=True, owns_stream=True)

    @property
    def lines_written(self) -> int:
        return self._lines_written

    def write_line(self, line: str) -> None:
        self._stream.write(line + "\n")
        self._stream.flush()
        if self._durable:
            os.fsync(self._stream.fileno())
        self._lines_written += 1

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.close()


class UnsupportedWorkflowScanner:
    """Finds open executions without version histories across a shard range."""

    def __init__(
        self,
        store_factory: StoreFactory,
        *,
        retry_manager: RetryManager,
        remediation: RemediationSettings,
        page_size: int = 1000,
        page_timeout_seconds: float = 60.0,
        clock: Clock = DEFAULT_CLOCK,
    ) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be > 0, got {page_size}")
        self._store_factory = store_factory
        self._retry_manager = retry_manager
        self._remediation = remediation
        self._page_size = page_size
        self._page_timeout_seconds = page_timeout_seconds
        self._clock = clock
        self._progress = ScanProgress()

    @property
    def progress(self) -> ScanProgress:
        return self._progress

    def scan_range(
        self,
        lower: int,
        upper: int,
        sink: RemediationSink,
        *,
        continue_on_error: bool = False,
    ) -> RangeScanResult:
        """Scan shards lower..upper inclusive.

        Raises:
            InvalidShardRangeError: If lower < 0 or upper < lower
            ShardScanError: If a shard fails and continue_on_error is False
        """
        if lower < 0 or upper < lower:
            raise InvalidShardRangeError(lower, upper)

        result = RangeScanResult()
        self._progress = ScanProgress(state=ScanState.SCANNING, position=(lower, b""))
        try:
            for shard_id in range(lower, upper + 1):
                try:
                    result.merge(self.scan_shard(shard_id, sink))
                except ShardScanError as e:
                    if not continue_on_error:
                        raise
                    logger.error(
                        "Failed to scan shard. Please retry",
                        shard_id=e.shard_id,
                        error=str(e.cause),
                        error_type=type(e.cause).__name__,
                    )
                    result.failed_shards.append(e.shard_id)
        except BaseException as e:
            self._progress.state = ScanState.ABORTED
            self._progress.error = e
            raise

        self._progress.state = ScanState.COMPLETED
        logger.info(
            "Shard range scan completed",
            lower=lower,
            upper=upper,
            shards_scanned=result.shards_scanned,
            executions_scanned=result.executions_scanned,
            matches=result.matches,
            failed_shards=result.failed_shards,
        )
        return result

    def scan_shard(self, shard_id: int, sink: RemediationSink) -> RangeScanResult:
        """Scan one shard and write a remediation line per match.

        Raises:
            ShardScanError: If the shard cannot be opened or a page fetch fails
        """
        result = RangeScanResult(shards_scanned=1)
        with structlog.contextvars.bound_contextvars(shard_id=shard_id):
            try:
                execution_store = self._store_factory.open_execution_store(shard_id)
            except StoreError as e:
                raise ShardScanError(shard_id, e) from e

            with execution_store:
                retryer = PersistenceRetryer(execution_store, None, self._retry_manager)

                def fetch_page(token: bytes) -> tuple[list[ConcreteExecution], bytes]:
                    self._progress.position = (shard_id, token)
                    with deadline_scope(self._page_timeout_seconds, clock=self._clock):
                        page = retryer.list_concrete_executions(self._page_size, token)
                    return page.executions, page.next_page_token

                executions: PagingIterator[ConcreteExecution] = PagingIterator(fetch_page)
                try:
                    for execution in executions:
                        result.executions_scanned += 1
                        if is_missing_version_histories(execution):
                            sink.write_line(
                                self._remediation.render(
                                    domain_id=execution.domain_id,
                                    workflow_id=execution.workflow_id,
                                    run_id=execution.run_id,
                                )
                            )
                            result.matches += 1
                except StoreError as e:
                    raise ShardScanError(shard_id, e) from e

        logger.debug(
            "Shard scanned",
            executions_scanned=result.executions_scanned,
            matches=result.matches,
            pages=executions.pages_fetched,
        )
        return result
