# src/shardscan/cli.py
"""shardscan Command Line Interface.

Entry point for the shardscan CLI tool. Scan output goes to stdout (or the
--output file); logs and errors go to stderr.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from shardscan import __version__
from shardscan.contracts import (
    EntityNotExistsError,
    InvalidShardRangeError,
    InvariantCollection,
    ScanType,
    ShardScanError,
    StoreError,
)
from shardscan.core.config import ScanSettings, load_settings

if TYPE_CHECKING:
    from shardscan.core.persistence import ScanDB
    from shardscan.engine.retry import RetryManager
    from shardscan.invariants.registry import InvariantRegistry

__all__ = [
    "app",
]

# Module-level singleton for the invariant registry
_registry_cache: InvariantRegistry | None = None


def _get_registry() -> InvariantRegistry:
    """Get initialized invariant registry (singleton).

    Returns:
        InvariantRegistry with all built-in invariants registered
    """
    global _registry_cache

    from shardscan.invariants.registry import InvariantRegistry

    if _registry_cache is None:
        registry = InvariantRegistry()
        registry.register_builtin_invariants()
        _registry_cache = registry
    return _registry_cache


@dataclass(frozen=True)
class CLIState:
    """Options from the top-level callback, shared with subcommands."""

    settings_path: Path | None = None


app = typer.Typer(
    name="shardscan",
    help="shardscan: consistency scans for sharded workflow execution stores.",
    no_args_is_help=True,
)

db_app = typer.Typer(help="Execution store scan commands.", no_args_is_help=True)
app.add_typer(db_app, name="db")

workflow_app = typer.Typer(help="Single workflow maintenance commands.", no_args_is_help=True)
app.add_typer(workflow_app, name="workflow")

invariants_app = typer.Typer(help="Invariant registry commands.", no_args_is_help=True)
app.add_typer(invariants_app, name="invariants")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"shardscan version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(
                f"Error: .env file not found: {env_file}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file (defaults apply when omitted).",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
        exists=False,  # We handle existence check ourselves for better error message
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs on stderr.",
    ),
) -> None:
    """shardscan: consistency scans for sharded workflow execution stores."""
    from shardscan.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho(
            "Warning: --env-file ignored because --no-dotenv is set.",
            fg=typer.colors.YELLOW,
            err=True,
        )

    ctx.obj = CLIState(settings_path=settings.expanduser() if settings is not None else None)


# === Shared helpers ===


def _load_settings_or_exit(ctx: typer.Context) -> ScanSettings:
    """Load settings from the --settings file, or defaults when not given."""
    state: CLIState = ctx.obj if isinstance(ctx.obj, CLIState) else CLIState()
    if state.settings_path is None:
        return ScanSettings()

    try:
        return load_settings(state.settings_path)
    except (YamlParserError, YamlScannerError) as e:
        typer.echo(f"YAML syntax error in {state.settings_path}: {e.problem}", err=True)
        raise typer.Exit(1) from None
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {state.settings_path}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _resolve_shard_count(settings: ScanSettings, override: int | None) -> int:
    number_of_shards = override if override is not None else settings.number_of_shards
    if number_of_shards is None:
        typer.echo("Error: --number-of-shards is required (or set number_of_shards in settings).", err=True)
        raise typer.Exit(1)
    if number_of_shards <= 0:
        typer.echo(f"Error: --number-of-shards must be > 0, got {number_of_shards}.", err=True)
        raise typer.Exit(1)
    return number_of_shards


def _open_db_or_exit(settings: ScanSettings, database: str | None) -> ScanDB:
    from sqlalchemy.exc import SQLAlchemyError

    from shardscan.core.persistence import ScanDB, SchemaCompatibilityError

    url = database if database is not None else settings.database.url
    try:
        return ScanDB.from_url(url)
    except SchemaCompatibilityError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    except SQLAlchemyError as e:
        typer.echo(f"Error: cannot open execution store {url}: {e}", err=True)
        raise typer.Exit(1) from None


def _retry_manager(settings: ScanSettings) -> RetryManager:
    from shardscan.engine.retry import RetryConfig, RetryManager

    return RetryManager(RetryConfig.from_settings(settings.retry))


_DATABASE_OPTION_HELP = "SQLAlchemy URL of the execution store (overrides settings)."


# === db ===


@db_app.command("scan")
def db_scan(
    ctx: typer.Context,
    input_file: typer.FileBinaryRead = typer.Option(
        "-",
        "--input",
        "-i",
        help="Newline-delimited JSON of executions (domainID, workflowID, runID). '-' reads stdin.",
    ),
    output_file: typer.FileTextWrite = typer.Option(
        "-",
        "--output",
        "-o",
        help="Where to write one JSON result per line. '-' writes stdout.",
    ),
    scan_type: ScanType = typer.Option(
        ScanType.CONCRETE_EXECUTION,
        "--scan-type",
        "-t",
        help="Kind of entity to fetch and check.",
    ),
    collections: list[InvariantCollection] | None = typer.Option(
        None,
        "--collection",
        "-c",
        help="Invariant collection to run (repeatable; default: all).",
    ),
    number_of_shards: int | None = typer.Option(
        None,
        "--number-of-shards",
        "-n",
        help="Shard count the store was written with (overrides settings).",
    ),
    database: str | None = typer.Option(None, "--database", "-d", help=_DATABASE_OPTION_HELP),
) -> None:
    """Check a list of executions against the selected invariants."""
    from shardscan.core.persistence import DomainCache
    from shardscan.engine.scanner import ExecutionScanner, read_execution_requests

    settings = _load_settings_or_exit(ctx)
    shard_count = _resolve_shard_count(settings, number_of_shards)
    selected = collections if collections else list(InvariantCollection)
    factories = _get_registry().resolve(scan_type, selected)
    if not factories:
        typer.echo(
            f"Error: no invariants for scan type '{scan_type.value}' in collections: {', '.join(c.value for c in selected)}",
            err=True,
        )
        raise typer.Exit(1)

    retry_manager = _retry_manager(settings)
    with _open_db_or_exit(settings, database) as db:
        scanner = ExecutionScanner(
            db,
            DomainCache(db.domain_store(), retry_manager),
            number_of_shards=shard_count,
            scan_type=scan_type,
            invariant_factories=factories,
            retry_manager=retry_manager,
            execution_timeout_seconds=settings.timeouts.execution_timeout_seconds,
        )
        result = scanner.scan(read_execution_requests(input_file), output_file)

    typer.echo(
        f"Scanned {result.scanned}: {result.healthy} healthy, {result.corrupted} corrupted, "
        f"{result.failed} failed, {result.skipped} skipped",
        err=True,
    )


@db_app.command("unsupported-workflow")
def db_unsupported_workflow(
    ctx: typer.Context,
    lower_shard_id: int = typer.Option(
        ...,
        "--lower-shard-id",
        "--lower_shard_id",
        help="First shard to scan (inclusive).",
    ),
    upper_shard_id: int = typer.Option(
        ...,
        "--upper-shard-id",
        "--upper_shard_id",
        help="Last shard to scan (inclusive).",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="File to append remediation commands to (fsync per line). Default: stdout.",
    ),
    page_size: int | None = typer.Option(
        None,
        "--page-size",
        min=1,
        help="Executions per listing page (overrides settings).",
    ),
    continue_on_error: bool = typer.Option(
        False,
        "--continue-on-error",
        help="Record a failed shard and move on instead of stopping.",
    ),
    database: str | None = typer.Option(None, "--database", "-d", help=_DATABASE_OPTION_HELP),
) -> None:
    """Find open executions without version histories and emit reset commands."""
    import sys

    from shardscan.engine.unsupported import RemediationSink, UnsupportedWorkflowScanner

    settings = _load_settings_or_exit(ctx)
    if lower_shard_id < 0 or upper_shard_id < lower_shard_id:
        typer.echo(f"Error: {InvalidShardRangeError(lower_shard_id, upper_shard_id)}", err=True)
        raise typer.Exit(1)

    with _open_db_or_exit(settings, database) as db:
        scanner = UnsupportedWorkflowScanner(
            db,
            retry_manager=_retry_manager(settings),
            remediation=settings.range_scan.remediation,
            page_size=page_size if page_size is not None else settings.range_scan.page_size,
            page_timeout_seconds=settings.timeouts.page_timeout_seconds,
        )
        sink = RemediationSink.append_to(output) if output is not None else RemediationSink(sys.stdout)
        with sink:
            try:
                result = scanner.scan_range(lower_shard_id, upper_shard_id, sink, continue_on_error=continue_on_error)
            except ShardScanError as e:
                typer.echo(f"Failed to scan shard ID: {e.shard_id}: {e.cause}. Please retry.", err=True)
                raise typer.Exit(1) from None

    typer.echo(
        f"Scanned {result.shards_scanned} shards, {result.executions_scanned} executions: {result.matches} to reset",
        err=True,
    )
    if result.failed_shards:
        typer.echo(f"Failed shards (please retry): {', '.join(str(s) for s in result.failed_shards)}", err=True)
        raise typer.Exit(1)


# === shard-id ===


@app.command("shard-id")
def shard_id(
    ctx: typer.Context,
    workflow_id: str = typer.Option(..., "--workflow-id", "-w", help="Workflow ID."),
    number_of_shards: int | None = typer.Option(
        None,
        "--number-of-shards",
        "-n",
        help="Shard count the store was written with (overrides settings).",
    ),
) -> None:
    """Print the shard a workflow ID maps to."""
    from shardscan.core.sharding import workflow_id_to_shard

    settings = _load_settings_or_exit(ctx)
    shard_count = _resolve_shard_count(settings, number_of_shards)
    typer.echo(str(workflow_id_to_shard(workflow_id, shard_count)))


# === workflow ===


@workflow_app.command("delete")
def workflow_delete(
    ctx: typer.Context,
    domain_id: str = typer.Option(..., "--domain-id", help="Domain ID."),
    workflow_id: str = typer.Option(..., "--workflow-id", "-w", help="Workflow ID."),
    run_id: str = typer.Option(..., "--run-id", "-r", help="Run ID."),
    skip_errors: bool = typer.Option(
        False,
        "--skip-errors",
        help="Log a failing delete step and continue with the next.",
    ),
    number_of_shards: int | None = typer.Option(
        None,
        "--number-of-shards",
        "-n",
        help="Shard count the store was written with (overrides settings).",
    ),
    database: str | None = typer.Option(None, "--database", "-d", help=_DATABASE_OPTION_HELP),
) -> None:
    """Delete one execution: its history branches, its row and its current pointer."""
    from shardscan.engine.maintenance import delete_workflow

    settings = _load_settings_or_exit(ctx)
    shard_count = _resolve_shard_count(settings, number_of_shards)

    with _open_db_or_exit(settings, database) as db:
        try:
            result = delete_workflow(
                db,
                _retry_manager(settings),
                number_of_shards=shard_count,
                domain_id=domain_id,
                workflow_id=workflow_id,
                run_id=run_id,
                skip_errors=skip_errors,
            )
        except EntityNotExistsError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
        except StoreError as e:
            typer.echo(f"Error deleting workflow: {e}", err=True)
            raise typer.Exit(1) from None

    typer.echo(
        f"Deleted workflow {workflow_id} run {run_id} from shard {result.shard_id} "
        f"({result.branches_deleted} history branches)"
    )
    for error in result.errors:
        typer.echo(f"  skipped: {error}", err=True)


# === invariants ===


@invariants_app.command("list")
def invariants_list(
    scan_type: ScanType | None = typer.Option(
        None,
        "--scan-type",
        "-t",
        help="Only show invariants for this scan type.",
    ),
) -> None:
    """List registered invariants by collection."""
    registry = _get_registry()

    for collection in InvariantCollection:
        invariants = [
            cls
            for cls in registry.get_invariants()
            if cls.collection == collection and (scan_type is None or scan_type in cls.scan_types)
        ]
        typer.echo(f"\n{collection.value.upper()}:")
        if not invariants:
            typer.echo("  (none available)")
            continue
        for cls in invariants:
            scan_types = ", ".join(sorted(t.value for t in cls.scan_types))
            typer.echo(f"  {cls.name:28} - {scan_types}")

    typer.echo()  # Final newline


if __name__ == "__main__":
    app()
