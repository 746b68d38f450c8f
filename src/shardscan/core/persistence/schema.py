# src/shardscan/core/persistence/schema.py
"""SQLAlchemy table definitions for the execution and history stores.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Column,
    ForeignKeyConstraint,
    Index,
    Integer,
    LargeBinary,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
)

# Shared metadata for all tables
metadata = MetaData()

# === Domains ===

domains_table = Table(
    "domains",
    metadata,
    Column("domain_id", String(64), primary_key=True),
    Column("name", String(256), nullable=False, unique=True),
    Column("status", String(32), nullable=False),  # registered, deprecated, deleted
)

# === Executions (one row per run) ===

executions_table = Table(
    "executions",
    metadata,
    Column("shard_id", Integer, nullable=False),
    Column("domain_id", String(64), nullable=False),
    Column("workflow_id", String(256), nullable=False),
    Column("run_id", String(64), nullable=False),
    Column("state", String(32), nullable=False),
    Column("close_status", Integer, nullable=False),
    # Pre-versioning history pointer
    Column("branch_token", LargeBinary),
    # NULL for executions written before the history-versioning migration
    Column("version_histories_json", Text),
    PrimaryKeyConstraint("shard_id", "domain_id", "workflow_id", "run_id"),
)

# === Current executions (one row per workflow id) ===

current_executions_table = Table(
    "current_executions",
    metadata,
    Column("shard_id", Integer, nullable=False),
    Column("domain_id", String(64), nullable=False),
    Column("workflow_id", String(256), nullable=False),
    Column("run_id", String(64), nullable=False),
    Column("state", String(32), nullable=False),
    Column("close_status", Integer, nullable=False),
    PrimaryKeyConstraint("shard_id", "domain_id", "workflow_id"),
)

# === History branches and events ===

history_branches_table = Table(
    "history_branches",
    metadata,
    Column("tree_id", String(64), nullable=False),
    Column("branch_id", String(64), nullable=False),
    Column("shard_id", Integer, nullable=False),
    Column("info", Text),
    PrimaryKeyConstraint("tree_id", "branch_id"),
)

history_nodes_table = Table(
    "history_nodes",
    metadata,
    Column("tree_id", String(64), nullable=False),
    Column("branch_id", String(64), nullable=False),
    Column("event_id", Integer, nullable=False),
    Column("version", Integer, nullable=False),
    Column("data", LargeBinary, nullable=False),
    PrimaryKeyConstraint("tree_id", "branch_id", "event_id"),
    ForeignKeyConstraint(
        ["tree_id", "branch_id"],
        ["history_branches.tree_id", "history_branches.branch_id"],
        ondelete="CASCADE",
    ),
)

Index("ix_history_branches_shard", history_branches_table.c.shard_id)
