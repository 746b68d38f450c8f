"""
shardscan: Consistency scanning for sharded workflow-execution stores.

Walks stored executions, evaluates them against pluggable invariants,
and emits machine-readable findings and remediation commands.
"""

__version__ = "0.1.0"
