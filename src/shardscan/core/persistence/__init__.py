"""Execution and history store access.

Exports the SQL-backed ScanDB (which is also the StoreFactory), the store
protocols, and the PersistenceRetryer.
"""

from shardscan.core.persistence.database import ScanDB, SchemaCompatibilityError
from shardscan.core.persistence.domains import DomainCache
from shardscan.core.persistence.protocols import DomainLookup, ExecutionStore, HistoryStore, StoreFactory
from shardscan.core.persistence.retryer import PersistenceRetryer, is_transient_error
from shardscan.core.persistence.tokens import BranchRef, decode_branch_token, encode_branch_token

__all__ = [
    "BranchRef",
    "DomainCache",
    "DomainLookup",
    "ExecutionStore",
    "HistoryStore",
    "PersistenceRetryer",
    "ScanDB",
    "SchemaCompatibilityError",
    "StoreFactory",
    "decode_branch_token",
    "encode_branch_token",
    "is_transient_error",
]
