"""Invariants: consistency rules, their registry, and the manager that runs them."""

from shardscan.invariants.base import BaseInvariant, Invariant
from shardscan.invariants.builtin import BUILTIN_INVARIANTS, is_missing_version_histories
from shardscan.invariants.hookspecs import hookimpl
from shardscan.invariants.manager import InvariantManager, aggregate_results
from shardscan.invariants.registry import InvariantFactory, InvariantRegistry

__all__ = [
    "BUILTIN_INVARIANTS",
    "BaseInvariant",
    "Invariant",
    "InvariantFactory",
    "InvariantManager",
    "InvariantRegistry",
    "aggregate_results",
    "hookimpl",
    "is_missing_version_histories",
]
