# src/shardscan/invariants/registry.py
"""Invariant registry: discovery, registration, and lookup.

Uses pluggy for hook-based registration. Resolution order is registration
order, so the same configuration always yields the same invariant order
(and therefore the same determining invariant).
"""

from collections.abc import Callable, Iterable
from typing import Any

import pluggy

from shardscan.contracts import InvariantCollection, ScanType
from shardscan.core.persistence.protocols import DomainLookup
from shardscan.core.persistence.retryer import PersistenceRetryer
from shardscan.invariants.base import BaseInvariant, Invariant
from shardscan.invariants.hookspecs import PROJECT_NAME, ShardscanInvariantSpec

# Builds one invariant bound to a shard's retryer and the domain lookup
InvariantFactory = Callable[[PersistenceRetryer, DomainLookup], Invariant]


class InvariantRegistry:
    """Manages invariant discovery, registration, and lookup.

    Usage:
        registry = InvariantRegistry()
        registry.register_builtin_invariants()

        factories = registry.resolve(ScanType.CONCRETE_EXECUTION, [InvariantCollection.HISTORY])
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(ShardscanInvariantSpec)
        self._invariants: dict[str, type[BaseInvariant]] = {}

    def register_builtin_invariants(self) -> None:
        from shardscan.invariants.builtin import BuiltinInvariants

        self.register(BuiltinInvariants())

    def register(self, plugin: Any) -> None:
        """Register a plugin implementing shardscan_get_invariants.

        Raises:
            ValueError: If an invariant name is already registered
        """
        self._pm.register(plugin)
        try:
            self._refresh_cache()
        except ValueError:
            self._pm.unregister(plugin)
            raise

    def _refresh_cache(self) -> None:
        new_invariants: dict[str, type[BaseInvariant]] = {}
        # pluggy calls the most recently registered plugin first
        for invariants in reversed(self._pm.hook.shardscan_get_invariants()):
            for cls in invariants:
                name = cls.name
                if name in new_invariants:
                    raise ValueError(f"Duplicate invariant name: '{name}'. Already registered by {new_invariants[name].__name__}")
                new_invariants[name] = cls
        self._invariants = new_invariants

    # === Getters ===

    def get_invariants(self) -> list[type[BaseInvariant]]:
        """Get all registered invariants in registration order."""
        return list(self._invariants.values())

    def get_invariant_by_name(self, name: str) -> type[BaseInvariant] | None:
        return self._invariants.get(name)

    def resolve(self, scan_type: ScanType, collections: Iterable[InvariantCollection]) -> list[InvariantFactory]:
        """Select the invariants that apply to a scan type and collections.

        Args:
            scan_type: Kind of snapshot the scan fetches
            collections: Collections to include; duplicates are ignored

        Returns:
            Factories in registration order
        """
        wanted = set(collections)
        return [cls for cls in self._invariants.values() if cls.collection in wanted and scan_type in cls.scan_types]
