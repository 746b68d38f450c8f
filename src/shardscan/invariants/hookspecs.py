# src/shardscan/invariants/hookspecs.py
"""pluggy hook specifications for invariant plugins.

Plugins implement these hooks to contribute invariants to the registry.

Usage (implementing a plugin):
    from shardscan.invariants.hookspecs import hookimpl

    class MyInvariants:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def shardscan_get_invariants(self):
            return [MyInvariant]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from shardscan.invariants.base import BaseInvariant

# Project name for pluggy
PROJECT_NAME = "shardscan"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class ShardscanInvariantSpec:
    """Hook specifications for invariant plugins."""

    @hookspec
    def shardscan_get_invariants(self) -> list[type["BaseInvariant"]]:  # type: ignore[empty-body]
        """Return invariant classes.

        Returns:
            List of invariant classes (not instances)
        """
