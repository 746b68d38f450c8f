# src/shardscan/invariants/base.py
"""Invariant interface and base class.

An invariant is a named consistency rule evaluated against one execution
snapshot. It reads but never mutates the snapshot, and any store reads go
through the PersistenceRetryer it was built with.

Result contract:
- HEALTHY only when the rule was fully evaluated and holds
- CORRUPTED when the rule was evaluated and is violated
- FAILED when the rule could not be evaluated (a store error other than
  definitive absence). FAILED is never evidence of health.

Why the base class exists:
- The registry filters classes by name, collection and scan_types before
  any instance exists, which a Protocol with data members cannot support
  via issubclass()
- __init_subclass__ rejects concrete subclasses missing that metadata
"""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Protocol, runtime_checkable

from shardscan.contracts import (
    CheckResult,
    CheckResultType,
    Execution,
    InvariantCollection,
    ScanType,
)
from shardscan.contracts.errors import describe_error
from shardscan.core.persistence.protocols import DomainLookup
from shardscan.core.persistence.retryer import PersistenceRetryer


@runtime_checkable
class Invariant(Protocol):
    """What the InvariantManager needs from an invariant instance."""

    @property
    def name(self) -> str: ...

    def check(self, execution: Execution) -> CheckResult: ...


class BaseInvariant(ABC):
    """Base class for all built-in and plugin invariants.

    Subclasses set the class attributes and implement check():

        class MyInvariant(BaseInvariant):
            name = "my_invariant"
            collection = InvariantCollection.MUTABLE_STATE
            scan_types = frozenset({ScanType.CONCRETE_EXECUTION})

            def check(self, execution: Execution) -> CheckResult:
                return self.healthy()
    """

    name: ClassVar[str]
    collection: ClassVar[InvariantCollection]
    scan_types: ClassVar[frozenset[ScanType]]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        # Only classes that implement check() themselves are validated
        check = cls.__dict__.get("check")
        if check is None or getattr(check, "__isabstractmethod__", False):
            return
        for attr in ("name", "collection", "scan_types"):
            if not hasattr(cls, attr):
                raise TypeError(f"Invariant {cls.__name__} must define class attribute '{attr}'")

    def __init__(self, retryer: PersistenceRetryer, domains: DomainLookup) -> None:
        self._retryer = retryer
        self._domains = domains

    @abstractmethod
    def check(self, execution: Execution) -> CheckResult:
        """Evaluate this invariant against one snapshot."""
        ...

    # === Result helpers ===

    def healthy(self) -> CheckResult:
        return CheckResult(CheckResultType.HEALTHY, self.name)

    def corrupted(self, info: str, **details: Any) -> CheckResult:
        return CheckResult(CheckResultType.CORRUPTED, self.name, info=info, info_details=details or None)

    def failed(self, info: str, error: BaseException) -> CheckResult:
        return CheckResult(CheckResultType.FAILED, self.name, info=info, info_details=dict(describe_error(error)))

    def unsupported(self, execution: Execution) -> CheckResult:
        """Result for a snapshot kind this invariant cannot evaluate."""
        return CheckResult(
            CheckResultType.FAILED,
            self.name,
            info=f"{self.name} cannot check {type(execution).__name__}",
            info_details={"execution_type": type(execution).__name__},
        )
