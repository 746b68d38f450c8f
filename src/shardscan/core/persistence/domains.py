# src/shardscan/core/persistence/domains.py
"""Read-only domain lookup handed to invariants.

Domains are small reference data that do not change during a scan, so
successful lookups are memoized for the lifetime of the cache. Failed
lookups are not, so a transient failure does not stick.
"""

from shardscan.contracts import DomainInfo
from shardscan.core.persistence.protocols import DomainLookup
from shardscan.core.persistence.retryer import is_transient_error
from shardscan.engine.retry import RetryManager


class DomainCache:
    """Memoizing, retry-wrapped DomainLookup."""

    def __init__(self, lookup: DomainLookup, retry_manager: RetryManager) -> None:
        self._lookup = lookup
        self._retry_manager = retry_manager
        self._domains: dict[str, DomainInfo] = {}

    def get_domain_by_id(self, domain_id: str) -> DomainInfo:
        if domain_id in self._domains:
            return self._domains[domain_id]
        domain = self._retry_manager.execute_with_retry(
            lambda: self._lookup.get_domain_by_id(domain_id),
            is_retryable=is_transient_error,
        )
        self._domains[domain_id] = domain
        return domain
