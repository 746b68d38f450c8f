# src/shardscan/core/sharding.py
"""Workflow id to shard mapping.

The mapping MUST be identical to the one used when the data was written.
A different function does not fail loudly; lookups just miss.
"""

import hashlib


def workflow_id_to_shard(workflow_id: str, shard_count: int) -> int:
    """Map a workflow id to its shard.

    Uses the first four bytes of the SHA-256 digest of the UTF-8 encoded
    workflow id, read big-endian, modulo the shard count.

    Args:
        workflow_id: Workflow identifier
        shard_count: Total number of shards the store was created with

    Returns:
        Shard id in [0, shard_count)

    Raises:
        ValueError: If shard_count is not positive
    """
    if shard_count <= 0:
        raise ValueError(f"shard_count must be > 0, got {shard_count}")
    digest = hashlib.sha256(workflow_id.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") % shard_count
