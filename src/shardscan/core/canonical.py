"""Canonical JSON for scan output.

RFC 8785 (JCS) serialization gives sorted keys, no whitespace and a fixed
number format, so re-running a scan over unchanged data produces
byte-identical output.
"""

from typing import Any

import rfc8785


def canonical_json(obj: Any) -> str:
    """Serialize obj to canonical JSON.

    Raises:
        rfc8785.CanonicalizationError: If obj holds values JSON cannot
            represent exactly (non-finite floats, out-of-range integers,
            unsupported types)
    """
    result: bytes = rfc8785.dumps(obj)
    return result.decode("utf-8")
