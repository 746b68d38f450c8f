# src/shardscan/core/persistence/tokens.py
"""Opaque page tokens and history branch tokens.

Both are bytes to their consumers. Page tokens are base64url encoded JSON
keyset cursors tagged with the listing they belong to; a token from one
listing is rejected by another. Branch tokens carry a (tree_id, branch_id)
pair in canonical JSON.
"""

import base64
import binascii
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import rfc8785

from shardscan.contracts.errors import StoreValidationError


@dataclass(frozen=True, slots=True)
class BranchRef:
    """Decoded history branch token."""

    tree_id: str
    branch_id: str


def encode_branch_token(tree_id: str, branch_id: str) -> bytes:
    return rfc8785.dumps({"branch_id": branch_id, "tree_id": tree_id})


def decode_branch_token(token: bytes) -> BranchRef:
    """Decode a branch token.

    Raises:
        StoreValidationError: If the token is not a branch token
    """
    try:
        payload = json.loads(token)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StoreValidationError(f"malformed branch token: {e}") from e
    if type(payload) is not dict or type(payload.get("tree_id")) is not str or type(payload.get("branch_id")) is not str:
        raise StoreValidationError("malformed branch token: expected tree_id and branch_id")
    return BranchRef(tree_id=payload["tree_id"], branch_id=payload["branch_id"])


def encode_page_token(kind: str, cursor: dict[str, Any]) -> bytes:
    raw = rfc8785.dumps({"kind": kind, "cursor": cursor})
    return base64.urlsafe_b64encode(raw)


def decode_page_token(token: bytes, *, kind: str, fields: Mapping[str, type] | None = None) -> dict[str, Any] | None:
    """Decode a page token issued for the given listing.

    Args:
        token: Token from a previous page, or empty for the first page
        kind: Listing the token must have been issued for
        fields: Cursor keys the listing needs, with their exact types

    Returns:
        The keyset cursor, or None for an empty token (first page)

    Raises:
        StoreValidationError: If the token is malformed or from another listing
    """
    if not token:
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(token))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StoreValidationError(f"malformed page token: {e}") from e
    if type(payload) is not dict or type(payload.get("cursor")) is not dict:
        raise StoreValidationError("malformed page token: payload is not a cursor")
    if payload.get("kind") != kind:
        raise StoreValidationError(f"page token was issued for {payload.get('kind')!r}, not {kind!r}")
    cursor: dict[str, Any] = payload["cursor"]
    for name, expected in (fields or {}).items():
        if type(cursor.get(name)) is not expected:
            raise StoreValidationError(f"malformed page token: cursor field {name!r} must be {expected.__name__}")
    return cursor
