"""Canonical hashing and verification for the audit chain.

The hash of entry k is::

    sha256(prev_hash + stable_stringify({chainIndex, communityId, userId,
                                         eventType, ip, userAgent,
                                         metadata, createdAt}))

``stable_stringify`` sorts object keys at every level and renders scalars
the way JSON.stringify does (integral floats print without a fraction,
non-ASCII is kept as-is), so independent implementations fed the same
field values agree byte for byte. ``createdAt`` is rendered as
``YYYY-MM-DDTHH:MM:SS.mmmZ``.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional


def stable_stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return json.dumps(int(value))
    if isinstance(value, (str, int, float)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, datetime):
        return json.dumps(isoformat_ms(value))
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_stringify(item) for item in value) + "]"
    if isinstance(value, dict):
        return "{" + ",".join(
            f"{json.dumps(str(key), ensure_ascii=False)}:{stable_stringify(value[key])}"
            for key in sorted(value, key=str)
        ) + "}"
    return json.dumps(str(value), ensure_ascii=False)


def isoformat_ms(value: datetime) -> str:
    """Naive-UTC datetime as an ISO-8601 string with millisecond precision."""
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def truncate_ms(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def compute_audit_hash(
    prev_hash: Optional[str],
    chain_index: int,
    community_id: Optional[str],
    user_id: Optional[str],
    event_type: str,
    ip: Optional[str],
    user_agent: Optional[str],
    metadata: Any,
    created_at: datetime,
) -> str:
    event_data = stable_stringify({
        "chainIndex": chain_index,
        "communityId": community_id,
        "userId": user_id,
        "eventType": event_type,
        "ip": ip,
        "userAgent": user_agent,
        "metadata": metadata,
        "createdAt": isoformat_ms(created_at),
    })
    seed = f"{prev_hash or ''}{event_data}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()


def hash_entry(entry) -> str:
    """Recompute the hash of a stored AuditLog row from its fields."""
    metadata = json.loads(entry.metadata_json) if entry.metadata_json else None
    return compute_audit_hash(
        prev_hash=entry.prev_hash,
        chain_index=entry.chain_index,
        community_id=entry.community_id,
        user_id=entry.user_id,
        event_type=entry.event_type,
        ip=entry.ip,
        user_agent=entry.user_agent,
        metadata=metadata,
        created_at=entry.created_at,
    )


@dataclass(frozen=True)
class ChainVerification:
    ok: bool
    entries_checked: int
    first_broken_index: Optional[int] = None
    reason: Optional[str] = None
    # True when the window does not start at chain index 1; the first
    # entry's prev_hash is then taken on trust.
    partial: bool = False


def verify_chain(entries: Iterable) -> ChainVerification:
    """Walk entries in chain order and report the first divergence."""
    ordered = sorted(entries, key=lambda e: e.chain_index)
    if not ordered:
        return ChainVerification(ok=True, entries_checked=0)

    partial = ordered[0].chain_index != 1
    previous = None
    for checked, entry in enumerate(ordered):
        if previous is None:
            if not partial and entry.prev_hash is not None:
                return ChainVerification(False, checked, entry.chain_index, "genesis entry has a prev_hash", partial)
        else:
            if entry.chain_index != previous.chain_index + 1:
                return ChainVerification(False, checked, entry.chain_index, "chain index gap", partial)
            if entry.prev_hash != previous.hash:
                return ChainVerification(False, checked, entry.chain_index, "prev_hash mismatch", partial)
        if hash_entry(entry) != entry.hash:
            return ChainVerification(False, checked, entry.chain_index, "hash mismatch", partial)
        previous = entry

    return ChainVerification(ok=True, entries_checked=len(ordered), partial=partial)
