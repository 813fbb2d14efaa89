"""Hash chaining for audit entries.

Each entry's hash is SHA-256 over the canonical JSON encoding of all of its
fields (except the hash itself) together with the previous entry's hash. The
first entry in a chain links to ``GENESIS_HASH``.
"""

from __future__ import annotations

import hashlib
import typing as t

from dailygate.lib.json import canonical
from dailygate.model import AuditLogEntry, ChainVerification, GENESIS_HASH, OrganizationID, UserID


def compute_hash(fields: t.Mapping[str, t.Any], previous_hash: str) -> str:
    payload = {k: v for k, v in fields.items() if k not in ("hash", "previous_hash")}
    payload["previous_hash"] = previous_hash
    return hashlib.sha256(canonical(payload).encode("utf-8")).hexdigest()


def entry_hash(entry: AuditLogEntry) -> str:
    return compute_hash(entry.model_dump(mode="json"), entry.previous_hash)


def verify(user_id: UserID, organization_id: OrganizationID, entries: t.Sequence[AuditLogEntry]) -> ChainVerification:
    """Check ``entries`` (ordered by sequence) link up and hash correctly.

    Once an entry fails, it and every entry after it are reported invalid,
    since none of them can be trusted to extend the genuine chain.
    """
    expected_previous = GENESIS_HASH
    invalid: list[AuditLogEntry] = []
    for position, entry in enumerate(entries, start=1):
        if not invalid:
            intact = (
                entry.sequence == position
                and entry.previous_hash == expected_previous
                and entry.hash == entry_hash(entry)
            )
            if not intact:
                invalid.append(entry)
        else:
            invalid.append(entry)
        expected_previous = entry.hash

    return ChainVerification(
        user_id=user_id,
        organization_id=organization_id,
        valid=not invalid,
        checked=len(entries),
        first_invalid=invalid[0].entry_id if invalid else None,
        invalid_entries=tuple(e.entry_id for e in invalid),
    )
