from __future__ import annotations

import datetime
import logging
import typing as t

from sqlalchemy.exc import SQLAlchemyError

from dailygate import storage
from dailygate.core.provider import TimestampProvider, utcnow
from dailygate.gate.errors import AuditWriteFailure
from dailygate.lib.util import redact
from dailygate.model import AuditDraft, AuditEntryID, AuditFilters, AuditLogEntry, ChainVerification, GENESIS_HASH, \
    OrganizationID, UserID
from dailygate.storage import Session
from dailygate.storage.lock import KeyedLockTable

from .chain import compute_hash, verify

# detail keys that may carry what a user answered; never written to the log
RedactedKeys: t.Final[frozenset[str]] = frozenset({
    "answer",
    "answers",
    "response",
    "responses",
    "transcript",
})


class AuditLogger(object):
    """Append-only, hash-chained log of gate activity, one chain per (organization, user).

    Entries are never updated or deleted.
    """

    def __init__(
        self,
        locks: KeyedLockTable,
        session_factory: t.Callable[[], Session],
        clock: TimestampProvider = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.locks = locks
        self.session_factory = session_factory
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def append(self, draft: AuditDraft, session: Session) -> AuditEntryID:
        """Place ``draft`` at the head of its chain, inside the caller's transaction.

        The caller owns the transaction; if this raises, the caller must roll back
        so that no state change is committed without its audit entry.
        """
        with self.locks.hold(draft.organization_id, draft.user_id):
            try:
                head = storage.audit.last(draft.user_id, draft.organization_id, session=session)
                entry = self.seal(draft, head)
                storage.audit.create(entry, session=session)
            except SQLAlchemyError as e:
                self.logger.error(
                    "audit write failed",
                    extra={"user_id": draft.user_id, "organization_id": draft.organization_id},
                )
                raise AuditWriteFailure(
                    f"could not write audit entry: {e}",
                    user_id=draft.user_id,
                    organization_id=draft.organization_id,
                    event=draft.detail.get("event"),
                ) from e

        self.logger.debug(
            f"audit {entry.event_type.value} #{entry.sequence}",
            extra={"user_id": entry.user_id, "organization_id": entry.organization_id, "entry_id": entry.entry_id},
        )
        return entry.entry_id

    def seal(self, draft: AuditDraft, head: AuditLogEntry | None) -> AuditLogEntry:
        previous_hash = head.hash if head is not None else GENESIS_HASH
        fields = draft.model_dump(mode="json")
        fields["detail"] = redact(fields["detail"], RedactedKeys)
        fields["entry_id"] = AuditEntryID()
        fields["sequence"] = head.sequence + 1 if head is not None else 1
        fields["timestamp"] = self.clock().astimezone(datetime.UTC)
        # hash the JSON form, which is exactly what storage will hand back
        unsealed = AuditLogEntry.model_validate({**fields, "previous_hash": previous_hash, "hash": ""})
        return unsealed.model_copy(
            update={"hash": compute_hash(unsealed.model_dump(mode="json"), previous_hash)}
        )

    def query(self, filters: AuditFilters) -> tuple[AuditLogEntry, ...]:
        with self.session_factory() as session, session.begin():
            return storage.audit.find(filters, session=session)

    def verify_chain(self, user_id: UserID, organization_id: OrganizationID) -> ChainVerification:
        with self.session_factory() as session, session.begin():
            entries = storage.audit.chain(user_id, organization_id, session=session)
        result = verify(user_id, organization_id, entries)
        if not result.valid:
            self.logger.warning(
                "audit chain verification failed",
                extra={
                    "user_id": user_id,
                    "organization_id": organization_id,
                    "first_invalid": result.first_invalid,
                    "invalid": len(result.invalid_entries),
                },
            )
        return result
