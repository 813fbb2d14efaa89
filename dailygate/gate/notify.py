from __future__ import annotations

import logging
import typing as t

from dailygate.model import OrganizationID, UserID

from .machine import NotificationIntent


class Notifier(t.Protocol):
    """Delivers user-facing notifications raised by state transitions.

    Delivery happens after the transition is committed; a failing notifier
    never undoes a transition.
    """

    def notify(
        self,
        intent: NotificationIntent,
        *,
        user_id: UserID,
        organization_id: OrganizationID,
        detail: t.Mapping[str, t.Any],
    ) -> None: ...


class LoggingNotifier(object):
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def notify(
        self,
        intent: NotificationIntent,
        *,
        user_id: UserID,
        organization_id: OrganizationID,
        detail: t.Mapping[str, t.Any],
    ) -> None:
        self.logger.info(
            f"notify {intent.recipient}: {intent.kind}",
            extra={"user_id": user_id, "organization_id": organization_id, "detail": dict(detail)},
        )
