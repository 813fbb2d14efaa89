from __future__ import annotations

import datetime
import logging
import threading

from dailygate import storage
from dailygate.model import GateState, OrganizationID, UserID

from .gate import AssessmentGate

logger = logging.getLogger(__name__)


def sweep_expired_sessions(
    gate: AssessmentGate, now: datetime.datetime | None = None
) -> list[tuple[OrganizationID, UserID]]:
    """Fail every in-progress session that has run past its maximum duration.

    Candidates are listed without locks; each is re-checked by
    ``AssessmentGate.expire_session`` under its own key lock, so a session that
    finished in the meantime is left alone. Returns the keys that were expired.
    """
    now = now or gate.clock()
    with gate.session_factory() as session, session.begin():
        candidates = storage.state.find(state=GateState.InProgress, session=session)

    expired: list[tuple[OrganizationID, UserID]] = []
    for state in candidates:
        current = state.current_session
        if current is None or now < current.expires_at:
            continue
        try:
            if gate.expire_session(state.user_id, state.organization_id):
                expired.append((state.organization_id, state.user_id))
        except Exception:
            # one bad key (a missing config, a locked database) must not stop the sweep
            logger.exception(
                "failed to expire session",
                extra={"user_id": state.user_id, "organization_id": state.organization_id},
            )
    if expired:
        logger.info(f"expired {len(expired)} assessment session(s)")
    return expired


class SessionSweeper(object):
    """Run ``sweep_expired_sessions`` every ``interval`` on a daemon thread."""

    def __init__(self, gate: AssessmentGate, interval: datetime.timedelta = datetime.timedelta(minutes=1)):
        self.gate = gate
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="dailygate-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: datetime.timedelta | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout.total_seconds() if timeout is not None else None)
            self._thread = None

    def run(self) -> None:
        logger.info(f"session sweeper running every {self.interval.total_seconds():g}s")
        while not self._stop.is_set():
            try:
                sweep_expired_sessions(self.gate)
            except Exception:
                logger.exception("session sweep failed")
            self._stop.wait(self.interval.total_seconds())

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
