from __future__ import annotations

import datetime
import decimal
import logging
import time
import typing as t

from dailygate import storage
from dailygate.core.provider import TimestampProvider, utcnow
from dailygate.gate.errors import InvalidAnswer, NotFound, SessionExpired, UpstreamUnavailable
from dailygate.model import AnsweredQuestion, AskUser, AssessmentResult, AssessmentSession, Framework, \
    OnProgress, Progress, SessionHandle, SessionID
from dailygate.storage import Session

from .protocol import AssessmentEngine

T = t.TypeVar("T")


class AssessmentClient(object):
    """Drives one assessment session against the engine.

    Questions are put to the user one at a time through ``ask_user``; every
    accepted answer is recorded in ``assessment_sessions`` so that an
    interrupted session can be resumed without asking again. Transient engine
    failures are retried with exponential backoff: ``backoff_base``,
    ``2 * backoff_base``, ``4 * backoff_base``, ...
    """

    def __init__(
        self,
        engine: AssessmentEngine,
        session_factory: t.Callable[[], Session],
        clock: TimestampProvider = utcnow,
        max_retries: int = 3,
        backoff_base: datetime.timedelta = datetime.timedelta(seconds=1),
        max_reprompts: int = 3,
        sleep: t.Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ):
        self.engine = engine
        self.session_factory = session_factory
        self.clock = clock
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.max_reprompts = max_reprompts
        self.sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

    def open_session(self, handle: SessionHandle, expected_questions: int | None = None) -> AssessmentSession:
        """Open the engine session for ``handle``; a no-op if it is already open."""
        with self.session_factory() as session, session.begin():
            existing = storage.assessment_session.get(handle.session_id, session=session)
            if existing is None:
                existing = storage.assessment_session.create(
                    AssessmentSession(
                        session_id=handle.session_id,
                        user_id=handle.user_id,
                        organization_id=handle.organization_id,
                        framework_id=handle.framework_id,
                        expected_questions=expected_questions,
                        started_at=handle.started_at,
                        deadline=handle.expires_at,
                    ),
                    session=session,
                )
        if existing.engine_session_id is not None:
            return existing

        engine_session_id = self._call(self.engine.start, existing.framework_id)
        with self.session_factory() as session, session.begin():
            opened = storage.assessment_session.update(
                handle.session_id, {"engine_session_id": engine_session_id}, session=session
            )
        assert opened is not None
        self.logger.info(
            "assessment session opened",
            extra={
                "session_id": handle.session_id,
                "user_id": handle.user_id,
                "organization_id": handle.organization_id,
                "framework_id": handle.framework_id,
            },
        )
        return opened

    def run_assessment(
        self,
        handle: SessionHandle,
        ask_user: AskUser,
        on_progress: OnProgress | None = None,
    ) -> AssessmentResult:
        session = self.open_session(handle)
        return self._drive(session, ask_user, on_progress)

    def resume_assessment(
        self,
        session_id: SessionID,
        ask_user: AskUser,
        on_progress: OnProgress | None = None,
    ) -> AssessmentResult:
        with self.session_factory() as session, session.begin():
            stored = storage.assessment_session.get(session_id, session=session)
        if stored is None:
            raise NotFound(f"no assessment session {session_id}")
        if stored.engine_session_id is None:
            stored = self.open_session(
                SessionHandle(
                    session_id=stored.session_id,
                    user_id=stored.user_id,
                    organization_id=stored.organization_id,
                    framework_id=stored.framework_id,
                    started_at=stored.started_at,
                    expires_at=stored.deadline,
                ),
                expected_questions=stored.expected_questions,
            )
        return self._drive(stored, ask_user, on_progress)

    def is_result_valid(self, result: AssessmentResult, framework: Framework) -> bool:
        """Whether ``result`` is well-formed and scored against ``framework``.

        Missing dimensions do not make a result invalid; they fail the threshold.
        """
        if not result.run_id or result.framework_id != framework.framework_id:
            return False
        return all(isinstance(v, decimal.Decimal) and v.is_finite() for v in result.scores.values())

    def _drive(
        self,
        session: AssessmentSession,
        ask_user: AskUser,
        on_progress: OnProgress | None,
    ) -> AssessmentResult:
        engine_session_id = session.engine_session_id
        assert engine_session_id is not None
        answered = len(session.answers)

        while True:
            self._check_deadline(session)
            question = self._call(self.engine.next_question, engine_session_id)
            if question is None:
                break

            answer = self._ask(session, question.question_id, lambda: ask_user(question))
            with self.session_factory() as db, db.begin():
                storage.assessment_session.append_answer(
                    session.session_id,
                    AnsweredQuestion(question_id=question.question_id, answer=answer),
                    session=db,
                )
            answered += 1
            if on_progress is not None:
                on_progress(
                    Progress(
                        session_id=session.session_id,
                        answered=answered,
                        total=question.total or session.expected_questions,
                    )
                )

        self._check_deadline(session)
        result = self._call(self.engine.get_result, engine_session_id)
        self.logger.info(
            "assessment completed",
            extra={"session_id": session.session_id, "run_id": result.run_id, "passed": result.passed},
        )
        return result

    def _ask(self, session: AssessmentSession, question_id: str, prompt: t.Callable[[], str]) -> str:
        engine_session_id = session.engine_session_id
        assert engine_session_id is not None
        for attempt in range(self.max_reprompts + 1):
            answer = prompt()
            self._check_deadline(session)
            try:
                self._call(self.engine.submit_answer, engine_session_id, question_id, answer)
            except InvalidAnswer:
                if attempt == self.max_reprompts:
                    raise
                self.logger.info(
                    "answer rejected, asking again",
                    extra={"session_id": session.session_id, "question_id": question_id, "attempt": attempt + 1},
                )
                continue
            return answer
        raise AssertionError("unreachable")

    def _check_deadline(self, session: AssessmentSession) -> None:
        if self.clock() >= session.deadline:
            raise SessionExpired(
                "assessment session exceeded its maximum duration",
                user_id=session.user_id,
                organization_id=session.organization_id,
            )

    def _call(self, fn: t.Callable[..., T], *args: t.Any) -> T:
        for attempt in range(self.max_retries + 1):
            try:
                return fn(*args)
            except UpstreamUnavailable:
                if attempt == self.max_retries:
                    raise
                delay = self.backoff_base * (2**attempt)
                self.logger.warning(
                    f"assessment engine unavailable, retrying in {delay.total_seconds():g}s",
                    extra={"attempt": attempt + 1, "max_retries": self.max_retries},
                )
                self.sleep(delay.total_seconds())
        raise AssertionError("unreachable")
