"""Tests for dailygate.engine.client.AssessmentClient."""

from __future__ import annotations

import datetime
import decimal
import typing as t

import pytest
from sqlalchemy.orm import Session, sessionmaker

from conftest import answer_yes, Clock, ScriptedEngine
from dailygate import storage
from dailygate.engine import AssessmentClient
from dailygate.gate.errors import InvalidAnswer, NotFound, SessionExpired, UpstreamUnavailable
from dailygate.model import AssessmentResult, Framework, Question, SessionHandle, SessionID


class Interrupted(Exception):
    pass


class TestOpenSession(object):
    def test_opens_once(
        self,
        assessment_client: AssessmentClient,
        assessment_engine: ScriptedEngine,
        session_factory: sessionmaker[Session],
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        handle = make_handle()

        first = assessment_client.open_session(handle, expected_questions=2)
        second = assessment_client.open_session(handle, expected_questions=2)

        assert assessment_engine.calls.count("start") == 1
        assert first.engine_session_id == second.engine_session_id == "engine-1"
        with session_factory() as session, session.begin():
            stored = storage.assessment_session.get(handle.session_id, session=session)
        assert stored is not None
        assert stored.deadline == handle.expires_at
        assert stored.expected_questions == 2

    def test_retries_with_backoff(
        self,
        assessment_client: AssessmentClient,
        assessment_engine: ScriptedEngine,
        sleeps: list[float],
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        assessment_engine.failures = [UpstreamUnavailable("down"), UpstreamUnavailable("still down")]

        opened = assessment_client.open_session(make_handle())

        assert opened.engine_session_id is not None
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(
        self,
        assessment_client: AssessmentClient,
        assessment_engine: ScriptedEngine,
        session_factory: sessionmaker[Session],
        sleeps: list[float],
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        assessment_engine.failures = [UpstreamUnavailable("down") for _ in range(4)]
        handle = make_handle()

        with pytest.raises(UpstreamUnavailable):
            assessment_client.open_session(handle)

        assert sleeps == [1.0, 2.0, 4.0]
        with session_factory() as session, session.begin():
            stored = storage.assessment_session.get(handle.session_id, session=session)
        # the session is kept so it can be opened on resume
        assert stored is not None
        assert stored.engine_session_id is None


class TestRunAssessment(object):
    def test_answers_are_recorded(
        self,
        assessment_client: AssessmentClient,
        session_factory: sessionmaker[Session],
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        handle = make_handle()

        result = assessment_client.run_assessment(handle, lambda q: f"answer to {q.question_id}")

        assert result.run_id == "run-engine-1"
        assert result.scores["comprehension"] == decimal.Decimal("0.85")
        with session_factory() as session, session.begin():
            stored = storage.assessment_session.get(handle.session_id, session=session)
        assert stored is not None
        assert [(a.question_id, a.answer) for a in stored.answers] == [
            ("q1", "answer to q1"),
            ("q2", "answer to q2"),
        ]

    def test_rejected_answer_is_asked_again(
        self,
        assessment_client: AssessmentClient,
        assessment_engine: ScriptedEngine,
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        assessment_engine.rejections = {"idk"}
        replies = iter(["idk", "verify it", "check the docs"])
        asked: list[str] = []

        def ask(question: Question) -> str:
            asked.append(question.question_id)
            return next(replies)

        assessment_client.run_assessment(make_handle(), ask)

        assert asked == ["q1", "q1", "q2"]
        assert assessment_engine.answers["engine-1"] == {"q1": "verify it", "q2": "check the docs"}

    def test_reprompt_limit(
        self,
        assessment_client: AssessmentClient,
        assessment_engine: ScriptedEngine,
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        assessment_engine.rejections = {"idk"}
        asked: list[str] = []

        def ask(question: Question) -> str:
            asked.append(question.question_id)
            return "idk"

        with pytest.raises(InvalidAnswer):
            assessment_client.run_assessment(make_handle(), ask)
        assert len(asked) == 3

    def test_deadline(
        self,
        assessment_client: AssessmentClient,
        clock: Clock,
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        handle = make_handle(max_duration=datetime.timedelta(minutes=5))
        clock.advance(minutes=5)

        with pytest.raises(SessionExpired):
            assessment_client.run_assessment(handle, answer_yes)

    def test_progress_reported(
        self,
        assessment_client: AssessmentClient,
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        seen: list[tuple[int, int | None]] = []

        assessment_client.run_assessment(make_handle(), answer_yes, lambda p: seen.append((p.answered, p.total)))

        assert seen == [(1, 2), (2, 2)]


class TestResumeAssessment(object):
    def test_resume_skips_answered_questions(
        self,
        assessment_client: AssessmentClient,
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        handle = make_handle()

        def interrupted(question: Question) -> str:
            if question.question_id == "q2":
                raise Interrupted
            return "yes"

        with pytest.raises(Interrupted):
            assessment_client.run_assessment(handle, interrupted)

        asked: list[str] = []
        progress: list[int] = []

        def ask(question: Question) -> str:
            asked.append(question.question_id)
            return "yes"

        result = assessment_client.resume_assessment(handle.session_id, ask, lambda p: progress.append(p.answered))

        assert asked == ["q2"]
        assert progress == [2]
        assert result.run_id == "run-engine-1"

    def test_resume_opens_unopened_session(
        self,
        assessment_client: AssessmentClient,
        assessment_engine: ScriptedEngine,
        make_handle: t.Callable[..., SessionHandle],
    ) -> None:
        handle = make_handle()
        assessment_engine.failures = [UpstreamUnavailable("down") for _ in range(4)]
        with pytest.raises(UpstreamUnavailable):
            assessment_client.open_session(handle)

        result = assessment_client.resume_assessment(handle.session_id, answer_yes)

        assert result.framework_id == "daily-core"

    def test_resume_unknown_session(self, assessment_client: AssessmentClient) -> None:
        with pytest.raises(NotFound):
            assessment_client.resume_assessment(SessionID(), answer_yes)


class TestIsResultValid(object):
    framework = Framework(framework_id="daily-core", thresholds={"comprehension": decimal.Decimal("0.7")})

    def result(self, **kwargs: t.Any) -> AssessmentResult:
        fields: dict[str, t.Any] = {
            "run_id": "run-1",
            "framework_id": "daily-core",
            "scores": {"comprehension": "0.8"},
            "passed": True,
        }
        return AssessmentResult.model_validate({**fields, **kwargs})

    def test_valid(self, assessment_client: AssessmentClient) -> None:
        assert assessment_client.is_result_valid(self.result(), self.framework)

    def test_missing_dimension_is_still_valid(self, assessment_client: AssessmentClient) -> None:
        assert assessment_client.is_result_valid(self.result(scores={}), self.framework)

    def test_missing_run_id(self, assessment_client: AssessmentClient) -> None:
        assert not assessment_client.is_result_valid(self.result(run_id=""), self.framework)

    def test_other_framework(self, assessment_client: AssessmentClient) -> None:
        assert not assessment_client.is_result_valid(self.result(framework_id="daily-lead"), self.framework)

    def test_non_finite_score(self, assessment_client: AssessmentClient) -> None:
        result = self.result().model_copy(update={"scores": {"comprehension": decimal.Decimal("NaN")}})

        assert not assessment_client.is_result_valid(result, self.framework)
