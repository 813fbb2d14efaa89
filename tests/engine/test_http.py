"""Tests for dailygate.engine.http.HTTPAssessmentEngine."""

from __future__ import annotations

import decimal
import json
import typing as t

import httpx
import pytest

from dailygate.engine import HTTPAssessmentEngine
from dailygate.gate.errors import InvalidAnswer, NotFound, SessionExpired, UpstreamError, UpstreamUnavailable

Handler = t.Callable[[httpx.Request], httpx.Response]


def engine_for(handler: Handler) -> HTTPAssessmentEngine:
    return HTTPAssessmentEngine("http://engine.test", transport=httpx.MockTransport(handler))


class TestEndpoints(object):
    def test_start(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"session_id": "eng-42"})

        with engine_for(handler) as engine:
            assert engine.start("daily-core") == "eng-42"

        assert seen[0].method == "POST"
        assert seen[0].url.path == "/sessions"
        assert json.loads(seen[0].content) == {"framework_id": "daily-core"}

    def test_next_question(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/sessions/eng-42/next"
            return httpx.Response(
                200, json={"question_id": "q1", "prompt": "Why?", "choices": ["a", "b"], "index": 1, "total": 5}
            )

        question = engine_for(handler).next_question("eng-42")

        assert question is not None
        assert question.question_id == "q1"
        assert question.choices == ("a", "b")
        assert question.total == 5

    @pytest.mark.parametrize(
        "response",
        [httpx.Response(204), httpx.Response(200, json={"done": True})],
    )
    def test_no_more_questions(self, response: httpx.Response) -> None:
        assert engine_for(lambda request: response).next_question("eng-42") is None

    def test_submit_answer(self) -> None:
        seen: list[dict[str, t.Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(204)

        engine_for(handler).submit_answer("eng-42", "q1", "check the docs")

        assert seen == [{"question_id": "q1", "answer": "check the docs"}]

    def test_rejected_answer(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"detail": "answer does not address the question"})

        with pytest.raises(InvalidAnswer) as exc:
            engine_for(handler).submit_answer("eng-42", "q1", "banana")
        assert exc.value.message == "answer does not address the question"

    def test_get_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/sessions/eng-42/result"
            return httpx.Response(
                200,
                json={
                    "run_id": "run-7",
                    "framework_id": "daily-core",
                    "scores": {"comprehension": "0.82", "verification": 0.7},
                    "passed": True,
                    "verify_url": "https://engine.test/runs/run-7",
                },
            )

        result = engine_for(handler).get_result("eng-42")

        assert result.run_id == "run-7"
        assert result.scores["comprehension"] == decimal.Decimal("0.82")
        assert result.verify_url == "https://engine.test/runs/run-7"


class TestErrors(object):
    @pytest.mark.parametrize("code", [500, 502, 503])
    def test_server_errors_are_transient(self, code: int) -> None:
        with pytest.raises(UpstreamUnavailable):
            engine_for(lambda request: httpx.Response(code)).start("daily-core")

    def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable):
            engine_for(handler).next_question("eng-42")

    def test_gone_means_expired(self) -> None:
        with pytest.raises(SessionExpired):
            engine_for(lambda request: httpx.Response(410)).next_question("eng-42")

    def test_not_found(self) -> None:
        with pytest.raises(NotFound):
            engine_for(lambda request: httpx.Response(404)).get_result("eng-42")

    def test_other_client_errors_are_upstream_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"detail": "unknown framework"})

        with pytest.raises(UpstreamError) as exc_info:
            engine_for(handler).start("daily-core")

        assert "400" in exc_info.value.message
        assert "unknown framework" in exc_info.value.message

    def test_unprocessable_result_is_an_upstream_error(self) -> None:
        with pytest.raises(UpstreamError):
            engine_for(lambda request: httpx.Response(422)).get_result("eng-42")
