"""HTTP client for the assessment engine API."""

from __future__ import annotations

import datetime
import logging
import typing as t

import httpx

from dailygate.gate.errors import InvalidAnswer, NotFound, SessionExpired, UpstreamError, UpstreamUnavailable
from dailygate.model import AssessmentResult, Question

logger = logging.getLogger(__name__)


class HTTPAssessmentEngine(object):
    """Synchronous client for the assessment engine's HTTP API.

    Endpoints:
        POST /sessions                      open a session for a framework
        GET  /sessions/{id}/next            next question (204 when done)
        POST /sessions/{id}/answers         submit an answer (422 if rejected)
        GET  /sessions/{id}/result          scores once every question is answered

    410 from any endpoint means the engine has expired the session. Any other
    client error is raised as ``UpstreamError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: datetime.timedelta = datetime.timedelta(seconds=10),
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout.total_seconds(), transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HTTPAssessmentEngine:
        return self

    def __exit__(self, *exc: t.Any) -> None:
        self.close()

    def start(self, framework_id: str) -> str:
        resp = self._request("POST", "/sessions", json={"framework_id": framework_id})
        return str(resp.json()["session_id"])

    def next_question(self, engine_session_id: str) -> Question | None:
        resp = self._request("GET", f"/sessions/{engine_session_id}/next")
        if resp.status_code == httpx.codes.NO_CONTENT:
            return None
        data = resp.json()
        if data.get("done"):
            return None
        return Question.model_validate(data)

    def submit_answer(self, engine_session_id: str, question_id: str, answer: str) -> None:
        payload = {"question_id": question_id, "answer": answer}
        resp = self._request(
            "POST", f"/sessions/{engine_session_id}/answers", json=payload, accept=(httpx.codes.UNPROCESSABLE_ENTITY,)
        )
        if resp.status_code == httpx.codes.UNPROCESSABLE_ENTITY:
            # the engine's explanation is meant for the user; the answer itself is not logged
            raise InvalidAnswer(_error_detail(resp) or "answer rejected", event="SubmitAnswer")

    def get_result(self, engine_session_id: str) -> AssessmentResult:
        resp = self._request("GET", f"/sessions/{engine_session_id}/result")
        return AssessmentResult.model_validate(resp.json())

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, t.Any] | None = None,
        accept: tuple[int, ...] = (),
    ) -> httpx.Response:
        try:
            resp = self._client.request(method, path, json=json)
        except httpx.TransportError as e:
            logger.warning(f"assessment engine unreachable: {method} {path}", extra={"error": repr(e)})
            raise UpstreamUnavailable(f"assessment engine unreachable: {e}") from e

        if resp.status_code == httpx.codes.GONE:
            raise SessionExpired("assessment engine expired the session")
        if resp.status_code == httpx.codes.NOT_FOUND:
            raise NotFound(f"assessment engine: {method} {path} not found")
        if resp.is_server_error:
            logger.warning(
                f"assessment engine error: {method} {path}",
                extra={"status_code": resp.status_code},
            )
            raise UpstreamUnavailable(f"assessment engine returned {resp.status_code}")
        if resp.is_client_error and resp.status_code not in accept:
            logger.warning(
                f"assessment engine rejected request: {method} {path}",
                extra={"status_code": resp.status_code},
            )
            raise UpstreamError(
                f"assessment engine returned {resp.status_code}: {_error_detail(resp) or resp.reason_phrase}"
            )
        return resp


def _error_detail(resp: httpx.Response) -> str | None:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or None
    if isinstance(data, dict):
        detail = t.cast(dict[str, t.Any], data).get("detail")
        return str(detail) if detail is not None else None
    return None
