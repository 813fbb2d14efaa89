"""Assessment engine protocol."""

from __future__ import annotations

import typing as t

from dailygate.model import AssessmentResult, Question


class AssessmentEngine(t.Protocol):
    """The remote service that asks the questions and scores the answers.

    Implementations raise ``UpstreamUnavailable`` for transient failures,
    ``InvalidAnswer`` when an answer is rejected and ``SessionExpired`` when
    the engine no longer knows the session.
    """

    def start(self, framework_id: str) -> str:
        """Open an engine session for ``framework_id``.

        Returns:
            The engine's identifier for the new session.
        """
        ...

    def next_question(self, engine_session_id: str) -> Question | None:
        """The next unanswered question, or ``None`` once every question is answered."""
        ...

    def submit_answer(self, engine_session_id: str, question_id: str, answer: str) -> None: ...

    def get_result(self, engine_session_id: str) -> AssessmentResult: ...
