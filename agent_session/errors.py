"""
errors.py
---------
Session-layer exceptions.

Transports raise these so the controller can log and surface failures
consistently without scraping strings out of SDK or graph exceptions.
"""
from __future__ import annotations


class SessionError(RuntimeError):
    """Base class for session/transport errors."""


class TransportError(SessionError):
    """A transport call (thread creation, streaming, state patch) failed."""

    def __init__(self, message: str, *, thread_id: str | None = None, detail: str | None = None):
        self.message = message
        self.thread_id = thread_id
        self.detail = detail
        super().__init__(self.__str__())

    def __str__(self) -> str:
        where = f" (thread={self.thread_id})" if self.thread_id else ""
        detail = (self.detail or "").strip()
        if detail:
            return f"Transport error{where}: {self.message}: {detail}"
        return f"Transport error{where}: {self.message}"


class AnswerRejected(SessionError):
    """An answer failed local validation (empty, or not one of the offered options)."""

    def __init__(self, question_id: str, reason: str):
        self.question_id = question_id
        self.reason = reason
        super().__init__(f"Answer for question {question_id} rejected: {reason}")
