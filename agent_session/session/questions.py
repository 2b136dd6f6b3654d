"""
questions.py
------------
The human-in-the-loop question queue.

Holds every question the backend (or the operator) has raised in this session
and decides, after each answer, whether the backend may resume: resumption is
allowed only once no *pending* question has priority `blocking`.

Questions are immutable models; every transition replaces the entry in the
list with an updated copy. Status moves one way only:

    pending -> answered
    pending -> skipped
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union
from uuid import uuid4

from pydantic import ValidationError

from ..models import (
    PRIORITY_RANK,
    Question,
    QuestionContext,
    QuestionOption,
    QuestionPriority,
    QuestionsInterruptData,
)

logger = logging.getLogger(__name__)

AnswerCallback = Callable[[str, str], Any]
ResumeCallback = Callable[[Dict[str, str]], Any]


def urgency_key(q: Question):
    """Sort key: priority rank first, then lower confidence first."""
    return (PRIORITY_RANK.get(q.priority, len(PRIORITY_RANK)), q.confidence)


class QuestionQueue:
    """
    Owns the session's question set. The only writer of that set.

    `on_answer(question_id, answer)` fires after every accepted answer.
    `on_resume_with_answers(answers)` fires when an answer leaves no blocking
    question pending; it is scheduled on the next loop iteration when an event
    loop is running, so it always observes the settled set.
    """

    def __init__(
        self,
        on_answer: Optional[AnswerCallback] = None,
        on_resume_with_answers: Optional[ResumeCallback] = None,
    ) -> None:
        self._questions: List[Question] = []
        self.on_answer = on_answer
        self.on_resume_with_answers = on_resume_with_answers
        self._tasks: Set[asyncio.Task] = set()

    # ---- derived views ----------------------------------------------------------------
    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    @property
    def pending_questions(self) -> List[Question]:
        return [q for q in self._questions if q.status == "pending"]

    @property
    def answered_questions(self) -> List[Question]:
        return [q for q in self._questions if q.status in ("answered", "skipped")]

    @property
    def has_blocking_questions(self) -> bool:
        return any(q.priority == "blocking" for q in self.pending_questions)

    @property
    def pending_count(self) -> int:
        return len(self.pending_questions)

    @property
    def blocking_count(self) -> int:
        return sum(1 for q in self.pending_questions if q.priority == "blocking")

    def get(self, question_id: str) -> Optional[Question]:
        for q in self._questions:
            if q.id == question_id:
                return q
        return None

    def next_question(self) -> Optional[Question]:
        """The most urgent pending question, or None."""
        pending = sorted(self.pending_questions, key=urgency_key)
        return pending[0] if pending else None

    # ---- adding -----------------------------------------------------------------------
    def add_question(
        self,
        text: str,
        priority: QuestionPriority = "medium",
        confidence: float = 0.5,
        context: Union[QuestionContext, Dict[str, Any], None] = None,
        options: Optional[Iterable[Union[QuestionOption, Dict[str, Any]]]] = None,
        subject: Optional[str] = None,
    ) -> str:
        """Append a new pending question and return its generated id."""
        question = Question(
            id=str(uuid4()),
            text=text,
            priority=priority or "medium",
            confidence=0.5 if confidence is None else confidence,
            status="pending",
            context=context or {},
            options=list(options) if options is not None else None,
            subject=subject,
        )
        self._questions.append(question)
        return question.id

    def add_questions_from_interrupt(
        self, data: Union[QuestionsInterruptData, Dict[str, Any], None]
    ) -> List[str]:
        """
        Append a batch of backend-supplied questions. Ids already present (or
        repeated within the batch) are dropped, never merged. Items that do not
        validate are skipped. Returns the ids actually added.
        """
        if isinstance(data, QuestionsInterruptData):
            items = data.questions
        elif isinstance(data, dict) and isinstance(data.get("questions"), list):
            items = data["questions"]
        else:
            return []

        existing = {q.id for q in self._questions}
        added: List[Question] = []
        for item in items:
            question = self._from_payload(item)
            if question is None or question.id in existing:
                continue
            existing.add(question.id)
            added.append(question)

        self._questions.extend(added)
        if added:
            logger.info("Queued %d question(s) from interrupt", len(added))
        return [q.id for q in added]

    @staticmethod
    def _from_payload(item: Any) -> Optional[Question]:
        if isinstance(item, Question):
            item = item.model_dump()
        if not isinstance(item, dict):
            return None
        fields: Dict[str, Any] = {
            "id": item.get("id") or str(uuid4()),
            "text": item.get("text"),
            "priority": item.get("priority") or "medium",
            "confidence": 0.5 if item.get("confidence") is None else item["confidence"],
            "status": "pending",
            "context": item.get("context") or {},
            "options": item.get("options"),
            "subject": item.get("subject"),
        }
        created = item.get("createdAt") or item.get("created_at")
        if created:
            fields["created_at"] = created
        try:
            return Question.model_validate(fields)
        except ValidationError as e:
            logger.warning("Dropping malformed question %r: %s", fields.get("id"), e)
            return None

    # ---- transitions ------------------------------------------------------------------
    def validate_answer(self, question_id: str, answer: Any) -> Optional[str]:
        """Reason the answer would be rejected, or None if acceptable."""
        question = self.get(question_id)
        if question is None:
            return "unknown question"
        if question.status != "pending":
            return f"question is already {question.status}"
        if not isinstance(answer, str) or not answer.strip():
            return "answer is empty"
        if question.options and answer not in question.option_ids:
            if answer not in {o.label for o in question.options}:
                return "answer is not one of the offered options"
        return None

    def answer_question(self, question_id: str, answer: str) -> bool:
        """
        Mark a pending question answered. Returns False (and changes nothing)
        if the question is unknown, no longer pending, or the answer fails
        validation.
        """
        reason = self.validate_answer(question_id, answer)
        if reason is not None:
            logger.info("Answer for %s not accepted: %s", question_id, reason)
            return False

        self._replace(question_id, status="answered", answer=answer, answered_at=datetime.now())

        # Settled from here on: callbacks only read.
        if self.on_answer is not None:
            self._call(self.on_answer, question_id, answer)

        if not self.has_blocking_questions:
            answers = self.get_all_answers()
            if answers and self.on_resume_with_answers is not None:
                self._defer_resume(answers)
        return True

    def skip_question(self, question_id: str) -> bool:
        """
        Mark a pending question skipped. Does not re-check the resume
        predicate: skipping never resumes the backend by itself.
        """
        question = self.get(question_id)
        if question is None or question.status != "pending":
            return False
        self._replace(question_id, status="skipped", answered_at=datetime.now())
        return True

    def clear_answered(self) -> None:
        self._questions = self.pending_questions

    def reset(self) -> None:
        self._questions = []

    def _replace(self, question_id: str, **update: Any) -> None:
        self._questions = [
            q.model_copy(update=update) if q.id == question_id else q for q in self._questions
        ]

    # ---- queries ----------------------------------------------------------------------
    def get_unanswered_blocking_questions(self) -> List[Question]:
        return [q for q in self._questions if q.priority == "blocking" and q.status == "pending"]

    def get_all_answers(self) -> Dict[str, str]:
        return {q.id: q.answer for q in self._questions if q.status == "answered" and q.answer}

    def can_proceed(self) -> bool:
        return not any(q.priority == "blocking" and q.status == "pending" for q in self._questions)

    # ---- notification -----------------------------------------------------------------
    def _defer_resume(self, answers: Dict[str, str]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None:
            # Called after the mutation above has completed, so the set is already settled.
            self._call(self.on_resume_with_answers, answers)
        else:
            loop.call_soon(self._call, self.on_resume_with_answers, answers)

    def _call(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            result = callback(*args)
        except Exception:
            logger.exception("Question callback %r failed", callback)
            return
        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(_await(result))
            return
        task = loop.create_task(_await(result))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


async def _await(awaitable: Any) -> Any:
    return await awaitable
