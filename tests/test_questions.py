"""Tests for the human-in-the-loop question queue."""

import asyncio
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from agent_session.models import QuestionsInterruptData
from agent_session.session.questions import QuestionQueue


# ---------------------------------------------------------------------------
# Adding
# ---------------------------------------------------------------------------

class TestAddQuestion:
    def test_defaults(self):
        queue = QuestionQueue()
        qid = queue.add_question("Which database?")
        q = queue.get(qid)
        assert q.priority == "medium"
        assert q.confidence == 0.5
        assert q.status == "pending"
        assert q.answer is None
        assert q.options is None
        assert isinstance(q.created_at, datetime)

    def test_generates_unique_ids(self):
        queue = QuestionQueue()
        ids = {queue.add_question(f"q{i}") for i in range(20)}
        assert len(ids) == 20

    def test_options_and_context_accept_dicts(self):
        queue = QuestionQueue()
        qid = queue.add_question(
            "Pick one",
            priority="high",
            confidence=0.2,
            context={"file": "src/api/client.py", "lineNumber": 12},
            options=[{"id": "a", "label": "A"}, {"id": "b", "label": "B"}],
            subject="API",
        )
        q = queue.get(qid)
        assert q.option_ids == ["a", "b"]
        assert q.context.line_number == 12
        assert q.subject == "API"

    def test_confidence_is_clamped(self):
        queue = QuestionQueue()
        assert queue.get(queue.add_question("x", confidence=1.7)).confidence == 1.0
        assert queue.get(queue.add_question("y", confidence=-3)).confidence == 0.0


class TestAddQuestionsFromInterrupt:
    def test_preserves_backend_ids_and_applies_defaults(self):
        queue = QuestionQueue()
        added = queue.add_questions_from_interrupt(
            {"questions": [{"id": "q1", "text": "Scope?"}, {"text": "Sources?"}]}
        )
        assert added[0] == "q1"
        assert len(added) == 2
        assert all(q.priority == "medium" and q.confidence == 0.5 for q in queue.questions)

    def test_duplicate_ids_are_dropped_not_merged(self):
        queue = QuestionQueue()
        queue.add_questions_from_interrupt({"questions": [{"id": "q1", "text": "original", "priority": "blocking"}]})
        added = queue.add_questions_from_interrupt(
            {"questions": [{"id": "q1", "text": "replacement", "priority": "high"}, {"id": "q2", "text": "new"}]}
        )
        assert added == ["q2"]
        assert queue.get("q1").text == "original"
        assert queue.get("q1").priority == "blocking"

    def test_duplicates_within_one_batch_keep_first(self):
        queue = QuestionQueue()
        queue.add_questions_from_interrupt({"questions": [{"id": "q", "text": "first"}, {"id": "q", "text": "second"}]})
        assert [q.text for q in queue.questions] == ["first"]

    def test_status_and_answer_from_payload_are_ignored(self):
        queue = QuestionQueue()
        queue.add_questions_from_interrupt(
            {"questions": [{"id": "q1", "text": "x", "status": "answered", "answer": "sneaky"}]}
        )
        q = queue.get("q1")
        assert q.status == "pending"
        assert q.answer is None

    def test_parses_created_at(self):
        queue = QuestionQueue()
        queue.add_questions_from_interrupt(
            {"questions": [{"id": "q1", "text": "x", "createdAt": "2024-05-01T10:00:00"}]}
        )
        assert queue.get("q1").created_at == datetime(2024, 5, 1, 10, 0, 0)

    def test_camel_case_context(self):
        queue = QuestionQueue()
        queue.add_questions_from_interrupt(
            {"questions": [{"id": "q1", "text": "x", "context": {"skillLabels": ["data_model"], "stepIndex": 3}}]}
        )
        ctx = queue.get("q1").context
        assert ctx.skill_labels == ["data_model"]
        assert ctx.step_index == 3

    def test_malformed_items_are_skipped(self):
        queue = QuestionQueue()
        added = queue.add_questions_from_interrupt(
            {"questions": [{"id": "bad"}, "nope", {"id": "ok", "text": "fine"}]}
        )
        assert added == ["ok"]

    def test_accepts_model_payload(self):
        queue = QuestionQueue()
        queue.add_questions_from_interrupt(QuestionsInterruptData(questions=[{"text": "x"}]))
        assert queue.pending_count == 1

    @pytest.mark.parametrize("payload", [None, {}, {"questions": "x"}, ["q"]])
    def test_non_question_payloads_are_ignored(self, payload):
        queue = QuestionQueue()
        assert queue.add_questions_from_interrupt(payload) == []
        assert queue.questions == []


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

class TestAnswerAndSkip:
    def test_rest_or_graphql_scenario(self):
        queue = QuestionQueue()
        qid = queue.add_question("Use REST or GraphQL?", priority="blocking")
        assert queue.can_proceed() is False

        assert queue.answer_question(qid, "REST") is True

        assert queue.can_proceed() is True
        assert queue.get_all_answers() == {qid: "REST"}
        q = queue.get(qid)
        assert q.status == "answered"
        assert q.answered_at is not None

    def test_skip_scenario(self):
        queue = QuestionQueue()
        blocking = queue.add_question("Blocking?", priority="blocking")
        optional = queue.add_question("Optional?", priority="nice_to_have")

        queue.skip_question(optional)
        assert queue.can_proceed() is False

        queue.skip_question(blocking)
        assert queue.can_proceed() is True
        assert queue.get_all_answers() == {}

    def test_answering_terminal_question_is_noop(self):
        on_answer = MagicMock()
        queue = QuestionQueue(on_answer=on_answer)
        answered = queue.add_question("a")
        skipped = queue.add_question("b")
        queue.answer_question(answered, "first")
        queue.skip_question(skipped)
        on_answer.reset_mock()

        assert queue.answer_question(answered, "second") is False
        assert queue.answer_question(skipped, "late") is False
        assert queue.get(answered).answer == "first"
        assert queue.get(skipped).status == "skipped"
        assert queue.get(skipped).answer is None
        on_answer.assert_not_called()

    def test_skip_never_returns_to_pending(self):
        queue = QuestionQueue()
        qid = queue.add_question("x")
        queue.skip_question(qid)
        assert queue.skip_question(qid) is False
        assert queue.get(qid).status == "skipped"

    def test_skipping_answered_question_is_noop(self):
        queue = QuestionQueue()
        qid = queue.add_question("x")
        queue.answer_question(qid, "yes")
        assert queue.skip_question(qid) is False
        assert queue.get(qid).status == "answered"

    @pytest.mark.parametrize("answer", ["", "   ", None])
    def test_empty_answers_are_rejected(self, answer):
        on_answer = MagicMock()
        queue = QuestionQueue(on_answer=on_answer)
        qid = queue.add_question("x", priority="blocking")
        assert queue.answer_question(qid, answer) is False
        assert queue.get(qid).status == "pending"
        on_answer.assert_not_called()

    def test_multiple_choice_requires_an_offered_option(self):
        queue = QuestionQueue()
        qid = queue.add_question("Pick", options=[{"id": "a", "label": "Alpha"}])
        assert queue.validate_answer(qid, "z") == "answer is not one of the offered options"
        assert queue.answer_question(qid, "z") is False
        assert queue.answer_question(qid, "a") is True

    def test_multiple_choice_accepts_label(self):
        queue = QuestionQueue()
        qid = queue.add_question("Pick", options=[{"id": "a", "label": "Alpha"}])
        assert queue.answer_question(qid, "Alpha") is True

    def test_unknown_question(self):
        queue = QuestionQueue()
        assert queue.answer_question("missing", "x") is False
        assert queue.skip_question("missing") is False

    def test_on_answer_called_per_answer(self):
        on_answer = MagicMock()
        queue = QuestionQueue(on_answer=on_answer)
        qid = queue.add_question("x")
        queue.answer_question(qid, "y")
        on_answer.assert_called_once_with(qid, "y")


# ---------------------------------------------------------------------------
# Resume notification
# ---------------------------------------------------------------------------

class TestResumeNotification:
    def test_fires_once_when_last_blocking_answered(self):
        resume = MagicMock()
        queue = QuestionQueue(on_resume_with_answers=resume)
        b1 = queue.add_question("b1", priority="blocking")
        b2 = queue.add_question("b2", priority="blocking")
        skipped = queue.add_question("s", priority="medium")
        queue.skip_question(skipped)

        queue.answer_question(b1, "one")
        resume.assert_not_called()

        queue.answer_question(b2, "two")
        resume.assert_called_once_with({b1: "one", b2: "two"})

    def test_not_fired_while_blocking_pending(self):
        resume = MagicMock()
        queue = QuestionQueue(on_resume_with_answers=resume)
        queue.add_question("b", priority="blocking")
        other = queue.add_question("m")
        queue.answer_question(other, "x")
        resume.assert_not_called()

    def test_skipping_last_blocking_does_not_resume(self):
        resume = MagicMock()
        queue = QuestionQueue(on_resume_with_answers=resume)
        answered = queue.add_question("a", priority="blocking")
        last = queue.add_question("b", priority="blocking")
        queue.answer_question(answered, "x")
        queue.skip_question(last)
        resume.assert_not_called()
        assert queue.can_proceed() is True

    def test_callback_sees_settled_state(self):
        seen = {}
        queue = QuestionQueue()

        def resume(answers):
            seen["can_proceed"] = queue.can_proceed()
            seen["status"] = queue.get(qid).status

        queue.on_resume_with_answers = resume
        qid = queue.add_question("b", priority="blocking")
        queue.answer_question(qid, "x")
        assert seen == {"can_proceed": True, "status": "answered"}

    async def test_deferred_to_next_loop_iteration(self):
        resume = MagicMock()
        queue = QuestionQueue(on_resume_with_answers=resume)
        qid = queue.add_question("b", priority="blocking")

        queue.answer_question(qid, "x")
        resume.assert_not_called()

        await asyncio.sleep(0)
        resume.assert_called_once_with({qid: "x"})

    async def test_async_callback_is_awaited(self):
        received = []

        async def resume(answers):
            received.append(answers)

        queue = QuestionQueue(on_resume_with_answers=resume)
        qid = queue.add_question("b", priority="blocking")
        queue.answer_question(qid, "x")
        for _ in range(3):
            await asyncio.sleep(0)
        assert received == [{qid: "x"}]

    def test_callback_failure_is_contained(self):
        queue = QuestionQueue(on_resume_with_answers=MagicMock(side_effect=RuntimeError("boom")))
        qid = queue.add_question("b", priority="blocking")
        assert queue.answer_question(qid, "x") is True
        assert queue.get(qid).status == "answered"


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

class TestViews:
    def test_derived_views(self):
        queue = QuestionQueue()
        b = queue.add_question("b", priority="blocking")
        h = queue.add_question("h", priority="high")
        n = queue.add_question("n", priority="nice_to_have")
        queue.answer_question(h, "x")
        queue.skip_question(n)

        assert [q.id for q in queue.pending_questions] == [b]
        assert {q.id for q in queue.answered_questions} == {h, n}
        assert queue.has_blocking_questions is True
        assert queue.blocking_count == 1
        assert queue.pending_count == 1
        assert [q.id for q in queue.get_unanswered_blocking_questions()] == [b]

    def test_next_question_orders_by_priority_then_confidence(self):
        queue = QuestionQueue()
        queue.add_question("medium", priority="medium", confidence=0.1)
        sure = queue.add_question("blocking sure", priority="blocking", confidence=0.9)
        unsure = queue.add_question("blocking unsure", priority="blocking", confidence=0.2)
        assert queue.next_question().id == unsure
        queue.answer_question(unsure, "x")
        assert queue.next_question().id == sure

    def test_next_question_empty(self):
        assert QuestionQueue().next_question() is None

    def test_clear_answered_keeps_pending(self):
        queue = QuestionQueue()
        keep = queue.add_question("keep")
        done = queue.add_question("done")
        gone = queue.add_question("gone")
        queue.answer_question(done, "x")
        queue.skip_question(gone)
        queue.clear_answered()
        assert [q.id for q in queue.questions] == [keep]

    def test_reset(self):
        queue = QuestionQueue()
        queue.add_question("x", priority="blocking")
        queue.reset()
        assert queue.questions == []
        assert queue.can_proceed() is True
