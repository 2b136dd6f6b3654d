"""
session.py
----------
AgentSession wires the three session components together:

    stream events  -> SubagentDemultiplexer  (via the controller's run task)
    question interrupts -> QuestionQueue
    QuestionQueue resume notification -> SessionController.resume_interrupt

and exposes the derived views an operator client renders: root messages with
subagent traffic filtered out, tool calls per message, subagent cards and the
pooled subagent activity, pending tool approvals and the question panel.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models import ActionRequest, Message, Question, QuestionGroup, ReviewConfig, SubAgent, ToolCall
from . import toolcalls
from .controller import SessionController
from .demux import SubagentDemultiplexer
from .interrupts import action_requests_map, is_question_payload, review_configs_map
from .questions import QuestionQueue
from .subjects import panel_view

logger = logging.getLogger(__name__)


class AgentSession:
    def __init__(
        self,
        transport: Any,
        *,
        assistant_config: Optional[Dict[str, Any]] = None,
        thread_id: Optional[str] = None,
        recursion_limit: Optional[int] = None,
        on_history_revalidate: Optional[Callable[[], Any]] = None,
        on_answer: Optional[Callable[[str, str], Any]] = None,
    ) -> None:
        self.demux = SubagentDemultiplexer()
        self.questions = QuestionQueue(on_answer=on_answer, on_resume_with_answers=self._resume_with_answers)
        self.controller = SessionController(
            transport,
            assistant_config=assistant_config,
            thread_id=thread_id,
            demux=self.demux,
            recursion_limit=recursion_limit,
            on_history_revalidate=on_history_revalidate,
            on_interrupt=self._on_interrupt,
        )

    @property
    def thread_id(self) -> Optional[str]:
        return self.controller.thread_id

    # ---- wiring -----------------------------------------------------------------------
    def _on_interrupt(self, value: Any) -> None:
        if is_question_payload(value):
            self.questions.add_questions_from_interrupt(value)

    async def _resume_with_answers(self, answers: Dict[str, str]) -> None:
        if self.controller.interrupt is None:
            # Nothing on the backend is waiting for these answers.
            logger.info("Answers recorded with no pending interrupt; not resuming")
            return
        logger.info("Resuming with %d answer(s)", len(answers))
        await self.controller.resume_interrupt(answers)

    # ---- messages ---------------------------------------------------------------------
    def visible_messages(self) -> List[Message]:
        """Root messages minus anything seen in subagent traffic."""
        hidden = self.demux.message_ids(self.controller.current_thread_id)
        return [m for m in self.controller.messages if m.get("id") not in hidden]

    def interrupted_tool_names(self) -> set:
        return set(self.action_requests())

    def tool_calls(self) -> List[ToolCall]:
        return toolcalls.reconstruct_tool_calls(self.controller.messages, self.interrupted_tool_names())

    def tool_calls_for(self, message: Message) -> List[ToolCall]:
        results = toolcalls.index_tool_results(self.controller.messages)
        return toolcalls.tool_calls_for_message(message, results, self.interrupted_tool_names())

    def subagents(self) -> List[SubAgent]:
        return toolcalls.extract_subagents(self.tool_calls())

    def subagent_activity(self) -> Tuple[List[str], List[ToolCall]]:
        """
        Text and tool calls of every subagent in the current thread, pooled.
        Namespace keys are task ids rather than the parent's tool call ids, so
        concurrent subagents cannot be told apart here.
        """
        pooled = self.demux.pooled_messages(self.controller.current_thread_id)
        return toolcalls.ai_text_content(pooled), toolcalls.reconstruct_tool_calls(pooled)

    # ---- interrupts -------------------------------------------------------------------
    def action_requests(self) -> Dict[str, ActionRequest]:
        return action_requests_map(self.controller.interrupt)

    def review_configs(self) -> Dict[str, ReviewConfig]:
        return review_configs_map(self.controller.interrupt)

    def question_panel(self) -> Tuple[Optional[Question], List[QuestionGroup]]:
        return panel_view(self.questions.questions)
