"""
nodes.py
--------
Model step for the local agents.

This module defines:
- The model step shared by the lead agent and its subagents (ChatOpenAI with
  the agent's tools bound)
- Deterministic offline turns for both roles

Key design notes:
- We import message classes from `langchain_core.messages` (compatible with LangChain >= 0.3).
- Optional offline/dev mode (`DEV_NO_LLM=true`) bypasses LLM calls so the whole
  delegate / interrupt / resume cycle can be exercised without OpenAI
  credentials. The offline lead agent asks the operator first whenever the
  request ends with a question mark.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_openai import ChatOpenAI

from ..config import settings
from .tools.agent_tools import DEFAULT_SUBAGENT


# --------------------------------------------------------------------------------------
# Configuration: enable a dev/offline mode that bypasses LLM calls for smoke testing.
# Set DEV_NO_LLM=true (or 1/yes) in your environment to enable.
# --------------------------------------------------------------------------------------
DEV_NO_LLM = os.getenv("DEV_NO_LLM", "").strip().lower() in {"1", "true", "yes"}

MAIN = "main"
SUBAGENT = "subagent"


def offline_mode() -> bool:
    return DEV_NO_LLM or not settings.openai_api_key


# --------------------------------------------------------------------------------------
# Offline stubs (used when DEV_NO_LLM is true or OPENAI key is missing)
# --------------------------------------------------------------------------------------
def _current_turn(messages: Sequence[AnyMessage]) -> tuple[str, List[ToolMessage]]:
    """Text of the latest human message and the tool results that followed it."""
    for i in range(len(messages) - 1, -1, -1):
        if isinstance(messages[i], HumanMessage):
            text = messages[i].content if isinstance(messages[i].content, str) else str(messages[i].content)
            tools = [m for m in messages[i + 1:] if isinstance(m, ToolMessage)]
            return text, tools
    return "", [m for m in messages if isinstance(m, ToolMessage)]


def _call(name: str, args: Dict[str, Any]) -> AIMessage:
    return AIMessage(
        content="",
        tool_calls=[{"name": name, "args": args, "id": f"call_{uuid4().hex[:12]}", "type": "tool_call"}],
    )


def scope_questions(prefix: str) -> List[Dict[str, Any]]:
    """Clarifying questions the offline lead agent asks before open-ended work."""
    return [
        {
            "id": f"{prefix}-scope",
            "text": "How detailed should the answer be?",
            "priority": "blocking",
            "confidence": 0.4,
            "options": [
                {"id": "brief", "label": "Brief summary"},
                {"id": "detailed", "label": "Detailed report", "description": "Sections and sources"},
            ],
            "subject": "Scope",
        },
        {
            "id": f"{prefix}-sources",
            "text": "Any sources the research should prefer?",
            "priority": "nice_to_have",
            "confidence": 0.8,
        },
    ]


def _offline_main(messages: Sequence[AnyMessage]) -> AIMessage:
    request, results = _current_turn(messages)
    if not results:
        if request.rstrip().endswith("?"):
            return _call("ask_user", {"questions": scope_questions(f"q{uuid4().hex[:8]}")})
        return _call("task", {"description": request, "subagent_type": DEFAULT_SUBAGENT})

    last = results[-1]
    if last.name == "ask_user":
        return _call(
            "task",
            {"description": f"{request}\n\nOperator answers: {last.content}", "subagent_type": DEFAULT_SUBAGENT},
        )
    return AIMessage(content=f"# Answer (offline)\n\n{last.content}")


def _offline_subagent(messages: Sequence[AnyMessage]) -> AIMessage:
    request, results = _current_turn(messages)
    if not results:
        return _call("internet_search", {"query": request.splitlines()[0][:200] if request else "", "top_k": 2})
    return AIMessage(content=f"Findings (offline):\n- {results[-1].content}")


# --------------------------------------------------------------------------------------
# Model step
# --------------------------------------------------------------------------------------
def model_step(
    messages: Sequence[AnyMessage],
    tools: Sequence[Any],
    system_prompt: str,
    role: str = MAIN,
    api_key: Optional[str] = None,
) -> AIMessage:
    """
    Produce the next ai message for an agent.

    Parameters
    ----------
    messages : sequence of LangChain messages
        The agent's full message state.
    tools : sequence of tools
        Bound to the model so it can emit tool calls.
    system_prompt : str
        Prepended as a SystemMessage.
    role : "main" | "subagent"
        Selects the offline script when no LLM is available.
    """
    # --- Offline/dev path (no LLM) ---
    if offline_mode():
        return _offline_main(messages) if role == MAIN else _offline_subagent(messages)

    # --- Online path (LLM) ---
    llm = ChatOpenAI(
        model=settings.model_name,
        temperature=0.2,
        api_key=api_key or settings.openai_api_key,
    ).bind_tools(list(tools))
    return llm.invoke([SystemMessage(content=system_prompt), *messages])
