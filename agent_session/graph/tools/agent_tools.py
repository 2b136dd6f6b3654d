"""
tools/agent_tools.py
--------------------
Tools of the lead agent:

- `task` delegates a piece of work to a subagent graph. The subagent runs as a
  nested graph, so its events reach the parent stream under a `tools:<id>`
  namespace.
- `ask_user` pauses the run with a question interrupt and returns the
  operator's answers once the run is resumed.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List

from langchain_core.messages import HumanMessage
from langchain_core.tools import BaseTool, tool
from langgraph.types import interrupt

DEFAULT_SUBAGENT = "general-purpose"


def make_task_tool(subagents: Dict[str, Any]) -> BaseTool:
    """Build the `task` tool over a name -> compiled subagent graph registry."""

    @tool
    async def task(description: str, subagent_type: str = DEFAULT_SUBAGENT) -> str:
        """Delegate a self-contained task to a subagent and return its final report."""
        agent = subagents.get(subagent_type) or subagents[DEFAULT_SUBAGENT]
        result = await agent.ainvoke({"messages": [HumanMessage(content=description)]})
        messages = result.get("messages") or []
        return str(messages[-1].content) if messages else ""

    return task


@tool
async def ask_user(questions: List[Dict[str, Any]]) -> str:
    """
    Ask the operator clarifying questions. Each question needs `text` and may
    set `id`, `priority` (blocking|high|medium|nice_to_have), `confidence`,
    `options` ([{id, label, description}]), `subject` and `context`.
    """
    answers = interrupt({"questions": questions})
    return json.dumps(answers, default=str)
