"""
graph.py
--------
LangGraph wiring for the local backend. Defines the agent state machine.

Every agent (lead and subagent) is the same loop:

START -> model -> (tools -> model)* -> END

The node names matter to the session: updates from the `model` node carry
`{"model": {"messages": [...]}}`, and a subagent invoked from the lead agent's
`tools` node streams under the namespace `tools:<task id>`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from langgraph.graph import END, START, MessagesState, StateGraph
from langgraph.prebuilt import ToolNode, tools_condition

from .nodes import MAIN, SUBAGENT, model_step
from .prompts import SYSTEM_MAIN, SYSTEM_SUBAGENT
from .tools.agent_tools import DEFAULT_SUBAGENT, ask_user, make_task_tool
from .tools.web_tools import internet_search


class AgentState(MessagesState):
    """Message state plus the side channels the operator UI reads."""

    todos: List[Dict[str, Any]]
    files: Dict[str, str]


# --------------------------------------------------------------------------------------
# Graph build
# --------------------------------------------------------------------------------------
def build_agent(
    tools: Sequence[Any],
    system_prompt: str,
    role: str = MAIN,
    checkpointer=None,
    name: Optional[str] = None,
):
    """
    Build and compile one agent loop, optionally with a checkpointer.
    """

    def node_model(state: AgentState) -> Dict[str, Any]:
        """
        Model step: answer directly or request tool calls.
        """
        return {"messages": [model_step(state["messages"], tools, system_prompt, role)]}

    g = StateGraph(AgentState)

    g.add_node("model", node_model)
    g.add_node("tools", ToolNode(list(tools)))

    g.add_edge(START, "model")
    g.add_conditional_edges("model", tools_condition, {"tools": "tools", END: END})
    g.add_edge("tools", "model")

    return g.compile(checkpointer=checkpointer, name=name)


def build_subagents() -> Dict[str, Any]:
    """Registry of subagents reachable through the `task` tool."""
    researcher = build_agent([internet_search], SYSTEM_SUBAGENT, role=SUBAGENT, name=DEFAULT_SUBAGENT)
    return {DEFAULT_SUBAGENT: researcher}


def build_graph(checkpointer=None):
    """
    Build the lead agent with its `task` and `ask_user` tools. A checkpointer
    is required for interrupts and resumes; subagents inherit it.
    """
    tools = [make_task_tool(build_subagents()), ask_user]
    return build_agent(tools, SYSTEM_MAIN, role=MAIN, checkpointer=checkpointer, name="agent")
