"""
toolcalls.py
------------
Derives display records from message logs.

Nothing here is stored: tool calls and subagent cards are recomputed from the
message list on every read so the log stays the single source of truth.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Set

from ..models import Message, SubAgent, ToolCall

UNKNOWN_TOOL = "unknown"
TASK_TOOL = "task"


def normalize_result_content(content: Any) -> Optional[str]:
    """
    Render a tool result as text:
    - str passes through
    - a list of content blocks becomes newline-joined block text (a block
      without text is dumped as JSON)
    - anything else is pretty-printed JSON
    """
    if content is None:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        parts: List[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("text"):
                parts.append(str(item["text"]))
            else:
                parts.append(json.dumps(item, default=str))
        return "\n".join(parts)
    return json.dumps(content, indent=2, default=str)


def index_tool_results(messages: Iterable[Message]) -> Dict[str, Message]:
    """tool_call_id -> tool message. A later result for the same id replaces an earlier one."""
    results: Dict[str, Message] = {}
    for msg in messages:
        if msg.get("type") == "tool" and msg.get("tool_call_id"):
            results[msg["tool_call_id"]] = msg
    return results


def _status(result: Optional[Message], name: str, interrupted_names: Set[str]) -> str:
    if result is None:
        return "interrupted" if name in interrupted_names else "pending"
    if result.get("status") == "error":
        return "error"
    return "completed"


def tool_calls_for_message(
    message: Message,
    results: Dict[str, Message],
    interrupted_names: Optional[Set[str]] = None,
) -> List[ToolCall]:
    """Pair one ai message's tool call requests with their results."""
    if message.get("type") != "ai":
        return []
    requests = message.get("tool_calls")
    if not isinstance(requests, list):
        return []

    interrupted = interrupted_names or set()
    out: List[ToolCall] = []
    for tc in requests:
        if not isinstance(tc, dict):
            continue
        name = tc.get("name") or UNKNOWN_TOOL
        result = results.get(tc.get("id")) if tc.get("id") else None
        args = tc.get("args")
        out.append(
            ToolCall(
                id=str(tc.get("id") or ""),
                name=name,
                args=args if isinstance(args, dict) else {},
                status=_status(result, name, interrupted),
                result=normalize_result_content(result.get("content")) if result else None,
            )
        )
    return out


def reconstruct_tool_calls(
    messages: List[Message],
    interrupted_names: Optional[Set[str]] = None,
) -> List[ToolCall]:
    """
    Synthesize ToolCall records for every tool call request in `messages`.
    Tool messages with no matching request contribute nothing.
    """
    results = index_tool_results(messages)
    out: List[ToolCall] = []
    for msg in messages:
        out.extend(tool_calls_for_message(msg, results, interrupted_names))
    return out


def ai_text_content(messages: List[Message]) -> List[str]:
    """Stripped, non-empty string content of ai messages, in order."""
    out: List[str] = []
    for msg in messages:
        content = msg.get("content")
        if msg.get("type") == "ai" and isinstance(content, str) and content.strip():
            out.append(content.strip())
    return out


def extract_subagents(tool_calls: List[ToolCall]) -> List[SubAgent]:
    """Subagent cards for `task` delegations that name a subagent type."""
    out: List[SubAgent] = []
    for tc in tool_calls:
        subagent_type = tc.args.get("subagent_type")
        if tc.name != TASK_TOOL or not subagent_type:
            continue
        out.append(
            SubAgent(
                id=tc.id,
                name=tc.name,
                sub_agent_name=str(subagent_type),
                input=tc.args,
                output={"result": tc.result} if tc.result else None,
                status="pending" if tc.status == "interrupted" else tc.status,
            )
        )
    return out
