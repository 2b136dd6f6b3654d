"""
interrupts.py
-------------
Helpers for backend interrupt payloads.

An interrupt reaches the session either as LangGraph `Interrupt` objects
(in-process transport) or as `{"value": ..., "id": ...}` dicts (SDK
transport), under the `__interrupt__` key of an update or values chunk.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..models import ActionRequest, ReviewConfig, ToolApprovalInterruptData

logger = logging.getLogger(__name__)

INTERRUPT_KEY = "__interrupt__"


def interrupt_values(chunk: Any) -> List[Any]:
    """Values of every interrupt carried by a state/update chunk, in order."""
    if not isinstance(chunk, dict):
        return []
    raw = chunk.get(INTERRUPT_KEY)
    if not raw:
        return []
    if not isinstance(raw, (list, tuple)):
        raw = [raw]
    out: List[Any] = []
    for item in raw:
        if isinstance(item, dict) and "value" in item:
            out.append(item["value"])
        elif hasattr(item, "value"):
            out.append(item.value)
        else:
            out.append(item)
    return out


def is_question_payload(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("questions"), list)


def parse_tool_approval(value: Any) -> Optional[ToolApprovalInterruptData]:
    if not isinstance(value, dict) or not isinstance(value.get("action_requests"), list):
        return None
    try:
        return ToolApprovalInterruptData.model_validate(value)
    except ValidationError as e:
        logger.warning("Ignoring malformed tool approval interrupt: %s", e)
        return None


def action_requests_map(value: Any) -> Dict[str, ActionRequest]:
    """Tool name -> pending approval request."""
    data = parse_tool_approval(value)
    return {r.name: r for r in data.action_requests} if data else {}


def review_configs_map(value: Any) -> Dict[str, ReviewConfig]:
    """Tool name -> allowed review decisions."""
    data = parse_tool_approval(value)
    return {c.action_name: c for c in data.review_configs} if data else {}
