"""
models.py
---------
Pydantic models shared by the session core, the transports and the API layer.

Messages themselves stay plain dicts in the LangGraph wire shape
({"id", "type", "content", "tool_calls", "tool_call_id", "name"}); everything
derived from them (tool calls, subagent cards) and everything the session owns
(questions, run requests, stream events) is modelled here.
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

Message = Dict[str, Any]
Checkpoint = Dict[str, Any]

UNBOUND_THREAD = "__new__"

# --------------------------------------------------------------------------------------
# Tool calls & subagents (derived, never stored)
# --------------------------------------------------------------------------------------
ToolCallStatus = Literal["pending", "completed", "error", "interrupted"]


class ToolCall(BaseModel):
    id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[str] = None
    status: ToolCallStatus = "pending"


class SubAgent(BaseModel):
    id: str
    name: str
    sub_agent_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    status: Literal["pending", "active", "completed", "error"] = "pending"


class TodoItem(BaseModel):
    id: str
    content: str
    status: Literal["pending", "in_progress", "completed"] = "pending"
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class FileItem(BaseModel):
    path: str
    content: str


# --------------------------------------------------------------------------------------
# Interrupt payloads
# --------------------------------------------------------------------------------------
class ActionRequest(BaseModel):
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None


class ReviewConfig(BaseModel):
    action_name: str = Field(alias="actionName")
    allowed_decisions: Optional[List[str]] = Field(default=None, alias="allowedDecisions")

    model_config = ConfigDict(populate_by_name=True)


class ToolApprovalInterruptData(BaseModel):
    action_requests: List[ActionRequest] = Field(default_factory=list)
    review_configs: List[ReviewConfig] = Field(default_factory=list)


# --------------------------------------------------------------------------------------
# Questions
# --------------------------------------------------------------------------------------
QuestionPriority = Literal["blocking", "high", "medium", "nice_to_have"]
QuestionStatus = Literal["pending", "answered", "skipped"]

# Lower rank surfaces first.
PRIORITY_RANK: Dict[str, int] = {"blocking": 0, "high": 1, "medium": 2, "nice_to_have": 3}


class QuestionContext(BaseModel):
    file: Optional[str] = None
    line_number: Optional[int] = Field(default=None, alias="lineNumber")
    branch: Optional[str] = None
    skill_labels: Optional[List[str]] = Field(default=None, alias="skillLabels")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    step_index: Optional[int] = Field(default=None, alias="stepIndex")

    model_config = ConfigDict(populate_by_name=True)


class QuestionOption(BaseModel):
    id: str
    label: str
    description: Optional[str] = None


class Question(BaseModel):
    id: str
    text: str
    priority: QuestionPriority = "medium"
    confidence: float = 0.5
    status: QuestionStatus = "pending"
    context: QuestionContext = Field(default_factory=QuestionContext)
    options: Optional[List[QuestionOption]] = None
    answer: Optional[str] = None
    answered_at: Optional[datetime] = Field(default=None, alias="answeredAt")
    created_at: datetime = Field(default_factory=datetime.now, alias="createdAt")
    subject: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, v: float) -> float:
        return min(1.0, max(0.0, float(v)))

    @field_validator("context", mode="before")
    @classmethod
    def _context_or_empty(cls, v: Any) -> Any:
        return v if v is not None else {}

    @property
    def option_ids(self) -> List[str]:
        return [o.id for o in self.options or []]


class QuestionGroup(BaseModel):
    subject: str
    questions: List[Question]
    count: int


class QuestionsInterruptData(BaseModel):
    questions: List[Dict[str, Any]] = Field(default_factory=list)


# --------------------------------------------------------------------------------------
# Stream events (inbound, transport -> session)
# --------------------------------------------------------------------------------------
class _Event(BaseModel):
    namespace: List[str] = Field(default_factory=list)
    data: Any = None

    @property
    def is_root(self) -> bool:
        return not self.namespace


class UpdateEvent(_Event):
    kind: Literal["updates"] = "updates"


class DebugEvent(_Event):
    kind: Literal["debug"] = "debug"


class ValuesEvent(_Event):
    kind: Literal["values"] = "values"


class MetadataEvent(_Event):
    kind: Literal["metadata"] = "metadata"


class ErrorEvent(_Event):
    kind: Literal["error"] = "error"


StreamEvent = Union[UpdateEvent, DebugEvent, ValuesEvent, MetadataEvent, ErrorEvent]

_EVENT_TYPES = {
    "updates": UpdateEvent,
    "debug": DebugEvent,
    "values": ValuesEvent,
    "metadata": MetadataEvent,
    "error": ErrorEvent,
}


def make_event(mode: str, namespace: Optional[List[str]], data: Any) -> Optional[StreamEvent]:
    """
    Build a typed event from a stream mode name. Unknown modes (messages,
    custom, ...) are not consumed by the session and yield None.
    """
    cls = _EVENT_TYPES.get(mode)
    if cls is None:
        return None
    return cls(namespace=list(namespace or []), data=data)


# --------------------------------------------------------------------------------------
# Run requests (outbound, session -> transport)
# --------------------------------------------------------------------------------------
class RunRequest(BaseModel):
    input: Optional[Dict[str, Any]] = None
    command: Optional[Dict[str, Any]] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    stream_subgraphs: bool = False
    interrupt_before: Optional[List[str]] = None
    interrupt_after: Optional[List[str]] = None
    checkpoint: Optional[Checkpoint] = None
    stream_mode: List[str] = Field(default_factory=lambda: ["values", "updates", "debug"])

    def to_payload(self) -> Dict[str, Any]:
        """Render the request in the wire shape a LangGraph server expects."""
        payload: Dict[str, Any] = {
            "config": self.config,
            "stream_subgraphs": self.stream_subgraphs,
            "stream_mode": self.stream_mode,
        }
        if self.input is not None:
            payload["input"] = self.input
        if self.command is not None:
            payload["command"] = self.command
        if self.interrupt_before:
            payload["interrupt_before"] = self.interrupt_before
        if self.interrupt_after:
            payload["interrupt_after"] = self.interrupt_after
        if self.checkpoint is not None:
            payload["checkpoint"] = self.checkpoint
        return payload
