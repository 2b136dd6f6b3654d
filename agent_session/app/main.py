"""
main.py
-------
FastAPI app exposing the session operations to an operator client.
Includes /health for liveness checks.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from ..config import configure_logging
from ..errors import AnswerRejected
from ..models import Question, QuestionGroup, QuestionPriority, SubAgent, ToolCall
from ..session.session import AgentSession
from .deps import get_session

configure_logging()

app = FastAPI(title="Agent Session Operator API", version="1.0.0")


# --------------------------------------------------------------------------------------
# Request / response models
# --------------------------------------------------------------------------------------
class SendRequest(BaseModel):
    text: str


class StepRequest(BaseModel):
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    checkpoint: Optional[Dict[str, Any]] = None
    is_rerunning_subagent: bool = False
    optimistic_messages: Optional[List[Dict[str, Any]]] = None


class ContinueRequest(BaseModel):
    has_task_tool_call: bool = False


class ResumeRequest(BaseModel):
    value: Any = None


class FilesRequest(BaseModel):
    files: Dict[str, str]


class AnswerRequest(BaseModel):
    answer: str = ""


class NewQuestionRequest(BaseModel):
    text: str
    priority: QuestionPriority = "medium"
    confidence: float = 0.5
    context: Dict[str, Any] = Field(default_factory=dict)
    options: Optional[List[Dict[str, Any]]] = None
    subject: Optional[str] = None


class StateResponse(BaseModel):
    """Response model for /state."""
    thread_id: Optional[str]
    is_loading: bool
    messages: List[Dict[str, Any]]
    todos: List[Dict[str, Any]]
    files: Dict[str, str]
    interrupt: Any = None
    checkpoint: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None


class QuestionsResponse(BaseModel):
    """Response model for /questions."""
    current: Optional[Question]
    groups: List[QuestionGroup]
    pending_count: int
    blocking_count: int
    can_proceed: bool
    questions: List[Question]


class SubagentsResponse(BaseModel):
    subagents: List[SubAgent]
    activity_text: List[str]
    activity_tool_calls: List[ToolCall]


def _state(session: AgentSession) -> StateResponse:
    c = session.controller
    return StateResponse(
        thread_id=c.thread_id,
        is_loading=c.is_loading,
        messages=session.visible_messages(),
        todos=c.todos,
        files=c.files,
        interrupt=c.interrupt,
        checkpoint=c.checkpoint,
        last_error=c.last_error,
    )


@app.exception_handler(AnswerRejected)
async def answer_rejected_handler(request: Request, exc: AnswerRejected):
    return JSONResponse(status_code=400, content={"detail": exc.reason, "question_id": exc.question_id})


# --------------------------------------------------------------------------------------
# Health & state
# --------------------------------------------------------------------------------------
@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/state", response_model=StateResponse)
async def state(session: AgentSession = Depends(get_session)):
    return _state(session)


# --------------------------------------------------------------------------------------
# Run control
# --------------------------------------------------------------------------------------
@app.post("/messages", response_model=StateResponse)
async def send_message(req: SendRequest, session: AgentSession = Depends(get_session)):
    """
    Submit a human message. Returns immediately with the optimistic state;
    poll /state for progress.
    """
    await session.controller.send_message(req.text)
    return _state(session)


@app.post("/step", response_model=StateResponse)
async def run_single_step(req: StepRequest, session: AgentSession = Depends(get_session)):
    await session.controller.run_single_step(
        req.messages,
        checkpoint=req.checkpoint,
        is_rerunning_subagent=req.is_rerunning_subagent,
        optimistic_messages=req.optimistic_messages,
    )
    return _state(session)


@app.post("/continue", response_model=StateResponse)
async def continue_stream(req: ContinueRequest, session: AgentSession = Depends(get_session)):
    await session.controller.continue_stream(req.has_task_tool_call)
    return _state(session)


@app.post("/interrupt/resume", response_model=StateResponse)
async def resume_interrupt(req: ResumeRequest, session: AgentSession = Depends(get_session)):
    await session.controller.resume_interrupt(req.value)
    return _state(session)


@app.post("/resolve", response_model=StateResponse)
async def resolve(session: AgentSession = Depends(get_session)):
    await session.controller.mark_current_thread_as_resolved()
    return _state(session)


@app.post("/stop", response_model=StateResponse)
async def stop(session: AgentSession = Depends(get_session)):
    await session.controller.stop_stream()
    return _state(session)


@app.put("/files", response_model=StateResponse)
async def set_files(req: FilesRequest, session: AgentSession = Depends(get_session)):
    await session.controller.set_files(req.files)
    return _state(session)


# --------------------------------------------------------------------------------------
# Questions
# --------------------------------------------------------------------------------------
def _questions(session: AgentSession) -> QuestionsResponse:
    q = session.questions
    current, groups = session.question_panel()
    return QuestionsResponse(
        current=current,
        groups=groups,
        pending_count=q.pending_count,
        blocking_count=q.blocking_count,
        can_proceed=q.can_proceed(),
        questions=q.questions,
    )


@app.get("/questions", response_model=QuestionsResponse)
async def list_questions(session: AgentSession = Depends(get_session)):
    return _questions(session)


@app.post("/questions", response_model=QuestionsResponse)
async def add_question(req: NewQuestionRequest, session: AgentSession = Depends(get_session)):
    session.questions.add_question(
        req.text,
        priority=req.priority,
        confidence=req.confidence,
        context=req.context,
        options=req.options,
        subject=req.subject,
    )
    return _questions(session)


@app.post("/questions/{question_id}/answer", response_model=QuestionsResponse)
async def answer_question(question_id: str, req: AnswerRequest, session: AgentSession = Depends(get_session)):
    """
    Answer a pending question. Empty answers, and answers outside the offered
    options, are rejected before anything is sent to the backend.
    """
    if session.questions.get(question_id) is None:
        raise HTTPException(status_code=404, detail="Unknown question")
    reason = session.questions.validate_answer(question_id, req.answer)
    if reason is not None:
        raise AnswerRejected(question_id, reason)
    session.questions.answer_question(question_id, req.answer)
    return _questions(session)


@app.post("/questions/{question_id}/skip", response_model=QuestionsResponse)
async def skip_question(question_id: str, session: AgentSession = Depends(get_session)):
    if session.questions.get(question_id) is None:
        raise HTTPException(status_code=404, detail="Unknown question")
    session.questions.skip_question(question_id)
    return _questions(session)


# --------------------------------------------------------------------------------------
# Subagents
# --------------------------------------------------------------------------------------
@app.get("/subagents", response_model=SubagentsResponse)
async def subagents(session: AgentSession = Depends(get_session)):
    text, tool_calls = session.subagent_activity()
    return SubagentsResponse(subagents=session.subagents(), activity_text=text, activity_tool_calls=tool_calls)
