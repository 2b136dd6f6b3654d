"""
local.py
--------
In-process transport over a compiled LangGraph graph.

Runs the graph on the caller's event loop with a checkpointer, so interrupts,
checkpoints and `Command` resumes behave as they do against a server. A bare
`goto: __end__` command clears the thread's pending tasks instead of replaying
the paused step. Used for development (offline agent) and tests.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, Optional
from uuid import uuid4

from langgraph.graph import END
from langgraph.types import Command

from ..errors import TransportError
from ..graph.graph import build_graph
from ..graph.memory import make_checkpointer
from ..models import RunRequest, StreamEvent, make_event

logger = logging.getLogger(__name__)

_CHECKPOINT_KEYS = ("checkpoint_id", "checkpoint_ns", "checkpoint_map")


class LocalGraphTransport:
    def __init__(self, graph: Any = None, checkpointer: Any = None) -> None:
        self.graph = graph if graph is not None else build_graph(checkpointer=checkpointer or make_checkpointer())

    async def create_thread(self) -> str:
        return str(uuid4())

    @staticmethod
    def run_config(thread_id: str, request: RunRequest) -> Dict[str, Any]:
        """Merge assistant config, thread id and checkpoint into one RunnableConfig."""
        config = dict(request.config)
        configurable = dict(config.get("configurable") or {})
        configurable["thread_id"] = thread_id
        for key in _CHECKPOINT_KEYS:
            if request.checkpoint and request.checkpoint.get(key) is not None:
                configurable[key] = request.checkpoint[key]
        config["configurable"] = configurable
        return config

    @staticmethod
    def is_resolve(request: RunRequest) -> bool:
        """A bare `goto: __end__` command: end the thread rather than replay a step."""
        command = request.command or {}
        return command.get("goto") == END and "resume" not in command

    @staticmethod
    def run_input(request: RunRequest) -> Any:
        if request.command is not None:
            return Command(**request.command)
        return request.input

    async def stream(self, thread_id: str, request: RunRequest) -> AsyncIterator[StreamEvent]:
        run_id = str(uuid4())
        yield make_event("metadata", [], {"run_id": run_id, "thread_id": thread_id})
        logger.info("Local run %s on thread %s", run_id, thread_id)
        if self.is_resolve(request):
            async for event in self._resolve(thread_id, request):
                yield event
            return
        try:
            # subgraphs=True keeps chunks uniform as (namespace, mode, data).
            async for namespace, mode, chunk in self.graph.astream(
                self.run_input(request),
                self.run_config(thread_id, request),
                stream_mode=request.stream_mode,
                subgraphs=True,
                interrupt_before=request.interrupt_before,
                interrupt_after=request.interrupt_after,
            ):
                if namespace and not request.stream_subgraphs:
                    continue
                event = make_event(mode, list(namespace), chunk)
                if event is not None:
                    yield event
        except Exception as e:
            raise TransportError("graph run failed", thread_id=thread_id, detail=str(e)) from e

    async def _resolve(self, thread_id: str, request: RunRequest) -> AsyncIterator[StreamEvent]:
        # Clearing as END drops every pending task, pending interrupts included.
        config = self.run_config(thread_id, request)
        try:
            await self.graph.aupdate_state(config, None, as_node=END)
            state = await self.graph.aget_state({"configurable": {"thread_id": thread_id}})
        except Exception as e:
            raise TransportError("could not resolve thread", thread_id=thread_id, detail=str(e)) from e
        yield make_event("values", [], dict(state.values))

    async def update_state(self, thread_id: str, values: Dict[str, Any]) -> None:
        try:
            await self.graph.aupdate_state({"configurable": {"thread_id": thread_id}}, values)
        except Exception as e:
            raise TransportError("could not update state", thread_id=thread_id, detail=str(e)) from e

    async def cancel(self, thread_id: str, run_id: Optional[str]) -> None:
        # Cancelling the consuming task closes the astream generator, which stops the run.
        return None
