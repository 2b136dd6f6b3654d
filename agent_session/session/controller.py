"""
controller.py
-------------
Session controller: the single point of control for advancing a conversation.

Every operation builds a `RunRequest` (or a state patch), hands it to the
transport and returns once the run has been started; the run's events are
consumed by a background task that feeds the demultiplexer and tracks root
state, the current interrupt and the latest checkpoint. `wait()` awaits that
task.

Halting protocol:
- stepping (`run_single_step`, `continue_stream`) halts *before* the `tools`
  node so each agent turn can be inspected or approved;
- when the paused step delegates to a subagent, it halts *after* `tools`
  instead so the delegation's output is visible before the parent continues.

Every operation that moves the backend calls `on_history_revalidate`
synchronously before returning. Transport failures are logged and surface
only as a revalidate; they never propagate out of the controller.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from ..config import settings
from ..errors import SessionError
from ..models import (
    UNBOUND_THREAD,
    Checkpoint,
    DebugEvent,
    ErrorEvent,
    Message,
    MetadataEvent,
    RunRequest,
    StreamEvent,
    UpdateEvent,
    ValuesEvent,
)
from .demux import SubagentDemultiplexer, to_message_dict
from .interrupts import interrupt_values

logger = logging.getLogger(__name__)

TOOLS_NODE = "tools"
END_NODE = "__end__"

OptimisticValues = Union[Dict[str, Any], Callable[[Dict[str, Any]], Dict[str, Any]]]


class SessionController:
    def __init__(
        self,
        transport: Any,
        *,
        assistant_config: Optional[Dict[str, Any]] = None,
        thread_id: Optional[str] = None,
        demux: Optional[SubagentDemultiplexer] = None,
        recursion_limit: Optional[int] = None,
        on_history_revalidate: Optional[Callable[[], Any]] = None,
        on_thread_id: Optional[Callable[[str], Any]] = None,
        on_interrupt: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self.transport = transport
        self.assistant_config: Dict[str, Any] = dict(assistant_config or {})
        self.thread_id = thread_id
        self.demux = demux or SubagentDemultiplexer()
        self.recursion_limit = recursion_limit or settings.recursion_limit
        self.on_history_revalidate = on_history_revalidate
        self.on_thread_id = on_thread_id
        self.on_interrupt = on_interrupt

        self.values: Dict[str, Any] = {}
        self.interrupt: Any = None
        self.checkpoint: Optional[Checkpoint] = None
        self.run_id: Optional[str] = None
        self.last_error: Optional[str] = None
        self._run_task: Optional[asyncio.Task] = None

    # ---- read-only views --------------------------------------------------------------
    @property
    def current_thread_id(self) -> str:
        return self.thread_id or UNBOUND_THREAD

    @property
    def messages(self) -> List[Message]:
        return list(self.values.get("messages") or [])

    @property
    def todos(self) -> List[Dict[str, Any]]:
        return list(self.values.get("todos") or [])

    @property
    def files(self) -> Dict[str, str]:
        return dict(self.values.get("files") or {})

    @property
    def email(self) -> Optional[Dict[str, Any]]:
        return self.values.get("email")

    @property
    def ui(self) -> Any:
        return self.values.get("ui")

    @property
    def is_loading(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    # ---- operations -------------------------------------------------------------------
    async def send_message(self, text: str) -> Message:
        """Submit a human message, shown optimistically before the backend acknowledges it."""
        message: Message = {"id": str(uuid4()), "type": "human", "content": text}
        await self._submit(
            RunRequest(
                input={"messages": [message]},
                config=self._config(with_limit=True),
                stream_subgraphs=True,
            ),
            optimistic=lambda prev: {**prev, "messages": [*(prev.get("messages") or []), message]},
        )
        self._revalidate()
        return message

    async def run_single_step(
        self,
        messages: List[Message],
        checkpoint: Optional[Checkpoint] = None,
        is_rerunning_subagent: bool = False,
        optimistic_messages: Optional[List[Message]] = None,
    ) -> None:
        """
        Without a checkpoint: submit `messages` and halt before the tools node.
        With a checkpoint: resume from exactly that point with no new input,
        halting after tools when re-running a subagent step, else before.
        """
        if checkpoint:
            halt = {"interrupt_after": [TOOLS_NODE]} if is_rerunning_subagent else {"interrupt_before": [TOOLS_NODE]}
            request = RunRequest(
                config=self._config(),
                checkpoint=checkpoint,
                stream_subgraphs=True,
                **halt,
            )
            optimistic = (
                (lambda prev: {**prev, "messages": list(optimistic_messages)})
                if optimistic_messages is not None
                else None
            )
            await self._submit(request, optimistic=optimistic)
        else:
            await self._submit(
                RunRequest(
                    input={"messages": list(messages)},
                    config=self._config(),
                    interrupt_before=[TOOLS_NODE],
                    stream_subgraphs=True,
                )
            )
        self._revalidate()

    async def continue_stream(self, has_task_tool_call: bool = False) -> None:
        """Resume the paused run; halt after tools when the paused step is a delegation."""
        halt = {"interrupt_after": [TOOLS_NODE]} if has_task_tool_call else {"interrupt_before": [TOOLS_NODE]}
        await self._submit(
            RunRequest(
                config=self._config(with_limit=True),
                stream_subgraphs=True,
                **halt,
            )
        )
        self._revalidate()

    async def resume_interrupt(self, value: Any) -> None:
        """Answer the outstanding backend interrupt with `value`."""
        await self._submit(RunRequest(command={"resume": value}, stream_subgraphs=True))
        self._revalidate()

    async def mark_current_thread_as_resolved(self) -> None:
        """Force the run to its terminal state, discarding any pending continuation."""
        await self._submit(RunRequest(command={"goto": END_NODE, "update": None}))
        self._revalidate()

    async def stop_stream(self) -> None:
        """Cancel the in-flight run. Accumulated state is kept as-is."""
        cancelled = await self._cancel_run()
        if cancelled and self.thread_id:
            try:
                await self.transport.cancel(self.thread_id, self.run_id)
            except SessionError:
                logger.exception("Backend cancel failed for thread %s", self.thread_id)
        self._revalidate()

    async def set_files(self, files: Dict[str, str]) -> None:
        """Patch the `files` channel of backend state. No-op before a thread exists."""
        if not self.thread_id:
            return
        try:
            await self.transport.update_state(self.thread_id, {"files": files})
        except SessionError as e:
            self._fail(e)
            return
        self.values = {**self.values, "files": dict(files)}
        self._revalidate()

    async def wait(self) -> None:
        """Wait for the in-flight run (if any) to finish."""
        task = self._run_task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def switch_thread(self, thread_id: Optional[str]) -> None:
        """Bind to another thread. Subagent data of the previous thread is kept."""
        if thread_id == self.thread_id:
            return
        await self._cancel_run()
        self.thread_id = thread_id
        self.values = {}
        self.interrupt = None
        self.checkpoint = None
        self.run_id = None

    # ---- internals --------------------------------------------------------------------
    def _config(self, with_limit: bool = False) -> Dict[str, Any]:
        config = dict(self.assistant_config)
        if with_limit:
            config["recursion_limit"] = self.recursion_limit
        return config

    def _revalidate(self) -> None:
        self._notify(self.on_history_revalidate)

    @staticmethod
    def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Session callback %r failed", callback)

    def _fail(self, error: Exception) -> None:
        self.last_error = str(error)
        logger.error("%s", error)
        self._revalidate()

    async def _ensure_thread(self) -> Optional[str]:
        if self.thread_id:
            return self.thread_id
        try:
            thread_id = await self.transport.create_thread()
        except SessionError as e:
            self._fail(e)
            return None
        self.thread_id = thread_id
        logger.info("Created thread %s", thread_id)
        self._notify(self.on_thread_id, thread_id)
        self._revalidate()
        return thread_id

    async def _cancel_run(self) -> bool:
        task = self._run_task
        if task is None or task.done():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def _submit(self, request: RunRequest, optimistic: Optional[OptimisticValues] = None) -> None:
        if optimistic is not None:
            self.values = optimistic(dict(self.values)) if callable(optimistic) else dict(optimistic)
        await self._cancel_run()
        thread_id = await self._ensure_thread()
        if thread_id is None:
            return
        self.interrupt = None
        self.last_error = None
        started = asyncio.Event()
        task = asyncio.create_task(self._consume(thread_id, request, started))
        self._run_task = task
        # Return only once the transport has been handed the request (or the run already ended).
        waiter = asyncio.ensure_future(started.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

    async def _consume(self, thread_id: str, request: RunRequest, started: asyncio.Event) -> None:
        try:
            try:
                stream = self.transport.stream(thread_id, request)
            finally:
                started.set()
            async for event in stream:
                try:
                    self.handle_event(thread_id, event)
                except Exception:
                    logger.exception("Skipping malformed %s event on thread %s", getattr(event, "kind", "?"), thread_id)
        except asyncio.CancelledError:
            logger.info("Run on thread %s cancelled", thread_id)
            raise
        except SessionError as e:
            self._fail(e)
            return
        logger.info("Run on thread %s finished (interrupted=%s)", thread_id, self.interrupt is not None)
        self._revalidate()

    # ---- event handling ---------------------------------------------------------------
    def handle_event(self, thread_id: str, event: StreamEvent) -> None:
        if not event.is_root:
            if isinstance(event, (UpdateEvent, DebugEvent)):
                self.demux.handle(thread_id, event)
            return

        if isinstance(event, MetadataEvent):
            if isinstance(event.data, dict):
                self.run_id = event.data.get("run_id") or self.run_id
        elif isinstance(event, ValuesEvent):
            self._apply_values(event.data)
        elif isinstance(event, UpdateEvent):
            self._apply_interrupts(event.data)
        elif isinstance(event, DebugEvent):
            self._track_checkpoint(event.data)
        elif isinstance(event, ErrorEvent):
            self.last_error = str(event.data)
            logger.warning("Backend error on thread %s: %s", thread_id, event.data)
            self._revalidate()

    def _apply_values(self, data: Any) -> None:
        if not isinstance(data, dict):
            return
        values = {k: v for k, v in data.items() if k != "__interrupt__"}
        if not values:
            # Interrupt-only chunk: state itself is unchanged.
            self._apply_interrupts(data)
            return
        if "messages" in values:
            messages = values["messages"] or []
            if not isinstance(messages, (list, tuple)):
                logger.warning("Ignoring values chunk with non-list messages (%s)", type(messages).__name__)
                return
            values["messages"] = [m for m in (to_message_dict(x) for x in messages) if m]
        self.values = values
        self._apply_interrupts(data)

    def _apply_interrupts(self, data: Any) -> None:
        for value in interrupt_values(data):
            if value == self.interrupt:
                continue
            self.interrupt = value
            logger.info("Run interrupted: %s", type(value).__name__)
            self._notify(self.on_interrupt, value)

    def _track_checkpoint(self, data: Any) -> None:
        if not isinstance(data, dict) or data.get("type") != "checkpoint":
            return
        payload = data.get("payload")
        if not isinstance(payload, dict):
            return
        checkpoint = payload.get("checkpoint")
        if not isinstance(checkpoint, dict):
            config = payload.get("config")
            configurable = config.get("configurable") if isinstance(config, dict) else None
            if not isinstance(configurable, dict):
                return
            checkpoint = {k: configurable[k] for k in ("checkpoint_id", "checkpoint_ns") if k in configurable}
        if checkpoint.get("checkpoint_id"):
            self.checkpoint = checkpoint
