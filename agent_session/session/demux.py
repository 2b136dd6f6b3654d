"""
demux.py
--------
Subagent message demultiplexer.

A run started with `stream_subgraphs=True` interleaves the root agent's events
with the events of every delegated subagent on one stream. Subagent events
carry a non-empty namespace whose first segment names the tool call that
spawned them (`tools:<id>`). This module routes each such event's messages into
a per-thread, per-tool-call log:

    thread id -> tool call id -> [message, ...]

Stores are created lazily on first reference to a thread and are never torn
down implicitly, so switching threads and back keeps earlier accumulation.

Payload shapes differ between update and debug events (and between LangGraph
versions), so message extraction is a fixed priority list of named decoders
rather than ad-hoc field sniffing.
"""
from __future__ import annotations

import itertools
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..models import UNBOUND_THREAD, DebugEvent, Message, StreamEvent, UpdateEvent

logger = logging.getLogger(__name__)

_TOOLS_SEGMENT = re.compile(r"^tools:(.+)$")


# --------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------
def tool_call_id_from_namespace(namespace: List[str]) -> Optional[str]:
    """
    Map a namespace to the grouping key of its log. Root events (empty
    namespace) have no key. A first segment that does not follow the
    `tools:<id>` convention is used verbatim.
    """
    if not namespace:
        return None
    segment = str(namespace[0])
    m = _TOOLS_SEGMENT.match(segment)
    return m.group(1) if m else segment


def to_message_dict(msg: Any) -> Optional[Message]:
    """
    Normalize a message into the wire dict shape. LangChain message objects
    (in-process transport) are dumped; dicts (SDK transport) pass through.
    """
    if isinstance(msg, dict):
        return msg
    if hasattr(msg, "model_dump"):
        try:
            return msg.model_dump()
        except Exception:
            logger.debug("Could not dump message of type %s", type(msg).__name__)
            return None
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


# --------------------------------------------------------------------------------------
# Payload decoders
# --------------------------------------------------------------------------------------
@dataclass(frozen=True)
class Batch:
    """A candidate message sequence found in one event payload."""

    shape: str
    messages: List[Any]
    debug: bool = False
    direct_tool: bool = False


def decode_update_model_messages(data: Any) -> Optional[Batch]:
    """Update from the `model` node: {"model": {"messages": [...]}}."""
    messages = _as_dict(_as_dict(data).get("model")).get("messages")
    return Batch("model.messages", list(messages)) if isinstance(messages, (list, tuple)) else None


def decode_update_messages(data: Any) -> Optional[Batch]:
    """Update carrying messages at the top level: {"messages": [...]}."""
    messages = _as_dict(data).get("messages")
    return Batch("messages", list(messages)) if isinstance(messages, (list, tuple)) else None


def decode_debug_payload_messages(data: Any) -> Optional[Batch]:
    """Debug payload with its own messages: {"payload": {"messages": [...]}}."""
    messages = _as_dict(_as_dict(data).get("payload")).get("messages")
    if isinstance(messages, (list, tuple)):
        return Batch("payload.messages", list(messages), debug=True)
    return None


def decode_debug_input_messages(data: Any) -> Optional[Batch]:
    """Debug task payload whose state input holds the messages (tool results land here)."""
    payload = _as_dict(_as_dict(data).get("payload"))
    messages = _as_dict(payload.get("input")).get("messages")
    if isinstance(messages, (list, tuple)):
        return Batch("payload.input.messages", list(messages), debug=True)
    return None


def decode_debug_tool_payload(data: Any) -> Optional[Batch]:
    """Debug payload that is itself a tool message: {"payload": {"type": "tool", ...}}."""
    payload = _as_dict(data).get("payload")
    msg = to_message_dict(payload) if payload is not None else None
    if msg and msg.get("type") == "tool":
        return Batch("payload<tool>", [msg], debug=True, direct_tool=True)
    return None


Decoder = Callable[[Any], Optional[Batch]]

# Updates: the first shape that matches wins.
UPDATE_DECODERS: List[Tuple[str, Decoder]] = [
    ("model.messages", decode_update_model_messages),
    ("messages", decode_update_messages),
]

# Debug: every shape that matches contributes.
DEBUG_DECODERS: List[Tuple[str, Decoder]] = [
    ("payload.messages", decode_debug_payload_messages),
    ("payload.input.messages", decode_debug_input_messages),
    ("payload<tool>", decode_debug_tool_payload),
]


def decode_update(data: Any) -> List[Batch]:
    for _, decoder in UPDATE_DECODERS:
        batch = decoder(data)
        if batch is not None:
            return [batch]
    return []


def decode_debug(data: Any) -> List[Batch]:
    return [b for b in (decoder(data) for _, decoder in DEBUG_DECODERS) if b is not None]


# --------------------------------------------------------------------------------------
# Store
# --------------------------------------------------------------------------------------
@dataclass
class ThreadStore:
    """Per-thread accumulation: ids seen in subagent traffic and logs per tool call."""

    message_ids: Set[str] = field(default_factory=set)
    messages: Dict[str, List[Message]] = field(default_factory=dict)


class SubagentDemultiplexer:
    """
    Routes namespaced stream events into per-thread, per-tool-call message logs.

    The demultiplexer is the only writer of its stores; every other component
    reads through `messages()`, `log()`, `message_ids()` or `pooled_messages()`.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._threads: Dict[str, ThreadStore] = {}
        self._clock = clock
        self._seq = itertools.count()

    # ---- store access -----------------------------------------------------------------
    def store(self, thread_id: Optional[str]) -> ThreadStore:
        key = thread_id or UNBOUND_THREAD
        if key not in self._threads:
            self._threads[key] = ThreadStore()
        return self._threads[key]

    @property
    def thread_ids(self) -> List[str]:
        return list(self._threads)

    def messages(self, thread_id: Optional[str]) -> Dict[str, List[Message]]:
        return self.store(thread_id).messages

    def message_ids(self, thread_id: Optional[str]) -> Set[str]:
        return self.store(thread_id).message_ids

    def log(self, thread_id: Optional[str], tool_call_id: str) -> List[Message]:
        return list(self.store(thread_id).messages.get(tool_call_id, []))

    def pooled_messages(self, thread_id: Optional[str]) -> List[Message]:
        """Every subagent message of the thread in one flat list, log by log."""
        out: List[Message] = []
        for msgs in self.store(thread_id).messages.values():
            out.extend(msgs)
        return out

    # ---- ingestion --------------------------------------------------------------------
    def handle(self, thread_id: Optional[str], event: StreamEvent) -> int:
        """
        Route one stream event. Returns the number of messages appended.
        Root events and kinds other than updates/debug are ignored.
        """
        tool_call_id = tool_call_id_from_namespace(event.namespace)
        if tool_call_id is None:
            return 0
        if isinstance(event, UpdateEvent):
            batches = decode_update(event.data)
        elif isinstance(event, DebugEvent):
            batches = decode_debug(event.data)
        else:
            return 0

        added = 0
        for batch in batches:
            added += self._ingest(thread_id, tool_call_id, batch)

        logger.debug(
            "[subagent] %s event ns=%s tool_call_id=%s added=%d total=%d",
            event.kind,
            event.namespace,
            tool_call_id,
            added,
            len(self.store(thread_id).messages.get(tool_call_id, [])),
        )
        return added

    def _synthetic_id(self, tool_call_id: str, batch: Batch, idx: int) -> str:
        stamp = f"{int(self._clock() * 1000)}.{next(self._seq)}"
        if batch.direct_tool:
            return f"debug-tool-{stamp}"
        prefix = "debug-" if batch.debug else ""
        return f"{prefix}{tool_call_id}-msg-{idx}-{stamp}"

    def _ingest(self, thread_id: Optional[str], tool_call_id: str, batch: Batch) -> int:
        store = self.store(thread_id)
        log = store.messages.setdefault(tool_call_id, [])
        known = {m.get("id") for m in log}
        added = 0
        for idx, raw in enumerate(batch.messages):
            msg = to_message_dict(raw)
            if msg is None:
                continue
            msg_id = msg.get("id") or self._synthetic_id(tool_call_id, batch, idx)
            store.message_ids.add(msg_id)
            if msg_id in known:
                continue
            log.append({**msg, "id": msg_id})
            known.add(msg_id)
            added += 1
            logger.debug(
                "[subagent] tracked message tool_call_id=%s id=%s type=%s shape=%s tool_call_id_ref=%s",
                tool_call_id,
                msg_id,
                msg.get("type"),
                batch.shape,
                msg.get("tool_call_id"),
            )
        return added
