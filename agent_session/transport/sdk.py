"""
sdk.py
------
Transport over a LangGraph server (LangGraph Platform or `langgraph dev`)
using the official `langgraph_sdk` client.

With `stream_subgraphs=True` the server names subgraph events
`"<mode>|<ns1>|<ns2>..."`; the namespace is recovered by splitting on `|`.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from langgraph_sdk import get_client

from ..config import settings
from ..errors import TransportError
from ..models import RunRequest, StreamEvent, make_event

logger = logging.getLogger(__name__)


def split_event_name(event: str) -> Tuple[str, List[str]]:
    """'updates|tools:abc' -> ('updates', ['tools:abc'])."""
    mode, *namespace = (event or "").split("|")
    return mode, namespace


def decode_stream_part(event: str, data: Any) -> Optional[StreamEvent]:
    mode, namespace = split_event_name(event)
    return make_event(mode, namespace, data)


class LangGraphSDKTransport:
    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        assistant_id: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        client: Any = None,
    ) -> None:
        self.assistant_id = assistant_id or settings.assistant_id
        self.client = client or get_client(
            url=url or settings.langgraph_api_url,
            api_key=api_key or settings.langsmith_api_key or None,
            headers=headers if headers is not None else settings.default_headers(),
        )

    async def create_thread(self) -> str:
        try:
            thread = await self.client.threads.create()
        except Exception as e:
            raise TransportError("could not create thread", detail=str(e)) from e
        return thread["thread_id"]

    async def stream(self, thread_id: str, request: RunRequest) -> AsyncIterator[StreamEvent]:
        kwargs: Dict[str, Any] = {
            "input": request.input,
            "command": request.command,
            "config": request.config or None,
            "stream_mode": request.stream_mode,
            "stream_subgraphs": request.stream_subgraphs,
            "interrupt_before": request.interrupt_before,
            "interrupt_after": request.interrupt_after,
            "checkpoint": request.checkpoint,
        }
        logger.info(
            "Streaming run thread=%s assistant=%s command=%s",
            thread_id,
            self.assistant_id,
            sorted(request.command) if request.command else None,
        )
        try:
            async for part in self.client.runs.stream(thread_id, self.assistant_id, **kwargs):
                event = decode_stream_part(part.event, part.data)
                if event is not None:
                    yield event
        except Exception as e:
            raise TransportError("run stream failed", thread_id=thread_id, detail=str(e)) from e

    async def update_state(self, thread_id: str, values: Dict[str, Any]) -> None:
        try:
            await self.client.threads.update_state(thread_id, values)
        except Exception as e:
            raise TransportError("could not update state", thread_id=thread_id, detail=str(e)) from e

    async def cancel(self, thread_id: str, run_id: Optional[str]) -> None:
        if not run_id:
            return
        try:
            await self.client.runs.cancel(thread_id, run_id)
        except Exception as e:
            raise TransportError("could not cancel run", thread_id=thread_id, detail=str(e)) from e
