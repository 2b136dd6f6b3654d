"""
base.py
-------
The transport contract the session controller drives.

A transport owns the connection to a LangGraph backend. The session core only
relies on this interface; establishing, authenticating and timing out the
connection are the transport's business.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional, Protocol

from ..models import RunRequest, StreamEvent


class Transport(Protocol):
    async def create_thread(self) -> str:
        """Create a backend thread and return its id."""
        ...

    def stream(self, thread_id: str, request: RunRequest) -> AsyncIterator[StreamEvent]:
        """Start a run on `thread_id` and yield its events until it ends or pauses."""
        ...

    async def update_state(self, thread_id: str, values: Dict[str, Any]) -> None:
        """Patch backend-held state directly, bypassing a run."""
        ...

    async def cancel(self, thread_id: str, run_id: Optional[str]) -> None:
        """Best-effort cancellation of a backend run."""
        ...
