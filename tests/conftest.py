"""Shared fixtures: a recording transport and event builders."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from agent_session.errors import TransportError
from agent_session.models import RunRequest, make_event


def update(namespace, data):
    return make_event("updates", namespace, data)


def debug(namespace, data):
    return make_event("debug", namespace, data)


def values(data):
    return make_event("values", [], data)


class FakeTransport:
    """
    Records every request. Each `stream` call replays the next script (a list
    of events; an Exception item is raised at that point). With `hold` set the
    stream blocks after its script until the event is set.
    """

    def __init__(self, scripts: Optional[List[List[Any]]] = None):
        self.scripts = list(scripts or [])
        self.requests: List[tuple] = []
        self.state_updates: List[tuple] = []
        self.cancels: List[tuple] = []
        self.threads_created = 0
        self.hold: Optional[asyncio.Event] = None
        self.fail_create = False
        self.fail_update = False

    async def create_thread(self) -> str:
        if self.fail_create:
            raise TransportError("could not create thread", detail="boom")
        self.threads_created += 1
        return f"thread-{self.threads_created}"

    async def stream(self, thread_id: str, request: RunRequest):
        self.requests.append((thread_id, request))
        script = self.scripts.pop(0) if self.scripts else []
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item
        if self.hold is not None:
            await self.hold.wait()

    async def update_state(self, thread_id: str, values: Dict[str, Any]) -> None:
        if self.fail_update:
            raise TransportError("could not update state", thread_id=thread_id)
        self.state_updates.append((thread_id, values))

    async def cancel(self, thread_id: str, run_id: Optional[str]) -> None:
        self.cancels.append((thread_id, run_id))

    @property
    def last_request(self) -> RunRequest:
        return self.requests[-1][1]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def offline_agent(monkeypatch):
    """Force the local agents onto their deterministic offline turns."""
    import agent_session.graph.nodes as nodes

    monkeypatch.setattr(nodes, "DEV_NO_LLM", True)
