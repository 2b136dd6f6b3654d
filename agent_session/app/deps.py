from __future__ import annotations
from functools import lru_cache
from ..config import settings
from ..session.session import AgentSession
from ..transport.local import LocalGraphTransport
from ..transport.sdk import LangGraphSDKTransport


@lru_cache(maxsize=1)
def get_transport():
    if settings.transport == "sdk":
        return LangGraphSDKTransport()
    return LocalGraphTransport()


@lru_cache(maxsize=1)
def get_session() -> AgentSession:
    return AgentSession(get_transport())
