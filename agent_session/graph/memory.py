"""
memory.py
---------
Checkpointing for the in-process backend.

Checkpoints live in memory for the life of the process; they back interrupts,
`Command` resumes and re-running from a checkpoint, nothing more.
"""
from __future__ import annotations

from langgraph.checkpoint.memory import MemorySaver


def make_checkpointer() -> MemorySaver:
    """Return a fresh LangGraph checkpointer object."""
    return MemorySaver()
