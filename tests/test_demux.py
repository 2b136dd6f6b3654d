"""Tests for the subagent message demultiplexer and its payload decoders."""

from langchain_core.messages import AIMessage, ToolMessage

from agent_session.models import UNBOUND_THREAD, make_event
from agent_session.session.demux import (
    SubagentDemultiplexer,
    decode_debug,
    decode_debug_input_messages,
    decode_debug_payload_messages,
    decode_debug_tool_payload,
    decode_update,
    decode_update_messages,
    decode_update_model_messages,
    tool_call_id_from_namespace,
)
from agent_session.session.toolcalls import reconstruct_tool_calls

from conftest import debug, update


def _ai(msg_id, **kw):
    return {"type": "ai", "id": msg_id, "content": kw.pop("content", ""), **kw}


# ---------------------------------------------------------------------------
# Namespace
# ---------------------------------------------------------------------------

class TestNamespace:
    def test_tools_segment(self):
        assert tool_call_id_from_namespace(["tools:abc", "model:1"]) == "abc"

    def test_non_matching_segment_used_verbatim(self):
        assert tool_call_id_from_namespace(["researcher:42"]) == "researcher:42"

    def test_empty_namespace_is_root(self):
        assert tool_call_id_from_namespace([]) is None


# ---------------------------------------------------------------------------
# Decoders, one shape each
# ---------------------------------------------------------------------------

class TestDecoders:
    def test_update_model_messages(self):
        batch = decode_update_model_messages({"model": {"messages": [_ai("m1")]}})
        assert batch.shape == "model.messages"
        assert [m["id"] for m in batch.messages] == ["m1"]
        assert batch.debug is False

    def test_update_messages(self):
        batch = decode_update_messages({"messages": [_ai("m1")]})
        assert batch.shape == "messages"

    def test_update_prefers_model_messages(self):
        batches = decode_update({"model": {"messages": [_ai("a")]}, "messages": [_ai("b")]})
        assert len(batches) == 1
        assert batches[0].messages[0]["id"] == "a"

    def test_update_without_messages(self):
        assert decode_update({"tools": {"files": {}}}) == []
        assert decode_update(None) == []

    def test_debug_payload_messages(self):
        batch = decode_debug_payload_messages({"type": "task", "payload": {"messages": [_ai("m1")]}})
        assert batch.shape == "payload.messages"
        assert batch.debug is True

    def test_debug_input_messages(self):
        batch = decode_debug_input_messages({"type": "task", "payload": {"input": {"messages": [_ai("m1")]}}})
        assert batch.shape == "payload.input.messages"

    def test_debug_tool_payload(self):
        batch = decode_debug_tool_payload({"payload": {"type": "tool", "tool_call_id": "tc1", "content": "r"}})
        assert batch.shape == "payload<tool>"
        assert batch.direct_tool is True

    def test_debug_tool_payload_ignores_other_types(self):
        assert decode_debug_tool_payload({"payload": {"type": "checkpoint"}}) is None

    def test_debug_collects_every_shape(self):
        data = {"payload": {"messages": [_ai("a")], "input": {"messages": [_ai("b")]}}}
        assert [b.shape for b in decode_debug(data)] == ["payload.messages", "payload.input.messages"]

    def test_langchain_message_payload(self):
        msg = ToolMessage(content="r", tool_call_id="tc1", id="t1")
        batch = decode_debug_tool_payload({"payload": msg})
        assert batch.messages[0]["id"] == "t1"


# ---------------------------------------------------------------------------
# Demultiplexing
# ---------------------------------------------------------------------------

class TestDemultiplexer:
    def test_root_events_ignored(self):
        demux = SubagentDemultiplexer()
        assert demux.handle("t", update([], {"messages": [_ai("m1")]})) == 0
        assert demux.messages("t") == {}
        assert demux.message_ids("t") == set()

    def test_values_events_ignored(self):
        demux = SubagentDemultiplexer()
        assert demux.handle("t", make_event("values", ["tools:x"], {"messages": [_ai("m1")]})) == 0

    def test_same_id_via_two_events_logged_once(self):
        demux = SubagentDemultiplexer()
        msg = _ai("m1", content="hello")
        demux.handle("t", update(["tools:abc"], {"messages": [msg]}))
        demux.handle("t", debug(["tools:abc"], {"payload": {"input": {"messages": [msg]}}}))
        assert len(demux.log("t", "abc")) == 1

    def test_first_arrival_wins(self):
        demux = SubagentDemultiplexer()
        demux.handle("t", update(["tools:abc"], {"messages": [_ai("m1", content="first")]}))
        demux.handle("t", update(["tools:abc"], {"messages": [_ai("m1", content="second")]}))
        assert demux.log("t", "abc")[0]["content"] == "first"

    def test_tool_call_ids_do_not_cross_contaminate(self):
        demux = SubagentDemultiplexer()
        demux.handle("t", update(["tools:abc"], {"messages": [_ai("m1")]}))
        demux.handle("t", update(["tools:xyz"], {"messages": [_ai("m2")]}))
        logs = demux.messages("t")
        assert set(logs) == {"abc", "xyz"}
        assert [m["id"] for m in logs["abc"]] == ["m1"]
        assert [m["id"] for m in logs["xyz"]] == ["m2"]

    def test_append_order_is_arrival_order(self):
        demux = SubagentDemultiplexer()
        for i in range(5):
            demux.handle("t", update(["tools:abc"], {"messages": [_ai(f"m{i}")]}))
        assert [m["id"] for m in demux.log("t", "abc")] == [f"m{i}" for i in range(5)]

    def test_missing_ids_are_synthesized_and_unique(self):
        demux = SubagentDemultiplexer(clock=lambda: 1000.0)
        no_id = {"type": "ai", "content": "x"}
        demux.handle("t", update(["tools:abc"], {"messages": [no_id, no_id]}))
        demux.handle("t", debug(["tools:abc"], {"payload": {"messages": [no_id]}}))
        ids = [m["id"] for m in demux.log("t", "abc")]
        assert len(ids) == 3
        assert len(set(ids)) == 3
        assert ids[0].startswith("abc-msg-0-")
        assert ids[1].startswith("abc-msg-1-")
        assert ids[2].startswith("debug-abc-msg-0-")

    def test_direct_tool_payload_synthesized_id(self):
        demux = SubagentDemultiplexer()
        demux.handle("t", debug(["tools:abc"], {"payload": {"type": "tool", "tool_call_id": "tc", "content": "r"}}))
        (msg,) = demux.log("t", "abc")
        assert msg["id"].startswith("debug-tool-")

    def test_seen_ids_recorded_per_thread(self):
        demux = SubagentDemultiplexer()
        demux.handle("t1", update(["tools:abc"], {"messages": [_ai("m1")]}))
        assert demux.message_ids("t1") == {"m1"}
        assert demux.message_ids("t2") == set()

    def test_threads_are_isolated_and_retained(self):
        demux = SubagentDemultiplexer()
        demux.handle("t1", update(["tools:abc"], {"messages": [_ai("m1")]}))
        demux.handle("t2", update(["tools:abc"], {"messages": [_ai("m2")]}))
        assert [m["id"] for m in demux.log("t1", "abc")] == ["m1"]
        assert [m["id"] for m in demux.log("t2", "abc")] == ["m2"]

    def test_unbound_thread_sentinel(self):
        demux = SubagentDemultiplexer()
        demux.handle(None, update(["tools:abc"], {"messages": [_ai("m1")]}))
        assert UNBOUND_THREAD in demux.thread_ids
        assert demux.log(UNBOUND_THREAD, "abc")[0]["id"] == "m1"

    def test_langchain_messages_normalized(self):
        demux = SubagentDemultiplexer()
        ai = AIMessage(content="", id="m1", tool_calls=[{"id": "tc1", "name": "search", "args": {"q": "x"}}])
        demux.handle("t", update(["tools:abc"], {"model": {"messages": [ai]}}))
        (msg,) = demux.log("t", "abc")
        assert msg["type"] == "ai"
        assert msg["tool_calls"][0]["id"] == "tc1"

    def test_pooled_messages(self):
        demux = SubagentDemultiplexer()
        demux.handle("t", update(["tools:a"], {"messages": [_ai("m1")]}))
        demux.handle("t", update(["tools:b"], {"messages": [_ai("m2")]}))
        assert [m["id"] for m in demux.pooled_messages("t")] == ["m1", "m2"]

    def test_update_then_debug_reconstructs_completed_tool_call(self):
        demux = SubagentDemultiplexer()
        demux.handle(
            "t",
            update(
                ["tools:call_1"],
                {"messages": [{"type": "ai", "id": "m1", "tool_calls": [{"id": "tc1", "name": "search", "args": {"q": "x"}}]}]},
            ),
        )
        demux.handle(
            "t",
            debug(
                ["tools:call_1"],
                {"payload": {"input": {"messages": [{"type": "tool", "id": "m2", "tool_call_id": "tc1", "content": "result"}]}}},
            ),
        )
        (tc,) = reconstruct_tool_calls(demux.log("t", "call_1"))
        assert tc.id == "tc1"
        assert tc.name == "search"
        assert tc.args == {"q": "x"}
        assert tc.status == "completed"
        assert tc.result == "result"
