"""Tests for chunk parsing."""

import pytest

from agent_stream.chunks import (
    BlockedChunk,
    ChunkType,
    DoneChunk,
    TextChunk,
    ToolResultChunk,
    ToolUseChunk,
    UsageChunk,
    parse_chunk,
)
from agent_stream.errors import ChunkParseError


class TestParseChunk:
    """parse_chunk() wire handling."""

    def test_text(self):
        chunk = parse_chunk({"type": "text", "content": "Hello"})
        assert isinstance(chunk, TextChunk)
        assert chunk.type == ChunkType.TEXT
        assert chunk.content == "Hello"
        assert chunk.parent_tool_use_id is None
        assert not chunk.is_routed

    def test_tool_use_with_camel_case_parent(self):
        chunk = parse_chunk({
            "type": "tool_use",
            "id": "grep-1",
            "name": "Grep",
            "input": {"pattern": "x"},
            "parentToolUseId": "task-1",
        })
        assert isinstance(chunk, ToolUseChunk)
        assert chunk.id == "grep-1"
        assert chunk.input == {"pattern": "x"}
        assert chunk.parent_tool_use_id == "task-1"
        assert chunk.is_routed

    def test_parent_routing_key_alias(self):
        chunk = parse_chunk({"type": "text", "content": "x", "parentRoutingKey": "task-9"})
        assert chunk.parent_tool_use_id == "task-9"

    def test_tool_result_is_error_flag(self):
        chunk = parse_chunk({"type": "tool_result", "id": "t1", "content": "boom", "isError": True})
        assert isinstance(chunk, ToolResultChunk)
        assert chunk.is_error is True

    def test_tool_result_without_error_flag_keeps_none(self):
        chunk = parse_chunk({"type": "tool_result", "id": "t1", "content": "ok"})
        assert chunk.is_error is None

    def test_tool_result_structured_content_flattened(self):
        chunk = parse_chunk({
            "type": "tool_result",
            "id": "t1",
            "content": [{"type": "text", "text": "line 1"}, {"type": "text", "text": "line 2"}],
        })
        assert chunk.content == "line 1\nline 2"

    def test_usage_parsed_into_snapshot(self):
        chunk = parse_chunk({
            "type": "usage",
            "sessionId": "s-1",
            "usage": {
                "model": "model-a",
                "inputTokens": 10,
                "cacheCreationInputTokens": 5,
                "cacheReadInputTokens": 5,
                "contextWindow": 200,
            },
        })
        assert isinstance(chunk, UsageChunk)
        assert chunk.session_id == "s-1"
        assert chunk.usage.context_tokens == 20
        assert chunk.usage.percentage == 10.0

    def test_snake_case_keys_accepted(self):
        chunk = parse_chunk({"type": "usage", "session_id": "s-2", "usage": {"input_tokens": 1}})
        assert chunk.session_id == "s-2"
        assert chunk.usage.input_tokens == 1

    def test_json_string_input(self):
        chunk = parse_chunk('{"type": "blocked", "content": "nope"}')
        assert isinstance(chunk, BlockedChunk)
        assert chunk.content == "nope"

    def test_done(self):
        assert isinstance(parse_chunk({"type": "done"}), DoneChunk)

    def test_unknown_keys_ignored(self):
        chunk = parse_chunk({"type": "text", "content": "x", "futureField": 1})
        assert chunk.content == "x"

    def test_unknown_type_raises(self):
        with pytest.raises(ChunkParseError) as exc_info:
            parse_chunk({"type": "telemetry"})
        assert exc_info.value.raw == {"type": "telemetry"}

    def test_non_object_raises(self):
        with pytest.raises(ChunkParseError):
            parse_chunk(["text"])

    def test_invalid_json_raises(self):
        with pytest.raises(ChunkParseError):
            parse_chunk("{not json")

    def test_tool_use_input_must_be_object(self):
        with pytest.raises(ChunkParseError):
            parse_chunk({"type": "tool_use", "id": "t", "name": "Read", "input": "path"})


class TestChunkToDict:
    """Serialization back to wire keys."""

    def test_tool_result_wire_keys(self):
        chunk = ToolResultChunk(id="t1", content="ok", is_error=False, parent_tool_use_id="task-1")
        assert chunk.to_dict() == {
            "type": "tool_result",
            "id": "t1",
            "content": "ok",
            "isError": False,
            "parentToolUseId": "task-1",
        }

    def test_unset_optionals_omitted(self):
        assert DoneChunk().to_dict() == {"type": "done"}

    def test_parse_of_to_dict_preserves_tool_use(self):
        original = ToolUseChunk(id="w1", name="Write", input={"file_path": "a.md"})
        assert parse_chunk(original.to_dict()) == original
