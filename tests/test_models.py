"""Tests for the message data model."""

from agent_stream.models import (
    ChatMessage,
    SubagentBlock,
    SubagentInfo,
    SubagentMode,
    SubagentStatus,
    TextBlock,
    ThinkingBlock,
    ToolCallInfo,
    ToolUseBlock,
    UsageInfo,
    compute_usage_percentage,
)


class TestContentBlocks:

    def test_block_dicts(self):
        assert TextBlock("hi").to_dict() == {"type": "text", "content": "hi"}
        assert ToolUseBlock("read-1").to_dict() == {"type": "tool_use", "toolId": "read-1"}
        assert SubagentBlock("task-1").to_dict() == {"type": "subagent", "subagentId": "task-1"}
        assert SubagentBlock("task-2", SubagentMode.ASYNC).to_dict() == {
            "type": "subagent",
            "subagentId": "task-2",
            "mode": "async",
        }

    def test_thinking_duration_only_when_known(self):
        assert "durationSeconds" not in ThinkingBlock("x").to_dict()
        assert ThinkingBlock("x", 2.5).to_dict()["durationSeconds"] == 2.5


class TestToolCallInfo:

    def test_merge_input_overrides_and_keeps(self):
        tool_call = ToolCallInfo(id="t", name="Edit", input={"file_path": "a", "old_string": "x"})
        tool_call.merge_input({"new_string": "y", "file_path": "b"})
        assert tool_call.input == {"file_path": "b", "old_string": "x", "new_string": "y"}


class TestChatMessage:

    def test_subagents_absent_until_first_attach(self):
        msg = ChatMessage()
        assert msg.subagents is None
        assert "subagents" not in msg.to_dict()

        msg.add_subagent(SubagentInfo(id="task-1"))
        msg.add_subagent(SubagentInfo(id="task-1"))
        assert [s.id for s in msg.subagents] == ["task-1"]

    def test_find_helpers(self):
        msg = ChatMessage()
        msg.tool_calls.append(ToolCallInfo(id="a", name="Read"))
        assert msg.find_tool_call("a").name == "Read"
        assert msg.find_tool_call("b") is None
        assert msg.find_subagent("x") is None

    def test_to_dict_includes_interrupted_only_when_set(self):
        msg = ChatMessage(id="m1")
        assert "interrupted" not in msg.to_dict()
        msg.interrupted = True
        assert msg.to_dict()["interrupted"] is True

    def test_to_dict_includes_usage_only_when_set(self):
        msg = ChatMessage(id="m1")
        assert "usage" not in msg.to_dict()
        msg.usage = UsageInfo(input_tokens=5, context_window=100, context_tokens=5, percentage=5.0)
        assert msg.to_dict()["usage"]["contextTokens"] == 5

    def test_generated_ids_are_unique(self):
        assert ChatMessage().id != ChatMessage().id


class TestSubagentInfo:

    def test_terminal_states(self):
        info = SubagentInfo(id="t")
        assert not info.is_terminal
        for status in (SubagentStatus.COMPLETED, SubagentStatus.ERROR, SubagentStatus.ORPHANED):
            info.status = status
            assert info.is_terminal


class TestUsage:

    def test_percentage_clamped(self):
        assert compute_usage_percentage(50, 200) == 25.0
        assert compute_usage_percentage(500, 200) == 100.0
        assert compute_usage_percentage(10, 0) == 0.0

    def test_from_dict_prefers_explicit_values(self):
        usage = UsageInfo.from_dict({
            "model": "m",
            "inputTokens": 10,
            "contextWindow": 100,
            "contextTokens": 40,
            "percentage": 40,
        })
        assert usage.context_tokens == 40
        assert usage.percentage == 40.0
        assert usage.to_dict()["contextWindow"] == 100
