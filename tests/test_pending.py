"""Tests for the pending tool buffer."""

from unittest.mock import MagicMock

from agent_stream.models import ToolCallInfo
from agent_stream.pending import PendingToolBuffer


def _tool(tool_id: str, name: str = "Read") -> ToolCallInfo:
    return ToolCallInfo(id=tool_id, name=name)


class TestPendingToolBuffer:

    def setup_method(self):
        self.buffer = PendingToolBuffer()

    def test_flush_in_insertion_order(self):
        for tool_id in ("A", "B", "C"):
            self.buffer.add(_tool(tool_id))

        rendered = []
        count = self.buffer.flush(lambda tc: rendered.append(tc.id))

        assert count == 3
        assert rendered == ["A", "B", "C"]
        assert self.buffer.is_empty

    def test_flush_one_leaves_others(self):
        for tool_id in ("A", "B", "C"):
            self.buffer.add(_tool(tool_id))

        render = MagicMock()
        assert self.buffer.flush_one("B", render)

        render.assert_called_once()
        assert self.buffer.ids() == ["A", "C"]
        assert not self.buffer.flush_one("B", render)

    def test_released_call_never_reinserted(self):
        tool_call = _tool("A")
        self.buffer.add(tool_call)
        self.buffer.flush(lambda tc: None)

        assert not self.buffer.add(tool_call)
        assert "A" not in self.buffer

    def test_duplicate_add_ignored(self):
        assert self.buffer.add(_tool("A"))
        assert not self.buffer.add(_tool("A"))
        assert len(self.buffer) == 1

    def test_clear_does_not_render(self):
        self.buffer.add(_tool("A"))
        self.buffer.add(_tool("B"))
        render = MagicMock()

        self.buffer.clear()
        self.buffer.flush(render)

        render.assert_not_called()
        assert len(self.buffer) == 0

    def test_clear_allows_ids_again(self):
        self.buffer.add(_tool("A"))
        self.buffer.flush(MagicMock())
        self.buffer.clear()
        assert self.buffer.add(_tool("A"))

    def test_render_reentry_does_not_see_flushed_call(self):
        self.buffer.add(_tool("A"))
        seen = []

        def render(tc):
            seen.append(tc.id in self.buffer)

        self.buffer.flush(render)
        assert seen == [False]
