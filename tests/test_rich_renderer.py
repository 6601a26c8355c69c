"""Tests for the rich transcript renderer."""

import io

import pytest
from rich.console import Console

from agent_stream.chunks import DoneChunk, TextChunk, ThinkingChunk, ToolResultChunk, ToolUseChunk
from agent_stream.controller import StreamController
from agent_stream.models import (
    ChatMessage,
    SubagentInfo,
    SubagentStatus,
    TodoItem,
    ToolCallInfo,
    ToolCallStatus,
    UsageInfo,
)
from agent_stream.rich_renderer import (
    IndicatorView,
    RichTranscriptRenderer,
    TextView,
    ToolCallView,
    build_diff,
    dump_transcript,
)
from agent_stream.session import TurnRunner
from agent_stream.state import TurnState

from conftest import StaticSession


async def from_list(chunks):
    for chunk in chunks:
        yield chunk


class TestBuildDiff:

    def test_edit(self):
        tc = ToolCallInfo(id="e", name="Edit", input={"file_path": "a.py", "old_string": "x = 1", "new_string": "x = 2"})
        diff = build_diff(tc)
        assert "--- a/a.py" in diff
        assert "+++ b/a.py" in diff
        assert "-x = 1" in diff
        assert "+x = 2" in diff

    def test_write_is_all_additions(self):
        tc = ToolCallInfo(id="w", name="Write", input={"file_path": "n.md", "content": "one\ntwo"})
        diff = build_diff(tc)
        assert "+one" in diff
        assert "+two" in diff

    def test_multi_edit(self):
        tc = ToolCallInfo(id="m", name="MultiEdit", input={
            "file_path": "a.py",
            "edits": [{"old_string": "a", "new_string": "b"}, {"old_string": "c", "new_string": "d"}],
        })
        diff = build_diff(tc)
        assert "-a" in diff and "+d" in diff

    def test_nothing_to_diff(self):
        assert build_diff(ToolCallInfo(id="x", name="Edit", input={"file_path": "a.py"})) is None
        assert build_diff(ToolCallInfo(id="x", name="Edit", input={"old_string": "same", "new_string": "same"})) is None


class TestRichTranscriptRenderer:

    def setup_method(self):
        self.refreshed = []
        self.renderer = RichTranscriptRenderer(on_refresh=self.refreshed.append)
        self.container = self.renderer.create_turn_container(ChatMessage(id="m1"))

    def test_views_keep_insertion_order(self):
        text = self.renderer.create_text_block(self.container)
        tool = self.renderer.render_tool_call(self.container, ToolCallInfo(id="r", name="Read", input={"file_path": "a.py"}))

        assert self.container.blocks == [text, tool]
        assert isinstance(tool, ToolCallView)
        assert tool.label == "Read a.py"

    def test_indicator_attach_and_move(self):
        indicator = self.renderer.show_indicator(self.container, "Thinking...", "(esc to interrupt · 0:00)")
        text = self.renderer.create_text_block(self.container)

        self.renderer.move_indicator_to_bottom(self.container, indicator)
        assert self.container.blocks == [text, indicator]
        assert self.renderer.is_indicator_attached(indicator)

        self.renderer.remove_indicator(indicator)
        assert self.container.blocks == [text]
        assert not self.renderer.is_indicator_attached(indicator)

    def test_detached_indicator_not_found(self):
        assert not self.renderer.is_indicator_attached(IndicatorView(attached=False))

    def test_placeholder_marks_text_view(self):
        view = self.renderer.create_text_block(self.container)
        self.renderer.render_error_placeholder(view, ValueError("bad"))
        assert view.error == "bad"
        assert "render failed: bad" in dump_transcript(self.renderer)

    @pytest.mark.asyncio
    async def test_render_content_clears_error(self):
        view = TextView(error="old")
        await self.renderer.render_content(view, "# Title")
        assert view.error is None
        assert view.markdown == "# Title"

    def test_write_edit_diff_only_when_completed(self):
        tc = ToolCallInfo(id="e", name="Edit", input={"file_path": "a.py", "old_string": "a", "new_string": "b"})
        view = self.renderer.create_write_edit_block(self.container, tc)

        tc.status = ToolCallStatus.ERROR
        self.renderer.finalize_write_edit_block(view, tc)
        assert view.diff is None

        tc.status = ToolCallStatus.COMPLETED
        self.renderer.finalize_write_edit_block(view, tc)
        assert "+b" in view.diff

    def test_subagent_panel(self):
        info = SubagentInfo(id="t", description="Explore repo")
        info.tool_calls.append(ToolCallInfo(id="g", name="Grep", input={"pattern": "TODO"}))
        self.renderer.create_async_subagent_block(self.container, info)
        info.status = SubagentStatus.ORPHANED

        output = dump_transcript(self.renderer)

        assert "Explore repo" in output
        assert "background agent, orphaned" in output
        assert "Grep: TODO" in output

    def test_usage_and_todos(self):
        self.renderer.update_usage(UsageInfo(model="m-1", context_tokens=50000, context_window=200000, percentage=25.0))
        self.renderer.update_todos([
            TodoItem(content="Write docs", status="in_progress", active_form="Writing docs"),
            TodoItem(content="Release", status="pending"),
        ])

        output = dump_transcript(self.renderer)

        assert "25%" in output
        assert "50,000/200,000 tokens" in output
        assert "Writing docs" in output
        assert "Release" in output

    def test_scroll_refreshes(self):
        self.renderer.scroll_to_bottom()
        assert len(self.refreshed) == 1

    def test_print_turn_footer(self):
        buffer = io.StringIO()
        renderer = RichTranscriptRenderer(console=Console(file=buffer, width=80, color_system=None))
        msg = ChatMessage(id="m2", duration_seconds=65, duration_flavor_word="Brewed")
        container = renderer.create_turn_container(msg)
        renderer.create_text_block(container).markdown = "Hello"

        renderer.print_turn(container, msg)

        output = buffer.getvalue()
        assert "Hello" in output
        assert "Brewed for 1m 5s" in output


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_turn_through_rich_renderer(self):
        renderer = RichTranscriptRenderer()
        state = TurnState()
        controller = StreamController(renderer, state, StaticSession())
        runner = TurnRunner(controller)
        msg = ChatMessage(id="m1")

        chunks = [
            ThinkingChunk(content="Look at the file"),
            ToolUseChunk(id="r", name="Read", input={"file_path": "src/app.py"}),
            ToolResultChunk(id="r", content="def main(): ..."),
            TextChunk(content="The entry point is **main**."),
            DoneChunk(),
        ]
        await runner.run(from_list(chunks), msg)

        container = renderer.turns[0]
        kinds = [type(view).__name__ for view in container.blocks]
        assert kinds == ["ThinkingView", "ToolCallView", "TextView"]
        assert container.blocks[1].tool_call.status == ToolCallStatus.COMPLETED
        assert container.blocks[2].finalized

        output = dump_transcript(renderer)
        assert "Look at the file" in output
        assert "Read src/app.py" in output
        assert "The entry point is main." in output
