"""Terminal transcript renderer built on rich.

Keeps an in-memory transcript of turn containers, each an ordered list of
block views. Views are the opaque handles given to the stream controller;
a view's ``attached`` flag is True while it is still part of its container.

render() composes the whole transcript into one rich renderable. Live
frontends pass ``on_refresh`` to repaint whenever the controller asks to
follow new content; print_turn() writes a finished turn to the console.
"""

import difflib
import io
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from .indicator import format_duration
from .models import (
    ChatMessage,
    SubagentInfo,
    SubagentStatus,
    TodoItem,
    ToolCallInfo,
    ToolCallStatus,
    UsageInfo,
)
from .renderer import StreamRenderer
from .tools import get_tool_label

logger = logging.getLogger(__name__)

TOOL_STATUS_SYMBOLS = {
    ToolCallStatus.RUNNING: ("◐", "yellow"),
    ToolCallStatus.COMPLETED: ("●", "green"),
    ToolCallStatus.ERROR: ("✗", "red"),
    ToolCallStatus.BLOCKED: ("◌", "dim red"),
}

SUBAGENT_STATUS_SYMBOLS = {
    SubagentStatus.PENDING: ("○", "dim"),
    SubagentStatus.RUNNING: ("◐", "blue"),
    SubagentStatus.COMPLETED: ("●", "green"),
    SubagentStatus.ERROR: ("✗", "red"),
    SubagentStatus.ORPHANED: ("⊘", "yellow"),
}

TODO_STATUS_SYMBOLS = {
    "pending": ("○", "dim"),
    "in_progress": ("◐", "blue"),
    "completed": ("●", "green"),
}

RESULT_PREVIEW_LINES = 8


# ==================== Views ====================

@dataclass(eq=False)
class BlockView:
    attached: bool = True

    def renderable(self) -> RenderableType:
        return Text("")


@dataclass(eq=False)
class TurnContainer:
    message_id: str
    blocks: List[BlockView] = field(default_factory=list)

    def append(self, view: BlockView) -> BlockView:
        view.attached = True
        self.blocks.append(view)
        return view

    def detach(self, view: BlockView) -> None:
        if view in self.blocks:
            self.blocks.remove(view)
        view.attached = False

    def renderable(self) -> RenderableType:
        return Group(*[block.renderable() for block in self.blocks])


@dataclass(eq=False)
class TextView(BlockView):
    markdown: str = ""
    finalized: bool = False
    error: Optional[str] = None

    def renderable(self) -> RenderableType:
        if self.error is not None:
            return Text(f"[render failed: {self.error}]", style="red")
        return Markdown(self.markdown)


@dataclass(eq=False)
class ThinkingView(BlockView):
    content: str = ""
    started_at: float = field(default_factory=time.monotonic)
    duration: Optional[float] = None

    def renderable(self) -> RenderableType:
        if self.duration is None:
            title = "Thinking..."
        else:
            title = f"Thought for {self.duration:.0f}s"
        return Panel(Text(self.content, style="dim italic"), title=title, title_align="left", border_style="dim")


@dataclass(eq=False)
class ToolCallView(BlockView):
    tool_call: Optional[ToolCallInfo] = None
    label: str = ""

    def renderable(self) -> RenderableType:
        tool_call = self.tool_call
        status = tool_call.status if tool_call else ToolCallStatus.RUNNING
        symbol, style = TOOL_STATUS_SYMBOLS.get(status, ("○", "dim"))
        line = Text()
        line.append(f"{symbol} ", style=style)
        line.append(self.label, style="bold")
        if tool_call is None or tool_call.result is None:
            return line
        preview = "\n".join(tool_call.result.splitlines()[:RESULT_PREVIEW_LINES])
        return Group(line, Text(preview, style="dim"))


@dataclass(eq=False)
class WriteEditView(BlockView):
    tool_call: Optional[ToolCallInfo] = None
    label: str = ""
    diff: Optional[str] = None

    def renderable(self) -> RenderableType:
        tool_call = self.tool_call
        status = tool_call.status if tool_call else ToolCallStatus.RUNNING
        symbol, style = TOOL_STATUS_SYMBOLS.get(status, ("○", "dim"))
        header = Text()
        header.append(f"{symbol} ", style=style)
        header.append(self.label, style="bold")
        if self.diff:
            return Group(header, Syntax(self.diff, "diff", theme="ansi_dark"))
        if tool_call is not None and tool_call.result and status != ToolCallStatus.COMPLETED:
            return Group(header, Text(tool_call.result, style=style))
        return header


@dataclass(eq=False)
class SubagentView(BlockView):
    info: Optional[SubagentInfo] = None
    background: bool = False

    def renderable(self) -> RenderableType:
        info = self.info
        if info is None:
            return Text("")
        symbol, style = SUBAGENT_STATUS_SYMBOLS.get(info.status, ("○", "dim"))
        lines: List[RenderableType] = []
        for tool_call in info.tool_calls:
            tool_symbol, tool_style = TOOL_STATUS_SYMBOLS.get(tool_call.status, ("○", "dim"))
            row = Text()
            row.append(f"  {tool_symbol} ", style=tool_style)
            row.append(get_tool_label(tool_call.name, tool_call.input))
            lines.append(row)
        if info.result and info.is_terminal:
            lines.append(Text(info.result, style="dim"))
        kind = "background agent" if self.background else "agent"
        title = Text()
        title.append(f"{symbol} ", style=style)
        title.append(f"{info.description} ", style="bold")
        title.append(f"({kind}, {info.status.value})", style="dim")
        return Panel(Group(*lines) if lines else Text(""), title=title, title_align="left", border_style=style)


@dataclass(eq=False)
class IndicatorView(BlockView):
    text: str = ""
    hint: str = ""

    def renderable(self) -> RenderableType:
        line = Text()
        line.append(self.text, style="italic cyan")
        line.append(f" {self.hint}", style="dim")
        return line


def build_diff(tool_call: ToolCallInfo) -> Optional[str]:
    """Unified diff for a write/edit tool call, from its input."""
    data = tool_call.input
    path = data.get("file_path") or data.get("notebook_path") or "file"

    if "old_string" in data or "new_string" in data:
        before = str(data.get("old_string") or "")
        after = str(data.get("new_string") or "")
    elif isinstance(data.get("edits"), list):
        before = "\n".join(str(e.get("old_string", "")) for e in data["edits"] if isinstance(e, dict))
        after = "\n".join(str(e.get("new_string", "")) for e in data["edits"] if isinstance(e, dict))
    elif "content" in data:
        before = ""
        after = str(data.get("content") or "")
    elif "new_source" in data:
        before = ""
        after = str(data.get("new_source") or "")
    else:
        return None

    lines = difflib.unified_diff(
        before.splitlines(),
        after.splitlines(),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
        lineterm="",
    )
    diff = "\n".join(lines)
    return diff or None


class RichTranscriptRenderer(StreamRenderer):
    """Default StreamRenderer: builds a rich transcript in memory.

    Args:
        console: Console used by print_turn(); a new one if omitted.
        on_refresh: Called with the full transcript renderable whenever the
            controller asks to follow new content.
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        on_refresh: Optional[Callable[[RenderableType], None]] = None,
    ):
        self.console = console or Console()
        self.on_refresh = on_refresh
        self.turns: List[TurnContainer] = []
        self.usage: Optional[UsageInfo] = None
        self.todos: Optional[List[TodoItem]] = None

    # ==================== Transcript ====================

    def create_turn_container(self, msg: ChatMessage) -> TurnContainer:
        container = TurnContainer(message_id=msg.id)
        self.turns.append(container)
        return container

    def scroll_to_bottom(self) -> None:
        if self.on_refresh is not None:
            self.on_refresh(self.render())

    def render_error_placeholder(self, handle: Any, error: BaseException) -> None:
        logger.debug(f"Rendering placeholder for failed block: {error}")
        if isinstance(handle, TextView):
            handle.error = str(error)

    def update_usage(self, usage: Optional[UsageInfo]) -> None:
        self.usage = usage

    def update_todos(self, todos: Optional[List[TodoItem]]) -> None:
        self.todos = todos

    def render(self) -> RenderableType:
        parts: List[RenderableType] = [turn.renderable() for turn in self.turns]
        if self.todos:
            parts.append(self.render_todos())
        if self.usage is not None:
            parts.append(self.render_usage())
        return Group(*parts)

    def render_usage(self) -> Text:
        usage = self.usage
        if usage is None:
            return Text("")
        style = "green"
        if usage.percentage >= 80:
            style = "red"
        elif usage.percentage >= 50:
            style = "yellow"
        line = Text()
        if usage.model:
            line.append(f"{usage.model} ", style="dim")
        line.append(f"{usage.percentage:.0f}%", style=style)
        line.append(f" ({usage.context_tokens:,}/{usage.context_window:,} tokens)", style="dim")
        return line

    def render_todos(self) -> Panel:
        rows = []
        for item in self.todos or []:
            symbol, style = TODO_STATUS_SYMBOLS.get(item.status, ("○", "dim"))
            row = Text()
            row.append(f"{symbol} ", style=style)
            label = item.active_form if item.status == "in_progress" and item.active_form else item.content
            row.append(label)
            rows.append(row)
        return Panel(Group(*rows), title="Tasks", title_align="left", border_style="dim")

    def print_turn(self, container: TurnContainer, msg: Optional[ChatMessage] = None) -> None:
        """Write a turn to the console, with a duration footer when known."""
        self.console.print(container.renderable())
        if msg is not None and msg.duration_seconds:
            word = msg.duration_flavor_word or "Baked"
            self.console.print(Text(f"{word} for {format_duration(msg.duration_seconds)}", style="dim"))

    # ==================== Text ====================

    def create_text_block(self, container: TurnContainer) -> TextView:
        return container.append(TextView())

    async def render_content(self, handle: TextView, markdown: str) -> None:
        handle.markdown = markdown
        handle.error = None

    def finalize_text_block(self, handle: TextView, content: str) -> None:
        handle.markdown = content
        handle.finalized = True

    # ==================== Thinking ====================

    def create_thinking_block(self, container: TurnContainer) -> ThinkingView:
        return container.append(ThinkingView())

    def append_thinking_content(self, handle: ThinkingView, content: str) -> None:
        handle.content = content

    def finalize_thinking_block(self, handle: ThinkingView) -> float:
        handle.duration = round(time.monotonic() - handle.started_at, 1)
        return handle.duration

    # ==================== Tools ====================

    def render_tool_call(self, container: TurnContainer, tool_call: ToolCallInfo) -> ToolCallView:
        label = get_tool_label(tool_call.name, tool_call.input)
        return container.append(ToolCallView(tool_call=tool_call, label=label))

    def update_tool_call_result(self, handle: ToolCallView, tool_call: ToolCallInfo) -> None:
        handle.tool_call = tool_call

    def update_tool_label(self, handle: Any, label: str) -> None:
        handle.label = label

    def create_write_edit_block(self, container: TurnContainer, tool_call: ToolCallInfo) -> WriteEditView:
        label = get_tool_label(tool_call.name, tool_call.input)
        return container.append(WriteEditView(tool_call=tool_call, label=label))

    def finalize_write_edit_block(self, handle: WriteEditView, tool_call: ToolCallInfo) -> None:
        handle.tool_call = tool_call
        if tool_call.status == ToolCallStatus.COMPLETED:
            handle.diff = build_diff(tool_call)

    # ==================== Subagents ====================

    def create_subagent_block(self, container: TurnContainer, info: SubagentInfo) -> SubagentView:
        return container.append(SubagentView(info=info))

    def update_subagent_label(self, handle: SubagentView, description: str) -> None:
        if handle.info is not None:
            handle.info.description = description

    def add_subagent_tool_call(self, handle: SubagentView, tool_call: ToolCallInfo) -> None:
        # The view reads info.tool_calls directly.
        pass

    def update_subagent_tool_result(self, handle: SubagentView, tool_call: ToolCallInfo) -> None:
        pass

    def finalize_subagent_block(self, handle: SubagentView, info: SubagentInfo) -> None:
        handle.info = info

    def create_async_subagent_block(self, container: TurnContainer, info: SubagentInfo) -> SubagentView:
        return container.append(SubagentView(info=info, background=True))

    def update_async_subagent_running(self, handle: SubagentView, info: SubagentInfo) -> None:
        handle.info = info

    def finalize_async_subagent(self, handle: SubagentView, info: SubagentInfo) -> None:
        handle.info = info

    def mark_async_subagent_orphaned(self, handle: SubagentView, info: SubagentInfo) -> None:
        handle.info = info

    # ==================== Indicator ====================

    def show_indicator(self, container: TurnContainer, text: str, hint: str) -> IndicatorView:
        return container.append(IndicatorView(text=text, hint=hint))

    def move_indicator_to_bottom(self, container: TurnContainer, handle: IndicatorView) -> None:
        container.detach(handle)
        container.append(handle)

    def update_indicator_hint(self, handle: IndicatorView, hint: str) -> None:
        handle.hint = hint

    def remove_indicator(self, handle: IndicatorView) -> None:
        for turn in self.turns:
            if handle in turn.blocks:
                turn.detach(handle)
                return
        handle.attached = False

    def is_indicator_attached(self, handle: IndicatorView) -> bool:
        return bool(getattr(handle, "attached", False))


def dump_transcript(renderer: RichTranscriptRenderer) -> str:
    """Plain-text export of the transcript, for logs."""
    console = Console(record=True, width=100, color_system=None, file=io.StringIO())
    console.print(renderer.render())
    return console.export_text()
