"""Renderer capability set consumed by the stream controller.

The controller never draws anything itself. Each content kind has its own
abstract interface pairing the create/update calls with their finalize
counterpart; StreamRenderer combines them with the transcript-level hooks.

Handles returned by create/render calls are opaque to the controller: it
stores them by id and passes them back on later updates.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from .models import ChatMessage, SubagentInfo, ToolCallInfo


class TextBlockRenderer(ABC):
    """Incrementally rendered assistant text."""

    @abstractmethod
    def create_text_block(self, container: Any) -> Any:
        """Open a text span at the bottom of the container and return its handle."""
        pass

    @abstractmethod
    async def render_content(self, handle: Any, markdown: str) -> None:
        """Re-render the full markdown of an open text span.

        May raise; the caller substitutes an error placeholder.
        """
        pass

    @abstractmethod
    def finalize_text_block(self, handle: Any, content: str) -> None:
        """Close a text span (e.g. attach a copy action)."""
        pass


class ThinkingBlockRenderer(ABC):
    """Collapsible model reasoning."""

    @abstractmethod
    def create_thinking_block(self, container: Any) -> Any:
        pass

    @abstractmethod
    def append_thinking_content(self, handle: Any, content: str) -> None:
        """Render the full accumulated thinking text."""
        pass

    @abstractmethod
    def finalize_thinking_block(self, handle: Any) -> float:
        """Close a thinking span.

        Returns:
            Seconds spent thinking, as shown by the renderer.
        """
        pass


class ToolCallRenderer(ABC):
    """Generic tool call rows."""

    @abstractmethod
    def render_tool_call(self, container: Any, tool_call: ToolCallInfo) -> Any:
        pass

    @abstractmethod
    def update_tool_call_result(self, handle: Any, tool_call: ToolCallInfo) -> None:
        pass

    @abstractmethod
    def update_tool_label(self, handle: Any, label: str) -> None:
        pass


class WriteEditRenderer(ABC):
    """Diff-aware rendering for file-writing tools."""

    @abstractmethod
    def create_write_edit_block(self, container: Any, tool_call: ToolCallInfo) -> Any:
        pass

    @abstractmethod
    def finalize_write_edit_block(self, handle: Any, tool_call: ToolCallInfo) -> None:
        """Show the outcome (diff on success, reason on error or block)."""
        pass


class SubagentRenderer(ABC):
    """Nested agent blocks, inline (sync) and background (async)."""

    # ==================== Sync ====================

    @abstractmethod
    def create_subagent_block(self, container: Any, info: SubagentInfo) -> Any:
        pass

    @abstractmethod
    def update_subagent_label(self, handle: Any, description: str) -> None:
        pass

    @abstractmethod
    def add_subagent_tool_call(self, handle: Any, tool_call: ToolCallInfo) -> None:
        pass

    @abstractmethod
    def update_subagent_tool_result(self, handle: Any, tool_call: ToolCallInfo) -> None:
        pass

    @abstractmethod
    def finalize_subagent_block(self, handle: Any, info: SubagentInfo) -> None:
        pass

    # ==================== Async ====================

    @abstractmethod
    def create_async_subagent_block(self, container: Any, info: SubagentInfo) -> Any:
        pass

    @abstractmethod
    def update_async_subagent_running(self, handle: Any, info: SubagentInfo) -> None:
        pass

    @abstractmethod
    def finalize_async_subagent(self, handle: Any, info: SubagentInfo) -> None:
        pass

    @abstractmethod
    def mark_async_subagent_orphaned(self, handle: Any, info: SubagentInfo) -> None:
        pass


class IndicatorHost(ABC):
    """Mounting point for the thinking indicator and its elapsed-time readout."""

    @abstractmethod
    def show_indicator(self, container: Any, text: str, hint: str) -> Any:
        """Mount a new indicator at the bottom of the container."""
        pass

    @abstractmethod
    def move_indicator_to_bottom(self, container: Any, handle: Any) -> None:
        pass

    @abstractmethod
    def update_indicator_hint(self, handle: Any, hint: str) -> None:
        pass

    @abstractmethod
    def remove_indicator(self, handle: Any) -> None:
        pass

    @abstractmethod
    def is_indicator_attached(self, handle: Any) -> bool:
        """True while the indicator is still mounted in its container."""
        pass


class StreamRenderer(
    TextBlockRenderer,
    ThinkingBlockRenderer,
    ToolCallRenderer,
    WriteEditRenderer,
    SubagentRenderer,
    IndicatorHost,
):
    """Everything the stream controller needs from a presentation layer."""

    # ==================== Transcript ====================

    @abstractmethod
    def create_turn_container(self, msg: ChatMessage) -> Any:
        """Create the container holding one assistant turn."""
        pass

    @abstractmethod
    def scroll_to_bottom(self) -> None:
        pass

    @abstractmethod
    def render_error_placeholder(self, handle: Any, error: BaseException) -> None:
        """Replace a span whose rendering failed with a visible placeholder."""
        pass

    def update_usage(self, usage: Optional[Any]) -> None:
        """Show the latest accepted usage snapshot. Optional."""
        pass

    def update_todos(self, todos: Optional[Any]) -> None:
        """Show the latest todo list. Optional."""
        pass
