"""Per-turn mutable state owned by the stream controller.

TurnState is passed by reference to every transition; nothing else writes to
it while a turn streams. reset_streaming() drops everything belonging to the
current turn (buffered tools are discarded without rendering) while keeping
conversation-level fields such as the message list and usage snapshot.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .models import ChatMessage, TodoItem, UsageInfo
from .pending import PendingToolBuffer


class HandleKind(str, Enum):
    """Which renderer produced a tool handle."""
    TOOL = "tool"
    WRITE_EDIT = "write_edit"


@dataclass
class ToolHandle:
    tool_id: str
    kind: HandleKind
    handle: Any


class ToolHandleRegistry:
    """Dense store of rendered tool handles with an id -> slot index.

    Only ids cross the turn/subagent boundary; handles stay here.
    """

    def __init__(self):
        self._slots: List[Optional[ToolHandle]] = []
        self._index: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._index

    def __iter__(self) -> Iterator[ToolHandle]:
        return (slot for slot in self._slots if slot is not None)

    def register(self, tool_id: str, kind: HandleKind, handle: Any) -> int:
        """Store a handle, replacing any earlier one for the same id.

        Returns:
            The slot index.
        """
        entry = ToolHandle(tool_id=tool_id, kind=kind, handle=handle)
        slot = self._index.get(tool_id)
        if slot is not None:
            self._slots[slot] = entry
            return slot
        self._slots.append(entry)
        slot = len(self._slots) - 1
        self._index[tool_id] = slot
        return slot

    def get(self, tool_id: str) -> Optional[ToolHandle]:
        slot = self._index.get(tool_id)
        if slot is None:
            return None
        return self._slots[slot]

    def slot_of(self, tool_id: str) -> Optional[int]:
        return self._index.get(tool_id)

    def remove(self, tool_id: str) -> Optional[ToolHandle]:
        slot = self._index.pop(tool_id, None)
        if slot is None:
            return None
        entry = self._slots[slot]
        self._slots[slot] = None
        return entry

    def clear(self) -> None:
        self._slots.clear()
        self._index.clear()


@dataclass
class ThinkingState:
    """An open thinking span."""
    handle: Any
    content: str = ""
    start_time: float = 0.0


@dataclass
class TurnState:
    """Everything the controller tracks while a turn streams.

    Attributes:
        messages: Conversation history; async subagent updates are applied here.
        current_content_el: Container of the in-progress turn, None outside a turn.
        current_text_el: Handle of the open text span.
        current_text_content: Text accumulated in the open span.
        current_thinking_state: The open thinking span.
        pending_tools: Tool calls awaiting their first render.
        tool_handles: Rendered tool handles by tool id.
        thinking_el: Handle of the mounted thinking indicator.
        thinking_debounce: Pending debounce timer for the indicator.
        flavor_timer_interval: Elapsed-time readout timer.
        response_start_time: Loop time the turn started, None when unknown.
        usage: Last accepted usage snapshot.
        ignore_usage_updates: Drop every usage chunk while set.
        auto_scroll_enabled: Follow new content (user may scroll away).
        plan_file_path: Plan file written during the turn.
        current_todos: Latest parsed TodoWrite list.
        is_streaming: A turn is in progress.
        turn_complete: The terminal chunk has been processed.
    """
    messages: List[ChatMessage] = field(default_factory=list)

    current_content_el: Any = None
    current_text_el: Any = None
    current_text_content: str = ""
    current_thinking_state: Optional[ThinkingState] = None

    pending_tools: PendingToolBuffer = field(default_factory=PendingToolBuffer)
    tool_handles: ToolHandleRegistry = field(default_factory=ToolHandleRegistry)

    thinking_el: Any = None
    thinking_debounce: Optional[asyncio.TimerHandle] = None
    flavor_timer_interval: Optional[asyncio.TimerHandle] = None
    response_start_time: Optional[float] = None

    usage: Optional[UsageInfo] = None
    ignore_usage_updates: bool = False
    auto_scroll_enabled: bool = True

    plan_file_path: Optional[str] = None
    current_todos: Optional[List[TodoItem]] = None

    is_streaming: bool = False
    turn_complete: bool = False

    def reset_streaming(self) -> None:
        """Drop per-turn state. Timers must already be cancelled by the caller."""
        self.current_content_el = None
        self.current_text_el = None
        self.current_text_content = ""
        self.current_thinking_state = None
        self.pending_tools.clear()
        self.tool_handles.clear()
        self.thinking_el = None
        self.thinking_debounce = None
        self.flavor_timer_interval = None
        self.response_start_time = None
        self.is_streaming = False
        self.turn_complete = False
