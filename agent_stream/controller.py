"""Stream controller: turns agent chunks into one assembled message.

The controller is the single writer of TurnState while a turn streams. For
every chunk it decides whether to open, continue or close a text/thinking
span, whether a tool call is buffered or rendered, where a nested agent's
chunk goes, and when the thinking indicator appears or disappears.

Ordering rules:
- An open thinking span closes before text, tool_use, error or blocked.
- An open text span closes before thinking and tool_use.
- Buffered tool calls are rendered (in arrival order) before any text,
  thinking, error, blocked or done chunk, and individually when their own
  result arrives.
- Content blocks are appended when a span closes, or on arrival for tool
  and subagent references.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Union

from .chunks import (
    BlockedChunk,
    Chunk,
    ChunkType,
    ErrorChunk,
    TextChunk,
    ThinkingChunk,
    ToolResultChunk,
    ToolUseChunk,
    UsageChunk,
    parse_chunk,
)
from .config import StreamConfig
from .indicator import IndicatorTimer
from .models import (
    ChatMessage,
    SubagentBlock,
    SubagentInfo,
    SubagentMode,
    TextBlock,
    ThinkingBlock,
    ToolCallInfo,
    ToolCallStatus,
    ToolUseBlock,
)
from .renderer import StreamRenderer
from .state import HandleKind, ThinkingState, TurnState
from .subagents import SubagentCoordinator, TaskAction
from .tools import (
    TOOL_TODO_WRITE,
    capture_plan_file_path,
    get_tool_label,
    is_agent_output_tool,
    is_blocked_tool_result,
    is_subagent_tool,
    is_write_edit_tool,
    parse_todo_input,
    skips_blocked_detection,
)
from .trace import trace

logger = logging.getLogger(__name__)

ERROR_MARKER = "\n\n❌ **Error:** {content}"
BLOCKED_MARKER = "\n\n⚠️ **Blocked:** {content}"
INTERRUPTED_MARKER = "\n\n[Request interrupted by user]"


class SessionIdentityProvider(ABC):
    """Source of the session id that usage chunks are checked against."""

    @abstractmethod
    def get_session_id(self) -> Optional[str]:
        pass


class StreamController:
    """Applies stream chunks to the in-progress message.

    Args:
        renderer: Presentation layer for every content kind.
        state: Turn state; shared with the turn runner.
        session_provider: Current session id for usage gating.
        subagents: Subagent coordinator; one is created if omitted.
        config: Display settings.
        loop: Event loop for indicator timers; defaults to the running loop.
        update_queue_indicator: Called when the thinking indicator is
            mounted or moved.
    """

    def __init__(
        self,
        renderer: StreamRenderer,
        state: Optional[TurnState] = None,
        session_provider: Optional[SessionIdentityProvider] = None,
        subagents: Optional[SubagentCoordinator] = None,
        config: Optional[StreamConfig] = None,
        loop: Any = None,
        update_queue_indicator: Optional[Callable[[], None]] = None,
    ):
        self.renderer = renderer
        self.state = state if state is not None else TurnState()
        self.session_provider = session_provider
        self.config = config or StreamConfig()
        self.subagents = subagents or SubagentCoordinator(renderer)
        self.indicator = IndicatorTimer(
            self.state,
            renderer,
            loop=loop,
            delay=self.config.indicator.delay,
            interval=self.config.indicator.interval,
            flavor_texts=self.config.indicator.flavor_texts,
            update_queue_indicator=update_queue_indicator,
        )
        self._unsubscribe = self.subagents.bus.subscribe(self.on_async_subagent_state_change)

        self._handlers: Dict[ChunkType, Callable[[Any, ChatMessage], Any]] = {
            ChunkType.TEXT: self._handle_text,
            ChunkType.THINKING: self._handle_thinking,
            ChunkType.TOOL_USE: self._handle_tool_use,
            ChunkType.TOOL_RESULT: self._handle_tool_result,
            ChunkType.USAGE: self._handle_usage,
            ChunkType.ERROR: self._handle_error,
            ChunkType.BLOCKED: self._handle_blocked,
            ChunkType.DONE: self._handle_done,
        }

    def close(self) -> None:
        """Stop listening for async subagent updates."""
        self._unsubscribe()

    # ==================== Entry point ====================

    async def handle_stream_chunk(self, chunk: Union[Chunk, Dict[str, Any]], msg: ChatMessage) -> None:
        """Apply one chunk to the in-progress message.

        Raw dictionaries are parsed first; a malformed one raises
        ChunkParseError.
        """
        if isinstance(chunk, dict):
            chunk = parse_chunk(chunk)

        trace("StreamController", self._describe(chunk))

        if chunk.parent_tool_use_id:
            self._handle_routed_chunk(chunk, msg)
            return

        handler = self._handlers.get(chunk.type)
        if handler is None:
            logger.debug(f"No handler for chunk type {chunk.type}")
            return
        await handler(chunk, msg)

    # ==================== Text ====================

    async def _handle_text(self, chunk: TextChunk, msg: ChatMessage) -> None:
        self.flush_pending_tools()
        self.finalize_current_thinking_block(msg)
        self.hide_thinking_indicator()
        msg.content += chunk.content
        await self.append_text(chunk.content)

    async def append_text(self, content: str) -> None:
        """Append to the open text span, opening one if needed, and re-render it."""
        state = self.state
        state.current_text_content += content

        if state.current_text_el is None and state.current_content_el is not None:
            try:
                state.current_text_el = self.renderer.create_text_block(state.current_content_el)
            except Exception as e:
                logger.warning(f"Failed to create text block: {e}")

        if state.current_text_el is not None:
            try:
                await self.renderer.render_content(state.current_text_el, state.current_text_content)
            except Exception as e:
                logger.warning(f"Failed to render text content: {e}")
                self._render_placeholder(state.current_text_el, e)

        self.scroll_to_bottom()

    def finalize_current_text_block(self, msg: ChatMessage) -> None:
        """Close the open text span and record it as a content block."""
        state = self.state
        content = state.current_text_content
        if state.current_text_el is not None and content:
            try:
                self.renderer.finalize_text_block(state.current_text_el, content)
            except Exception as e:
                logger.warning(f"Failed to finalize text block: {e}")
        if content:
            msg.content_blocks.append(TextBlock(content=content))
        state.current_text_el = None
        state.current_text_content = ""

    # ==================== Thinking ====================

    async def _handle_thinking(self, chunk: ThinkingChunk, msg: ChatMessage) -> None:
        state = self.state
        if state.current_content_el is None:
            return

        self.flush_pending_tools()
        self.finalize_current_text_block(msg)
        self.hide_thinking_indicator()

        if state.current_thinking_state is None:
            handle = None
            try:
                handle = self.renderer.create_thinking_block(state.current_content_el)
            except Exception as e:
                logger.warning(f"Failed to create thinking block: {e}")
            state.current_thinking_state = ThinkingState(handle=handle, start_time=self.indicator.now())

        thinking = state.current_thinking_state
        thinking.content += chunk.content
        if thinking.handle is not None:
            try:
                self.renderer.append_thinking_content(thinking.handle, thinking.content)
            except Exception as e:
                logger.warning(f"Failed to render thinking content: {e}")
                self._render_placeholder(thinking.handle, e)

        self.scroll_to_bottom()

    def finalize_current_thinking_block(self, msg: ChatMessage) -> None:
        """Close the open thinking span; empty spans leave no content block."""
        thinking = self.state.current_thinking_state
        if thinking is None:
            return

        duration: Optional[float] = None
        if thinking.handle is not None:
            try:
                duration = self.renderer.finalize_thinking_block(thinking.handle)
            except Exception as e:
                logger.warning(f"Failed to finalize thinking block: {e}")

        if thinking.content:
            msg.content_blocks.append(ThinkingBlock(content=thinking.content, duration_seconds=duration))
        self.state.current_thinking_state = None

    # ==================== Tool use ====================

    async def _handle_tool_use(self, chunk: ToolUseChunk, msg: ChatMessage) -> None:
        self.finalize_current_thinking_block(msg)
        self.finalize_current_text_block(msg)

        if is_subagent_tool(chunk.name):
            self.flush_pending_tools()
            self._handle_task_tool_use(chunk, msg)
            self.show_thinking_indicator()
            return

        if is_agent_output_tool(chunk.name):
            tool_call = ToolCallInfo(id=chunk.id, name=chunk.name, input=dict(chunk.input))
            self.subagents.handle_agent_output_tool_use(tool_call)
            self.show_thinking_indicator()
            return

        existing = msg.find_tool_call(chunk.id)
        if existing is not None:
            existing.merge_input(chunk.input)
            self._capture_side_channels(existing)
            self._update_tool_label(existing)
            return

        tool_call = ToolCallInfo(id=chunk.id, name=chunk.name, input=dict(chunk.input))
        msg.tool_calls.append(tool_call)
        msg.content_blocks.append(ToolUseBlock(tool_id=tool_call.id))
        self._capture_side_channels(tool_call)
        self.state.pending_tools.add(tool_call)
        self.show_thinking_indicator()

    def _handle_task_tool_use(self, chunk: ToolUseChunk, msg: ChatMessage) -> None:
        result = self.subagents.handle_task_tool_use(chunk.id, dict(chunk.input), self.state.current_content_el)
        if result.action in (TaskAction.CREATED_SYNC, TaskAction.CREATED_ASYNC) and result.info is not None:
            self._attach_subagent(msg, result.info)
        trace("StreamController", f"Task {chunk.id} -> {result.action.value}")

    def _capture_side_channels(self, tool_call: ToolCallInfo) -> None:
        plan_path = capture_plan_file_path(tool_call.name, tool_call.input)
        if plan_path:
            self.state.plan_file_path = plan_path

        if tool_call.name == TOOL_TODO_WRITE:
            todos = parse_todo_input(tool_call.input)
            if todos is not None:
                self.state.current_todos = todos
                try:
                    self.renderer.update_todos(todos)
                except Exception as e:
                    logger.warning(f"Failed to update todo panel: {e}")

    def _update_tool_label(self, tool_call: ToolCallInfo) -> None:
        entry = self.state.tool_handles.get(tool_call.id)
        if entry is None:
            return
        label = get_tool_label(tool_call.name, tool_call.input, self.config.tools.bash_label_max)
        try:
            self.renderer.update_tool_label(entry.handle, label)
        except Exception as e:
            logger.warning(f"Failed to update label for {tool_call.id}: {e}")

    # ==================== Pending tools ====================

    def flush_pending_tools(self) -> None:
        """Render every buffered tool call in arrival order."""
        if self.state.pending_tools.flush(self._render_tool) > 0:
            self.scroll_to_bottom()

    def _render_tool(self, tool_call: ToolCallInfo) -> None:
        container = self.state.current_content_el
        if container is None or not self.config.show_tool_use:
            return
        try:
            if is_write_edit_tool(tool_call.name):
                handle = self.renderer.create_write_edit_block(container, tool_call)
                kind = HandleKind.WRITE_EDIT
            else:
                handle = self.renderer.render_tool_call(container, tool_call)
                kind = HandleKind.TOOL
        except Exception as e:
            logger.warning(f"Failed to render tool call {tool_call.id}: {e}")
            return
        self.state.tool_handles.register(tool_call.id, kind, handle)

    # ==================== Tool result ====================

    async def _handle_tool_result(self, chunk: ToolResultChunk, msg: ChatMessage) -> None:
        tool_id = chunk.id

        if tool_id in self.state.pending_tools:
            self.state.pending_tools.flush_one(tool_id, self._render_tool)

        if self.subagents.has_pending_task(tool_id):
            self._render_pending_task(tool_id, msg)

        if self.subagents.is_pending_async_task(tool_id):
            self.subagents.handle_task_tool_result(tool_id, chunk.content, chunk.is_error)
            self.show_thinking_indicator()
            return

        if self.subagents.is_linked_agent_output_tool(tool_id):
            self.subagents.handle_agent_output_tool_result(tool_id, chunk.content, bool(chunk.is_error))
            self.show_thinking_indicator()
            return

        if self.subagents.get_sync_subagent(tool_id) is not None:
            info = self.subagents.finalize_sync_subagent(tool_id, chunk.content, bool(chunk.is_error))
            if info is not None:
                self._merge_subagent_into_message(msg, info)
            self.show_thinking_indicator()
            return

        tool_call = msg.find_tool_call(tool_id)
        if tool_call is None:
            logger.debug(f"tool_result for unknown tool call {tool_id}")
            self.show_thinking_indicator()
            return

        tool_call.status = self._result_status(tool_call.name, chunk.content, chunk.is_error)
        tool_call.result = chunk.content
        self._update_tool_result(tool_call)
        self.show_thinking_indicator()

    def _result_status(self, name: str, content: str, is_error: Optional[bool]) -> ToolCallStatus:
        exempt = skips_blocked_detection(name, self.config.tools.skip_blocked_detection)
        if not exempt and is_blocked_tool_result(content, is_error):
            return ToolCallStatus.BLOCKED
        if is_error:
            return ToolCallStatus.ERROR
        return ToolCallStatus.COMPLETED

    def _update_tool_result(self, tool_call: ToolCallInfo) -> None:
        entry = self.state.tool_handles.get(tool_call.id)
        if entry is None:
            return
        try:
            if entry.kind == HandleKind.WRITE_EDIT:
                self.renderer.finalize_write_edit_block(entry.handle, tool_call)
            else:
                self.renderer.update_tool_call_result(entry.handle, tool_call)
        except Exception as e:
            logger.warning(f"Failed to update result for {tool_call.id}: {e}")

    # ==================== Subagents ====================

    def _handle_routed_chunk(self, chunk: Chunk, msg: ChatMessage) -> None:
        parent_id = chunk.parent_tool_use_id

        if self.subagents.has_pending_task(parent_id):
            # A child chunk means the launch runs inline.
            self._render_pending_task(parent_id, msg, mode=SubagentMode.SYNC)

        subagent = self.subagents.get_sync_subagent(parent_id)
        if subagent is None:
            logger.debug(f"Dropping {chunk.type.value} chunk for unknown subagent {parent_id}")
            return

        if isinstance(chunk, ToolUseChunk):
            tool_call = ToolCallInfo(id=chunk.id, name=chunk.name, input=dict(chunk.input))
            self.subagents.add_sync_tool_call(parent_id, tool_call)
        elif isinstance(chunk, ToolResultChunk):
            existing = subagent.info.find_tool_call(chunk.id)
            tool_call = ToolCallInfo(
                id=chunk.id,
                name=existing.name if existing else "",
                input=dict(existing.input) if existing else {},
                status=ToolCallStatus.ERROR if chunk.is_error else ToolCallStatus.COMPLETED,
                result=chunk.content,
            )
            self.subagents.update_sync_tool_result(parent_id, chunk.id, tool_call)

    def _render_pending_task(
        self,
        task_id: str,
        msg: ChatMessage,
        mode: Optional[SubagentMode] = None,
    ) -> None:
        try:
            rendered = self.subagents.render_pending_task(task_id, self.state.current_content_el, mode=mode)
        except Exception:
            logger.exception(f"Failed to render pending task {task_id}")
            return
        if rendered is None:
            return
        self._attach_subagent(msg, rendered.info)

    def _attach_subagent(self, msg: ChatMessage, info: SubagentInfo) -> None:
        msg.add_subagent(info)
        for block in msg.content_blocks:
            if isinstance(block, SubagentBlock) and block.subagent_id == info.id:
                return
        mode = SubagentMode.ASYNC if info.mode == SubagentMode.ASYNC else None
        msg.content_blocks.append(SubagentBlock(subagent_id=info.id, mode=mode))

    def _merge_subagent_into_message(self, msg: ChatMessage, info: SubagentInfo) -> None:
        record = msg.find_subagent(info.id)
        if record is None:
            msg.add_subagent(info)
            return
        if record is not info:
            _copy_subagent(info, record)

    def on_async_subagent_state_change(self, info: SubagentInfo) -> None:
        """Apply an out-of-band async subagent update to whichever message owns it."""
        for message in self.state.messages:
            record = message.find_subagent(info.id)
            if record is None:
                continue
            if record is not info:
                _copy_subagent(info, record)
            return
        logger.debug(f"No message owns subagent {info.id}; update dropped")

    # ==================== Usage ====================

    async def _handle_usage(self, chunk: UsageChunk, msg: ChatMessage) -> None:
        if self.subagents.subagents_spawned_this_stream > 0:
            return
        if self.state.ignore_usage_updates:
            return
        if chunk.session_id:
            current = self.session_provider.get_session_id() if self.session_provider else None
            if chunk.session_id != current:
                logger.debug(f"Ignoring usage for session {chunk.session_id}")
                return
        if chunk.usage is None:
            return

        self.state.usage = chunk.usage
        msg.usage = chunk.usage
        try:
            self.renderer.update_usage(chunk.usage)
        except Exception as e:
            logger.warning(f"Failed to update usage display: {e}")

    # ==================== Error / blocked / done ====================

    async def _handle_error(self, chunk: ErrorChunk, msg: ChatMessage) -> None:
        await self.append_marker(msg, ERROR_MARKER.format(content=chunk.content))

    async def _handle_blocked(self, chunk: BlockedChunk, msg: ChatMessage) -> None:
        await self.append_marker(msg, BLOCKED_MARKER.format(content=chunk.content))

    async def append_marker(self, msg: ChatMessage, marker: str) -> None:
        """Surface a marker inline with the turn's text."""
        self.flush_pending_tools()
        self.finalize_current_thinking_block(msg)
        await self.append_text(marker)

    async def _handle_done(self, chunk: Any, msg: ChatMessage) -> None:
        self.finalize_turn(msg)

    def finalize_turn(self, msg: ChatMessage) -> None:
        """Close everything still open. Safe to call more than once."""
        self.flush_pending_tools()
        for task_id in self.subagents.pending_task_ids():
            self._render_pending_task(task_id, msg)
        self.finalize_current_thinking_block(msg)
        self.finalize_current_text_block(msg)
        self.hide_thinking_indicator()
        self.state.turn_complete = True

    # ==================== Indicator / scrolling ====================

    def show_thinking_indicator(self) -> None:
        if not self.config.indicator.enabled:
            return
        self.indicator.show()

    def hide_thinking_indicator(self) -> None:
        self.indicator.hide()

    def scroll_to_bottom(self) -> None:
        if not self.config.enable_auto_scroll or not self.state.auto_scroll_enabled:
            return
        try:
            self.renderer.scroll_to_bottom()
        except Exception as e:
            logger.warning(f"Failed to scroll: {e}")

    # ==================== Reset ====================

    def reset_streaming_state(self) -> None:
        """Abandon the current turn: timers stop, buffered tools are dropped unrendered."""
        self.hide_thinking_indicator()
        self.subagents.reset_streaming_state()
        self.state.reset_streaming()

    # ==================== Helpers ====================

    def _render_placeholder(self, handle: Any, error: BaseException) -> None:
        try:
            self.renderer.render_error_placeholder(handle, error)
        except Exception:
            logger.exception("Failed to render error placeholder")

    @staticmethod
    def _describe(chunk: Chunk) -> str:
        parts = [chunk.type.value]
        chunk_id = getattr(chunk, "id", None)
        if chunk_id:
            parts.append(f"id={chunk_id}")
        if chunk.parent_tool_use_id:
            parts.append(f"parent={chunk.parent_tool_use_id}")
        content = getattr(chunk, "content", None)
        if content:
            parts.append(f"len={len(content)}")
        return " ".join(parts)


def _copy_subagent(source: SubagentInfo, target: SubagentInfo) -> None:
    target.description = source.description
    target.status = source.status
    target.mode = source.mode
    target.result = source.result
    target.agent_id = source.agent_id
    target.tool_calls = list(source.tool_calls)
