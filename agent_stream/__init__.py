"""agent_stream - assembles streamed agent turns into structured messages.

Usage:
    from agent_stream import StreamController, TurnRunner, RichTranscriptRenderer

    renderer = RichTranscriptRenderer()
    controller = StreamController(renderer, session_provider=session)
    runner = TurnRunner(controller)
    msg = await runner.run(agent.query(prompt), ChatMessage())
"""

from agent_stream.cancel import CancelToken
from agent_stream.chunks import (
    BlockedChunk,
    Chunk,
    ChunkType,
    DoneChunk,
    ErrorChunk,
    StreamChunk,
    TextChunk,
    ThinkingChunk,
    ToolResultChunk,
    ToolUseChunk,
    UsageChunk,
    parse_chunk,
)
from agent_stream.config import StreamConfig, load_stream_config
from agent_stream.controller import SessionIdentityProvider, StreamController
from agent_stream.errors import ChunkParseError, StreamError
from agent_stream.indicator import IndicatorTimer
from agent_stream.models import (
    ChatMessage,
    SubagentBlock,
    SubagentInfo,
    SubagentMode,
    SubagentStatus,
    TextBlock,
    ThinkingBlock,
    TodoItem,
    ToolCallInfo,
    ToolCallStatus,
    ToolUseBlock,
    UsageInfo,
)
from agent_stream.pending import PendingToolBuffer
from agent_stream.renderer import StreamRenderer
from agent_stream.rich_renderer import RichTranscriptRenderer
from agent_stream.session import TurnRunner
from agent_stream.state import ToolHandleRegistry, TurnState
from agent_stream.subagents import SubagentCoordinator, SubagentStateBus
from agent_stream.trace import trace

__version__ = "0.1.0"

__all__ = [
    # Core
    "StreamController",
    "TurnRunner",
    "TurnState",
    "PendingToolBuffer",
    "ToolHandleRegistry",
    "SubagentCoordinator",
    "SubagentStateBus",
    "IndicatorTimer",
    # Collaborators
    "StreamRenderer",
    "RichTranscriptRenderer",
    "SessionIdentityProvider",
    # Chunks
    "Chunk",
    "ChunkType",
    "StreamChunk",
    "TextChunk",
    "ThinkingChunk",
    "ToolUseChunk",
    "ToolResultChunk",
    "UsageChunk",
    "ErrorChunk",
    "BlockedChunk",
    "DoneChunk",
    "parse_chunk",
    # Models
    "ChatMessage",
    "TextBlock",
    "ThinkingBlock",
    "ToolUseBlock",
    "SubagentBlock",
    "ToolCallInfo",
    "ToolCallStatus",
    "SubagentInfo",
    "SubagentMode",
    "SubagentStatus",
    "TodoItem",
    "UsageInfo",
    # Config / errors / cancellation
    "StreamConfig",
    "load_stream_config",
    "StreamError",
    "ChunkParseError",
    "CancelToken",
    "trace",
]
