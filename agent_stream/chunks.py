"""Chunk protocol for agent turn streams.

A turn arrives as an ordered sequence of chunks, one event per value:

    {"type": "text", "content": ...}
    {"type": "thinking", "content": ...}
    {"type": "tool_use", "id": ..., "name": ..., "input": {...}, "parentToolUseId": ...}
    {"type": "tool_result", "id": ..., "content": ..., "isError": ..., "parentToolUseId": ...}
    {"type": "usage", "usage": {...}, "sessionId": ...}
    {"type": "error", "content": ...}
    {"type": "blocked", "content": ...}
    {"type": "done"}

Chunks bearing a parent tool-use id belong to a nested agent and are routed
to the subagent coordinator instead of the top-level message.

parse_chunk() accepts camelCase wire keys as well as their snake_case
equivalents; unknown keys are ignored for forward compatibility.
"""

import json
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Union

from .errors import ChunkParseError
from .models import UsageInfo


# =============================================================================
# Chunk Types
# =============================================================================

class ChunkType(str, Enum):
    """All chunk kinds in the protocol."""
    TEXT = "text"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    USAGE = "usage"
    ERROR = "error"
    BLOCKED = "blocked"
    DONE = "done"


# Wire key -> dataclass field name.
_WIRE_KEYS = {
    "parentToolUseId": "parent_tool_use_id",
    "parentRoutingKey": "parent_tool_use_id",
    "isError": "is_error",
    "sessionId": "session_id",
}

_FIELD_TO_WIRE = {
    "parent_tool_use_id": "parentToolUseId",
    "is_error": "isError",
    "session_id": "sessionId",
}


# =============================================================================
# Base Chunk
# =============================================================================

@dataclass
class StreamChunk:
    """Base class for all chunks."""
    type: ChunkType
    parent_tool_use_id: Optional[str] = None

    @property
    def is_routed(self) -> bool:
        """True if the chunk belongs to a nested agent."""
        return bool(self.parent_tool_use_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a wire dictionary, omitting unset optional keys."""
        d: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "type":
                d["type"] = value.value
                continue
            if value is None:
                continue
            if isinstance(value, UsageInfo):
                value = value.to_dict()
            d[_FIELD_TO_WIRE.get(f.name, f.name)] = value
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# =============================================================================
# Chunk Kinds
# =============================================================================

@dataclass
class TextChunk(StreamChunk):
    """A piece of assistant text."""
    type: ChunkType = field(default=ChunkType.TEXT)
    content: str = ""


@dataclass
class ThinkingChunk(StreamChunk):
    """A piece of model reasoning."""
    type: ChunkType = field(default=ChunkType.THINKING)
    content: str = ""


@dataclass
class ToolUseChunk(StreamChunk):
    """A tool invocation, or an input update for one already seen."""
    type: ChunkType = field(default=ChunkType.TOOL_USE)
    id: str = ""
    name: str = ""
    input: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResultChunk(StreamChunk):
    """The result of a tool invocation."""
    type: ChunkType = field(default=ChunkType.TOOL_RESULT)
    id: str = ""
    content: str = ""
    is_error: Optional[bool] = None


@dataclass
class UsageChunk(StreamChunk):
    """Token usage snapshot, optionally tagged with the session it belongs to."""
    type: ChunkType = field(default=ChunkType.USAGE)
    usage: Optional[UsageInfo] = None
    session_id: Optional[str] = None


@dataclass
class ErrorChunk(StreamChunk):
    """An error surfaced inline in the turn."""
    type: ChunkType = field(default=ChunkType.ERROR)
    content: str = ""


@dataclass
class BlockedChunk(StreamChunk):
    """A blocked action surfaced inline in the turn."""
    type: ChunkType = field(default=ChunkType.BLOCKED)
    content: str = ""


@dataclass
class DoneChunk(StreamChunk):
    """Terminal marker for the turn."""
    type: ChunkType = field(default=ChunkType.DONE)


Chunk = Union[
    TextChunk,
    ThinkingChunk,
    ToolUseChunk,
    ToolResultChunk,
    UsageChunk,
    ErrorChunk,
    BlockedChunk,
    DoneChunk,
]


# =============================================================================
# Parsing
# =============================================================================

_CHUNK_CLASSES: Dict[str, type] = {
    ChunkType.TEXT.value: TextChunk,
    ChunkType.THINKING.value: ThinkingChunk,
    ChunkType.TOOL_USE.value: ToolUseChunk,
    ChunkType.TOOL_RESULT.value: ToolResultChunk,
    ChunkType.USAGE.value: UsageChunk,
    ChunkType.ERROR.value: ErrorChunk,
    ChunkType.BLOCKED.value: BlockedChunk,
    ChunkType.DONE.value: DoneChunk,
}


def _content_to_str(value: Any) -> str:
    """Tool results may carry structured content; flatten it to text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = []
        for item in value:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "\n".join(parts)
    return str(value)


def parse_chunk(data: Union[Dict[str, Any], str]) -> Chunk:
    """Build a typed chunk from a raw wire value.

    Args:
        data: A dictionary, or a JSON string encoding one.

    Returns:
        The typed chunk.

    Raises:
        ChunkParseError: If the value is not an object, the type is unknown,
            or a field has the wrong shape.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ChunkParseError(f"Invalid chunk JSON: {e}", raw=data) from e

    if not isinstance(data, dict):
        raise ChunkParseError(f"Chunk must be an object, got {type(data).__name__}", raw=data)

    chunk_type = data.get("type")
    if chunk_type not in _CHUNK_CLASSES:
        raise ChunkParseError(f"Unknown chunk type: {chunk_type}", raw=data)

    chunk_class = _CHUNK_CLASSES[chunk_type]
    known_fields = {f.name for f in fields(chunk_class)}

    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        name = _WIRE_KEYS.get(key, key)
        if name == "type" or name not in known_fields:
            continue
        kwargs[name] = value

    if "input" in kwargs:
        if kwargs["input"] is None:
            kwargs["input"] = {}
        elif not isinstance(kwargs["input"], dict):
            raise ChunkParseError("tool_use input must be an object", raw=data)

    if "content" in kwargs:
        kwargs["content"] = _content_to_str(kwargs["content"])

    if "is_error" in kwargs and kwargs["is_error"] is not None:
        kwargs["is_error"] = bool(kwargs["is_error"])

    if chunk_class is UsageChunk and kwargs.get("usage") is not None:
        usage = kwargs["usage"]
        if not isinstance(usage, dict):
            raise ChunkParseError("usage must be an object", raw=data)
        try:
            kwargs["usage"] = UsageInfo.from_dict(usage)
        except (TypeError, ValueError) as e:
            raise ChunkParseError(f"Invalid usage: {e}", raw=data) from e

    return chunk_class(**kwargs)


__all__ = [
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
    "Chunk",
    "parse_chunk",
]
