"""Data model for an assembled assistant turn.

A turn produces one ChatMessage. The stream controller mutates it while
chunks arrive; after finalization it is handed to conversation history.

Content blocks record the order in which content appeared in the stream:
text and thinking spans are appended when they close, tool and subagent
references when they arrive.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ToolCallStatus(str, Enum):
    """Lifecycle of a tool call."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    BLOCKED = "blocked"


class SubagentStatus(str, Enum):
    """Lifecycle of a nested agent execution."""
    PENDING = "pending"      # Launch seen, mode or ack not known yet
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    ORPHANED = "orphaned"    # Background run lost its owner before finishing


class SubagentMode(str, Enum):
    """How a nested agent runs relative to the turn that spawned it."""
    SYNC = "sync"
    ASYNC = "async"


TERMINAL_SUBAGENT_STATES = (
    SubagentStatus.COMPLETED,
    SubagentStatus.ERROR,
    SubagentStatus.ORPHANED,
)


# =============================================================================
# Content blocks
# =============================================================================

@dataclass
class TextBlock:
    """A closed span of assistant text."""
    content: str
    type: str = field(default="text", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "content": self.content}


@dataclass
class ThinkingBlock:
    """A closed span of model reasoning."""
    content: str
    duration_seconds: Optional[float] = None
    type: str = field(default="thinking", init=False)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type, "content": self.content}
        if self.duration_seconds is not None:
            d["durationSeconds"] = self.duration_seconds
        return d


@dataclass
class ToolUseBlock:
    """Reference to a tool call by id, fixed at the position the call arrived."""
    tool_id: str
    type: str = field(default="tool_use", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "toolId": self.tool_id}


@dataclass
class SubagentBlock:
    """Reference to a nested agent execution.

    ``mode`` is None for inline (sync) subagents and ``SubagentMode.ASYNC``
    for background ones.
    """
    subagent_id: str
    mode: Optional[SubagentMode] = None
    type: str = field(default="subagent", init=False)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type, "subagentId": self.subagent_id}
        if self.mode is not None:
            d["mode"] = self.mode.value
        return d


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, SubagentBlock]


# =============================================================================
# Tool calls and subagents
# =============================================================================

@dataclass
class ToolCallInfo:
    """A tracked tool invocation.

    Attributes:
        id: Stable id supplied by the chunk source.
        name: Tool name (e.g. "Read", "Bash").
        input: Tool input; later tool_use chunks for the same id merge into it.
        status: Current lifecycle status.
        result: Result text once the tool_result arrived.
        is_expanded: Presentation hint for collapsible renderers.
    """
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.RUNNING
    result: Optional[str] = None
    is_expanded: bool = False

    def merge_input(self, update: Dict[str, Any]) -> None:
        """Merge streamed input fields into the existing input."""
        self.input = {**self.input, **update}

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "input": dict(self.input),
            "status": self.status.value,
        }
        if self.result is not None:
            d["result"] = self.result
        return d


@dataclass
class SubagentInfo:
    """Record of a nested agent execution.

    Attributes:
        id: The Task tool call id that spawned the subagent.
        description: Human-readable label shown in the transcript.
        status: Current lifecycle status.
        mode: Sync (inline) or async (background); None while unknown.
        tool_calls: Tool calls made by the subagent.
        result: Final result text.
        prompt: Prompt given to the subagent.
        agent_id: Background agent id reported by the launch result.
        is_expanded: Presentation hint for collapsible renderers.
    """
    id: str
    description: str = ""
    status: SubagentStatus = SubagentStatus.RUNNING
    mode: Optional[SubagentMode] = None
    tool_calls: List[ToolCallInfo] = field(default_factory=list)
    result: Optional[str] = None
    prompt: Optional[str] = None
    agent_id: Optional[str] = None
    is_expanded: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SUBAGENT_STATES

    def find_tool_call(self, tool_id: str) -> Optional[ToolCallInfo]:
        for tool_call in self.tool_calls:
            if tool_call.id == tool_id:
                return tool_call
        return None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "toolCalls": [tc.to_dict() for tc in self.tool_calls],
        }
        if self.mode is not None:
            d["mode"] = self.mode.value
        if self.result is not None:
            d["result"] = self.result
        if self.agent_id is not None:
            d["agentId"] = self.agent_id
        return d


# =============================================================================
# Usage and todos
# =============================================================================

@dataclass
class UsageInfo:
    """Snapshot of token usage for the visible session.

    Replaced wholesale on each accepted usage chunk.
    """
    model: Optional[str] = None
    input_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    context_window: int = 0
    context_tokens: int = 0
    percentage: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageInfo":
        """Build a snapshot from wire keys (camelCase or snake_case)."""
        def pick(camel: str, snake: str, default: Any) -> Any:
            if camel in data:
                return data[camel]
            return data.get(snake, default)

        input_tokens = int(pick("inputTokens", "input_tokens", 0) or 0)
        cache_creation = int(pick("cacheCreationInputTokens", "cache_creation_input_tokens", 0) or 0)
        cache_read = int(pick("cacheReadInputTokens", "cache_read_input_tokens", 0) or 0)
        context_window = int(pick("contextWindow", "context_window", 0) or 0)
        context_tokens = pick("contextTokens", "context_tokens", None)
        if context_tokens is None:
            context_tokens = input_tokens + cache_creation + cache_read
        percentage = pick("percentage", "percentage", None)
        if percentage is None:
            percentage = compute_usage_percentage(int(context_tokens), context_window)
        return cls(
            model=data.get("model"),
            input_tokens=input_tokens,
            cache_creation_input_tokens=cache_creation,
            cache_read_input_tokens=cache_read,
            context_window=context_window,
            context_tokens=int(context_tokens),
            percentage=float(percentage),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "inputTokens": self.input_tokens,
            "cacheCreationInputTokens": self.cache_creation_input_tokens,
            "cacheReadInputTokens": self.cache_read_input_tokens,
            "contextWindow": self.context_window,
            "contextTokens": self.context_tokens,
            "percentage": self.percentage,
        }


def compute_usage_percentage(context_tokens: int, context_window: int) -> float:
    """Percentage of the context window in use, clamped to 0..100."""
    if context_window <= 0:
        return 0.0
    pct = round(context_tokens / context_window * 100, 1)
    return max(0.0, min(100.0, pct))


@dataclass
class TodoItem:
    """One entry of a TodoWrite list."""
    content: str
    status: str = "pending"
    active_form: str = ""


# =============================================================================
# Message
# =============================================================================

@dataclass
class ChatMessage:
    """One conversation message; for assistant turns, the assembled output.

    ``subagents`` stays None until the first subagent is attached so that a
    turn without nested agents round-trips without an empty list.
    """
    id: str = field(default_factory=lambda: f"msg-{uuid.uuid4().hex[:12]}")
    role: str = "assistant"
    content: str = ""
    timestamp: float = field(default_factory=lambda: time.time() * 1000)
    content_blocks: List[ContentBlock] = field(default_factory=list)
    tool_calls: List[ToolCallInfo] = field(default_factory=list)
    subagents: Optional[List[SubagentInfo]] = None
    duration_seconds: Optional[int] = None
    duration_flavor_word: Optional[str] = None
    usage: Optional[UsageInfo] = None
    interrupted: bool = False

    def find_tool_call(self, tool_id: str) -> Optional[ToolCallInfo]:
        for tool_call in self.tool_calls:
            if tool_call.id == tool_id:
                return tool_call
        return None

    def find_subagent(self, subagent_id: str) -> Optional[SubagentInfo]:
        for subagent in self.subagents or []:
            if subagent.id == subagent_id:
                return subagent
        return None

    def add_subagent(self, info: SubagentInfo) -> None:
        """Attach a subagent record, ignoring duplicates by id."""
        if self.subagents is None:
            self.subagents = []
        if self.find_subagent(info.id) is None:
            self.subagents.append(info)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
            "contentBlocks": [block.to_dict() for block in self.content_blocks],
            "toolCalls": [tc.to_dict() for tc in self.tool_calls],
        }
        if self.subagents is not None:
            d["subagents"] = [s.to_dict() for s in self.subagents]
        if self.duration_seconds is not None:
            d["durationSeconds"] = self.duration_seconds
        if self.usage is not None:
            d["usage"] = self.usage.to_dict()
        if self.duration_flavor_word is not None:
            d["durationFlavorWord"] = self.duration_flavor_word
        if self.interrupted:
            d["interrupted"] = True
        return d
