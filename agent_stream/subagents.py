"""Nested agent (subagent) lifecycle tracking.

A Task tool call spawns a subagent that either runs inline with the turn
(sync) or detaches into the background (async):

    sync:   running --(Task tool_result)--> completed | error
    async:  pending --(launch ack)--> running --(TaskOutput result)--> completed | error
            pending | running --(orphan_all_active)--> orphaned

When a Task call arrives without a run_in_background flag its mode is not
known yet; the launch is held as a pending task until a later chunk settles
it (flag appears, a child chunk proves it runs inline, its result arrives,
or the turn ends).

Async transitions happen outside the live chunk stream of the turn that
spawned them, so they are published on a SubagentStateBus rather than
applied to a message directly.
"""

import json
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .models import (
    SubagentInfo,
    SubagentMode,
    SubagentStatus,
    ToolCallInfo,
    ToolCallStatus,
)
from .renderer import SubagentRenderer
from .tools import get_subagent_description

logger = logging.getLogger(__name__)

# "agentId: abc123", "agent_id=abc123", {"agent_id": "abc123"}
_AGENT_ID_PATTERN = re.compile(r"agent[_ ]?id[\"']?\s*[:=]\s*[\"']?([A-Za-z0-9_.-]+)", re.IGNORECASE)

_STILL_RUNNING_MARKERS = ("still running", "status: running", "not yet complete", "not ready")


class TaskAction(str, Enum):
    """Outcome of handing a Task tool_use to the coordinator."""
    BUFFERED = "buffered"
    CREATED_SYNC = "created_sync"
    CREATED_ASYNC = "created_async"
    LABEL_UPDATED = "label_updated"


@dataclass
class SubagentState:
    """A tracked subagent and its rendered block."""
    info: SubagentInfo
    handle: Any = None


@dataclass
class PendingTask:
    """A Task launch whose mode is not known yet."""
    tool_id: str
    input: Dict[str, Any] = field(default_factory=dict)
    container: Any = None


@dataclass
class TaskToolUseResult:
    action: TaskAction
    subagent_state: Optional[SubagentState] = None

    @property
    def info(self) -> Optional[SubagentInfo]:
        return self.subagent_state.info if self.subagent_state else None


@dataclass
class RenderedPendingTask:
    mode: SubagentMode
    subagent_state: SubagentState

    @property
    def info(self) -> SubagentInfo:
        return self.subagent_state.info


StateChangeCallback = Callable[[SubagentInfo], None]


class SubagentStateBus:
    """Fan-out for out-of-band async subagent state changes."""

    def __init__(self):
        self._subscribers: List[StateChangeCallback] = []

    def subscribe(self, callback: StateChangeCallback) -> Callable[[], None]:
        """Register a callback.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, info: SubagentInfo) -> None:
        for callback in list(self._subscribers):
            try:
                callback(info)
            except Exception:
                logger.exception(f"Subagent state subscriber failed for {info.id}")


def parse_background_flag(input: Dict[str, Any]) -> Optional[bool]:
    """Read run_in_background; None when the flag is absent."""
    if "run_in_background" not in input:
        return None
    value = input["run_in_background"]
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def parse_agent_id(content: str) -> Optional[str]:
    """Extract the background agent id from a launch acknowledgement."""
    if not content:
        return None
    try:
        data = json.loads(content)
    except (ValueError, TypeError):
        data = None
    if isinstance(data, dict):
        for key in ("agent_id", "agentId", "task_id", "taskId"):
            if data.get(key):
                return str(data[key])
    match = _AGENT_ID_PATTERN.search(content)
    if match:
        return match.group(1)
    return None


def is_still_running(content: str) -> bool:
    """True if an agent-output result reports the agent has not finished."""
    if not content:
        return False
    try:
        data = json.loads(content)
    except (ValueError, TypeError):
        data = None
    if isinstance(data, dict):
        status = str(data.get("status", "")).lower()
        return status in ("running", "pending")
    lowered = content.lower()
    return any(marker in lowered for marker in _STILL_RUNNING_MARKERS)


class SubagentCoordinator:
    """Tracks sync, async and pending subagents for the stream controller.

    Renderer failures are logged and swallowed here; a subagent whose block
    could not be created is still tracked so its results are recorded.
    """

    def __init__(self, renderer: SubagentRenderer, bus: Optional[SubagentStateBus] = None):
        self._renderer = renderer
        self.bus = bus or SubagentStateBus()
        self._sync: Dict[str, SubagentState] = {}
        self._async: Dict[str, SubagentState] = {}
        self._pending: "OrderedDict[str, PendingTask]" = OrderedDict()
        # TaskOutput tool id -> async subagent id
        self._output_links: Dict[str, str] = {}
        self.subagents_spawned_this_stream = 0

    # ==================== Queries ====================

    def is_async_task(self, task_id: str) -> bool:
        return task_id in self._async

    def is_pending_async_task(self, task_id: str) -> bool:
        """True for an async launch still waiting for its acknowledgement."""
        state = self._async.get(task_id)
        return state is not None and state.info.status == SubagentStatus.PENDING

    def is_linked_agent_output_tool(self, tool_id: str) -> bool:
        return tool_id in self._output_links

    def has_pending_task(self, task_id: str) -> bool:
        return task_id in self._pending

    def pending_task_ids(self) -> List[str]:
        return list(self._pending.keys())

    def get_sync_subagent(self, task_id: str) -> Optional[SubagentState]:
        return self._sync.get(task_id)

    def get_async_subagent(self, task_id: str) -> Optional[SubagentState]:
        return self._async.get(task_id)

    def active_async_subagents(self) -> List[SubagentInfo]:
        return [s.info for s in self._async.values() if not s.info.is_terminal]

    # ==================== Task launches ====================

    def handle_task_tool_use(
        self,
        task_id: str,
        input: Dict[str, Any],
        container: Any,
    ) -> TaskToolUseResult:
        """Process a Task tool_use (first sight or input update)."""
        existing = self._sync.get(task_id) or self._async.get(task_id)
        if existing is not None:
            self._update_label(existing, input)
            return TaskToolUseResult(TaskAction.LABEL_UPDATED, existing)

        pending = self._pending.get(task_id)
        if pending is not None:
            pending.input = {**pending.input, **input}
            if container is not None:
                pending.container = container
            mode = self._mode_from_input(pending.input)
            if mode is None:
                return TaskToolUseResult(TaskAction.LABEL_UPDATED)
            rendered = self.render_pending_task(task_id, container, mode=mode)
            if rendered is None:
                return TaskToolUseResult(TaskAction.LABEL_UPDATED)
            return self._created(rendered.subagent_state)

        mode = self._mode_from_input(input)
        if mode is None:
            self._pending[task_id] = PendingTask(tool_id=task_id, input=dict(input), container=container)
            logger.debug(f"Task {task_id} buffered until its mode is known")
            return TaskToolUseResult(TaskAction.BUFFERED)

        state = self._create(task_id, input, container, mode)
        return self._created(state)

    def render_pending_task(
        self,
        task_id: str,
        container: Any,
        mode: Optional[SubagentMode] = None,
    ) -> Optional[RenderedPendingTask]:
        """Settle a pending launch and create its subagent.

        Args:
            task_id: The Task tool call id.
            container: Where to render; falls back to the container the
                launch arrived in.
            mode: Forced mode; defaults to the input flag, else sync.

        Returns:
            The created subagent, or None if the id is not pending.
        """
        pending = self._pending.pop(task_id, None)
        if pending is None:
            return None
        if mode is None:
            mode = self._mode_from_input(pending.input) or SubagentMode.SYNC
        target = container if container is not None else pending.container
        state = self._create(task_id, pending.input, target, mode)
        return RenderedPendingTask(mode=mode, subagent_state=state)

    def handle_task_tool_result(
        self,
        task_id: str,
        content: str,
        is_error: Optional[bool] = None,
    ) -> Optional[SubagentInfo]:
        """Apply the launch acknowledgement of an async subagent."""
        state = self._async.get(task_id)
        if state is None:
            logger.debug(f"Launch result for unknown async task {task_id}")
            return None
        info = state.info
        if info.status != SubagentStatus.PENDING:
            return info

        if is_error:
            info.status = SubagentStatus.ERROR
            info.result = content
            self._render("finalize_async_subagent", state)
            self._async.pop(task_id, None)
        else:
            info.status = SubagentStatus.RUNNING
            info.agent_id = parse_agent_id(content) or info.agent_id
            self._render("update_async_subagent_running", state)
        self.bus.publish(info)
        return info

    # ==================== Sync subagents ====================

    def add_sync_tool_call(self, parent_id: str, tool_call: ToolCallInfo) -> None:
        state = self._sync.get(parent_id)
        if state is None:
            return
        existing = state.info.find_tool_call(tool_call.id)
        if existing is not None:
            existing.merge_input(tool_call.input)
            return
        state.info.tool_calls.append(tool_call)
        self._render("add_subagent_tool_call", state, tool_call)

    def update_sync_tool_result(self, parent_id: str, tool_id: str, tool_call: ToolCallInfo) -> None:
        state = self._sync.get(parent_id)
        if state is None:
            return
        existing = state.info.find_tool_call(tool_id)
        if existing is None:
            logger.debug(f"Subagent {parent_id} has no tool call {tool_id}")
            return
        existing.status = tool_call.status
        existing.result = tool_call.result
        self._render("update_subagent_tool_result", state, existing)

    def finalize_sync_subagent(
        self,
        task_id: str,
        result: str,
        is_error: Optional[bool] = None,
    ) -> Optional[SubagentInfo]:
        """Close a sync subagent with its Task result."""
        state = self._sync.pop(task_id, None)
        if state is None:
            return None
        info = state.info
        info.status = SubagentStatus.ERROR if is_error else SubagentStatus.COMPLETED
        info.result = result
        self._render("finalize_subagent_block", state)
        return info

    # ==================== Agent output (TaskOutput) ====================

    def handle_agent_output_tool_use(self, tool_call: ToolCallInfo) -> bool:
        """Link a TaskOutput call to the async subagent it queries.

        Returns:
            True if a running async subagent matched.
        """
        target = tool_call.input.get("task_id") or tool_call.input.get("agent_id")
        if not target:
            return False
        for state in self._async.values():
            if target in (state.info.agent_id, state.info.id):
                self._output_links[tool_call.id] = state.info.id
                return True
        logger.debug(f"TaskOutput {tool_call.id} references unknown agent {target}")
        return False

    def handle_agent_output_tool_result(
        self,
        tool_id: str,
        content: str,
        is_error: Optional[bool] = None,
    ) -> Optional[SubagentInfo]:
        """Apply a TaskOutput result to its linked async subagent."""
        task_id = self._output_links.pop(tool_id, None)
        if task_id is None:
            return None
        state = self._async.get(task_id)
        if state is None:
            return None
        info = state.info
        if is_still_running(content) and not is_error:
            return info

        info.status = SubagentStatus.ERROR if is_error else SubagentStatus.COMPLETED
        info.result = content
        self._render("finalize_async_subagent", state)
        self._async.pop(task_id, None)
        self.bus.publish(info)
        return info

    def orphan_all_active(self) -> List[SubagentInfo]:
        """Mark every unfinished async subagent orphaned (e.g. conversation cleared)."""
        orphaned = []
        for task_id, state in list(self._async.items()):
            if state.info.is_terminal:
                continue
            state.info.status = SubagentStatus.ORPHANED
            self._render("mark_async_subagent_orphaned", state)
            self._async.pop(task_id, None)
            self.bus.publish(state.info)
            orphaned.append(state.info)
        return orphaned

    # ==================== Reset ====================

    def reset_streaming_state(self) -> None:
        """Forget per-turn tracking. Async subagents survive the turn."""
        self._sync.clear()
        self._pending.clear()
        self._output_links.clear()

    def reset_spawned_count(self) -> None:
        self.subagents_spawned_this_stream = 0

    # ==================== Internals ====================

    def _mode_from_input(self, input: Dict[str, Any]) -> Optional[SubagentMode]:
        flag = parse_background_flag(input)
        if flag is None:
            return None
        return SubagentMode.ASYNC if flag else SubagentMode.SYNC

    def _created(self, state: SubagentState) -> TaskToolUseResult:
        if state.info.mode == SubagentMode.ASYNC:
            return TaskToolUseResult(TaskAction.CREATED_ASYNC, state)
        return TaskToolUseResult(TaskAction.CREATED_SYNC, state)

    def _create(
        self,
        task_id: str,
        input: Dict[str, Any],
        container: Any,
        mode: SubagentMode,
    ) -> SubagentState:
        info = SubagentInfo(
            id=task_id,
            description=get_subagent_description(input),
            mode=mode,
            prompt=input.get("prompt"),
        )
        state = SubagentState(info=info)
        if mode == SubagentMode.ASYNC:
            info.status = SubagentStatus.PENDING
            state.handle = self._create_block("create_async_subagent_block", container, info)
            self._async[task_id] = state
        else:
            info.status = SubagentStatus.RUNNING
            state.handle = self._create_block("create_subagent_block", container, info)
            self._sync[task_id] = state
        self.subagents_spawned_this_stream += 1
        logger.debug(f"Subagent {task_id} created ({mode.value})")
        return state

    def _update_label(self, state: SubagentState, input: Dict[str, Any]) -> None:
        if "description" not in input and "subagent_type" not in input:
            return
        description = get_subagent_description({**{"description": state.info.description}, **input})
        if description == state.info.description:
            return
        state.info.description = description
        if "prompt" in input:
            state.info.prompt = input["prompt"]
        self._render("update_subagent_label", state, description)

    def _create_block(self, method: str, container: Any, info: SubagentInfo) -> Any:
        if container is None:
            return None
        try:
            return getattr(self._renderer, method)(container, info)
        except Exception as e:
            logger.warning(f"Failed to render subagent {info.id}: {e}")
            return None

    def _render(self, method: str, state: SubagentState, *args: Any) -> None:
        if state.handle is None:
            return
        try:
            if args:
                getattr(self._renderer, method)(state.handle, *args)
            else:
                getattr(self._renderer, method)(state.handle, state.info)
        except Exception as e:
            logger.warning(f"Subagent renderer call {method} failed for {state.info.id}: {e}")
