"""Deferred rendering queue for tool calls.

Write/edit tools need their full input before a diff preview means anything,
so tool calls are held here from their first tool_use chunk until a flush
trigger (text, thinking, error/blocked, done, or their own tool_result).
"""

import logging
from collections import OrderedDict
from typing import Callable, Iterator, List, Optional, Set

from .models import ToolCallInfo

logger = logging.getLogger(__name__)


class PendingToolBuffer:
    """Insertion-ordered tool calls awaiting their first render.

    A call that has been flushed (or was abandoned by clear()) is never
    accepted again, so repeat tool_use chunks cannot re-open buffering.
    """

    def __init__(self):
        self._pending: "OrderedDict[str, ToolCallInfo]" = OrderedDict()
        self._released: Set[str] = set()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._pending

    def __iter__(self) -> Iterator[ToolCallInfo]:
        return iter(list(self._pending.values()))

    @property
    def is_empty(self) -> bool:
        return not self._pending

    def ids(self) -> List[str]:
        return list(self._pending.keys())

    def get(self, tool_id: str) -> Optional[ToolCallInfo]:
        return self._pending.get(tool_id)

    def add(self, tool_call: ToolCallInfo) -> bool:
        """Buffer a tool call.

        Returns:
            True if the call was buffered; False if it is already buffered or
            was released earlier.
        """
        if tool_call.id in self._pending or tool_call.id in self._released:
            return False
        self._pending[tool_call.id] = tool_call
        return True

    def take(self, tool_id: str) -> Optional[ToolCallInfo]:
        """Remove one call from the buffer, marking it released."""
        tool_call = self._pending.pop(tool_id, None)
        if tool_call is not None:
            self._released.add(tool_id)
        return tool_call


    def flush(self, render: Callable[[ToolCallInfo], None]) -> int:
        """Render every buffered call in insertion order.

        Each call leaves the buffer before it is rendered, so a render
        callback that re-enters the buffer never sees it again.

        Returns:
            Number of calls rendered.
        """
        count = 0
        while self._pending:
            tool_id, tool_call = self._pending.popitem(last=False)
            self._released.add(tool_id)
            render(tool_call)
            count += 1
        return count

    def flush_one(self, tool_id: str, render: Callable[[ToolCallInfo], None]) -> bool:
        """Render a single buffered call; others stay buffered."""
        tool_call = self.take(tool_id)
        if tool_call is None:
            return False
        render(tool_call)
        return True

    def clear(self) -> None:
        """Drop all buffered calls without rendering them."""
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} buffered tool call(s)")
        self._pending.clear()
        self._released.clear()
