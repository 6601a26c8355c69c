"""Shared fixtures for agent_stream tests."""

import heapq
import itertools
from typing import Any, Callable, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from agent_stream.controller import SessionIdentityProvider, StreamController
from agent_stream.models import ChatMessage
from agent_stream.renderer import StreamRenderer
from agent_stream.state import TurnState


@pytest.fixture(autouse=True)
def _disable_trace_file(monkeypatch):
    """Keep tests from appending to the temp-dir trace log."""
    monkeypatch.setenv("AGENT_STREAM_TRACE_LOG", "")


class FakeTimerHandle:
    """Stand-in for asyncio.TimerHandle."""

    def __init__(self, when: float, callback: Callable[..., None], args: Tuple[Any, ...]):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def run(self) -> None:
        self._callback(*self._args)


class FakeLoop:
    """Deterministic clock plus call_later, advanced manually by tests."""

    def __init__(self, start: float = 100.0):
        self._now = start
        self._queue: List[Tuple[float, int, FakeTimerHandle]] = []
        self._seq = itertools.count()
        self.scheduled: List[FakeTimerHandle] = []

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., None], *args: Any) -> FakeTimerHandle:
        handle = FakeTimerHandle(self._now + delay, callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        self.scheduled.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running due callbacks in time order."""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self._now = when
            if not handle.cancelled():
                handle.run()
        self._now = target

    def pending(self) -> List[FakeTimerHandle]:
        return [h for _, _, h in self._queue if not h.cancelled()]


def make_renderer() -> MagicMock:
    """MagicMock renderer; every create call returns a fresh handle."""
    renderer = MagicMock(spec=StreamRenderer)
    for name in (
        "create_turn_container",
        "create_text_block",
        "create_thinking_block",
        "render_tool_call",
        "create_write_edit_block",
        "create_subagent_block",
        "create_async_subagent_block",
        "show_indicator",
    ):
        getattr(renderer, name).side_effect = lambda *args, _name=name: MagicMock(name=f"{_name}-handle")
    renderer.finalize_thinking_block.return_value = 1.5
    renderer.is_indicator_attached.return_value = True
    return renderer


class StaticSession(SessionIdentityProvider):
    def __init__(self, session_id: Optional[str] = "session-1"):
        self.session_id = session_id

    def get_session_id(self) -> Optional[str]:
        return self.session_id


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def renderer() -> MagicMock:
    return make_renderer()


@pytest.fixture
def state() -> TurnState:
    return TurnState()


@pytest.fixture
def queue_indicator() -> MagicMock:
    return MagicMock()


@pytest.fixture
def controller(renderer, state, fake_loop, queue_indicator) -> StreamController:
    ctrl = StreamController(
        renderer,
        state,
        session_provider=StaticSession(),
        loop=fake_loop,
        update_queue_indicator=queue_indicator,
    )
    state.current_content_el = MagicMock(name="content-el")
    state.response_start_time = fake_loop.time()
    return ctrl


@pytest.fixture
def msg() -> ChatMessage:
    return ChatMessage(id="assistant-1")
